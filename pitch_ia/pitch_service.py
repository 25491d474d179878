# pitch_ia/pitch_service.py
"""
Caller side of the generation core.

    service = PitchService.from_settings()
    result = service.generate_pitch("Une app qui ...")
    if result.ok: result.record.problem ...
    else: result.error  (message ready to show to the user)

Order of resolution: input validation -> result cache -> persisted store
-> demo mode -> orchestrator. Successful generations are cached and persisted.
"""
import asyncio
import logging
import threading
import time
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError

from pitch_ia.config import PitchSettings
from pitch_ia.entities import PitchRecord
from pitch_ia.generation import GenerationRun, PitchGenerator
from pitch_ia.llm_client import FailureKind, PitchLlmClient
from pitch_ia.pitch_store import PitchStore
from pitch_ia.result_cache import RESULT_CACHE, ResultCache, normalize_input

logger = logging.getLogger("pitch_ia")


MSG_EMPTY_INPUT = "Veuillez décrire votre projet."
MSG_TOO_SHORT = "La description doit contenir au moins {min_chars} caractères."
MSG_TOO_LONG = "La description ne doit pas dépasser {max_chars} caractères."
MSG_MISSING_KEY = (
    "La clé API OpenAI n'est pas configurée. "
    "Veuillez définir la variable d'environnement OPENAI_API_KEY."
)
MSG_REJECTED_KEY = "La clé API OpenAI a été refusée. Vérifiez que OPENAI_API_KEY est valide."
MSG_SERVICE_FAILED = (
    "Impossible de générer le pitch. Cela peut être dû à un problème réseau, "
    "un timeout ou une erreur de l'API OpenAI. Veuillez réessayer dans quelques instants."
)
MSG_TIMEOUT = "La génération du pitch a pris trop de temps. Veuillez réessayer dans quelques instants."


@dataclass
class PitchResult:
    record: Optional[PitchRecord] = None
    error: str = ""
    cached: bool = False
    pitch_id: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.record is not None and not self.error


def build_demo_pitch(description: str) -> PitchRecord:
    """Deterministic pitch built from the description, used when no model should be called."""
    description = normalize_input(description)
    return PitchRecord(
        problem=f"Les utilisateurs rencontrent {description}, ce qui crée une friction dans le parcours.",
        solution=f"Nous proposons une solution simple et intuitive basée sur {description}, améliorant la conversion.",
        market="Étudiants urbains 18-30 ans, utilisateurs mobiles cherchant commodité.",
        value="Gain de temps, personnalisation et prix attractif.",
        channels="Réseaux sociaux, partenariats campus, campagnes locales.",
        model="Freemium + abonnement premium + commissions.",
    )


def failure_message(run: GenerationRun) -> str:
    if run.failure == FailureKind.CONFIGURATION:
        return MSG_MISSING_KEY
    if run.failure == FailureKind.AUTHENTICATION:
        return MSG_REJECTED_KEY
    if run.failure == FailureKind.CANCELLED:
        return MSG_TIMEOUT
    return MSG_SERVICE_FAILED


class PitchService:
    def __init__(
        self,
        generator: PitchGenerator,
        *,
        cache: Optional[ResultCache] = None,
        store: Optional[PitchStore] = None,
        min_chars: int = 10,
        max_chars: int = 2000,
        demo_mode: bool = False,
    ):
        self.generator = generator
        self.cache = cache if cache is not None else RESULT_CACHE
        self.store = store
        self.min_chars = min_chars
        self.max_chars = max_chars
        self.demo_mode = demo_mode

    @classmethod
    def from_settings(
        cls,
        settings: Optional[PitchSettings] = None,
        *,
        llm: Optional[PitchLlmClient] = None,
        cache: Optional[ResultCache] = None,
        store: Optional[PitchStore] = None,
    ) -> "PitchService":
        settings = settings or PitchSettings.from_env()
        return cls(
            PitchGenerator.from_settings(settings, llm=llm),
            cache=cache,
            store=store if store is not None else PitchStore(settings.database_url),
            min_chars=settings.min_chars,
            max_chars=settings.max_chars,
            demo_mode=settings.demo_mode,
        )

    def validate(self, description: Optional[str]) -> str:
        """Return a user-facing error message, or "" when the description is acceptable."""
        text = normalize_input(description or "")
        if not text:
            return MSG_EMPTY_INPUT
        if len(text) < self.min_chars:
            return MSG_TOO_SHORT.format(min_chars=self.min_chars)
        if len(text) > self.max_chars:
            return MSG_TOO_LONG.format(max_chars=self.max_chars)
        return ""

    def _lookup_store(self, key: str) -> Optional[PitchRecord]:
        if self.store is None:
            return None
        try:
            return self.store.get_by_input(key)
        except SQLAlchemyError as e:
            logger.warning(f"[DB] Pitch lookup failed, generating instead: {e}")
            return None

    def _persist(self, key: str, record: PitchRecord) -> Optional[str]:
        if self.store is None:
            return None
        try:
            return self.store.save(key, record)
        except SQLAlchemyError as e:
            logger.warning(f"[DB] Could not persist pitch (non-fatal): {e}")
            return None

    def generate_pitch(
        self,
        description: Optional[str],
        *,
        deadline: Optional[float] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> PitchResult:
        error = self.validate(description)
        if error:
            return PitchResult(error=error)

        key = normalize_input(description)

        cached = self.cache.get(key)
        if cached is not None:
            logger.info("Pitch served from result cache")
            return PitchResult(record=cached, cached=True)

        stored = self._lookup_store(key)
        if stored is not None:
            logger.info("Pitch served from store")
            self.cache.put(key, stored)
            return PitchResult(record=stored, cached=True)

        if self.demo_mode:
            logger.info("Demo mode: building a mock pitch")
            return PitchResult(record=build_demo_pitch(key))

        logger.info(f"Starting AI generation for: {key[:50]}")
        run = self.generator.run(key, deadline=deadline, cancel_event=cancel_event)
        if not run.succeeded:
            logger.info(f"AI generation failed ({run.failure.value if run.failure else 'unknown'})")
            return PitchResult(error=failure_message(run))

        if cancel_event is not None and cancel_event.is_set():
            logger.info("Caller gave up before the pitch was stored, discarding it")
            return PitchResult(error=MSG_TIMEOUT)

        self.cache.put(key, run.record)
        pitch_id = self._persist(key, run.record)
        return PitchResult(record=run.record.copy(), pitch_id=pitch_id)

    async def generate_pitch_async(
        self,
        description: Optional[str],
        timeout: Optional[float] = None,
    ) -> PitchResult:
        """
        Run generate_pitch in a worker thread. On timeout or task cancellation the
        retry loop is told to stop, so it does not keep calling the model.
        """
        cancel_event = threading.Event()
        deadline = time.monotonic() + timeout if timeout else None
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(
                    self.generate_pitch,
                    description,
                    deadline=deadline,
                    cancel_event=cancel_event,
                ),
                timeout,
            )
        except asyncio.TimeoutError:
            cancel_event.set()
            logger.warning(f"Pitch generation exceeded {timeout}s, cancelled")
            return PitchResult(error=MSG_TIMEOUT)
        except asyncio.CancelledError:
            cancel_event.set()
            raise
