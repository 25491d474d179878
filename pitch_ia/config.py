# pitch_ia/config.py
import logging
import os
from dataclasses import dataclass

from dotenv import load_dotenv

load_dotenv()

logging.basicConfig(
    level=os.getenv("PITCH_LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s | %(levelname)s | %(name)s\n%(message)s\n"
)

logger = logging.getLogger("pitch_ia")


class ConfigurationError(RuntimeError):
    """Missing or malformed credentials for the completion service."""


_TRUE_VALUES = {"1", "true", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ValueError(f"{name} must be an integer, got '{raw}'") from e


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError as e:
        raise ValueError(f"{name} must be a number, got '{raw}'") from e


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in _TRUE_VALUES


@dataclass
class PitchSettings:
    """
    Runtime configuration of the generation pipeline.

    Every value comes from the environment (or a local .env file, loaded at import).
    The API key is kept as-is: validating it is the completion client's job, so a
    missing key is reported as a configuration failure and not as a network failure.
    """

    openai_api_key: str | None = None
    model: str = "gpt-4o-mini"
    temperature: float = 0.7
    max_retries: int = 3
    attempt_timeout_s: float = 25.0
    backoff_s: float = 1.0
    min_chars: int = 10
    max_chars: int = 2000
    demo_mode: bool = False
    database_url: str = "sqlite:///pitches.db"

    @classmethod
    def from_env(cls) -> "PitchSettings":
        settings = cls(
            openai_api_key=os.getenv("OPENAI_API_KEY"),
            model=os.getenv("PITCH_MODEL", cls.model),
            temperature=_env_float("PITCH_TEMPERATURE", cls.temperature),
            max_retries=_env_int("PITCH_MAX_RETRIES", cls.max_retries),
            attempt_timeout_s=_env_float("PITCH_ATTEMPT_TIMEOUT_S", cls.attempt_timeout_s),
            backoff_s=_env_float("PITCH_BACKOFF_S", cls.backoff_s),
            min_chars=_env_int("PITCH_MIN_CHARS", cls.min_chars),
            max_chars=_env_int("PITCH_MAX_CHARS", cls.max_chars),
            demo_mode=_env_bool("PITCH_DEMO_MODE"),
            database_url=os.getenv("PITCH_DATABASE_URL", cls.database_url),
        )
        if settings.max_retries < 1:
            raise ValueError(f"PITCH_MAX_RETRIES must be >= 1, got {settings.max_retries}")
        if settings.attempt_timeout_s <= 0:
            raise ValueError(f"PITCH_ATTEMPT_TIMEOUT_S must be > 0, got {settings.attempt_timeout_s}")
        return settings
