"""Shared test fixtures for pitch-ia."""

import time

import pytest

from pitch_ia.config import ConfigurationError
from pitch_ia.llm_client import Success
from pitch_ia.pitch_store import PitchStore
from pitch_ia.result_cache import ResultCache

CANONICAL_RAW = (
    "1. [Problème] Manque d'outils\n"
    "2. [Solution] App mobile\n"
    "3. [Marché] PME\n"
    "4. [Valeur] Rapide\n"
    "5. [Canaux] Réseaux sociaux\n"
    "6. [Modèle] Abonnement"
)


class ScriptedLlm:
    """Stands in for PitchLlmClient: replays a list of outcomes, the last one forever."""

    def __init__(self, outcomes=None, configured=True, delay=0.0):
        self.outcomes = list(outcomes or [Success(CANONICAL_RAW)])
        self.configured = configured
        self.delay = delay
        self.calls = []

    @property
    def is_configured(self):
        return self.configured

    def ensure_configured(self):
        if not self.configured:
            raise ConfigurationError("OPENAI_API_KEY is not set")

    def complete(self, system_instruction, user_instruction, timeout=None):
        self.calls.append({"system": system_instruction, "user": user_instruction, "timeout": timeout})
        if self.delay:
            time.sleep(self.delay)
        if len(self.outcomes) > 1:
            return self.outcomes.pop(0)
        return self.outcomes[0]


@pytest.fixture
def canonical_raw():
    return CANONICAL_RAW


@pytest.fixture
def make_llm():
    return ScriptedLlm


@pytest.fixture
def cache():
    return ResultCache()


@pytest.fixture
def store():
    return PitchStore("sqlite://")
