# pitch_ia/generation.py
"""
Generation orchestrator: bounded retries around the completion client.

State machine of one call:

    IDLE -> ATTEMPTING -> COMPLETED   (record with all six fields filled)
                       -> FAILED      (no record)

- FatalFailure (bad/missing credentials, refused request): FAILED at once
- RetryableFailure, or a response where no section could be extracted:
  retry after `attempt * backoff_s` while attempts remain, else FAILED
- Success with at least one section: missing sections are back-filled with
  their placeholder and the record is returned

The failure cause never travels in the record; it is logged and kept on the
GenerationRun for callers that need it to build a user-facing message.
"""
import logging
import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional, Tuple

from pitch_ia.config import ConfigurationError, PitchSettings
from pitch_ia.entities import FieldKey, PitchRecord
from pitch_ia.llm_client import (
    AttemptOutcome,
    FailureKind,
    FatalFailure,
    PitchLlmClient,
    RetryableFailure,
    Success,
)
from pitch_ia.pitch_prompts import render_pitch_prompts
from pitch_ia.section_extractor import extract

logger = logging.getLogger("pitch_ia")


class GenerationState(str, Enum):
    IDLE = "idle"
    ATTEMPTING = "attempting"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class GenerationRun:
    state: GenerationState = GenerationState.IDLE
    attempts: int = 0
    failure: Optional[FailureKind] = None
    cause: str = ""
    sections_found: int = 0
    record: Optional[PitchRecord] = None

    @property
    def succeeded(self) -> bool:
        return self.state == GenerationState.COMPLETED and self.record is not None


class PitchGenerator:
    def __init__(
        self,
        llm: PitchLlmClient,
        *,
        max_retries: int = 3,
        attempt_timeout_s: float = 25.0,
        backoff_s: float = 1.0,
        extractor: Callable[[str], PitchRecord] = extract,
        render_prompts: Callable[[str], Tuple[str, str]] = render_pitch_prompts,
    ):
        if max_retries < 1:
            raise ValueError(f"max_retries must be >= 1, got {max_retries}")
        self._llm = llm
        self.max_retries = max_retries
        self.attempt_timeout_s = attempt_timeout_s
        self.backoff_s = backoff_s
        self._extract = extractor
        self._render_prompts = render_prompts

    @classmethod
    def from_settings(cls, settings: PitchSettings, llm: Optional[PitchLlmClient] = None) -> "PitchGenerator":
        return cls(
            llm or PitchLlmClient.from_settings(settings),
            max_retries=settings.max_retries,
            attempt_timeout_s=settings.attempt_timeout_s,
            backoff_s=settings.backoff_s,
        )

    def generate(
        self,
        input_text: str,
        *,
        deadline: Optional[float] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> Optional[PitchRecord]:
        return self.run(input_text, deadline=deadline, cancel_event=cancel_event).record

    # -----------------------
    # State machine
    # -----------------------

    def _fail(self, run: GenerationRun, kind: FailureKind, cause: str) -> GenerationRun:
        run.state = GenerationState.FAILED
        run.failure = kind
        run.cause = cause
        run.record = None
        logger.warning(f"Generation failed after {run.attempts} attempt(s): {kind.value} ({cause})")
        return run

    def _interrupted(self, deadline: Optional[float], cancel_event: threading.Event) -> bool:
        if cancel_event.is_set():
            return True
        return deadline is not None and time.monotonic() >= deadline

    def _wait_backoff(self, delay: float, deadline: Optional[float], cancel_event: threading.Event) -> bool:
        """
        Sleep before the next attempt. Returns False when the wait was cut short by
        cancellation, or when the deadline would expire before the delay elapses.
        """
        if deadline is not None and time.monotonic() + delay >= deadline:
            return False
        if delay <= 0:
            return not cancel_event.is_set()
        return not cancel_event.wait(delay)

    def run(
        self,
        input_text: str,
        *,
        deadline: Optional[float] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> GenerationRun:
        """
        Drive up to max_retries attempts for one project description.

        deadline is an absolute time.monotonic() value; cancel_event lets another
        thread abort the loop. Both cut the backoff sleep short and cap the timeout
        of the attempt in flight; an answer arriving after either fired is dropped.
        """
        run = GenerationRun()
        cancel_event = cancel_event or threading.Event()

        try:
            self._llm.ensure_configured()
        except ConfigurationError as e:
            logger.error(f"Completion service not configured: {e}")
            return self._fail(run, FailureKind.CONFIGURATION, str(e))

        system, user = self._render_prompts(input_text)
        run.state = GenerationState.ATTEMPTING
        last: Optional[AttemptOutcome] = None

        for attempt in range(1, self.max_retries + 1):
            if attempt > 1:
                logger.info(f"Attempt {attempt}/{self.max_retries} after previous failure")
                if not self._wait_backoff(attempt * self.backoff_s, deadline, cancel_event):
                    return self._fail(run, FailureKind.CANCELLED, "cancelled or deadline reached during backoff")

            if self._interrupted(deadline, cancel_event):
                return self._fail(run, FailureKind.CANCELLED, "cancelled or deadline reached before attempt")

            timeout = self.attempt_timeout_s
            if deadline is not None:
                timeout = min(timeout, max(0.0, deadline - time.monotonic()))

            run.attempts = attempt
            logger.info(f"Calling completion service (attempt {attempt}/{self.max_retries}), timeout {timeout:.1f}s")
            outcome = self._llm.complete(system, user, timeout)

            if self._interrupted(deadline, cancel_event):
                return self._fail(run, FailureKind.CANCELLED, "cancelled or deadline reached during attempt")

            if isinstance(outcome, FatalFailure):
                return self._fail(run, outcome.kind, outcome.cause)

            if isinstance(outcome, RetryableFailure):
                last = outcome
                logger.info(f"Attempt {attempt} failed ({outcome.kind.value}): {outcome.cause}")
                continue

            if not isinstance(outcome, Success):
                last = RetryableFailure(FailureKind.UNEXPECTED, f"unknown outcome {outcome!r}")
                continue

            record = self._extract(outcome.raw_text)
            found = record.filled_count
            run.sections_found = found
            logger.info(
                f"Parsing result - sections found: {found}/6 ("
                + ", ".join(f"{k.label}: {bool(record.get(k))}" for k in FieldKey)
                + ")"
            )

            if found == 0:
                last = RetryableFailure(FailureKind.MALFORMED_OUTPUT, "no section could be extracted")
                logger.warning(f"Parsing failed, all sections empty. Raw content:\n{outcome.raw_text}")
                continue

            if found < len(FieldKey):
                logger.info(f"Only {found}/6 sections found, filling the missing ones with placeholders")

            run.record = record.with_placeholders()
            run.state = GenerationState.COMPLETED
            return run

        kind = last.kind if last is not None else FailureKind.UNEXPECTED
        cause = last.cause if last is not None else ""
        return self._fail(run, kind, f"all {self.max_retries} attempts failed; last: {cause}")
