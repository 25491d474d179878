"""Tests for the generation orchestrator."""

import threading
import time

import pytest

from pitch_ia.entities import FieldKey
from pitch_ia.generation import GenerationState, PitchGenerator
from pitch_ia.llm_client import FailureKind, FatalFailure, RetryableFailure, Success


def _generator(llm, **kwargs):
    kwargs.setdefault("backoff_s", 0)
    return PitchGenerator(llm, **kwargs)


class TestHappyPath:
    def test_first_attempt_success(self, make_llm):
        llm = make_llm()
        run = _generator(llm).run("Une app pour les PME")
        assert run.state is GenerationState.COMPLETED
        assert run.attempts == 1
        assert len(llm.calls) == 1
        assert run.record.problem == "Manque d'outils"
        assert run.record.is_complete

    def test_prompt_contains_description(self, make_llm):
        llm = make_llm()
        _generator(llm).generate("Une app pour {les} PME")
        assert "Description du projet : Une app pour {les} PME" in llm.calls[0]["user"]
        assert "[Problème]" in llm.calls[0]["system"]

    def test_partial_record_is_backfilled(self, make_llm):
        llm = make_llm([Success("1. Problème: pas assez d'info")])
        record = _generator(llm).generate("Une app pour les PME")
        assert record.problem == "pas assez d'info"
        for key in FieldKey:
            if key is not FieldKey.PROBLEM:
                assert record.get(key) == key.placeholder
        assert all(record.get(k) for k in FieldKey)

    def test_retry_then_success(self, make_llm):
        llm = make_llm([RetryableFailure(FailureKind.NETWORK, "down"), Success("1. [Solution] B")])
        run = _generator(llm).run("Une app pour les PME")
        assert run.succeeded
        assert run.attempts == 2
        assert run.record.solution == "B"

    def test_new_attempt_starts_from_blank_record(self, make_llm):
        llm = make_llm([Success("rien d'exploitable"), Success("2. [Solution] B")])
        record = _generator(llm).generate("Une app pour les PME")
        assert record.solution == "B"
        assert record.problem == FieldKey.PROBLEM.placeholder
        assert record.raw == "2. [Solution] B"


class TestFailures:
    def test_fatal_stops_after_one_call(self, make_llm):
        llm = make_llm([FatalFailure(FailureKind.AUTHENTICATION, "401")])
        run = _generator(llm).run("Une app pour les PME")
        assert run.state is GenerationState.FAILED
        assert run.record is None
        assert run.failure is FailureKind.AUTHENTICATION
        assert len(llm.calls) == 1

    def test_retryable_exhausts_budget(self, make_llm):
        llm = make_llm([RetryableFailure(FailureKind.TIMEOUT, "slow")])
        run = _generator(llm, max_retries=3).run("Une app pour les PME")
        assert run.state is GenerationState.FAILED
        assert run.failure is FailureKind.TIMEOUT
        assert len(llm.calls) == 3

    @pytest.mark.parametrize("max_retries", [1, 2, 5])
    def test_never_exceeds_max_retries(self, make_llm, max_retries):
        llm = make_llm([RetryableFailure(FailureKind.UPSTREAM, "500")])
        assert _generator(llm, max_retries=max_retries).generate("Une app") is None
        assert len(llm.calls) == max_retries

    def test_unparseable_output_is_retried(self, make_llm):
        llm = make_llm([Success("Je ne peux pas répondre.")])
        run = _generator(llm).run("Une app pour les PME")
        assert run.record is None
        assert run.failure is FailureKind.MALFORMED_OUTPUT
        assert len(llm.calls) == 3

    def test_missing_credentials_make_no_call(self, make_llm):
        llm = make_llm(configured=False)
        run = _generator(llm).run("Une app pour les PME")
        assert run.failure is FailureKind.CONFIGURATION
        assert run.attempts == 0
        assert llm.calls == []

    def test_invalid_max_retries(self, make_llm):
        with pytest.raises(ValueError):
            PitchGenerator(make_llm(), max_retries=0)


class TestCancellation:
    def test_cancelled_before_first_attempt(self, make_llm):
        llm = make_llm()
        event = threading.Event()
        event.set()
        run = _generator(llm).run("Une app", cancel_event=event)
        assert run.failure is FailureKind.CANCELLED
        assert llm.calls == []

    def test_deadline_shorter_than_backoff(self, make_llm):
        llm = make_llm([RetryableFailure(FailureKind.NETWORK, "down")])
        start = time.monotonic()
        run = _generator(llm, backoff_s=10).run("Une app", deadline=time.monotonic() + 0.5)
        assert run.failure is FailureKind.CANCELLED
        assert len(llm.calls) == 1
        assert time.monotonic() - start < 2

    def test_cancel_interrupts_backoff(self, make_llm):
        llm = make_llm([RetryableFailure(FailureKind.NETWORK, "down")])
        event = threading.Event()
        timer = threading.Timer(0.1, event.set)
        timer.start()
        start = time.monotonic()
        try:
            run = _generator(llm, backoff_s=5).run("Une app", cancel_event=event)
        finally:
            timer.cancel()
        assert run.failure is FailureKind.CANCELLED
        assert len(llm.calls) == 1
        assert time.monotonic() - start < 3

    def test_cancel_during_attempt_discards_result(self, make_llm):
        llm = make_llm(delay=0.3)
        event = threading.Event()
        timer = threading.Timer(0.05, event.set)
        timer.start()
        try:
            run = _generator(llm).run("Une app", cancel_event=event)
        finally:
            timer.cancel()
        assert run.state is GenerationState.FAILED
        assert run.failure is FailureKind.CANCELLED
        assert run.record is None
        assert len(llm.calls) == 1

    def test_deadline_passed_during_attempt(self, make_llm):
        llm = make_llm(delay=0.3)
        run = _generator(llm).run("Une app", deadline=time.monotonic() + 0.1)
        assert run.failure is FailureKind.CANCELLED
        assert run.record is None

    def test_attempt_timeout_capped_by_deadline(self, make_llm):
        llm = make_llm()
        _generator(llm, attempt_timeout_s=25).run("Une app", deadline=time.monotonic() + 5)
        assert 0 < llm.calls[0]["timeout"] <= 5

    def test_attempt_timeout_default(self, make_llm):
        llm = make_llm()
        _generator(llm, attempt_timeout_s=25).run("Une app")
        assert llm.calls[0]["timeout"] == 25


class TestConcurrency:
    def test_independent_runs(self, make_llm):
        gen = _generator(make_llm())
        results = []

        def worker(i):
            results.append(gen.generate(f"Projet numéro {i}"))

        threads = [threading.Thread(target=worker, args=(i,)) for i in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=5)

        assert len(results) == 8
        assert all(r is not None and r.is_complete for r in results)
