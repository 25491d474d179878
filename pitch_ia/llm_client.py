# pitch_ia/llm_client.py
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Union

import openai
from openai import OpenAI
from langchain_core.messages import BaseMessage, HumanMessage, AIMessage, SystemMessage

from pitch_ia.config import ConfigurationError, PitchSettings

logger = logging.getLogger("pitch_ia")

DEFAULT_ATTEMPT_TIMEOUT_S = 25.0


class FailureKind(str, Enum):
    CONFIGURATION = "configuration"
    AUTHENTICATION = "authentication"
    INVALID_REQUEST = "invalid_request"
    TIMEOUT = "timeout"
    NETWORK = "network"
    RATE_LIMITED = "rate_limited"
    EMPTY_RESPONSE = "empty_response"
    UPSTREAM = "upstream"
    UNEXPECTED = "unexpected"
    MALFORMED_OUTPUT = "malformed_output"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class Success:
    raw_text: str


@dataclass(frozen=True)
class RetryableFailure:
    kind: FailureKind
    cause: str = ""


@dataclass(frozen=True)
class FatalFailure:
    kind: FailureKind
    cause: str = ""


AttemptOutcome = Union[Success, RetryableFailure, FatalFailure]


def classify_exception(e: Exception) -> AttemptOutcome:
    """
    Map an exception raised by the OpenAI SDK to an attempt outcome.

    Classification is done on the exception type only. Rejected credentials and
    requests the service refuses as malformed are fatal: retrying cannot change
    the answer. Everything else is treated as transient.
    """
    cause = f"{type(e).__name__}: {e}"

    if isinstance(e, (openai.AuthenticationError, openai.PermissionDeniedError)):
        return FatalFailure(FailureKind.AUTHENTICATION, cause)
    if isinstance(e, (openai.BadRequestError, openai.NotFoundError, openai.UnprocessableEntityError)):
        return FatalFailure(FailureKind.INVALID_REQUEST, cause)
    # APITimeoutError is a subclass of APIConnectionError: check it first
    if isinstance(e, openai.APITimeoutError):
        return RetryableFailure(FailureKind.TIMEOUT, cause)
    if isinstance(e, openai.APIConnectionError):
        return RetryableFailure(FailureKind.NETWORK, cause)
    if isinstance(e, openai.RateLimitError):
        return RetryableFailure(FailureKind.RATE_LIMITED, cause)
    if isinstance(e, openai.APIStatusError):
        return RetryableFailure(FailureKind.UPSTREAM, cause)
    return RetryableFailure(FailureKind.UNEXPECTED, cause)


class PitchLlmClient:
    """
    Single-shot chat completion against OpenAI (Responses API):

        outcome = client.complete(system, user, timeout=25)

    - no retries here (max_retries=0 on the SDK client): the orchestrator owns them
    - every exception is turned into a classified AttemptOutcome, nothing is raised
      except ConfigurationError from ensure_configured()
    """

    def __init__(
        self,
        model_name: str,
        *,
        api_key: Optional[str] = None,
        temperature: Optional[float] = None,
        timeout: float = DEFAULT_ATTEMPT_TIMEOUT_S,
        client: Any = None,
    ):
        self.model_name = model_name
        self.temperature = temperature
        self._api_key = api_key
        self._timeout = timeout
        self._client = client
        self.last_usage: Optional[Dict[str, int]] = None

    @classmethod
    def from_settings(cls, settings: PitchSettings, client: Any = None) -> "PitchLlmClient":
        return cls(
            settings.model,
            api_key=settings.openai_api_key,
            temperature=settings.temperature,
            timeout=settings.attempt_timeout_s,
            client=client,
        )

    # -----------------------
    # Credentials
    # -----------------------

    def _credentials_problem(self) -> Optional[str]:
        key = self._api_key
        if key is None or not key.strip():
            return "OPENAI_API_KEY is not set"
        if any(ch.isspace() for ch in key.strip()) or key != key.strip():
            return "OPENAI_API_KEY is malformed (contains whitespace)"
        return None

    @property
    def is_configured(self) -> bool:
        return self._credentials_problem() is None

    def ensure_configured(self) -> None:
        problem = self._credentials_problem()
        if problem:
            raise ConfigurationError(problem)

    def _get_client(self):
        if self._client is None:
            self.ensure_configured()
            self._client = OpenAI(api_key=self._api_key, max_retries=0, timeout=self._timeout)
        return self._client

    # -----------------------
    # Plumbing
    # -----------------------

    def _to_openai_messages(self, messages: List[BaseMessage]) -> List[Dict[str, str]]:
        out: List[Dict[str, str]] = []
        for m in messages:
            if isinstance(m, SystemMessage):
                role = "developer"
            elif isinstance(m, AIMessage):
                role = "assistant"
            else:
                role = "user"
            out.append({"role": role, "content": str(m.content)})
        return out

    def _merge_usage(self, resp: Any) -> None:
        usage = getattr(resp, "usage", None)
        if usage is None:
            return
        inc = {
            "prompt_token_count": getattr(usage, "input_tokens", 0) or 0,
            "candidates_token_count": getattr(usage, "output_tokens", 0) or 0,
            "total_token_count": getattr(usage, "total_tokens", 0) or 0,
        }
        if self.last_usage is None:
            self.last_usage = inc
            return
        for k, v in inc.items():
            self.last_usage[k] = (self.last_usage.get(k, 0) or 0) + (v or 0)

    def _invoke_once(self, messages: List[BaseMessage], timeout: float) -> str:
        """
        Single HTTP call without retries/backoff.
        """
        params: Dict[str, Any] = {}
        if self.temperature is not None:
            params["temperature"] = self.temperature

        resp = self._get_client().with_options(timeout=timeout).responses.create(
            model=self.model_name,
            input=self._to_openai_messages(messages),
            **params,
        )
        self._merge_usage(resp)

        text = getattr(resp, "output_text", "") or ""
        return text.strip()

    def complete(
        self,
        system_instruction: str,
        user_instruction: str,
        timeout: Optional[float] = None,
    ) -> AttemptOutcome:
        timeout = self._timeout if timeout is None else timeout
        messages = [SystemMessage(content=system_instruction), HumanMessage(content=user_instruction)]

        start_time = time.monotonic()
        try:
            text = self._invoke_once(messages, timeout)
        except ConfigurationError as e:
            return FatalFailure(FailureKind.CONFIGURATION, str(e))
        except Exception as e:
            outcome = classify_exception(e)
            elapsed = time.monotonic() - start_time
            logger.warning(
                f"Completion call failed after {elapsed:.2f}s "
                f"({outcome.kind.value}, {'fatal' if isinstance(outcome, FatalFailure) else 'retryable'}): {e}"
            )
            return outcome

        if not text:
            logger.warning("Completion call returned an empty body")
            return RetryableFailure(FailureKind.EMPTY_RESPONSE, "empty output_text")

        logger.info(f"Content received ({len(text)} chars), first 500: {text[:500]}")
        return Success(text)
