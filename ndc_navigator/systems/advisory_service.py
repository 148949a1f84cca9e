"""
Advisory service: one LLM call per recommendation, guarded by a circuit
breaker. Every failure (transport, non-JSON, schema mismatch, anything
else the SDK raises) is returned as ``Err(ADVISORY_SERVICE_ERROR)`` and
counted against the breaker.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Optional

import anthropic
from pydantic import ValidationError

from ndc_navigator.systems.advisory_prompts import SYSTEM_PROMPT, build_messages
from ndc_navigator.utils.circuit_breaker import CircuitBreaker
from ndc_navigator.utils.llm_client import LLMClient
from ndc_navigator.utils.models import AdvisoryRequest, AdvisoryResponse
from ndc_navigator.utils.result import Err, ErrorKind, Ok, Result

logger = logging.getLogger(__name__)


@dataclass
class AdvisoryReply:
    response: AdvisoryResponse
    latency_ms: float
    cost: Optional[float] = None


class AdvisoryService:
    def __init__(
        self,
        llm: Optional[LLMClient],
        breaker: CircuitBreaker,
        enabled: bool = True,
    ):
        self.llm = llm
        self.breaker = breaker
        self.enabled = enabled

    def is_available(self) -> bool:
        return self.enabled and self.llm is not None and self.breaker.allows_request()

    def unavailable_reason(self) -> Optional[str]:
        if not self.enabled:
            return "advisory disabled"
        if self.llm is None:
            return "advisory credentials not configured"
        if not self.breaker.allows_request():
            return "advisory circuit open"
        return None

    def _failure(self, reason: str, message: str, **details) -> Err:
        self.breaker.record_failure()
        return Err(
            ErrorKind.ADVISORY_SERVICE_ERROR,
            message,
            details={"reason": reason, "circuit": self.breaker.snapshot()["state"], **details},
        )

    def request_recommendation(self, request: AdvisoryRequest) -> Result[AdvisoryReply]:
        reason = self.unavailable_reason()
        if reason is None and not self.breaker.acquire():
            reason = "advisory circuit trial call in progress"
        if reason:
            return Err(ErrorKind.ADVISORY_SERVICE_ERROR, reason, details={"reason": "unavailable"})

        start = time.time()
        try:
            payload, completion = self.llm.complete_json(SYSTEM_PROMPT, build_messages(request))
        except anthropic.APIError as e:
            logger.warning("[Advisory] API call failed: %s", e)
            return self._failure("api_error", f"Advisory API error: {type(e).__name__}")
        except ValueError as e:
            return self._failure("malformed_response", str(e))
        except Exception as e:
            logger.error("[Advisory] Unexpected failure: %s", e)
            return self._failure("unexpected_error", f"Advisory call failed: {type(e).__name__}")

        try:
            response = AdvisoryResponse.model_validate(payload)
        except ValidationError as e:
            logger.warning("[Advisory] Response failed validation: %d error(s)", e.error_count())
            return self._failure(
                "invalid_response",
                "Advisory response did not match the expected schema",
                errors=[err["msg"] for err in e.errors()[:5]],
            )

        self.breaker.record_success()
        latency_ms = round((time.time() - start) * 1000, 2)
        logger.info("[Advisory] Recommendation received in %.0f ms", latency_ms)
        return Ok(AdvisoryReply(response=response, latency_ms=latency_ms, cost=completion.cost))
