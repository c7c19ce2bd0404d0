import asyncio
import logging
from typing import Optional, Dict, Any
import httpx
from fieldforms.config import settings
from fieldforms.core.exceptions import ExternalAPIException
from fieldforms.core.logging_utils import sanitize_log_message
from fieldforms.core.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerOpenException,
    audit_sink_circuit_breaker,
)

logger = logging.getLogger(__name__)


class AuditSinkClient:
    """Client for the platform's external audit sink, with retries and a circuit breaker."""

    EVENTS_ENDPOINT = "/v1/audit-events"

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout: Optional[float] = None,
        retry_attempts: Optional[int] = None,
        circuit_breaker: Optional[CircuitBreaker] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        backoff_base: float = 0.5,
    ):
        self.base_url = (base_url if base_url is not None else settings.get_audit_sink_url()) or ""
        self.api_key = api_key if api_key is not None else settings.AUDIT_SINK_API_KEY
        self.timeout = timeout or settings.AUDIT_SINK_TIMEOUT
        self.retry_attempts = max(retry_attempts or settings.AUDIT_SINK_RETRY_ATTEMPTS, 1)
        self.circuit_breaker = circuit_breaker or audit_sink_circuit_breaker
        self.transport = transport
        self.backoff_base = backoff_base

    def _get_headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["X-API-Key"] = self.api_key
        return headers

    async def _execute_request(self, url: str, payload: Dict[str, Any]) -> httpx.Response:
        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            response = await client.post(url, headers=self._get_headers(), json=payload)
        # 5xx and 429 count against the breaker; other 4xx are our own fault
        if response.status_code >= 500 or response.status_code == 429:
            raise ExternalAPIException(
                detail=f"Audit sink error: {response.status_code} - {response.text[:200]}"
            )
        return response

    async def send_event(self, payload: Dict[str, Any]) -> None:
        """
        Deliver one audit event.

        Raises:
            ExternalAPIException if every attempt fails or the sink rejects the event
            CircuitBreakerOpenException if the breaker is open
        """
        url = f"{self.base_url}{self.EVENTS_ENDPOINT}"
        last_exception: Optional[Exception] = None

        for attempt in range(self.retry_attempts):
            try:
                response = await self.circuit_breaker.call(self._execute_request, url, payload)
            except CircuitBreakerOpenException:
                logger.warning(sanitize_log_message("Circuit breaker open for audit sink", URL=url))
                raise
            except ExternalAPIException as e:
                last_exception = e
            except httpx.HTTPError as e:
                last_exception = ExternalAPIException(detail=f"Audit sink request error: {str(e)}")
            else:
                if response.status_code >= 400:
                    raise ExternalAPIException(
                        detail=f"Audit sink rejected event: {response.status_code} - {response.text[:200]}"
                    )
                logger.debug(
                    sanitize_log_message(
                        "Audit event delivered",
                        Action=payload.get("action_type"),
                        StatusCode=response.status_code,
                    )
                )
                return

            logger.warning(
                sanitize_log_message(
                    "Retrying audit sink request",
                    Attempt=attempt + 1,
                    MaxAttempts=self.retry_attempts,
                    Error=str(last_exception),
                )
            )
            if attempt < self.retry_attempts - 1:
                await asyncio.sleep(self.backoff_base * (2 ** attempt))

        raise last_exception
