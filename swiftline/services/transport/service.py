"""HTTP transport returning uniform envelopes.

No retries and no credential handling live here: a failed call is classified
and returned as an `Envelope`, never raised.
"""

import json
from time import perf_counter
from typing import Any
from uuid import uuid4

import httpx
from pydantic import ValidationError

from swiftline.common.config import settings
from swiftline.common.logging import logger, request_id_ctx
from swiftline.common.metrics import http_request_duration_seconds, http_requests_total
from swiftline.common.tracing import get_tracer
from swiftline.services.transport.schemas import Envelope, ErrorCode

_PREVIEW_CHARS = 200


class Transport:
    """Issues one HTTP request per `send` against the escrow API."""

    def __init__(
        self,
        base_url: str | None = None,
        timeout: float | None = None,
        client: httpx.AsyncClient | None = None,
        service_name: str | None = None,
    ) -> None:
        self.base_url = (base_url or settings.api_base_url).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.request_timeout_seconds
        self.service_name = service_name or settings.service_name
        self._client = client
        self._owns_client = client is None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=self.timeout)
            self._owns_client = True
        return self._client

    async def send(
        self,
        endpoint: str,
        method: str = "GET",
        body: Any = None,
        auth_header: str | None = None,
    ) -> Envelope:
        """Perform one request and classify the outcome into an envelope.

        Each call gets a fresh `X-Request-ID`, also bound to the logging
        context for the duration of the call.
        """

        request_id = str(uuid4())
        headers = {"Content-Type": "application/json", "X-Request-ID": request_id}
        if auth_header:
            headers["Authorization"] = auth_header

        method = method.upper()
        context_token = request_id_ctx.set(request_id)
        try:
            envelope = await self._perform(method, endpoint, headers, body)
        finally:
            request_id_ctx.reset(context_token)

        outcome = envelope.code if envelope.code and not envelope.success else str(envelope.http_status)
        http_requests_total.labels(service=self.service_name, method=method, outcome=outcome).inc()
        return envelope

    async def _perform(self, method: str, endpoint: str, headers: dict[str, str], body: Any) -> Envelope:
        start = perf_counter()
        with get_tracer().start_as_current_span(f"HTTP {method}") as span:
            span.set_attribute("http.method", method)
            span.set_attribute("http.route", endpoint)
            span.set_attribute("http.request_id", headers["X-Request-ID"])
            try:
                response = await self._get_client().request(
                    method,
                    f"{self.base_url}{endpoint}",
                    headers=headers,
                    json=body,
                )
            except httpx.RequestError as exc:
                logger.warning("transport_network_error method=%s endpoint=%s error=%s", method, endpoint, exc)
                return Envelope.failure(str(exc) or "Network error", ErrorCode.NETWORK_ERROR)
            else:
                span.set_attribute("http.status_code", response.status_code)
                return self._classify(response)
            finally:
                http_request_duration_seconds.labels(service=self.service_name, method=method).observe(
                    max(0.0, perf_counter() - start)
                )

    def _classify(self, response: httpx.Response) -> Envelope:
        """Map a raw HTTP response onto the envelope, flagging malformed bodies."""

        status = response.status_code
        content_type = response.headers.get("content-type", "")
        raw_text = response.text

        if not raw_text.strip():
            return Envelope.failure(
                f"Empty response from server (status: {status}, url: {response.request.url})",
                ErrorCode.EMPTY_RESPONSE,
                http_status=status,
            )

        if "application/json" not in content_type:
            return Envelope.failure(
                "Server returned an invalid response (expected JSON)",
                ErrorCode.INVALID_RESPONSE,
                message=raw_text[:_PREVIEW_CHARS],
                http_status=status,
            )

        try:
            payload = json.loads(raw_text)
        except ValueError:
            return Envelope.failure(
                "Failed to parse server response",
                ErrorCode.JSON_PARSE_ERROR,
                message=raw_text[:_PREVIEW_CHARS],
                http_status=status,
            )

        try:
            if not isinstance(payload, dict) or "success" not in payload:
                raise ValueError("missing success flag")
            envelope = Envelope.model_validate(payload)
        except (ValueError, ValidationError):
            return Envelope.failure(
                "Server returned an invalid response (expected envelope)",
                ErrorCode.INVALID_RESPONSE,
                message=raw_text[:_PREVIEW_CHARS],
                http_status=status,
            )
        envelope.http_status = status
        return envelope

    async def close(self) -> None:
        """Close the underlying client if this transport created it."""

        if self._client is not None and self._owns_client and not self._client.is_closed:
            await self._client.aclose()
        self._client = None
