"""HTTP adapter between the client and the enrollment service.

Transport owns exactly three concerns: attaching the session (cookie header and
term parameter) to a request, turning HTTP/network failures into the package's
error types, and decoding the service's JSON. It never interprets catalog data.
"""

import asyncio
import json
from typing import Any

import httpx
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_fixed,
)

from webreg.config import ClientConfig
from webreg.endpoints import Endpoint
from webreg.errors import (
    MalformedResponse,
    ServiceRejected,
    SessionInvalid,
    TransientError,
    TransportError,
)
from webreg.logging import get_logger
from webreg.models import ActionResult
from webreg.session import SessionHandle, SessionState
from webreg.utils import ensure_request_allowed, epoch_millis, strip_html

logger = get_logger(__name__)

Params = list[tuple[str, str]]

VERIFY_FAIL = '[{"VERIFY":"FAIL"}]'
_SESSION_STATUSES = frozenset({401, 403})
_BODY_PREVIEW = 200


def _looks_like_html(text: str) -> bool:
    head = text.lstrip()[:100].lower()
    return head.startswith("<!doctype html") or head.startswith("<html")


def decode_json(text: str) -> Any:
    """Decode a response body, unwrapping JSON that was encoded twice.

    Some endpoints answer with a JSON string whose content is itself JSON, e.g.
    ``"[{\\"SUBJ_CODE\\": \\"CSE\\"}]"``. A string that does not hold JSON is
    returned as-is.

    Raises:
        SessionInvalid: If the body is an HTML page (the login redirect target).
        MalformedResponse: If the body is not JSON at all.
    """
    try:
        payload = json.loads(text)
    except json.JSONDecodeError as e:
        if _looks_like_html(text):
            raise SessionInvalid("Service returned an HTML page instead of JSON") from e
        raise MalformedResponse(f"Response is not JSON: {text[:_BODY_PREVIEW]!r}") from e

    while isinstance(payload, str):
        inner = payload.strip()
        if not inner or inner[0] not in "[{\"":
            break
        try:
            payload = json.loads(inner)
        except json.JSONDecodeError:
            break
    return payload


def parse_action_result(payload: Any) -> ActionResult:
    """Interpret a mutating endpoint's ``{"OPS": ..., "REASON": ...}`` answer."""
    if not isinstance(payload, dict):
        raise MalformedResponse(
            f"Expected an OPS object, got {type(payload).__name__}"
        )
    if payload.get("OPS") == "SUCCESS":
        return ActionResult(success=True)
    reason = strip_html(str(payload.get("REASON") or ""))
    return ActionResult(success=False, message=reason or None)


def _log_retry(retry_state: RetryCallState) -> None:
    error = retry_state.outcome.exception() if retry_state.outcome else None
    logger.warning(
        "read_retry",
        attempt=retry_state.attempt_number,
        error=str(error),
    )


class Transport:
    """Sends requests on behalf of one session.

    The session is read through ``SessionHandle.snapshot()`` before a request
    is sent; nothing is locked while the request is in flight. Validity is only
    written back after the whole response has been read and decoded, so a
    cancelled request leaves the session as it was.
    """

    def __init__(
        self,
        session: SessionHandle,
        config: ClientConfig,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize Transport.

        Args:
            session: Session handle shared with the owning client.
            config: Client configuration.
            http_client: Optional pre-configured client. When omitted, one is
                created and closed together with this transport.
        """
        self._session = session
        self._config = config
        self._owns_client = http_client is None
        self._http = http_client or httpx.AsyncClient(
            timeout=config.request_timeout_seconds,
            follow_redirects=False,
        )
        self._base_url = config.base_url.rstrip("/")

    async def aclose(self) -> None:
        if self._owns_client:
            await self._http.aclose()

    # ------------------------------------------------------------------
    # Request plumbing
    # ------------------------------------------------------------------
    def _headers(self, state: SessionState) -> dict[str, str]:
        headers = {
            "Cookie": state.credential,
            "User-Agent": self._config.user_agent,
        }
        if self._config.close_after_request:
            headers["Connection"] = "close"
        return headers

    def url_for(self, endpoint: Endpoint) -> str:
        return f"{self._base_url}/{endpoint.value}"

    async def _throttle(self) -> int:
        number = self._session.next_request_number()
        every = self._config.throttle_every
        if every and number % every == 0:
            logger.debug(
                "request_throttled",
                request=number,
                delay_seconds=self._config.throttle_delay_seconds,
            )
            await asyncio.sleep(self._config.throttle_delay_seconds)
        return number

    def _invalidate(self, reason: str, endpoint: Endpoint) -> SessionInvalid:
        self._session.mark_valid(False)
        logger.warning("session_invalid", endpoint=endpoint.name, reason=reason)
        return SessionInvalid(
            f"Session rejected by {endpoint.name} ({reason}); export a fresh cookie"
        )

    async def _send(
        self,
        method: str,
        endpoint: Endpoint,
        *,
        params: Params | None = None,
        data: Params | None = None,
        with_term: bool = True,
    ) -> str:
        ensure_request_allowed(method, endpoint, read_only=self._config.read_only)

        number = await self._throttle()
        # Read after the courtesy pause so a refreshed cookie is picked up.
        state = self._session.snapshot()

        if method == "GET":
            params = list(params or [])
            keys = {key for key, _ in params}
            if with_term and "termcode" not in keys:
                params.append(("termcode", state.term))
            if "_" not in keys:
                params.append(("_", epoch_millis()))
        else:
            data = list(data or [])
            if with_term and "termcode" not in {key for key, _ in data}:
                data.append(("termcode", state.term))

        logger.debug(
            "request_sent", method=method, endpoint=endpoint.name, request=number
        )
        try:
            response = await self._http.request(
                method,
                self.url_for(endpoint),
                params=params,
                data=dict(data) if data is not None else None,
                headers=self._headers(state),
            )
        except httpx.HTTPError as e:
            logger.warning(
                "request_failed",
                method=method,
                endpoint=endpoint.name,
                error=type(e).__name__,
            )
            raise TransportError(f"{method} {endpoint.name} failed: {e}") from e

        text = response.text
        status = response.status_code
        if status in _SESSION_STATUSES:
            raise self._invalidate(f"HTTP {status}", endpoint)
        if response.is_redirect:
            raise self._invalidate("redirected to login", endpoint)
        if not response.is_success:
            logger.warning(
                "bad_status", method=method, endpoint=endpoint.name, status=status
            )
            raise TransportError(
                f"{method} {endpoint.name} returned HTTP {status}",
                status_code=status,
                body=text,
            )
        if _looks_like_html(text):
            raise self._invalidate("login page", endpoint)
        if VERIFY_FAIL in text.replace(" ", ""):
            raise ServiceRejected(
                f"Term {state.term} is not associated with this session; "
                "call associate_term() first"
            )
        return text

    def _mark_seen_valid(self) -> None:
        if self._session.snapshot().valid is not True:
            self._session.mark_valid(True)

    async def _get_text(
        self, endpoint: Endpoint, params: Params | None, with_term: bool
    ) -> str:
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self._config.read_attempts),
            wait=wait_fixed(self._config.read_retry_wait_seconds),
            retry=retry_if_exception_type(TransientError),
            before_sleep=_log_retry,
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                return await self._send(
                    "GET", endpoint, params=params, with_term=with_term
                )
        raise AssertionError("unreachable")  # reraise=True re-raises the last error

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    async def get_json(
        self,
        endpoint: Endpoint,
        params: Params | None = None,
        *,
        with_term: bool = True,
        mark_valid: bool = True,
    ) -> Any:
        """GET an endpoint and return its decoded JSON payload.

        Args:
            endpoint: Endpoint to read.
            params: Extra query parameters.
            with_term: Whether to add the active term.
            mark_valid: Whether a decoded answer marks the session valid.
                Callers that judge validity from the payload itself pass False
                and record the outcome once.

        Raises:
            TransportError: On network failure or an unexpected HTTP status.
            SessionInvalid: If the cookie was rejected.
            ServiceRejected: If the term is not associated with the session.
            MalformedResponse: If the body is not JSON.
        """
        payload = decode_json(await self._get_text(endpoint, params, with_term))
        if mark_valid:
            self._mark_seen_valid()
        return payload

    async def get_text(
        self, endpoint: Endpoint, params: Params | None = None, *, with_term: bool = True
    ) -> str:
        text = await self._get_text(endpoint, params, with_term)
        self._mark_seen_valid()
        return text.strip()

    async def post_form(self, endpoint: Endpoint, data: Params) -> ActionResult:
        """POST a form to a mutating (or dry-run) endpoint. Never retried."""
        text = await self._send("POST", endpoint, data=data)
        result = parse_action_result(decode_json(text))
        self._mark_seen_valid()
        logger.debug(
            "action_response",
            endpoint=endpoint.name,
            success=result.success,
            message=result.message,
        )
        return result

    async def post_text(self, endpoint: Endpoint, data: Params) -> str:
        text = await self._send("POST", endpoint, data=data)
        self._mark_seen_valid()
        return text
