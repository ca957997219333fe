"""
Shared HTTP plumbing for the POS backend REST API.
Non-2xx responses and transport errors are translated into engine errors; bodies are logged redacted.
"""
from __future__ import annotations

import logging
from typing import Any, Optional, TypeVar

import httpx
from pydantic import BaseModel, ValidationError

from pos_terminal.config import get_settings
from pos_terminal.core.errors import OrderEngineError

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)


def _json_body(resp: httpx.Response) -> Any:
    if not resp.content:
        return None
    if not resp.headers.get("content-type", "").startswith("application/json"):
        return None
    return resp.json()


def _error_message(resp: httpx.Response, body: Any) -> str:
    """Backend errors look like {"error": "..."}; fall back to the reason phrase."""
    if isinstance(body, dict):
        message = body.get("error") or body.get("message") or body.get("detail")
        if message:
            return str(message)
    return resp.text or resp.reason_phrase or f"HTTP {resp.status_code}"


class BackendClient:
    def __init__(self, base_url: Optional[str] = None, timeout: Optional[float] = None) -> None:
        settings = get_settings()
        self.base_url = (base_url or settings.backend_api_url).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.order_request_timeout

    async def _request(
        self,
        method: str,
        path: str,
        failure: type[OrderEngineError],
        json: Optional[dict[str, Any]] = None,
        allow_missing: bool = False,
    ) -> Any:
        """
        Send one request and return the decoded JSON body.
        With allow_missing, a 404 yields None instead of raising `failure`.
        """
        url = f"{self.base_url}{path}"
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                resp = await client.request(method, url, json=json)
        except httpx.HTTPError as e:
            logger.exception("backend_request_failed", extra={"error": str(e), "url": url})
            raise failure(f"{method} {path} failed: {e}") from e

        if allow_missing and resp.status_code == 404:
            return None
        body = _json_body(resp)
        if resp.status_code < 200 or resp.status_code >= 300:
            logger.warning(
                "backend_rejected",
                extra={"backend_response": {"status_code": resp.status_code, "body": body}, "url": url},
            )
            raise failure(_error_message(resp, body), resp.status_code)
        return body

    def _parse(self, model: type[M], body: Any, failure: type[OrderEngineError]) -> M:
        """Validate a backend payload; a shape we cannot read is reported as `failure`."""
        try:
            return model.model_validate(body)
        except ValidationError as e:
            logger.warning(
                "backend_payload_invalid",
                extra={
                    "backend_response": {
                        "model": model.__name__,
                        "invalid": [".".join(map(str, err["loc"])) for err in e.errors()],
                    }
                },
            )
            raise failure(f"Unreadable {model.__name__} from backend") from e
