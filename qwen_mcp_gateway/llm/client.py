"""Qwen Cloud (DashScope) text-generation client used by the MCP gateway.

Sends a whole conversation history in one request and returns the reply text
found at ``output.choices[0].message.content``.

Notes
-----
- One request per call. No retries: a failed call is final for that request.
- Failures are reported as one of three ``UpstreamError`` subclasses so callers
  can tell "provider said no" from "provider unreachable" from a local fault.
- The API key travels per call (callers may override the process default), so
  it is set on each request rather than on the session headers.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Mapping, Optional, Sequence

import requests

from ..core.config import DEFAULT_ENDPOINT, DEFAULT_TIMEOUT_SECONDS
from ..core.exceptions import (
    ProviderRejectedError,
    UpstreamError,
    UpstreamLocalError,
    UpstreamUnreachableError,
)
from ..core.logging_config import PerformanceLogger, get_logger

__all__ = ["QwenClient", "extract_reply_text"]

# Module-level logger to avoid recreating per instance
_LOGGER: logging.Logger = get_logger("qwen.client")

Message = Mapping[str, str]


def extract_reply_text(payload: Any) -> str:
    """Return ``output.choices[0].message.content`` from a provider reply.

    Raises
    ------
    UpstreamLocalError
        If the payload does not have that shape.
    """
    try:
        content = payload["output"]["choices"][0]["message"]["content"]
    except (KeyError, IndexError, TypeError) as exc:
        raise UpstreamLocalError(
            f"Unexpected response payload from Qwen Cloud: missing {exc!s}", cause=exc
        ) from exc
    if not isinstance(content, str):
        raise UpstreamLocalError("Unexpected response payload from Qwen Cloud: content is not text")
    return content


class QwenClient:
    """HTTP client for the Qwen Cloud generation endpoint.

    Parameters
    ----------
    endpoint:
        Absolute URL of the text-generation endpoint.
    timeout:
        Transport timeout in seconds for one call.
    session:
        Optional ``requests.Session`` (tests may pass a stub).
    """

    def __init__(
        self,
        endpoint: str = DEFAULT_ENDPOINT,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.endpoint: str = endpoint
        self.timeout: float = timeout
        self._session: requests.Session = session or requests.Session()
        self._session.headers.update({"Content-Type": "application/json"})
        self._logger: logging.Logger = _LOGGER

    def _auth_headers(self, api_key: str) -> Dict[str, str]:
        return {"Authorization": f"Bearer {api_key}"}

    @staticmethod
    def build_payload(model: str, messages: Sequence[Message]) -> Dict[str, Any]:
        """Request body in the provider's schema."""
        return {
            "model": model,
            "input": {
                "messages": [{"role": m["role"], "content": m["content"]} for m in messages],
            },
        }

    def generate(self, model: str, messages: Sequence[Message], api_key: str) -> str:
        """Send the conversation and return the assistant reply text.

        Raises
        ------
        ProviderRejectedError
            The provider answered with a non-2xx status.
        UpstreamUnreachableError
            Connection failure or timeout; no response was received.
        UpstreamLocalError
            The request could not be built or sent, or the reply was unreadable.
        """
        context = {"model": model, "message_count": len(messages)}
        try:
            with PerformanceLogger(self._logger, "qwen_generate", **context):
                payload = self.build_payload(model, messages)
                resp = self._post(payload, api_key)
                return self._read_reply(resp)
        except UpstreamError:
            raise
        except Exception as exc:
            raise UpstreamLocalError(str(exc), cause=exc) from exc

    # --- Internal request helpers -----------------------------------------
    def _post(self, payload: Dict[str, Any], api_key: str) -> requests.Response:
        try:
            resp = self._session.post(
                self.endpoint,
                json=payload,
                headers=self._auth_headers(api_key),
                timeout=self.timeout,
            )
        except (requests.ConnectionError, requests.Timeout) as exc:
            raise UpstreamUnreachableError(cause=exc) from exc
        except requests.RequestException as exc:
            raise UpstreamLocalError(str(exc), cause=exc) from exc

        status = resp.status_code
        if not (200 <= status < 300):
            body = self._error_body(resp)
            self._logger.debug(
                "Qwen Cloud returned an error response",
                extra={"url": self.endpoint, "status_code": status},
            )
            raise ProviderRejectedError(status_code=status, body=body)

        return resp

    def _read_reply(self, resp: requests.Response) -> str:
        try:
            data = resp.json()
        except ValueError as exc:
            raise UpstreamLocalError(f"Invalid JSON in Qwen Cloud response: {exc}", cause=exc) from exc
        return extract_reply_text(data)

    @staticmethod
    def _error_body(resp: requests.Response) -> Any:
        """Decoded JSON error body when possible, raw text otherwise."""
        try:
            return resp.json()
        except ValueError:
            return resp.text

    def close(self) -> None:
        self._session.close()
