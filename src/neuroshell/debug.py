"""HTTP transport that records request/response exchanges for inspection."""

import json
import logging
import time
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import httpx

logger = logging.getLogger(__name__)

MASK = "***[MASKED]***"
_SENSITIVE_HEADER_MARKERS = ("authorization", "api-key", "token")


def mask_headers(headers) -> Dict[str, str]:
    """Returns a copy of ``headers`` with credential-bearing values masked."""
    masked = {}
    for key, value in headers.items():
        if any(marker in key.lower() for marker in _SENSITIVE_HEADER_MARKERS):
            masked[key] = MASK
        else:
            masked[key] = value
    return masked


def _decode_body(raw: bytes) -> Any:
    if not raw:
        return ""
    text = raw.decode("utf-8", errors="replace")
    try:
        return json.loads(text)
    except ValueError:
        return text


class CaptureTransport(httpx.BaseTransport):
    """Wraps another httpx transport and keeps a log of every exchange.

    Each capture is a dict with ``http_request``, ``http_response`` (or an
    ``error``) and ``timing`` entries. Server-sent event bodies are not
    buffered, so streaming keeps working through the transport.
    """

    def __init__(self, transport: Optional[httpx.BaseTransport] = None):
        self._transport = transport or httpx.HTTPTransport()
        self.captures: List[Dict[str, Any]] = []

    def handle_request(self, request: httpx.Request) -> httpx.Response:
        started = time.monotonic()
        capture: Dict[str, Any] = {
            "http_request": {
                "method": request.method,
                "url": str(request.url),
                "headers": mask_headers(request.headers),
                "body": _decode_body(request.read()),
            },
            "timing": {"request_time": datetime.now(timezone.utc).isoformat()},
        }
        self.captures.append(capture)

        try:
            response = self._transport.handle_request(request)
        except Exception as e:
            capture["http_response"] = {"error": str(e)}
            self._finish_timing(capture, started)
            raise

        response_record = {
            "status_code": response.status_code,
            "headers": mask_headers(response.headers),
        }
        content_type = response.headers.get("content-type", "")
        if "text/event-stream" in content_type:
            response_record["body"] = "<streamed>"
        else:
            body = response.read()
            response_record["body"] = _decode_body(body)
            # the body is already decoded, so drop the encoding headers
            headers = [
                (k, v)
                for k, v in response.headers.items()
                if k.lower() not in ("content-encoding", "content-length", "transfer-encoding")
            ]
            response = httpx.Response(
                status_code=response.status_code,
                headers=headers,
                content=body,
                request=request,
                extensions=response.extensions,
            )
        capture["http_response"] = response_record
        self._finish_timing(capture, started)
        logger.debug(
            f"{request.method} {request.url} -> {response.status_code} "
            f"({capture['timing']['duration_ms']} ms)"
        )
        return response

    @staticmethod
    def _finish_timing(capture: Dict[str, Any], started: float):
        capture["timing"]["response_time"] = datetime.now(timezone.utc).isoformat()
        capture["timing"]["duration_ms"] = int((time.monotonic() - started) * 1000)

    @property
    def last(self) -> Optional[Dict[str, Any]]:
        return self.captures[-1] if self.captures else None

    def to_json(self) -> str:
        return json.dumps(self.captures, indent=2, default=str)

    def clear(self):
        self.captures.clear()

    def close(self):
        self._transport.close()
