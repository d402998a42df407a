"""Tests for the HTTP capture transport."""

import json

import httpx
import pytest
from neuroshell.debug import MASK, CaptureTransport, mask_headers
from neuroshell.llm import OpenAIClient
from neuroshell.models import ModelConfig

COMPLETION = {
    "id": "chatcmpl-1",
    "object": "chat.completion",
    "created": 0,
    "model": "gpt-4o",
    "choices": [
        {
            "index": 0,
            "message": {"role": "assistant", "content": "captured"},
            "finish_reason": "stop",
        }
    ],
}


def completion_handler(request: httpx.Request) -> httpx.Response:
    return httpx.Response(200, json=COMPLETION)


class TestMaskHeaders:
    """Test credential masking in captured headers."""

    def test_masks_sensitive(self):
        masked = mask_headers(
            {
                "Authorization": "Bearer sk-very-secret",
                "x-api-key": "ak-secret",
                "X-Goog-Api-Key": "g-secret",
                "x-session-token": "t",
                "Content-Type": "application/json",
            }
        )
        assert masked["Authorization"] == MASK
        assert masked["x-api-key"] == MASK
        assert masked["X-Goog-Api-Key"] == MASK
        assert masked["x-session-token"] == MASK
        assert masked["Content-Type"] == "application/json"


class TestCaptureTransport:
    """Test request/response capture."""

    def test_records_exchange(self):
        transport = CaptureTransport(httpx.MockTransport(completion_handler))
        with httpx.Client(transport=transport) as client:
            response = client.post(
                "https://api.example.com/v1/chat",
                json={"prompt": "hi"},
                headers={"Authorization": "Bearer secret"},
            )
        assert response.json() == COMPLETION
        capture = transport.last
        assert capture["http_request"]["method"] == "POST"
        assert capture["http_request"]["body"] == {"prompt": "hi"}
        assert capture["http_request"]["headers"]["authorization"] == MASK
        assert capture["http_response"]["status_code"] == 200
        assert capture["http_response"]["body"] == COMPLETION
        assert capture["timing"]["duration_ms"] >= 0
        assert "secret" not in transport.to_json()

    def test_records_transport_error(self):
        def fail(request):
            raise httpx.ConnectError("no route", request=request)

        transport = CaptureTransport(httpx.MockTransport(fail))
        with httpx.Client(transport=transport) as client:
            with pytest.raises(httpx.ConnectError):
                client.get("https://api.example.com/")
        assert transport.last["http_response"] == {"error": "no route"}

    def test_event_streams_not_buffered(self):
        def sse(request):
            return httpx.Response(
                200,
                headers={"content-type": "text/event-stream"},
                content=b"data: one\n\n",
            )

        transport = CaptureTransport(httpx.MockTransport(sse))
        with httpx.Client(transport=transport) as client:
            response = client.get("https://api.example.com/stream")
        assert response.text == "data: one\n\n"
        assert transport.last["http_response"]["body"] == "<streamed>"

    def test_routes_adapter_traffic(self, sample_session):
        transport = CaptureTransport(httpx.MockTransport(completion_handler))
        client = OpenAIClient("sk-live-key")
        client.set_debug_transport(transport)
        text = client.send_chat_completion(sample_session, ModelConfig(base_model="gpt-4o"))
        assert text == "captured"
        request = transport.last["http_request"]
        assert request["url"].endswith("/chat/completions")
        assert request["body"]["model"] == "gpt-4o"
        assert request["headers"]["authorization"] == MASK
        assert "sk-live-key" not in json.dumps(transport.captures)

    def test_http_client_reused_per_transport(self):
        first = CaptureTransport(httpx.MockTransport(completion_handler))
        client = OpenAIClient("sk-test")
        client.set_debug_transport(first)
        client._ensure_handle()
        http = client._http
        assert http is not None

        client.set_debug_transport(first)
        client._ensure_handle()
        assert client._http is http

        client.set_debug_transport(CaptureTransport(httpx.MockTransport(completion_handler)))
        assert http.is_closed
        client._ensure_handle()
        assert client._http is not http
