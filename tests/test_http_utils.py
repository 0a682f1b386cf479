import asyncio
import io
import json
from urllib import error, request

import pytest

from tubedeck_tui import http_utils
from tubedeck_tui.errors import NetworkError, ProviderError
from tubedeck_tui.http_utils import HttpResponse, error_details, request_json


class FakeResponse(io.BytesIO):
    def __init__(self, status: int, body: bytes) -> None:
        super().__init__(body)
        self.status = status


def test_request_json_posts_form_data(monkeypatch):
    seen = {}

    def fake_urlopen(req: request.Request, timeout: float):
        seen["method"] = req.get_method()
        seen["body"] = req.data
        seen["timeout"] = timeout
        return FakeResponse(200, json.dumps({"device_code": "d"}).encode())

    monkeypatch.setattr(request, "urlopen", fake_urlopen)

    response = asyncio.run(request_json("https://example.com/token", data={"a": "1", "b": "x y"}, timeout=3))

    assert response.ok
    assert response.field("device_code") == "d"
    assert seen == {"method": "POST", "body": b"a=1&b=x+y", "timeout": 3}


def test_http_errors_are_returned_not_raised(monkeypatch):
    def fake_urlopen(req, timeout):
        raise error.HTTPError(
            req.full_url, 428, "Precondition Required", {}, io.BytesIO(b'{"error": "authorization_pending"}')
        )

    monkeypatch.setattr(request, "urlopen", fake_urlopen)

    response = asyncio.run(request_json("https://example.com/token", data={}))

    assert response.status == 428
    assert error_details(response) == ("authorization_pending", "authorization_pending")


def test_connection_failures_raise_network_error(monkeypatch):
    def fake_urlopen(req, timeout):
        raise error.URLError("Name or service not known")

    monkeypatch.setattr(request, "urlopen", fake_urlopen)

    with pytest.raises(NetworkError):
        asyncio.run(request_json("https://example.com/"))


def test_non_json_body_raises_provider_error(monkeypatch):
    monkeypatch.setattr(request, "urlopen", lambda req, timeout: FakeResponse(200, b"<html>captive portal</html>"))

    with pytest.raises(ProviderError):
        asyncio.run(request_json("https://example.com/"))


@pytest.mark.parametrize("body", [b"<html>503 Service Unavailable</html>", b'{"error": "backend_error"}'])
def test_server_errors_raise_network_error(monkeypatch, body):
    def fake_urlopen(req, timeout):
        raise error.HTTPError(req.full_url, 503, "Service Unavailable", {}, io.BytesIO(body))

    monkeypatch.setattr(request, "urlopen", fake_urlopen)

    with pytest.raises(NetworkError, match="HTTP 503"):
        asyncio.run(request_json("https://oauth2.googleapis.com/token", data={}))


def test_error_details_reads_google_api_errors():
    response = HttpResponse(
        status=404,
        payload={"error": {"code": 404, "message": "Playlist not found", "errors": [{"reason": "playlistNotFound"}]}},
    )

    assert error_details(response) == ("playlistNotFound", "Playlist not found")


def test_error_details_without_body():
    assert error_details(HttpResponse(status=500, payload={})) == (None, "HTTP 500")
    assert http_utils.USER_AGENT.startswith("tubedeck-tui/")
