from __future__ import annotations

from contextlib import contextmanager

import httpx
from fastapi.testclient import TestClient
from starlette.requests import Request

from pubrelay import main as M
from pubrelay.main import app


def _ok(request: httpx.Request) -> httpx.Response:
    return httpx.Response(200)


@contextmanager
def _client(monkeypatch, handler=_ok):
    monkeypatch.setattr(
        M,
        "make_client",
        lambda timeout: httpx.AsyncClient(transport=httpx.MockTransport(handler)),
    )
    with TestClient(app) as client:
        yield client


def test_subscribe_then_list(monkeypatch):
    with _client(monkeypatch) as client:
        response = client.post("/subscribe", json={"url": "http://a"})
        assert response.status_code == 200
        listed = client.get("/subscriber")
    assert listed.status_code == 200
    assert listed.json() == ["http://a"]


def test_empty_list_is_an_array(monkeypatch):
    with _client(monkeypatch) as client:
        assert client.get("/subscriber").json() == []


def test_duplicate_subscribe_is_forbidden(monkeypatch):
    with _client(monkeypatch) as client:
        assert client.post("/subscribe", json={"url": "http://a"}).status_code == 200
        second = client.post("/subscribe", json={"url": "http://a"})
        assert second.status_code == 403
        assert second.json() == {"error": "URL is already registered"}
        assert client.get("/subscriber").json() == ["http://a"]


def test_list_is_sorted(monkeypatch):
    with _client(monkeypatch) as client:
        assert client.post("/subscribe", json={"url": "http://b"}).status_code == 200
        assert client.post("/subscribe", json={"url": "http://a"}).status_code == 200
        assert client.get("/subscriber").json() == ["http://a", "http://b"]


def test_unsubscribe_missing(monkeypatch):
    with _client(monkeypatch) as client:
        response = client.post("/unsubscribe", json={"url": "http://missing"})
    assert response.status_code == 404
    assert response.json() == {"error": "URL is not registered"}


def test_unsubscribe_removes(monkeypatch):
    with _client(monkeypatch) as client:
        client.post("/subscribe", json={"url": "http://a"})
        client.post("/subscribe", json={"url": "http://c"})
        assert client.post("/unsubscribe", json={"url": "http://b"}).status_code == 404
        assert client.post("/unsubscribe", json={"url": "http://a"}).status_code == 200
        assert client.get("/subscriber").json() == ["http://c"]


def test_subscribe_rejects_invalid_urls(monkeypatch):
    with _client(monkeypatch) as client:
        for bad in ["", "not-a-url", "/relative/path", "http://", "example.com", "ftp://host"]:
            response = client.post("/subscribe", json={"url": bad})
            assert response.status_code == 400, bad
            assert response.json() == {"error": "URL is not valid"}
        assert client.get("/subscriber").json() == []


def test_malformed_bodies_are_bad_requests(monkeypatch):
    with _client(monkeypatch) as client:
        for path in ("/subscribe", "/unsubscribe"):
            broken = client.post(path, content=b"{not json")
            assert broken.status_code == 400
            assert broken.json() == {"error": "Request body is not valid JSON"}
            missing = client.post(path, json={"topic": "x"})
            assert missing.status_code == 400
            assert missing.json() == {"error": "Field 'url' must be a string"}
            wrong_type = client.post(path, json={"url": 5})
            assert wrong_type.status_code == 400


def test_publish_reports_failed_subscribers(monkeypatch):
    received: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.host == "down":
            raise httpx.ConnectError("connection refused", request=request)
        received.append(request)
        return httpx.Response(200)

    with _client(monkeypatch, handler) as client:
        client.post("/subscribe", json={"url": "http://up"})
        client.post("/subscribe", json={"url": "http://down"})
        response = client.post(
            "/publish", content=b'{"x":1}', headers={"Content-Type": "application/json"}
        )

    assert response.status_code == 409
    assert response.json() == {"error": "Cannot publish to URLs", "url": ["http://down"]}
    assert len(received) == 1
    assert str(received[0].url) == "http://up"
    assert received[0].content == b'{"x":1}'
    assert received[0].headers["content-type"] == "application/json"


def test_publish_forwards_any_bytes(monkeypatch):
    received: list[bytes] = []

    def handler(request: httpx.Request) -> httpx.Response:
        received.append(request.content)
        return httpx.Response(500)

    with _client(monkeypatch, handler) as client:
        client.post("/subscribe", json={"url": "http://a"})
        response = client.post("/publish", content=b"not json at all")
    assert response.status_code == 200
    assert response.content == b""
    assert received == [b"not json at all"]


def test_publish_with_no_subscribers(monkeypatch):
    with _client(monkeypatch) as client:
        assert client.post("/publish", content=b"{}").status_code == 200


def test_body_read_failure_is_server_error(monkeypatch):
    async def _broken(self):
        raise OSError("connection reset")

    with _client(monkeypatch) as client:
        monkeypatch.setattr(Request, "body", _broken)
        for path in ("/subscribe", "/unsubscribe", "/publish"):
            response = client.post(path, content=b"{}")
            assert response.status_code == 500
            assert response.json() == {"error": "connection reset"}


def test_wrong_method(monkeypatch):
    with _client(monkeypatch) as client:
        assert client.get("/publish").status_code == 405
        assert client.post("/subscriber").status_code == 405


def test_registry_is_fresh_per_app_start(monkeypatch):
    with _client(monkeypatch) as client:
        client.post("/subscribe", json={"url": "http://a"})
    with _client(monkeypatch) as client:
        assert client.get("/subscriber").json() == []


def test_unencodable_host_is_rejected(monkeypatch):
    with _client(monkeypatch) as client:
        response = client.post("/subscribe", json={"url": "http://xn--/"})
        assert response.status_code == 400
        assert response.json() == {"error": "URL is not valid"}
        assert client.get("/subscriber").json() == []


def test_host_encoding_error_during_publish_is_a_conflict(monkeypatch):
    received: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.host == "idna":
            raise UnicodeError("encoding with 'idna' codec failed")
        received.append(str(request.url))
        return httpx.Response(200)

    with _client(monkeypatch, handler) as client:
        client.post("/subscribe", json={"url": "http://ok"})
        client.post("/subscribe", json={"url": "http://idna"})
        response = client.post("/publish", content=b'{"x":1}')

    assert response.status_code == 409
    assert response.json() == {"error": "Cannot publish to URLs", "url": ["http://idna"]}
    assert received == ["http://ok"]


def test_trailing_slash_is_not_redirected(monkeypatch):
    with _client(monkeypatch) as client:
        response = client.post(
            "/subscribe/", json={"url": "http://a"}, follow_redirects=False
        )
        assert response.status_code == 404
        assert client.get("/subscriber").json() == []
