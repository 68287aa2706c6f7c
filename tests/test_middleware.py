"""
Tests for JSON body parsing middleware.

Each test registers a temporary route, since the service itself has none.
"""
import pytest
from fastapi import Depends
from fastapi.testclient import TestClient

from src.api.config import Settings
from src.api.main import create_app
from src.api.middleware import get_json_body, is_json_request


def build_client(settings: Settings = None) -> TestClient:
    app = create_app(settings or Settings())

    @app.post("/echo")
    def echo(body=Depends(get_json_body)):
        return {"received": body}

    @app.post("/typed")
    def typed(payload: dict):
        return {"payload": payload}

    return TestClient(app)


@pytest.fixture
def client():
    return build_client()


@pytest.mark.unit
class TestJsonBodyParsing:
    """Tests for JSONBodyMiddleware."""

    def test_json_body_reaches_handler(self, client):
        response = client.post("/echo", json={"job": "resize", "attempts": 3})

        assert response.status_code == 200
        assert response.json() == {"received": {"job": "resize", "attempts": 3}}

    def test_body_is_replayed_for_framework_parsing(self, client):
        """FastAPI body parameters still see the original bytes."""
        response = client.post("/typed", json={"job": "resize"})

        assert response.status_code == 200
        assert response.json() == {"payload": {"job": "resize"}}

    def test_content_type_with_charset(self, client):
        response = client.post(
            "/echo",
            content=b'{"ok": true}',
            headers={"Content-Type": "application/json; charset=utf-8"},
        )

        assert response.json() == {"received": {"ok": True}}

    def test_empty_json_body_is_empty_object(self, client):
        response = client.post("/echo", headers={"Content-Type": "application/json"})

        assert response.status_code == 200
        assert response.json() == {"received": {}}

    def test_non_json_request_is_untouched(self, client):
        response = client.post(
            "/echo",
            content=b"plain text",
            headers={"Content-Type": "text/plain"},
        )

        assert response.status_code == 200
        assert response.json() == {"received": None}

    def test_malformed_json_is_rejected(self, client):
        response = client.post(
            "/echo",
            content=b'{"job": ',
            headers={"Content-Type": "application/json"},
        )

        assert response.status_code == 400
        assert response.json() == {"detail": "Invalid JSON body"}

    @pytest.mark.parametrize("body", [b'"hello"', b"42", b"true", b"null"])
    def test_top_level_scalar_is_rejected(self, client, body):
        response = client.post(
            "/echo",
            content=body,
            headers={"Content-Type": "application/json"},
        )

        assert response.status_code == 400
        assert response.json() == {"detail": "Invalid JSON body"}

    def test_top_level_array_is_accepted(self, client):
        response = client.post("/echo", json=[1, 2, 3])

        assert response.status_code == 200
        assert response.json() == {"received": [1, 2, 3]}

    def test_invalid_utf8_is_rejected(self, client):
        response = client.post(
            "/echo",
            content=b"\xff\xfe\xfa",
            headers={"Content-Type": "application/json"},
        )

        assert response.status_code == 400

    def test_body_over_limit_is_rejected(self):
        client = build_client(Settings(json_body_limit=16))

        response = client.post("/echo", json={"payload": "x" * 64})

        assert response.status_code == 413
        assert response.json() == {"detail": "Request body too large"}

    def test_body_at_limit_is_accepted(self):
        body = b'{"a": "bcdefgh"}'
        client = build_client(Settings(json_body_limit=len(body)))

        response = client.post("/echo", content=body, headers={"Content-Type": "application/json"})

        assert response.status_code == 200


@pytest.mark.unit
class TestIsJsonRequest:
    """Tests for is_json_request."""

    def make_scope(self, content_type):
        headers = [] if content_type is None else [(b"content-type", content_type.encode())]
        return {"type": "http", "headers": headers}

    @pytest.mark.parametrize("content_type", [
        "application/json",
        "Application/JSON",
        "application/json; charset=utf-8",
    ])
    def test_json_content_types(self, content_type):
        assert is_json_request(self.make_scope(content_type))

    @pytest.mark.parametrize("content_type", [
        None,
        "text/plain",
        "application/x-www-form-urlencoded",
        "multipart/form-data; boundary=abc",
    ])
    def test_other_content_types(self, content_type):
        assert not is_json_request(self.make_scope(content_type))
