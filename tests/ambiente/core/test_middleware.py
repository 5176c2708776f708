import logging

from ambiente.core.middleware import register_middleware
from ambiente.core.settings import Settings
from fastapi import FastAPI
from fastapi.testclient import TestClient


def _app() -> FastAPI:
    app = FastAPI()
    register_middleware(app, Settings(_env_file=None).model_copy(update={"gzip_minimum_size": 500}))

    @app.get("/big")
    def big() -> dict[str, str]:
        return {"data": "x" * 5000}

    @app.get("/small")
    def small() -> dict[str, bool]:
        return {"ok": True}

    return app


def test_large_responses_are_gzip_compressed():
    client = TestClient(_app())

    big = client.get("/big", headers={"Accept-Encoding": "gzip"})
    small = client.get("/small", headers={"Accept-Encoding": "gzip"})

    assert big.headers["content-encoding"] == "gzip"
    assert big.json()["data"] == "x" * 5000
    assert "content-encoding" not in small.headers


def test_each_request_is_logged(caplog):
    client = TestClient(_app())

    with caplog.at_level(logging.INFO, logger="ambiente.access"):
        client.get("/small")
        client.get("/missing")

    messages = [r.getMessage() for r in caplog.records if r.name == "ambiente.access"]
    assert messages[0].startswith("GET /small -> 200")
    assert messages[1].startswith("GET /missing -> 404")


def test_cors_headers_follow_settings():
    client = TestClient(_app())

    response = client.get("/small", headers={"Origin": "http://example.org"})

    assert response.headers["access-control-allow-origin"] in {"*", "http://example.org"}
