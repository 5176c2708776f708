from ambiente.core.exceptions import (
    ConfigurationError,
    PersistenceError,
    RateLimitError,
    register_exception_handlers,
)
from fastapi import FastAPI, HTTPException
from fastapi.testclient import TestClient


def create_app() -> FastAPI:
    app = FastAPI()
    register_exception_handlers(app)

    @app.get("/boom")
    def _boom() -> None:
        raise RuntimeError("kaboom")

    @app.get("/config")
    def _config() -> None:
        raise ConfigurationError("missing setting", code="missing_setting")

    @app.get("/rate")
    def _rate() -> None:
        raise RateLimitError("too many requests")

    @app.get("/store")
    def _store() -> None:
        raise PersistenceError("could not store", details={"table": "recomendaciones"})

    @app.get("/http")
    def _http() -> None:
        raise HTTPException(status_code=404, detail="not found")

    @app.get("/needs-int")
    def _needs_int(x: int) -> dict[str, int]:
        return {"x": x}

    return app


def test_ambiente_exception_handler_shape_and_status():
    client = TestClient(create_app())
    resp = client.get("/config")
    assert resp.status_code == 500
    data = resp.json()
    assert data["error"] == "missing setting"
    assert data["code"] == "missing_setting"
    assert data["type"] == "ConfigurationError"
    assert "details" not in data


def test_rate_limit_error_maps_to_429():
    client = TestClient(create_app())
    resp = client.get("/rate")
    assert resp.status_code == 429
    data = resp.json()
    assert data["code"] == "rate_limited"
    assert data["type"] == "RateLimitError"


def test_persistence_error_carries_details():
    client = TestClient(create_app())
    resp = client.get("/store")
    assert resp.status_code == 500
    data = resp.json()
    assert data["code"] == "persistence_error"
    assert data["details"] == {"table": "recomendaciones"}


def test_http_exception_is_normalized():
    client = TestClient(create_app())
    resp = client.get("/http")
    assert resp.status_code == 404
    data = resp.json()
    assert data["error"] == "not found"
    assert data["code"] == "http_exception"
    assert data["type"] == "HTTPException"


def test_validation_errors_are_normalized():
    client = TestClient(create_app())
    resp = client.get("/needs-int")
    assert resp.status_code == 422
    data = resp.json()
    assert data["error"] == "Validation error"
    assert data["code"] == "validation_error"
    assert isinstance(data["details"], list)


def test_unhandled_exceptions_are_normalized_and_do_not_leak_message():
    client = TestClient(create_app(), raise_server_exceptions=False)
    resp = client.get("/boom")
    assert resp.status_code == 500
    data = resp.json()
    assert data["error"] == "Internal server error"
    assert data["code"] == "internal_error"
    assert "kaboom" not in resp.text
