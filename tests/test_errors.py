from fastapi import FastAPI, HTTPException
from fastapi.testclient import TestClient
from pydantic import BaseModel

from storefront.errors import register_exception_handlers
from storefront.schemas import envelope


class Payload(BaseModel):
    quantity: int


def make_app() -> FastAPI:
    app = FastAPI()
    register_exception_handlers(app)

    @app.get("/boom")
    def boom():
        raise RuntimeError("database exploded")

    @app.get("/teapot")
    def teapot():
        raise HTTPException(status_code=418, detail="I'm a teapot")

    @app.post("/payload")
    def payload(body: Payload):
        return envelope(body.quantity)

    return app


def test_unhandled_error_is_500_envelope(caplog):
    client = TestClient(make_app(), raise_server_exceptions=False)
    response = client.get("/boom")
    assert response.status_code == 500
    assert response.json() == {"success": False, "error": "Internal server error"}
    assert "database exploded" in caplog.text


def test_http_exception_keeps_status():
    client = TestClient(make_app())
    response = client.get("/teapot")
    assert response.status_code == 418
    assert response.json() == {"success": False, "error": "I'm a teapot"}


def test_validation_error_is_400():
    client = TestClient(make_app())
    response = client.post("/payload", json={"quantity": "many"})
    assert response.status_code == 400
    body = response.json()
    assert body["success"] is False
    assert body["error"].startswith("quantity:")


def test_unknown_route_uses_envelope(client):
    response = client.get("/api/does-not-exist")
    assert response.status_code == 404
    assert response.json() == {"success": False, "error": "Not Found"}


def test_success_envelope(client):
    assert client.get("/").json()["success"] is True
    assert envelope([1], message="ok", page=1) == {"success": True, "data": [1], "message": "ok", "page": 1}
