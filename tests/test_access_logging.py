import json
import logging

from fastapi import FastAPI, Request
from starlette.testclient import TestClient

from leadpilot.app_logging import _install_access_logging, mask_phone


def _create_app() -> FastAPI:
    app = FastAPI()

    @app.post("/echo")
    async def echo(request: Request):
        return {"rid": request.state.request_id}

    @app.get("/api/health")
    async def health():  # pragma: no cover - simple
        return {"status": "ok"}

    _install_access_logging(app)
    return app


def test_access_logging_request_id_and_scrubbing(caplog, monkeypatch):
    monkeypatch.setenv("LOG_REQUEST_BODIES", "true")
    app = _create_app()

    with (
        TestClient(app) as client,
        caplog.at_level(logging.INFO, logger="uvicorn.access"),
    ):
        resp = client.post(
            "/echo",
            json={
                "token": "secret",
                "data": {"messages": [{"key": {"remoteJid": "5511988888888@s.whatsapp.net"}}]},
                "phone": "+55 11 98888-8888",
            },
            headers={"X-Request-Id": "abc", "Authorization": "Bearer secret"},
        )

        assert resp.status_code == 200
        assert resp.headers["X-Request-Id"] == "abc"
        assert resp.json() == {"rid": "abc"}

        record = caplog.records[0]
        data = json.loads(record.getMessage())
        assert data["request_id"] == "abc"
        assert data["headers"]["authorization"] == "***"
        assert data["body"]["token"] == "***"
        assert data["body"]["phone"] == "+** ** *****-8888"
        jid = data["body"]["data"]["messages"][0]["key"]["remoteJid"]
        assert jid == "*********8888@s.whatsapp.net"

        caplog.clear()
        client.get("/api/health")
        assert len(caplog.records) == 0


def test_access_logging_generates_request_id(caplog):
    app = _create_app()

    with (
        TestClient(app) as client,
        caplog.at_level(logging.INFO, logger="uvicorn.access"),
    ):
        resp = client.post("/echo", json={})

    rid = resp.headers["X-Request-Id"]
    assert len(rid) == 32
    data = json.loads(caplog.records[0].getMessage())
    assert data["request_id"] == rid
    assert "body" not in data


def test_mask_phone_keeps_last_four_digits():
    assert mask_phone("5511988888888") == "*********8888"
    assert mask_phone("1234") == "1234"
    assert mask_phone("") == ""
