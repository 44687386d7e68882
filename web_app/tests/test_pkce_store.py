"""Tests for the cookie-backed PKCE secret store."""
import logging
import time

from fastapi import FastAPI, Request, Response
from fastapi.testclient import TestClient

from identity_client.pkce import code_challenge_s256
from web_app.pkce import PkceSecretStore


def make_client(store: PkceSecretStore) -> TestClient:
    app = FastAPI()

    @app.post("/create")
    def create(response: Response):
        pkce = store.create(response)
        return {"state": pkce.state, "code_challenge": pkce.code_challenge}

    @app.get("/read/{state}")
    def read(state: str, request: Request):
        return {"verifier": store.read(request, state)}

    @app.post("/delete/{state}")
    def delete(state: str, response: Response):
        store.delete(response, state)
        return {}

    return TestClient(app)


def test_create_then_read_returns_same_verifier():
    client = make_client(PkceSecretStore(secure=False))
    created = client.post("/create").json()
    state = created["state"]
    verifier = client.cookies.get(f"pkce_{state}")

    assert len(state) == 64
    assert len(verifier) == 128
    assert created["code_challenge"] == code_challenge_s256(verifier)
    assert client.get(f"/read/{state}").json() == {"verifier": verifier}


def test_cookie_attributes():
    client = make_client(PkceSecretStore(secure=False, ttl=900))
    r = client.post("/create")
    header = r.headers["set-cookie"].lower()
    assert "httponly" in header
    assert "max-age=900" in header
    assert "path=/" in header
    assert "samesite=lax" in header
    assert "secure" not in header


def test_secure_flag_in_production():
    client = make_client(PkceSecretStore(secure=True))
    r = client.post("/create")
    assert "secure" in r.headers["set-cookie"].lower()


def test_parallel_sessions_are_independent():
    client = make_client(PkceSecretStore(secure=False))
    first = client.post("/create").json()["state"]
    second = client.post("/create").json()["state"]
    assert first != second
    v1 = client.get(f"/read/{first}").json()["verifier"]
    v2 = client.get(f"/read/{second}").json()["verifier"]
    assert v1 and v2 and v1 != v2

    client.post(f"/delete/{first}")
    assert client.get(f"/read/{first}").json()["verifier"] is None
    assert client.get(f"/read/{second}").json()["verifier"] == v2


def test_expired_cookie_reads_as_absent():
    client = make_client(PkceSecretStore(secure=False))
    state = client.post("/create").json()["state"]
    for cookie in client.cookies.jar:
        cookie.expires = int(time.time()) - 1
    assert client.get(f"/read/{state}").json()["verifier"] is None


def test_malformed_or_unknown_state_reads_as_absent():
    client = make_client(PkceSecretStore(secure=False))
    client.post("/create")
    assert client.get("/read/not-a-state").json()["verifier"] is None
    assert client.get(f"/read/{'AB' * 32}").json()["verifier"] is None
    assert client.get(f"/read/{'ab' * 32}").json()["verifier"] is None


def test_verifier_never_logged(caplog):
    caplog.set_level(logging.DEBUG)
    client = make_client(PkceSecretStore(secure=False))
    state = client.post("/create").json()["state"]
    verifier = client.cookies.get(f"pkce_{state}")
    client.get(f"/read/{state}")
    client.post(f"/delete/{state}")
    store_records = [r.getMessage() for r in caplog.records if r.name == "web_app.pkce"]
    assert store_records
    assert all(verifier not in m and state not in m for m in store_records)
    assert verifier not in caplog.text
