"""Tests for the identity authority client: magic link request, PKCE exchange, refresh, sign out."""
import json
import time

import httpx
import jwt
import pytest

from identity_client.client import EVENT_SIGNED_IN, EVENT_SIGNED_OUT, EVENT_TOKEN_REFRESHED, IdentityClient
from identity_client.errors import AuthApiError, AuthPkceVerifierMissingError, AuthRetryableError
from identity_client.pkce import code_challenge_s256
from identity_client.session_store import MemoryStorage

SIGNING_SECRET = "test-signing-secret-at-least-32-bytes-long"


def make_access_token(sub: str = "user-1", email: str = "ada@example.com") -> str:
    return jwt.encode(
        {"sub": sub, "email": email, "exp": int(time.time()) + 3600},
        SIGNING_SECRET,
        algorithm="HS256",
    )


def token_body(access_token: str | None = None, refresh_token: str = "rt-1") -> dict:
    return {
        "access_token": access_token or make_access_token(),
        "token_type": "bearer",
        "expires_in": 3600,
        "refresh_token": refresh_token,
    }


class Recorder:
    """MockTransport handler that answers from a route table and records requests."""

    def __init__(self, routes: dict[str, httpx.Response]) -> None:
        self.routes = routes
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        key = request.url.path.rsplit("/", 1)[-1]
        if key == "token":
            key = f"token:{request.url.params.get('grant_type')}"
        return self.routes[key]


def make_client(recorder: Recorder, storage: MemoryStorage | None = None) -> IdentityClient:
    return IdentityClient(
        "https://auth.example",
        "anon-key",
        storage=storage,
        storage_key="test-auth",
        transport=httpx.MockTransport(recorder),
    )


@pytest.mark.asyncio
async def test_exchange_without_verifier_fails_before_any_request():
    recorder = Recorder({})
    client = make_client(recorder)
    with pytest.raises(AuthPkceVerifierMissingError):
        await client.exchange_code_for_session("abc123")
    assert recorder.requests == []
    assert client.current_session is None


@pytest.mark.asyncio
async def test_sign_in_then_exchange_uses_stored_verifier():
    storage = MemoryStorage()
    recorder = Recorder(
        {
            "otp": httpx.Response(200, json={}),
            "token:pkce": httpx.Response(200, json=token_body()),
        }
    )
    client = make_client(recorder, storage)
    events = []
    client.on_auth_state_change(lambda event, session: events.append((event, session)))

    await client.sign_in_with_otp("ada@example.com", redirect_to="bandroadie://login-callback/")
    otp_request = recorder.requests[0]
    assert otp_request.url.params["redirect_to"] == "bandroadie://login-callback/"
    assert otp_request.headers["apikey"] == "anon-key"
    otp_body = json.loads(otp_request.content)
    verifier = storage.get_item("test-auth-code-verifier")
    assert verifier
    assert otp_body["code_challenge"] == code_challenge_s256(verifier)
    assert otp_body["code_challenge_method"] == "s256"

    session = await client.exchange_code_for_session("abc123")
    token_request = recorder.requests[1]
    assert json.loads(token_request.content) == {"auth_code": "abc123", "code_verifier": verifier}
    assert session.user_id == "user-1"
    assert session.email == "ada@example.com"
    assert session.expires_at is not None
    assert storage.get_item("test-auth-code-verifier") is None
    assert client.current_session.access_token == session.access_token
    assert [e for e, _ in events] == [EVENT_SIGNED_IN]


@pytest.mark.asyncio
async def test_explicit_challenge_is_sent_and_nothing_stored():
    storage = MemoryStorage()
    recorder = Recorder({"otp": httpx.Response(200, json={})})
    client = make_client(recorder, storage)
    await client.sign_in_with_otp("ada@example.com", redirect_to="https://app/cb", code_challenge="challenge-x")
    assert json.loads(recorder.requests[0].content)["code_challenge"] == "challenge-x"
    assert storage.get_item("test-auth-code-verifier") is None


@pytest.mark.asyncio
async def test_rejected_exchange_raises_api_error_and_keeps_verifier():
    storage = MemoryStorage()
    storage.set_item("test-auth-code-verifier", "v" * 43)
    recorder = Recorder(
        {
            "token:pkce": httpx.Response(
                400, json={"error_code": "flow_state_not_found", "msg": "invalid flow state, no valid flow state found"}
            )
        }
    )
    client = make_client(recorder, storage)
    with pytest.raises(AuthApiError) as exc_info:
        await client.exchange_code_for_session("abc123")
    assert exc_info.value.status == 400
    assert exc_info.value.code == "flow_state_not_found"
    assert storage.get_item("test-auth-code-verifier") == "v" * 43


@pytest.mark.asyncio
async def test_server_error_is_retryable():
    recorder = Recorder({"token:refresh_token": httpx.Response(503, text="unavailable")})
    client = make_client(recorder)
    with pytest.raises(AuthRetryableError) as exc_info:
        await client.set_session("rt-1")
    assert exc_info.value.status == 503


@pytest.mark.asyncio
async def test_transport_failure_is_retryable():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    client = IdentityClient("https://auth.example", "anon-key", transport=httpx.MockTransport(handler))
    with pytest.raises(AuthRetryableError):
        await client.set_session("rt-1")


@pytest.mark.asyncio
async def test_set_session_uses_refresh_grant():
    recorder = Recorder({"token:refresh_token": httpx.Response(200, json=token_body(refresh_token="rt-2"))})
    client = make_client(recorder)
    events = []
    client.on_auth_state_change(lambda event, session: events.append(event))
    session = await client.set_session("rt-1")
    assert json.loads(recorder.requests[0].content) == {"refresh_token": "rt-1"}
    assert session.refresh_token == "rt-2"
    assert events == [EVENT_TOKEN_REFRESHED]


@pytest.mark.asyncio
async def test_token_response_without_tokens_is_rejected():
    recorder = Recorder({"token:refresh_token": httpx.Response(200, json={"access_token": "only-one"})})
    client = make_client(recorder)
    with pytest.raises(AuthApiError):
        await client.set_session("rt-1")
    assert client.current_session is None


@pytest.mark.asyncio
async def test_sign_out_clears_session_and_verifier_even_when_remote_fails():
    storage = MemoryStorage()
    recorder = Recorder(
        {
            "token:refresh_token": httpx.Response(200, json=token_body()),
            "logout": httpx.Response(500, json={"msg": "boom"}),
        }
    )
    client = make_client(recorder, storage)
    await client.set_session("rt-1")
    storage.set_item("test-auth-code-verifier", "pending")
    events = []
    client.on_auth_state_change(lambda event, session: events.append(event))

    await client.sign_out()

    assert client.current_session is None
    assert storage.get_item("test-auth-code-verifier") is None
    assert events == [EVENT_SIGNED_OUT]
    assert recorder.requests[-1].headers["authorization"].startswith("Bearer ")


def test_session_repr_hides_tokens():
    from identity_client.session_store import Session

    s = Session(access_token="secret-at", refresh_token="secret-rt", user_id="u1")
    assert "secret-at" not in repr(s)
    assert "secret-rt" not in repr(s)


def test_unsubscribe_stops_events():
    client = IdentityClient("https://auth.example", "anon-key")
    events = []
    unsubscribe = client.on_auth_state_change(lambda event, session: events.append(event))
    unsubscribe()
    client._notify_all(EVENT_SIGNED_OUT, None)
    assert events == []


def test_invalid_flow_type_rejected():
    with pytest.raises(ValueError):
        IdentityClient("https://auth.example", "anon-key", flow_type="magic")


@pytest.mark.asyncio
async def test_verify_otp_posts_token_hash_and_signs_in():
    recorder = Recorder({"verify": httpx.Response(200, json=token_body())})
    client = make_client(recorder)
    events = []
    client.on_auth_state_change(lambda event, session: events.append(event))

    session = await client.verify_otp("pkce_abc123", type="magiclink")

    assert json.loads(recorder.requests[0].content) == {"token_hash": "pkce_abc123", "type": "magiclink"}
    assert session.user_id == "user-1"
    assert client.current_session is not None
    assert events == [EVENT_SIGNED_IN]


@pytest.mark.asyncio
async def test_verify_otp_rejected_token_raises_api_error():
    recorder = Recorder(
        {"verify": httpx.Response(403, json={"error_code": "otp_expired", "msg": "Email link is invalid or has expired"})}
    )
    client = make_client(recorder)
    with pytest.raises(AuthApiError) as exc_info:
        await client.verify_otp("hash-1")
    assert exc_info.value.code == "otp_expired"
    assert client.current_session is None


@pytest.mark.asyncio
async def test_verify_otp_rejects_unknown_type():
    recorder = Recorder({})
    client = make_client(recorder)
    with pytest.raises(ValueError):
        await client.verify_otp("hash-1", type="sms")
    assert recorder.requests == []
