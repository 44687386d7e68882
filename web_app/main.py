"""
Web app: browser completion of magic links.
POST /login emails a magic link bound to a PKCE state cookie; GET /auth/confirm
finishes the login in whichever tab the link opens; POST /api/auth/session lets a
client that signed in on its own push its session into server-readable cookies.
"""
import html
import logging
from contextlib import asynccontextmanager
from urllib.parse import urlencode

from fastapi import Depends, FastAPI, Form, Query, Request, Response
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse
from pydantic import BaseModel
from sqlalchemy.orm import Session

from identity_client.client import OTP_TYPES, IdentityClient
from identity_client.errors import AuthApiError, AuthError
from web_app.audit import (
    EVENT_CODE_EXCHANGED,
    EVENT_EXCHANGE_FAILED,
    EVENT_MAGIC_LINK_REQUESTED,
    EVENT_SESSION_SYNCED,
    EVENT_TOKEN_VERIFIED,
    OUTCOME_FAIL,
    get_client_ip,
    log_audit,
    router as audit_router,
)
from web_app.config import CONFIRM_PATH, SITE_URL
from web_app.database import get_db, init_db
from web_app.pkce import PkceSecretStore
from web_app.rate_limit import login_limiter
from web_app.session_cookies import has_session_cookies, sanitize_app_path, write_session_cookies

logger = logging.getLogger(__name__)

LINK_EXPIRED_MESSAGE = (
    "Login link expired or was opened in a different browser. Please request a new magic link."
)

# Authority rejections of a magic link, by cause; the kind is also the audit detail
REJECTION_EXPIRED = "expired_link"
REJECTION_BROWSER_MISMATCH = "browser_mismatch"
REJECTION_REUSED = "reused_link"
REJECTION_PAGES = {
    REJECTION_EXPIRED: ("Link expired", "This login link has expired. Please request a new magic link."),
    REJECTION_BROWSER_MISMATCH: (
        "Opened in a different browser",
        "For security, magic links must be opened in the same browser where you requested them. "
        "Please request a new link from this browser.",
    ),
    REJECTION_REUSED: ("Link already used", "This login link has already been used. Please request a new magic link."),
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create the audit table on startup."""
    init_db()
    yield


app = FastAPI(title="Magic Link Web", version="0.1.0", lifespan=lifespan)
app.include_router(audit_router)

pkce_store = PkceSecretStore()


async def get_identity_client():
    """Dependency: one identity client per request, so no user's session is shared."""
    client = IdentityClient(flow_type="pkce")
    try:
        yield client
    finally:
        await client.aclose()


def _page(title: str, message: str, status_code: int = 200) -> HTMLResponse:
    return HTMLResponse(
        f"""<!DOCTYPE html>
<html>
<head><meta charset="utf-8"><title>{html.escape(title)}</title></head>
<body>
  <h1>{html.escape(title)}</h1>
  <p>{html.escape(message)}</p>
  <p><a href="/">Home</a></p>
</body>
</html>""",
        status_code=status_code,
    )


def build_confirm_url(state: str, next_path: str | None = None) -> str:
    """Where the magic link lands; carries state so any tab can find the verifier cookie."""
    params = {"state": state}
    safe_next = sanitize_app_path(next_path)
    if safe_next:
        params["next"] = safe_next
    return f"{SITE_URL}{CONFIRM_PATH}?{urlencode(params)}"


@app.get("/health")
def health():
    """Health check endpoint."""
    return {"status": "ok", "service": "web_app"}


@app.get("/", response_class=HTMLResponse)
def home(request: Request):
    """Signed-in status read from server-side session cookies, or the magic-link form."""
    if has_session_cookies(request):
        return _page("Signed in", "You are signed in.")
    return HTMLResponse(
        """<!DOCTYPE html>
<html>
<head><meta charset="utf-8"><title>Sign in</title></head>
<body>
  <h1>Sign in</h1>
  <form method="post" action="/login">
    <input type="email" name="email" placeholder="you@example.com" required>
    <button type="submit">Email me a magic link</button>
  </form>
</body>
</html>"""
    )


@app.post("/login", response_class=HTMLResponse)
async def login(
    request: Request,
    email: str = Form(...),
    next: str | None = Form(None),
    identity: IdentityClient = Depends(get_identity_client),
    db: Session = Depends(get_db),
):
    """Create a PKCE session (verifier cookie) and ask the identity authority to email the link."""
    ip = get_client_ip(request)
    allowed, retry_after = login_limiter.check_and_consume(ip or "unknown")
    if not allowed:
        response = _page("Too many requests", "Too many sign-in requests. Please wait and try again.", 429)
        response.headers["Retry-After"] = str(retry_after)
        return response

    email = email.strip()
    if "@" not in email:
        return _page("Sign in", "Please enter a valid email address.", 400)

    response = _page("Check your email", "Check your email for the login link.")
    pkce = pkce_store.create(response)
    try:
        await identity.sign_in_with_otp(
            email,
            redirect_to=build_confirm_url(pkce.state, next),
            code_challenge=pkce.code_challenge,
        )
    except AuthApiError as e:
        log_audit(db, EVENT_MAGIC_LINK_REQUESTED, state=pkce.state, ip=ip, outcome=OUTCOME_FAIL, detail=e.code)
        return _page("Sign in", e.message or "Could not send the magic link.", 400)
    except AuthError as e:
        logger.warning("Magic link request failed: %s", type(e).__name__)
        log_audit(db, EVENT_MAGIC_LINK_REQUESTED, state=pkce.state, ip=ip, outcome=OUTCOME_FAIL, detail="unavailable")
        return _page("Sign in", "Could not reach the sign-in service. Please try again.", 502)

    log_audit(db, EVENT_MAGIC_LINK_REQUESTED, state=pkce.state, ip=ip)
    return response


def classify_rejection(e: AuthApiError) -> str:
    """REJECTION_REUSED, REJECTION_BROWSER_MISMATCH or REJECTION_EXPIRED for an authority 4xx."""
    text = f"{e.code or ''} {e.message or ''}".lower()
    if any(marker in text for marker in ("already been consumed", "already been used", "already used")):
        return REJECTION_REUSED
    if any(marker in text for marker in ("code verifier", "code_verifier", "pkce", "flow_state_not_found")):
        return REJECTION_BROWSER_MISMATCH
    return REJECTION_EXPIRED


def _rejection_page(kind: str) -> HTMLResponse:
    title, message = REJECTION_PAGES[kind]
    return _page(title, message, 400)


@app.get(CONFIRM_PATH)
async def confirm(
    request: Request,
    code: str | None = None,
    state: str | None = None,
    token_hash: str | None = None,
    link_type: str | None = Query(None, alias="type"),
    next: str | None = None,
    error: str | None = None,
    error_description: str | None = None,
    identity: IdentityClient = Depends(get_identity_client),
    db: Session = Depends(get_db),
):
    """
    Magic link landing. PKCE links: state -> verifier cookie -> code exchange.
    Token-hash links: verify with the authority. Either way, session cookies and a redirect.
    """
    ip = get_client_ip(request)
    if code:
        code_verifier = pkce_store.read(request, state) if state else None
        if not code_verifier:
            log_audit(db, EVENT_EXCHANGE_FAILED, state=state, ip=ip, outcome=OUTCOME_FAIL, detail="verifier_missing")
            return _page("Link expired", LINK_EXPIRED_MESSAGE, 400)
        success_event = EVENT_CODE_EXCHANGED
        completion = identity.exchange_code_for_session(code, code_verifier=code_verifier)
    elif token_hash:
        otp_type = "magiclink" if token_hash.startswith("pkce_") else (link_type or "email")
        if otp_type not in OTP_TYPES:
            return _page("Error", "Unsupported login link type.", 400)
        success_event = EVENT_TOKEN_VERIFIED
        completion = identity.verify_otp(token_hash, type=otp_type)
    elif error:
        log_audit(db, EVENT_EXCHANGE_FAILED, state=state, ip=ip, outcome=OUTCOME_FAIL, detail="callback_error")
        return _page("Login error", error_description or error, 400)
    else:
        return _page("Error", "Missing code in the login link.", 400)

    try:
        session = await completion
    except AuthApiError as e:
        kind = classify_rejection(e)
        log_audit(db, EVENT_EXCHANGE_FAILED, state=state, ip=ip, outcome=OUTCOME_FAIL, detail=kind)
        return _rejection_page(kind)
    except AuthError as e:
        logger.warning("Magic link completion failed: %s", type(e).__name__)
        log_audit(db, EVENT_EXCHANGE_FAILED, state=state, ip=ip, outcome=OUTCOME_FAIL, detail="unavailable")
        return _page("Sign in failed", "Failed to complete sign in. Please try again.", 502)

    response = RedirectResponse(url=sanitize_app_path(next) or "/", status_code=303)
    if code:
        pkce_store.delete(response, state)
    write_session_cookies(response, access_token=session.access_token, refresh_token=session.refresh_token)
    log_audit(db, success_event, state=state, ip=ip)
    return response


class SessionTokens(BaseModel):
    access_token: str = ""
    refresh_token: str = ""


@app.post("/api/auth/session")
def sync_session(
    tokens: SessionTokens,
    request: Request,
    response: Response,
    db: Session = Depends(get_db),
):
    """Write a client-held session into server-readable cookies."""
    if not tokens.access_token or not tokens.refresh_token:
        log_audit(db, EVENT_SESSION_SYNCED, ip=get_client_ip(request), outcome=OUTCOME_FAIL, detail="missing-tokens")
        return JSONResponse({"error": "missing-tokens"}, status_code=400)
    write_session_cookies(response, access_token=tokens.access_token, refresh_token=tokens.refresh_token)
    log_audit(db, EVENT_SESSION_SYNCED, ip=get_client_ip(request))
    return {"ok": True}


@app.post("/api/auth/pkce/cleanup")
def cleanup_pkce(request: Request, response: Response):
    """Explicitly invalidate every PKCE cookie this browser still holds."""
    return {"cleaned": pkce_store.cleanup_expired(request, response)}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "web_app.main:app",
        host="127.0.0.1",
        port=8000,
        reload=True,
    )
