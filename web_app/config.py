"""
Web app (browser path) configuration. Values from env with development defaults.
No secrets in this file.
"""
import os

# Public origin of this app; magic links land on {SITE_URL}/auth/confirm
SITE_URL = os.environ.get("SITE_URL", "http://127.0.0.1:8000").rstrip("/")

# Path the identity authority redirects to after the user opens the magic link
CONFIRM_PATH = "/auth/confirm"

# production -> cookies are only sent over HTTPS
APP_ENV = os.environ.get("APP_ENV", "development")
IS_PRODUCTION = APP_ENV == "production"

# PKCE verifier cookies: pkce_<state>, 15 minutes
PKCE_COOKIE_PREFIX = "pkce_"
PKCE_TTL_SECONDS = int(os.environ.get("PKCE_TTL_SECONDS", "900"))

# Server-readable session cookies written after sign-in or session sync
ACCESS_TOKEN_COOKIE = "sb-access-token"
REFRESH_TOKEN_COOKIE = "sb-refresh-token"
SESSION_COOKIE_MAX_AGE = int(os.environ.get("SESSION_COOKIE_MAX_AGE", str(7 * 24 * 3600)))

# SQLite audit database for development
DATABASE_URL = os.environ.get("WEB_DATABASE_URL", "sqlite:///./web_app.db")

# Magic-link requests per client IP per minute
RATE_LIMIT_LOGIN_PER_MINUTE = int(os.environ.get("RATE_LIMIT_LOGIN_PER_MINUTE", "10"))
