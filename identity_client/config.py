"""
Identity authority client configuration.
No secrets in this file; the API key comes from env.
"""
import os

# Base URL of the identity authority (GoTrue-compatible auth API lives under /auth/v1)
IDENTITY_URL = os.environ.get("IDENTITY_URL", "http://127.0.0.1:54321").rstrip("/")

# Public (anon) API key sent as the apikey header
IDENTITY_API_KEY = os.environ.get("IDENTITY_API_KEY", "")

# Transport timeout for every remote call; no extra local timeout is layered on top
IDENTITY_TIMEOUT_SECONDS = float(os.environ.get("IDENTITY_TIMEOUT_SECONDS", "10"))

# Storage key prefix for the persisted session and the pending PKCE verifier
IDENTITY_STORAGE_KEY = os.environ.get("IDENTITY_STORAGE_KEY", "magic-link-auth-token")
