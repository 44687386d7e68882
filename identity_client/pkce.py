"""
PKCE (RFC 7636) helpers shared by the native client and the browser path.
S256 only.
"""
import hashlib
import secrets
from base64 import urlsafe_b64encode


def generate_code_verifier() -> str:
    """Random code_verifier; 32 bytes -> 43 chars base64url (RFC 7636 recommendation)."""
    return secrets.token_urlsafe(32)


def code_challenge_s256(code_verifier: str) -> str:
    """base64url(SHA256(verifier)) without padding."""
    digest = hashlib.sha256(code_verifier.encode("ascii")).digest()
    return urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")
