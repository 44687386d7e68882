"""
Exceptions raised by the identity authority client.
Messages never include codes, tokens or verifiers.
"""


class AuthError(Exception):
    """Base class for identity authority failures."""

    def __init__(self, message: str, *, status: int | None = None, code: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.status = status
        self.code = code


class AuthApiError(AuthError):
    """The authority answered and rejected the request (4xx)."""


class AuthRetryableError(AuthError):
    """Transport failure or 5xx; the request may succeed later."""


class AuthPkceVerifierMissingError(AuthError):
    """No code_verifier is available for this device, so a PKCE code cannot be exchanged."""

    def __init__(self, message: str = "PKCE code verifier not found in storage") -> None:
        super().__init__(message, code="pkce_verifier_missing")
