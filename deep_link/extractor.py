"""
Auth parameter extraction: IncomingLink -> exactly one AuthParams variant.
Pure; no I/O and no logging of parameter values.
Order: query code, then fragment tokens, then query error.
"""
from dataclasses import dataclass, field

from deep_link.links import IncomingLink


@dataclass(frozen=True)
class PkceGrant:
    code: str = field(repr=False)


@dataclass(frozen=True)
class ImplicitGrant:
    access_token: str = field(repr=False)
    refresh_token: str = field(repr=False)


@dataclass(frozen=True)
class CallbackError:
    error: str
    error_description: str | None = None


@dataclass(frozen=True)
class NotAuthCallback:
    pass


AuthParams = PkceGrant | ImplicitGrant | CallbackError | NotAuthCallback


def extract_auth_params(link: IncomingLink) -> AuthParams:
    code = link.query_param("code")
    if code:
        return PkceGrant(code=code)

    fragment = link.fragment_params()
    access_token = fragment.get("access_token")
    refresh_token = fragment.get("refresh_token")
    # Both tokens are required; a lone token falls through to the error check
    if access_token and refresh_token:
        return ImplicitGrant(access_token=access_token, refresh_token=refresh_token)

    error = link.query_param("error")
    if error is not None:
        return CallbackError(error=error, error_description=link.query_param("error_description") or None)

    return NotAuthCallback()


def param_presence(link: IncomingLink) -> tuple[bool, bool]:
    """(has_code, has_access_token) for logging; never the values themselves."""
    has_code = bool(link.query_param("code"))
    has_access_token = bool(link.fragment_params().get("access_token"))
    return has_code, has_access_token
