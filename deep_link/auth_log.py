"""
Step-by-step logging of the magic-link flow.

Callers pass only derived values (booleans, scheme/host, error kinds). Codes,
tokens and verifiers are never handed to these helpers, so nothing secret can
reach a log record. Emission is gated by AUTH_FLOW_LOG_LEVEL at each call.
"""
import logging

from deep_link.config import AUTH_FLOW_LOG_LEVEL

logger = logging.getLogger("deep_link.auth_flow")


def _log(message: str, *args) -> None:
    if logger.isEnabledFor(AUTH_FLOW_LOG_LEVEL):
        logger.log(AUTH_FLOW_LOG_LEVEL, message, *args)


def link_received(*, source: str, scheme: str, host: str) -> None:
    """Step 1: a URI arrived ('cold_start', 'background' or 'foreground')."""
    _log("STEP 1/4 link received source=%s uri=%s://%s/...", source, scheme, host)


def params_extracted(*, has_code: bool, has_access_token: bool) -> None:
    _log("STEP 2/4 params extracted has_code=%s has_access_token=%s", has_code, has_access_token)


def session_exchange(*, success: bool, error_type: str | None = None) -> None:
    if error_type is None:
        _log("STEP 3/4 session exchange success=%s", success)
    else:
        _log("STEP 3/4 session exchange success=%s error=%s", success, error_type)


def auth_state_updated(*, is_authenticated: bool, trigger: str) -> None:
    _log("STEP 4/4 auth state updated authenticated=%s trigger=%s", is_authenticated, trigger)


def provider_refresh(*, has_session: bool) -> None:
    _log("auth state refresh: unchanged session_present=%s", has_session)


def error(*, step: str, message: str) -> None:
    """Failures are always worth a warning, whatever the step-log level."""
    logger.warning("auth flow error at %s: %s", step, message)
