"""
Native deep-link configuration. Values from env with app defaults.
"""
import logging
import os

# Custom URI scheme registered by the native app (appscheme://login-callback)
APP_SCHEME = os.environ.get("APP_SCHEME", "bandroadie").lower()

# Host of the dedicated magic-link callback URI
CALLBACK_HOST = os.environ.get("CALLBACK_HOST", "login-callback").lower()

# Delay before the session-change safety net re-reads the session (seconds)
NOTIFY_DELAY_SECONDS = float(os.environ.get("NOTIFY_DELAY_SECONDS", "0.1"))

# Wait before resubscribing to the platform link stream after it fails (seconds)
STREAM_RESUBSCRIBE_SECONDS = float(os.environ.get("STREAM_RESUBSCRIBE_SECONDS", "1.0"))

# Level used for auth-flow step logging; checked at each call site
AUTH_FLOW_LOG_LEVEL = logging.getLevelName(os.environ.get("DEEP_LINK_LOG_LEVEL", "DEBUG").upper())
if not isinstance(AUTH_FLOW_LOG_LEVEL, int):
    AUTH_FLOW_LOG_LEVEL = logging.DEBUG
