"""
Logging helpers for the tunnel proxy

Every module gets its logger through get_logger() so that a single call to
setup_logging() controls the whole package.
"""

import logging
import sys
from typing import Optional

ROOT_LOGGER_NAME = 'ws_token_proxy'
LOG_FORMAT = '[%(asctime)s] [%(levelname)s] %(name)s: %(message)s'

LOG_LEVELS = {
    'debug': logging.DEBUG,
    'info': logging.INFO,
    'warning': logging.WARNING,
    'warn': logging.WARNING,
    'error': logging.ERROR,
}


def get_logger(name: str) -> logging.Logger:
    """Get a logger that lives under the package logger"""
    if name != ROOT_LOGGER_NAME and not name.startswith(ROOT_LOGGER_NAME + '.'):
        name = f"{ROOT_LOGGER_NAME}.{name}"
    return logging.getLogger(name)


def setup_logging(level: str = 'info', stream=None) -> logging.Logger:
    """
    Configure package logging

    Args:
        level: One of debug/info/warning/error (case-insensitive)
        stream: Output stream, defaults to stdout

    Returns:
        logging.Logger: The configured package logger
    """
    numeric_level = LOG_LEVELS.get(level.lower(), logging.INFO)

    root = logging.getLogger(ROOT_LOGGER_NAME)
    root.setLevel(numeric_level)

    # Only one handler, even if setup is called again
    handler: Optional[logging.Handler] = None
    for existing in root.handlers:
        if getattr(existing, '_ws_token_proxy_handler', False):
            handler = existing
            break

    if handler is None:
        handler = logging.StreamHandler(stream or sys.stdout)
        handler._ws_token_proxy_handler = True
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        root.addHandler(handler)

    handler.setLevel(numeric_level)
    root.propagate = False

    # websockets prints handshake headers, X-Auth-Token included, at DEBUG
    logging.getLogger('websockets').setLevel(
        logging.INFO if numeric_level <= logging.DEBUG else logging.WARNING
    )

    return root


def mask_token(token: Optional[str]) -> str:
    """Mask a token for logging (first 4 and last 4 characters)"""
    if not token or len(token) <= 8:
        return '****'
    return f"{token[:4]}...{token[-4:]}"
