"""Per-client request limits for the public auth endpoints.

Registration is limited per request through the slowapi ``limiter``.
Login only counts failed attempts, so it uses a ``limits`` window directly
and records a hit after each rejected login.
"""

import logging

from fastapi import HTTPException, Request, status
from limits import parse
from limits.storage import storage_from_string
from limits.strategies import FixedWindowRateLimiter
from slowapi import Limiter
from slowapi.util import get_remote_address

from backend.core import config

logger = logging.getLogger(__name__)

TOO_MANY_REQUESTS = "Too many requests, please try again later."

limiter = Limiter(
    key_func=get_remote_address,
    storage_uri=config.RATE_LIMIT_STORAGE_URI,
    strategy="fixed-window",
    enabled=config.RATE_LIMIT_ENABLED,
)

failed_login_limit = parse(config.LOGIN_FAILURE_RATE_LIMIT)
_failed_login_storage = storage_from_string(config.RATE_LIMIT_STORAGE_URI)
_failed_logins = FixedWindowRateLimiter(_failed_login_storage)


def too_many_requests() -> HTTPException:
    return HTTPException(status_code=status.HTTP_429_TOO_MANY_REQUESTS, detail=TOO_MANY_REQUESTS)


def check_login_allowed(request: Request) -> None:
    if not config.RATE_LIMIT_ENABLED:
        return
    client = get_remote_address(request)
    if not _failed_logins.test(failed_login_limit, client):
        logger.warning("Login blocked for %s after repeated failures.", client)
        raise too_many_requests()


def record_failed_login(request: Request) -> None:
    if config.RATE_LIMIT_ENABLED:
        _failed_logins.hit(failed_login_limit, get_remote_address(request))


def reset_rate_limits() -> None:
    limiter.reset()
    _failed_login_storage.reset()
