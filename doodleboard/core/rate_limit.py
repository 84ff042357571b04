from slowapi import Limiter
from slowapi.util import get_remote_address

from doodleboard.config import settings

# IP-based keys; the same origin string is used for reaction dedup.
limiter = Limiter(key_func=get_remote_address, enabled=settings.RATE_LIMIT_ENABLED)


def client_origin(request) -> str:
    return get_remote_address(request)
