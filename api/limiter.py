"""
api/limiter.py -- Shared slowapi rate limiter instance.

api/main.py mounts it as middleware; the route modules under api/routes/v1/
apply per-route limits with @limiter.limit() (login, registration, rating
upserts).

One instance for the whole app: a limiter created per module would keep its
own counters and the limits would never trigger.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

limiter = Limiter(key_func=get_remote_address, storage_uri="memory://")
