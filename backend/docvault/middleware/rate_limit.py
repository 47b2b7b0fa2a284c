"""Rate limiting middleware using slowapi."""

from slowapi import Limiter
from slowapi.util import get_remote_address

limiter = Limiter(key_func=get_remote_address)

save_limiter = limiter.limit("120/minute")
restore_limiter = limiter.limit("20/minute")
