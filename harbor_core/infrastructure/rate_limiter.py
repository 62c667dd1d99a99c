"""
Rate limiter infrastructure using slowapi.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

from harbor_core.config import settings

# Shared across workers only when RATE_LIMIT_STORAGE_URI points at Redis
limiter = Limiter(
    key_func=get_remote_address,
    storage_uri=settings.RATE_LIMIT_STORAGE_URI,
)
