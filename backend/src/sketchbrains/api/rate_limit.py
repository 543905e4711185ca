"""Rate limiting for public Sketch Brains endpoints.

Authenticated and service routes rely on the default limit; unauthenticated
routes that touch the database get a tighter one.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

from sketchbrains.settings import settings

DEFAULT_LIMIT = "200/minute"
REFERRAL_VALIDATE_LIMIT = "30/minute"
CERTIFICATE_VERIFY_LIMIT = "60/minute"

# Single shared limiter instance
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[DEFAULT_LIMIT],
    storage_uri=settings.rate_limit_storage_uri,
    enabled=settings.rate_limit_enabled if settings.rate_limit_enabled is not None else settings.env == "production",
)
