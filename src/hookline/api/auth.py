"""Bearer-key authentication for machine-to-machine endpoints.

The retry-queue and event-trigger endpoints are called by other services,
not by administrators. They require ``Authorization: Bearer <key>`` where
the key equals ``HOOKLINE_INTERNAL_API_KEY``.
"""

from __future__ import annotations

import hmac

from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from hookline.exceptions import AuthenticationError
from hookline.logging import get_logger

logger = get_logger(__name__)

# Security scheme for OpenAPI docs
security = HTTPBearer(auto_error=False)


def check_internal_key(
    expected: str | None,
    credentials: HTTPAuthorizationCredentials | None,
) -> None:
    """Validate a bearer credential against the configured internal key.

    Comparison is constant-time. With no key configured every request
    is rejected.

    Raises:
        AuthenticationError: If the key is missing, wrong or not configured.
    """
    if not expected:
        raise AuthenticationError("Internal API key is not configured")
    if credentials is None:
        raise AuthenticationError("Missing authentication credentials")
    if not hmac.compare_digest(credentials.credentials.encode(), expected.encode()):
        raise AuthenticationError("Invalid internal API key")
    logger.debug("Internal caller authenticated")
