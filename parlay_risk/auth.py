"""
API key authentication for the parlay risk service.

Callers send ``X-API-Key``.  Accepted keys are read from the environment
slots ``API_KEY_USER1`` .. ``API_KEY_USER5``; each slot maps to a caller id
(``user1`` .. ``user5``) that routes receive for logging.  When no slot is
filled and ``ENVIRONMENT=development``, the fixed :data:`DEV_API_KEY` is the
only accepted key.  Any other environment with no keys refuses to start.
"""

import logging
import os
from typing import Dict

from dotenv import load_dotenv
from fastapi import HTTPException, Security, status
from fastapi.security import APIKeyHeader

load_dotenv()

logger = logging.getLogger(__name__)

API_KEY_HEADER = APIKeyHeader(name="X-API-Key", auto_error=False)

DEV_API_KEY = "dev-key-insecure"
KEY_SLOTS = 5


def get_valid_api_keys() -> Dict[str, str]:
    """Map each configured key to its caller id.

    Raises:
        ValueError: when no key slot is set outside development.
    """
    slots = {f"user{i}": os.getenv(f"API_KEY_USER{i}") for i in range(1, KEY_SLOTS + 1)}
    keys = {key: caller for caller, key in slots.items() if key}
    if keys:
        return keys

    if os.getenv("ENVIRONMENT") != "development":
        raise ValueError(
            "Parlay risk API has no keys: set API_KEY_USER1 (or ENVIRONMENT=development)"
        )
    logger.warning("No API keys configured; accepting the development key only")
    return {DEV_API_KEY: "dev_user"}


VALID_API_KEYS = get_valid_api_keys()


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "ApiKey"},
    )


async def verify_api_key(api_key: str = Security(API_KEY_HEADER)) -> str:
    """Resolve the ``X-API-Key`` header to a caller id or raise 401."""
    if not api_key:
        raise _unauthorized("Missing X-API-Key header")
    caller = VALID_API_KEYS.get(api_key)
    if caller is None:
        raise _unauthorized("Unknown API key")
    return caller
