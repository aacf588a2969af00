"""Shared-secret guard for the workflow and financial-model endpoints."""

import logging
import secrets

from fastapi import Depends
from fastapi import HTTPException
from fastapi.security import APIKeyHeader

from creditmemo.core.config import settings

logger = logging.getLogger(__name__)

api_key_header = APIKeyHeader(name="X-API-Key")


async def verify_api_key(key: str = Depends(api_key_header)) -> bool:
    """FastAPI dependency that admits a request only when its ``X-API-Key`` matches ``settings.api_key``.

    A deployment without ``API_KEY`` configured rejects every protected call
    (memo workflow runs included) rather than running them unauthenticated.

    Raises:
        HTTPException: 403 when the key is wrong or the server has none configured.
    """
    if not settings.api_key:
        logger.critical("API_KEY is not configured; rejecting request to a protected creditmemo endpoint.")
        raise HTTPException(status_code=403, detail="Invalid API Key")

    if not secrets.compare_digest(key.encode(), settings.api_key.encode()):
        logger.warning("Rejected request with an invalid X-API-Key header")
        raise HTTPException(status_code=403, detail="Invalid API Key")
    return True
