"""
Security dependencies for the assistant hub.
Every route is protected by the service API token; user routes also need X-User-Id.
"""
import logging
from typing import Any, Dict, Optional

from fastapi import Request, Security, HTTPException
from fastapi.security.api_key import APIKeyHeader
from starlette.status import HTTP_403_FORBIDDEN

from assistant_hub.exceptions import AuthenticationError

logger = logging.getLogger(__name__)

api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)
user_id_header = APIKeyHeader(name="X-User-Id", auto_error=False)


def check_api_key(request: Request, api_key: Optional[str]) -> str:
    expected = request.app.state.api_token
    if api_key is None:
        logger.warning("Missing X-API-Key header")
        raise HTTPException(status_code=HTTP_403_FORBIDDEN, detail="Missing X-API-Key header")
    if not expected or api_key != expected:
        logger.warning("Invalid API key")
        raise HTTPException(status_code=HTTP_403_FORBIDDEN, detail="Invalid API key")
    return api_key


async def get_api_key(request: Request, api_key_header: str = Security(api_key_header)):
    return check_api_key(request, api_key_header)


async def get_current_user(request: Request, user_id: str = Security(user_id_header)) -> Dict[str, Any]:
    if not user_id:
        raise AuthenticationError("Missing X-User-Id header")
    user = request.app.state.storage.get("users", user_id)
    if user is None:
        logger.warning(f"Unknown user {user_id}")
        raise AuthenticationError("Unknown user")
    return user
