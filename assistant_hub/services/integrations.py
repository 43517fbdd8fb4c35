"""
Executes registered external integrations on behalf of a user.
"""
import logging
import re
from typing import Dict, Any, Optional

import httpx

from assistant_hub.exceptions import ToolExecutionError
from assistant_hub.storage.file_storage import FileStorage

logger = logging.getLogger(__name__)

PLACEHOLDER = re.compile(r"\{(\w+)\}")
BODYLESS_METHODS = ("GET", "DELETE", "HEAD")


def integration_id_from_function(function_name: str) -> str:
    """The trailing ``_``-separated token of a tool function name."""
    return function_name.split("_")[-1]


def credential_headers(credentials: Dict[str, Any]) -> Dict[str, str]:
    if credentials.get("headers"):
        return {str(k): str(v) for k, v in credentials["headers"].items()}
    if credentials.get("token"):
        return {"Authorization": f"Bearer {credentials['token']}"}
    if credentials.get("api_key"):
        header = credentials.get("header", "X-API-Key")
        return {header: str(credentials["api_key"])}
    return {}


class IntegrationExecutor:
    """Looks up integration records and performs their HTTP calls."""
    def __init__(self, storage: FileStorage, http_client: httpx.AsyncClient):
        self.storage = storage
        self.http_client = http_client

    def find_api(self, function_name: str) -> Optional[Dict[str, Any]]:
        return self.storage.get("integration_apis", integration_id_from_function(function_name))

    async def execute(self, api: Dict[str, Any], user_id: str, arguments: Dict[str, Any]) -> Any:
        service = self.storage.get("integration_services", api["service_id"])
        if service is None:
            raise ToolExecutionError(f"Integration service {api['service_id']} not found")
        creds = self.storage.find_one(
            "integration_credentials", user_id=user_id, service_id=service["id"]
        )
        if not creds or not creds.get("credentials"):
            raise ToolExecutionError(f"Credentials not found for service: {service['slug']}")

        remaining = dict(arguments)

        def fill(match):
            return str(remaining.pop(match.group(1), match.group(0)))

        path = PLACEHOLDER.sub(fill, api["api_endpoint"])
        url = path if path.startswith(("http://", "https://")) else f"{service.get('base_url', '').rstrip('/')}/{path.lstrip('/')}"
        method = api.get("method", "GET").upper()
        request_kwargs: Dict[str, Any] = {"headers": credential_headers(creds["credentials"])}
        if method in BODYLESS_METHODS:
            request_kwargs["params"] = remaining
        else:
            request_kwargs["json"] = remaining

        logger.info(f"Executing integration {service['slug']}: {method} {url}")
        response = await self.http_client.request(method, url, **request_kwargs)
        response.raise_for_status()
        if "application/json" in response.headers.get("content-type", ""):
            return response.json()
        return response.text
