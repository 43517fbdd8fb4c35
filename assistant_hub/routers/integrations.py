"""
Integration registry routes: services, their APIs and per-user credentials.
"""
from typing import Any, Dict

from fastapi import APIRouter, Depends
from starlette.status import HTTP_201_CREATED

from assistant_hub.dependencies import get_storage
from assistant_hub.exceptions import ConflictError, NotFoundError
from assistant_hub.schemas import CredentialsRequest, IntegrationApiRequest, IntegrationServiceRequest
from assistant_hub.security import get_api_key, get_current_user
from assistant_hub.storage.file_storage import FileStorage

router = APIRouter(prefix="/api/integrations", tags=["integrations"], dependencies=[Depends(get_api_key)])


@router.post("/services", status_code=HTTP_201_CREATED)
async def create_service(request: IntegrationServiceRequest, storage: FileStorage = Depends(get_storage)):
    if storage.find_one("integration_services", slug=request.slug):
        raise ConflictError(f"Service {request.slug} already exists.")
    return storage.insert("integration_services", {
        "slug": request.slug,
        "name": request.name or request.slug,
        "base_url": request.base_url,
    })


@router.get("/services")
async def list_services(storage: FileStorage = Depends(get_storage)):
    return {"services": storage.find("integration_services")}


@router.post("/apis", status_code=HTTP_201_CREATED)
async def create_api(request: IntegrationApiRequest, storage: FileStorage = Depends(get_storage)):
    """
    Register an endpoint. Tool functions named ``<anything>_<api id>`` call it.
    """
    if storage.get("integration_services", request.service_id) is None:
        raise NotFoundError("Integration service not found.")
    return storage.insert("integration_apis", {
        "service_id": request.service_id,
        "api_endpoint": request.api_endpoint,
        "method": request.method.upper(),
    })


@router.put("/credentials")
async def store_credentials(
    request: CredentialsRequest,
    user: Dict[str, Any] = Depends(get_current_user),
    storage: FileStorage = Depends(get_storage),
):
    if storage.get("integration_services", request.service_id) is None:
        raise NotFoundError("Integration service not found.")
    existing = storage.find_one("integration_credentials", user_id=user["id"], service_id=request.service_id)
    if existing:
        storage.update("integration_credentials", existing["id"], credentials=request.credentials)
        return {"id": existing["id"], "service_id": request.service_id}
    record = storage.insert("integration_credentials", {
        "user_id": user["id"],
        "service_id": request.service_id,
        "credentials": request.credentials,
    })
    return {"id": record["id"], "service_id": request.service_id}
