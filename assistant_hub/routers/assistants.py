"""
Assistant and function-definition management routes.
"""
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query
from starlette.status import HTTP_201_CREATED

from assistant_hub.dependencies import get_assistant_manager, get_function_registry, get_host_calls
from assistant_hub.exceptions import ValidationError
from assistant_hub.schemas import (
    AssistantListResponse, AssistantResponse, CreateAssistantRequest, CreateFunctionAssistantRequest,
    FunctionDefinitionRequest, UpdateAssistantRequest, ValidateFunctionRequest
)
from assistant_hub.security import get_api_key, get_current_user
from assistant_hub.services.assistants import AssistantManager
from assistant_hub.services.functions import FunctionRegistry
from assistant_hub.services.sandbox import HostCalls

router = APIRouter(prefix="/api", tags=["assistants"], dependencies=[Depends(get_api_key)])


@router.post("/assistants", response_model=AssistantResponse, status_code=HTTP_201_CREATED)
async def create_assistant(
    request: CreateAssistantRequest,
    user: Dict[str, Any] = Depends(get_current_user),
    manager: AssistantManager = Depends(get_assistant_manager),
):
    """
    Create a new assistant, or register an existing remote one by assistant_id.
    """
    if request.assistant_id:
        record = await manager.import_existing(user["id"], request.assistant_id, request.category, request.description)
    else:
        if not request.name:
            raise ValidationError("Assistant name is required.")
        record = await manager.create(
            user["id"], request.name, request.instructions, request.model, request.tools,
            request.category, request.description,
        )
    return {"message": "Assistant created successfully.", "assistant": record}


@router.post("/assistants/function-calling", response_model=AssistantResponse, status_code=HTTP_201_CREATED)
async def create_function_calling_assistant(
    request: CreateFunctionAssistantRequest,
    user: Dict[str, Any] = Depends(get_current_user),
    manager: AssistantManager = Depends(get_assistant_manager),
):
    record = await manager.create_function_calling(
        user["id"], request.name, request.instructions, request.model,
        [tool.model_dump() for tool in request.tools], request.category, request.description,
    )
    return {"message": "Assistant created successfully.", "assistant": record}


@router.get("/assistants", response_model=AssistantListResponse)
async def list_assistants(
    category: Optional[str] = "ORGANIZATIONAL",
    search: str = "",
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    function_calling: Optional[bool] = None,
    manager: AssistantManager = Depends(get_assistant_manager),
):
    return manager.list_assistants(category, search, page, limit, function_calling)


@router.get("/assistants/mine", response_model=AssistantListResponse)
async def list_my_assistants(
    search: str = "",
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    user: Dict[str, Any] = Depends(get_current_user),
    manager: AssistantManager = Depends(get_assistant_manager),
):
    """
    Assistants created by the calling user, across every category.
    """
    return manager.list_assistants(None, search, page, limit, user_id=user["id"])


@router.get("/assistants/{assistant_id}")
async def get_assistant(assistant_id: str, manager: AssistantManager = Depends(get_assistant_manager)):
    return {"assistant": manager.get(assistant_id)}


@router.patch("/assistants/{assistant_id}", response_model=AssistantResponse)
async def update_assistant(
    assistant_id: str,
    request: UpdateAssistantRequest,
    user: Dict[str, Any] = Depends(get_current_user),
    manager: AssistantManager = Depends(get_assistant_manager),
):
    functions = None if request.functions is None else [tool.model_dump() for tool in request.functions]
    record = await manager.update(
        assistant_id, user, request.name, request.instructions, request.model,
        request.description, request.category, functions,
    )
    return {"message": "Assistant updated successfully.", "assistant": record}


@router.delete("/assistants/{assistant_id}")
async def delete_assistant(
    assistant_id: str,
    user: Dict[str, Any] = Depends(get_current_user),
    manager: AssistantManager = Depends(get_assistant_manager),
):
    await manager.delete(assistant_id, user)
    return {"message": "Assistant deleted successfully."}


@router.get("/assistants/{assistant_id}/functions")
async def list_function_names(assistant_id: str, manager: AssistantManager = Depends(get_assistant_manager)):
    return {"functions": await manager.function_names(assistant_id)}


@router.get("/assistants/{assistant_id}/functions/{function_name}/parameters")
async def list_function_parameters(
    assistant_id: str,
    function_name: str,
    manager: AssistantManager = Depends(get_assistant_manager),
):
    return {"parameters": await manager.function_parameters(assistant_id, function_name)}


@router.post("/functions", status_code=HTTP_201_CREATED)
async def add_function_definition(
    request: FunctionDefinitionRequest,
    registry: FunctionRegistry = Depends(get_function_registry),
):
    """
    Store a function script; the registry is reloaded afterwards.
    """
    return registry.add_definition(request.name, request.definition)


@router.post("/functions/validate")
async def validate_function_definition(
    request: ValidateFunctionRequest,
    registry: FunctionRegistry = Depends(get_function_registry),
    host: HostCalls = Depends(get_host_calls),
):
    result = await registry.validate_definition(request.name, request.definition, host, request.parameters)
    return {"message": "Function is correct", "result": result}


@router.post("/functions/reload")
async def reload_functions(registry: FunctionRegistry = Depends(get_function_registry)):
    failed = registry.reload()
    return {"loaded": sorted(registry.scripts), "failed": failed}
