"""
User registration and usage routes.
"""
from dataclasses import asdict
from typing import Any, Dict

from fastapi import APIRouter, Depends
from starlette.status import HTTP_201_CREATED

from assistant_hub.dependencies import get_storage, get_usage_tracker
from assistant_hub.exceptions import ConflictError, ValidationError
from assistant_hub.schemas import CreateUserRequest, EstimateRequest, EstimateResponse
from assistant_hub.security import get_api_key, get_current_user
from assistant_hub.services.usage import UsageTracker
from assistant_hub.storage.file_storage import FileStorage

router = APIRouter(prefix="/api", tags=["users"], dependencies=[Depends(get_api_key)])

USER_ROLES = ("user", "ceda", "superadmin")


@router.post("/users", status_code=HTTP_201_CREATED)
async def create_user(request: CreateUserRequest, storage: FileStorage = Depends(get_storage)):
    email = request.email.strip().lower()
    if "@" not in email:
        raise ValidationError("Please provide valid email")
    if request.role not in USER_ROLES:
        raise ValidationError(f"Unknown role: {request.role}")
    if storage.find_one("users", email=email):
        raise ConflictError("A user with this email already exists.")
    return storage.insert("users", {
        "fname": request.fname,
        "lname": request.lname,
        "email": email,
        "role": request.role,
        "maxusertokens": request.maxusertokens,
        "currentusertokens": 0,
    })


@router.get("/usage")
async def get_usage(
    user: Dict[str, Any] = Depends(get_current_user),
    tracker: UsageTracker = Depends(get_usage_tracker),
):
    return tracker.summary(user["id"])


@router.post("/usage/estimate", response_model=EstimateResponse)
async def estimate_usage(request: EstimateRequest, tracker: UsageTracker = Depends(get_usage_tracker)):
    estimate = await tracker.estimator.estimate(request.input_text, request.output, request.model, request.provider)
    return asdict(estimate)
