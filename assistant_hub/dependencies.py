"""
FastAPI dependency getters for services stored on app.state.
"""
from fastapi import Request

from assistant_hub.services.assistants import AssistantManager
from assistant_hub.services.functions import FunctionRegistry
from assistant_hub.services.openai_svc import OpenAIService
from assistant_hub.services.sandbox import HostCalls
from assistant_hub.services.session import SessionManager
from assistant_hub.services.usage import UsageTracker
from assistant_hub.storage.file_storage import FileStorage


def get_storage(request: Request) -> FileStorage:
    return request.app.state.storage


def get_openai_service(request: Request) -> OpenAIService:
    return request.app.state.openai_service


def get_session_manager(request: Request) -> SessionManager:
    return request.app.state.session_manager


def get_assistant_manager(request: Request) -> AssistantManager:
    return request.app.state.assistant_manager


def get_function_registry(request: Request) -> FunctionRegistry:
    return request.app.state.function_registry


def get_host_calls(request: Request) -> HostCalls:
    return request.app.state.host_calls


def get_usage_tracker(request: Request) -> UsageTracker:
    return request.app.state.usage_tracker
