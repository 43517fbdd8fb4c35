"""
Entry point of the assistant hub service.
"""
import logging
from typing import Any, Dict, Optional

import httpx
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.openapi.docs import get_swagger_ui_html
from fastapi.openapi.utils import get_openapi

from assistant_hub import config
from assistant_hub.exceptions import setup_exception_handlers
from assistant_hub.routers import assistants, chats, file_meta, integrations, users
from assistant_hub.security import check_api_key
from assistant_hub.services.assistants import AssistantManager
from assistant_hub.services.dispatcher import ToolDispatcher
from assistant_hub.services.functions import FunctionRegistry
from assistant_hub.services.integrations import IntegrationExecutor
from assistant_hub.services.openai_svc import OpenAIService
from assistant_hub.services.orchestrator import RunOrchestrator
from assistant_hub.services.sandbox import HostCalls
from assistant_hub.services.scheduler import Scheduler
from assistant_hub.services.session import SessionManager
from assistant_hub.services.usage import GeminiTokenCounter, OpenAITokenCounter, UsageEstimator, UsageTracker
from assistant_hub.storage.file_storage import FileStorage

logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


def create_app(
    storage: Optional[FileStorage] = None,
    openai_service: Optional[OpenAIService] = None,
    http_client: Optional[httpx.AsyncClient] = None,
    token_counters: Optional[Dict[str, Any]] = None,
    api_token: Optional[str] = None,
    poll_interval: Optional[float] = None,
    run_timeout: Optional[float] = None,
) -> FastAPI:
    app = FastAPI(
        title="Assistant Hub",
        description="Orchestrates OpenAI assistants, tool calls and usage tracking",
        version="1.0.0",
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    setup_exception_handlers(app)

    storage = storage or FileStorage(config.DATA_DIR, config.STORE_FILENAME)
    openai_service = openai_service or OpenAIService()
    http_client = http_client or httpx.AsyncClient(timeout=config.HTTP_TIMEOUT)
    host_calls = HostCalls(http_client)
    registry = FunctionRegistry(storage)
    dispatcher = ToolDispatcher(registry, IntegrationExecutor(storage, http_client), host_calls)
    orchestrator = RunOrchestrator(openai_service, dispatcher, poll_interval=poll_interval, timeout=run_timeout)
    estimator = UsageEstimator(token_counters or {
        "openai": OpenAITokenCounter(),
        "gemini": GeminiTokenCounter(http_client),
    })
    usage_tracker = UsageTracker(storage, estimator)

    app.state.api_token = config.API_TOKEN if api_token is None else api_token
    app.state.storage = storage
    app.state.openai_service = openai_service
    app.state.http_client = http_client
    app.state.host_calls = host_calls
    app.state.function_registry = registry
    app.state.usage_tracker = usage_tracker
    app.state.assistant_manager = AssistantManager(storage, openai_service)
    app.state.session_manager = SessionManager(storage, openai_service, orchestrator, usage_tracker)
    app.state.scheduler = Scheduler(storage, config.SAVE_INTERVAL)

    app.include_router(chats.router)
    app.include_router(assistants.router)
    app.include_router(integrations.router)
    app.include_router(users.router)
    app.include_router(file_meta.router)

    @app.get("/docs", include_in_schema=False)
    async def custom_swagger_ui_html(request: Request):
        check_api_key(request, request.headers.get("X-API-Key"))
        return get_swagger_ui_html(
            openapi_url="/openapi.json",
            title=app.title + " - Swagger UI",
            oauth2_redirect_url=app.swagger_ui_oauth2_redirect_url,
            swagger_js_url="https://cdn.jsdelivr.net/npm/swagger-ui-dist@5/swagger-ui-bundle.js",
            swagger_css_url="https://cdn.jsdelivr.net/npm/swagger-ui-dist@5/swagger-ui.css",
        )

    @app.get("/openapi.json", include_in_schema=False)
    async def get_open_api_endpoint(request: Request):
        check_api_key(request, request.headers.get("X-API-Key"))
        return get_openapi(
            title=app.title,
            version=app.version,
            description=app.description,
            routes=app.routes,
        )

    @app.on_event("startup")
    async def startup_event():
        logger.info("Starting assistant hub")
        registry.reload()
        await app.state.scheduler.start()

    @app.on_event("shutdown")
    async def shutdown_event():
        logger.info("Stopping assistant hub")
        await app.state.scheduler.stop()
        storage.periodic_save()
        await http_client.aclose()

    @app.get("/")
    async def root():
        return {"message": "Assistant Hub API", "version": app.version}

    return app


app = create_app()

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "assistant_hub.main:app",
        host=config.HOST,
        port=config.PORT,
    )
