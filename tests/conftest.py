from pathlib import Path
from typing import Any, Dict, List, Optional

import httpx
import pytest
from asgi_lifespan import LifespanManager
from httpx import ASGITransport, AsyncClient

from assistant_hub.main import create_app
from assistant_hub.services.dispatcher import ToolDispatcher
from assistant_hub.services.functions import FunctionRegistry
from assistant_hub.services.integrations import IntegrationExecutor
from assistant_hub.services.sandbox import HostCalls
from assistant_hub.storage.file_storage import FileStorage
from tests.fakes import FakeOpenAIService, FakeTokenCounter

API_TOKEN = "test-token"


def seed_user(storage: FileStorage, email: str = "ada@example.com", role: str = "user") -> str:
    user = storage.insert("users", {
        "fname": "Ada",
        "lname": "Lovelace",
        "email": email,
        "role": role,
        "maxusertokens": 5000,
        "currentusertokens": 0,
    })
    return user["id"]


def seed_assistant(
    storage: FileStorage,
    fake_openai: FakeOpenAIService,
    assistant_id: str = "asst_test",
    model: str = "gpt-4o",
    tools: Optional[List[Dict[str, Any]]] = None,
    function_calling: bool = False,
) -> str:
    fake_openai.add_assistant(assistant_id, model=model, tools=tools)
    storage.insert("assistants", {
        "assistant_id": assistant_id,
        "name": assistant_id,
        "model": model,
        "function_calling": function_calling,
        "category": "ORGANIZATIONAL",
        "is_deleted": False,
    }, doc_id=assistant_id)
    return assistant_id


@pytest.fixture
def storage(tmp_path: Path) -> FileStorage:
    return FileStorage(str(tmp_path / "data"), "store.json")


@pytest.fixture
async def http_client():
    async with httpx.AsyncClient() as client:
        yield client


@pytest.fixture
def dispatcher(storage: FileStorage, http_client: httpx.AsyncClient) -> ToolDispatcher:
    registry = FunctionRegistry(storage)
    registry.reload()
    return ToolDispatcher(registry, IntegrationExecutor(storage, http_client), HostCalls(http_client))


@pytest.fixture
def app_factory(tmp_path: Path):
    def _factory(*, fake_openai: Optional[FakeOpenAIService] = None, run_timeout: float = 5.0):
        storage = FileStorage(str(tmp_path / "app-data"), "store.json")
        fake_openai = fake_openai or FakeOpenAIService()
        app = create_app(
            storage=storage,
            openai_service=fake_openai,
            http_client=httpx.AsyncClient(),
            token_counters={"openai": FakeTokenCounter(), "gemini": FakeTokenCounter()},
            api_token=API_TOKEN,
            poll_interval=0,
            run_timeout=run_timeout,
        )
        return app, storage, fake_openai

    return _factory


@pytest.fixture
async def client(app_factory):
    app, storage, fake_openai = app_factory()
    async with LifespanManager(app):
        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test",
                               headers={"X-API-Key": API_TOKEN}) as http_client:
            http_client.app = app  # type: ignore[attr-defined]
            http_client.storage = storage  # type: ignore[attr-defined]
            http_client.fake_openai = fake_openai  # type: ignore[attr-defined]
            yield http_client
