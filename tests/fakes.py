import itertools
from types import SimpleNamespace
from typing import Any, Dict, List, Optional

from assistant_hub.exceptions import RemoteApiError
from assistant_hub.services.openai_svc import MessagePage


def make_message(
    message_id: str,
    role: str,
    text: Optional[str],
    created_at: int,
    run_id: Optional[str] = None,
    annotations: Optional[List[Any]] = None,
) -> SimpleNamespace:
    content = []
    if text is not None:
        content = [SimpleNamespace(type="text", text=SimpleNamespace(value=text, annotations=annotations or []))]
    return SimpleNamespace(id=message_id, role=role, content=content, created_at=created_at, run_id=run_id)


def make_citation(marker: str, file_id: str) -> SimpleNamespace:
    return SimpleNamespace(type="file_citation", text=marker, file_citation=SimpleNamespace(file_id=file_id))


def make_tool_call(call_id: str, name: str, arguments: str = "{}") -> SimpleNamespace:
    return SimpleNamespace(id=call_id, type="function", function=SimpleNamespace(name=name, arguments=arguments))


class FakeRun:
    def __init__(self, run_id: str, thread_id: str, assistant_id: str, statuses: List[str],
                 tool_calls: List[Any], reply: Optional[str]) -> None:
        self.id = run_id
        self.thread_id = thread_id
        self.assistant_id = assistant_id
        self.statuses = statuses
        self.index = 0
        self.tool_calls = tool_calls
        self.reply = reply
        self.replied = False
        self.submissions: List[List[Dict[str, str]]] = []

    @property
    def status(self) -> str:
        return self.statuses[self.index]

    def snapshot(self) -> SimpleNamespace:
        required_action = None
        if self.status == "requires_action":
            required_action = SimpleNamespace(
                type="submit_tool_outputs",
                submit_tool_outputs=SimpleNamespace(tool_calls=None if self.tool_calls is None else list(self.tool_calls)),
            )
        return SimpleNamespace(id=self.id, thread_id=self.thread_id, status=self.status,
                               required_action=required_action)


class FakeOpenAIService:
    """
    In-memory stand-in for OpenAIService.

    Every run walks through ``run_statuses``. A ``requires_action`` status holds
    until tool outputs are submitted; other statuses advance on each poll. The
    first time a run reports ``completed`` the reply is appended to the thread.
    """

    def __init__(
        self,
        run_statuses: Optional[List[str]] = None,
        tool_calls: Optional[List[Any]] = None,
        replies: Optional[List[Optional[str]]] = None,
        files: Optional[Dict[str, str]] = None,
    ) -> None:
        self.run_statuses = run_statuses or ["completed"]
        self.tool_calls = tool_calls or []
        self.replies = list(replies or [])
        self.files = files or {}
        self.assistants: Dict[str, SimpleNamespace] = {}
        self.threads: Dict[str, List[SimpleNamespace]] = {}
        self.runs: Dict[str, FakeRun] = {}
        self.deleted_messages: List[str] = []
        self.updated_tools: List[Dict[str, Any]] = []
        self.get_run_calls = 0
        self.fail_on: set = set()
        self._ids = itertools.count(1)
        self._clock = itertools.count(1_700_000_000)

    def _next_id(self, prefix: str) -> str:
        return f"{prefix}_{next(self._ids)}"

    def _check(self, operation: str) -> None:
        if operation in self.fail_on:
            raise RemoteApiError(f"{operation} failed")

    def add_assistant(self, assistant_id: str, model: str = "gpt-4o", tools: Optional[List[Dict[str, Any]]] = None,
                      name: Optional[str] = None, instructions: str = "") -> SimpleNamespace:
        remote = SimpleNamespace(
            id=assistant_id,
            name=name or assistant_id,
            model=model,
            instructions=instructions,
            tools=[dict(tool) for tool in tools or []],
            tool_resources=None,
        )
        self.assistants[assistant_id] = remote
        return remote

    def add_thread_message(self, thread_id: str, role: str, text: Optional[str],
                           run_id: Optional[str] = None, annotations: Optional[List[Any]] = None) -> SimpleNamespace:
        message = make_message(self._next_id("msg"), role, text, next(self._clock), run_id, annotations)
        self.threads.setdefault(thread_id, []).append(message)
        return message

    async def retrieve_assistant(self, assistant_id: str) -> Any:
        self._check("retrieve_assistant")
        if assistant_id not in self.assistants:
            raise RemoteApiError("Failed to retrieve assistant configuration.")
        return self.assistants[assistant_id]

    async def create_assistant(self, model: str, name: Optional[str] = None, instructions: Optional[str] = None,
                               tools: Optional[List[Dict[str, Any]]] = None) -> Any:
        self._check("create_assistant")
        return self.add_assistant(self._next_id("asst"), model=model, tools=tools, name=name,
                                  instructions=instructions or "")

    async def update_assistant_tools(self, assistant_id: str, tools: List[Dict[str, Any]]) -> Any:
        self._check("update_assistant_tools")
        self.updated_tools = tools
        self.assistants[assistant_id].tools = [dict(tool) for tool in tools]
        return self.assistants[assistant_id]

    async def update_assistant(self, assistant_id: str, **fields: Any) -> Any:
        self._check("update_assistant")
        remote = self.assistants[assistant_id]
        for key, value in fields.items():
            setattr(remote, key, [dict(tool) for tool in value] if key == "tools" else value)
        return remote

    async def delete_assistant(self, assistant_id: str) -> Any:
        self._check("delete_assistant")
        return SimpleNamespace(id=assistant_id, deleted=self.assistants.pop(assistant_id, None) is not None)

    async def create_thread(self, initial_message: str) -> Any:
        self._check("create_thread")
        thread_id = self._next_id("thread")
        self.threads[thread_id] = []
        self.add_thread_message(thread_id, "user", initial_message)
        return SimpleNamespace(id=thread_id)

    async def add_message(self, thread_id: str, content: str, role: str = "user") -> Any:
        self._check("add_message")
        return self.add_thread_message(thread_id, role, content)

    async def delete_message(self, thread_id: str, message_id: str) -> Any:
        self._check("delete_message")
        self.threads[thread_id] = [m for m in self.threads[thread_id] if m.id != message_id]
        self.deleted_messages.append(message_id)
        return SimpleNamespace(id=message_id, deleted=True)

    async def list_messages(self, thread_id: str, limit: int = 20, order: str = "desc",
                            after: Optional[str] = None, before: Optional[str] = None) -> MessagePage:
        self._check("list_messages")
        messages = sorted(self.threads.get(thread_id, []), key=lambda m: m.created_at, reverse=(order == "desc"))
        if after:
            ids = [m.id for m in messages]
            messages = messages[ids.index(after) + 1:] if after in ids else []
        data = messages[:limit]
        return MessagePage(
            data=data,
            first_id=data[0].id if data else None,
            last_id=data[-1].id if data else None,
            has_more=len(messages) > limit,
        )

    async def create_run(self, thread_id: str, assistant_id: str) -> Any:
        self._check("create_run")
        reply = self.replies.pop(0) if self.replies else f"Answer to run {len(self.runs) + 1}"
        run = FakeRun(self._next_id("run"), thread_id, assistant_id, list(self.run_statuses),
                      list(self.tool_calls), reply)
        self.runs[run.id] = run
        return SimpleNamespace(id=run.id, status="queued")

    async def get_run(self, thread_id: str, run_id: str) -> Any:
        self._check("get_run")
        self.get_run_calls += 1
        run = self.runs[run_id]
        snapshot = run.snapshot()
        if run.status == "completed" and not run.replied:
            run.replied = True
            if run.reply is not None:
                self.add_thread_message(thread_id, "assistant", run.reply, run_id=run_id)
        if run.status != "requires_action" and run.index < len(run.statuses) - 1:
            run.index += 1
        return snapshot

    async def submit_tool_outputs(self, thread_id: str, run_id: str, tool_outputs: List[Dict[str, str]]) -> Any:
        self._check("submit_tool_outputs")
        run = self.runs[run_id]
        run.submissions.append(tool_outputs)
        if run.index < len(run.statuses) - 1:
            run.index += 1
        return run.snapshot()

    async def retrieve_file(self, file_id: str) -> Optional[Dict[str, str]]:
        if file_id not in self.files:
            return None
        return {"filename": self.files[file_id]}


class FakeTokenCounter:
    """One token per whitespace separated word."""

    def __init__(self) -> None:
        self.calls: List[tuple] = []

    async def count(self, text: str, model: str) -> int:
        self.calls.append((text, model))
        return len(text.split())
