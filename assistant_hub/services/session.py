"""
Conversation session manager.
Creates or reuses threads, starts runs and maps results back to thread records.
"""
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from assistant_hub import config
from assistant_hub.exceptions import NotFoundError, ValidationError
from assistant_hub.services.dispatcher import AssistantConfig
from assistant_hub.services.formatter import citation_file_ids, format_history, process_assistant_message
from assistant_hub.services.openai_svc import OpenAIService
from assistant_hub.services.orchestrator import RunOrchestrator
from assistant_hub.services.usage import UsageTracker
from assistant_hub.storage.file_storage import FileStorage

logger = logging.getLogger(__name__)

INCOMPATIBLE_TOOLS = ("code_interpreter", "file_search")


@dataclass
class ChatResult:
    response: str
    msg_id: str
    thread_id: str


def tool_dicts(tools: List[Any]) -> List[Dict[str, Any]]:
    return [tool.model_dump(exclude_none=True) if hasattr(tool, "model_dump") else dict(tool) for tool in tools or []]


def find_reply(messages: List[Any], message_id: str) -> Optional[Any]:
    """
    The assistant reply that directly follows ``message_id``.

    Scanning stops at the first assistant message (the reply) or at the next
    user message, in which case the edited prompt is assumed to have no reply.
    """
    ordered = sorted(messages, key=lambda m: m.created_at)
    index = next(i for i, m in enumerate(ordered) if m.id == message_id)
    for message in ordered[index + 1:]:
        if message.role == "assistant":
            return message
        if message.role == "user":
            return None
    return None


class SessionManager:
    """Entry point for chatting with an assistant."""
    def __init__(self, storage: FileStorage, openai_service: OpenAIService, orchestrator: RunOrchestrator,
                 usage: UsageTracker):
        self.storage = storage
        self.openai_service = openai_service
        self.orchestrator = orchestrator
        self.usage = usage

    @staticmethod
    def validate_prompt(prompt: Optional[str]) -> None:
        if not prompt or not prompt.strip():
            raise ValidationError("The message cannot be empty.")
        if len(prompt) > config.MAX_PROMPT_LENGTH:
            raise ValidationError("The message you submitted was too long, please reload and try again.")

    def _get_assistant_record(self, assistant_id: str) -> Dict[str, Any]:
        record = self.storage.get_assistant(assistant_id)
        if record is None:
            raise NotFoundError("Assistant not found.")
        return record

    def _get_thread_record(self, assistant_id: str, user_id: str, thread_id: str) -> Dict[str, Any]:
        thread = self.storage.find_thread(thread_id, assistant_id, user_id)
        if thread is None:
            raise NotFoundError("Thread not found or unauthorized access.")
        return thread

    async def prepare_assistant(self, assistant_id: str, record: Dict[str, Any]) -> AssistantConfig:
        """Retrieve the remote assistant and enforce the model/tool compatibility policy."""
        remote = await self.openai_service.retrieve_assistant(assistant_id)
        assistant = AssistantConfig(
            assistant_id=assistant_id,
            model=remote.model,
            tools=tool_dicts(remote.tools),
            function_calling=bool(record.get("function_calling")),
        )
        if assistant.model == config.RESTRICTED_MODEL:
            removed = [t["type"] for t in assistant.tools if t.get("type") in INCOMPATIBLE_TOOLS]
            if removed:
                kept = [t for t in assistant.tools if t.get("type") not in INCOMPATIBLE_TOOLS]
                await self.openai_service.update_assistant_tools(assistant_id, kept)
                assistant.tools = kept
                logger.info(f"Removed {', '.join(removed)} from {assistant_id} for {assistant.model} compatibility")
        return assistant

    async def _complete(self, thread_id: str, assistant: AssistantConfig, user_id: str) -> Any:
        run = await self.openai_service.create_run(thread_id, assistant.assistant_id)
        return await self.orchestrator.run_to_completion(thread_id, run.id, assistant, user_id)

    async def _filenames(self, messages: List[Any]) -> Dict[str, str]:
        filenames = {}
        for file_id in citation_file_ids(messages):
            meta = await self.openai_service.retrieve_file(file_id)
            if meta:
                filenames[file_id] = meta["filename"]
        return filenames

    async def render(self, message: Any) -> str:
        return process_assistant_message(message, await self._filenames([message]))

    async def _track(self, user_id: str, assistant: AssistantConfig, thread_id: str, question: str,
                     answer: str) -> None:
        try:
            await self.usage.record(user_id, assistant.assistant_id, thread_id, question, answer, assistant.model)
        except Exception as e:
            logger.error(f"Failed to record usage for thread {thread_id}: {type(e).__name__}: {e}")

    async def send_message(self, assistant_id: str, user_id: str, question: str,
                           thread_id: Optional[str] = None) -> ChatResult:
        self.validate_prompt(question)
        record = self._get_assistant_record(assistant_id)
        assistant = await self.prepare_assistant(assistant_id, record)

        if not thread_id:
            thread = await self.openai_service.create_thread(question)
            thread_id = thread.id
            self.storage.insert("threads", {
                "thread_id": thread_id,
                "assistant_id": assistant_id,
                "user_id": user_id,
                "title": question[:config.THREAD_TITLE_LENGTH],
            }, doc_id=thread_id)
            logger.info(f"Created thread {thread_id} for assistant {assistant_id}")
        else:
            self._get_thread_record(assistant_id, user_id, thread_id)
            await self.openai_service.add_message(thread_id, question)

        message = await self._complete(thread_id, assistant, user_id)
        response = await self.render(message)
        await self._track(user_id, assistant, thread_id, question, response)
        return ChatResult(response=response, msg_id=message.id, thread_id=thread_id)

    async def edit_prompt(self, assistant_id: str, user_id: str, thread_id: str, message_id: str,
                          new_prompt: str) -> ChatResult:
        self.validate_prompt(new_prompt)
        if not message_id or not thread_id:
            raise ValidationError("Invalid input. Please check message ID, prompt content, and thread ID.")
        record = self._get_assistant_record(assistant_id)
        self._get_thread_record(assistant_id, user_id, thread_id)
        assistant = await self.prepare_assistant(assistant_id, record)

        page = await self.openai_service.list_messages(thread_id, limit=100)
        if not any(m.id == message_id for m in page.data):
            raise NotFoundError("Edited message not found.")
        reply = find_reply(page.data, message_id)

        await self.openai_service.delete_message(thread_id, message_id)
        if reply is not None:
            await self.openai_service.delete_message(thread_id, reply.id)
        logger.info(f"Edited message {message_id} of thread {thread_id} (reply removed: {reply is not None})")
        await self.openai_service.add_message(thread_id, new_prompt)

        message = await self._complete(thread_id, assistant, user_id)
        response = await self.render(message)
        await self._track(user_id, assistant, thread_id, new_prompt, response)
        return ChatResult(response=response, msg_id=message.id, thread_id=thread_id)

    async def get_history(self, assistant_id: str, user_id: str, thread_id: Optional[str], limit: int = 20,
                          after: Optional[str] = None, before: Optional[str] = None) -> Dict[str, Any]:
        if not thread_id:
            raise ValidationError("Thread id is required.")
        metadata = {"first_id": None, "last_id": None, "has_more": False}
        if self.storage.find_thread(thread_id, assistant_id, user_id) is None:
            return {"messages": [], "metadata": metadata}

        page = await self.openai_service.list_messages(thread_id, limit=limit, order="desc", after=after, before=before)
        filenames = await self._filenames([m for m in page.data if m.role == "assistant"])
        messages = format_history(page.data, render=lambda m: process_assistant_message(m, filenames))
        metadata = {"first_id": page.first_id, "last_id": page.last_id, "has_more": page.has_more}
        return {"messages": messages, "metadata": metadata}
