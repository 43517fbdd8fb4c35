"""
Run lifecycle orchestration: poll a run until it is terminal, answering
tool calls when it pauses, and return the assistant's reply.
"""
import asyncio
import logging
from typing import Any, Optional

from assistant_hub import config
from assistant_hub.exceptions import NoAssistantReply, RemoteApiError, RunFailed, RunTimeout
from assistant_hub.services.dispatcher import AssistantConfig, ToolDispatcher
from assistant_hub.services.openai_svc import OpenAIService

logger = logging.getLogger(__name__)

COMPLETED = "completed"
REQUIRES_ACTION = "requires_action"
FAILED_STATUSES = ("failed", "cancelled", "expired", "incomplete")


class RunOrchestrator:
    """Drives one run from creation to its final assistant message."""
    def __init__(self, openai_service: OpenAIService, dispatcher: ToolDispatcher,
                 poll_interval: Optional[float] = None, timeout: Optional[float] = None):
        self.openai_service = openai_service
        self.dispatcher = dispatcher
        self.poll_interval = config.RUN_POLL_INTERVAL if poll_interval is None else poll_interval
        self.timeout = config.RUN_TIMEOUT if timeout is None else timeout

    async def run_to_completion(self, thread_id: str, run_id: str, assistant: AssistantConfig, user_id: str) -> Any:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.timeout
        run = await self.openai_service.get_run(thread_id, run_id)
        while run.status != COMPLETED:
            logger.debug(f"Run {run_id} of thread {thread_id}: {run.status}")
            if run.status in FAILED_STATUSES:
                logger.error(f"Run {run_id} of thread {thread_id} ended with status {run.status}")
                raise RunFailed()
            if run.status == REQUIRES_ACTION:
                await self._answer_tool_calls(thread_id, run_id, assistant, user_id)
            if loop.time() >= deadline:
                logger.error(f"Run {run_id} of thread {thread_id} still {run.status} after {self.timeout}s")
                raise RunTimeout()
            await asyncio.sleep(self.poll_interval)
            run = await self.openai_service.get_run(thread_id, run_id)
        return await self.fetch_final_message(thread_id, run_id)

    async def _answer_tool_calls(self, thread_id: str, run_id: str, assistant: AssistantConfig, user_id: str) -> None:
        try:
            pending = await self.openai_service.get_run(thread_id, run_id)
            tool_calls = pending.required_action.submit_tool_outputs.tool_calls
            tool_outputs = await self.dispatcher.dispatch(assistant, tool_calls, user_id)
            await self.openai_service.submit_tool_outputs(thread_id, run_id, tool_outputs)
        except (RemoteApiError, AttributeError, TypeError) as e:
            logger.error(f"Failed to handle tool calls for run {run_id} of thread {thread_id}: {e}")
            raise RunFailed() from e
        logger.info(f"Submitted {len(tool_outputs)} tool outputs for run {run_id}")

    async def fetch_final_message(self, thread_id: str, run_id: str) -> Any:
        page = await self.openai_service.list_messages(thread_id)
        for message in page.data:
            if message.run_id == run_id and message.role == "assistant":
                return message
        logger.error(f"Run {run_id} of thread {thread_id} completed without an assistant message")
        raise NoAssistantReply()
