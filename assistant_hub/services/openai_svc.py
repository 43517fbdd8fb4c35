"""
Wrapper around the OpenAI Assistants API.
Every SDK failure is logged and re-raised as RemoteApiError.
"""
import logging
from dataclasses import dataclass, field
from typing import Dict, Any, Optional, List

import openai

from assistant_hub import config
from assistant_hub.exceptions import RemoteApiError

logger = logging.getLogger(__name__)


@dataclass
class MessagePage:
    """One page of thread messages plus cursor metadata."""
    data: List[Any] = field(default_factory=list)
    first_id: Optional[str] = None
    last_id: Optional[str] = None
    has_more: bool = False


class OpenAIService:
    """Class for working with the OpenAI Assistants API."""
    def __init__(self, client: Optional[openai.AsyncOpenAI] = None):
        self.client = client or openai.AsyncOpenAI(
            api_key=config.OPENAI_API_KEY,
            organization=(config.OPENAI_ORG_ID or None),
        )

    async def retrieve_assistant(self, assistant_id: str) -> Any:
        try:
            return await self.client.beta.assistants.retrieve(assistant_id)
        except openai.OpenAIError as e:
            logger.error(f"Failed to retrieve assistant {assistant_id}: {e}")
            raise RemoteApiError("Failed to retrieve assistant configuration.") from e

    async def create_assistant(self, model: str, name: Optional[str] = None, instructions: Optional[str] = None,
                               tools: Optional[List[Dict[str, Any]]] = None) -> Any:
        try:
            return await self.client.beta.assistants.create(
                model=model,
                name=name,
                instructions=instructions,
                tools=tools or [],
            )
        except openai.OpenAIError as e:
            logger.error(f"Failed to create assistant {name}: {e}")
            raise RemoteApiError("Failed to create assistant.") from e

    async def update_assistant_tools(self, assistant_id: str, tools: List[Dict[str, Any]]) -> Any:
        try:
            return await self.client.beta.assistants.update(assistant_id, tools=tools)
        except openai.OpenAIError as e:
            logger.error(f"Failed to update tools of assistant {assistant_id}: {e}")
            raise RemoteApiError(
                "Failed to update assistant for model compatibility. Please update the assistant configuration."
            ) from e

    async def update_assistant(self, assistant_id: str, **fields: Any) -> Any:
        try:
            return await self.client.beta.assistants.update(assistant_id, **fields)
        except openai.OpenAIError as e:
            logger.error(f"Failed to update assistant {assistant_id}: {e}")
            raise RemoteApiError("Failed to update assistant.") from e

    async def delete_assistant(self, assistant_id: str) -> Any:
        try:
            return await self.client.beta.assistants.delete(assistant_id)
        except openai.OpenAIError as e:
            logger.error(f"Failed to delete assistant {assistant_id}: {e}")
            raise RemoteApiError("Failed to delete assistant.") from e

    async def create_thread(self, initial_message: str) -> Any:
        try:
            return await self.client.beta.threads.create(
                messages=[{"role": "user", "content": initial_message}]
            )
        except openai.OpenAIError as e:
            logger.error(f"Failed to create thread: {e}")
            raise RemoteApiError("Failed to create conversation thread.") from e

    async def add_message(self, thread_id: str, content: str, role: str = "user") -> Any:
        try:
            return await self.client.beta.threads.messages.create(
                thread_id=thread_id,
                role=role,
                content=content
            )
        except openai.OpenAIError as e:
            logger.error(f"Failed to add message to thread {thread_id}: {e}")
            raise RemoteApiError("Failed to add message to the conversation.") from e

    async def delete_message(self, thread_id: str, message_id: str) -> Any:
        try:
            return await self.client.beta.threads.messages.delete(message_id, thread_id=thread_id)
        except openai.OpenAIError as e:
            logger.error(f"Failed to delete message {message_id} from thread {thread_id}: {e}")
            raise RemoteApiError(
                "Failed to edit prompt. The original message may have been deleted, or there was an OpenAI API error."
            ) from e

    async def list_messages(self, thread_id: str, limit: int = 20, order: str = "desc",
                            after: Optional[str] = None, before: Optional[str] = None) -> MessagePage:
        params: Dict[str, Any] = {"limit": limit, "order": order}
        if after:
            params["after"] = after
        if before:
            params["before"] = before
        try:
            page = await self.client.beta.threads.messages.list(thread_id=thread_id, **params)
        except openai.OpenAIError as e:
            logger.error(f"Failed to list messages of thread {thread_id}: {e}")
            raise RemoteApiError("Failed to retrieve conversation messages.") from e
        data = list(page.data)
        return MessagePage(
            data=data,
            first_id=data[0].id if data else None,
            last_id=data[-1].id if data else None,
            has_more=bool(getattr(page, "has_more", False)),
        )

    async def create_run(self, thread_id: str, assistant_id: str) -> Any:
        try:
            return await self.client.beta.threads.runs.create(
                thread_id=thread_id,
                assistant_id=assistant_id
            )
        except openai.OpenAIError as e:
            logger.error(f"Failed to create run for thread {thread_id}: {e}")
            if "cannot be used with" in str(e):
                raise RemoteApiError(
                    "Model compatibility issue detected. Please update the assistant configuration and try again."
                ) from e
            raise RemoteApiError("Failed to initiate assistant response from OpenAI.") from e

    async def get_run(self, thread_id: str, run_id: str) -> Any:
        try:
            return await self.client.beta.threads.runs.retrieve(
                thread_id=thread_id,
                run_id=run_id
            )
        except openai.OpenAIError as e:
            logger.error(f"Failed to retrieve run {run_id} of thread {thread_id}: {e}")
            raise RemoteApiError("Failed to check run status.") from e

    async def submit_tool_outputs(self, thread_id: str, run_id: str, tool_outputs: List[Dict[str, str]]) -> Any:
        try:
            return await self.client.beta.threads.runs.submit_tool_outputs(
                thread_id=thread_id,
                run_id=run_id,
                tool_outputs=tool_outputs,
            )
        except openai.OpenAIError as e:
            logger.error(f"Failed to submit tool outputs for run {run_id} of thread {thread_id}: {e}")
            raise RemoteApiError("Failed to submit tool outputs.") from e

    async def retrieve_file(self, file_id: str) -> Optional[Dict[str, str]]:
        try:
            file_obj = await self.client.files.retrieve(file_id)
            return {"filename": file_obj.filename}
        except openai.NotFoundError as e:
            logger.warning("OpenAI file not found (%s): %s", file_id, e)
            return None
        except openai.OpenAIError as e:
            logger.error(f"Failed to retrieve file {file_id}: {e}")
            raise RemoteApiError("Failed to retrieve file metadata.") from e
