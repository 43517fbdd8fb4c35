"""
Chat routes: send a message, edit a prompt, read the conversation.
"""
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query
from starlette.status import HTTP_201_CREATED

from assistant_hub.dependencies import get_session_manager
from assistant_hub.schemas import (
    ChatRequest, ChatResponse, EditPromptRequest, EditPromptResponse, HistoryResponse
)
from assistant_hub.security import get_api_key, get_current_user
from assistant_hub.services.session import SessionManager

router = APIRouter(prefix="/api/assistants", tags=["chats"], dependencies=[Depends(get_api_key)])


@router.post("/{assistant_id}/chats", response_model=ChatResponse, status_code=HTTP_201_CREATED)
async def create_chat(
    assistant_id: str,
    request: ChatRequest,
    user: Dict[str, Any] = Depends(get_current_user),
    session_manager: SessionManager = Depends(get_session_manager),
):
    """
    Ask the assistant a question, starting a new thread when none is given.
    """
    result = await session_manager.send_message(assistant_id, user["id"], request.question, request.thread_id)
    return {"response": result.response, "msg_id": result.msg_id, "thread_id": result.thread_id}


@router.post("/{assistant_id}/chats/edit", response_model=EditPromptResponse)
async def edit_prompt(
    assistant_id: str,
    request: EditPromptRequest,
    user: Dict[str, Any] = Depends(get_current_user),
    session_manager: SessionManager = Depends(get_session_manager),
):
    """
    Replace a prompt and its reply, then ask the assistant again.
    """
    result = await session_manager.edit_prompt(
        assistant_id, user["id"], request.thread_id, request.message_id, request.new_prompt
    )
    return {
        "response": result.response,
        "msg_id": result.msg_id,
        "thread_id": result.thread_id,
        "edited_prompt": request.new_prompt,
    }


@router.get("/{assistant_id}/chats", response_model=HistoryResponse)
async def get_chat(
    assistant_id: str,
    thread_id: Optional[str] = None,
    limit: int = Query(20, ge=1, le=100),
    after: Optional[str] = None,
    before: Optional[str] = None,
    user: Dict[str, Any] = Depends(get_current_user),
    session_manager: SessionManager = Depends(get_session_manager),
):
    """
    Conversation history as (prompt, reply) pairs, most recent first.
    """
    return await session_manager.get_history(assistant_id, user["id"], thread_id, limit, after, before)
