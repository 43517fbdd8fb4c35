"""
Turns raw thread messages into display text and (question, answer) pairs.
"""
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional, Set


def _first_text(message: Any) -> Optional[Any]:
    for block in message.content or []:
        if getattr(block, "type", "text") == "text" and getattr(block, "text", None) is not None:
            return block.text
    return None


def message_text(message: Any) -> str:
    text = _first_text(message)
    return text.value if text is not None else ""


def citation_file_ids(messages: Iterable[Any]) -> Set[str]:
    """File ids referenced by file-citation annotations."""
    file_ids = set()
    for message in messages:
        text = _first_text(message)
        for annotation in getattr(text, "annotations", None) or []:
            file_citation = getattr(annotation, "file_citation", None)
            if file_citation is not None:
                file_ids.add(file_citation.file_id)
    return file_ids


def process_assistant_message(message: Any, filenames: Optional[Dict[str, str]] = None) -> str:
    """Message text with citation markers replaced by ``[Source: <filename>]``."""
    text = _first_text(message)
    if text is None:
        return ""
    value = text.value
    filenames = filenames or {}
    for annotation in getattr(text, "annotations", None) or []:
        file_citation = getattr(annotation, "file_citation", None)
        if file_citation is None or not annotation.text:
            continue
        filename = filenames.get(file_citation.file_id)
        value = value.replace(annotation.text, f" [Source: {filename}]" if filename else "")
    return value


def _iso(created_at: int) -> str:
    return datetime.fromtimestamp(created_at, tz=timezone.utc).isoformat()


def format_history(messages: Iterable[Any], render: Callable[[Any], str] = message_text) -> List[Dict[str, Any]]:
    """
    Pair each user message with the assistant reply that follows it.

    Messages may arrive in any order; pairs come back most recent first.
    A user message without a reply before the next user message (or the end
    of the list) gets an empty ``bot_message``. Empty messages are ignored.
    """
    pairs: List[Dict[str, Any]] = []
    pending = None
    for message in sorted(messages, key=lambda m: m.created_at):
        if not message.content:
            continue
        if message.role == "user":
            if pending is not None:
                pairs.insert(0, dict(pending, bot_message=""))
            pending = {
                "msg_id": message.id,
                "chat_prompt": message_text(message),
                "created_at": _iso(message.created_at),
            }
        elif message.role == "assistant" and pending is not None:
            pairs.insert(0, dict(pending, bot_message=render(message)))
            pending = None
    if pending is not None:
        pairs.insert(0, dict(pending, bot_message=""))
    return pairs
