"""
Assistant management: local records that mirror remote assistants.
"""
import logging
from typing import Any, Dict, List, Optional

from assistant_hub import config
from assistant_hub.exceptions import ConflictError, ForbiddenError, NotFoundError, ValidationError
from assistant_hub.services.openai_svc import OpenAIService
from assistant_hub.services.session import tool_dicts
from assistant_hub.storage.file_storage import FileStorage

logger = logging.getLogger(__name__)


def _code_interpreter_files(remote: Any) -> List[str]:
    resources = getattr(remote, "tool_resources", None)
    code_interpreter = getattr(resources, "code_interpreter", None)
    return list(getattr(code_interpreter, "file_ids", None) or [])


def _function_tool(function: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "type": "function",
        "function": {
            "name": function["name"],
            "description": function.get("description") or function["name"],
            "parameters": function.get("parameters") or {"type": "object", "properties": {}},
        },
    }


class AssistantManager:
    """Creates, lists, updates and deletes assistants."""
    def __init__(self, storage: FileStorage, openai_service: OpenAIService):
        self.storage = storage
        self.openai_service = openai_service

    def _check_name(self, name: Optional[str]) -> None:
        if name and self.storage.find_one("assistants", name=name, is_deleted=False):
            raise ConflictError("An assistant with this name already exists.")

    def _save(self, remote: Any, user_id: str, category: str, description: Optional[str],
              function_calling: bool, model: Optional[str] = None) -> Dict[str, Any]:
        record = self.storage.insert("assistants", {
            "assistant_id": remote.id,
            "name": remote.name,
            "model": model or remote.model,
            "instructions": remote.instructions,
            "tools": tool_dicts(remote.tools),
            "file_ids": _code_interpreter_files(remote),
            "function_calling": function_calling,
            "user_id": user_id,
            "category": category,
            "description": description,
            "is_deleted": False,
        }, doc_id=remote.id)
        logger.info(f"Saved assistant {remote.id} ({remote.name})")
        return record

    async def create(self, user_id: str, name: Optional[str], instructions: Optional[str], model: Optional[str],
                     tools: List[str], category: str = "ORGANIZATIONAL",
                     description: Optional[str] = None) -> Dict[str, Any]:
        self._check_name(name)
        remote = await self.openai_service.create_assistant(
            model=model or config.DEFAULT_MODEL,
            name=name,
            instructions=instructions,
            tools=[{"type": tool} for tool in tools],
        )
        return self._save(remote, user_id, category, description, function_calling=False, model=model)

    async def import_existing(self, user_id: str, assistant_id: str, category: str = "ORGANIZATIONAL",
                              description: Optional[str] = None) -> Dict[str, Any]:
        if self.storage.find_one("assistants", assistant_id=assistant_id):
            raise ConflictError("This assistant already exists.")
        remote = await self.openai_service.retrieve_assistant(assistant_id)
        self._check_name(remote.name)
        return self._save(remote, user_id, category, description, function_calling=False)

    async def create_function_calling(self, user_id: str, name: str, instructions: Optional[str],
                                      model: Optional[str], functions: List[Dict[str, Any]],
                                      category: str = "ORGANIZATIONAL",
                                      description: Optional[str] = None) -> Dict[str, Any]:
        self._check_name(name)
        tools = [_function_tool(function) for function in functions]
        remote = await self.openai_service.create_assistant(
            model=model or config.DEFAULT_MODEL, name=name, instructions=instructions, tools=tools,
        )
        return self._save(remote, user_id, category, description, function_calling=True)

    def list_assistants(self, category: Optional[str] = None, search: str = "", page: int = 1, limit: int = 10,
                        function_calling: Optional[bool] = None, user_id: Optional[str] = None) -> Dict[str, Any]:
        filters: Dict[str, Any] = {"is_deleted": False}
        if category:
            filters["category"] = category
        if user_id:
            filters["user_id"] = user_id
        if function_calling is not None:
            filters["function_calling"] = function_calling
        records = self.storage.find("assistants", **filters)
        if search:
            records = [r for r in records if search.lower() in (r.get("name") or "").lower()]
        records.sort(key=lambda r: r["created_at"], reverse=True)
        start = (page - 1) * limit
        return {"assistants": records[start:start + limit], "total": len(records)}

    def get(self, assistant_id: str) -> Dict[str, Any]:
        record = self.storage.get_assistant(assistant_id)
        if record is None:
            raise NotFoundError("Assistant not found.")
        return record

    def get_owned(self, assistant_id: str, user: Dict[str, Any]) -> Dict[str, Any]:
        """Return the record if the user created it or is a superadmin."""
        record = self.get(assistant_id)
        if record.get("user_id") != user["id"] and user.get("role") != "superadmin":
            logger.warning(f"User {user['id']} may not modify assistant {assistant_id}")
            raise ForbiddenError("You can only modify assistants you created.")
        return record

    async def update(self, assistant_id: str, user: Dict[str, Any], name: Optional[str] = None,
                     instructions: Optional[str] = None, model: Optional[str] = None,
                     description: Optional[str] = None, category: Optional[str] = None,
                     functions: Optional[List[Dict[str, Any]]] = None) -> Dict[str, Any]:
        """
        Update the remote assistant first, then the local record.

        Only fields that are not None change. Function tools can only be
        replaced on function-calling assistants.
        """
        record = self.get_owned(assistant_id, user)
        if name and name != record.get("name"):
            self._check_name(name)
        remote_fields = {
            key: value for key, value in (("name", name), ("instructions", instructions), ("model", model))
            if value is not None
        }
        if functions is not None:
            if not record.get("function_calling"):
                raise ValidationError("Function tools can only be set on function-calling assistants.")
            remote_fields["tools"] = [_function_tool(function) for function in functions]

        local_fields: Dict[str, Any] = dict(remote_fields)
        if remote_fields:
            remote = await self.openai_service.update_assistant(assistant_id, **remote_fields)
            if "tools" in remote_fields:
                local_fields["tools"] = tool_dicts(remote.tools)
        if description is not None:
            local_fields["description"] = description
        if category is not None:
            local_fields["category"] = category
        if not local_fields:
            return record
        updated = self.storage.update("assistants", assistant_id, **local_fields)
        logger.info(f"Updated assistant {assistant_id}: {', '.join(sorted(local_fields))}")
        return updated

    async def delete(self, assistant_id: str, user: Dict[str, Any]) -> None:
        self.get_owned(assistant_id, user)
        await self.openai_service.delete_assistant(assistant_id)
        self.storage.update("assistants", assistant_id, is_deleted=True)
        logger.info(f"Deleted assistant {assistant_id}")

    async def _function_tools(self, assistant_id: str) -> List[Dict[str, Any]]:
        self.get(assistant_id)
        remote = await self.openai_service.retrieve_assistant(assistant_id)
        return [t["function"] for t in tool_dicts(remote.tools) if t.get("type") == "function"]

    async def function_names(self, assistant_id: str) -> List[str]:
        return [function["name"] for function in await self._function_tools(assistant_id)]

    async def function_parameters(self, assistant_id: str, function_name: str) -> List[str]:
        for function in await self._function_tools(assistant_id):
            if function["name"] == function_name:
                return list(((function.get("parameters") or {}).get("properties") or {}).keys())
        raise NotFoundError(f"Function {function_name} not found")
