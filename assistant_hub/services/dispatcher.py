"""
Tool-call dispatcher.

Each pending tool call of a run is resolved to exactly one of:

* ``IntegrationCall``: the function name ends in the id of a registered
  integration API;
* ``ScriptCall``: the assistant uses custom function calling and a stored
  script of that name exists;
* ``StaticCall``: the assistant uses static function calling and a local
  function of that name exists;
* ``Unresolved``: nothing matched.

``dispatch`` returns one output per call, in input order, and never raises.
"""
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Union

from assistant_hub.exceptions import ToolExecutionError
from assistant_hub.services.functions import FunctionRegistry
from assistant_hub.services.integrations import IntegrationExecutor
from assistant_hub.services.sandbox import HostCalls, ScriptFunction

logger = logging.getLogger(__name__)

FUNCTION_NOT_FOUND = "This function doesn't exist."
FUNCTION_FAILED = "An error occurred while processing the function."


@dataclass
class AssistantConfig:
    """What the dispatcher needs to know about the assistant driving a run."""
    assistant_id: str
    model: str = ""
    tools: List[Dict[str, Any]] = field(default_factory=list)
    function_calling: bool = False

    def parameter_names(self, function_name: str) -> List[str]:
        """Declared parameter names of a function tool, in schema order."""
        for tool in self.tools:
            function = tool.get("function") or {}
            if tool.get("type") == "function" and function.get("name") == function_name:
                return list(((function.get("parameters") or {}).get("properties") or {}).keys())
        return []


@dataclass
class IntegrationCall:
    api: Dict[str, Any]


@dataclass
class ScriptCall:
    script: ScriptFunction
    parameter_names: List[str]


@dataclass
class StaticCall:
    function: Callable[[Dict[str, Any]], Any]


@dataclass
class Unresolved:
    pass


Resolution = Union[IntegrationCall, ScriptCall, StaticCall, Unresolved]


class ToolDispatcher:
    """Resolves and executes the tool calls of a run."""
    def __init__(self, registry: FunctionRegistry, integrations: IntegrationExecutor, host: HostCalls):
        self.registry = registry
        self.integrations = integrations
        self.host = host

    def resolve(self, assistant: AssistantConfig, function_name: str) -> Resolution:
        api = self.integrations.find_api(function_name)
        if api is not None:
            return IntegrationCall(api)
        if assistant.function_calling:
            script = self.registry.get_script(function_name)
            if script is not None:
                return ScriptCall(script, assistant.parameter_names(function_name))
            return Unresolved()
        function = self.registry.get_static(function_name)
        if function is not None:
            return StaticCall(function)
        return Unresolved()

    async def execute(self, resolution: Resolution, arguments: Dict[str, Any], user_id: str) -> Optional[Any]:
        if isinstance(resolution, IntegrationCall):
            return await self.integrations.execute(resolution.api, user_id, arguments)
        if isinstance(resolution, ScriptCall):
            args = [arguments.get(name) for name in resolution.parameter_names]
            return await resolution.script(self.host, *args)
        if isinstance(resolution, StaticCall):
            return resolution.function(arguments)
        if isinstance(resolution, Unresolved):
            return None
        raise ToolExecutionError(f"Unknown resolution {type(resolution).__name__}")

    async def dispatch_one(self, assistant: AssistantConfig, tool_call: Any, user_id: str) -> Dict[str, str]:
        function_name = tool_call.function.name
        output = {"tool_call_id": tool_call.id, "output": FUNCTION_NOT_FOUND}
        try:
            arguments = json.loads(tool_call.function.arguments or "{}")
            if not isinstance(arguments, dict):
                raise ToolExecutionError("Tool call arguments must be a JSON object")
            resolution = self.resolve(assistant, function_name)
            logger.info(f"Tool call {tool_call.id}: {function_name} -> {type(resolution).__name__}")
            if not isinstance(resolution, Unresolved):
                result = await self.execute(resolution, arguments, user_id)
                output["output"] = json.dumps(result, default=str)
        except Exception as e:
            logger.error(f"Tool call {tool_call.id} ({function_name}) failed: {type(e).__name__}: {e}")
            output["output"] = FUNCTION_FAILED
        return output

    async def dispatch(self, assistant: AssistantConfig, tool_calls: List[Any], user_id: str) -> List[Dict[str, str]]:
        outputs = []
        for tool_call in tool_calls:
            outputs.append(await self.dispatch_one(assistant, tool_call, user_id))
        return outputs
