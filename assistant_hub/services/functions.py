"""
Function registry for tool calls.

Two kinds of functions answer tool calls by name:

* static functions, registered in code and called with the full argument
  object;
* sandboxed scripts, compiled from the ``function_definitions`` collection
  and called positionally.

Scripts are compiled once by ``reload()``. Nothing rebuilds the mapping
implicitly; callers reload at startup and after a definition changes.
"""
import ast
import logging
import operator
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional

from assistant_hub.exceptions import ConflictError, ValidationError
from assistant_hub.services.sandbox import HostCalls, ScriptError, ScriptFunction, compile_script
from assistant_hub.storage.file_storage import FileStorage

logger = logging.getLogger(__name__)

CALC_OPS = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
    ast.FloorDiv: operator.floordiv,
    ast.Mod: operator.mod,
    ast.Pow: operator.pow,
    ast.USub: operator.neg,
}


def _calc_eval(node):
    if isinstance(node, ast.Expression):
        return _calc_eval(node.body)
    if isinstance(node, ast.Constant) and isinstance(node.value, (int, float)):
        return node.value
    if isinstance(node, ast.BinOp) and type(node.op) in CALC_OPS:
        left, right = _calc_eval(node.left), _calc_eval(node.right)
        if isinstance(node.op, ast.Pow) and abs(right) > 1000:
            raise ValueError("Exponent too large")
        return CALC_OPS[type(node.op)](left, right)
    if isinstance(node, ast.UnaryOp) and type(node.op) in CALC_OPS:
        return CALC_OPS[type(node.op)](_calc_eval(node.operand))
    raise ValueError(f"Unsupported expression: {type(node).__name__}")


def calculate(arguments: Dict[str, Any]) -> Dict[str, Any]:
    """Evaluate an arithmetic expression: +, -, *, /, //, %, ** and parentheses."""
    expression = str(arguments.get("expression", "")).replace("^", "**")
    result = _calc_eval(ast.parse(expression, mode="eval"))
    if isinstance(result, float) and result.is_integer():
        result = int(result)
    return {"expression": expression, "result": result}


def get_current_time(arguments: Dict[str, Any]) -> Dict[str, Any]:
    """Current date and time, optionally shifted by ``utc_offset`` hours."""
    offset = float(arguments.get("utc_offset", 0) or 0)
    now = datetime.now(timezone(timedelta(hours=offset)))
    return {"iso": now.isoformat(), "date": now.strftime("%A %B %d, %Y"), "time": now.strftime("%H:%M")}


STATIC_FUNCTIONS: Dict[str, Callable[[Dict[str, Any]], Any]] = {
    "calculate": calculate,
    "get_current_time": get_current_time,
}


class FunctionRegistry:
    """Static functions plus scripts compiled from stored definitions."""

    def __init__(self, storage: FileStorage, static_functions: Optional[Dict[str, Callable]] = None):
        self.storage = storage
        self.static_functions = dict(STATIC_FUNCTIONS if static_functions is None else static_functions)
        self.scripts: Dict[str, ScriptFunction] = {}

    def reload(self) -> List[str]:
        """Recompile every stored definition; returns the names that failed."""
        compiled: Dict[str, ScriptFunction] = {}
        failed = []
        for definition in self.storage.find("function_definitions"):
            name = definition["name"]
            try:
                compiled[name] = compile_script(name, definition["definition"])
            except ScriptError as e:
                logger.error(f"Failed to compile function {name}: {e}")
                failed.append(name)
        self.scripts = compiled
        logger.info(f"Function registry loaded {len(compiled)} scripts, {len(failed)} failed")
        return failed

    def add_definition(self, name: str, definition: str) -> Dict[str, Any]:
        if self.storage.find_one("function_definitions", name=name):
            raise ConflictError("Name already exists")
        try:
            compile_script(name, definition)
        except ScriptError as e:
            raise ValidationError(str(e)) from e
        record = self.storage.insert("function_definitions", {"name": name, "definition": definition})
        self.reload()
        return record

    async def validate_definition(self, name: str, definition: str, host: HostCalls,
                                  parameters: Optional[Dict[str, Any]] = None) -> Any:
        """Compile a definition and, when sample parameters are given, run it once."""
        try:
            script = compile_script(name, definition)
        except ScriptError as e:
            raise ValidationError(str(e)) from e
        if parameters is None:
            return None
        try:
            return await script(host, *parameters.values())
        except Exception as e:
            logger.warning(f"Validation run of {name} failed: {type(e).__name__}: {e}")
            raise ValidationError(f"{type(e).__name__}: {e}") from e

    def get_script(self, name: str) -> Optional[ScriptFunction]:
        return self.scripts.get(name)

    def get_static(self, name: str) -> Optional[Callable[[Dict[str, Any]], Any]]:
        return self.static_functions.get(name)
