"""
Restricted interpreter for stored function scripts.

A script is a single ``def`` written in a small subset of Python::

    def get_weather(city, units="metric"):
        data = http_get("https://api.example.com/weather", params={"q": city, "units": units})
        return {"city": city, "temp": data["main"]["temp"]}

Scripts never reach the Python runtime. The source is parsed with ``ast``,
checked against a whitelist of node types, and evaluated by walking the tree.
The only host calls are ``http_get`` and ``http_post`` (outbound HTTP through
the shared httpx client) and a handful of pure builtins. Imports, classes,
lambdas, ``while`` loops, private names and attribute access outside a fixed
set of str/dict/list methods are rejected at compile time. At run time a
script is bounded by a step budget and by ``SCRIPT_MAX_VALUE_SIZE``, the
largest string, sequence or mapping (or int, in bytes) it may build.
"""
import ast
import logging
import operator
import re
from typing import Any, Callable, Dict, List, Optional

import httpx

from assistant_hub import config
from assistant_hub.exceptions import ToolExecutionError

logger = logging.getLogger(__name__)

MAX_POWER_EXPONENT = 1000
MAX_FORMAT_WIDTH = 1000

FORMAT_NUMBER = re.compile(r"\d+")

BIN_OPS = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
    ast.FloorDiv: operator.floordiv,
    ast.Mod: operator.mod,
    ast.Pow: operator.pow,
}

UNARY_OPS = {
    ast.USub: operator.neg,
    ast.UAdd: operator.pos,
    ast.Not: operator.not_,
}

COMPARE_OPS = {
    ast.Eq: operator.eq,
    ast.NotEq: operator.ne,
    ast.Lt: operator.lt,
    ast.LtE: operator.le,
    ast.Gt: operator.gt,
    ast.GtE: operator.ge,
    ast.In: lambda a, b: a in b,
    ast.NotIn: lambda a, b: a not in b,
    ast.Is: operator.is_,
    ast.IsNot: operator.is_not,
}

PURE_BUILTINS: Dict[str, Callable[..., Any]] = {
    "abs": abs,
    "bool": bool,
    "dict": dict,
    "float": float,
    "format": format,
    "int": int,
    "len": len,
    "list": list,
    "max": max,
    "min": min,
    "round": round,
    "sorted": sorted,
    "str": str,
    "sum": sum,
}

SAFE_METHODS = {
    str: {"lower", "upper", "strip", "lstrip", "rstrip", "split", "join", "replace",
          "startswith", "endswith", "title"},
    dict: {"get", "keys", "values", "items"},
    list: {"append", "index", "count"},
}

HOST_CALLS = ("http_get", "http_post")

ALLOWED_NODES = (
    ast.Module, ast.FunctionDef, ast.arguments, ast.arg,
    ast.Return, ast.Assign, ast.AugAssign, ast.If, ast.For, ast.Break, ast.Continue, ast.Pass, ast.Expr,
    ast.Name, ast.Load, ast.Store, ast.Constant,
    ast.BinOp, ast.UnaryOp, ast.BoolOp, ast.Compare, ast.IfExp,
    ast.Dict, ast.List, ast.Tuple, ast.Subscript, ast.Slice,
    ast.Call, ast.keyword, ast.Attribute, ast.JoinedStr, ast.FormattedValue,
    ast.And, ast.Or,
) + tuple(BIN_OPS) + tuple(UNARY_OPS) + tuple(COMPARE_OPS)


class ScriptError(ToolExecutionError):
    """A script was rejected at compile time or failed while running."""


class _Return(Exception):
    def __init__(self, value: Any):
        self.value = value


class _Break(Exception):
    pass


class _Continue(Exception):
    pass


class HostCalls:
    """Outbound HTTP available to scripts."""

    def __init__(self, http_client: httpx.AsyncClient):
        self.http_client = http_client

    @staticmethod
    def _decode(response: httpx.Response) -> Any:
        response.raise_for_status()
        if "application/json" in response.headers.get("content-type", ""):
            return response.json()
        return response.text

    async def http_get(self, url: str, params: Optional[dict] = None, headers: Optional[dict] = None) -> Any:
        response = await self.http_client.get(url, params=params, headers=headers)
        return self._decode(response)

    async def http_post(self, url: str, json: Any = None, headers: Optional[dict] = None) -> Any:
        response = await self.http_client.post(url, json=json, headers=headers)
        return self._decode(response)


def _validate(tree: ast.Module) -> ast.FunctionDef:
    body = tree.body
    if len(body) != 1 or not isinstance(body[0], ast.FunctionDef):
        raise ScriptError("A function definition must contain exactly one 'def' statement")
    func = body[0]
    if func.decorator_list:
        raise ScriptError("Decorators are not allowed")
    args = func.args
    if args.vararg or args.kwarg or args.kwonlyargs or getattr(args, "posonlyargs", []):
        raise ScriptError("Only plain positional parameters are allowed")

    call_targets = {id(node.func) for node in ast.walk(tree) if isinstance(node, ast.Call)}
    for node in ast.walk(tree):
        if not isinstance(node, ALLOWED_NODES):
            raise ScriptError(f"Unsupported syntax: {type(node).__name__}")
        if isinstance(node, ast.FunctionDef) and node is not func:
            raise ScriptError("Nested functions are not allowed")
        if isinstance(node, ast.Name) and node.id.startswith("_"):
            raise ScriptError(f"Private names are not allowed: {node.id}")
        if isinstance(node, ast.Attribute):
            if node.attr.startswith("_"):
                raise ScriptError(f"Private attributes are not allowed: {node.attr}")
            if id(node) not in call_targets:
                raise ScriptError("Attributes may only be used as method calls")
        if isinstance(node, ast.keyword) and node.arg is None:
            raise ScriptError("Keyword unpacking is not allowed")
    return func


class ScriptFunction:
    """A compiled script, callable with positional arguments."""

    def __init__(self, name: str, source: str, node: ast.FunctionDef, max_steps: int = 10000,
                 max_value_size: int = 100000):
        self.name = name
        self.source = source
        self.node = node
        self.max_steps = max_steps
        self.max_value_size = max_value_size
        self.params = [arg.arg for arg in node.args.args]
        self.defaults = node.args.defaults

    async def __call__(self, host: HostCalls, *args: Any) -> Any:
        if len(args) > len(self.params):
            raise ScriptError(f"{self.name}() takes {len(self.params)} arguments but {len(args)} were given")
        frame = _Frame(host, self.max_steps, self.max_value_size)
        first_default = len(self.params) - len(self.defaults)
        for index, param in enumerate(self.params):
            if index < len(args):
                frame.scope[param] = args[index]
            elif index >= first_default:
                frame.scope[param] = await frame.eval(self.defaults[index - first_default])
            else:
                frame.scope[param] = None
        try:
            await frame.run_block(self.node.body)
        except _Return as ret:
            return ret.value
        except (_Break, _Continue):
            raise ScriptError("'break' or 'continue' outside a loop")
        return None


class _Frame:
    def __init__(self, host: HostCalls, max_steps: int, max_value_size: int):
        self.host = host
        self.max_steps = max_steps
        self.max_value_size = max_value_size
        self.steps = 0
        self.scope: Dict[str, Any] = {}

    def _tick(self) -> None:
        self.steps += 1
        if self.steps > self.max_steps:
            raise ScriptError("Script exceeded its execution budget")

    def _size(self, value: Any) -> int:
        if isinstance(value, (str, bytes, list, tuple, dict)):
            return len(value)
        if isinstance(value, int):
            return value.bit_length() // 8
        return 0

    def _limit(self, value: Any) -> Any:
        if self._size(value) > self.max_value_size:
            raise ScriptError(f"Script value exceeds {self.max_value_size} elements")
        return value

    def _check_format_spec(self, spec: Any) -> None:
        for number in FORMAT_NUMBER.findall(str(spec)):
            if int(number) > MAX_FORMAT_WIDTH:
                raise ScriptError("Format width or precision too large")

    def _check_method_call(self, target: Any, method: str, args: List[Any]) -> None:
        if method == "join" and args:
            parts = list(args[0]) if not isinstance(args[0], (list, tuple)) else args[0]
            estimate = sum(self._size(part) for part in parts) + len(target) * len(parts)
        elif method == "replace" and len(args) >= 2 and isinstance(args[0], str):
            occurrences = target.count(args[0]) if args[0] else len(target) + 1
            estimate = len(target) + occurrences * self._size(args[1])
        else:
            return
        if estimate > self.max_value_size:
            raise ScriptError(f"Script value exceeds {self.max_value_size} elements")

    async def run_block(self, statements: List[ast.stmt]) -> None:
        for statement in statements:
            await self.run(statement)

    async def run(self, node: ast.stmt) -> None:
        self._tick()
        if isinstance(node, ast.Return):
            raise _Return(await self.eval(node.value) if node.value is not None else None)
        if isinstance(node, ast.Assign):
            value = await self.eval(node.value)
            for target in node.targets:
                await self.assign(target, value)
        elif isinstance(node, ast.AugAssign):
            current = await self.eval(_as_load(node.target))
            value = self.binop(node.op, current, await self.eval(node.value))
            await self.assign(node.target, value)
        elif isinstance(node, ast.If):
            if await self.eval(node.test):
                await self.run_block(node.body)
            else:
                await self.run_block(node.orelse)
        elif isinstance(node, ast.For):
            iterable = await self.eval(node.iter)
            for item in iterable:
                self._tick()
                await self.assign(node.target, item)
                try:
                    await self.run_block(node.body)
                except _Break:
                    break
                except _Continue:
                    continue
            else:
                await self.run_block(node.orelse)
        elif isinstance(node, ast.Expr):
            await self.eval(node.value)
        elif isinstance(node, ast.Break):
            raise _Break()
        elif isinstance(node, ast.Continue):
            raise _Continue()
        elif isinstance(node, ast.Pass):
            pass
        else:
            raise ScriptError(f"Unsupported statement: {type(node).__name__}")

    async def assign(self, target: ast.expr, value: Any) -> None:
        if isinstance(target, ast.Name):
            self.scope[target.id] = value
        elif isinstance(target, ast.Subscript):
            container = await self.eval(target.value)
            container[await self.eval(target.slice)] = value
        elif isinstance(target, ast.Tuple):
            values = list(value)
            if len(values) != len(target.elts):
                raise ScriptError("Cannot unpack: wrong number of values")
            for element, item in zip(target.elts, values):
                await self.assign(element, item)
        else:
            raise ScriptError(f"Unsupported assignment target: {type(target).__name__}")

    def binop(self, op: ast.operator, left: Any, right: Any) -> Any:
        if isinstance(op, ast.Pow) and isinstance(right, (int, float)) and abs(right) > MAX_POWER_EXPONENT:
            raise ScriptError("Exponent too large")
        if isinstance(op, ast.Pow) and isinstance(left, int) and isinstance(right, int) and right > 0:
            if left.bit_length() * right > self.max_value_size * 8:
                raise ScriptError("Power result too large")
        if isinstance(op, ast.Mult):
            for seq, count in ((left, right), (right, left)):
                if isinstance(seq, (str, list, tuple)) and isinstance(count, int) \
                        and len(seq) * count > self.max_value_size:
                    raise ScriptError("Sequence repetition too large")
        if isinstance(op, ast.Mod) and isinstance(left, str):
            raise ScriptError("'%' string formatting is not available, use f-strings")
        return self._limit(BIN_OPS[type(op)](left, right))

    async def eval(self, node: ast.expr) -> Any:
        if isinstance(node, ast.Constant):
            return node.value
        if isinstance(node, ast.Name):
            if node.id in self.scope:
                return self.scope[node.id]
            raise ScriptError(f"Name '{node.id}' is not defined")
        if isinstance(node, ast.BinOp):
            return self.binop(node.op, await self.eval(node.left), await self.eval(node.right))
        if isinstance(node, ast.UnaryOp):
            return UNARY_OPS[type(node.op)](await self.eval(node.operand))
        if isinstance(node, ast.BoolOp):
            result = None
            for value_node in node.values:
                result = await self.eval(value_node)
                if isinstance(node.op, ast.And) and not result:
                    return result
                if isinstance(node.op, ast.Or) and result:
                    return result
            return result
        if isinstance(node, ast.Compare):
            left = await self.eval(node.left)
            for op, comparator in zip(node.ops, node.comparators):
                right = await self.eval(comparator)
                if not COMPARE_OPS[type(op)](left, right):
                    return False
                left = right
            return True
        if isinstance(node, ast.IfExp):
            return await self.eval(node.body) if await self.eval(node.test) else await self.eval(node.orelse)
        if isinstance(node, ast.Dict):
            result = {}
            for key, value in zip(node.keys, node.values):
                if key is None:
                    raise ScriptError("Dict unpacking is not allowed")
                result[await self.eval(key)] = await self.eval(value)
            return result
        if isinstance(node, ast.List):
            return [await self.eval(element) for element in node.elts]
        if isinstance(node, ast.Tuple):
            return tuple([await self.eval(element) for element in node.elts])
        if isinstance(node, ast.Subscript):
            return (await self.eval(node.value))[await self.eval(node.slice)]
        if isinstance(node, ast.Slice):
            lower = await self.eval(node.lower) if node.lower else None
            upper = await self.eval(node.upper) if node.upper else None
            step = await self.eval(node.step) if node.step else None
            return slice(lower, upper, step)
        if isinstance(node, ast.JoinedStr):
            parts = [str(await self.eval(value)) for value in node.values]
            if sum(len(part) for part in parts) > self.max_value_size:
                raise ScriptError(f"Script value exceeds {self.max_value_size} elements")
            return "".join(parts)
        if isinstance(node, ast.FormattedValue):
            value = await self.eval(node.value)
            if node.conversion == ord("r"):
                value = repr(value)
            elif node.conversion == ord("s"):
                value = str(value)
            spec = await self.eval(node.format_spec) if node.format_spec else ""
            self._check_format_spec(spec)
            return self._limit(format(value, spec))
        if isinstance(node, ast.Call):
            return await self.call(node)
        raise ScriptError(f"Unsupported expression: {type(node).__name__}")

    async def call(self, node: ast.Call) -> Any:
        self._tick()
        args = [await self.eval(arg) for arg in node.args]
        kwargs = {kw.arg: await self.eval(kw.value) for kw in node.keywords}
        func = node.func
        if isinstance(func, ast.Name):
            if func.id in HOST_CALLS:
                return self._limit(await getattr(self.host, func.id)(*args, **kwargs))
            if func.id in PURE_BUILTINS:
                if func.id == "format" and len(args) > 1:
                    self._check_format_spec(args[1])
                return self._limit(PURE_BUILTINS[func.id](*args, **kwargs))
            raise ScriptError(f"Function '{func.id}' is not available to scripts")
        if isinstance(func, ast.Attribute):
            target = await self.eval(func.value)
            allowed = SAFE_METHODS.get(type(target), set())
            if func.attr not in allowed:
                raise ScriptError(f"Method '{func.attr}' is not available on {type(target).__name__}")
            self._check_method_call(target, func.attr, args)
            result = self._limit(getattr(target, func.attr)(*args, **kwargs))
            self._limit(target)
            return result
        raise ScriptError("Only named functions and methods can be called")


def _as_load(target: ast.expr) -> ast.expr:
    if isinstance(target, ast.Name):
        return ast.Name(id=target.id, ctx=ast.Load())
    if isinstance(target, ast.Subscript):
        return ast.Subscript(value=target.value, slice=target.slice, ctx=ast.Load())
    raise ScriptError(f"Unsupported augmented assignment target: {type(target).__name__}")


def compile_script(name: str, source: str, max_steps: Optional[int] = None,
                   max_value_size: Optional[int] = None) -> ScriptFunction:
    """Parse and validate a stored definition."""
    try:
        tree = ast.parse(source)
    except SyntaxError as e:
        raise ScriptError(f"Syntax error in {name}: {e.msg} (line {e.lineno})") from e
    func = _validate(tree)
    return ScriptFunction(
        name, source, func,
        max_steps or config.SCRIPT_MAX_STEPS,
        max_value_size or config.SCRIPT_MAX_VALUE_SIZE,
    )
