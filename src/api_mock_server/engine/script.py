"""Compilation and execution of x-handler / x-seed scripts.

A script is the body of a function. Its source is indented into a
``def`` whose parameters are exactly the capabilities the caller injects
(``store``, ``faker``, ``req`` ...), so a script can see those names and
a curated set of builtins, nothing else. Scripts are authored by the API
designer and trusted; the restricted globals scope them, they do not
secure them.
"""

import ast
import builtins
import inspect
import keyword
import textwrap
from typing import Any, Callable

from pydantic import BaseModel, PrivateAttr

from api_mock_server.errors import ScriptError

FUNCTION_NAME = "__script__"

SAFE_BUILTINS = {
    name: getattr(builtins, name)
    for name in (
        "abs", "all", "any", "bool", "chr", "dict", "divmod", "enumerate",
        "filter", "float", "format", "frozenset", "hasattr", "int",
        "isinstance", "iter", "len", "list", "map", "max", "min", "next",
        "ord", "pow", "range", "repr", "reversed", "round", "set", "slice",
        "sorted", "str", "sum", "tuple", "zip",
        "Exception", "ArithmeticError", "AttributeError", "IndexError",
        "KeyError", "LookupError", "NotImplementedError", "RuntimeError",
        "StopIteration", "TypeError", "ValueError", "ZeroDivisionError",
    )
}

_ASYNC_NODES = (ast.Await, ast.AsyncFor, ast.AsyncWith)
_SCOPE_NODES = (ast.FunctionDef, ast.AsyncFunctionDef, ast.Lambda, ast.ClassDef)


class Script(BaseModel):
    """Source text of a script plus its compiled function."""

    name: str  # "x-handler GET /posts" / "x-seed Post"
    source: str
    params: tuple[str, ...]
    is_async: bool = False

    _function: Callable[..., Any] | None = PrivateAttr(default=None)

    @classmethod
    def compile(cls, name: str, source: str, params: list[str] | tuple[str, ...]) -> "Script":
        """Compile ``source`` as the body of a function taking ``params``.

        Raises ScriptError if the source does not compile.
        """
        if not isinstance(source, str):
            raise ScriptError(name, "script must be a string")
        params = tuple(params)
        body = textwrap.dedent(source).strip("\n") or "pass"
        text = f"def {FUNCTION_NAME}({', '.join(params)}):\n{textwrap.indent(body, '    ')}\n"

        try:
            tree = ast.parse(text, filename=f"<{name}>")
            func = tree.body[0]
            is_async = _awaits_at_top_level(func)
            if is_async:
                tree.body[0] = ast.copy_location(
                    ast.AsyncFunctionDef(
                        name=func.name,
                        args=func.args,
                        body=func.body,
                        decorator_list=[],
                        returns=None,
                        type_comment=None,
                        **_type_params(),
                    ),
                    func,
                )
                ast.fix_missing_locations(tree)
            code = compile(tree, filename=f"<{name}>", mode="exec")
        except SyntaxError as e:
            # line 1 is the generated def line
            line = (e.lineno or 1) - 1
            raise ScriptError(name, f"{e.msg} (line {line})") from e

        namespace: dict[str, Any] = {"__builtins__": SAFE_BUILTINS}
        exec(code, namespace)

        script = cls(name=name, source=source, params=params, is_async=is_async)
        script._function = namespace[FUNCTION_NAME]
        return script

    async def run(self, **capabilities: Any) -> Any:
        """Call the script with the given capabilities and return its result.

        Capabilities not declared as params are ignored; missing ones are
        passed as None.
        """
        kwargs = {name: capabilities.get(name) for name in self.params}
        result = self._function(**kwargs)
        if inspect.isawaitable(result):
            result = await result
        return result


def is_shortcut_name(name: str, reserved: tuple[str, ...]) -> bool:
    """Whether a path parameter can be bound as a plain local name."""
    return name.isidentifier() and not keyword.iskeyword(name) and name not in reserved


def _awaits_at_top_level(func: ast.AST) -> bool:
    stack = list(ast.iter_child_nodes(func))
    while stack:
        node = stack.pop()
        if isinstance(node, _ASYNC_NODES):
            return True
        if isinstance(node, _SCOPE_NODES):
            continue
        stack.extend(ast.iter_child_nodes(node))
    return False


def _type_params() -> dict:
    # Python 3.12 added type_params to function nodes
    if "type_params" in ast.AsyncFunctionDef._fields:
        return {"type_params": []}
    return {}
