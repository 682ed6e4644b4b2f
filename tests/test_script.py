import asyncio

import pytest

from api_mock_server.engine.script import Script, is_shortcut_name
from api_mock_server.errors import ScriptError


def _run(script: Script, **capabilities):
    return asyncio.run(script.run(**capabilities))


class TestCompile:
    def test_return_value(self):
        script = Script.compile("t", "return x + 1", ("x",))
        assert _run(script, x=1) == 2

    def test_multiline_body(self):
        source = """
        total = 0
        for item in items:
            total += item
        return total
        """
        script = Script.compile("t", source, ("items",))
        assert _run(script, items=[1, 2, 3]) == 6

    def test_no_return_gives_none(self):
        assert _run(Script.compile("t", "x = 1", ())) is None

    def test_empty_source(self):
        assert _run(Script.compile("t", "", ())) is None

    def test_syntax_error(self):
        with pytest.raises(ScriptError, match="line 1"):
            Script.compile("t", "return (", ())

    def test_not_a_string(self):
        with pytest.raises(ScriptError):
            Script.compile("t", None, ())

    def test_await_makes_async(self):
        script = Script.compile("t", "return await make()", ("make",))
        assert script.is_async

        async def make():
            return "done"

        assert _run(script, make=make) == "done"

    def test_await_in_nested_function_stays_sync(self):
        source = "async def inner():\n    return await x\nreturn 1"
        assert not Script.compile("t", source, ("x",)).is_async


class TestSandbox:
    def test_only_capabilities_visible(self):
        script = Script.compile("t", "return store", ("store", "faker"))
        assert _run(script, store="s", faker="f", extra="ignored") == "s"

    def test_missing_capability_is_none(self):
        assert _run(Script.compile("t", "return req", ("req",))) is None

    def test_imports_blocked(self):
        script = Script.compile("t", "import os\nreturn os.getcwd()", ())
        with pytest.raises(ImportError):
            _run(script)

    def test_open_blocked(self):
        script = Script.compile("t", "return open('/etc/passwd')", ())
        with pytest.raises(NameError):
            _run(script)

    def test_safe_builtins_available(self):
        script = Script.compile("t", "return sorted(len(w) for w in words)", ("words",))
        assert _run(script, words=["abc", "a"]) == [1, 3]

    def test_raise_propagates(self):
        script = Script.compile("t", "raise ValueError('Title is required')", ())
        with pytest.raises(ValueError, match="Title is required"):
            _run(script)


class TestShortcutNames:
    def test_valid(self):
        assert is_shortcut_name("postId", ("store",))

    def test_reserved(self):
        assert not is_shortcut_name("store", ("store",))

    def test_keyword_and_invalid(self):
        assert not is_shortcut_name("class", ())
        assert not is_shortcut_name("post-id", ())
