"""Tests for the Python script sandbox."""

import pytest

from core.exceptions import ScriptError
from integrations.script_sandbox import PythonScriptSandbox


@pytest.fixture
def sandbox():
    return PythonScriptSandbox()


def _run(sandbox, source, variables=None):
    variables = dict(variables or {})
    lines = []
    sandbox.run(source, variables, lines.append)
    return variables, lines


@pytest.mark.unit
class TestPythonScriptSandbox:

    def test_reads_and_writes_variables(self, sandbox):
        variables, _ = _run(sandbox, "variables['total'] = int(variables['a']) + int(variables['b'])",
                            {"a": "2", "b": "3"})
        assert variables["total"] == 5

    def test_log_and_print(self, sandbox):
        _, lines = _run(sandbox, "log('one')\nprint('two', 3)")
        assert lines == ["one", "two 3"]

    def test_preloaded_modules(self, sandbox):
        variables, _ = _run(sandbox, (
            "variables['encoded'] = base64.b64encode(b'hi').decode()\n"
            "variables['parsed'] = json.loads('{\"k\": 1}')['k']\n"
            "variables['digest'] = hashlib.md5(b'x').hexdigest()[:4]\n"
        ))
        assert variables["encoded"] == "aGk="
        assert variables["parsed"] == 1
        assert len(variables["digest"]) == 4

    def test_import_is_not_available(self, sandbox):
        with pytest.raises(ScriptError) as exc:
            _run(sandbox, "import os")
        assert exc.value.message.startswith("Script error: ImportError")

    def test_dangerous_builtins_missing(self, sandbox):
        with pytest.raises(ScriptError):
            _run(sandbox, "open('/etc/passwd')")

    def test_runtime_error(self, sandbox):
        with pytest.raises(ScriptError) as exc:
            _run(sandbox, "variables['missing']")
        assert exc.value.message == "Script error: KeyError: 'missing'"

    def test_syntax_error_reports_line(self, sandbox):
        with pytest.raises(ScriptError) as exc:
            _run(sandbox, "x = 1\nif x\n")
        assert "(line 2)" in exc.value.message
