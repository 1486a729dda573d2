"""Sandbox executor tests. These start real isolated interpreters."""

import sys

import pytest

from src.infrastructure.sandbox.executor import SandboxExecutor, validate_syntax

pytestmark = pytest.mark.skipif(sys.platform == "win32", reason="resource limits are POSIX only")


@pytest.fixture
def sandbox():
    return SandboxExecutor(default_timeout=10.0, default_memory_mb=256)


class TestValidateSyntax:
    def test_valid(self):
        assert validate_syntax("x = 1\nprint(x)\n").valid

    def test_invalid_reports_line(self):
        check = validate_syntax("x = 1\ndef broken(:\n    pass\n")
        assert not check.valid
        assert check.error.startswith("SyntaxError")
        assert check.line == 2


class TestExecute:
    @pytest.mark.asyncio
    async def test_output_and_result(self, sandbox):
        result = await sandbox.execute("print('hello')\nresult = 6 * 7")
        assert result.success
        assert result.output.logs == ["hello"]
        assert result.output.result == 42
        assert result.violation is None
        assert result.execution_time_ms > 0

    @pytest.mark.asyncio
    async def test_stderr_prefixed(self, sandbox):
        result = await sandbox.execute("import sys\nsys.stderr.write('careful\\n')")
        assert "ERROR: careful" in result.output.logs

    @pytest.mark.asyncio
    async def test_unserializable_result_is_repr(self, sandbox):
        result = await sandbox.execute("result = {1, 2}")
        assert result.output.result == "{1, 2}"

    @pytest.mark.asyncio
    async def test_exception_reported(self, sandbox):
        result = await sandbox.execute("1 / 0")
        assert not result.success
        assert result.error.startswith("ZeroDivisionError")
        assert result.violation is None

    @pytest.mark.asyncio
    async def test_stdlib_import_allowed(self, sandbox):
        result = await sandbox.execute("import json\nresult = json.dumps([1])")
        assert result.success
        assert result.output.result == "[1]"


class TestPolicy:
    @pytest.mark.asyncio
    async def test_network_denied(self, sandbox):
        result = await sandbox.execute("import socket\nsocket.socket()")
        assert not result.success
        assert result.violation == "policy"

    @pytest.mark.asyncio
    async def test_file_read_outside_stdlib_denied(self, sandbox):
        result = await sandbox.execute("open('/etc/hostname').read()")
        assert result.violation == "policy"

    @pytest.mark.asyncio
    async def test_process_creation_denied(self, sandbox):
        result = await sandbox.execute("import os\nos.system('true')")
        assert result.violation == "policy"

    @pytest.mark.asyncio
    async def test_violation_survives_broad_except(self, sandbox):
        code = "try:\n    open('/tmp/x', 'w')\nexcept Exception:\n    pass\n"
        result = await sandbox.execute(code)
        assert not result.success
        assert result.violation == "policy"


class TestLimits:
    @pytest.mark.asyncio
    async def test_timeout(self, sandbox):
        result = await sandbox.execute("while True:\n    pass", timeout=1)
        assert not result.success
        assert result.violation == "timeout"
        assert "1s" in result.error

    @pytest.mark.asyncio
    async def test_memory_limit(self, sandbox):
        result = await sandbox.execute("data = bytearray(512 * 1024 * 1024)", memory_limit_mb=128)
        assert not result.success
        assert result.violation == "memory"


class TestPolicyTampering:
    """The snippet cannot switch the policy off or fake its own report."""

    @pytest.mark.asyncio
    async def test_main_module_unreachable(self, sandbox, tmp_path):
        target = tmp_path / "escaped.txt"
        code = (
            "import __main__\n"
            "__main__._read_only_stdlib = lambda args: True\n"
            f"open({str(target)!r}, 'w').write('escaped')\n"
        )
        result = await sandbox.execute(code)

        assert not result.success
        assert result.violation == "policy"
        assert not target.exists()

    @pytest.mark.asyncio
    async def test_rebinding_builtins_does_not_open_files(self, sandbox, tmp_path):
        target = tmp_path / "escaped.txt"
        code = (
            "import builtins, os\n"
            "builtins.isinstance = lambda *args: False\n"
            "os.path.abspath = lambda path: os.__file__\n"
            f"open({str(target)!r}, 'w').write('escaped')\n"
        )
        result = await sandbox.execute(code)

        assert result.violation == "policy"
        assert not target.exists()

    @pytest.mark.asyncio
    async def test_gc_import_denied(self, sandbox):
        result = await sandbox.execute("import gc\nresult = len(gc.get_objects())")
        assert result.violation == "policy"

    @pytest.mark.asyncio
    async def test_forged_report_ignored(self, sandbox):
        forged = '{"ok": true, "error": null, "violation": null, "result": "forged"}'
        code = (
            "import os, sys\n"
            f"sys.__stdout__.write({forged!r})\n"
            "sys.__stdout__.flush()\n"
            f"os.write(1, {forged.encode()!r})\n"
            "raise ValueError('real failure')\n"
        )
        result = await sandbox.execute(code)

        assert not result.success
        assert result.error == "ValueError: real failure"
        assert result.output.result is None
