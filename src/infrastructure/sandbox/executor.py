"""Sandboxed execution of short untrusted Python snippets.

Each call starts a fresh isolated interpreter (``python -I -S``). Inside it the
runner prelude applies address-space, CPU and file-size rlimits, installs an
audit hook that denies network access, file access outside the standard
library, process creation and ctypes, then executes the snippet with
stdout/stderr captured. The report travels over a private copy of fd 1 and
carries a per-run nonce, so output the snippet writes cannot pass for it.
"""

import ast
import asyncio
import json
import logging
import secrets
import signal
import subprocess
import sys
import time

from pydantic import BaseModel

from src.domain.errors import SandboxViolation

logger = logging.getLogger(__name__)

LOG_LIMIT = 10_000

RUNNER = r'''
import io, json, os, resource, sys


class PolicyViolation(BaseException):
    pass


def _make_hook(violations):
    # Policy and builtins are bound as defaults: nothing the snippet can rebind
    # (module globals, the builtins module, os.path helpers) is read at call time.
    def hook(
        event,
        args,
        _stdlib=os.path.dirname(os.__file__) + os.sep,
        _denied=("socket.", "subprocess.", "os.system", "os.exec", "os.spawn", "os.fork",
                 "os.posix_spawn", "os.kill", "os.remove", "os.rename", "os.rmdir", "os.mkdir",
                 "os.truncate", "os.chmod", "shutil.", "ctypes.", "urllib.", "http.", "ftplib.",
                 "smtplib.", "resource.setrlimit", "resource.prlimit"),
        _blocked_imports=frozenset(("__main__", "gc", "ctypes", "_ctypes")),
        _write_flags=os.O_WRONLY | os.O_RDWR | os.O_CREAT | os.O_APPEND,
        _record=violations.append,
        _violation=PolicyViolation,
        _isinstance=isinstance,
        _len=len,
        _str=str,
        _bytes=bytes,
    ):
        if event == "import":
            if args[0] not in _blocked_imports:
                return
        elif event == "open":
            path = args[0]
            mode = args[1] if _len(args) > 1 else None
            flags = (args[2] if _len(args) > 2 else 0) or 0
            if _isinstance(path, _bytes):
                path = path.decode("utf-8", "surrogateescape")
            if _isinstance(path, _str) and path.startswith(_stdlib) and "/../" not in path:
                if mode is not None:
                    mode = _str(mode)
                    writes = "w" in mode or "a" in mode or "x" in mode or "+" in mode
                else:
                    writes = flags & _write_flags
                if not writes:
                    return
        elif not event.startswith(_denied):
            return
        _record(event)
        raise _violation(event)

    return hook


def _main():
    payload = json.loads(sys.stdin.read())
    write, dumps = os.write, json.dumps

    # The report goes to a private duplicate of fd 1; fd 1 itself (and with it
    # sys.__stdout__) now points at /dev/null.
    report_fd = os.dup(1)
    devnull = os.open(os.devnull, os.O_WRONLY)
    os.dup2(devnull, 1)
    os.close(devnull)

    limits = (
        (resource.RLIMIT_AS, payload["memory_mb"] * 1024 * 1024),
        (resource.RLIMIT_CPU, payload["cpu_seconds"]),
        (resource.RLIMIT_FSIZE, 0),
    )
    for res, value in limits:
        try:
            resource.setrlimit(res, (value, value))
        except (ValueError, OSError):
            pass

    violations = []
    hook = _make_hook(violations)
    source = payload["code"]
    report = {"nonce": payload["nonce"], "ok": True, "error": None, "violation": None}
    del payload
    namespace = {"__name__": "__sandbox__"}
    stdout, stderr = io.StringIO(), io.StringIO()
    sys.dont_write_bytecode = True
    sys.stdout, sys.stderr = stdout, stderr
    # Only this frame keeps the main module alive; importing it again is denied.
    main_module = sys.modules.pop("__main__", None)
    sys.modules.pop("gc", None)
    sys.addaudithook(hook)
    del hook
    try:
        exec(compile(source, "<sandbox>", "exec"), namespace)
    except PolicyViolation as e:
        report.update(ok=False, violation="policy", error="Operation not permitted: %s" % e)
    except MemoryError:
        namespace.clear()
        report.update(ok=False, violation="memory", error="Memory limit exceeded")
    except BaseException as e:
        report.update(ok=False, error="%s: %s" % (type(e).__name__, e))
    if violations and report["violation"] is None:
        report.update(ok=False, violation="policy", error="Operation not permitted: %s" % violations[0])

    result = namespace.get("result")
    try:
        dumps(result)
    except (TypeError, ValueError):
        result = repr(result)
    usage = resource.getrusage(resource.RUSAGE_SELF).ru_maxrss
    report.update(
        result=result,
        stdout=stdout.getvalue(),
        stderr=stderr.getvalue(),
        memory_mb=usage / (1024 * 1024) if sys.platform == "darwin" else usage / 1024,
    )
    data = dumps(report).encode()
    while data:
        data = data[write(report_fd, data):]


_main()
'''


class SandboxOutput(BaseModel):
    result: object | None = None
    logs: list[str] = []


class SandboxResult(BaseModel):
    """Outcome of one sandboxed run. ``violation`` names the limit that was hit."""

    success: bool
    output: SandboxOutput = SandboxOutput()
    error: str | None = None
    execution_time_ms: float = 0.0
    memory_used_mb: float = 0.0
    violation: str | None = None  # "timeout" | "memory" | "policy"


class SyntaxCheck(BaseModel):
    valid: bool
    error: str | None = None
    line: int | None = None


def validate_syntax(code: str) -> SyntaxCheck:
    """Parse without executing."""
    try:
        ast.parse(code)
    except SyntaxError as e:
        return SyntaxCheck(valid=False, error=f"SyntaxError: {e.msg}", line=e.lineno)
    return SyntaxCheck(valid=True)


def _collect_logs(stdout: str, stderr: str) -> list[str]:
    logs = [line for line in stdout[:LOG_LIMIT].splitlines() if line]
    logs.extend(f"ERROR: {line}" for line in stderr[:LOG_LIMIT].splitlines() if line)
    return logs


def _run_sync(code: str, timeout: float, memory_limit_mb: int, nonce: str) -> subprocess.CompletedProcess:
    payload = json.dumps(
        {
            "code": code,
            "nonce": nonce,
            "memory_mb": memory_limit_mb,
            "cpu_seconds": max(1, int(timeout) + 1),
        }
    )
    return subprocess.run(
        [sys.executable, "-I", "-S", "-c", RUNNER],
        input=payload,
        capture_output=True,
        text=True,
        timeout=timeout,
        env={},
    )


class SandboxExecutor:
    """Runs snippets in a throwaway interpreter. ``execute`` never raises."""

    def __init__(self, default_timeout: float = 5.0, default_memory_mb: int = 128) -> None:
        self._default_timeout = default_timeout
        self._default_memory_mb = default_memory_mb

    async def execute(
        self,
        code: str,
        timeout: float | None = None,
        memory_limit_mb: int | None = None,
    ) -> SandboxResult:
        timeout = timeout or self._default_timeout
        memory_limit_mb = memory_limit_mb or self._default_memory_mb
        started = time.perf_counter()
        nonce = secrets.token_hex(16)
        try:
            completed = await asyncio.to_thread(_run_sync, code, timeout, memory_limit_mb, nonce)
            return self._interpret(completed, started, nonce)
        except subprocess.TimeoutExpired:
            violation = SandboxViolation("timeout", f"Execution exceeded {timeout:g}s")
            return self._violation_result(violation, started)
        except SandboxViolation as e:
            return self._violation_result(e, started)
        except OSError as e:
            logger.error("Could not start sandbox interpreter: %s", e)
            return SandboxResult(success=False, error=f"{type(e).__name__}: {e}", execution_time_ms=_elapsed(started))

    def _interpret(self, completed: subprocess.CompletedProcess, started: float, nonce: str) -> SandboxResult:
        try:
            report = json.loads(completed.stdout)
        except json.JSONDecodeError:
            report = None
        if not isinstance(report, dict) or report.get("nonce") != nonce:
            report = None

        if report is None:
            if completed.returncode == -signal.SIGXCPU:
                raise SandboxViolation("timeout", "CPU time limit exceeded")
            if completed.returncode == -signal.SIGXFSZ:
                raise SandboxViolation("policy", "Operation not permitted: file write")
            if completed.returncode in (-signal.SIGKILL, -signal.SIGSEGV):
                raise SandboxViolation("memory", "Memory limit exceeded")
            return SandboxResult(
                success=False,
                error=f"Sandbox exited with code {completed.returncode}: {completed.stderr.strip()[-500:]}",
                execution_time_ms=_elapsed(started),
            )

        output = SandboxOutput(
            result=report.get("result"),
            logs=_collect_logs(report.get("stdout", ""), report.get("stderr", "")),
        )
        if report.get("violation"):
            logger.warning("Sandbox %s violation: %s", report["violation"], report.get("error"))
        return SandboxResult(
            success=bool(report.get("ok")),
            output=output,
            error=report.get("error"),
            execution_time_ms=_elapsed(started),
            memory_used_mb=round(report.get("memory_mb", 0.0), 2),
            violation=report.get("violation"),
        )

    @staticmethod
    def _violation_result(violation: SandboxViolation, started: float) -> SandboxResult:
        logger.warning("Sandbox %s violation: %s", violation.kind, violation)
        return SandboxResult(
            success=False,
            error=str(violation),
            execution_time_ms=_elapsed(started),
            violation=violation.kind,
        )


def _elapsed(started: float) -> float:
    return round((time.perf_counter() - started) * 1000, 2)
