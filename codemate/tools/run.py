# codemate/tools/run.py
import asyncio
import json
import os
import re
import shlex
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Literal

from loguru import logger

from ..config import CommandSettings
from ..errors import CommandError, ToolTimeoutError
from .base import BaseTool, ToolContext, ToolParameter

MAX_TIMEOUT_S = 600
MAX_OUTPUT_CHARS = 100_000

# ==========================================
# command policy
# ==========================================

BLACKLIST = [
    (re.compile(r"\brm\s+(-[a-z]*r[a-z]*f|-[a-z]*f[a-z]*r)\b", re.I), "recursive force delete"),
    (re.compile(r"\bsudo\b|\bsu\s"), "privilege escalation"),
    (re.compile(r"\b(shutdown|reboot|halt|poweroff)\b"), "system power control"),
    (re.compile(r"\bmkfs(\.\w+)?\b|\bdd\s+if="), "disk formatting"),
    (re.compile(r"\bchmod\s+(-R\s+)?777\b"), "world-writable permissions"),
    (re.compile(r"(curl|wget)\b[^|]*\|\s*(ba|z)?sh\b"), "piping a download into a shell"),
    (re.compile(r"\bgit\s+push\b.*(--force|-f)\b"), "force push"),
    (re.compile(r"\bgit\s+(reset\s+--hard|clean\s+-[a-z]*f)"), "discarding local changes"),
    (re.compile(r":\(\)\s*\{.*\};\s*:"), "fork bomb"),
    (re.compile(r">\s*/dev/sd[a-z]"), "writing to a block device"),
]

# first word (or first two words for git/npm/npx) of commands that run without asking
WHITELIST = {
    "ls", "pwd", "cat", "head", "tail", "wc", "echo", "grep", "rg", "find", "tree", "which", "diff",
    "git status", "git log", "git diff", "git show", "git branch", "git blame",
    "npm test", "npm ls", "npx tsc", "npx eslint", "npx vitest", "npx jest",
    "pytest", "python -m pytest", "ruff check", "mypy", "tsc", "eslint", "node --version", "python --version",
}

# arguments that turn a whitelisted command into one that writes or runs something else
MUTATING_ARGS = {
    "find": ("-delete", "-exec", "-execdir", "-ok", "-okdir", "-fprint", "-fprint0", "-fprintf", "-fls"),
    "tree": ("-o",),
    "git diff": ("--output",),
    "git log": ("--output",),
    "git show": ("--output",),
    "ruff check": ("--fix",),
    "eslint": ("--fix",),
    "npx eslint": ("--fix",),
}

# whitelisted commands that are only read-only with exactly these flags
READ_ONLY_FLAGS = {
    "git branch": {"-a", "-r", "-v", "-vv", "-l", "--all", "--remotes", "--verbose", "--list", "--show-current"},
}

CHAIN_RE = re.compile(r"&&|\|\||;|\||&|\n")
SHELL_SYNTAX_RE = re.compile(r">|<\(|\$\(|`")

Classification = Literal["allowed", "blocked", "requires_confirmation"]


@dataclass
class SecurityCheck:
    classification: Classification
    reason: str


def _whitelist_prefix(words: list[str]) -> str | None:
    for n in (3, 2, 1):
        prefix = " ".join(words[:n])
        if len(words) >= n and prefix in WHITELIST:
            return prefix
    return None


def _is_whitelisted(part: str) -> bool:
    try:
        words = shlex.split(part)
    except ValueError:
        return False
    if not words:
        return True
    prefix = _whitelist_prefix(words)
    if prefix is None:
        return False

    args = words[len(prefix.split()):]
    mutating = MUTATING_ARGS.get(prefix, ())
    if any(a == flag or a.startswith(f"{flag}=") for a in args for flag in mutating):
        return False
    if prefix in READ_ONLY_FLAGS:
        return all(a in READ_ONLY_FLAGS[prefix] for a in args)
    return True


def check_command(command: str) -> SecurityCheck:
    for pattern, reason in BLACKLIST:
        if pattern.search(command):
            return SecurityCheck("blocked", reason)
    if SHELL_SYNTAX_RE.search(command):
        return SecurityCheck("requires_confirmation", "command uses redirection or substitution")
    if all(_is_whitelisted(part) for part in CHAIN_RE.split(command)):
        return SecurityCheck("allowed", "whitelisted command")
    return SecurityCheck("requires_confirmation", "command is not in the whitelist or may modify files")


# ==========================================
# execution
# ==========================================

def _truncate(output: str) -> str:
    if len(output) <= MAX_OUTPUT_CHARS:
        return output
    return f"{output[:MAX_OUTPUT_CHARS]}\n... (output truncated)"


async def execute_shell(command: str, cwd: Path, timeout_s: float) -> dict:
    started = time.perf_counter()
    proc = await asyncio.create_subprocess_shell(
        command,
        cwd=str(cwd),
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
        env={**os.environ, "FORCE_COLOR": "0", "CI": "1"},
    )
    try:
        stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout_s)
    except asyncio.TimeoutError as e:
        proc.kill()
        await proc.wait()
        raise ToolTimeoutError(f"Command timed out after {timeout_s}s: {command}") from e

    return {
        "command": command,
        "exit_code": proc.returncode,
        "success": proc.returncode == 0,
        "stdout": _truncate(stdout.decode("utf-8", errors="replace")),
        "stderr": _truncate(stderr.decode("utf-8", errors="replace")),
        "duration_ms": int((time.perf_counter() - started) * 1000),
    }


class RunCommandTool(BaseTool):
    name = "run_command"
    description = (
        "Execute a shell command in the project directory. Dangerous commands are refused; "
        "commands outside the whitelist require user confirmation."
    )
    parameters = [
        ToolParameter("command", "string", "Shell command to execute", required=True),
        ToolParameter("timeout", "number", f"Timeout in seconds (max {MAX_TIMEOUT_S})"),
    ]
    category = "run"

    def __init__(self, settings: CommandSettings | None = None):
        self.settings = settings or CommandSettings()

    def check_params(self, params):
        timeout = params.get("timeout")
        if timeout is not None and not 0 < timeout <= MAX_TIMEOUT_S:
            return f"Parameter 'timeout' must be between 0 and {MAX_TIMEOUT_S} seconds"
        return None

    async def run(self, params, ctx: ToolContext):
        command = params["command"].strip()
        check = check_command(command)
        if check.classification == "blocked":
            raise CommandError(f"Command blocked for security: {check.reason}")

        confirmed = check.classification == "requires_confirmation"
        if confirmed:
            await ctx.require_confirmation(
                f"Execute command: {command}\n\nReason: {check.reason}",
                declined="Command execution cancelled by user",
            )

        logger.info(f"🏃 Running: {command}")
        result = await execute_shell(command, ctx.project_root, params.get("timeout") or self.settings.timeout_s)
        return {**result, "required_confirmation": confirmed}


# ==========================================
# test runners
# ==========================================

PYTEST_MARKERS = ("pytest.ini", "conftest.py", "tox.ini")


def _package_json(root: Path) -> dict:
    path = root / "package.json"
    if not path.is_file():
        return {}
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        logger.warning(f"⚠️ Unreadable package.json: {e}")
        return {}


def _uses_pytest(root: Path) -> bool:
    if any((root / marker).exists() for marker in PYTEST_MARKERS):
        return True
    pyproject = root / "pyproject.toml"
    if pyproject.is_file() and "pytest" in pyproject.read_text(encoding="utf-8", errors="replace"):
        return True
    return any(root.glob("tests/test_*.py")) or any(root.glob("test_*.py"))


def detect_test_runner(root: Path) -> str | None:
    package = _package_json(root)
    deps = {**package.get("dependencies", {}), **package.get("devDependencies", {})}
    if "vitest" in deps:
        return "vitest"
    if "jest" in deps:
        return "jest"
    if package.get("scripts", {}).get("test"):
        return "npm"
    if _uses_pytest(root):
        return "pytest"
    return None


def build_test_command(runner: str, path: str | None, test_filter: str | None, watch: bool) -> str:
    target = shlex.quote(path) if path else ""
    name = shlex.quote(test_filter) if test_filter else ""
    if runner == "pytest":
        parts = ["python -m pytest", target, f"-k {name}" if name else ""]
    elif runner == "vitest":
        parts = ["npx vitest", "" if watch else "run", target, f"-t {name}" if name else ""]
    elif runner == "jest":
        parts = ["npx jest", target, f"-t {name}" if name else "", "--watch" if watch else ""]
    else:
        extra = " ".join(p for p in (target, f"-t {name}" if name else "") if p)
        parts = ["npm test", f"-- {extra}" if extra else ""]
    return " ".join(p for p in parts if p)


class RunTestsTool(BaseTool):
    name = "run_tests"
    description = "Run the project's tests (pytest, vitest, jest or npm test, detected automatically)."
    parameters = [
        ToolParameter("path", "string", "Test file or directory"),
        ToolParameter("filter", "string", "Only tests whose name matches"),
        ToolParameter("watch", "boolean", "Watch mode (vitest/jest only)", default=False),
    ]
    category = "run"

    def __init__(self, settings: CommandSettings | None = None):
        self.settings = settings or CommandSettings()

    async def run(self, params, ctx: ToolContext):
        runner = detect_test_runner(ctx.project_root)
        if runner is None:
            raise CommandError("No test runner detected", suggestion="Add pytest or a package.json test script")

        path = ctx.paths.resolve(params["path"])[1] if params.get("path") else None
        command = build_test_command(runner, path, params.get("filter"), bool(params.get("watch")))
        ctx.progress(f"Running {runner}: {command}")
        result = await execute_shell(command, ctx.project_root, self.settings.timeout_s)
        return {**result, "runner": runner}
