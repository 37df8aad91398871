# codemate/tools/git.py
"""Git access through the ``git`` executable, run in the project root."""
import asyncio
import re
from pathlib import Path

from loguru import logger

from ..errors import CommandError, ToolTimeoutError
from .base import BaseTool, ToolContext, ToolParameter

GIT_TIMEOUT_S = 30
MAX_DIFF_CHARS = 100_000

AHEAD_RE = re.compile(r"ahead (\d+)")
BEHIND_RE = re.compile(r"behind (\d+)")


async def run_git(root: Path, *args: str, timeout: float = GIT_TIMEOUT_S) -> str:
    """stdout of ``git <args>``; a non-zero exit raises CommandError with git's stderr."""
    try:
        proc = await asyncio.create_subprocess_exec(
            "git", *args,
            cwd=str(root),
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except FileNotFoundError as e:
        raise CommandError("git executable not found", suggestion="Install git") from e

    try:
        stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout)
    except asyncio.TimeoutError as e:
        proc.kill()
        await proc.wait()
        raise ToolTimeoutError(f"git {args[0]} timed out after {timeout}s") from e

    if proc.returncode != 0:
        message = stderr.decode("utf-8", errors="replace").strip() or f"git {args[0]} failed"
        if "not a git repository" in message:
            raise CommandError("Project is not a git repository")
        raise CommandError(message)
    return stdout.decode("utf-8", errors="replace")


def parse_status(output: str) -> dict:
    """``git status --porcelain=v1 -b`` -> branch, tracking info and file buckets."""
    result = {
        "branch": None, "upstream": None, "ahead": 0, "behind": 0,
        "staged": [], "modified": [], "untracked": [],
    }
    for line in output.splitlines():
        if line.startswith("## "):
            header, _, track = line[3:].removeprefix("No commits yet on ").partition(" [")
            branch, _, upstream = header.partition("...")
            result["branch"] = branch
            result["upstream"] = upstream or None
            ahead, behind = AHEAD_RE.search(track), BEHIND_RE.search(track)
            result["ahead"] = int(ahead.group(1)) if ahead else 0
            result["behind"] = int(behind.group(1)) if behind else 0
            continue
        if len(line) < 4:
            continue

        index_status, worktree_status, path = line[0], line[1], line[3:]
        if " -> " in path:
            path = path.split(" -> ", 1)[1]
        if index_status == "?":
            result["untracked"].append(path)
            continue
        if index_status not in " !":
            result["staged"].append({"path": path, "status": index_status})
        if worktree_status not in " !":
            result["modified"].append({"path": path, "status": worktree_status})

    result["clean"] = not (result["staged"] or result["modified"] or result["untracked"])
    return result


class GitStatusTool(BaseTool):
    name = "git_status"
    description = "Current branch, ahead/behind counts and staged, modified and untracked files."
    parameters = []
    category = "git"

    async def run(self, params, ctx: ToolContext):
        return parse_status(await run_git(ctx.project_root, "status", "--porcelain=v1", "-b"))


class GitDiffTool(BaseTool):
    name = "git_diff"
    description = "Unified diff of uncommitted changes, optionally for one path or only staged changes."
    parameters = [
        ToolParameter("path", "string", "Limit the diff to this file or directory"),
        ToolParameter("staged", "boolean", "Show staged changes instead of the working tree", default=False),
    ]
    category = "git"

    async def run(self, params, ctx: ToolContext):
        args = ["diff"]
        if params.get("staged"):
            args.append("--cached")
        scope: list[str] = []
        if params.get("path"):
            _, rel_path = ctx.paths.resolve(params["path"])
            scope = ["--", rel_path or "."]

        names = await run_git(ctx.project_root, *args, "--name-only", *scope)
        diff = await run_git(ctx.project_root, *args, *scope)
        truncated = len(diff) > MAX_DIFF_CHARS
        return {
            "files": [n for n in names.splitlines() if n],
            "has_changes": bool(diff.strip()),
            "diff": diff[:MAX_DIFF_CHARS] + ("\n... (diff truncated)" if truncated else ""),
            "truncated": truncated,
        }


class GitCommitTool(BaseTool):
    name = "git_commit"
    description = "Stage the given files (or use what is already staged) and commit. Requires confirmation."
    parameters = [
        ToolParameter("message", "string", "Commit message", required=True),
        ToolParameter("files", "array", "Files to stage before committing (default: already staged changes)"),
    ]
    requires_confirmation = True
    category = "git"

    def check_params(self, params):
        files = params.get("files")
        if files is not None and not all(isinstance(f, str) and f.strip() for f in files):
            return "Parameter 'files' must be an array of non-empty strings"
        return None

    async def run(self, params, ctx: ToolContext):
        files = [ctx.paths.resolve(f)[1] for f in params.get("files") or []]
        scope = ", ".join(files) if files else "staged changes"
        await ctx.require_confirmation(
            f"Commit {scope}\n\nMessage: {params['message']}", declined="Commit cancelled by user"
        )

        if files:
            await run_git(ctx.project_root, "add", "--", *files)
        staged = [n for n in (await run_git(ctx.project_root, "diff", "--cached", "--name-only")).splitlines() if n]
        if not staged:
            raise CommandError("Nothing to commit")

        await run_git(ctx.project_root, "commit", "-m", params["message"])
        commit_hash = (await run_git(ctx.project_root, "rev-parse", "--short", "HEAD")).strip()
        logger.info(f"📝 Committed {len(staged)} files as {commit_hash}")
        return {"hash": commit_hash, "message": params["message"], "files": staged}
