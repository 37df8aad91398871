# codemate/tools/edit.py
"""File mutations. Each one shows its diff through the confirmation gate first."""
from loguru import logger

from ..errors import CodemateError, ConflictError, FileOperationError, IndexingInProgressError
from ..models import DiffInfo
from ..source_extraction import hash_lines, read_file_lines, split_lines, write_file_lines
from .base import BaseTool, ToolContext, ToolParameter

PATH_PARAM = ToolParameter("path", "string", "File path relative to project root", required=True)


async def sync_index(ctx: ToolContext, rel_path: str) -> None:
    """Bring the index in line with the file on disk after a mutation."""
    if ctx.indexer is None:
        return
    try:
        await ctx.indexer.reindex_path(rel_path)
    except IndexingInProgressError as e:
        logger.warning(f"⚠️ {rel_path} changed during a full reindex, index may lag: {e}")
    except CodemateError as e:
        logger.error(f"❌ {rel_path} was written but could not be reindexed: {e}")


class EditLinesTool(BaseTool):
    name = "edit_lines"
    description = (
        "Replace lines start..end (1-based, inclusive) of a file with new content. "
        "Requires confirmation before applying changes."
    )
    parameters = [
        PATH_PARAM,
        ToolParameter("start", "integer", "Start line number (1-based, inclusive)", required=True, minimum=1),
        ToolParameter("end", "integer", "End line number (1-based, inclusive)", required=True, minimum=1),
        ToolParameter("content", "string", "New content (can be multi-line, may be empty)",
                      required=True, allow_empty=True),
    ]
    requires_confirmation = True
    category = "edit"

    def check_params(self, params):
        if params["start"] > params["end"]:
            return "Parameter 'start' must be <= 'end'"
        return None

    async def run(self, params, ctx: ToolContext):
        absolute, rel_path = ctx.paths.resolve(params["path"])
        if not absolute.is_file():
            raise FileOperationError(f"File not found: {rel_path}")

        current = read_file_lines(absolute)
        stored = await ctx.storage.get_file(rel_path)
        if stored is not None and stored.hash != hash_lines(current):
            raise ConflictError("File has been modified externally. Please refresh the file before editing.")

        start, total = params["start"], len(current)
        if start > total:
            raise FileOperationError(f"Start line {start} exceeds file length ({total} lines)")
        end = min(params["end"], total)

        old_lines = current[start - 1:end]
        new_lines = split_lines(params["content"])
        edited = await ctx.require_confirmation(
            f"Replace lines {start}-{end} in {rel_path}",
            DiffInfo(file_path=rel_path, old_lines=old_lines, new_lines=new_lines, start_line=start),
            declined="Edit cancelled by user",
        )
        if edited is not None:
            new_lines = edited

        updated = [*current[:start - 1], *new_lines, *current[end:]]
        write_file_lines(absolute, updated)
        await sync_index(ctx, rel_path)
        logger.info(f"✏️ Edited {rel_path}:{start}-{end} ({len(old_lines)} -> {len(new_lines)} lines)")

        return {
            "path": rel_path,
            "start_line": start,
            "end_line": end,
            "lines_replaced": len(old_lines),
            "lines_inserted": len(new_lines),
            "total_lines": len(updated),
        }


class CreateFileTool(BaseTool):
    name = "create_file"
    description = "Create a new file with the given content. Fails if the file exists. Requires confirmation."
    parameters = [
        PATH_PARAM,
        ToolParameter("content", "string", "File content", required=True, allow_empty=True),
    ]
    requires_confirmation = True
    category = "edit"

    async def run(self, params, ctx: ToolContext):
        absolute, rel_path = ctx.paths.resolve(params["path"])
        if not rel_path:
            raise FileOperationError("Path must name a file")
        if absolute.exists():
            raise FileOperationError(f"File already exists: {rel_path}")

        lines = split_lines(params["content"])
        edited = await ctx.require_confirmation(
            f"Create file {rel_path} ({len(lines)} lines)",
            DiffInfo(file_path=rel_path, old_lines=[], new_lines=lines, start_line=1),
            declined="File creation cancelled by user",
        )
        if edited is not None:
            lines = edited

        write_file_lines(absolute, lines)
        await sync_index(ctx, rel_path)
        logger.info(f"🆕 Created {rel_path}")
        return {"path": rel_path, "lines": len(lines), "size": absolute.stat().st_size}


class DeleteFileTool(BaseTool):
    name = "delete_file"
    description = "Delete a file from disk and from the index. Requires confirmation."
    parameters = [PATH_PARAM]
    requires_confirmation = True
    category = "edit"

    async def run(self, params, ctx: ToolContext):
        absolute, rel_path = ctx.paths.resolve(params["path"])
        if not absolute.is_file():
            raise FileOperationError(f"File not found: {rel_path}")

        lines = read_file_lines(absolute)
        edited = await ctx.require_confirmation(
            f"Delete file {rel_path} ({len(lines)} lines)",
            DiffInfo(file_path=rel_path, old_lines=lines, new_lines=[], start_line=1),
            declined="File deletion cancelled by user",
        )
        if edited is not None:
            raise FileOperationError("A deletion has no content to edit")

        absolute.unlink()
        await sync_index(ctx, rel_path)
        logger.info(f"🗑️ Deleted {rel_path}")
        return {"path": rel_path, "deleted": True, "lines": len(lines)}
