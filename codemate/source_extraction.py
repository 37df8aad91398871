# codemate/source_extraction.py
import hashlib
from pathlib import Path

from .models import FileData, now_ms

CHARS_PER_TOKEN = 4


def hash_lines(lines: list[str]) -> str:
    """md5 over the lines joined with a newline; the content identity of a FileData."""
    return hashlib.md5("\n".join(lines).encode("utf-8")).hexdigest()


def split_lines(content: str) -> list[str]:
    return content.split("\n")


def file_data_from_content(content: str, last_modified: float | None = None) -> FileData:
    lines = split_lines(content)
    return FileData(
        lines=lines,
        hash=hash_lines(lines),
        size=len(content.encode("utf-8")),
        last_modified=now_ms() if last_modified is None else last_modified,
    )


def estimate_tokens(text: str) -> int:
    # 1 token ≈ 4 chars
    return (len(text) + CHARS_PER_TOKEN - 1) // CHARS_PER_TOKEN


def clamp_range(total: int, start: int | None, end: int | None) -> tuple[int, int]:
    """1-based inclusive range clamped to [1, total]."""
    start = 1 if start is None else max(1, start)
    end = total if end is None else min(total, end)
    return start, max(start, end) if total else start


def extract_source_lines(lines: list[str], start_line: int, end_line: int) -> list[str]:
    """Lines ``start_line..end_line`` (1-based, inclusive) with the range clamped to the file."""
    if not lines:
        return []
    start_line, end_line = clamp_range(len(lines), start_line, end_line)
    return lines[start_line - 1:end_line]


def number_lines(lines: list[str], first_line: int = 1, total: int | None = None) -> str:
    """``  7│text`` numbering, right-aligned to the widest line number."""
    last = total if total is not None else first_line + len(lines) - 1
    width = len(str(max(last, 1)))
    return "\n".join(f"{n:>{width}}│{text}" for n, text in enumerate(lines, start=first_line))


def read_file_lines(file_path: Path) -> list[str]:
    with open(file_path, "r", encoding="utf-8", errors="replace") as f:
        content = f.read()
    return split_lines(content)


def write_file_lines(file_path: Path, lines: list[str]) -> None:
    file_path.parent.mkdir(parents=True, exist_ok=True)
    with open(file_path, "w", encoding="utf-8", newline="") as f:
        f.write("\n".join(lines))
