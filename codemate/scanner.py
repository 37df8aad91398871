# codemate/scanner.py
"""
Project walker.

``FileScanner.scan`` is a plain generator: nothing is read until the caller
pulls, and abandoning the iterator mid-way leaves nothing behind.
"""
import os
from pathlib import Path
from typing import Callable, Iterator

from loguru import logger

from .language_specs import SUPPORTED_EXTENSIONS
from .models import ScanResult
from .path_utils import GitIgnore, is_binary_extension, is_text_file, should_skip_path

ScanProgressCallback = Callable[[int, int, str], None]


class FileScanner:
    def __init__(
        self,
        extensions: list[str] | tuple[str, ...] | None = None,
        extra_ignore: list[str] | None = None,
        max_file_size: int | None = None,
        on_progress: ScanProgressCallback | None = None,
    ):
        """
        Args:
            extensions: allow-list of extensions (with dot). Defaults to every supported kind.
            extra_ignore: directory/file names ignored on top of the defaults.
            max_file_size: files larger than this (bytes) are skipped.
            on_progress: called once per yielded entry with (current, total, path).
        """
        self.extensions = {e.lower() for e in (extensions or SUPPORTED_EXTENSIONS)}
        self.extra_ignore = set(extra_ignore or [])
        self.max_file_size = max_file_size
        self.on_progress = on_progress

    def is_supported(self, path: str) -> bool:
        return Path(path).suffix.lower() in self.extensions

    def _collect(self, root: Path) -> list[str]:
        """Relative POSIX paths of every candidate file, in a stable order."""
        gitignore = GitIgnore()
        found: list[str] = []

        def on_error(err: OSError):
            logger.warning(f"⚠️ Cannot read {err.filename}: {err.strerror}")

        for dirpath, dirnames, filenames in os.walk(root, onerror=on_error, followlinks=False):
            current = Path(dirpath)
            if ".gitignore" in filenames:
                gitignore.add_file(current / ".gitignore", root)

            kept_dirs = []
            for d in sorted(dirnames):
                dir_path = current / d
                rel = dir_path.relative_to(root).as_posix()
                if should_skip_path(dir_path, root, self.extra_ignore):
                    continue
                if gitignore.is_ignored(rel, is_dir=True):
                    continue
                kept_dirs.append(d)
            # prune in place so os.walk does not descend
            dirnames[:] = kept_dirs

            for name in sorted(filenames):
                file_path = current / name
                rel = file_path.relative_to(root).as_posix()
                if not self.is_supported(name) or is_binary_extension(name):
                    continue
                if should_skip_path(file_path, root, self.extra_ignore):
                    continue
                if gitignore.is_ignored(rel):
                    continue
                found.append(rel)

        return found

    def scan(self, root: str | Path) -> Iterator[ScanResult]:
        root = Path(root).resolve()
        files = self._collect(root)
        total = len(files)

        for current, rel in enumerate(files, start=1):
            full_path = root / rel
            try:
                st = full_path.lstat()
            except OSError as e:
                logger.warning(f"⚠️ Skipping {rel}: {e}")
                continue

            if full_path.is_symlink():
                try:
                    target = os.readlink(full_path)
                except OSError:
                    target = None
                result = ScanResult(
                    path=rel, type="symlink", size=st.st_size,
                    last_modified=st.st_mtime * 1000, symlink_target=target,
                )
            else:
                if self.max_file_size is not None and st.st_size > self.max_file_size:
                    logger.warning(f"⚠️ Skipping {rel}: {st.st_size} bytes exceeds {self.max_file_size}")
                    continue
                result = ScanResult(path=rel, type="file", size=st.st_size, last_modified=st.st_mtime * 1000)

            self._report(current, total, rel)
            yield result

    def scan_all(self, root: str | Path) -> list[ScanResult]:
        return list(self.scan(root))

    def _report(self, current: int, total: int, path: str) -> None:
        if self.on_progress is None:
            return
        try:
            self.on_progress(current, total, path)
        except Exception as e:
            logger.warning(f"Progress callback failed for {path}: {e}")


def read_text_file(path: Path) -> str | None:
    """Content of a text file, or None for binary/unreadable files."""
    if not is_text_file(path):
        return None
    try:
        return path.read_text(encoding="utf-8", errors="replace")
    except OSError as e:
        logger.warning(f"⚠️ Cannot read {path}: {e}")
        return None
