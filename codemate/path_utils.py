# codemate/path_utils.py
import re
from pathlib import Path, PurePosixPath

from .errors import FileOperationError

# Directories that are never indexed (extend through ProjectSettings.extra_ignore)
IGNORE_DIRS = {
    '.git', '.hg', '.svn', '.venv', 'venv', 'env', '__pycache__',
    'node_modules', 'dist', 'build', '.idea', '.vscode', '.next', '.nuxt',
    'coverage', '.cache', '.pytest_cache', '.mypy_cache', '.tox',
    'site-packages', '.eggs',
}

IGNORE_FILES = {
    '.DS_Store', 'poetry.lock', 'package-lock.json', 'yarn.lock', 'pnpm-lock.yaml',
}

BINARY_EXTENSIONS = {
    '.png', '.jpg', '.jpeg', '.gif', '.ico', '.svg', '.webp', '.bmp',
    '.woff', '.woff2', '.ttf', '.eot', '.otf',
    '.mp3', '.mp4', '.webm', '.wav', '.mov',
    '.pdf', '.zip', '.tar', '.gz', '.tgz', '.bz2', '.7z', '.rar',
    '.exe', '.dll', '.so', '.dylib', '.bin', '.pyc', '.pyo', '.class', '.jar',
    '.db', '.sqlite', '.sqlite3',
}

TEXT_SNIFF_BYTES = 8192


def should_skip_path(path: Path, root_path: Path, extra_ignore: set[str] | None = None) -> bool:
    """
    True when the path must be left out of the index: it (or one of its parent
    directories below the root) is in the ignore lists or is hidden.
    """
    ignore_dirs = IGNORE_DIRS | (extra_ignore or set())

    if path.name in ignore_dirs or path.name in IGNORE_FILES:
        return True

    if path.name.startswith('.') and path.name not in ('.', '..') and path.name != '.gitignore':
        return True

    try:
        rel_path = path.relative_to(root_path)
    except ValueError:
        return False

    for part in rel_path.parts[:-1]:
        if part in ignore_dirs or (part.startswith('.') and part != '.'):
            return True

    return False


def is_binary_extension(path: str | Path) -> bool:
    return Path(path).suffix.lower() in BINARY_EXTENSIONS


def is_text_file(path: Path) -> bool:
    """Reads the first 8 KiB; any NUL byte means binary. Unreadable files are not text."""
    try:
        with open(path, "rb") as f:
            head = f.read(TEXT_SNIFF_BYTES)
    except OSError:
        return False
    return b"\x00" not in head


# ==========================================
# .gitignore handling
# ==========================================

def _glob_to_regex(pattern: str) -> str:
    out = []
    i = 0
    while i < len(pattern):
        c = pattern[i]
        if c == "*":
            if pattern.startswith("**/", i):
                out.append("(?:.*/)?")
                i += 3
                continue
            if pattern.startswith("**", i):
                out.append(".*")
                i += 2
                continue
            out.append("[^/]*")
        elif c == "?":
            out.append("[^/]")
        elif c == "[":
            end = pattern.find("]", i + 1)
            if end == -1:
                out.append(re.escape(c))
            else:
                body = pattern[i + 1:end]
                if body.startswith("!"):
                    body = "^" + body[1:]
                out.append(f"[{body}]")
                i = end + 1
                continue
        elif c == "\\" and i + 1 < len(pattern):
            out.append(re.escape(pattern[i + 1]))
            i += 2
            continue
        else:
            out.append(re.escape(c))
        i += 1
    return "".join(out)


class _GitIgnoreRule:
    def __init__(self, pattern: str):
        self.negate = pattern.startswith("!")
        if self.negate:
            pattern = pattern[1:]
        self.dir_only = pattern.endswith("/")
        pattern = pattern.rstrip("/")
        anchored = "/" in pattern
        pattern = pattern.lstrip("/")

        prefix = "^" if anchored else "^(?:.*/)?"
        body = _glob_to_regex(pattern)
        self._full = re.compile(prefix + body + "$")
        self._under = re.compile(prefix + body + "/.*$")

    def matches(self, rel_path: str, is_dir: bool) -> bool:
        if self._under.match(rel_path):
            return True
        if self._full.match(rel_path):
            return is_dir or not self.dir_only
        return False


class GitIgnore:
    """Ignore rules collected from every .gitignore met during a walk; the last matching rule wins."""

    def __init__(self):
        self._specs: list[tuple[str, list[_GitIgnoreRule]]] = []

    @staticmethod
    def parse_lines(lines: list[str]) -> list[_GitIgnoreRule]:
        rules = []
        for raw in lines:
            line = raw.rstrip("\n").rstrip()
            if not line or line.startswith("#"):
                continue
            rules.append(_GitIgnoreRule(line))
        return rules

    def add_file(self, gitignore_path: Path, root: Path) -> None:
        try:
            lines = gitignore_path.read_text(encoding="utf-8", errors="ignore").splitlines()
        except OSError:
            return
        base = gitignore_path.parent.relative_to(root).as_posix()
        self.add_rules(lines, "" if base == "." else base)

    def add_rules(self, lines: list[str], base: str = "") -> None:
        rules = self.parse_lines(lines)
        if rules:
            self._specs.append((base, rules))

    def is_ignored(self, rel_path: str, is_dir: bool = False) -> bool:
        ignored = False
        for base, rules in self._specs:
            if base:
                if not rel_path.startswith(base + "/"):
                    continue
                local = rel_path[len(base) + 1:]
            else:
                local = rel_path
            for rule in rules:
                if rule.matches(local, is_dir):
                    ignored = not rule.negate
        return ignored


# ==========================================
# Project boundary checks
# ==========================================

class PathValidator:
    """Keeps tool file operations inside the project root."""

    def __init__(self, project_root: str | Path):
        self.project_root = Path(project_root).resolve()

    def resolve(self, input_path: str) -> tuple[Path, str]:
        """Returns (absolute path, relative POSIX path) or raises FileOperationError."""
        if input_path is None or not str(input_path).strip():
            raise FileOperationError("Path is empty")

        candidate = str(input_path).strip().replace("\\", "/")
        if candidate.startswith("~"):
            raise FileOperationError("Path contains traversal patterns")
        if ".." in PurePosixPath(candidate).parts:
            raise FileOperationError("Path contains traversal patterns")

        absolute = (self.project_root / candidate).resolve()
        if absolute != self.project_root and self.project_root not in absolute.parents:
            raise FileOperationError("Path is outside project root")

        relative = absolute.relative_to(self.project_root).as_posix()
        return absolute, "" if relative == "." else relative

    def is_within_project(self, input_path: str) -> bool:
        try:
            self.resolve(input_path)
        except FileOperationError:
            return False
        return True
