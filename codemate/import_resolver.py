# codemate/import_resolver.py
"""
Maps ImportInfo records to project files.

Only files present in the parsed set count, so the analyzer and the index
builder agree on every edge.
"""
import posixpath
from typing import Iterable

from .language_specs import language_for_path
from .models import FileAST, ImportInfo

SCRIPT_SUFFIXES = (".ts", ".tsx", ".js", ".jsx")
PYTHON_ROOTS = ("", "src/")


def _python_module_candidates(base: str, module: str) -> list[str]:
    """``a.b`` under ``base`` -> ``base/a/b.py``, ``base/a/b/__init__.py``."""
    rel = module.replace(".", "/")
    stem = posixpath.join(base, rel) if base else rel
    return [f"{stem}.py", f"{stem}/__init__.py"]


def _python_package_init(base: str) -> str:
    return posixpath.join(base, "__init__.py") if base else "__init__.py"


class ImportResolver:
    def __init__(self, known_paths: Iterable[str]):
        self.known = set(known_paths)

    def _first_known(self, candidates: list[str]) -> str | None:
        for candidate in candidates:
            if candidate in self.known:
                return candidate
        return None

    def resolve(self, file_path: str, imp: ImportInfo) -> str | None:
        kind = language_for_path(file_path)
        if kind == "python":
            return self._resolve_python(file_path, imp)
        if kind in ("typescript", "tsx", "javascript"):
            return self._resolve_script(file_path, imp)
        return None

    def resolve_all(self, file_path: str, ast: FileAST) -> list[str]:
        """Sorted, de-duplicated internal dependencies of ``file_path``; self-imports dropped."""
        resolved = set()
        for imp in ast.imports:
            if imp.type == "builtin":
                continue
            target = self.resolve(file_path, imp)
            if target and target != file_path:
                resolved.add(target)
        return sorted(resolved)

    # ==========================================
    # python
    # ==========================================

    def _resolve_python(self, file_path: str, imp: ImportInfo) -> str | None:
        module = imp.source.lstrip(".")
        is_from = not imp.whole_module

        if imp.level > 0:
            base = posixpath.dirname(file_path)
            for _ in range(imp.level - 1):
                if not base:
                    return None
                base = posixpath.dirname(base)
            return self._python_candidates_under(base, module, imp.name if is_from else None)

        for root in PYTHON_ROOTS:
            base = root.rstrip("/")
            found = self._python_candidates_under(base, module, imp.name if is_from else None)
            if found:
                return found
        return None

    def _python_candidates_under(self, base: str, module: str, name: str | None) -> str | None:
        candidates = []
        if name and name != "*":
            sub = f"{module}.{name}" if module else name
            candidates += _python_module_candidates(base, sub)
        if module:
            candidates += _python_module_candidates(base, module)
        else:
            candidates.append(_python_package_init(base))
        return self._first_known(candidates)

    # ==========================================
    # typescript / javascript
    # ==========================================

    def _resolve_script(self, file_path: str, imp: ImportInfo) -> str | None:
        if not imp.source.startswith("."):
            return None
        joined = posixpath.normpath(posixpath.join(posixpath.dirname(file_path), imp.source))
        if joined == ".." or joined.startswith("../"):
            return None

        candidates = [joined]
        if joined.endswith(".js"):
            candidates.append(joined[:-3] + ".ts")
        elif joined.endswith(".jsx"):
            candidates.append(joined[:-4] + ".tsx")
        candidates += [joined + suffix for suffix in SCRIPT_SUFFIXES]
        candidates += [f"{joined}/index{suffix}" for suffix in SCRIPT_SUFFIXES]
        return self._first_known(candidates)
