# codemate/indexer.py
"""
Full and incremental indexing of one project.

scan -> parse (thread pool, bounded) -> barrier -> analyze -> build indexes
-> one MULTI/EXEC write. Incremental updates re-analyze only the files whose
metadata can change and are rejected while a full reindex is running.
"""
import asyncio
import time
from collections import deque
from pathlib import Path
from typing import Callable

from loguru import logger

from .config import ProjectSettings
from .database import RedisStorage
from .errors import IndexingInProgressError
from .graph_builder import IndexBuilder
from .language_specs import language_for_path
from .meta_analyzer import MetaAnalyzer
from .models import DepsGraph, FileAST, FileData, FileMeta, IndexProgress, IndexStats
from .parser import ASTParser
from .scanner import FileScanner, read_text_file
from .session import Project
from .source_extraction import file_data_from_content

ProgressCallback = Callable[[IndexProgress], None]

PARSE_CONCURRENCY = 8
PROJECT_CONFIG_KEY = "project"


def _emit(on_progress: ProgressCallback | None, progress: IndexProgress) -> None:
    if on_progress is None:
        return
    try:
        on_progress(progress)
    except Exception as e:
        logger.warning(f"Progress callback failed ({progress.phase}): {e}")


def _closure(adjacency: dict[str, list[str]], start: str) -> set[str]:
    seen = {start}
    queue = deque([start])
    while queue:
        node = queue.popleft()
        for nxt in adjacency.get(node, []):
            if nxt not in seen:
                seen.add(nxt)
                queue.append(nxt)
    return seen


def affected_paths(path: str, old: DepsGraph, new: DepsGraph) -> set[str]:
    """Every file whose FileMeta can change when ``path`` changes: both directions, both graphs."""
    affected = {path}
    for graph in (old, new):
        affected |= _closure(graph.imports, path)
        affected |= _closure(graph.imported_by, path)
    return affected


class Indexer:
    def __init__(
        self,
        root: str | Path,
        storage: RedisStorage,
        settings: ProjectSettings | None = None,
        parser: ASTParser | None = None,
        analyzer: MetaAnalyzer | None = None,
        index_builder: IndexBuilder | None = None,
    ):
        self.root = Path(root).resolve()
        self.storage = storage
        self.settings = settings or ProjectSettings(root=str(self.root))
        self.parser = parser or ASTParser()
        self.index_builder = index_builder or IndexBuilder()
        self.analyzer = analyzer or MetaAnalyzer(self.index_builder)
        self._lock = asyncio.Lock()
        self._full_running = False

    @property
    def is_indexing(self) -> bool:
        return self._full_running

    def _scanner(self, on_progress: ProgressCallback | None) -> FileScanner:
        return FileScanner(
            extensions=self.settings.extensions,
            extra_ignore=self.settings.extra_ignore,
            max_file_size=self.settings.max_file_size,
            on_progress=lambda current, total, path: _emit(
                on_progress, IndexProgress(current, total, path, "scanning")
            ),
        )

    async def load_project(self) -> Project:
        data = await self.storage.get_project_config(PROJECT_CONFIG_KEY)
        if data:
            return Project.from_dict(data)
        return Project(root_path=str(self.root), name=self.storage.project_name)

    async def _save_project(self, project: Project) -> None:
        await self.storage.set_project_config(PROJECT_CONFIG_KEY, project.to_dict())

    def _read_and_parse(self, rel_path: str) -> tuple[FileData, FileAST] | None:
        content = read_text_file(self.root / rel_path)
        if content is None:
            logger.warning(f"⚠️ Skipping non-text file: {rel_path}")
            return None
        stat = (self.root / rel_path).stat()
        data = file_data_from_content(content, last_modified=stat.st_mtime * 1000)
        return data, self._safe_parse(rel_path, content)

    def _safe_parse(self, rel_path: str, content: str) -> FileAST:
        """A crashing extractor marks the file as a parse error instead of aborting indexing."""
        try:
            return self.parser.parse_path(rel_path, content)
        except Exception as e:
            logger.error(f"❌ Parser crashed on {rel_path}: {e}")
            return FileAST.failed(f"Parse error: {e}")

    # ==========================================
    # full reindex
    # ==========================================

    async def index_project(self, on_progress: ProgressCallback | None = None) -> IndexStats:
        if self._full_running:
            raise IndexingInProgressError(f"Project {self.storage.project_name} is already being indexed")

        async with self._lock:
            self._full_running = True
            started = time.perf_counter()
            project = await self.load_project()
            project.mark_indexing_started()
            await self._save_project(project)

            try:
                stats = await self._run_full_index(on_progress)
            except BaseException:
                project.mark_indexing_failed()
                await self._save_project(project)
                raise
            finally:
                self._full_running = False

            stats.time_ms = int((time.perf_counter() - started) * 1000)
            project.mark_indexing_completed(stats.files_parsed)
            await self._save_project(project)
            logger.success(
                f"✅ Indexed {stats.files_parsed}/{stats.files_scanned} files "
                f"({stats.parse_errors} parse errors) in {stats.time_ms} ms"
            )
            return stats

    async def _run_full_index(self, on_progress: ProgressCallback | None) -> IndexStats:
        stats = IndexStats()

        logger.info(f"📂 Scanning {self.root}")
        candidates: list[str] = []
        for entry in self._scanner(on_progress).scan(self.root):
            stats.files_scanned += 1
            if entry.type != "file":
                logger.debug(f"Skipping {entry.type}: {entry.path}")
            elif language_for_path(entry.path) is not None:
                candidates.append(entry.path)
            # let other tasks run between entries
            await asyncio.sleep(0)

        logger.info(f"🔍 Parsing {len(candidates)} files")
        semaphore = asyncio.Semaphore(PARSE_CONCURRENCY)
        done = 0
        total = len(candidates)

        async def parse_one(rel_path: str):
            nonlocal done
            async with semaphore:
                result = await asyncio.to_thread(self._read_and_parse, rel_path)
            done += 1
            _emit(on_progress, IndexProgress(done, total, rel_path, "parsing"))
            return rel_path, result

        # barrier: cross-file analysis needs every AST
        results = await asyncio.gather(*(parse_one(p) for p in candidates))

        files: dict[str, FileData] = {}
        asts: dict[str, FileAST] = {}
        for rel_path, result in results:
            if result is None:
                continue
            files[rel_path], asts[rel_path] = result
            if asts[rel_path].parse_error:
                stats.parse_errors += 1
                logger.warning(f"⚠️ {rel_path}: {asts[rel_path].parse_error_message}")
        stats.files_parsed = len(asts)

        logger.info("🧮 Analyzing dependencies and complexity")
        graph = self.index_builder.build_deps_graph(asts)
        metas: dict[str, FileMeta] = {}
        for i, (rel_path, ast) in enumerate(asts.items(), start=1):
            metas[rel_path] = self.analyzer.analyze_with_graph(rel_path, ast, files[rel_path].lines, graph)
            _emit(on_progress, IndexProgress(i, len(asts), rel_path, "analyzing"))

        logger.info("🏗️ Building indexes")
        symbols = self.index_builder.build_symbol_index(asts)
        _emit(on_progress, IndexProgress(0, 1, "", "indexing"))
        await self.storage.replace_index(files, asts, metas, symbols, graph)
        _emit(on_progress, IndexProgress(1, 1, "", "indexing"))
        return stats

    # ==========================================
    # incremental
    # ==========================================

    def _reject_during_full_index(self, path: str) -> None:
        if self._full_running:
            raise IndexingInProgressError(f"Cannot update {path} while a full reindex is running")

    async def update_file(self, path: str, content: str) -> FileMeta | None:
        """Re-index one file from new content. Returns its FileMeta, or None for unsupported kinds."""
        self._reject_during_full_index(path)
        if language_for_path(path) is None:
            logger.debug(f"Not indexing unsupported file {path}")
            return None

        async with self._lock:
            asts = await self.storage.get_all_asts()
            old_graph = await self.storage.get_deps_graph()
            is_new = path not in asts

            data = file_data_from_content(content)
            asts[path] = await asyncio.to_thread(self._safe_parse, path, content)

            new_graph, symbols, new_metas = await self._reanalyze(
                path, asts, old_graph, total_changed=is_new, changed={path: data}
            )
            await self.storage.apply_changes(
                symbols, new_graph, files={path: data}, asts={path: asts[path]}, metas=new_metas,
            )
            await self._update_file_count(len(asts))
            logger.debug(f"Re-indexed {path} ({len(new_metas)} metas refreshed)")
            return new_metas[path]

    async def remove_file(self, path: str) -> bool:
        """Drop one file from the index. False when it was not indexed."""
        self._reject_during_full_index(path)
        async with self._lock:
            asts = await self.storage.get_all_asts()
            if path not in asts:
                logger.warning(f"⚠️ {path} is not in the index")
                return False
            old_graph = await self.storage.get_deps_graph()
            del asts[path]

            new_graph, symbols, new_metas = await self._reanalyze(path, asts, old_graph, total_changed=True)
            await self.storage.apply_changes(symbols, new_graph, metas=new_metas, removed=[path])
            await self._update_file_count(len(asts))
            logger.debug(f"Removed {path} from index")
            return True

    async def _reanalyze(
        self,
        path: str,
        asts: dict[str, FileAST],
        old_graph: DepsGraph,
        total_changed: bool,
        changed: dict[str, FileData] | None = None,
    ):
        new_graph = self.index_builder.build_deps_graph(asts)
        symbols = self.index_builder.build_symbol_index(asts)

        if total_changed:
            # impact scores are relative to the file count
            targets = set(asts)
        else:
            targets = affected_paths(path, old_graph, new_graph) & set(asts)

        lines_source = await self.storage.get_files(sorted(targets - set(changed or {})))
        lines_source.update(changed or {})
        metas = {
            p: self.analyzer.analyze_with_graph(
                p, asts[p], lines_source[p].lines if p in lines_source else [], new_graph
            )
            for p in targets
        }
        return new_graph, symbols, metas

    async def _update_file_count(self, count: int) -> None:
        project = await self.load_project()
        project.file_count = count
        await self._save_project(project)

    async def reindex_path(self, path: str) -> FileMeta | None:
        """Sync the index with what is on disk for ``path`` (update, or remove if gone)."""
        full = self.root / path
        if full.is_file():
            content = read_text_file(full)
            if content is not None:
                return await self.update_file(path, content)
        await self.remove_file(path)
        return None

    # ==========================================
    # queries
    # ==========================================

    async def find_cycles(self) -> list[list[str]]:
        return self.index_builder.find_cycles(await self.storage.get_deps_graph())

    async def get_stats(self) -> dict:
        return self.index_builder.get_stats(
            await self.storage.get_symbol_index(), await self.storage.get_deps_graph()
        )
