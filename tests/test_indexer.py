import asyncio

import pytest

from codemate.config import RedisSettings
from codemate.database import RedisClient, RedisStorage
from codemate.errors import IndexingInProgressError, StorageConnectionError, StorageDataError
from codemate.models import DepsGraph, FileAST, FileData, FileMeta, SymbolLocation


class TestStorage:
    async def test_file_records(self, storage):
        data = FileData(lines=["a", "b"], hash="h1", size=3, last_modified=10)
        await storage.set_file("a.py", data)

        assert await storage.get_file("a.py") == data
        assert await storage.get_file("missing.py") is None
        assert await storage.get_file_count() == 1
        assert list(await storage.get_files(["a.py", "missing.py"])) == ["a.py"]

        await storage.delete_file("a.py")
        assert await storage.get_file_count() == 0

    async def test_replace_index(self, storage):
        graph = DepsGraph(imports={"a.py": []}, imported_by={"a.py": []})
        symbols = {"main": [SymbolLocation("a.py", 3, "function")]}
        await storage.replace_index(
            {"a.py": FileData(["x"], "h", 1, 0)}, {"a.py": FileAST()}, {"a.py": FileMeta()}, symbols, graph,
        )

        assert await storage.get_deps_graph() == graph
        assert (await storage.get_symbol_index())["main"][0].line == 3
        assert isinstance(await storage.get_meta("a.py"), FileMeta)

        await storage.replace_index({}, {}, {}, {}, DepsGraph())
        assert await storage.get_all_files() == {}
        assert await storage.get_symbol_index() == {}

    async def test_corrupt_json(self, storage, redis_client):
        await redis_client.client.hset(redis_client.key(storage.keys.files), "bad.py", "{not json")
        with pytest.raises(StorageDataError):
            await storage.get_file("bad.py")

    async def test_projects_are_isolated(self, redis_client, storage):
        await storage.set_file("a.py", FileData(["x"], "h", 1, 0))
        other = RedisStorage(redis_client, "other")
        assert await other.get_file_count() == 0

        await storage.clear()
        assert await storage.get_file_count() == 0

    async def test_connect_gives_up(self):
        class Unreachable:
            async def ping(self):
                raise ConnectionError("refused")

            async def aclose(self):
                pass

        client = RedisClient(RedisSettings(max_attempts=2, max_delay_s=0.01), client_factory=Unreachable)
        with pytest.raises(StorageConnectionError):
            await client.connect()
        assert not client.is_connected()
        assert not await client.ping()


class TestFullIndex:
    async def test_dependents_and_impact(self, indexed, storage):
        core = await storage.get_meta("core.py")
        assert core.dependents == ["alpha.py", "beta.py"]
        assert not core.is_hub
        assert core.impact_score == 100
        assert not core.is_entry_point

        alpha = await storage.get_meta("alpha.py")
        assert alpha.dependencies == ["core.py"]
        assert alpha.is_entry_point
        assert alpha.impact_score == 0

    async def test_symbols_and_stats(self, indexed, storage):
        symbols = await storage.get_symbol_index()
        assert [loc.path for loc in symbols["helper"]] == ["core.py"]
        assert symbols["Engine.start"][0].line == 8

        stats = await indexed.get_stats()
        assert stats["total_files"] == 3
        assert await indexed.find_cycles() == []

    async def test_project_record(self, indexed):
        project = await indexed.load_project()
        assert project.is_indexed()
        assert project.file_count == 3

    async def test_progress_phases(self, indexer):
        phases = []
        stats = await indexer.index_project(lambda p: phases.append(p.phase))

        assert stats.files_scanned == 3
        assert stats.files_parsed == 3
        assert stats.parse_errors == 0
        assert phases[0] == "scanning"
        assert phases[-1] == "indexing"
        assert "parsing" in phases and "analyzing" in phases

    async def test_parse_errors_are_counted(self, project, indexer, storage):
        (project / "broken.py").write_text("def broken(:\n", encoding="utf-8")
        stats = await indexer.index_project()

        assert stats.parse_errors == 1
        assert (await storage.get_ast("broken.py")).parse_error
        assert "broken" not in await storage.get_symbol_index()

    async def test_reindex_replaces_old_records(self, project, indexed, storage):
        (project / "beta.py").unlink()
        await indexed.index_project()

        assert await storage.get_file("beta.py") is None
        assert (await storage.get_meta("core.py")).dependents == ["alpha.py"]

    async def test_concurrent_full_index_rejected(self, indexer):
        first = asyncio.create_task(indexer.index_project())
        await asyncio.sleep(0)
        with pytest.raises(IndexingInProgressError):
            await indexer.index_project()
        await first


class TestIncremental:
    async def test_new_import_updates_both_sides(self, indexed, storage):
        await indexed.update_file("gamma.py", "from alpha import run\n\nrun()\n")

        alpha = await storage.get_meta("alpha.py")
        assert alpha.dependents == ["gamma.py"]
        assert not alpha.is_entry_point
        core = await storage.get_meta("core.py")
        assert core.transitive_dep_by_count == 3
        # four files now, two direct dependents
        assert core.impact_score == 67

    async def test_dropped_import(self, indexed, storage):
        meta = await indexed.update_file("beta.py", "def boot():\n    return None\n")

        assert meta.dependencies == []
        assert (await storage.get_meta("core.py")).dependents == ["alpha.py"]
        assert (await storage.get_file("beta.py")).lines[0] == "def boot():"

    async def test_remove_file(self, indexed, storage):
        assert await indexed.remove_file("alpha.py")
        assert await storage.get_meta("alpha.py") is None
        assert (await storage.get_meta("core.py")).dependents == ["beta.py"]
        assert "run" not in await storage.get_symbol_index()
        assert not await indexed.remove_file("alpha.py")

    async def test_reindex_path_follows_disk(self, project, indexed, storage):
        (project / "alpha.py").write_text("def run():\n    return 1\n", encoding="utf-8")
        await indexed.reindex_path("alpha.py")
        assert (await storage.get_meta("alpha.py")).dependencies == []

        (project / "alpha.py").unlink()
        assert await indexed.reindex_path("alpha.py") is None
        assert await storage.get_file("alpha.py") is None

    async def test_unsupported_files_ignored(self, indexed):
        assert await indexed.update_file("notes.txt", "hello") is None

    async def test_updates_rejected_during_full_index(self, indexed):
        task = asyncio.create_task(indexed.index_project())
        await asyncio.sleep(0)
        with pytest.raises(IndexingInProgressError):
            await indexed.update_file("alpha.py", "x = 1\n")
        await task

    async def test_parser_crash_is_recorded_not_raised(self, indexed, storage):
        class Crashing:
            def parse_path(self, path, content):
                raise ValueError("unexpected node")

        indexed.parser = Crashing()
        meta = await indexed.update_file("alpha.py", "from core import helper\n")

        assert meta is not None
        ast = await storage.get_ast("alpha.py")
        assert ast.parse_error
        assert ast.parse_error_message == "Parse error: unexpected node"
        assert (await storage.get_file("alpha.py")).lines == ["from core import helper", ""]
