# codemate/database.py
"""
Redis persistence for the project index.

Every value is JSON. Keys follow codemate.schema, behind a configurable prefix.
"""
import asyncio
import json
from typing import Any, Callable

import redis.asyncio as redis
from loguru import logger
from redis.exceptions import RedisError

from .config import RedisSettings
from .errors import StorageConnectionError, StorageDataError
from .models import (
    DepsGraph, FileAST, FileData, FileMeta, SymbolIndex, symbol_index_from_dict, symbol_index_to_dict,
)
from .schema import INDEX_FIELD_DEPS_GRAPH, INDEX_FIELD_SYMBOLS, ProjectKeys

RETRY_STEP_S = 0.2


def _default_factory(settings: RedisSettings) -> redis.Redis:
    return redis.Redis(
        host=settings.host,
        port=settings.port,
        db=settings.db,
        password=settings.password,
        decode_responses=True,
        socket_connect_timeout=5,
    )


def decode_json(raw: str | None, entity: str) -> Any:
    if raw is None:
        return None
    try:
        return json.loads(raw)
    except json.JSONDecodeError as e:
        raise StorageDataError(f"Failed to parse {entity} from Redis: {e}") from e


def encode_json(value: Any) -> str:
    return json.dumps(value, ensure_ascii=False)


class RedisClient:
    """One shared connection per process. connect() is lazy, retried and idempotent."""

    def __init__(self, settings: RedisSettings | None = None,
                 client_factory: Callable[[], redis.Redis] | None = None):
        self.settings = settings or RedisSettings()
        self._factory = client_factory or (lambda: _default_factory(self.settings))
        self._client: redis.Redis | None = None
        self._connected = False
        self._lock = asyncio.Lock()

    @property
    def client(self) -> redis.Redis:
        if self._client is None or not self._connected:
            raise StorageConnectionError("Redis client is not connected")
        return self._client

    def key(self, relative_key: str) -> str:
        return f"{self.settings.key_prefix}{relative_key}"

    def is_connected(self) -> bool:
        return self._connected

    async def connect(self) -> None:
        async with self._lock:
            if self._connected:
                return

            last_error: Exception | None = None
            for attempt in range(1, self.settings.max_attempts + 1):
                client = self._factory()
                try:
                    await client.ping()
                except (RedisError, OSError) as e:
                    last_error = e
                    logger.warning(f"⚠️ Redis connection attempt {attempt}/{self.settings.max_attempts} failed: {e}")
                    await client.aclose()
                    if attempt < self.settings.max_attempts:
                        await asyncio.sleep(min(attempt * RETRY_STEP_S, self.settings.max_delay_s))
                    continue

                self._client = client
                self._connected = True
                logger.info(f"🔌 Connected to Redis at {self.settings.host}:{self.settings.port}/{self.settings.db}")
                await self._enable_persistence()
                return

            raise StorageConnectionError(
                f"Failed to connect to Redis after {self.settings.max_attempts} attempts: {last_error}"
            )

    async def _enable_persistence(self) -> None:
        try:
            await self._client.config_set("appendonly", "yes")
            await self._client.config_set("appendfsync", "everysec")
        except RedisError as e:
            # managed Redis often refuses CONFIG
            logger.debug(f"AOF not enabled: {e}")

    async def ensure_connected(self) -> redis.Redis:
        if not self._connected:
            await self.connect()
        return self.client

    async def disconnect(self) -> None:
        if self._client is not None:
            await self._client.aclose()
        self._client = None
        self._connected = False

    async def ping(self) -> bool:
        if not self._connected:
            return False
        try:
            return bool(await self._client.ping())
        except RedisError:
            return False


class RedisStorage:
    """Project-scoped CRUD over the ``project:{name}:*`` hashes."""

    def __init__(self, client: RedisClient, project_name: str):
        self.client = client
        self.project_name = project_name
        self.keys = ProjectKeys.for_project(project_name)

    def _k(self, relative_key: str) -> str:
        return self.client.key(relative_key)

    async def _redis(self) -> redis.Redis:
        return await self.client.ensure_connected()

    async def _hget(self, key: str, field: str, entity: str) -> Any:
        r = await self._redis()
        return decode_json(await r.hget(self._k(key), field), entity)

    async def _hgetall(self, key: str, entity: str) -> dict[str, Any]:
        r = await self._redis()
        raw = await r.hgetall(self._k(key))
        return {field: decode_json(value, entity) for field, value in raw.items()}

    async def _hset(self, key: str, field: str, value: Any) -> None:
        r = await self._redis()
        await r.hset(self._k(key), field, encode_json(value))

    async def _hdel(self, key: str, field: str) -> None:
        r = await self._redis()
        await r.hdel(self._k(key), field)

    # ---------- files ----------

    async def get_file(self, path: str) -> FileData | None:
        data = await self._hget(self.keys.files, path, "FileData")
        return FileData.from_dict(data) if data is not None else None

    async def set_file(self, path: str, data: FileData) -> None:
        await self._hset(self.keys.files, path, data.to_dict())

    async def delete_file(self, path: str) -> None:
        await self._hdel(self.keys.files, path)

    async def get_files(self, paths: list[str]) -> dict[str, FileData]:
        if not paths:
            return {}
        r = await self._redis()
        raw = await r.hmget(self._k(self.keys.files), paths)
        return {
            p: FileData.from_dict(decode_json(value, "FileData"))
            for p, value in zip(paths, raw) if value is not None
        }

    async def get_all_files(self) -> dict[str, FileData]:
        return {p: FileData.from_dict(d) for p, d in (await self._hgetall(self.keys.files, "FileData")).items()}

    async def get_file_count(self) -> int:
        r = await self._redis()
        return await r.hlen(self._k(self.keys.files))

    # ---------- ast ----------

    async def get_ast(self, path: str) -> FileAST | None:
        data = await self._hget(self.keys.ast, path, "FileAST")
        return FileAST.from_dict(data) if data is not None else None

    async def set_ast(self, path: str, ast: FileAST) -> None:
        await self._hset(self.keys.ast, path, ast.to_dict())

    async def delete_ast(self, path: str) -> None:
        await self._hdel(self.keys.ast, path)

    async def get_all_asts(self) -> dict[str, FileAST]:
        return {p: FileAST.from_dict(d) for p, d in (await self._hgetall(self.keys.ast, "FileAST")).items()}

    # ---------- meta ----------

    async def get_meta(self, path: str) -> FileMeta | None:
        data = await self._hget(self.keys.meta, path, "FileMeta")
        return FileMeta.from_dict(data) if data is not None else None

    async def set_meta(self, path: str, meta: FileMeta) -> None:
        await self._hset(self.keys.meta, path, meta.to_dict())

    async def delete_meta(self, path: str) -> None:
        await self._hdel(self.keys.meta, path)

    async def get_all_metas(self) -> dict[str, FileMeta]:
        return {p: FileMeta.from_dict(d) for p, d in (await self._hgetall(self.keys.meta, "FileMeta")).items()}

    # ---------- indexes ----------

    async def get_symbol_index(self) -> SymbolIndex:
        data = await self._hget(self.keys.indexes, INDEX_FIELD_SYMBOLS, "SymbolIndex")
        return symbol_index_from_dict(data) if data else {}

    async def set_symbol_index(self, index: SymbolIndex) -> None:
        await self._hset(self.keys.indexes, INDEX_FIELD_SYMBOLS, symbol_index_to_dict(index))

    async def get_deps_graph(self) -> DepsGraph:
        data = await self._hget(self.keys.indexes, INDEX_FIELD_DEPS_GRAPH, "DepsGraph")
        return DepsGraph.from_dict(data) if data else DepsGraph()

    async def set_deps_graph(self, graph: DepsGraph) -> None:
        await self._hset(self.keys.indexes, INDEX_FIELD_DEPS_GRAPH, graph.to_dict())

    # ---------- config ----------

    async def get_project_config(self, key: str) -> Any:
        return await self._hget(self.keys.config, key, "project config")

    async def set_project_config(self, key: str, value: Any) -> None:
        await self._hset(self.keys.config, key, value)

    # ---------- bulk writes ----------

    async def replace_index(
        self,
        files: dict[str, FileData],
        asts: dict[str, FileAST],
        metas: dict[str, FileMeta],
        symbols: SymbolIndex,
        graph: DepsGraph,
    ) -> None:
        """Drop the previous index and write the new one in a single MULTI/EXEC."""
        r = await self._redis()
        async with r.pipeline(transaction=True) as pipe:
            pipe.delete(self._k(self.keys.files), self._k(self.keys.ast),
                        self._k(self.keys.meta), self._k(self.keys.indexes))
            if files:
                pipe.hset(self._k(self.keys.files), mapping={p: encode_json(d.to_dict()) for p, d in files.items()})
            if asts:
                pipe.hset(self._k(self.keys.ast), mapping={p: encode_json(a.to_dict()) for p, a in asts.items()})
            if metas:
                pipe.hset(self._k(self.keys.meta), mapping={p: encode_json(m.to_dict()) for p, m in metas.items()})
            pipe.hset(self._k(self.keys.indexes), mapping={
                INDEX_FIELD_SYMBOLS: encode_json(symbol_index_to_dict(symbols)),
                INDEX_FIELD_DEPS_GRAPH: encode_json(graph.to_dict()),
            })
            await pipe.execute()

    async def apply_changes(
        self,
        symbols: SymbolIndex,
        graph: DepsGraph,
        files: dict[str, FileData] | None = None,
        asts: dict[str, FileAST] | None = None,
        metas: dict[str, FileMeta] | None = None,
        removed: list[str] | None = None,
    ) -> None:
        """Incremental write: touched records plus both indexes, all in one MULTI/EXEC."""
        r = await self._redis()
        async with r.pipeline(transaction=True) as pipe:
            if removed:
                for key in (self.keys.files, self.keys.ast, self.keys.meta):
                    pipe.hdel(self._k(key), *removed)
            if files:
                pipe.hset(self._k(self.keys.files), mapping={p: encode_json(d.to_dict()) for p, d in files.items()})
            if asts:
                pipe.hset(self._k(self.keys.ast), mapping={p: encode_json(a.to_dict()) for p, a in asts.items()})
            if metas:
                pipe.hset(self._k(self.keys.meta), mapping={p: encode_json(m.to_dict()) for p, m in metas.items()})
            pipe.hset(self._k(self.keys.indexes), mapping={
                INDEX_FIELD_SYMBOLS: encode_json(symbol_index_to_dict(symbols)),
                INDEX_FIELD_DEPS_GRAPH: encode_json(graph.to_dict()),
            })
            await pipe.execute()

    async def clear(self) -> None:
        r = await self._redis()
        await r.delete(*(self._k(k) for k in self.keys.all()))
        logger.info(f"🗑️ Cleared stored index for project {self.project_name}")
