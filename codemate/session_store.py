# codemate/session_store.py
"""Session persistence: ``session:{id}:data`` hash, ``session:{id}:undo`` list, ``sessions:list``."""
from loguru import logger

from .database import RedisClient, decode_json, encode_json
from .models import MAX_UNDO_STACK_SIZE, UndoEntry, now_ms
from .schema import SESSION_FIELDS, SESSIONS_LIST_KEY, session_data_key, session_undo_key
from .session import Session


class SessionStorage:
    def __init__(self, client: RedisClient, max_undo: int = MAX_UNDO_STACK_SIZE):
        self.client = client
        self.max_undo = max_undo

    def _k(self, relative_key: str) -> str:
        return self.client.key(relative_key)

    async def save_session(self, session: Session) -> None:
        r = await self.client.ensure_connected()
        record = session.to_record()
        data_key = self._k(session_data_key(session.id))
        list_key = self._k(SESSIONS_LIST_KEY)

        async with r.pipeline(transaction=True) as pipe:
            pipe.hset(data_key, mapping={f: encode_json(record[f]) for f in SESSION_FIELDS})
            # keep sessions:list free of duplicates
            pipe.lrem(list_key, 0, session.id)
            pipe.rpush(list_key, session.id)
            await pipe.execute()

    async def load_session(self, session_id: str) -> Session | None:
        r = await self.client.ensure_connected()
        raw = await r.hgetall(self._k(session_data_key(session_id)))
        if not raw:
            return None
        record = {field: decode_json(value, f"session field '{field}'") for field, value in raw.items()}
        session = Session.from_record(session_id, record, await self.get_undo_stack(session_id))
        session.max_undo = self.max_undo
        return session

    async def delete_session(self, session_id: str) -> None:
        r = await self.client.ensure_connected()
        async with r.pipeline(transaction=True) as pipe:
            pipe.delete(self._k(session_data_key(session_id)), self._k(session_undo_key(session_id)))
            pipe.lrem(self._k(SESSIONS_LIST_KEY), 0, session_id)
            await pipe.execute()
        logger.info(f"🗑️ Session {session_id} deleted")

    async def list_sessions(self, project_name: str | None = None) -> list[dict]:
        """Summaries (id, project, timestamps, message count), newest activity first."""
        r = await self.client.ensure_connected()
        ids = await r.lrange(self._k(SESSIONS_LIST_KEY), 0, -1)
        summaries = []
        for session_id in ids:
            raw = await r.hmget(
                self._k(session_data_key(session_id)),
                ["project_name", "created_at", "last_activity_at", "history"],
            )
            if raw[0] is None:
                continue
            name = decode_json(raw[0], "session project_name")
            if project_name is not None and name != project_name:
                continue
            summaries.append({
                "id": session_id,
                "project_name": name,
                "created_at": decode_json(raw[1], "session created_at") or 0,
                "last_activity_at": decode_json(raw[2], "session last_activity_at") or 0,
                "message_count": len(decode_json(raw[3], "session history") or []),
            })
        summaries.sort(key=lambda s: s["last_activity_at"], reverse=True)
        return summaries

    async def session_exists(self, session_id: str) -> bool:
        r = await self.client.ensure_connected()
        return bool(await r.exists(self._k(session_data_key(session_id))))

    async def touch_session(self, session_id: str) -> None:
        r = await self.client.ensure_connected()
        await r.hset(self._k(session_data_key(session_id)), "last_activity_at", encode_json(now_ms()))

    # ---------- undo list (newest at the head) ----------

    async def push_undo_entry(self, session_id: str, entry: UndoEntry) -> None:
        r = await self.client.ensure_connected()
        key = self._k(session_undo_key(session_id))
        async with r.pipeline(transaction=True) as pipe:
            pipe.lpush(key, encode_json(entry.to_dict()))
            pipe.ltrim(key, 0, self.max_undo - 1)
            await pipe.execute()

    async def pop_undo_entry(self, session_id: str) -> UndoEntry | None:
        r = await self.client.ensure_connected()
        raw = await r.lpop(self._k(session_undo_key(session_id)))
        data = decode_json(raw, "UndoEntry")
        return UndoEntry.from_dict(data) if data is not None else None

    async def get_undo_stack(self, session_id: str) -> list[UndoEntry]:
        """Oldest first, matching Session.undo_stack order."""
        r = await self.client.ensure_connected()
        raw = await r.lrange(self._k(session_undo_key(session_id)), 0, -1)
        return [UndoEntry.from_dict(decode_json(item, "UndoEntry")) for item in reversed(raw)]
