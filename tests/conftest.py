import fakeredis.aioredis
import pytest

from codemate.config import RedisSettings
from codemate.database import RedisClient, RedisStorage
from codemate.indexer import Indexer
from codemate.llm import LLMResponse
from codemate.session import Session
from codemate.session_store import SessionStorage
from codemate.source_extraction import estimate_tokens
from codemate.tools.base import ToolContext


class ScriptedLLM:
    """Replays canned replies in order and records every prompt it was sent."""

    def __init__(self, replies: list[str], context_window: int = 32_000):
        self.replies = list(replies)
        self.context_window = context_window
        self.prompts = []
        self.aborted = False

    async def chat(self, messages):
        self.prompts.append(list(messages))
        content = self.replies.pop(0) if self.replies else "Done."
        return LLMResponse(content=content, tokens=estimate_tokens(content) + 100, time_ms=5)

    def count_tokens(self, text: str) -> int:
        return estimate_tokens(text)

    def abort(self) -> None:
        self.aborted = True


@pytest.fixture
async def redis_client():
    fake = fakeredis.aioredis.FakeRedis(decode_responses=True)
    client = RedisClient(RedisSettings(key_prefix="test:"), client_factory=lambda: fake)
    await client.connect()
    yield client
    await client.disconnect()


@pytest.fixture
def storage(redis_client):
    return RedisStorage(redis_client, "test-project")


@pytest.fixture
def session_storage(redis_client):
    return SessionStorage(redis_client)


@pytest.fixture
def session():
    return Session.create("test-project")


@pytest.fixture
def project(tmp_path):
    """A small python project: two modules import ``core``."""
    (tmp_path / "core.py").write_text(
        "def helper(value):\n"
        "    if value:\n"
        "        return value * 2\n"
        "    return 0\n"
        "\n"
        "\n"
        "class Engine:\n"
        "    def start(self):\n"
        "        return helper(1)\n",
        encoding="utf-8",
    )
    (tmp_path / "alpha.py").write_text(
        "from core import helper\n"
        "\n"
        "# TODO: handle negative input\n"
        "def run():\n"
        "    return helper(3)\n",
        encoding="utf-8",
    )
    (tmp_path / "beta.py").write_text(
        "from core import Engine\n"
        "\n"
        "def boot():\n"
        "    return Engine().start()\n",
        encoding="utf-8",
    )
    return tmp_path


@pytest.fixture
def indexer(project, storage):
    return Indexer(project, storage)


@pytest.fixture
async def indexed(indexer):
    await indexer.index_project()
    return indexer


@pytest.fixture
def make_ctx(project, storage):
    def factory(confirm=None, indexer=None):
        async def approve(message, diff=None):
            return True

        return ToolContext(project_root=project, storage=storage, confirm=confirm or approve, indexer=indexer)

    return factory


@pytest.fixture
def scripted_llm():
    return ScriptedLLM
