# codemate/llm.py
import asyncio
import json
import threading
import time
from dataclasses import dataclass
from typing import Iterator, Protocol

import requests
from loguru import logger

from .config import LLMSettings
from .errors import LLMError
from .models import ChatMessage
from .source_extraction import estimate_tokens


@dataclass
class LLMResponse:
    content: str
    tokens: int
    time_ms: int
    truncated: bool = False


class LLMClient(Protocol):
    context_window: int

    async def chat(self, messages: list[ChatMessage]) -> LLMResponse: ...

    def count_tokens(self, text: str) -> int: ...

    def abort(self) -> None: ...


def to_wire_messages(messages: list[ChatMessage]) -> list[dict]:
    # tool output goes back to the model as a user turn
    return [
        {"role": "user" if m.role == "tool" else m.role, "content": m.content}
        for m in messages
    ]


class OllamaClient:
    """Ollama ``/api/chat`` over requests; blocking I/O runs in a worker thread."""

    def __init__(self, settings: LLMSettings | None = None, http: requests.Session | None = None):
        self.settings = settings or LLMSettings()
        self.api_url = self.settings.url.rstrip("/")
        self.model = self.settings.model
        self.context_window = self.settings.context_window
        self.http = http or requests.Session()
        self._abort = threading.Event()

    def count_tokens(self, text: str) -> int:
        return estimate_tokens(text)

    def abort(self) -> None:
        self._abort.set()

    def _payload(self, messages: list[ChatMessage]) -> dict:
        return {
            "model": self.model,
            "messages": to_wire_messages(messages),
            "stream": True,
            "options": {
                "temperature": self.settings.temperature,
                "num_ctx": self.context_window,
                "top_p": 0.9,
                "repeat_penalty": 1.15,
            },
        }

    def _lines(self, messages: list[ChatMessage]) -> Iterator[dict]:
        try:
            response = self.http.post(
                f"{self.api_url}/api/chat",
                json=self._payload(messages),
                stream=True,
                timeout=self.settings.timeout_s,
            )
            if response.status_code == 404:
                raise LLMError(f"Model {self.model} not found", suggestion=f"Run: ollama pull {self.model}")
            response.raise_for_status()
            for line in response.iter_lines():
                if line:
                    yield json.loads(line)
        except requests.ConnectionError as e:
            raise LLMError(f"Cannot connect to Ollama at {self.api_url}: {e}") from e
        except requests.Timeout as e:
            raise LLMError(f"Ollama request timed out after {self.settings.timeout_s}s") from e
        except requests.RequestException as e:
            raise LLMError(f"Ollama request failed: {e}") from e
        except json.JSONDecodeError as e:
            raise LLMError(f"Malformed response from Ollama: {e}") from e

    def stream_chat(self, messages: list[ChatMessage]) -> Iterator[str]:
        """Yields content tokens as they arrive; stops early after abort()."""
        self._abort.clear()
        for chunk in self._lines(messages):
            if self._abort.is_set():
                logger.info("🛑 LLM generation aborted")
                break
            token = chunk.get("message", {}).get("content", "")
            if token:
                yield token
            if chunk.get("done"):
                break

    def _chat_blocking(self, messages: list[ChatMessage]) -> LLMResponse:
        started = time.perf_counter()
        self._abort.clear()
        parts: list[str] = []
        tokens = 0
        truncated = False

        for chunk in self._lines(messages):
            if self._abort.is_set():
                raise LLMError("Generation aborted")
            parts.append(chunk.get("message", {}).get("content", ""))
            if chunk.get("done"):
                tokens = chunk.get("prompt_eval_count", 0) + chunk.get("eval_count", 0)
                truncated = chunk.get("done_reason") == "length"
                break

        content = "".join(parts)
        return LLMResponse(
            content=content,
            tokens=tokens or estimate_tokens(content),
            time_ms=int((time.perf_counter() - started) * 1000),
            truncated=truncated,
        )

    async def chat(self, messages: list[ChatMessage]) -> LLMResponse:
        return await asyncio.to_thread(self._chat_blocking, messages)

    def is_available(self) -> bool:
        try:
            response = self.http.get(f"{self.api_url}/api/tags", timeout=5)
            response.raise_for_status()
        except requests.RequestException as e:
            logger.warning(f"⚠️ Ollama not reachable at {self.api_url}: {e}")
            return False
        models = {m.get("name") for m in response.json().get("models", [])}
        return self.model in models
