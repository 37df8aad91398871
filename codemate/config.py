# codemate/config.py
"""
Runtime settings.

Values come from the process environment (a local .env is loaded first with
python-dotenv) and are validated by pydantic.
"""
import os

from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError

from .errors import ConfigError

load_dotenv()


class RedisSettings(BaseModel):
    host: str = "localhost"
    port: int = Field(default=6379, gt=0)
    db: int = Field(default=0, ge=0, le=15)
    password: str | None = None
    key_prefix: str = "codemate:"
    max_attempts: int = Field(default=3, ge=1)
    max_delay_s: float = Field(default=1.0, gt=0)


class LLMSettings(BaseModel):
    url: str = "http://localhost:11434"
    model: str = "qwen2.5-coder:7b-instruct"
    context_window: int = Field(default=128_000, gt=0)
    temperature: float = Field(default=0.1, ge=0, le=2)
    timeout_s: float = Field(default=120.0, gt=0)


class ProjectSettings(BaseModel):
    root: str = "."
    max_file_size: int = Field(default=1_000_000, gt=0)
    extra_ignore: list[str] = Field(default_factory=list)
    extensions: list[str] | None = None  # None -> every supported kind


class UndoSettings(BaseModel):
    stack_size: int = Field(default=10, ge=1)


class EditSettings(BaseModel):
    auto_apply: bool = False


class CommandSettings(BaseModel):
    timeout_s: float = Field(default=30.0, gt=0, le=600)


class ContextSettings(BaseModel):
    compress_at: float = Field(default=0.8, gt=0, le=1)
    max_tool_calls: int = Field(default=20, ge=1)


class Settings(BaseModel):
    redis: RedisSettings = Field(default_factory=RedisSettings)
    llm: LLMSettings = Field(default_factory=LLMSettings)
    project: ProjectSettings = Field(default_factory=ProjectSettings)
    undo: UndoSettings = Field(default_factory=UndoSettings)
    edit: EditSettings = Field(default_factory=EditSettings)
    commands: CommandSettings = Field(default_factory=CommandSettings)
    context: ContextSettings = Field(default_factory=ContextSettings)


# env var -> (section, field)
_ENV_MAP = {
    "CODEMATE_REDIS_HOST": ("redis", "host"),
    "CODEMATE_REDIS_PORT": ("redis", "port"),
    "CODEMATE_REDIS_DB": ("redis", "db"),
    "CODEMATE_REDIS_PASSWORD": ("redis", "password"),
    "CODEMATE_REDIS_KEY_PREFIX": ("redis", "key_prefix"),
    "OLLAMA_URL": ("llm", "url"),
    "LLM_MODEL": ("llm", "model"),
    "LLM_CONTEXT_WINDOW": ("llm", "context_window"),
    "LLM_TEMPERATURE": ("llm", "temperature"),
    "LLM_TIMEOUT": ("llm", "timeout_s"),
    "SOURCE_CODE_PATH": ("project", "root"),
    "CODEMATE_MAX_FILE_SIZE": ("project", "max_file_size"),
    "CODEMATE_AUTO_APPLY": ("edit", "auto_apply"),
    "CODEMATE_UNDO_STACK_SIZE": ("undo", "stack_size"),
    "CODEMATE_COMMAND_TIMEOUT": ("commands", "timeout_s"),
    "CODEMATE_COMPRESS_AT": ("context", "compress_at"),
}


def load_settings(environ: dict[str, str] | None = None) -> Settings:
    """Build Settings from environment variables; pydantic does the type coercion."""
    env = os.environ if environ is None else environ
    sections: dict[str, dict] = {}
    for var, (section, name) in _ENV_MAP.items():
        value = env.get(var)
        if value is None or value == "":
            continue
        sections.setdefault(section, {})[name] = value

    try:
        return Settings.model_validate(sections)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration: {e}") from e
