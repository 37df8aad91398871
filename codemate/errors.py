# codemate/errors.py
"""Exception types raised by codemate. Tool failures are never raised; they become ToolResults."""


class CodemateError(Exception):
    kind = "unknown"
    recoverable = True
    suggestion: str | None = None

    def __init__(self, message: str, suggestion: str | None = None):
        super().__init__(message)
        self.message = message
        if suggestion is not None:
            self.suggestion = suggestion

    def __str__(self) -> str:
        return self.message


class StorageConnectionError(CodemateError):
    kind = "redis"
    recoverable = False
    suggestion = "Please ensure Redis is running: redis-server"


class StorageDataError(CodemateError):
    kind = "parse"


class ParseError(CodemateError):
    kind = "parse"
    suggestion = "File will be skipped"

    def __init__(self, message: str, file_path: str | None = None):
        super().__init__(f"{message} in {file_path}" if file_path else message)
        self.file_path = file_path


class LLMError(CodemateError):
    kind = "llm"
    suggestion = "Please ensure Ollama is running and the model is available"


class FileOperationError(CodemateError):
    kind = "file"


class CommandError(CodemateError):
    kind = "command"


class ConflictError(CodemateError):
    kind = "conflict"
    suggestion = "File was modified externally. Regenerate or skip."


class ParamValidationError(CodemateError):
    kind = "validation"


class IndexingInProgressError(CodemateError):
    kind = "conflict"
    suggestion = "Wait for the running full reindex to finish and retry."


class ConfigError(CodemateError):
    kind = "validation"
    recoverable = False


class ToolTimeoutError(CodemateError):
    kind = "timeout"
    suggestion = "Try again or increase timeout"


class ConfirmationDeclined(CodemateError):
    kind = "cancelled"
