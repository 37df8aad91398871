# codemate/tools/registry.py
from ..config import CommandSettings
from ..prompts import build_tools_section
from .analysis import GetComplexityTool, GetDependenciesTool, GetDependentsTool, GetTodosTool
from .base import BaseTool, ToolCategory
from .edit import CreateFileTool, DeleteFileTool, EditLinesTool
from .git import GitCommitTool, GitDiffTool, GitStatusTool
from .read import GetClassTool, GetFunctionTool, GetLinesTool, GetStructureTool
from .run import RunCommandTool, RunTestsTool
from .search import FindDefinitionTool, FindReferencesTool


class ToolRegistry:
    def __init__(self):
        self._tools: dict[str, BaseTool] = {}

    def register(self, tool: BaseTool) -> None:
        if tool.name in self._tools:
            raise ValueError(f'Tool "{tool.name}" is already registered')
        self._tools[tool.name] = tool

    def unregister(self, name: str) -> bool:
        return self._tools.pop(name, None) is not None

    def get(self, name: str) -> BaseTool | None:
        return self._tools.get(name)

    def has(self, name: str) -> bool:
        return name in self._tools

    def names(self) -> list[str]:
        return list(self._tools)

    def all(self) -> list[BaseTool]:
        return list(self._tools.values())

    def list_by_category(self, category: ToolCategory) -> list[BaseTool]:
        return [t for t in self._tools.values() if t.category == category]

    def schemas(self) -> list[dict]:
        return [t.schema() for t in self._tools.values()]

    def to_prompt(self) -> str:
        return build_tools_section(self.schemas())

    def __len__(self) -> int:
        return len(self._tools)


def create_default_registry(command_settings: CommandSettings | None = None) -> ToolRegistry:
    registry = ToolRegistry()
    for tool in (
        GetLinesTool(), GetFunctionTool(), GetClassTool(), GetStructureTool(),
        EditLinesTool(), CreateFileTool(), DeleteFileTool(),
        FindReferencesTool(), FindDefinitionTool(),
        GetDependenciesTool(), GetDependentsTool(), GetComplexityTool(), GetTodosTool(),
        GitStatusTool(), GitDiffTool(), GitCommitTool(),
        RunCommandTool(command_settings), RunTestsTool(command_settings),
    ):
        registry.register(tool)
    return registry
