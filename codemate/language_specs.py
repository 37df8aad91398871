# codemate/language_specs.py
from dataclasses import dataclass
from pathlib import PurePosixPath


@dataclass(frozen=True)
class LanguageSpec:
    kind: str                    # language kind used by the parser
    extensions: tuple[str, ...]  # file extensions (lower case, with dot)
    grammar: str | None          # tree-sitter grammar name, None for data formats
    line_comment: str | None     # single-line comment prefix
    block_comment: tuple[str, str] | None = None


PYTHON_SPEC = LanguageSpec(
    kind="python",
    extensions=(".py",),
    grammar="python",
    line_comment="#",
    block_comment=('"""', '"""'),
)

TYPESCRIPT_SPEC = LanguageSpec(
    kind="typescript",
    extensions=(".ts",),
    grammar="typescript",
    line_comment="//",
    block_comment=("/*", "*/"),
)

TSX_SPEC = LanguageSpec(
    kind="tsx",
    extensions=(".tsx",),
    grammar="tsx",
    line_comment="//",
    block_comment=("/*", "*/"),
)

JAVASCRIPT_SPEC = LanguageSpec(
    kind="javascript",
    extensions=(".js", ".jsx", ".mjs", ".cjs"),
    grammar="javascript",
    line_comment="//",
    block_comment=("/*", "*/"),
)

JSON_SPEC = LanguageSpec(kind="json", extensions=(".json",), grammar=None, line_comment=None)

YAML_SPEC = LanguageSpec(kind="yaml", extensions=(".yaml", ".yml"), grammar=None, line_comment="#")

ALL_SPECS = (PYTHON_SPEC, TYPESCRIPT_SPEC, TSX_SPEC, JAVASCRIPT_SPEC, JSON_SPEC, YAML_SPEC)

SPEC_BY_EXTENSION: dict[str, LanguageSpec] = {
    ext: spec for spec in ALL_SPECS for ext in spec.extensions
}

SPEC_BY_KIND: dict[str, LanguageSpec] = {spec.kind: spec for spec in ALL_SPECS}

SUPPORTED_EXTENSIONS: tuple[str, ...] = tuple(SPEC_BY_EXTENSION)

# kinds whose imports form the dependency graph
CODE_KINDS = frozenset({"python", "typescript", "tsx", "javascript"})
SCRIPT_KINDS = frozenset({"typescript", "tsx", "javascript"})


def spec_for_path(path: str) -> LanguageSpec | None:
    """Language spec for a file path, or None when the extension is not supported."""
    return SPEC_BY_EXTENSION.get(PurePosixPath(path).suffix.lower())


def language_for_path(path: str) -> str | None:
    spec = spec_for_path(path)
    return spec.kind if spec else None
