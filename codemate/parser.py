# codemate/parser.py
"""
Structural summary of one source file.

python / typescript / tsx / javascript go through tree-sitter grammars from
``tree_sitter_languages``; json and yaml only report their top-level keys.
A syntax error never raises: the FileAST comes back with ``parse_error`` set
and an empty body.
"""
import json
import sys
import threading

import yaml
from loguru import logger
from tree_sitter_languages import get_parser

from .language_specs import SPEC_BY_KIND, language_for_path
from .models import (
    ClassInfo, ExportInfo, FileAST, FunctionInfo, ImportInfo, InterfaceInfo,
    MethodInfo, ParameterInfo, PropertyInfo, TypeAliasInfo,
)

STDLIB_MODULES = frozenset(sys.stdlib_module_names)

NODE_BUILTINS = frozenset({
    "assert", "async_hooks", "buffer", "child_process", "cluster", "console", "constants",
    "crypto", "dgram", "dns", "events", "fs", "http", "http2", "https", "module", "net",
    "os", "path", "perf_hooks", "process", "querystring", "readline", "repl", "stream",
    "string_decoder", "timers", "tls", "tty", "url", "util", "v8", "vm", "worker_threads", "zlib",
})

# node types that open one more level of nesting
PY_NESTING = frozenset({
    "if_statement", "for_statement", "while_statement", "try_statement", "with_statement",
    "match_statement", "function_definition", "class_definition", "lambda",
})
PY_DECISIONS = frozenset({
    "if_statement", "elif_clause", "conditional_expression", "for_statement", "while_statement",
    "except_clause", "case_clause", "boolean_operator", "if_clause",
})

JS_NESTING = frozenset({
    "if_statement", "for_statement", "for_in_statement", "while_statement", "do_statement",
    "try_statement", "switch_statement", "function_declaration", "function_expression",
    "function", "arrow_function", "method_definition", "class_declaration",
})
JS_DECISIONS = frozenset({
    "if_statement", "ternary_expression", "for_statement", "for_in_statement", "while_statement",
    "do_statement", "catch_clause", "switch_case",
})
JS_LOGICAL_OPERATORS = frozenset({"&&", "||", "??"})


def _text(node) -> str:
    return node.text.decode("utf8", errors="replace") if node is not None else ""


def _line(node) -> int:
    return node.start_point[0] + 1


def _end_line(node) -> int:
    return node.end_point[0] + 1


def _unquote(raw: str) -> str:
    raw = raw.lstrip("rbuRBUfF")
    for q in ('"""', "'''", '"', "'", "`"):
        if raw.startswith(q) and raw.endswith(q) and len(raw) >= 2 * len(q):
            return raw[len(q):-len(q)]
    return raw


def _first_error_line(root) -> int:
    stack = [root]
    while stack:
        node = stack.pop()
        if node.type == "ERROR" or node.is_missing:
            return _line(node)
        if node.has_error:
            stack.extend(reversed(node.children))
    return _line(root)


def _visibility_from_name(name: str) -> str:
    if name.startswith("__") and not name.endswith("__"):
        return "private"
    if name.startswith("_"):
        return "protected"
    return "public"


def measure(node, nesting_types: frozenset, is_decision) -> tuple[int, int]:
    """(max nesting below ``node``, decision points below ``node``), iterative walk."""
    max_depth = 0
    decisions = 0
    stack = [(child, 0) for child in node.children]
    while stack:
        current, depth = stack.pop()
        if is_decision(current):
            decisions += 1
        child_depth = depth
        if current.type in nesting_types and not (
            current.type == "if_statement" and current.parent is not None
            and current.parent.type == "else_clause"
        ):
            child_depth = depth + 1
            max_depth = max(max_depth, child_depth)
        stack.extend((c, child_depth) for c in current.children)
    return max_depth, decisions


def _is_py_decision(node) -> bool:
    return node.type in PY_DECISIONS


def _is_js_decision(node) -> bool:
    if node.type in JS_DECISIONS:
        return True
    if node.type == "binary_expression":
        op = node.child_by_field_name("operator")
        return op is not None and op.type in JS_LOGICAL_OPERATORS
    return False


class ASTParser:
    """Turns file content into a FileAST. One instance may be shared across threads."""

    def __init__(self):
        # tree-sitter Parser objects are not thread-safe; keep one per thread
        self._local = threading.local()

    def _parser_for(self, grammar: str):
        cache = getattr(self._local, "parsers", None)
        if cache is None:
            cache = self._local.parsers = {}
        if grammar not in cache:
            cache[grammar] = get_parser(grammar)
        return cache[grammar]

    def parse_path(self, path: str, content: str) -> FileAST | None:
        """Parse by file extension; None when the extension is not supported."""
        kind = language_for_path(path)
        if kind is None:
            return None
        return self.parse(content, kind)

    def parse(self, content: str, kind: str) -> FileAST:
        spec = SPEC_BY_KIND.get(kind)
        if spec is None:
            raise ValueError(f"Unsupported language kind: {kind}")

        try:
            if kind == "json":
                return self._parse_json(content)
            if kind == "yaml":
                return self._parse_yaml(content)

            tree = self._parser_for(spec.grammar).parse(content.encode("utf8"))
            root = tree.root_node
            if root.has_error:
                return FileAST.failed(f"Syntax error at line {_first_error_line(root)}")

            if kind == "python":
                return _PythonExtractor(root).extract()
            return _ScriptExtractor(root).extract()
        except RecursionError as e:
            logger.warning(f"⚠️ Parser gave up on deeply nested {kind} input: {e}")
            return FileAST.failed(f"Parse error: {e}")

    # ==========================================
    # data formats
    # ==========================================

    def _parse_json(self, content: str) -> FileAST:
        if not content.strip():
            return FileAST()
        try:
            data = json.loads(content)
        except json.JSONDecodeError as e:
            return FileAST.failed(f"Syntax error at line {e.lineno}")

        ast = FileAST()
        if isinstance(data, dict):
            lines = content.splitlines()
            for key in data:
                needle = json.dumps(key)
                line = next((i for i, text in enumerate(lines, 1) if needle in text), 1)
                ast.exports.append(ExportInfo(name=str(key), line=line, is_default=False, kind="variable"))
        return ast

    def _parse_yaml(self, content: str) -> FileAST:
        if not content.strip():
            return FileAST()
        try:
            documents = list(yaml.compose_all(content, Loader=yaml.SafeLoader))
        except yaml.YAMLError as e:
            mark = getattr(e, "problem_mark", None)
            line = mark.line + 1 if mark is not None else 1
            return FileAST.failed(f"Syntax error at line {line}")

        ast = FileAST()
        for doc in documents:
            if isinstance(doc, yaml.MappingNode):
                for key_node, _ in doc.value:
                    ast.exports.append(ExportInfo(
                        name=str(key_node.value), line=key_node.start_mark.line + 1,
                        is_default=False, kind="variable",
                    ))
        return ast


# ==========================================
# python
# ==========================================

class _PythonExtractor:
    def __init__(self, root):
        self.root = root
        self.ast = FileAST()
        self.all_names: list[str] | None = None
        self.variables: dict[str, int] = {}

    def extract(self) -> FileAST:
        self._collect_imports()
        for node in self.root.children:
            self._top_level(node)
        self._collect_exports()
        return self.ast

    def _collect_imports(self):
        stack = [self.root]
        while stack:
            node = stack.pop()
            if node.type == "import_statement":
                self._import(node)
            elif node.type == "import_from_statement":
                self._import_from(node)
            else:
                stack.extend(reversed(node.children))

    def _import(self, node):
        for name_node in node.children_by_field_name("name"):
            if name_node.type == "aliased_import":
                module = _text(name_node.child_by_field_name("name"))
                local = _text(name_node.child_by_field_name("alias"))
            else:
                module = local = _text(name_node)
            self.ast.imports.append(ImportInfo(
                name=local, source=module, line=_line(node), type=self._import_type(module, 0), whole_module=True,
            ))

    def _import_from(self, node):
        module_node = node.child_by_field_name("module_name")
        level = 0
        module = ""
        if module_node is not None and module_node.type == "relative_import":
            for child in module_node.children:
                if child.type == "import_prefix":
                    level = len(_text(child))
                elif child.type == "dotted_name":
                    module = _text(child)
        else:
            module = _text(module_node)
        source = "." * level + module
        kind = self._import_type(module, level)

        names = []
        for name_node in node.children_by_field_name("name"):
            if name_node.type == "aliased_import":
                names.append(_text(name_node.child_by_field_name("alias")))
            else:
                names.append(_text(name_node))
        if any(child.type == "wildcard_import" for child in node.children):
            names.append("*")

        for name in names:
            self.ast.imports.append(ImportInfo(
                name=name, source=source, line=_line(node), type=kind, level=level,
            ))

    @staticmethod
    def _import_type(module: str, level: int) -> str:
        if level > 0:
            return "internal"
        if module.split(".")[0] in STDLIB_MODULES:
            return "builtin"
        return "external"

    def _top_level(self, node):
        decorators = []
        if node.type == "decorated_definition":
            decorators = [_text(d).lstrip("@") for d in node.children if d.type == "decorator"]
            node = node.child_by_field_name("definition")
            if node is None:
                return

        if node.type == "function_definition":
            self.ast.functions.append(self._function(node))
        elif node.type == "class_definition":
            self._class(node, decorators)
        elif node.type == "type_alias_statement":
            name_node = node.child_by_field_name("left") or node.named_children[0]
            self.ast.type_aliases.append(TypeAliasInfo(name=_text(name_node).split("[")[0], line=_line(node)))
        elif node.type == "expression_statement":
            for child in node.named_children:
                if child.type == "assignment":
                    self._module_assignment(child)

    def _module_assignment(self, node):
        left = node.child_by_field_name("left")
        if left is None or left.type != "identifier":
            return
        name = _text(left)
        type_node = node.child_by_field_name("type")
        if type_node is not None and "TypeAlias" in _text(type_node):
            self.ast.type_aliases.append(TypeAliasInfo(name=name, line=_line(node)))
            return
        if name == "__all__":
            right = node.child_by_field_name("right")
            if right is not None and right.type in ("list", "tuple"):
                self.all_names = [_unquote(_text(c)) for c in right.named_children if c.type == "string"]
            return
        self.variables.setdefault(name, _line(node))

    def _params(self, node) -> list[ParameterInfo]:
        params = []
        params_node = node.child_by_field_name("parameters")
        if params_node is None:
            return params
        for p in params_node.named_children:
            if p.type == "identifier":
                params.append(ParameterInfo(name=_text(p)))
            elif p.type in ("default_parameter", "typed_default_parameter"):
                type_node = p.child_by_field_name("type")
                params.append(ParameterInfo(
                    name=_text(p.child_by_field_name("name")),
                    type=_text(type_node) if type_node is not None else None,
                    optional=True, has_default=True,
                ))
            elif p.type == "typed_parameter":
                type_node = p.child_by_field_name("type")
                name_node = next((c for c in p.named_children if c != type_node), None)
                params.append(ParameterInfo(name=_text(name_node), type=_text(type_node) or None))
            elif p.type in ("list_splat_pattern", "dictionary_splat_pattern"):
                params.append(ParameterInfo(name=_text(p), optional=True))
        return params

    def _function(self, node) -> FunctionInfo:
        nesting, decisions = measure(node.child_by_field_name("body"), PY_NESTING, _is_py_decision)
        return_node = node.child_by_field_name("return_type")
        return FunctionInfo(
            name=_text(node.child_by_field_name("name")),
            line_start=_line(node),
            line_end=_end_line(node),
            params=self._params(node),
            is_async=any(c.type == "async" for c in node.children),
            return_type=_text(return_node) if return_node is not None else None,
            nesting=1 + nesting,
            decisions=decisions,
        )

    def _bases(self, node) -> tuple[list[str], list[str]]:
        bases, keywords = [], []
        superclasses = node.child_by_field_name("superclasses")
        if superclasses is None:
            return bases, keywords
        for child in superclasses.named_children:
            if child.type == "keyword_argument":
                keywords.append(_text(child))
            else:
                bases.append(_text(child))
        return bases, keywords

    def _class(self, node, decorators: list[str]):
        name = _text(node.child_by_field_name("name"))
        bases, keywords = self._bases(node)
        body = node.child_by_field_name("body")
        plain_bases = [b.split("[")[0] for b in bases]

        if any(b in ("Protocol", "typing.Protocol", "typing_extensions.Protocol") for b in plain_bases):
            self.ast.interfaces.append(InterfaceInfo(
                name=name,
                line_start=_line(node),
                line_end=_end_line(node),
                properties=self._properties(body),
                extends=[b for b, plain in zip(bases, plain_bases)
                         if not plain.endswith("Protocol") and plain not in ("Generic", "typing.Generic")],
            ))
            return

        methods = self._methods(body)
        is_abstract = (
            any(b in ("ABC", "abc.ABC") for b in plain_bases)
            or any("ABCMeta" in k for k in keywords)
            or any(m[1] for m in methods)
        )
        self.ast.classes.append(ClassInfo(
            name=name,
            line_start=_line(node),
            line_end=_end_line(node),
            methods=[m[0] for m in methods],
            properties=self._properties(body),
            extends=bases[0] if bases else None,
            implements=bases[1:],
            is_abstract=is_abstract,
        ))

    def _methods(self, body) -> list[tuple[MethodInfo, bool]]:
        methods = []
        if body is None:
            return methods
        for child in body.named_children:
            decorators = []
            target = child
            if child.type == "decorated_definition":
                decorators = [_text(d).lstrip("@").strip() for d in child.children if d.type == "decorator"]
                target = child.child_by_field_name("definition")
            if target is None or target.type != "function_definition":
                continue
            nesting, decisions = measure(target.child_by_field_name("body"), PY_NESTING, _is_py_decision)
            name = _text(target.child_by_field_name("name"))
            method = MethodInfo(
                name=name,
                line_start=_line(target),
                line_end=_end_line(target),
                params=[p for p in self._params(target) if p.name not in ("self", "cls")],
                is_async=any(c.type == "async" for c in target.children),
                visibility=_visibility_from_name(name),
                is_static=any(d in ("staticmethod", "classmethod") for d in decorators),
                nesting=2 + nesting,
                decisions=decisions,
            )
            abstract = any(d.split(".")[-1] == "abstractmethod" for d in decorators)
            methods.append((method, abstract))
        return methods

    def _properties(self, body) -> list[PropertyInfo]:
        props = []
        if body is None:
            return props
        for child in body.named_children:
            if child.type != "expression_statement":
                continue
            for assignment in child.named_children:
                if assignment.type != "assignment":
                    continue
                left = assignment.child_by_field_name("left")
                if left is None or left.type != "identifier":
                    continue
                name = _text(left)
                type_node = assignment.child_by_field_name("type")
                type_text = _text(type_node) if type_node is not None else None
                props.append(PropertyInfo(
                    name=name,
                    line=_line(assignment),
                    type=type_text,
                    visibility=_visibility_from_name(name),
                    is_static=bool(type_text and "ClassVar" in type_text),
                    is_readonly=bool(type_text and "Final" in type_text),
                ))
        return props

    def _definition_sites(self) -> dict[str, tuple[int, str]]:
        sites: dict[str, tuple[int, str]] = {}
        for name, line in self.variables.items():
            sites[name] = (line, "variable")
        for t in self.ast.type_aliases:
            sites[t.name] = (t.line, "type")
        for f in self.ast.functions:
            sites[f.name] = (f.line_start, "function")
        for c in self.ast.classes:
            sites[c.name] = (c.line_start, "class")
        for i in self.ast.interfaces:
            sites[i.name] = (i.line_start, "interface")
        return sites

    def _collect_exports(self):
        sites = self._definition_sites()
        if self.all_names is not None:
            exported = [n for n in self.all_names if n in sites]
        else:
            exported = [
                n for n, (_, kind) in sites.items()
                if not n.startswith("_") and (kind != "variable" or n.isupper())
            ]
        exported_set = set(exported)

        for name in exported:
            line, kind = sites[name]
            self.ast.exports.append(ExportInfo(name=name, line=line, is_default=False, kind=kind))
        self.ast.exports.sort(key=lambda e: e.line)

        for group in (self.ast.functions, self.ast.classes, self.ast.interfaces, self.ast.type_aliases):
            for item in group:
                item.is_exported = item.name in exported_set


# ==========================================
# typescript / tsx / javascript
# ==========================================

class _ScriptExtractor:
    def __init__(self, root):
        self.root = root
        self.ast = FileAST()

    def extract(self) -> FileAST:
        for node in self.root.named_children:
            self._statement(node, exported=False)
        self.ast.exports.sort(key=lambda e: e.line)
        return self.ast

    @staticmethod
    def _import_type(source: str) -> str:
        if source.startswith("."):
            return "internal"
        bare = source[5:] if source.startswith("node:") else source
        if source.startswith("node:") or bare.split("/")[0] in NODE_BUILTINS:
            return "builtin"
        return "external"

    def _add_import(self, name: str, source: str, node, is_default: bool = False):
        self.ast.imports.append(ImportInfo(
            name=name, source=source, line=_line(node), type=self._import_type(source), is_default=is_default,
        ))

    def _import(self, node):
        source = _unquote(_text(node.child_by_field_name("source")))
        clause = next((c for c in node.named_children if c.type == "import_clause"), None)
        if clause is None:
            self._add_import(source, source, node)
            return
        for child in clause.named_children:
            if child.type == "identifier":
                self._add_import(_text(child), source, node, is_default=True)
            elif child.type == "namespace_import":
                ident = next((c for c in child.named_children if c.type == "identifier"), None)
                self._add_import(_text(ident) or "*", source, node)
            elif child.type == "named_imports":
                for spec in child.named_children:
                    if spec.type != "import_specifier":
                        continue
                    alias = spec.child_by_field_name("alias")
                    self._add_import(_text(alias or spec.child_by_field_name("name")), source, node)

    def _export_info(self, name: str, node, kind: str, is_default: bool = False):
        self.ast.exports.append(ExportInfo(name=name, line=_line(node), is_default=is_default, kind=kind))

    def _statement(self, node, exported: bool, is_default: bool = False):
        t = node.type
        if t == "import_statement":
            self._import(node)
        elif t == "export_statement":
            self._export_statement(node)
        elif t in ("function_declaration", "generator_function_declaration"):
            fn = self._function(node, exported)
            self.ast.functions.append(fn)
            if exported:
                self._export_info(fn.name, node, "function", is_default)
        elif t in ("class_declaration", "abstract_class_declaration", "class"):
            cls = self._class(node, exported)
            self.ast.classes.append(cls)
            if exported:
                self._export_info(cls.name, node, "class", is_default)
        elif t == "interface_declaration":
            iface = self._interface(node, exported)
            self.ast.interfaces.append(iface)
            if exported:
                self._export_info(iface.name, node, "interface")
        elif t in ("type_alias_declaration", "enum_declaration"):
            name = _text(node.child_by_field_name("name"))
            self.ast.type_aliases.append(TypeAliasInfo(name=name, line=_line(node), is_exported=exported))
            if exported:
                self._export_info(name, node, "type")
        elif t in ("lexical_declaration", "variable_declaration"):
            self._variables(node, exported)

    def _export_statement(self, node):
        is_default = any(c.type == "default" for c in node.children)
        source_node = node.child_by_field_name("source")
        declaration = node.child_by_field_name("declaration")

        if declaration is not None:
            self._statement(declaration, exported=True, is_default=is_default)
            return

        if source_node is not None:
            # re-export: export { a } from './x' / export * from './x'
            source = _unquote(_text(source_node))
            clause = next((c for c in node.named_children if c.type == "export_clause"), None)
            if clause is None:
                self._add_import("*", source, node)
                return
            for spec in clause.named_children:
                if spec.type != "export_specifier":
                    continue
                name = _text(spec.child_by_field_name("name"))
                alias = spec.child_by_field_name("alias")
                self._add_import(name, source, node)
                self._export_info(_text(alias) if alias is not None else name, node, "variable")
            return

        clause = next((c for c in node.named_children if c.type == "export_clause"), None)
        if clause is not None:
            for spec in clause.named_children:
                if spec.type != "export_specifier":
                    continue
                name = _text(spec.child_by_field_name("name"))
                alias = spec.child_by_field_name("alias")
                self._export_info(_text(alias) if alias is not None else name, node, self._kind_of(name))
                self._mark_exported(name)
            return

        value = node.child_by_field_name("value")
        if is_default and value is not None:
            if value.type == "class":
                self._statement(value, exported=True, is_default=True)
                return
            if value.type in ("function", "function_expression", "arrow_function"):
                fn = self._function(value, True, name=_text(value.child_by_field_name("name")) or "default", decl=node)
                self.ast.functions.append(fn)
                self._export_info(fn.name, node, "function", is_default=True)
                return
            name = _text(value) if value.type == "identifier" else "default"
            if value.type == "identifier":
                self._mark_exported(name)
            self._export_info(name, node, self._kind_of(name), is_default=True)

    def _kind_of(self, name: str) -> str:
        if any(f.name == name for f in self.ast.functions):
            return "function"
        if any(c.name == name for c in self.ast.classes):
            return "class"
        if any(i.name == name for i in self.ast.interfaces):
            return "interface"
        if any(t.name == name for t in self.ast.type_aliases):
            return "type"
        return "variable"

    def _mark_exported(self, name: str):
        for group in (self.ast.functions, self.ast.classes, self.ast.interfaces, self.ast.type_aliases):
            for item in group:
                if item.name == name:
                    item.is_exported = True

    def _params(self, node) -> list[ParameterInfo]:
        params = []
        params_node = node.child_by_field_name("parameters")
        if params_node is None:
            # single-parameter arrow function: x => ...
            single = node.child_by_field_name("parameter")
            if single is not None:
                params.append(ParameterInfo(name=_text(single)))
            return params
        for p in params_node.named_children:
            if p.type in ("required_parameter", "optional_parameter"):
                pattern = p.child_by_field_name("pattern")
                type_node = p.child_by_field_name("type")
                has_default = p.child_by_field_name("value") is not None
                params.append(ParameterInfo(
                    name=_text(pattern),
                    type=_text(type_node).lstrip(":").strip() if type_node is not None else None,
                    optional=p.type == "optional_parameter" or has_default,
                    has_default=has_default,
                ))
            elif p.type == "assignment_pattern":
                params.append(ParameterInfo(
                    name=_text(p.child_by_field_name("left")), optional=True, has_default=True,
                ))
            elif p.type in ("identifier", "rest_pattern", "object_pattern", "array_pattern"):
                params.append(ParameterInfo(name=_text(p), optional=p.type == "rest_pattern"))
        return params

    @staticmethod
    def _return_type(node) -> str | None:
        rt = node.child_by_field_name("return_type")
        return _text(rt).lstrip(":").strip() if rt is not None else None

    def _function(self, node, exported: bool, name: str | None = None, decl=None) -> FunctionInfo:
        body = node.child_by_field_name("body")
        nesting, decisions = measure(body, JS_NESTING, _is_js_decision) if body is not None else (0, 0)
        outer = decl or node
        return FunctionInfo(
            name=name or _text(node.child_by_field_name("name")),
            line_start=_line(outer),
            line_end=_end_line(outer),
            params=self._params(node),
            is_async=any(c.type == "async" for c in node.children),
            is_exported=exported,
            return_type=self._return_type(node),
            nesting=1 + nesting,
            decisions=decisions,
        )

    def _variables(self, node, exported: bool):
        for declarator in node.named_children:
            if declarator.type != "variable_declarator":
                continue
            name_node = declarator.child_by_field_name("name")
            value = declarator.child_by_field_name("value")
            name = _text(name_node)
            if value is not None and value.type in ("arrow_function", "function_expression", "function"):
                self.ast.functions.append(self._function(value, exported, name=name, decl=node))
                if exported:
                    self._export_info(name, node, "function")
            elif exported:
                self._export_info(name, node, "variable")

    @staticmethod
    def _modifiers(node) -> tuple[str, bool, bool, bool]:
        visibility, is_static, is_readonly, is_abstract = "public", False, False, False
        for c in node.children:
            if c.type == "accessibility_modifier":
                visibility = _text(c)
            elif c.type == "static":
                is_static = True
            elif c.type == "readonly":
                is_readonly = True
            elif c.type == "abstract":
                is_abstract = True
        name_node = node.child_by_field_name("name") or node.child_by_field_name("property")
        if name_node is not None and name_node.type == "private_property_identifier":
            visibility = "private"
        return visibility, is_static, is_readonly, is_abstract

    def _heritage(self, node) -> tuple[str | None, list[str]]:
        extends, implements = None, []
        heritage = next((c for c in node.children if c.type == "class_heritage"), None)
        if heritage is None:
            return extends, implements
        for clause in heritage.children:
            if clause.type == "extends_clause":
                value = clause.child_by_field_name("value") or next(iter(clause.named_children), None)
                extends = _text(value) or None
            elif clause.type == "implements_clause":
                implements.extend(_text(t) for t in clause.named_children)
            elif clause.is_named and extends is None:
                # javascript grammar: class_heritage holds the expression directly
                extends = _text(clause)
        return extends, implements

    def _class(self, node, exported: bool) -> ClassInfo:
        extends, implements = self._heritage(node)
        methods, props = [], []
        body = node.child_by_field_name("body")
        for member in body.named_children if body is not None else []:
            if member.type in ("method_definition", "abstract_method_signature", "method_signature"):
                visibility, is_static, _, _ = self._modifiers(member)
                member_body = member.child_by_field_name("body")
                nesting, decisions = (
                    measure(member_body, JS_NESTING, _is_js_decision) if member_body is not None else (0, 0)
                )
                methods.append(MethodInfo(
                    name=_text(member.child_by_field_name("name")),
                    line_start=_line(member),
                    line_end=_end_line(member),
                    params=self._params(member),
                    is_async=any(c.type == "async" for c in member.children),
                    visibility=visibility,
                    is_static=is_static,
                    nesting=2 + nesting,
                    decisions=decisions,
                ))
            elif member.type in ("public_field_definition", "field_definition"):
                visibility, is_static, is_readonly, _ = self._modifiers(member)
                name_node = member.child_by_field_name("name") or member.child_by_field_name("property")
                type_node = member.child_by_field_name("type")
                props.append(PropertyInfo(
                    name=_text(name_node),
                    line=_line(member),
                    type=_text(type_node).lstrip(":").strip() if type_node is not None else None,
                    visibility=visibility,
                    is_static=is_static,
                    is_readonly=is_readonly,
                ))
        return ClassInfo(
            name=_text(node.child_by_field_name("name")) or "default",
            line_start=_line(node),
            line_end=_end_line(node),
            methods=methods,
            properties=props,
            extends=extends,
            implements=implements,
            is_exported=exported,
            is_abstract=node.type == "abstract_class_declaration"
            or any(c.type == "abstract" for c in node.children),
        )

    def _interface(self, node, exported: bool) -> InterfaceInfo:
        props, extends = [], []
        for child in node.named_children:
            if child.type == "extends_type_clause":
                extends.extend(_text(t) for t in child.named_children)
        body = node.child_by_field_name("body")
        for member in body.named_children if body is not None else []:
            if member.type not in ("property_signature", "method_signature"):
                continue
            type_node = member.child_by_field_name("type")
            props.append(PropertyInfo(
                name=_text(member.child_by_field_name("name")),
                line=_line(member),
                type=_text(type_node).lstrip(":").strip() if type_node is not None else None,
                is_readonly=any(c.type == "readonly" for c in member.children),
            ))
        return InterfaceInfo(
            name=_text(node.child_by_field_name("name")),
            line_start=_line(node),
            line_end=_end_line(node),
            properties=props,
            extends=extends,
            is_exported=exported,
        )
