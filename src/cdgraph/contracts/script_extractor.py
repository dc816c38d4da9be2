"""Tree-sitter based contract extraction for JavaScript and TypeScript.

Each top-level declaration of the syntax tree becomes an owner. Inside an
owner the walk records rendered JSX elements with the props passed to them,
calls into imported modules, shared-store access and the `&&` / ternary /
`if` conditions gating them. Anything that cannot be read unambiguously
(prop spreads, computed store keys, unknown store operations) is kept with
low confidence and a warning.
"""

from __future__ import annotations

import importlib
from functools import lru_cache

from cdgraph.contracts.models import (
    Confidence,
    ContractFacts,
    Guard,
    Snapshot,
    Symbol,
    SymbolKind,
)
from cdgraph.diagnostics import EngineWarning, WarningKind

DYNAMIC_KEY = "*"

# Grammar name -> (module, function returning the language capsule)
_TS_GRAMMARS = {
    "javascript": ("tree_sitter_javascript", "language"),
    "typescript": ("tree_sitter_typescript", "language_typescript"),
    "tsx": ("tree_sitter_typescript", "language_tsx"),
}

_FUNCTION_TYPES = {
    "function_declaration",
    "generator_function_declaration",
    "function_expression",
    "function",
    "generator_function",
    "arrow_function",
    "class_declaration",
    "class",
}
_DECLARATION_TYPES = {
    "function_declaration",
    "generator_function_declaration",
    "class_declaration",
    "abstract_class_declaration",
    "interface_declaration",
    "type_alias_declaration",
    "enum_declaration",
}
_VARIABLE_TYPES = {"lexical_declaration", "variable_declaration"}
_ASSIGNMENT_TYPES = {"assignment_expression", "augmented_assignment_expression"}

STORE_METHOD_READ = {"get", "getItem"}
STORE_METHOD_WRITE = {"set", "setItem", "setState", "update"}
STORE_PASSTHROUGH = {"getState"}


def grammar_for(path: str, language: str) -> str:
    """Pick the grammar for a file: TSX needs its own TypeScript dialect."""
    if language == "typescript" and path.lower().endswith(".tsx"):
        return "tsx"
    return language


def is_available(language: str | None = None) -> bool:
    """Check if tree-sitter and the grammar for `language` are installed."""
    try:
        importlib.import_module("tree_sitter")
    except ImportError:
        return False
    if language is None:
        return True
    grammar = _TS_GRAMMARS.get(language)
    if grammar is None:
        return False
    try:
        importlib.import_module(grammar[0])
    except ImportError:
        return False
    return True


@lru_cache(maxsize=None)
def _get_language(grammar: str):
    from tree_sitter import Language

    if grammar not in _TS_GRAMMARS:
        raise ValueError(f"No tree-sitter grammar for language: {grammar}")
    module_name, factory = _TS_GRAMMARS[grammar]
    module = importlib.import_module(module_name)
    return Language(getattr(module, factory)())


def _text(node) -> str:
    return node.text.decode("utf-8", errors="replace")


def _string_value(node) -> str | None:
    """Literal value of a plain string node, None for anything computed."""
    if node is None or node.type != "string":
        return None
    return _text(node)[1:-1]


def _declared_name(node) -> str:
    name = node.child_by_field_name("name")
    if name is not None and name.type in ("identifier", "type_identifier"):
        return _text(name)
    return ""


def _params(node) -> tuple[tuple[str, ...], tuple[str, ...], bool]:
    """Parameters of a function-like node: (required, optional, has_rest).

    A single destructured props object is unwrapped into its keys. A class
    takes the parameters of its constructor.
    """
    if node.type in ("class_declaration", "class", "abstract_class_declaration"):
        body = node.child_by_field_name("body")
        for member in body.named_children if body is not None else ():
            if member.type == "method_definition" and _declared_name_of(member) == "constructor":
                return _params(member)
        return (), (), False

    single = node.child_by_field_name("parameter")
    if single is not None:
        return (_text(single),), (), False
    formal = node.child_by_field_name("parameters")
    if formal is None:
        return (), (), False

    entries = [c for c in formal.named_children if c.type != "comment"]
    if len(entries) == 1:
        pattern = _unwrap_parameter(entries[0])
        if pattern.type == "object_pattern":
            return _object_pattern(pattern)

    required: list[str] = []
    optional: list[str] = []
    rest = False
    for entry in entries:
        kind, name = _parameter(entry)
        if kind == "rest":
            rest = True
        elif kind == "optional":
            optional.append(name)
        elif kind == "required":
            required.append(name)
    return tuple(required), tuple(optional), rest


def _declared_name_of(member) -> str:
    name = member.child_by_field_name("name")
    return _text(name) if name is not None else ""


def _unwrap_parameter(node):
    # TypeScript wraps every parameter in required_parameter / optional_parameter
    if node.type in ("required_parameter", "optional_parameter"):
        pattern = node.child_by_field_name("pattern")
        if pattern is not None:
            return pattern
    return node


def _parameter(node) -> tuple[str, str]:
    """Classify one formal parameter as ("required"|"optional"|"rest"|"", name)."""
    if node.type == "optional_parameter":
        pattern = node.child_by_field_name("pattern")
        return "optional", _text(pattern) if pattern is not None else ""
    if node.type == "required_parameter":
        pattern = node.child_by_field_name("pattern")
        if pattern is None:
            return "", ""
        if pattern.type == "rest_pattern":
            return "rest", ""
        if pattern.type != "identifier":
            return "", ""
        has_default = node.child_by_field_name("value") is not None
        return ("optional" if has_default else "required"), _text(pattern)
    if node.type == "identifier":
        return "required", _text(node)
    if node.type == "assignment_pattern":
        left = node.child_by_field_name("left")
        if left is not None and left.type == "identifier":
            return "optional", _text(left)
    if node.type == "rest_pattern":
        return "rest", ""
    return "", ""


def _object_pattern(node) -> tuple[tuple[str, ...], tuple[str, ...], bool]:
    required: list[str] = []
    optional: list[str] = []
    rest = False
    for entry in node.named_children:
        if entry.type == "shorthand_property_identifier_pattern":
            required.append(_text(entry))
        elif entry.type == "object_assignment_pattern":
            left = entry.child_by_field_name("left")
            if left is not None:
                optional.append(_text(left))
        elif entry.type == "pair_pattern":
            key = entry.child_by_field_name("key")
            value = entry.child_by_field_name("value")
            if key is None:
                continue
            if value is not None and value.type == "assignment_pattern":
                optional.append(_text(key))
            else:
                required.append(_text(key))
        elif entry.type == "rest_pattern":
            rest = True
    return tuple(required), tuple(optional), rest


def _object_keys(node) -> tuple[list[str], bool]:
    """Literal keys of an object expression and whether any key is computed."""
    keys: list[str] = []
    dynamic = False
    for entry in node.named_children:
        if entry.type == "comment":
            continue
        if entry.type == "shorthand_property_identifier":
            keys.append(_text(entry))
        elif entry.type in ("pair", "method_definition"):
            key = entry.child_by_field_name("key") or entry.child_by_field_name("name")
            if key is None or key.type == "computed_property_name":
                dynamic = True
            elif key.type == "string":
                keys.append(_text(key)[1:-1])
            else:
                keys.append(_text(key))
        else:
            dynamic = True
    return keys, dynamic


def _unparen(node) -> str:
    if node.type == "parenthesized_expression" and node.named_children:
        node = node.named_children[0]
    return " ".join(_text(node).split())


def _is_child(parent, field: str, child) -> bool:
    found = parent.child_by_field_name(field)
    return found is not None and found == child


class _ScriptScan:
    """Collects facts for one script file."""

    def __init__(self, path: str, snapshot: Snapshot, store_names: set[str]) -> None:
        self.path = path
        self.snapshot = snapshot
        self.store_names = store_names
        self.produces: list[Symbol] = []
        self.consumes: list[Symbol] = []
        self.guards: list[Guard] = []
        self.warnings: list[EngineWarning] = []
        self.imported: dict[str, tuple[str, str]] = {}
        self.namespaces: dict[str, str] = {}
        self.declarations: dict[str, object] = {}
        self.local_exports: dict[str, str] = {}
        # exports naming a declaration, resolved once every declaration is seen
        self.deferred: list[tuple[str, str, object, str]] = []
        # per owner: locals consumed as calls/renders, and plain references
        self.used: dict[str, set[str]] = {}
        self.referenced: dict[str, set[str]] = {}

    def warn(self, message: str, node, symbol: str = "") -> None:
        self.warnings.append(
            EngineWarning(
                kind=WarningKind.EXTRACTION_AMBIGUOUS,
                message=message,
                path=self.path,
                symbol=symbol,
                snapshot=self.snapshot.value,
                line=node.start_point[0] + 1,
            )
        )

    # -- module level ------------------------------------------------------

    def run(self, root) -> None:
        if root.has_error:
            self.warn("File has syntax errors; facts may be incomplete", root)

        segments: list[tuple[str, object]] = []
        for node in root.named_children:
            if node.type == "import_statement":
                self._register_import(node)
            elif node.type == "export_statement":
                segments.extend(self._register_export(node))
            elif node.type != "comment":
                segments.extend(self._owned(node))
        for exported, owner, node, origin in self.deferred:
            self._export(exported, owner, node, origin)

        self.local_exports = {
            s.owner: s.name
            for s in self.produces
            if s.kind == SymbolKind.EXPORT and s.owner in self.declarations
        }
        for owner, node in segments:
            self._walk(node, owner)
        for owner in sorted(self.referenced):
            for local in sorted(self.referenced[owner] - self.used.get(owner, set())):
                name, origin = self.imported[local]
                self.consumes.append(Symbol(name=name, kind=SymbolKind.IMPORT, owner=owner, origin=origin))

    def _register_import(self, node) -> None:
        origin = _string_value(node.child_by_field_name("source")) or ""
        for clause in node.named_children:
            if clause.type != "import_clause":
                continue
            for part in clause.named_children:
                if part.type == "identifier":
                    self.imported[_text(part)] = ("default", origin)
                elif part.type == "namespace_import":
                    for ident in part.named_children:
                        if ident.type == "identifier":
                            self.namespaces[_text(ident)] = origin
                elif part.type == "named_imports":
                    for specifier in part.named_children:
                        if specifier.type != "import_specifier":
                            continue
                        name = specifier.child_by_field_name("name")
                        alias = specifier.child_by_field_name("alias")
                        if name is None:
                            continue
                        local = _text(alias) if alias is not None else _text(name)
                        self.imported[local] = (_text(name), origin)

    def _owned(self, node) -> list[tuple[str, object]]:
        """Split one top-level statement into (owner, node) pairs."""
        if node.type in _DECLARATION_TYPES:
            name = _declared_name(node)
            if name:
                self.declarations[name] = node
            return [(name, node)]
        if node.type in _VARIABLE_TYPES:
            owned = []
            for declarator in node.named_children:
                if declarator.type != "variable_declarator":
                    continue
                name = _declared_name(declarator)
                if name:
                    value = declarator.child_by_field_name("value")
                    self.declarations[name] = value if value is not None else declarator
                owned.append((name, declarator))
            return owned
        return [("", node)]

    def _register_export(self, node) -> list[tuple[str, object]]:
        is_default = any(c.type == "default" for c in node.children)
        source = _string_value(node.child_by_field_name("source"))
        declaration = node.child_by_field_name("declaration")
        value = node.child_by_field_name("value")

        if declaration is not None:
            owned = self._owned(declaration)
            for owner, _ in owned:
                if owner:
                    self._export("default" if is_default else owner, owner, node)
            return owned

        if value is not None:
            if value.type == "identifier":
                self.deferred.append(("default", _text(value), node, ""))
                return []
            owner = _declared_name(value) if value.type in _FUNCTION_TYPES else ""
            owner = owner or "default"
            self.declarations[owner] = value
            self._export("default", owner, node)
            return [(owner, value)]

        clause = next((c for c in node.named_children if c.type == "export_clause"), None)
        if clause is None:
            # export * from "./module"
            self.warn(f"Re-export of everything from '{source}' hides which names flow through", node, "*")
            self.consumes.append(
                Symbol(name=DYNAMIC_KEY, kind=SymbolKind.IMPORT, origin=source or "", confidence=Confidence.LOW)
            )
            return []
        for specifier in clause.named_children:
            if specifier.type != "export_specifier":
                continue
            name_node = specifier.child_by_field_name("name")
            if name_node is None:
                continue
            name = _text(name_node)
            alias = specifier.child_by_field_name("alias")
            origin = source or ""
            if not origin and name in self.imported:
                origin = self.imported[name][1]
            self.deferred.append((_text(alias) if alias is not None else name, name, node, origin))
        return []

    def _export(self, exported: str, owner: str, node, origin: str = "") -> None:
        required: tuple[str, ...] = ()
        optional: tuple[str, ...] = ()
        rest = False
        declared = self.declarations.get(owner)
        if declared is not None and declared.type in _FUNCTION_TYPES | {"method_definition"}:
            required, optional, rest = _params(declared)
        if rest:
            self.warn(f"'{owner}' accepts rest parameters; accepted fields are open-ended", node, owner)
        self.produces.append(
            Symbol(
                name=exported,
                kind=SymbolKind.EXPORT,
                owner=owner,
                origin=origin,
                required=required,
                optional=optional,
                confidence=Confidence.LOW if rest else Confidence.HIGH,
            )
        )

    # -- per owner ---------------------------------------------------------

    def _walk(self, node, owner: str) -> None:
        handler = getattr(self, f"_visit_{node.type}", None)
        if handler is not None and handler(node, owner):
            return
        for child in node.children:
            self._walk(child, owner)

    def _visit_comment(self, node, owner: str) -> bool:
        return True

    def _visit_identifier(self, node, owner: str) -> bool:
        name = _text(node)
        if name in self.imported:
            self.referenced.setdefault(owner, set()).add(name)
        return True

    _visit_type_identifier = _visit_identifier
    _visit_shorthand_property_identifier = _visit_identifier

    def _resolve(self, local: str, owner: str) -> tuple[str, str] | None:
        if local in self.imported:
            return self.imported[local]
        if "." in local:
            ns, _, member = local.partition(".")
            if ns in self.namespaces:
                return member, self.namespaces[ns]
        if local in self.local_exports and local != owner:
            return self.local_exports[local], ""
        return None

    def _conditions(self, node) -> list[str]:
        """Conditions gating `node`, from the && / ternary / if around it."""
        conditions = []
        child, parent = node, node.parent
        while parent is not None and parent.type != "program":
            if parent.type == "binary_expression":
                operator = parent.child_by_field_name("operator")
                if operator is not None and operator.type == "&&" and _is_child(parent, "right", child):
                    conditions.append(_unparen(parent.child_by_field_name("left")))
            elif parent.type == "ternary_expression":
                condition = _unparen(parent.child_by_field_name("condition"))
                if _is_child(parent, "consequence", child):
                    conditions.append(condition)
                elif _is_child(parent, "alternative", child):
                    conditions.append(f"!({condition})")
            elif parent.type == "if_statement":
                condition = _unparen(parent.child_by_field_name("condition"))
                if _is_child(parent, "consequence", child):
                    conditions.append(condition)
                elif _is_child(parent, "alternative", child):
                    conditions.append(f"!({condition})")
            child, parent = parent, parent.parent
        return conditions

    def _consume(self, symbol: Symbol, node, local: str) -> None:
        self.consumes.append(symbol)
        self.used.setdefault(symbol.owner, set()).add(local)
        for condition in self._conditions(node):
            self.guards.append(Guard(condition=condition, owner=symbol.owner, target=symbol.name))

    # -- JSX ---------------------------------------------------------------

    def _visit_jsx_self_closing_element(self, node, owner: str) -> bool:
        self._render(node, node, owner)
        return False

    def _visit_jsx_opening_element(self, node, owner: str) -> bool:
        self._render(node, node.parent, owner)
        return False

    def _render(self, tag_node, element, owner: str) -> None:
        name_node = tag_node.child_by_field_name("name")
        if name_node is None:
            return
        tag = _text(name_node)
        target = self._resolve(tag, owner)
        if target is None:
            return
        fields: set[str] = set()
        spread = False
        for attr in tag_node.named_children:
            if attr.type == "jsx_attribute" and attr.named_children:
                fields.add(_text(attr.named_children[0]))
            elif attr.type == "jsx_expression" and any(
                c.type == "spread_element" for c in attr.named_children
            ):
                spread = True
        if spread:
            self.warn(f"Props spread into <{tag}> hide which fields are passed", tag_node, tag)
        name, origin = target
        self._consume(
            Symbol(
                name=name,
                kind=SymbolKind.PROPS,
                owner=owner,
                origin=origin,
                fields=tuple(sorted(fields)),
                confidence=Confidence.LOW if spread else Confidence.HIGH,
            ),
            element,
            tag.split(".")[0],
        )

    # -- calls -------------------------------------------------------------

    def _visit_call_expression(self, node, owner: str) -> bool:
        func = node.child_by_field_name("function")
        args = node.child_by_field_name("arguments")
        if func is None:
            return False
        if func.type == "member_expression" and self._is_store_root(func.child_by_field_name("object")):
            prop = func.child_by_field_name("property")
            self._store_method(owner, _text(prop) if prop is not None else "", args, node)
            # the store root itself needs no visit
            if args is not None:
                self._walk(args, owner)
            return True

        if func.type == "identifier":
            local = callee = _text(func)
        elif func.type == "member_expression":
            obj = func.child_by_field_name("object")
            prop = func.child_by_field_name("property")
            if obj is None or prop is None or obj.type != "identifier":
                return False
            local = _text(obj)
            callee = f"{local}.{_text(prop)}"
        else:
            return False
        target = self._resolve(callee, owner)
        if target is None:
            return False

        fields, dynamic = self._argument_fields(args)
        if dynamic:
            self.warn(f"Arguments to '{callee}' are spread dynamically", node, callee)
        name, origin = target
        self._consume(
            Symbol(
                name=name,
                kind=SymbolKind.CALL,
                owner=owner,
                origin=origin,
                fields=tuple(fields),
                confidence=Confidence.LOW if dynamic else Confidence.HIGH,
            ),
            node,
            local,
        )
        return False

    @staticmethod
    def _argument_fields(args) -> tuple[list[str], bool]:
        if args is None:
            return [], False
        entries = [a for a in args.named_children if a.type != "comment"]
        if any(a.type == "spread_element" for a in entries):
            return [], True
        if entries and entries[0].type == "object":
            return _object_keys(entries[0])
        return [], False

    # -- shared store ------------------------------------------------------

    def _is_store_root(self, node) -> bool:
        if node is None:
            return False
        if node.type == "identifier":
            return _text(node) in self.store_names
        if node.type == "call_expression":
            # store.getState()
            func = node.child_by_field_name("function")
            if func is not None and func.type == "member_expression":
                prop = func.child_by_field_name("property")
                return (
                    prop is not None
                    and _text(prop) in STORE_PASSTHROUGH
                    and self._is_store_root(func.child_by_field_name("object"))
                )
        return False

    def _visit_member_expression(self, node, owner: str) -> bool:
        obj = node.child_by_field_name("object")
        if not self._is_store_root(obj):
            return False
        parent = node.parent
        if parent is not None and parent.type == "call_expression" and _is_child(parent, "function", node):
            return True
        prop = node.child_by_field_name("property")
        key = _text(prop) if prop is not None else DYNAMIC_KEY
        if obj.type == "call_expression":
            self._walk(obj, owner)
        self._access(owner, key, node)
        return True

    def _visit_subscript_expression(self, node, owner: str) -> bool:
        obj = node.child_by_field_name("object")
        if not self._is_store_root(obj):
            return False
        index = node.child_by_field_name("index")
        key = _string_value(index)
        if key is None:
            self.warn("Shared store indexed with a computed key", node, DYNAMIC_KEY)
            if index is not None:
                self._walk(index, owner)
            self._access(owner, DYNAMIC_KEY, node, low=True)
        else:
            self._access(owner, key, node)
        return True

    def _access(self, owner: str, key: str, node, low: bool = False) -> None:
        """Record a read or write of `key`, with one level of nested field."""
        target = node
        fields: tuple[str, ...] = ()
        parent = node.parent
        if parent is not None and _is_child(parent, "object", node):
            if parent.type == "member_expression":
                prop = parent.child_by_field_name("property")
                if prop is not None:
                    fields = (_text(prop),)
                    target = parent
            elif parent.type == "subscript_expression":
                literal = _string_value(parent.child_by_field_name("index"))
                if literal is not None:
                    fields = (literal,)
                    target = parent
        holder = target.parent
        write = holder is not None and (
            (holder.type in _ASSIGNMENT_TYPES and _is_child(holder, "left", target))
            or (holder.type == "unary_expression" and _text(holder).startswith("delete"))
        )
        self._state(owner, key, fields, write, low)

    def _store_method(self, owner: str, method: str, args, node) -> None:
        if method in STORE_PASSTHROUGH:
            return
        if method not in STORE_METHOD_READ and method not in STORE_METHOD_WRITE:
            self.warn(f"Unrecognized shared store operation '{method}()'", node, DYNAMIC_KEY)
            self._state(owner, DYNAMIC_KEY, (), False, low=True)
            return
        write = method in STORE_METHOD_WRITE
        entries = [a for a in args.named_children if a.type != "comment"] if args is not None else []
        first = entries[0] if entries else None
        literal = _string_value(first)
        if literal is not None:
            self._state(owner, literal, (), write)
            return
        if first is not None and first.type == "object":
            keys, dynamic = _object_keys(first)
            for key in keys:
                self._state(owner, key, (), write)
            if not dynamic:
                return
        self.warn(f"Shared store '{method}' called with a computed key", node, DYNAMIC_KEY)
        self._state(owner, DYNAMIC_KEY, (), write, low=True)

    def _state(self, owner: str, key: str, fields: tuple[str, ...], write: bool, low: bool = False) -> None:
        symbol = Symbol(
            name=key,
            kind=SymbolKind.STATE_WRITE if write else SymbolKind.STATE_READ,
            owner=owner,
            fields=fields,
            confidence=Confidence.LOW if low else Confidence.HIGH,
        )
        if write:
            self.produces.append(symbol)
        else:
            self.consumes.append(symbol)


def extract_script_facts(
    path: str,
    source: str,
    snapshot: Snapshot,
    language: str = "javascript",
    store_names: list[str] | None = None,
) -> ContractFacts:
    """Extract the contract facts of one JavaScript/TypeScript file."""
    from tree_sitter import Parser

    parser = Parser(_get_language(grammar_for(path, language)))
    tree = parser.parse(source.encode("utf-8"))

    scan = _ScriptScan(path, snapshot, set(store_names or []))
    scan.run(tree.root_node)
    return ContractFacts.create(
        path,
        snapshot,
        language,
        produces=scan.produces,
        consumes=scan.consumes,
        invariants=scan.guards,
        warnings=scan.warnings,
        low_confidence=bool(scan.warnings),
    )
