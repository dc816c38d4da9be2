"""Python contract extraction using the built-in ast module.

A structural scan, not semantic analysis: it finds exported names, the
imported names each top-level declaration relies on, keyword fields passed
to imported callables, shared-store access and the conditions gating them.
"""

from __future__ import annotations

import ast

from cdgraph.contracts.models import (
    Confidence,
    ContractFacts,
    Guard,
    Snapshot,
    Symbol,
    SymbolKind,
)
from cdgraph.diagnostics import EngineWarning, WarningKind

STORE_READ_METHODS = {"get"}
STORE_WRITE_METHODS = {"set", "update", "setdefault", "pop"}
DYNAMIC_KEY = "*"


def extract_python_facts(
    path: str,
    source: str,
    snapshot: Snapshot,
    store_names: list[str] | None = None,
) -> ContractFacts:
    """Extract the contract facts of one Python file."""
    try:
        tree = ast.parse(source, filename=path)
    except SyntaxError as e:
        warning = EngineWarning(
            kind=WarningKind.EXTRACTION_AMBIGUOUS,
            message=f"SyntaxError: {e.msg}; contract could not be scanned",
            path=path,
            snapshot=snapshot.value,
            line=e.lineno or 0,
        )
        return ContractFacts.create(
            path, snapshot, "python", warnings=[warning], low_confidence=True
        )

    scan = _ModuleScan(path, snapshot, set(store_names or []))
    scan.run(tree)
    return ContractFacts.create(
        path,
        snapshot,
        "python",
        produces=scan.produces,
        consumes=scan.consumes,
        invariants=scan.guards,
        warnings=scan.warnings,
        low_confidence=bool(scan.warnings),
    )


def _node_to_name(node: ast.AST) -> str:
    """Convert an AST node to a dotted name string."""
    if isinstance(node, ast.Name):
        return node.id
    elif isinstance(node, ast.Attribute):
        parent = _node_to_name(node.value)
        if parent:
            return f"{parent}.{node.attr}"
        return node.attr
    return ""


def _parameters(node: ast.FunctionDef | ast.AsyncFunctionDef, skip_self: bool = False):
    """Split a signature into required and optional parameter names."""
    args = node.args
    positional = [*args.posonlyargs, *args.args]
    if skip_self and positional and positional[0].arg in ("self", "cls"):
        positional = positional[1:]
    n_defaults = len(args.defaults)
    split = len(positional) - n_defaults
    required = [a.arg for a in positional[:split]]
    optional = [a.arg for a in positional[split:]]
    for arg, default in zip(args.kwonlyargs, args.kw_defaults):
        (optional if default is not None else required).append(arg.arg)
    return tuple(required), tuple(optional)


def _declared_names(node: ast.stmt) -> list[str]:
    if isinstance(node, (ast.FunctionDef, ast.AsyncFunctionDef, ast.ClassDef)):
        return [node.name]
    if isinstance(node, ast.Assign):
        return [t.id for t in node.targets if isinstance(t, ast.Name)]
    if isinstance(node, ast.AnnAssign) and isinstance(node.target, ast.Name):
        return [node.target.id]
    return []


class _ModuleScan:
    """Collects facts for one module."""

    def __init__(self, path: str, snapshot: Snapshot, store_names: set[str]) -> None:
        self.path = path
        self.snapshot = snapshot
        self.store_names = store_names
        self.produces: list[Symbol] = []
        self.consumes: list[Symbol] = []
        self.guards: list[Guard] = []
        self.warnings: list[EngineWarning] = []
        # local name -> (imported symbol, origin module)
        self.imported: dict[str, tuple[str, str]] = {}
        # local alias -> module path
        self.modules: dict[str, str] = {}
        self.local_exports: set[str] = set()

    def warn(self, message: str, node: ast.AST, symbol: str = "") -> None:
        self.warnings.append(
            EngineWarning(
                kind=WarningKind.EXTRACTION_AMBIGUOUS,
                message=message,
                path=self.path,
                symbol=symbol,
                snapshot=self.snapshot.value,
                line=getattr(node, "lineno", 0),
            )
        )

    def run(self, tree: ast.Module) -> None:
        for node in ast.walk(tree):
            if isinstance(node, (ast.Import, ast.ImportFrom)):
                self._register_import(node)

        declarations: dict[str, ast.stmt] = {}
        for node in tree.body:
            for name in _declared_names(node):
                declarations.setdefault(name, node)

        exports = self._resolve_exports(tree, declarations)
        self.local_exports = {n for n in exports if n in declarations}
        for name in exports:
            self._add_export(name, declarations.get(name))

        for node in tree.body:
            if isinstance(node, (ast.Import, ast.ImportFrom)):
                continue
            names = _declared_names(node)
            if names == ["__all__"]:
                continue
            if isinstance(node, ast.AugAssign) and _node_to_name(node.target) == "__all__":
                continue
            owner = names[0] if names else ""
            _BodyVisitor(self, owner).visit(node)

    def _register_import(self, node: ast.Import | ast.ImportFrom) -> None:
        if isinstance(node, ast.Import):
            for alias in node.names:
                if alias.asname:
                    self.modules[alias.asname] = alias.name
                else:
                    root = alias.name.split(".")[0]
                    self.modules.setdefault(root, root)
            return
        module = "." * node.level + (node.module or "")
        for alias in node.names:
            if alias.name == "*":
                self.warn(f"Star import from '{module}' hides which names are consumed", node, "*")
                self.consumes.append(
                    Symbol(
                        name=DYNAMIC_KEY,
                        kind=SymbolKind.IMPORT,
                        origin=module,
                        confidence=Confidence.LOW,
                    )
                )
                continue
            self.imported[alias.asname or alias.name] = (alias.name, module)

    def _resolve_exports(self, tree: ast.Module, declarations: dict[str, ast.stmt]) -> list[str]:
        """Names listed in __all__, else every public top-level declaration."""
        listed: list[str] | None = None
        dynamic = False
        for node in tree.body:
            if isinstance(node, ast.Assign) and any(
                isinstance(t, ast.Name) and t.id == "__all__" for t in node.targets
            ):
                values, ok = _string_literals(node.value)
                listed = values
                dynamic = dynamic or not ok
                if not ok:
                    self.warn("__all__ is not a literal list of names", node, "__all__")
            elif isinstance(node, ast.AugAssign) and _node_to_name(node.target) == "__all__":
                values, ok = _string_literals(node.value)
                listed = (listed or []) + values
                dynamic = dynamic or not ok
                if not ok:
                    self.warn("__all__ is extended dynamically", node, "__all__")

        public = [n for n in declarations if not n.startswith("_")]
        if listed is None:
            return public
        if dynamic:
            # Keep every public name rather than shrinking the contract
            return sorted(set(listed) | set(public))
        return list(dict.fromkeys(listed))

    def _add_export(self, name: str, node: ast.stmt | None) -> None:
        required: tuple[str, ...] = ()
        optional: tuple[str, ...] = ()
        origin = ""
        if isinstance(node, (ast.FunctionDef, ast.AsyncFunctionDef)):
            required, optional = _parameters(node)
        elif isinstance(node, ast.ClassDef):
            for item in node.body:
                if isinstance(item, (ast.FunctionDef, ast.AsyncFunctionDef)) and item.name == "__init__":
                    required, optional = _parameters(item, skip_self=True)
        elif node is None and name in self.imported:
            origin = self.imported[name][1]
        self.produces.append(
            Symbol(
                name=name,
                kind=SymbolKind.EXPORT,
                owner=name,
                origin=origin,
                required=required,
                optional=optional,
            )
        )

    def is_store_root(self, node: ast.AST) -> bool:
        if isinstance(node, ast.Name):
            return node.id in self.store_names
        if isinstance(node, ast.Attribute):
            return node.attr in self.store_names
        return False


def _string_literals(node: ast.AST) -> tuple[list[str], bool]:
    """Return string constants of a list/tuple literal and whether it was fully literal."""
    if not isinstance(node, (ast.List, ast.Tuple)):
        return [], False
    values = []
    ok = True
    for elt in node.elts:
        if isinstance(elt, ast.Constant) and isinstance(elt.value, str):
            values.append(elt.value)
        else:
            ok = False
    return values, ok


def _constant_key(node: ast.AST) -> str | None:
    if isinstance(node, ast.Constant) and isinstance(node.value, (str, int)):
        return str(node.value)
    return None


class _BodyVisitor(ast.NodeVisitor):
    """Walks one top-level statement, recording facts owned by `owner`."""

    def __init__(self, scan: _ModuleScan, owner: str) -> None:
        self.scan = scan
        self.owner = owner
        self.conditions: list[str] = []

    # -- recording -----------------------------------------------------

    def _consume(self, symbol: Symbol) -> None:
        self.scan.consumes.append(symbol)
        for condition in self.conditions:
            self.scan.guards.append(
                Guard(condition=condition, owner=self.owner, target=symbol.name)
            )

    def _state(
        self,
        key: str,
        fields: list[str],
        write: bool,
        node: ast.AST,
        dynamic: bool = False,
        reason: str = "Shared store accessed through a computed key",
    ) -> None:
        if dynamic:
            self.scan.warn(reason, node, DYNAMIC_KEY)
        symbol = Symbol(
            name=key,
            kind=SymbolKind.STATE_WRITE if write else SymbolKind.STATE_READ,
            owner=self.owner,
            fields=tuple(fields),
            confidence=Confidence.LOW if dynamic else Confidence.HIGH,
        )
        if write:
            self.scan.produces.append(symbol)
        else:
            self._consume(symbol)

    # -- gates ---------------------------------------------------------

    def _gated(self, test: ast.expr, body: list[ast.AST], orelse: list[ast.AST]) -> None:
        self.visit(test)
        condition = ast.unparse(test)
        self.conditions.append(condition)
        for node in body:
            self.visit(node)
        self.conditions.pop()
        if orelse:
            self.conditions.append(f"not ({condition})")
            for node in orelse:
                self.visit(node)
            self.conditions.pop()

    def visit_If(self, node: ast.If) -> None:
        self._gated(node.test, node.body, node.orelse)

    def visit_IfExp(self, node: ast.IfExp) -> None:
        self._gated(node.test, [node.body], [node.orelse])

    def visit_Assert(self, node: ast.Assert) -> None:
        self.scan.guards.append(Guard(condition=ast.unparse(node.test), owner=self.owner))
        self.generic_visit(node)

    # -- references ----------------------------------------------------

    def visit_Name(self, node: ast.Name) -> None:
        if isinstance(node.ctx, ast.Load):
            self._reference(node.id, SymbolKind.IMPORT, ())

    def _reference(self, local: str, kind: SymbolKind, fields: tuple[str, ...], low: bool = False) -> bool:
        if local in self.scan.imported:
            name, origin = self.scan.imported[local]
        elif local in self.scan.local_exports and local != self.owner:
            name, origin = local, ""
        else:
            return False
        self._consume(
            Symbol(
                name=name,
                kind=kind,
                owner=self.owner,
                origin=origin,
                fields=fields,
                confidence=Confidence.LOW if low else Confidence.HIGH,
            )
        )
        return True

    def _module_member(self, node: ast.Attribute) -> tuple[str, str] | None:
        """Resolve `alias.sub.attr` to (attr, module path) for imported modules."""
        dotted = _node_to_name(node.value)
        if not dotted:
            return None
        root, _, rest = dotted.partition(".")
        if root not in self.scan.modules:
            return None
        module = self.scan.modules[root] + (f".{rest}" if rest else "")
        return node.attr, module

    def _store_chain(self, node: ast.AST) -> tuple[str, list[str], bool, list[ast.AST]] | None:
        """Unwind a subscript/attribute chain rooted at a shared store."""
        parts: list[tuple[str | None, ast.AST | None]] = []
        current = node
        while isinstance(current, (ast.Subscript, ast.Attribute)):
            if self.scan.is_store_root(current):
                break
            if isinstance(current, ast.Subscript):
                parts.append((_constant_key(current.slice), current.slice))
            else:
                parts.append((current.attr, None))
            current = current.value
        if not self.scan.is_store_root(current) or not parts:
            return None
        parts.reverse()
        key, slice_node = parts[0]
        dynamic = key is None
        fields = [p for p, _ in parts[1:2] if p is not None]
        slices = [s for _, s in parts if s is not None]
        return (key or DYNAMIC_KEY), fields, dynamic, slices

    def _visit_access(self, node: ast.Subscript | ast.Attribute) -> None:
        chain = self._store_chain(node)
        if chain is not None:
            key, fields, dynamic, slices = chain
            write = isinstance(node.ctx, (ast.Store, ast.Del))
            self._state(key, fields, write, node, dynamic)
            for s in slices:
                self.visit(s)
            return
        if isinstance(node, ast.Attribute) and isinstance(node.ctx, ast.Load):
            member = self._module_member(node)
            if member is not None:
                name, origin = member
                self._consume(Symbol(name=name, kind=SymbolKind.IMPORT, owner=self.owner, origin=origin))
                return
        self.generic_visit(node)

    def visit_Subscript(self, node: ast.Subscript) -> None:
        self._visit_access(node)

    def visit_Attribute(self, node: ast.Attribute) -> None:
        self._visit_access(node)

    def visit_Call(self, node: ast.Call) -> None:
        fields = tuple(sorted(kw.arg for kw in node.keywords if kw.arg))
        spread = any(kw.arg is None for kw in node.keywords) or any(
            isinstance(a, ast.Starred) for a in node.args
        )
        func = node.func
        handled = False

        if isinstance(func, ast.Name):
            handled = self._reference(func.id, SymbolKind.CALL, fields, low=spread)
            if handled and spread:
                self.scan.warn(f"Arguments to '{func.id}' are unpacked dynamically", node, func.id)
        elif isinstance(func, ast.Attribute) and self.scan.is_store_root(func.value):
            self._store_method(func.attr, node)
            handled = True
        elif isinstance(func, ast.Attribute):
            member = self._module_member(func)
            if member is not None:
                name, origin = member
                if spread:
                    self.scan.warn(f"Arguments to '{name}' are unpacked dynamically", node, name)
                self._consume(
                    Symbol(
                        name=name,
                        kind=SymbolKind.CALL,
                        owner=self.owner,
                        origin=origin,
                        fields=fields,
                        confidence=Confidence.LOW if spread else Confidence.HIGH,
                    )
                )
                handled = True

        if not handled:
            self.visit(func)
        for arg in node.args:
            self.visit(arg)
        for kw in node.keywords:
            self.visit(kw.value)

    def _store_method(self, method: str, node: ast.Call) -> None:
        if method in STORE_READ_METHODS or method in STORE_WRITE_METHODS:
            write = method in STORE_WRITE_METHODS
            keys: list[str] = []
            dynamic = False
            if method == "update":
                if node.args and isinstance(node.args[0], ast.Dict):
                    for k in node.args[0].keys:
                        key = _constant_key(k) if k is not None else None
                        if key is None:
                            dynamic = True
                        else:
                            keys.append(key)
                elif node.args:
                    dynamic = True
                for kw in node.keywords:
                    if kw.arg:
                        keys.append(kw.arg)
                    else:
                        dynamic = True
            elif node.args:
                key = _constant_key(node.args[0])
                if key is None:
                    dynamic = True
                else:
                    keys.append(key)
            else:
                dynamic = True
            for key in keys:
                self._state(key, [], write, node)
            if dynamic:
                self._state(DYNAMIC_KEY, [], write, node, dynamic=True)
            return
        self._state(
            DYNAMIC_KEY,
            [],
            False,
            node,
            dynamic=True,
            reason=f"Unrecognized shared store operation '{method}()'",
        )
