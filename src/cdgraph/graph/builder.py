"""Build a contract graph from one snapshot's extracted facts."""

from __future__ import annotations

import logging
import posixpath
from dataclasses import dataclass, field
from pathlib import PurePosixPath

from cdgraph.contracts.models import (
    STATE_KINDS,
    ComponentFacts,
    Confidence,
    ContractFacts,
    Snapshot,
    Symbol,
    SymbolKind,
)
from cdgraph.diagnostics import EngineWarning, WarningKind
from cdgraph.exceptions import GraphError
from cdgraph.graph.models import Component, ContractGraph, Edge, EdgeKind, PayloadShape

logger = logging.getLogger("cdgraph.graph")

STORE_PREFIX = "store::"

CONSUME_EDGE_KINDS: dict[SymbolKind, EdgeKind] = {
    SymbolKind.CALL: EdgeKind.CALL,
    SymbolKind.IMPORT: EdgeKind.PROP_FLOW,
    SymbolKind.PROPS: EdgeKind.PROP_FLOW,
}

_MODULE_SUFFIXES = (".py", ".pyi", ".js", ".jsx", ".mjs", ".ts", ".tsx")
_PACKAGE_FILES = ("__init__", "index")


def store_id(key: str) -> str:
    return f"{STORE_PREFIX}{key}"


def module_paths(path: str) -> set[str]:
    """Import paths a file answers to: ``pkg/mod`` for ``pkg/mod.py``, plus
    ``pkg`` for ``pkg/__init__.py`` or ``pkg/index.ts``."""
    pure = PurePosixPath(path)
    stem = str(pure.with_suffix("")) if pure.suffix in _MODULE_SUFFIXES else path
    paths = {stem}
    if pure.stem in _PACKAGE_FILES:
        parent = str(pure.parent)
        paths.add("" if parent == "." else parent)
    return paths


def origin_path(origin: str, consumer_path: str) -> tuple[str, bool] | None:
    """Translate an import origin into a slash path.

    Returns ``(path, relative)``; relative paths are anchored at the consumer's
    directory and must match exactly, absolute ones may match a path suffix.
    """
    if not origin:
        return None
    base = posixpath.dirname(consumer_path)
    if origin.startswith(".") and ("/" in origin or origin in (".", "..")):
        target = posixpath.normpath(posixpath.join(base, origin))
        return ("" if target == "." else target), True
    if origin.startswith("."):
        level = len(origin) - len(origin.lstrip("."))
        for _ in range(level - 1):
            base = posixpath.dirname(base)
        rest = origin[level:].replace(".", "/")
        return posixpath.join(base, rest).rstrip("/") if rest else base, True
    if origin.startswith("@/") or origin.startswith("~/"):
        origin = origin[2:]
    if "/" not in origin:
        origin = origin.replace(".", "/")
    return origin, False


def origin_matches(origin: str, consumer_path: str, producer_path: str) -> bool:
    resolved = origin_path(origin, consumer_path)
    if resolved is None:
        return True
    target, relative = resolved
    for candidate in module_paths(producer_path):
        if candidate == target:
            return True
        if not relative and target and candidate.endswith("/" + target):
            return True
    return False


@dataclass
class _EdgeDraft:
    """Mutable accumulator for one (from, to, kind) edge."""

    symbols: list[str] = field(default_factory=list)
    fields: set[str] = field(default_factory=set)
    required: set[str] = field(default_factory=set)
    optional: set[str] = field(default_factory=set)
    guards: set[str] = field(default_factory=set)
    low: bool = False

    def add(self, symbol: str, fields=(), required=(), optional=(), guards=(), low=False) -> None:
        if symbol not in self.symbols:
            self.symbols.append(symbol)
        self.fields.update(fields)
        self.required.update(required)
        self.optional.update(optional)
        self.guards.update(guards)
        self.low = self.low or low

    def shape(self) -> PayloadShape:
        return PayloadShape(
            symbols=tuple(sorted(self.symbols)),
            fields=tuple(sorted(self.fields)),
            required=tuple(sorted(self.required)),
            optional=tuple(sorted(self.optional)),
            guards=tuple(sorted(self.guards)),
        )


class GraphBuilder:
    """Builds the contract graph of one snapshot.

    The graph has three types of nodes:
    - Export components: one per exported symbol (``path::symbol``)
    - File roots: module-level code or files without exports (``path``)
    - Stores: synthetic shared-state nodes (``store::key``)

    Edges run producer -> consumer. Readers and writers of a store are linked
    only through the store node, never to each other.
    """

    def __init__(self) -> None:
        self._components: dict[str, Component] = {}
        self._owner_index: dict[str, dict[str, str]] = {}
        self._export_index: dict[str, list[tuple[str, Symbol]]] = {}
        self._edges: dict[tuple[str, str, EdgeKind], _EdgeDraft] = {}
        self._warnings: list[EngineWarning] = []
        self._snapshot = Snapshot.AFTER

    def build(self, facts: list[ContractFacts] | tuple[ContractFacts, ...], snapshot: Snapshot) -> ContractGraph:
        """Build the graph from all facts of `snapshot`.

        Args:
            facts: Per-file facts; absent and unsupported files add no nodes.
            snapshot: The snapshot every fact must belong to.

        Returns:
            The immutable, validated ContractGraph.
        """
        # Reset state so reusing a builder doesn't accumulate stale data
        self._components = {}
        self._owner_index = {}
        self._export_index = {}
        self._edges = {}
        self._warnings = []
        self._snapshot = snapshot

        files = sorted(facts, key=lambda f: f.path)
        for file_facts in files:
            if file_facts.snapshot != snapshot:
                raise GraphError(
                    f"Facts for '{file_facts.path}' belong to the {file_facts.snapshot.value} "
                    f"snapshot, not {snapshot.value}"
                )
            if file_facts.present and file_facts.language is not None:
                self._add_file(file_facts)

        for file_facts in files:
            if file_facts.path in self._owner_index:
                self._link_file(file_facts)

        stores = sorted(
            (c for c in self._components.values() if c.synthetic), key=lambda c: c.id
        )
        regular = [c for c in self._components.values() if not c.synthetic]
        edges = [
            Edge(
                from_id=from_id,
                to_id=to_id,
                kind=kind,
                payload_shape=draft.shape(),
                confidence=Confidence.LOW if draft.low else Confidence.HIGH,
            )
            for (from_id, to_id, kind), draft in self._edges.items()
        ]
        graph = ContractGraph(
            snapshot=snapshot,
            components=tuple(regular + stores),
            edges=tuple(edges),
            warnings=tuple(sorted(set(self._warnings), key=EngineWarning.sort_key)),
        )
        logger.info(
            f"Built {snapshot.value} graph: {len(graph.components)} components, "
            f"{len(graph.edges)} edges, {len(self._warnings)} unresolved"
        )
        return graph

    # -- components ----------------------------------------------------

    def _add_file(self, facts: ContractFacts) -> None:
        path = facts.path
        owners: dict[str, str] = {}
        exported_owners: set[str] = set()

        for sym in facts.produces:
            if sym.kind != SymbolKind.EXPORT:
                continue
            owner = sym.owner or sym.name
            exported_owners.add(owner)
            comp_id = f"{path}::{sym.name}"
            self._components[comp_id] = Component(
                id=comp_id,
                display_name=owner if sym.name == "default" else sym.name,
                path=path,
                symbol=sym.name,
                snapshot=self._snapshot,
                facts=facts.owned_by({owner}),
            )
            owners.setdefault(owner, comp_id)
            self._export_index.setdefault(sym.name, []).append((comp_id, sym))

        root_owners = facts.owners() - exported_owners
        if not exported_owners or root_owners:
            self._components[path] = Component(
                id=path,
                display_name=PurePosixPath(path).name,
                path=path,
                snapshot=self._snapshot,
                facts=facts.owned_by(root_owners) if exported_owners else facts.owned_by(facts.owners()),
            )
        self._owner_index[path] = owners

    def _component_for(self, path: str, owner: str) -> str:
        return self._owner_index[path].get(owner, path)

    def _ensure_store(self, key: str) -> str:
        comp_id = store_id(key)
        if comp_id not in self._components:
            self._components[comp_id] = Component(
                id=comp_id,
                display_name=f"store[{key}]",
                path="",
                symbol=key,
                snapshot=self._snapshot,
                synthetic=True,
                facts=ComponentFacts(),
            )
        return comp_id

    # -- edges ---------------------------------------------------------

    def _draft(self, from_id: str, to_id: str, kind: EdgeKind) -> _EdgeDraft:
        return self._edges.setdefault((from_id, to_id, kind), _EdgeDraft())

    def _link_file(self, facts: ContractFacts) -> None:
        for sym in facts.produces:
            if sym.kind == SymbolKind.STATE_WRITE:
                writer = self._component_for(facts.path, sym.owner)
                store = self._ensure_store(sym.name)
                self._draft(writer, store, EdgeKind.STATE_WRITE).add(
                    sym.name, fields=sym.fields, low=sym.confidence == Confidence.LOW
                )

        for sym in facts.consumes:
            consumer = self._component_for(facts.path, sym.owner)
            guards = sorted(
                g.condition
                for g in facts.invariants
                if g.owner == sym.owner and g.target == sym.name
            )
            low = sym.confidence == Confidence.LOW
            if sym.kind in STATE_KINDS:
                store = self._ensure_store(sym.name)
                self._draft(store, consumer, EdgeKind.STATE_READ).add(
                    sym.name, fields=sym.fields, guards=guards, low=low
                )
                continue

            producer = self._resolve(sym, facts.path)
            if producer is None:
                continue
            producer_id, export = producer
            if producer_id == consumer:
                continue
            label = self._components[producer_id].display_name if export.name == "default" else export.name
            self._draft(producer_id, consumer, CONSUME_EDGE_KINDS[sym.kind]).add(
                label,
                fields=sym.fields,
                required=export.required,
                optional=export.optional,
                guards=guards,
                low=low or export.confidence == Confidence.LOW,
            )

    def _resolve(self, sym: Symbol, consumer_path: str) -> tuple[str, Symbol] | None:
        """Pick the single export a consume refers to, or record why not."""
        candidates = self._export_index.get(sym.name, [])
        if sym.origin:
            candidates = [
                c for c in candidates
                if origin_matches(sym.origin, consumer_path, self._components[c[0]].path)
            ]
        else:
            local = [c for c in candidates if self._components[c[0]].path == consumer_path]
            candidates = local or candidates

        if len(candidates) == 1:
            return candidates[0]

        source = f" from '{sym.origin}'" if sym.origin else ""
        if candidates:
            names = ", ".join(sorted(c[0] for c in candidates))
            message = f"'{sym.name}'{source} matches several producers ({names})"
        else:
            message = f"No producer of '{sym.name}'{source} in the {self._snapshot.value} snapshot"
        self._warnings.append(
            EngineWarning(
                kind=WarningKind.UNRESOLVED_CONSUMPTION,
                message=message,
                path=consumer_path,
                symbol=sym.name,
                snapshot=self._snapshot.value,
            )
        )
        logger.debug(message)
        return None
