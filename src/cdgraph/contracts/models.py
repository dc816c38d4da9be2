"""Data models for extracted contract facts."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from cdgraph.diagnostics import EngineWarning


class Snapshot(str, Enum):
    """Which side of the change a fact or graph belongs to."""

    BEFORE = "before"
    AFTER = "after"


class Confidence(str, Enum):
    """How unambiguous a statically inferred fact is."""

    HIGH = "high"
    LOW = "low"


class SymbolKind(str, Enum):
    """Kinds of contract symbols."""

    EXPORT = "export"  # produced: an exported value or callable
    IMPORT = "import"  # consumed: a referenced value from another file
    CALL = "call"  # consumed: a call into another file, with passed fields
    PROPS = "props"  # consumed: a rendered element with passed-down props
    STATE_READ = "state_read"  # consumed: read of a shared-store key
    STATE_WRITE = "state_write"  # produced: write to a shared-store key


STATE_KINDS = frozenset({SymbolKind.STATE_READ, SymbolKind.STATE_WRITE})


class Symbol(BaseModel):
    """A named value flowing in or out of a component."""

    model_config = ConfigDict(frozen=True)

    name: str
    kind: SymbolKind
    owner: str = ""  # enclosing top-level declaration, "" = module level
    origin: str = ""  # import source, e.g. "pkg.mod" or "./Button"
    fields: tuple[str, ...] = ()  # passed-down fields / nested keys
    required: tuple[str, ...] = ()  # parameters an export requires
    optional: tuple[str, ...] = ()  # parameters an export accepts with a default
    confidence: Confidence = Confidence.HIGH

    @property
    def token(self) -> str:
        return f"{self.kind.value}:{self.name}"

    def sort_key(self) -> tuple:
        return (self.kind.value, self.name, self.owner, self.origin, self.fields)


class Guard(BaseModel):
    """A conditional gate or assertion surrounding contract usage."""

    model_config = ConfigDict(frozen=True)

    condition: str
    owner: str = ""
    target: str = ""  # symbol the condition gates, "" = the whole owner

    @property
    def token(self) -> str:
        return f"guard:{self.target}:{self.condition}"

    def sort_key(self) -> tuple:
        return (self.owner, self.target, self.condition)


def _merge_symbols(symbols) -> tuple[Symbol, ...]:
    """Collapse symbols that describe the same access into one canonical entry."""
    merged: dict[tuple, Symbol] = {}
    for sym in symbols:
        key = (sym.kind, sym.name, sym.owner, sym.origin)
        existing = merged.get(key)
        if existing is None:
            merged[key] = sym.model_copy(update={"fields": tuple(sorted(set(sym.fields)))})
            continue
        low = Confidence.LOW in (existing.confidence, sym.confidence)
        merged[key] = existing.model_copy(
            update={
                "fields": tuple(sorted(set(existing.fields) | set(sym.fields))),
                "required": existing.required or sym.required,
                "optional": existing.optional or sym.optional,
                "confidence": Confidence.LOW if low else Confidence.HIGH,
            }
        )
    return tuple(sorted(merged.values(), key=Symbol.sort_key))


def _canonical_guards(guards) -> tuple[Guard, ...]:
    return tuple(sorted(set(guards), key=Guard.sort_key))


class ComponentFacts(BaseModel):
    """The slice of a file's contract owned by one component.

    Value equality of two slices decides whether a matched component is
    Unchanged or Modified.
    """

    model_config = ConfigDict(frozen=True)

    produces: tuple[Symbol, ...] = ()
    consumes: tuple[Symbol, ...] = ()
    invariants: tuple[Guard, ...] = ()

    @property
    def confidence(self) -> Confidence:
        for sym in (*self.produces, *self.consumes):
            if sym.confidence == Confidence.LOW:
                return Confidence.LOW
        return Confidence.HIGH

    @property
    def exports(self) -> list[str]:
        return [s.name for s in self.produces if s.kind == SymbolKind.EXPORT]

    def is_empty(self) -> bool:
        return not (self.produces or self.consumes or self.invariants)


class ContractFacts(BaseModel):
    """Everything one file promises and relies on in one snapshot."""

    model_config = ConfigDict(frozen=True)

    path: str
    snapshot: Snapshot
    language: str | None = None
    present: bool = True
    produces: tuple[Symbol, ...] = ()
    consumes: tuple[Symbol, ...] = ()
    invariants: tuple[Guard, ...] = ()
    confidence: Confidence = Confidence.HIGH
    warnings: tuple[EngineWarning, ...] = Field(default_factory=tuple)

    @classmethod
    def create(
        cls,
        path: str,
        snapshot: Snapshot,
        language: str | None,
        produces=(),
        consumes=(),
        invariants=(),
        warnings=(),
        low_confidence: bool = False,
    ) -> ContractFacts:
        """Build facts in canonical (merged, sorted) form."""
        produces = _merge_symbols(produces)
        consumes = _merge_symbols(consumes)
        low = low_confidence or any(
            s.confidence == Confidence.LOW for s in (*produces, *consumes)
        )
        return cls(
            path=path,
            snapshot=snapshot,
            language=language,
            produces=produces,
            consumes=consumes,
            invariants=_canonical_guards(invariants),
            confidence=Confidence.LOW if low else Confidence.HIGH,
            warnings=tuple(sorted(set(warnings), key=EngineWarning.sort_key)),
        )

    @classmethod
    def absent(cls, path: str, snapshot: Snapshot) -> ContractFacts:
        """Facts for a file that does not exist in this snapshot."""
        return cls(path=path, snapshot=snapshot, present=False)

    @property
    def exports(self) -> list[str]:
        return [s.name for s in self.produces if s.kind == SymbolKind.EXPORT]

    def owners(self) -> set[str]:
        """Every declaration name that owns at least one fact."""
        owners = {s.owner for s in (*self.produces, *self.consumes)}
        owners.update(g.owner for g in self.invariants)
        return owners

    def owned_by(self, owners: set[str]) -> ComponentFacts:
        """Slice out the facts whose owner is in `owners`."""
        return ComponentFacts(
            produces=tuple(s for s in self.produces if s.owner in owners),
            consumes=tuple(s for s in self.consumes if s.owner in owners),
            invariants=tuple(g for g in self.invariants if g.owner in owners),
        )
