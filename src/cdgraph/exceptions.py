"""Custom exceptions for cdgraph.

Only fatal conditions are exceptions. Non-fatal findings (ambiguous
extraction, unresolved consumption, duplicate records) are recorded as
:class:`cdgraph.diagnostics.EngineWarning` instead.
"""


class CdGraphError(Exception):
    """Base exception for all cdgraph errors."""


class ConfigError(CdGraphError):
    """Configuration-related errors."""


class IngestError(CdGraphError):
    """Malformed or empty change data. Aborts before any graph work."""


class NoChangesFound(IngestError):
    """Raised when a change set would contain zero file changes."""

    def __init__(self) -> None:
        super().__init__("No file changes found; refusing to produce an empty report")


class MissingContentError(IngestError):
    """A declared path is missing the content its change kind requires."""

    def __init__(self, path: str, side: str, change_kind: str):
        self.path = path
        self.side = side
        super().__init__(
            f"'{path}' is declared {change_kind} but has no {side} content"
        )


class GraphError(CdGraphError):
    """Contract graph construction errors."""


class IdentityMatchConflict(CdGraphError):
    """A before component competes evenly for two or more after components.

    The matcher never guesses; the caller has to supply an explicit override
    (``before_id -> after_id`` or ``before_id -> None``) and re-run.
    """

    def __init__(self, before_id: str, candidates: list[tuple[str, float]]):
        self.before_id = before_id
        self.candidates = candidates
        listed = ", ".join(f"{cid} ({score:.2f})" for cid, score in candidates)
        super().__init__(
            f"Ambiguous identity for '{before_id}': candidates {listed}. "
            f"Supply an override to resolve it."
        )


class GraphCycleOverflow(CdGraphError):
    """Blast radius traversal exceeded its node-visit budget."""

    def __init__(self, budget: int):
        self.budget = budget
        super().__init__(
            f"Traversal exceeded the node-visit budget of {budget}; "
            f"input graph is malformed or unexpectedly large"
        )


class GitError(CdGraphError):
    """Raised when reading change data from git fails."""
