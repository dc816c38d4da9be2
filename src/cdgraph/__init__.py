"""cdgraph - contract diff and blast radius graphs for code review."""

__version__ = "0.1.0"

from cdgraph.config import EngineConfig
from cdgraph.engine import ContractDiffEngine, EngineResult

__all__ = ["ContractDiffEngine", "EngineConfig", "EngineResult", "__version__"]
