"""Cannoli: run DAGs of LLM calls, note operations and text transforms."""

from cannoli.errors import CannoliError, RunFatalError
from cannoli.graph.status import ObjectStatus
from cannoli.runtime.run import Run
from cannoli.schemas.usage import Stoppage, StoppageReason

__all__ = [
    "CannoliError",
    "ObjectStatus",
    "Run",
    "RunFatalError",
    "Stoppage",
    "StoppageReason",
]
