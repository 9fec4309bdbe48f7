"""Control plane: identifier generation, bounded job execution and aggregation."""

from ttcn_orchestrator.control_plane.aggregator import (
    Aggregate,
    Aggregator,
    AggregatorState,
    ResultSink,
)
from ttcn_orchestrator.control_plane.backends import (
    Backend,
    DelegateBackend,
    InProcessBackend,
    RunOutcome,
    delegate_enabled,
    select_backend,
)
from ttcn_orchestrator.control_plane.generator import IdentifierStream, generate_identifiers
from ttcn_orchestrator.control_plane.runner import JobFactory, ResultStream, Runner
from ttcn_orchestrator.control_plane.signals import InterruptController, InterruptState

__all__ = [
    "Aggregate",
    "Aggregator",
    "AggregatorState",
    "Backend",
    "DelegateBackend",
    "IdentifierStream",
    "InProcessBackend",
    "InterruptController",
    "InterruptState",
    "JobFactory",
    "ResultSink",
    "ResultStream",
    "RunOutcome",
    "Runner",
    "delegate_enabled",
    "generate_identifiers",
    "select_backend",
]
