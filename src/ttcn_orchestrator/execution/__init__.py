"""Per-job evaluation backends."""

from ttcn_orchestrator.execution.evaluator import (
    DEFAULT_COMMAND,
    DEFAULT_VERDICT_PATTERN,
    CommandEvaluator,
    JobEvaluator,
)

__all__ = [
    "CommandEvaluator",
    "DEFAULT_COMMAND",
    "DEFAULT_VERDICT_PATTERN",
    "JobEvaluator",
]
