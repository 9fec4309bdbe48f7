"""Run record persistence."""

from ttcn_orchestrator.persistence.results_db import ResultsStore, SessionParams, results_path

__all__ = ["ResultsStore", "SessionParams", "results_path"]
