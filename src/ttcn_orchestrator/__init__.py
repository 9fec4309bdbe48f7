"""
ttcn-orchestrator — package root

File: src/ttcn_orchestrator/__init__.py

Purpose
- Parallel execution orchestrator for TTCN-3 test suites: identifier
  generation, bounded job dispatch, result aggregation and run records.

Import boundary rules
- No side effects at import time (no config loading, no logging init).
- Heavy submodules are imported by the CLI on demand.
"""

__version__ = "0.3.0"

__all__ = ["__version__"]
