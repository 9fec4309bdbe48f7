"""TTCN-3 source scanning and the content-addressed parse cache."""

from ttcn_orchestrator.source.cache import ParsedSourceCache, default_parse_parallelism
from ttcn_orchestrator.source.parser import (
    Definition,
    SourceTree,
    find_tags,
    parse_source,
)

__all__ = [
    "Definition",
    "ParsedSourceCache",
    "SourceTree",
    "default_parse_parallelism",
    "find_tags",
    "parse_source",
]
