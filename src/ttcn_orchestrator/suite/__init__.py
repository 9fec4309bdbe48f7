"""Suite resolution from ``package.yml`` manifests and ad-hoc source lists."""

from ttcn_orchestrator.suite.manifest import discover_manifest, load_manifest, resolve_suite

__all__ = ["discover_manifest", "load_manifest", "resolve_suite"]
