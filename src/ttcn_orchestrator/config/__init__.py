"""
ttcn-orchestrator — configuration package.

Public surface: defaults and validation (``schema``) plus the layered loader
(``loader``).
"""

from ttcn_orchestrator.config.loader import (
    DEFAULT_CONFIG_FILE,
    ENV_PREFIX,
    LEGACY_ENV_ALIASES,
    ConfigLoadError,
    load_config,
    normalize_paths,
)
from ttcn_orchestrator.config.schema import (
    DEFAULT_CONFIG,
    PATH_FIELDS,
    ConfigSchemaVersion,
    ConfigValidationError,
    ConfigValidationIssue,
    ConfigValidationResult,
    OrchestratorConfig,
    assert_valid_config,
    basket_definitions,
    default_config,
    merge_config,
    migration_guidance,
    validate_config,
)

__all__ = [
    "ConfigLoadError",
    "ConfigSchemaVersion",
    "ConfigValidationError",
    "ConfigValidationIssue",
    "ConfigValidationResult",
    "DEFAULT_CONFIG",
    "DEFAULT_CONFIG_FILE",
    "ENV_PREFIX",
    "LEGACY_ENV_ALIASES",
    "OrchestratorConfig",
    "PATH_FIELDS",
    "assert_valid_config",
    "basket_definitions",
    "default_config",
    "load_config",
    "merge_config",
    "migration_guidance",
    "normalize_paths",
    "validate_config",
]
