"""
fieldwork_config -- single public entrypoint for engine configuration.

Responsibility:
    Provides the ONLY way to obtain configuration at runtime through
    ``get_active_config()``.  No other component reads configuration files
    directly.  YAML loading is internal tooling and never exposed to callers.

Architecture position:
    Configuration -- sits above ``fieldwork_kernel``.  The kernel MUST NEVER
    import from ``fieldwork_config``; ``fieldwork_config.bridges`` translates
    an ``EngineConfiguration`` into kernel ``DocumentSettings``.

Failure modes:
    - ``FileNotFoundError`` -- no configuration set covers the organization
      and none is marked default.
    - ``ValueError`` -- the selected set failed validation, or two sets
      claim to be the default.

Audit relevance:
    Every successful ``get_active_config()`` call emits a
    ``FIELDWORK_CONFIG_TRACE`` log entry with config_id, version, checksum
    and whether the organization matched explicitly or fell back to the
    default set.
"""

from __future__ import annotations

import logging
from pathlib import Path
from uuid import UUID

from fieldwork_config.loader import load_configuration, validate_configuration
from fieldwork_config.schema import ConfigScope, EngineConfiguration

_logger = logging.getLogger("fieldwork_kernel.config")

# Default configuration sets directory
_DEFAULT_CONFIG_DIR = Path(__file__).parent / "sets"


def get_active_config(
    organization_id: UUID | None = None,
    config_dir: Path | None = None,
) -> EngineConfiguration:
    """The ONLY public configuration entrypoint.

    Selects the set whose ``scope.organizations`` lists ``organization_id``,
    falling back to the set marked ``scope.default: true``.

    Args:
        organization_id: Organization to resolve settings for; None
            selects the default set.
        config_dir: Override path to configuration sets directory.
            Defaults to fieldwork_config/sets/.

    Raises:
        FileNotFoundError: If no matching configuration set is found.
        ValueError: If configuration validation fails.
    """
    sets_dir = config_dir or _DEFAULT_CONFIG_DIR
    config, matched = _find_matching_config(sets_dir, organization_id)

    errors = validate_configuration(config)
    if errors:
        raise ValueError(
            "Configuration validation failed:\n"
            + "\n".join(f"  - {e}" for e in errors)
        )

    _logger.info(
        "FIELDWORK_CONFIG_TRACE",
        extra={
            "trace_type": "FIELDWORK_CONFIG_TRACE",
            "config_set_id": config.config_id,
            "config_set_version": config.version,
            "checksum": config.checksum,
            "organization_id": str(organization_id) if organization_id else None,
            "scope_match": "organization" if matched else "default",
        },
    )
    return config


def _find_matching_config(
    sets_dir: Path, organization_id: UUID | None
) -> tuple[EngineConfiguration, bool]:
    """Return (config, matched_explicitly) for ``organization_id``."""
    if not sets_dir.is_dir():
        raise FileNotFoundError(f"Configuration sets directory not found: {sets_dir}")

    explicit: list[EngineConfiguration] = []
    defaults: list[EngineConfiguration] = []
    for subdir in sorted(sets_dir.iterdir()):
        if not (subdir.is_dir() and (subdir / "root.yaml").exists()):
            continue
        config = load_configuration(subdir)
        if config.scope.covers(organization_id):
            explicit.append(config)
        elif config.scope.default:
            defaults.append(config)

    if explicit:
        return max(explicit, key=lambda c: c.version), True
    if len(defaults) > 1:
        raise ValueError(
            "More than one default configuration set: "
            + ", ".join(sorted(c.config_id for c in defaults))
        )
    if defaults:
        return defaults[0], False
    raise FileNotFoundError(
        f"No configuration set found for organization_id={organization_id} in {sets_dir}"
    )


__all__ = ["get_active_config", "EngineConfiguration", "ConfigScope"]
