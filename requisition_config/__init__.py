"""
requisition_config -- single public entrypoint for requisition configuration.

Responsibility:
    Provides the ONLY way to obtain configuration at runtime through
    ``get_active_config()``.  No other component reads configuration
    files or environment variables directly.  Returns a frozen
    ``RequisitionPolicy``: role permissions, role ranks, review levels,
    approval routing, procurement tuning and the database URL.

Architecture position:
    Configuration -- YAML-driven policy, load-time validation.  Sits above
    ``requisition_kernel`` and below ``requisition_modules``.  The kernel
    MUST NEVER import from ``requisition_config``.

Invariants enforced:
    - Single entrypoint: all runtime config flows through ``get_active_config()``.
    - Load-time validation: unknown roles, unknown actions, missing
      approver roles and negative thresholds are rejected before a
      policy is returned.
    - Deterministic checksum: the same YAML always yields the same
      ``RequisitionPolicy.checksum``.

Failure modes:
    - ``FileNotFoundError`` -- the named configuration set does not exist.
    - ``ValueError`` -- validation failures.

Audit relevance:
    Every successful ``get_active_config()`` call emits a
    ``REQUISITION_CONFIG_TRACE`` log entry with the config id, version and
    checksum.
"""

from __future__ import annotations

import logging
import os
from dataclasses import replace
from pathlib import Path

from requisition_config.loader import compute_checksum, load_yaml_file, parse_policy
from requisition_config.schema import RequisitionPolicy
from requisition_config.validator import validate_policy

_logger = logging.getLogger("requisition_kernel.config")

# Default configuration sets directory
_DEFAULT_CONFIG_DIR = Path(__file__).parent / "sets"

DATABASE_URL_ENV = "DATABASE_URL"


def get_active_config(
    set_name: str = "default",
    config_dir: Path | None = None,
) -> RequisitionPolicy:
    """The ONLY public configuration entrypoint.

    Guarantees:
        - The returned policy has passed ``validate_policy``.
        - When ``DATABASE_URL`` is set it replaces the configured
          database URL.  The checksum covers the YAML source only.
        - A ``REQUISITION_CONFIG_TRACE`` log entry is emitted on every
          successful call.

    Non-goals:
        - Does NOT cache.  Callers hold the returned policy.

    Args:
        set_name: Subdirectory of the sets directory holding ``root.yaml``.
        config_dir: Override path to the sets directory.  Defaults to
            requisition_config/sets/.

    Raises:
        FileNotFoundError: If the set (or its root.yaml) does not exist.
        ValueError: If configuration validation fails.
    """
    sets_dir = config_dir or _DEFAULT_CONFIG_DIR
    root_file = _find_config_set(sets_dir, set_name)

    data = load_yaml_file(root_file)
    policy = parse_policy(data, checksum=compute_checksum(data))

    validation = validate_policy(policy)
    if not validation.is_valid:
        raise ValueError(
            "Configuration validation failed:\n"
            + "\n".join(f"  - {e}" for e in validation.errors)
        )
    for warning in validation.warnings:
        _logger.warning("config_validation_warning", extra={"warning": warning})

    env_url = os.environ.get(DATABASE_URL_ENV)
    if env_url:
        policy = replace(policy, database=replace(policy.database, url=env_url))

    _logger.info(
        "REQUISITION_CONFIG_TRACE",
        extra={
            "trace_type": "REQUISITION_CONFIG_TRACE",
            "config_set_id": policy.config_id,
            "config_set_version": policy.version,
            "checksum": policy.checksum,
            "role_count": len(policy.roles),
            "database_url_from_env": bool(env_url),
        },
    )
    return policy


def _find_config_set(sets_dir: Path, set_name: str) -> Path:
    """Return ``<sets_dir>/<set_name>/root.yaml``.

    Raises:
        FileNotFoundError: If ``sets_dir`` or the set does not exist.
    """
    if not sets_dir.is_dir():
        raise FileNotFoundError(f"Configuration sets directory not found: {sets_dir}")
    root_file = sets_dir / set_name / "root.yaml"
    if not root_file.is_file():
        available = sorted(
            p.name for p in sets_dir.iterdir() if (p / "root.yaml").is_file()
        )
        raise FileNotFoundError(
            f"No configuration set {set_name!r} in {sets_dir}. "
            f"Available: {available}"
        )
    return root_file


__all__ = [
    "RequisitionPolicy",
    "get_active_config",
]
