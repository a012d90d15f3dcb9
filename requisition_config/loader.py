"""
Configuration loader (``requisition_config.loader``).

Responsibility
--------------
Reads a configuration set's YAML document and parses it into the frozen
dataclasses defined in ``requisition_config.schema``.  Pure
deserialization: no validation beyond the shape each parser needs.

Architecture position
---------------------
**Config layer** -- build-time tooling.  Called by
``requisition_config.get_active_config``; nothing outside the config
package reads YAML.

Invariants enforced
-------------------
* Deterministic checksums -- ``compute_checksum`` serialises with sorted
  keys so the same document always hashes the same.
* Safe loading -- ``yaml.safe_load`` only; no arbitrary object
  construction.

Failure modes
-------------
* ``KeyError`` for a missing required key.
* ``ValueError`` for values that cannot be coerced (rank, decimal).
* ``yaml.YAMLError`` for malformed YAML.
"""

from __future__ import annotations

import hashlib
import json
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from requisition_config.schema import (
    ApprovalPolicyDef,
    DatabaseDef,
    ProcurementPolicyDef,
    RequisitionPolicy,
    RoleDef,
)


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file.

    Postconditions:
        - Returns a dict; an empty file yields ``{}``.

    Raises:
        FileNotFoundError: if ``path`` does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def parse_decimal(value: Any, name: str) -> Decimal:
    if isinstance(value, float):
        value = str(value)
    try:
        return Decimal(str(value))
    except InvalidOperation as exc:
        raise ValueError(f"{name}: cannot parse decimal from {value!r}") from exc


def parse_role(name: str, data: dict[str, Any]) -> RoleDef:
    """Parse one entry of the ``roles`` mapping."""
    return RoleDef(
        name=name,
        permissions=tuple(data.get("permissions", ())),
        rank=int(data.get("rank", 0)),
        review_level=data.get("review_level"),
    )


def parse_roles(data: dict[str, Any]) -> tuple[RoleDef, ...]:
    return tuple(
        parse_role(name, body or {}) for name, body in sorted(data.items())
    )


def parse_approvals(data: dict[str, Any]) -> ApprovalPolicyDef:
    return ApprovalPolicyDef(
        first_level_role=data["first_level_role"],
        final_role=data["final_role"],
        final_approver_may_skip_first_level=bool(
            data.get("final_approver_may_skip_first_level", False)
        ),
    )


def parse_procurement(data: dict[str, Any]) -> ProcurementPolicyDef:
    if "critical_minimum" not in data:
        return ProcurementPolicyDef()
    return ProcurementPolicyDef(
        critical_minimum=parse_decimal(data["critical_minimum"], "critical_minimum"),
    )


def parse_database(data: dict[str, Any]) -> DatabaseDef:
    defaults = DatabaseDef()
    return DatabaseDef(
        url=data.get("url", defaults.url),
        echo=bool(data.get("echo", defaults.echo)),
    )


def parse_policy(data: dict[str, Any], *, checksum: str = "") -> RequisitionPolicy:
    """
    Parse a whole root document.

    Preconditions:
        - ``data`` is the mapping returned by ``load_yaml_file``.
    Postconditions:
        - Returns an unvalidated ``RequisitionPolicy``; callers run
          ``validate_policy`` before using it.
    """
    return RequisitionPolicy(
        config_id=data["config_id"],
        version=int(data.get("version", 1)),
        description=data.get("description", ""),
        roles=parse_roles(data.get("roles", {})),
        approvals=parse_approvals(data["approvals"]),
        procurement=parse_procurement(data.get("procurement") or {}),
        database=parse_database(data.get("database") or {}),
        checksum=checksum,
    )


def compute_checksum(data: dict[str, Any]) -> str:
    """
    Compute SHA-256 checksum of canonical JSON serialization.

    Postconditions:
        - Identical ``data`` always produces identical checksums.
    """
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()
