"""
Configuration validator (``requisition_config.validator``).

Responsibility
--------------
Checks a parsed ``RequisitionPolicy`` for structural consistency before
it is handed to the module services.

Invariants enforced
-------------------
* Only known roles and known actions appear.
* Review levels are DSE or PADIRI.
* The first-level and final approver roles exist and hold the matching
  approval permission.
* The procurement critical minimum is not negative.

Failure modes
-------------
* Errors (``ConfigValidationResult.errors``) -> the policy MUST NOT be
  used.
* Warnings -> usable, but worth a look (for example a role with no
  permissions).
"""

from __future__ import annotations

from dataclasses import dataclass, field

from requisition_config.schema import (
    KNOWN_ACTIONS,
    KNOWN_ROLES,
    REVIEW_LEVELS,
    RequisitionPolicy,
)


@dataclass
class ConfigValidationResult:
    """
    Result of configuration validation.

    Contract
    --------
    * ``is_valid`` returns ``True`` only when ``errors`` is empty.
    """

    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return len(self.errors) == 0

    def add_error(self, msg: str) -> None:
        self.errors.append(msg)

    def add_warning(self, msg: str) -> None:
        self.warnings.append(msg)


def validate_policy(policy: RequisitionPolicy) -> ConfigValidationResult:
    """Run every check and collect the findings."""
    result = ConfigValidationResult()
    _validate_roles(policy, result)
    _validate_approvals(policy, result)
    _validate_procurement(policy, result)
    return result


def _validate_roles(policy: RequisitionPolicy, result: ConfigValidationResult) -> None:
    if not policy.roles:
        result.add_error("No roles defined")
    for role in policy.roles:
        if role.name not in KNOWN_ROLES:
            result.add_error(f"Unknown role {role.name!r}")
        for action in role.permissions:
            if action not in KNOWN_ACTIONS:
                result.add_error(f"Role {role.name!r} grants unknown action {action!r}")
        if role.review_level is not None and role.review_level not in REVIEW_LEVELS:
            result.add_error(
                f"Role {role.name!r} has invalid review level {role.review_level!r}"
            )
        if role.rank < 0:
            result.add_error(f"Role {role.name!r} has negative rank {role.rank}")
        if not role.permissions:
            result.add_warning(f"Role {role.name!r} grants no permissions")


def _validate_approvals(policy: RequisitionPolicy, result: ConfigValidationResult) -> None:
    checks = (
        (policy.approvals.first_level_role, "first_level_approve"),
        (policy.approvals.final_role, "final_approve"),
    )
    for role_name, action in checks:
        role = policy.role(role_name)
        if role is None:
            result.add_error(f"Approval role {role_name!r} is not defined")
        elif action not in role.permissions:
            result.add_error(f"Approval role {role_name!r} lacks {action!r}")


def _validate_procurement(policy: RequisitionPolicy, result: ConfigValidationResult) -> None:
    if policy.procurement.critical_minimum < 0:
        result.add_error(
            f"procurement.critical_minimum must be >= 0, "
            f"got {policy.procurement.critical_minimum}"
        )
