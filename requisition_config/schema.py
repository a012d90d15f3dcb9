"""
RequisitionPolicy schema.

Frozen data model for a configuration set.  YAML fragments are parsed
into these types by the loader and checked by the validator; the
resulting ``RequisitionPolicy`` is the only configuration object the
module services see.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal

# ---------------------------------------------------------------------------
# Vocabulary
# ---------------------------------------------------------------------------

# Every action a role may be granted.  Module services check one of these
# before each command.
KNOWN_ACTIONS: frozenset[str] = frozenset({
    # Requisition lifecycle
    "create_request",
    "update_draft",
    "submit",
    "first_level_approve",
    "final_approve",
    "reject",
    "modify",
    "issue",
    "receive",
    # Stock
    "create_stock",
    "receive_goods",
    "adjust_stock",
    "set_threshold",
    "acknowledge_alert",
    # Read side
    "view_reports",
})

KNOWN_ROLES: frozenset[str] = frozenset({
    "SITE_ENGINEER",
    "DIOCESAN_SITE_ENGINEER",
    "PADIRI",
    "STOREKEEPER",
    "ADMIN",
})

REVIEW_LEVELS: frozenset[str] = frozenset({"DSE", "PADIRI"})


# ---------------------------------------------------------------------------
# Roles
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RoleDef:
    """Single role: granted actions, seniority rank and review level."""

    name: str
    permissions: tuple[str, ...]
    rank: int = 0
    review_level: str | None = None  # DSE, PADIRI or None


# ---------------------------------------------------------------------------
# Policies
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ApprovalPolicyDef:
    """Who reviews at which level and whether the first level may be skipped."""

    first_level_role: str
    final_role: str
    final_approver_may_skip_first_level: bool = False


@dataclass(frozen=True)
class ProcurementPolicyDef:
    """Procurement recommendation tuning."""

    critical_minimum: Decimal = Decimal("100")


@dataclass(frozen=True)
class DatabaseDef:
    url: str = "sqlite:///requisitions.db"
    echo: bool = False


# ---------------------------------------------------------------------------
# Top-level configuration set
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RequisitionPolicy:
    """Validated, immutable configuration for one deployment.

    Produced only by ``requisition_config.get_active_config``.  The
    ``checksum`` is the SHA-256 of the canonical source document and
    identifies the exact configuration that governed a command.
    """

    config_id: str
    version: int
    roles: tuple[RoleDef, ...]
    approvals: ApprovalPolicyDef
    procurement: ProcurementPolicyDef = field(default_factory=ProcurementPolicyDef)
    database: DatabaseDef = field(default_factory=DatabaseDef)
    description: str = ""
    checksum: str = ""

    def role(self, name: str) -> RoleDef | None:
        for role in self.roles:
            if role.name == name:
                return role
        return None

    def permissions_for(self, role: str) -> frozenset[str]:
        found = self.role(role)
        return frozenset(found.permissions) if found is not None else frozenset()

    def rank_of(self, role: str) -> int:
        found = self.role(role)
        return found.rank if found is not None else 0

    def review_level_for(self, role: str) -> str | None:
        found = self.role(role)
        return found.review_level if found is not None else None

    @property
    def first_level_rank(self) -> int:
        return self.rank_of(self.approvals.first_level_role)

    @property
    def database_url(self) -> str:
        return self.database.url
