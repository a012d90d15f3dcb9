"""
Tests for requisition configuration loading and validation.

Covers:
- The shipped default set: roles, ranks, review levels, approvals
- Validation failures surfaced as ValueError before a policy is returned
- Warnings logged but not fatal
- DATABASE_URL override and checksum determinism
- The REQUISITION_CONFIG_TRACE audit log entry
"""

import copy
from decimal import Decimal

import pytest
import yaml

from requisition_config import get_active_config
from requisition_config.loader import compute_checksum, parse_policy
from requisition_config.validator import validate_policy

BASE_DOC = {
    "config_id": "test-set",
    "version": 3,
    "roles": {
        "SITE_ENGINEER": {"rank": 10, "permissions": ["create_request", "submit"]},
        "DIOCESAN_SITE_ENGINEER": {
            "rank": 20, "review_level": "DSE",
            "permissions": ["first_level_approve", "reject", "modify"],
        },
        "PADIRI": {
            "rank": 30, "review_level": "PADIRI",
            "permissions": ["final_approve", "reject", "modify"],
        },
    },
    "approvals": {"first_level_role": "DIOCESAN_SITE_ENGINEER", "final_role": "PADIRI"},
    "procurement": {"critical_minimum": 40},
    "database": {"url": "sqlite:///site.db"},
}


@pytest.fixture
def write_set(tmp_path):
    """Write ``doc`` as ``<tmp>/sets/<name>/root.yaml`` and return the sets dir."""
    sets_dir = tmp_path / "sets"

    def _write(doc, name="custom"):
        target = sets_dir / name
        target.mkdir(parents=True, exist_ok=True)
        (target / "root.yaml").write_text(yaml.safe_dump(doc))
        return sets_dir

    return _write


@pytest.fixture(autouse=True)
def _no_database_url(monkeypatch):
    monkeypatch.delenv("DATABASE_URL", raising=False)


class TestDefaultSet:

    def test_loads_and_validates(self):
        policy = get_active_config()
        assert policy.config_id == "requisition-default"
        assert len(policy.checksum) == 64
        assert validate_policy(policy).is_valid

    def test_role_ranks_and_levels(self):
        policy = get_active_config()
        assert policy.first_level_rank == policy.rank_of("DIOCESAN_SITE_ENGINEER")
        assert policy.rank_of("SITE_ENGINEER") < policy.first_level_rank
        assert policy.rank_of("PADIRI") > policy.first_level_rank
        assert policy.review_level_for("PADIRI") == "PADIRI"
        assert policy.review_level_for("STOREKEEPER") is None

    def test_permissions(self):
        policy = get_active_config()
        assert "issue" in policy.permissions_for("STOREKEEPER")
        assert "issue" not in policy.permissions_for("SITE_ENGINEER")
        assert "final_approve" in policy.permissions_for("PADIRI")
        assert policy.permissions_for("NOBODY") == frozenset()

    def test_unknown_set(self):
        with pytest.raises(FileNotFoundError, match="default"):
            get_active_config("no-such-set")


class TestCustomSets:

    def test_custom_set_parsed(self, write_set):
        policy = get_active_config("custom", config_dir=write_set(BASE_DOC))
        assert policy.version == 3
        assert policy.procurement.critical_minimum == Decimal("40")
        assert policy.database_url == "sqlite:///site.db"
        assert policy.approvals.final_approver_may_skip_first_level is False

    def test_unknown_action_rejected(self, write_set):
        doc = copy.deepcopy(BASE_DOC)
        doc["roles"]["SITE_ENGINEER"]["permissions"].append("teleport")
        with pytest.raises(ValueError, match="teleport"):
            get_active_config("custom", config_dir=write_set(doc))

    def test_unknown_role_rejected(self, write_set):
        doc = copy.deepcopy(BASE_DOC)
        doc["roles"]["BISHOP"] = {"rank": 99, "permissions": ["view_reports"]}
        with pytest.raises(ValueError, match="BISHOP"):
            get_active_config("custom", config_dir=write_set(doc))

    def test_approver_without_permission_rejected(self, write_set):
        doc = copy.deepcopy(BASE_DOC)
        doc["roles"]["PADIRI"]["permissions"] = ["reject"]
        with pytest.raises(ValueError, match="final_approve"):
            get_active_config("custom", config_dir=write_set(doc))

    def test_bad_review_level_rejected(self, write_set):
        doc = copy.deepcopy(BASE_DOC)
        doc["roles"]["PADIRI"]["review_level"] = "BISHOP"
        with pytest.raises(ValueError, match="review level"):
            get_active_config("custom", config_dir=write_set(doc))

    def test_negative_critical_minimum_rejected(self, write_set):
        doc = copy.deepcopy(BASE_DOC)
        doc["procurement"]["critical_minimum"] = -1
        with pytest.raises(ValueError, match="critical_minimum"):
            get_active_config("custom", config_dir=write_set(doc))

    def test_role_without_permissions_is_a_warning(self, write_set, captured_logs):
        doc = copy.deepcopy(BASE_DOC)
        doc["roles"]["STOREKEEPER"] = {"rank": 10, "permissions": []}
        policy = get_active_config("custom", config_dir=write_set(doc))
        assert policy.role("STOREKEEPER") is not None
        warnings = [r for r in captured_logs() if r["message"] == "config_validation_warning"]
        assert "STOREKEEPER" in warnings[0]["warning"]


class TestOverridesAndChecksum:

    def test_database_url_from_environment(self, write_set, monkeypatch):
        sets_dir = write_set(BASE_DOC)
        plain = get_active_config("custom", config_dir=sets_dir)
        monkeypatch.setenv("DATABASE_URL", "postgresql://u:p@db/site")
        overridden = get_active_config("custom", config_dir=sets_dir)

        assert overridden.database_url == "postgresql://u:p@db/site"
        assert overridden.checksum == plain.checksum

    def test_checksum_is_deterministic(self):
        reordered = dict(reversed(list(BASE_DOC.items())))
        assert compute_checksum(BASE_DOC) == compute_checksum(reordered)

    def test_checksum_changes_with_content(self):
        doc = copy.deepcopy(BASE_DOC)
        doc["version"] = 4
        assert compute_checksum(doc) != compute_checksum(BASE_DOC)

    def test_parse_policy_sorts_roles(self):
        policy = parse_policy(BASE_DOC)
        names = [r.name for r in policy.roles]
        assert names == sorted(names)


class TestConfigTrace:

    def test_trace_logged(self, write_set, captured_logs):
        get_active_config("custom", config_dir=write_set(BASE_DOC))
        (trace,) = [r for r in captured_logs() if r["message"] == "REQUISITION_CONFIG_TRACE"]
        assert trace["trace_type"] == "REQUISITION_CONFIG_TRACE"
        assert trace["config_set_id"] == "test-set"
        assert trace["config_set_version"] == 3
        assert trace["role_count"] == 3
        assert trace["database_url_from_env"] is False
