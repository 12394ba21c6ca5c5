"""
Unit tests for sf_field_audit.config.
"""
import dataclasses

import pytest

from sf_field_audit.config import DEFAULT_CONFIG, ERROR_POLICIES, FAIL_FAST, AuditConfig


def test_defaults():
    assert DEFAULT_CONFIG.deletion_suffix == "_del"
    assert DEFAULT_CONFIG.custom_object_prefix == "01I"
    assert DEFAULT_CONFIG.error_policy == FAIL_FAST
    assert DEFAULT_CONFIG.default_export_path == "deleted_fields.json"
    assert DEFAULT_CONFIG.query_timeout_sec is None


def test_config_is_frozen():
    with pytest.raises(dataclasses.FrozenInstanceError):
        DEFAULT_CONFIG.max_workers = 1


@pytest.mark.parametrize("policy", ERROR_POLICIES)
def test_known_policies_accepted(policy):
    assert AuditConfig(error_policy=policy).error_policy == policy


def test_unknown_policy_rejected():
    with pytest.raises(ValueError, match="error_policy"):
        AuditConfig(error_policy="retry")


def test_worker_cap_must_be_positive():
    with pytest.raises(ValueError, match="max_workers"):
        dataclasses.replace(DEFAULT_CONFIG, max_workers=0)
