"""
Unit tests for configuration loading.

Tests cover:
- Defaults and environment variables
- Validation errors
- CLI overrides
"""

import pytest

from occprobe.config import AppConfig, ProbeConfig, StoreBackend
from occprobe.main import apply_args, build_parser
from occprobe.store.base import ReadConsistency

ENV_VARS = [
    "OCCPROBE_BACKEND",
    "OCCPROBE_TABLE",
    "OCCPROBE_CHILDREN",
    "OCCPROBE_KEY_PREFIX",
    "OCCPROBE_CONSISTENT_READ",
    "OCCPROBE_TIMEOUT_SECONDS",
    "OCCPROBE_MAX_ATTEMPTS",
    "AWS_REGION",
    "AWS_DEFAULT_REGION",
    "AWS_PROFILE",
    "AWS_ACCESS_KEY_ID",
    "AWS_SECRET_ACCESS_KEY",
    "AWS_SESSION_TOKEN",
    "DYNAMODB_ENDPOINT_URL",
    "LOG_LEVEL",
    "LOG_FORMAT",
]


@pytest.fixture
def clean_env(monkeypatch):
    """Remove every variable the configuration reads."""
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


class TestAppConfig:
    """Tests for AppConfig.from_env and validate."""

    def test_defaults(self, clean_env):
        config = AppConfig.from_env()

        assert config.backend is StoreBackend.DYNAMODB
        assert config.dynamodb.table_name == "test_table"
        assert config.dynamodb.region == "eu-west-1"
        assert config.probe.children == 30
        assert config.probe.read_consistency is ReadConsistency.STRONG
        assert config.probe.max_attempts is None
        assert config.observability.log_format == "text"

    def test_from_env(self, clean_env):
        clean_env.setenv("OCCPROBE_BACKEND", "memory")
        clean_env.setenv("OCCPROBE_CHILDREN", "5")
        clean_env.setenv("OCCPROBE_KEY_PREFIX", "run1-")
        clean_env.setenv("OCCPROBE_CONSISTENT_READ", "false")
        clean_env.setenv("OCCPROBE_MAX_ATTEMPTS", "10")
        clean_env.setenv("AWS_DEFAULT_REGION", "us-east-1")

        config = AppConfig.from_env()

        assert config.backend is StoreBackend.MEMORY
        assert config.dynamodb.region == "us-east-1"
        assert config.probe.read_consistency is ReadConsistency.EVENTUAL
        assert config.probe.max_attempts == 10
        assert config.probe.parent_id == "run1-parent"
        assert config.probe.child_ids == [f"run1-child-{n}" for n in range(5)]

    def test_invalid_backend(self, clean_env):
        clean_env.setenv("OCCPROBE_BACKEND", "cassandra")

        with pytest.raises(ValueError, match="OCCPROBE_BACKEND"):
            AppConfig.from_env()

    def test_invalid_children(self, clean_env):
        clean_env.setenv("OCCPROBE_CHILDREN", "0")

        with pytest.raises(ValueError, match="OCCPROBE_CHILDREN"):
            AppConfig.from_env()

    def test_partial_credentials(self, clean_env):
        """Access key without secret is rejected."""
        clean_env.setenv("AWS_ACCESS_KEY_ID", "AKIAEXAMPLE")

        with pytest.raises(ValueError, match="AWS_SECRET_ACCESS_KEY"):
            AppConfig.from_env()

    def test_child_ids_are_distinct_from_parent(self):
        probe = ProbeConfig(children=3)

        assert probe.parent_id not in probe.child_ids
        assert len(set(probe.child_ids)) == 3


class TestApplyArgs:
    """Tests for CLI overrides."""

    def test_flags_override_env(self, clean_env):
        args = build_parser().parse_args(
            [
                "--backend", "memory",
                "--children", "4",
                "--eventual",
                "--max-attempts", "7",
                "--table", "other_table",
                "--json-logs",
                "-v",
            ]
        )

        config = apply_args(AppConfig.from_env(), args)

        assert config.backend is StoreBackend.MEMORY
        assert config.dynamodb.table_name == "other_table"
        assert config.probe.children == 4
        assert config.probe.read_consistency is ReadConsistency.EVENTUAL
        assert config.probe.max_attempts == 7
        assert config.observability.log_level == "DEBUG"
        assert config.observability.log_format == "json"

    def test_no_flags_keep_env(self, clean_env):
        clean_env.setenv("OCCPROBE_CHILDREN", "12")

        config = apply_args(AppConfig.from_env(), build_parser().parse_args([]))

        assert config.probe.children == 12
        assert config.backend is StoreBackend.DYNAMODB

    def test_invalid_override(self, clean_env):
        args = build_parser().parse_args(["--timeout", "0"])

        with pytest.raises(ValueError, match="OCCPROBE_TIMEOUT_SECONDS"):
            apply_args(AppConfig.from_env(), args)
