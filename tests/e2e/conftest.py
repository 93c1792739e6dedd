"""
E2E test fixtures for occprobe.

These tests require a running DynamoDB (DynamoDB Local or a real AWS
account). They create the table if needed and isolate every run with a
unique key prefix.
"""

import os
import uuid

import pytest

from occprobe.config import DynamoDBConfig

# Skip E2E tests if not in E2E mode
E2E_ENABLED = os.environ.get("OCCPROBE_E2E_TESTS", "0") == "1"

pytestmark = pytest.mark.skipif(
    not E2E_ENABLED,
    reason="E2E tests disabled. Set OCCPROBE_E2E_TESTS=1 to enable."
)


@pytest.fixture
def dynamodb_config() -> DynamoDBConfig:
    """DynamoDB configuration for E2E runs (defaults to DynamoDB Local)."""
    if not E2E_ENABLED:
        pytest.skip("E2E tests disabled")

    return DynamoDBConfig(
        table_name=os.environ.get("OCCPROBE_TABLE", "occprobe_e2e"),
        region=os.environ.get("AWS_REGION", "eu-west-1"),
        endpoint_url=os.environ.get("DYNAMODB_ENDPOINT_URL", "http://localhost:8000"),
        profile=os.environ.get("AWS_PROFILE"),
        access_key_id=os.environ.get("AWS_ACCESS_KEY_ID", "local"),
        secret_access_key=os.environ.get("AWS_SECRET_ACCESS_KEY", "local"),
    )


@pytest.fixture
def key_prefix() -> str:
    """Unique id prefix so runs never collide on a shared table."""
    return f"e2e-{uuid.uuid4().hex[:8]}-"
