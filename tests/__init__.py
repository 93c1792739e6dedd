"""
occprobe Test Suite.

This package contains:
- unit/: Unit tests (no external dependencies)
- integration/: Harness and full probe runs over the in-memory store
- e2e/: End-to-end tests against DynamoDB Local
"""
