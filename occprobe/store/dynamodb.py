"""
AWS DynamoDB store implementation.

This module provides a DynamoDB backend for the KeyValueStore protocol.
It uses the AWS SDK (botocore/aiobotocore) for async operations.

Table layout:
    id      (HASH,  S)  partition key, one partition per entity
    version (RANGE, N)  sort key, one item per committed version
    action  (S)         annotation of the mutation

Invariants:
    - Every Put carries "attribute_not_exists(id) AND attribute_not_exists(version)"
    - Latest-version reads are Query(ScanIndexForward=False, Limit=1)
    - TransactionCanceledException is translated to TransactionRejected with
      one reason per item; everything else becomes a StoreError subclass

How to change safely:
    - Test against DynamoDB Local before running against AWS
    - Keep the reason-code table in sync with DynamoDB's CancellationReasons
    - Never log credentials
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Sequence

from aiobotocore.session import AioSession, get_session
from botocore.exceptions import (
    BotoCoreError,
    ClientError,
    EndpointConnectionError,
    NoCredentialsError,
    SSOTokenLoadError,
    TokenRetrievalError,
    UnauthorizedSSOTokenError,
)

from ..record import ID, UNIQUE_KEY_CONDITION, VERSION, VersionedRecord
from .base import (
    ReadConsistency,
    ReasonCode,
    StoreAuthError,
    StoreConnectionError,
    StoreError,
    StoreTimeoutError,
    TransactionReason,
    TransactionRejected,
)

if TYPE_CHECKING:
    from ..config import DynamoDBConfig

logger = logging.getLogger(__name__)

SSO_HINT = "Did you run 'aws sso login'?"

_REASON_CODES = {
    "None": ReasonCode.NONE,
    "ConditionalCheckFailed": ReasonCode.CONDITION_FAILED,
    "TransactionConflict": ReasonCode.CONFLICT,
}

_AUTH_ERROR_CODES = {
    "ExpiredTokenException",
    "UnrecognizedClientException",
    "InvalidSignatureException",
    "AccessDeniedException",
}

_THROTTLE_ERROR_CODES = {
    "ThrottlingException",
    "ProvisionedThroughputExceededException",
    "RequestLimitExceeded",
}


def reason_from_dict(reason: dict[str, Any]) -> TransactionReason:
    """Translate one entry of DynamoDB's CancellationReasons."""
    raw = reason.get("Code") or "None"
    return TransactionReason(
        code=_REASON_CODES.get(raw, ReasonCode.OTHER),
        raw_code=raw,
        message=reason.get("Message", ""),
    )


class DynamoDBStore:
    """DynamoDB implementation of KeyValueStore protocol.

    Uses aiobotocore for async operations with AWS DynamoDB.

    Attributes:
        config: DynamoDB configuration
        client: DynamoDB client (created on connect)

    Example:
        >>> config = DynamoDBConfig(table_name="test_table", region="eu-west-1")
        >>> store = DynamoDBStore(config)
        >>> await store.connect()
        >>> await store.query_latest("parent", ReadConsistency.STRONG)
    """

    def __init__(self, config: DynamoDBConfig) -> None:
        """Initialize DynamoDB store.

        Args:
            config: DynamoDBConfig instance
        """
        self.config = config
        self._session: AioSession | None = None
        self._client_ctx = None
        self._client = None
        self._connected = False

    @property
    def is_connected(self) -> bool:
        """Whether connected to DynamoDB."""
        return self._connected

    @property
    def table_name(self) -> str:
        return self.config.table_name

    async def connect(self, create_table: bool = False) -> None:
        """Connect to DynamoDB.

        Creates the boto session and client and checks that the table exists.

        Args:
            create_table: Create the table (on-demand billing) if missing

        Raises:
            StoreConnectionError: If the endpoint or table is unavailable
            StoreAuthError: If credentials are missing or expired
        """
        if self._connected:
            return

        operation = "connect"
        try:
            if self.config.profile:
                self._session = AioSession(profile=self.config.profile)
            else:
                self._session = get_session()

            client_config: dict[str, Any] = {
                "region_name": self.config.region,
            }

            if self.config.endpoint_url:
                client_config["endpoint_url"] = self.config.endpoint_url
            if self.config.access_key_id:
                client_config["aws_access_key_id"] = self.config.access_key_id
                client_config["aws_secret_access_key"] = self.config.secret_access_key
                if self.config.session_token:
                    client_config["aws_session_token"] = self.config.session_token

            self._client_ctx = self._session.create_client("dynamodb", **client_config)
            self._client = await self._client_ctx.__aenter__()

            if create_table:
                operation = "CreateTable"
                await self.create_table()
            else:
                operation = "DescribeTable"
                await self._client.describe_table(TableName=self.table_name)

            self._connected = True
            logger.info(
                "Connected to DynamoDB",
                extra={
                    "table": self.table_name,
                    "region": self.config.region,
                    "endpoint": self.config.endpoint_url or "AWS",
                },
            )

        except ClientError as e:
            await self._discard_client()
            if _error_code(e) == "ResourceNotFoundException":
                raise StoreConnectionError(
                    f"DynamoDB table '{self.table_name}' not found"
                ) from e
            raise self._translate(e, operation) from e
        except BotoCoreError as e:
            await self._discard_client()
            raise self._translate(e, operation) from e
        except Exception:
            await self._discard_client()
            raise

    async def close(self) -> None:
        """Close DynamoDB connection."""
        await self._discard_client()
        self._session = None
        self._connected = False
        logger.info("DynamoDB connection closed")

    async def create_table(self) -> None:
        """Create the versioned table if it does not exist and wait for it."""
        if not self._client:
            raise StoreConnectionError("Not connected to DynamoDB")

        try:
            await self._client.create_table(
                TableName=self.table_name,
                KeySchema=[
                    {"AttributeName": ID, "KeyType": "HASH"},
                    {"AttributeName": VERSION, "KeyType": "RANGE"},
                ],
                AttributeDefinitions=[
                    {"AttributeName": ID, "AttributeType": "S"},
                    {"AttributeName": VERSION, "AttributeType": "N"},
                ],
                BillingMode="PAY_PER_REQUEST",
            )
            logger.info(f"Creating DynamoDB table {self.table_name}")
        except ClientError as e:
            if _error_code(e) != "ResourceInUseException":
                raise
            logger.info(f"DynamoDB table {self.table_name} already exists")

        waiter = self._client.get_waiter("table_exists")
        await waiter.wait(TableName=self.table_name)

    async def get_item(self, entity_id: str, version: int) -> VersionedRecord | None:
        """Point read of one (id, version) with a strongly consistent GetItem."""
        client = self._require_client()

        try:
            response = await client.get_item(
                TableName=self.table_name,
                Key={ID: {"S": entity_id}, VERSION: {"N": str(version)}},
                ConsistentRead=True,
            )
        except (ClientError, BotoCoreError) as e:
            raise self._translate(e, "GetItem") from e

        item = response.get("Item")
        return VersionedRecord.from_item(item) if item else None

    async def query_latest(
        self,
        entity_id: str,
        consistency: ReadConsistency,
    ) -> VersionedRecord | None:
        """Query the greatest version of an id (descending, limit 1)."""
        client = self._require_client()

        try:
            response = await client.query(
                TableName=self.table_name,
                KeyConditionExpression="#id = :id",
                ExpressionAttributeNames={"#id": ID},
                ExpressionAttributeValues={":id": {"S": entity_id}},
                ScanIndexForward=False,
                Limit=1,
                ConsistentRead=consistency.consistent_read,
            )
        except (ClientError, BotoCoreError) as e:
            raise self._translate(e, "Query") from e

        items = response.get("Items", [])
        if not items:
            return None
        return VersionedRecord.from_item(items[0])

    async def transact_write(self, records: Sequence[VersionedRecord]) -> None:
        """Put all records in one TransactWriteItems call.

        Raises:
            TransactionRejected: On TransactionCanceledException
            StoreError: For any other failure
        """
        client = self._require_client()

        transact_items = [
            {
                "Put": {
                    "TableName": self.table_name,
                    "Item": record.to_item(),
                    "ConditionExpression": UNIQUE_KEY_CONDITION,
                }
            }
            for record in records
        ]

        try:
            await client.transact_write_items(TransactItems=transact_items)
        except ClientError as e:
            if _error_code(e) == "TransactionCanceledException":
                reasons = [reason_from_dict(r) for r in e.response.get("CancellationReasons", [])]
                raise TransactionRejected(reasons) from e
            raise self._translate(e, "TransactWriteItems") from e
        except BotoCoreError as e:
            raise self._translate(e, "TransactWriteItems") from e

        logger.debug(
            "Transaction committed to DynamoDB",
            extra={"table": self.table_name, "items": [str(r) for r in records]},
        )

    def _require_client(self):
        if not self._client:
            raise StoreConnectionError("Not connected to DynamoDB")
        return self._client

    async def _discard_client(self) -> None:
        if self._client_ctx is not None and self._client is not None:
            try:
                await self._client_ctx.__aexit__(None, None, None)
            except Exception as e:
                logger.warning(f"Error closing DynamoDB client: {e}")
        self._client_ctx = None
        self._client = None

    def _translate(self, error: Exception, operation: str) -> StoreError:
        """Map a botocore failure to the store error taxonomy."""
        if isinstance(error, (TokenRetrievalError, UnauthorizedSSOTokenError, SSOTokenLoadError)):
            return StoreAuthError(f"{operation}: SSO token unavailable ({error}). {SSO_HINT}")
        if isinstance(error, NoCredentialsError):
            return StoreAuthError(f"{operation}: no AWS credentials found")
        if isinstance(error, EndpointConnectionError):
            return StoreConnectionError(f"{operation}: cannot reach DynamoDB endpoint: {error}")
        if isinstance(error, ClientError):
            code = _error_code(error)
            if code == "ExpiredTokenException":
                return StoreAuthError(f"{operation}: {error}. {SSO_HINT}")
            if code in _AUTH_ERROR_CODES:
                return StoreAuthError(f"{operation}: {error}")
            if code in _THROTTLE_ERROR_CODES:
                return StoreTimeoutError(f"{operation} throttled: {error}")
            return StoreError(f"DynamoDB {operation} failed: {error}")
        return StoreConnectionError(f"DynamoDB {operation} failed: {error}")


def _error_code(error: ClientError) -> str:
    return error.response.get("Error", {}).get("Code", "")
