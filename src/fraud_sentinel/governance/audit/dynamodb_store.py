"""DynamoDB Audit Store with TTL-based retention."""

import logging
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional

import boto3
from boto3.dynamodb.conditions import Attr
from botocore.exceptions import BotoCoreError, ClientError

from fraud_sentinel.common.constants import AuditConstants
from fraud_sentinel.common.exceptions import AuditError
from fraud_sentinel.governance.schemas import AuditFilter, AuditLevel, AuditLogEntry
from fraud_sentinel.governance.audit.store import AuditStore

logger = logging.getLogger(__name__)


def _to_dynamo(value: Any) -> Any:
    """Convert floats to Decimal recursively (DynamoDB rejects floats)."""
    if isinstance(value, float):
        return Decimal(str(value))
    if isinstance(value, dict):
        return {k: _to_dynamo(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_to_dynamo(v) for v in value]
    return value


def _from_dynamo(value: Any) -> Any:
    if isinstance(value, Decimal):
        return int(value) if value == value.to_integral_value() else float(value)
    if isinstance(value, dict):
        return {k: _from_dynamo(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_from_dynamo(v) for v in value]
    return value


class DynamoDBAuditStore(AuditStore):
    """DynamoDB store for audit entries.

    Items are keyed ``pk=AUDIT#<yyyy-mm-dd>`` / ``sk=<iso timestamp>#<entry_id>``
    and carry an ``expires_at`` epoch attribute for the table's TTL, so
    retention is enforced by DynamoDB itself.
    """

    DEFAULT_REGION = "us-east-1"
    TTL_ATTRIBUTE = "expires_at"

    def __init__(
        self,
        table_name: str,
        region: Optional[str] = None,
        retention_days: int = AuditConstants.RETENTION_DAYS,
        query_window_days: Optional[int] = None,
        table: Any = None,
    ):
        """Initialize the store.

        Args:
            table_name: DynamoDB table name
            region: AWS region
            retention_days: TTL applied to every item
            query_window_days: How far back queries scan (defaults to retention)
            table: Pre-built Table resource (tests)
        """
        if not table_name:
            raise ValueError("DynamoDB audit table name required")

        self.table_name = table_name
        self.region = region or self.DEFAULT_REGION
        self.retention_days = retention_days
        self.query_window_days = query_window_days or retention_days

        if table is not None:
            self.table = table
        else:
            dynamodb = boto3.resource("dynamodb", region_name=self.region)
            self.table = dynamodb.Table(self.table_name)
        logger.info(f"DynamoDB audit store initialized: {self.table_name} ({self.region})")

    def _expires_at(self, timestamp: datetime) -> int:
        return int((timestamp + timedelta(days=self.retention_days)).timestamp())

    def _build_item(self, entry: AuditLogEntry) -> Dict[str, Any]:
        ts = entry.timestamp.astimezone(timezone.utc)
        data = entry.model_dump(mode="json")
        return _to_dynamo({
            "pk": f"AUDIT#{ts.strftime('%Y-%m-%d')}",
            "sk": f"{ts.isoformat()}#{entry.entry_id}",
            **data,
            self.TTL_ATTRIBUTE: self._expires_at(ts),
        })

    def _parse_item(self, item: Dict[str, Any]) -> AuditLogEntry:
        data = _from_dynamo(dict(item))
        for key in ("pk", "sk", self.TTL_ATTRIBUTE):
            data.pop(key, None)
        return AuditLogEntry.model_validate(data)

    def append_entry(self, entry: AuditLogEntry) -> AuditLogEntry:
        try:
            self.table.put_item(Item=self._build_item(entry))
            return entry
        except (ClientError, BotoCoreError) as e:
            logger.error(f"put_item failed: {e}")
            raise AuditError(
                f"DynamoDB audit write failed: {e}",
                details={"table": self.table_name},
            ) from e

    def query(
        self,
        audit_filter: Optional[AuditFilter] = None,
        limit: int = AuditConstants.DEFAULT_QUERY_LIMIT,
    ) -> List[AuditLogEntry]:
        """Time-bounded scan, sorted newest first.

        Expired items not yet reaped by DynamoDB TTL are excluded.
        """
        audit_filter = audit_filter or AuditFilter()
        now = datetime.now(timezone.utc)
        since = audit_filter.since or (now - timedelta(days=self.query_window_days))

        condition = Attr("timestamp").gte(since.isoformat()) & Attr(self.TTL_ATTRIBUTE).gt(int(now.timestamp()))
        if audit_filter.level is not None:
            condition = condition & Attr("level").eq(AuditLevel(audit_filter.level).value)

        items: List[Dict[str, Any]] = []
        scan_kwargs: Dict[str, Any] = {"FilterExpression": condition}
        try:
            while True:
                response = self.table.scan(**scan_kwargs)
                items.extend(response.get("Items", []))
                last_key = response.get("LastEvaluatedKey")
                if not last_key:
                    break
                scan_kwargs["ExclusiveStartKey"] = last_key
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Audit scan failed: {e}")
            raise AuditError(
                f"DynamoDB audit query failed: {e}",
                details={"table": self.table_name},
            ) from e

        entries = []
        for item in items:
            try:
                entry = self._parse_item(item)
            except ValueError as e:
                logger.warning(f"Skipped malformed audit item: {e}")
                continue
            if audit_filter.matches(entry):
                entries.append(entry)

        entries.sort(key=lambda e: e.timestamp, reverse=True)
        return entries[:limit]

    def purge_expired(self, now: Optional[datetime] = None) -> int:
        """Expiry is delegated to the table's TTL; nothing to do client side."""
        return 0
