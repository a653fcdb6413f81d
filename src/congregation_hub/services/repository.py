"""
Thin table gateway over the Supabase query builder.

Every service talks to the store through a ``TableRepository`` so that
timestamps, id generation, null stripping and error translation happen in
one place.
"""

from typing import Any, Dict, Iterable, List, Optional

from postgrest.exceptions import APIError

from ..core.db import get_supabase_client
from ..core.logger import get_logger
from ..core.utils import clean_record, new_id, utc_now_iso
from ..errors import ConfigurationError, ExternalServiceError, NotFoundError

logger = get_logger(__name__)


class TableRepository:
    """CRUD helpers for a single table."""

    def __init__(self, table_name: str, client=None):
        self.table_name = table_name
        self._client = client

    @property
    def client(self):
        if self._client is None:
            self._client = get_supabase_client()
            if self._client is None:
                raise ConfigurationError("Supabase client is not configured (SUPABASE_URL / SUPABASE_KEY)")
        return self._client

    def _table(self):
        return self.client.table(self.table_name)

    def _execute(self, query, action: str) -> List[Dict[str, Any]]:
        try:
            response = query.execute()
        except APIError as e:
            logger.error(f"❌ {action} on '{self.table_name}' failed: {e}")
            raise ExternalServiceError(f"Database {action} failed for {self.table_name}") from e
        return response.data or []

    @staticmethod
    def _apply_filters(query, filters: Optional[Dict[str, Any]]):
        for column, value in (filters or {}).items():
            if value is None:
                query = query.is_(column, "null")
            else:
                query = query.eq(column, value)
        return query

    def list(
        self,
        filters: Optional[Dict[str, Any]] = None,
        order_by: Optional[str] = None,
        desc: bool = False,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        query = self._apply_filters(self._table().select("*"), filters)
        if order_by:
            query = query.order(order_by, desc=desc)
        if limit:
            query = query.limit(limit)
        return self._execute(query, "select")

    def list_containing(self, column: str, values: Iterable[Any], filters: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        """Rows whose array ``column`` contains every value in ``values``."""
        query = self._apply_filters(self._table().select("*").contains(column, list(values)), filters)
        return self._execute(query, "select")

    def list_by_ids(self, record_ids: Iterable[str]) -> List[Dict[str, Any]]:
        ids = list(dict.fromkeys(record_ids))
        if not ids:
            return []
        return self._execute(self._table().select("*").in_("id", ids), "select")

    def get(self, record_id: str) -> Optional[Dict[str, Any]]:
        rows = self._execute(self._table().select("*").eq("id", record_id).limit(1), "select")
        return rows[0] if rows else None

    def require(self, record_id: str) -> Dict[str, Any]:
        record = self.get(record_id)
        if record is None:
            raise NotFoundError(self.table_name, record_id)
        return record

    def find_one(self, **filters) -> Optional[Dict[str, Any]]:
        rows = self.list(filters=filters, limit=1)
        return rows[0] if rows else None

    def create(self, record: Dict[str, Any]) -> Dict[str, Any]:
        now = utc_now_iso()
        payload = clean_record({"id": new_id(), "created_at": now, "updated_at": now, **record})
        rows = self._execute(self._table().insert(payload), "insert")
        logger.debug(f"📝 Created {self.table_name}/{payload['id']}")
        return rows[0] if rows else payload

    def update(self, record_id: str, updates: Dict[str, Any], allow_nulls: bool = False) -> Dict[str, Any]:
        """
        Update a row and return it.

        ``allow_nulls`` keeps explicit ``None`` values so callers can clear
        reference fields such as ``district_id``.
        """
        payload = dict(updates) if allow_nulls else clean_record(dict(updates))
        payload.pop("id", None)
        payload["updated_at"] = utc_now_iso()
        rows = self._execute(self._table().update(payload).eq("id", record_id), "update")
        if not rows:
            raise NotFoundError(self.table_name, record_id)
        return rows[0]

    def delete(self, record_id: str) -> None:
        rows = self._execute(self._table().delete().eq("id", record_id), "delete")
        if not rows:
            raise NotFoundError(self.table_name, record_id)
        logger.debug(f"🗑️ Deleted {self.table_name}/{record_id}")
