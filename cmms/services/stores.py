"""
Store Layer

PostgreSQL-backed collections for the CMMS entities. The engine services
only need predicate queries, create, and update-by-identifier; everything
else (plain CRUD, listing) lives outside the core.

Rows come back as dictionaries from the pooled Database helper and are
turned into domain models here, so JSON columns are decoded exactly once.
"""

import json
import logging
from datetime import datetime, timedelta
from decimal import Decimal
from enum import Enum
from typing import List, Dict, Any, Optional, Iterable

from psycopg2.extras import Json

from cmms.utils.config import settings
from cmms.utils.database import Database, db
from cmms.utils.errors import ValidationError
from cmms.models.domain import (
    ComplianceRecord,
    Contract,
    ContractStatus,
    Equipment,
    MaintenanceHistory,
    PartUsage,
    PMSchedule,
    Report,
    ReportType,
    SparePart,
    User,
    WorkOrder,
)

logger = logging.getLogger(__name__)


class TableStore:
    """Shared insert/update helpers for a single table with an `id` column"""

    table: str = ""
    columns: frozenset = frozenset()

    def __init__(self, database: Optional[Database] = None):
        self.db = database or db

    @property
    def qualified_table(self) -> str:
        return f"{settings.DB_SCHEMA}.{self.table}"

    def _check_columns(self, data: Dict[str, Any]) -> None:
        unknown = set(data) - self.columns
        if unknown:
            raise ValueError(f"Unknown columns for {self.table}: {', '.join(sorted(unknown))}")

    def _adapt(self, value: Any) -> Any:
        return value.value if isinstance(value, Enum) else value

    def _insert(self, data: Dict[str, Any]) -> Dict[str, Any]:
        self._check_columns(data)
        names = list(data)
        query = f"""
            INSERT INTO {self.qualified_table} ({', '.join(names)})
            VALUES ({', '.join(['%s'] * len(names))})
            RETURNING *
        """
        params = tuple(self._adapt(data[name]) for name in names)
        return self.db.execute_query(query, params, fetch_one=True)

    def _update(self, record_id: str, changes: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        self._check_columns(changes)
        if not changes:
            raise ValueError("No fields provided for update")
        names = list(changes)
        assignments = ", ".join(f"{name} = %s" for name in names)
        query = f"""
            UPDATE {self.qualified_table}
            SET {assignments}
            WHERE id = %s
            RETURNING *
        """
        params = tuple(self._adapt(changes[name]) for name in names) + (record_id,)
        return self.db.execute_query(query, params, fetch_one=True)

    def _get(self, record_id: str) -> Optional[Dict[str, Any]]:
        query = f"SELECT * FROM {self.qualified_table} WHERE id = %s"
        return self.db.execute_query(query, (record_id,), fetch_one=True)


# ============================================================================
# Engine-owned collections
# ============================================================================

class ScheduleStore(TableStore):
    """Preventive maintenance schedules"""

    table = "pm_schedules"
    columns = frozenset({
        "equipment_id", "task_description", "frequency", "next_due_date",
        "last_generated_date", "is_active", "assigned_to_user_id", "notes",
    })

    def find_due(self, now: datetime) -> List[PMSchedule]:
        """Active schedules whose next_due_date is at or before now"""
        query = f"""
            SELECT * FROM {self.qualified_table}
            WHERE is_active = TRUE AND next_due_date <= %s
            ORDER BY next_due_date ASC
        """
        return [PMSchedule(**row) for row in self.db.execute_query(query, (now,))]

    def find_due_between(self, start: datetime, end: datetime) -> List[PMSchedule]:
        """Active schedules falling due in (start, end]"""
        query = f"""
            SELECT * FROM {self.qualified_table}
            WHERE is_active = TRUE AND next_due_date > %s AND next_due_date <= %s
            ORDER BY next_due_date ASC
        """
        return [PMSchedule(**row) for row in self.db.execute_query(query, (start, end))]

    def get(self, schedule_id: str) -> Optional[PMSchedule]:
        row = self._get(schedule_id)
        return PMSchedule(**row) if row else None

    def create(self, data: Dict[str, Any]) -> PMSchedule:
        return PMSchedule(**self._insert(data))

    def update(self, schedule_id: str, changes: Dict[str, Any]) -> Optional[PMSchedule]:
        row = self._update(schedule_id, changes)
        return PMSchedule(**row) if row else None


class WorkOrderStore(TableStore):
    """Work orders; parts_used is a JSONB list of {part_id, quantity}"""

    table = "work_orders"
    columns = frozenset({
        "equipment_id", "issue", "description", "type", "priority", "status",
        "reported_by", "reported_at", "completed_at", "assigned_to", "cost",
        "parts_used",
    })

    def _adapt(self, value: Any) -> Any:
        if isinstance(value, list):
            return Json([
                item.model_dump() if isinstance(item, PartUsage) else item
                for item in value
            ])
        return super()._adapt(value)

    @staticmethod
    def _to_model(row: Dict[str, Any]) -> WorkOrder:
        data = dict(row)
        parts = data.get("parts_used")
        if isinstance(parts, str):
            data["parts_used"] = json.loads(parts) if parts.strip() else None
        return WorkOrder(**data)

    def get(self, work_order_id: str) -> Optional[WorkOrder]:
        row = self._get(work_order_id)
        return self._to_model(row) if row else None

    def create(self, data: Dict[str, Any]) -> WorkOrder:
        return self._to_model(self._insert(data))

    def update(self, work_order_id: str, changes: Dict[str, Any]) -> Optional[WorkOrder]:
        row = self._update(work_order_id, changes)
        return self._to_model(row) if row else None

    def find_completed_between(
        self,
        start: datetime,
        end: datetime,
        work_order_type: Optional[str] = None
    ) -> List[WorkOrder]:
        """Completed work orders with completed_at in [start, end]"""
        query = f"""
            SELECT * FROM {self.qualified_table}
            WHERE status = 'Completed'
            AND completed_at IS NOT NULL
            AND completed_at >= %s AND completed_at <= %s
        """
        params: tuple = (start, end)
        if work_order_type:
            query += " AND type = %s"
            params += (work_order_type,)
        query += " ORDER BY completed_at ASC"
        return [self._to_model(row) for row in self.db.execute_query(query, params)]


class ContractStore(TableStore):
    """Service contracts"""

    table = "contracts"
    columns = frozenset({
        "equipment_id", "vendor", "start_date", "end_date",
        "renewal_reminder_date", "status", "details", "notes",
    })

    def find_by_statuses(self, statuses: Iterable[ContractStatus]) -> List[Contract]:
        query = f"""
            SELECT * FROM {self.qualified_table}
            WHERE status = ANY(%s)
            ORDER BY end_date ASC
        """
        values = [s.value for s in statuses]
        return [Contract(**row) for row in self.db.execute_query(query, (values,))]

    def get(self, contract_id: str) -> Optional[Contract]:
        row = self._get(contract_id)
        return Contract(**row) if row else None

    def create(self, data: Dict[str, Any]) -> Contract:
        return Contract(**self._insert(data))

    def update(self, contract_id: str, changes: Dict[str, Any]) -> Optional[Contract]:
        row = self._update(contract_id, changes)
        return Contract(**row) if row else None


class HistoryStore(TableStore):
    """Maintenance history records (read-only for the engine)"""

    table = "maintenance_history"

    def find_with_cost(self, start: datetime, end: datetime) -> List[MaintenanceHistory]:
        """
        Records carrying a cost whose date text starts within a day of
        [start, end].

        The date column is free text, so this is only a coarse prefix
        filter on the YYYY-MM-DD part. The aggregator parses each date and
        applies the exact bounds.
        """
        query = f"""
            SELECT * FROM {self.qualified_table}
            WHERE cost IS NOT NULL
            AND LEFT(date, 10) >= %s AND LEFT(date, 10) <= %s
            ORDER BY date ASC
        """
        params = (
            (start - timedelta(days=1)).date().isoformat(),
            (end + timedelta(days=1)).date().isoformat(),
        )
        return [MaintenanceHistory(**row) for row in self.db.execute_query(query, params)]


class ComplianceStore(TableStore):
    """Compliance checks per equipment and standard (read-only for the engine)"""

    table = "compliance"

    def find_all(self) -> List[ComplianceRecord]:
        query = f"SELECT * FROM {self.qualified_table} ORDER BY next_due ASC"
        return [ComplianceRecord(**row) for row in self.db.execute_query(query)]


class ReportStore(TableStore):
    """Generated reports. Append-only: create, list and delete."""

    table = "reports"
    columns = frozenset({
        "type", "title", "content", "period", "metrics", "generated_by", "generated_at",
    })

    def create(self, data: Dict[str, Any]) -> Report:
        return Report(**self._insert(data))

    def list(self, report_type: Optional[ReportType] = None) -> List[Report]:
        if report_type:
            query = f"""
                SELECT * FROM {self.qualified_table}
                WHERE type = %s
                ORDER BY generated_at DESC
            """
            rows = self.db.execute_query(query, (report_type.value,))
        else:
            query = f"SELECT * FROM {self.qualified_table} ORDER BY generated_at DESC"
            rows = self.db.execute_query(query)
        return [Report(**row) for row in rows]

    def delete(self, report_id: str) -> bool:
        query = f"DELETE FROM {self.qualified_table} WHERE id = %s"
        return self.db.execute_update(query, (report_id,)) > 0


# ============================================================================
# Read-only lookups
# ============================================================================

class EquipmentDirectory(TableStore):
    """Equipment id -> display identity"""

    table = "equipment"

    def get(self, equipment_id: str) -> Optional[Equipment]:
        row = self._get(equipment_id)
        return Equipment(**row) if row else None

    def get_many(self, equipment_ids: Iterable[str]) -> Dict[str, Equipment]:
        ids = list(set(equipment_ids))
        if not ids:
            return {}
        query = f"""
            SELECT id, serial_number, manufacturer_name, model_number, location_description
            FROM {self.qualified_table}
            WHERE id = ANY(%s)
        """
        return {row["id"]: Equipment(**row) for row in self.db.execute_query(query, (ids,))}


class SparePartCatalog(TableStore):
    """Spare parts: unit cost and stock on hand"""

    table = "spare_parts"

    def get_many(self, part_ids: Iterable[str]) -> Dict[str, SparePart]:
        ids = list(set(part_ids))
        if not ids:
            return {}
        query = f"""
            SELECT id, name, unit_cost, quantity FROM {self.qualified_table}
            WHERE id = ANY(%s)
        """
        rows = self.db.execute_query(query, (ids,))
        return {
            row["id"]: SparePart(**{**row, "unit_cost": row["unit_cost"] or 0})
            for row in rows
        }

    def unit_costs(self, part_ids: Iterable[str]) -> Dict[str, Decimal]:
        """Part id -> current unit cost, for the parts that exist"""
        return {part_id: part.unit_cost for part_id, part in self.get_many(part_ids).items()}

    def consume(self, quantities: Dict[str, int]) -> None:
        """
        Take stock for several parts in one transaction.

        Each decrement is guarded by the stock on hand, so a concurrent
        withdrawal cannot drive a quantity negative. If any part falls
        short nothing is taken.
        """
        query = f"""
            UPDATE {self.qualified_table}
            SET quantity = quantity - %s
            WHERE id = %s AND quantity >= %s
        """
        with self.db.get_cursor(dict_cursor=False) as cursor:
            for part_id, quantity in sorted(quantities.items()):
                cursor.execute(query, (quantity, part_id, quantity))
                if cursor.rowcount != 1:
                    raise ValidationError(f"Not enough stock for spare part {part_id}")
        logger.info(f"Consumed stock for {len(quantities)} spare parts")


class UserDirectory(TableStore):
    """User id -> user record"""

    table = "users"

    def get(self, user_id: str) -> Optional[User]:
        query = f"SELECT id, username, role FROM {self.qualified_table} WHERE id = %s"
        row = self.db.execute_query(query, (user_id,), fetch_one=True)
        return User(**row) if row else None

    def get_many(self, user_ids: Iterable[str]) -> Dict[str, User]:
        ids = list(set(user_ids))
        if not ids:
            return {}
        query = f"""
            SELECT id, username, role FROM {self.qualified_table}
            WHERE id = ANY(%s)
        """
        return {row["id"]: User(**row) for row in self.db.execute_query(query, (ids,))}
