"""
Data store access for the tutoring tables.

Services talk to a ``DataStore``; ``SupabaseDataStore`` is the production
implementation on top of the supabase PostgREST query builder. Every backend
failure leaves this module as a ``StoreError`` so callers never see raw
postgrest/httpx exceptions.
"""
import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Protocol, Sequence

import httpx
from postgrest.exceptions import APIError

from app.services.errors import CascadeError, ConflictError, StoreError

logger = logging.getLogger(__name__)

PROFILES = "profiles"
SUBJECTS = "subjects"
TUTOR_SUBJECTS = "tutor_subjects"
TIMESHEETS = "timesheets"

# Postgres SQLSTATE for unique_violation
UNIQUE_VIOLATION = "23505"

# Postgres functions that swap a parent's child rows in one transaction
REPLACE_FUNCTIONS = {
    TUTOR_SUBJECTS: "replace_tutor_assignments",
}


@dataclass(frozen=True)
class Order:
    column: str
    desc: bool = False


@dataclass(frozen=True)
class Embed:
    """Joined read of ``table`` through the foreign key ``fk_column``, exposed as ``alias``."""

    alias: str
    table: str
    fk_column: str
    columns: str = "*"


@dataclass(frozen=True)
class CascadeStep:
    table: str
    filters: Mapping[str, Any]
    # "delete" removes matching rows, "detach" sets the filtered foreign key to null
    action: str = "delete"
    column: Optional[str] = None

    def describe(self) -> str:
        if self.action == "detach":
            return f"detach {self.table}.{self.column}"
        return f"delete {self.table}"


@dataclass
class CascadePlan:
    """Ordered delete/detach steps.

    ``rpc`` names a Postgres function that performs the same steps in one
    transaction; stores that can call it do so instead of running the steps.
    """

    steps: List[CascadeStep] = field(default_factory=list)
    rpc: Optional[str] = None
    params: Dict[str, Any] = field(default_factory=dict)

    def delete(self, table: str, **filters) -> "CascadePlan":
        self.steps.append(CascadeStep(table=table, filters=filters))
        return self

    def detach(self, table: str, column: str, value: Any) -> "CascadePlan":
        self.steps.append(CascadeStep(table=table, filters={column: value}, action="detach", column=column))
        return self


class DataStore(Protocol):
    def select(
        self,
        table: str,
        filters: Optional[Mapping[str, Any]] = None,
        columns: str = "*",
        order: Optional[Sequence[Order]] = None,
        embed: Optional[Sequence[Embed]] = None,
    ) -> List[Dict[str, Any]]: ...

    def insert(self, table: str, rows: List[Dict[str, Any]]) -> List[Dict[str, Any]]: ...

    def update(self, table: str, filters: Mapping[str, Any], patch: Dict[str, Any]) -> List[Dict[str, Any]]: ...

    def delete(self, table: str, filters: Mapping[str, Any]) -> int: ...

    def replace(self, table: str, filters: Mapping[str, Any], rows: List[Dict[str, Any]]) -> List[Dict[str, Any]]: ...

    def run_cascade(self, plan: CascadePlan) -> None: ...


def to_json(value: Any) -> Any:
    """Convert a python value into something PostgREST accepts in a JSON body."""
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    return value


def to_json_row(row: Mapping[str, Any]) -> Dict[str, Any]:
    return {key: to_json(value) for key, value in row.items()}


def execute_cascade(store: DataStore, plan: CascadePlan) -> None:
    """Run each step in order, stopping at the first failure.

    Completed steps are not rolled back; the raised ``CascadeError`` lists
    them so the caller can report what already happened.
    """
    completed = []
    for step in plan.steps:
        try:
            if step.action == "detach":
                store.update(step.table, step.filters, {step.column: None})
            else:
                store.delete(step.table, step.filters)
        except StoreError as e:
            logger.error(f"Cascade stopped at '{step.describe()}' after {completed}: {e}")
            raise CascadeError(
                f"Cascade failed at '{step.describe()}': {e.message}",
                completed=completed,
                failed=step.describe(),
            ) from e
        completed.append(step.describe())


class SupabaseDataStore:
    """``DataStore`` backed by a supabase ``Client``."""

    def __init__(self, client):
        self.client = client

    def _apply_filters(self, query, filters: Optional[Mapping[str, Any]]):
        for column, value in (filters or {}).items():
            if value is None:
                query = query.is_(column, "null")
            else:
                query = query.eq(column, to_json(value))
        return query

    def _execute(self, query, action: str, table: str):
        try:
            return query.execute()
        except APIError as e:
            if e.code == UNIQUE_VIOLATION:
                logger.warning(f"Unique violation on {action} {table}: {e.message}")
                raise ConflictError(f"Duplicate value in {table}", constraint=e.details) from e
            logger.error(f"Supabase {action} on {table} failed: {e.message}")
            raise StoreError(f"Failed to {action} {table}: {e.message}") from e
        except httpx.TimeoutException as e:
            logger.error(f"Supabase {action} on {table} timed out")
            raise StoreError(f"Timed out trying to {action} {table}") from e
        except httpx.HTTPError as e:
            logger.error(f"Supabase {action} on {table} failed: {str(e)}")
            raise StoreError(f"Failed to {action} {table}: {str(e)}") from e

    def select(self, table, filters=None, columns="*", order=None, embed=None):
        select_clause = columns
        for e in embed or ():
            select_clause += f", {e.alias}:{e.table}!{e.fk_column}({e.columns})"

        query = self._apply_filters(self.client.table(table).select(select_clause), filters)
        for o in order or ():
            query = query.order(o.column, desc=o.desc)
        return self._execute(query, "select", table).data

    def insert(self, table, rows):
        if not rows:
            return []
        query = self.client.table(table).insert([to_json_row(r) for r in rows])
        return self._execute(query, "insert", table).data

    def update(self, table, filters, patch):
        if not filters:
            # PostgREST refuses unfiltered updates; fail early with a clearer message
            raise StoreError(f"Refusing to update every row of {table}")
        query = self._apply_filters(self.client.table(table).update(to_json_row(patch)), filters)
        return self._execute(query, "update", table).data

    def delete(self, table, filters):
        if not filters:
            raise StoreError(f"Refusing to delete every row of {table}")
        query = self._apply_filters(self.client.table(table).delete(), filters)
        return len(self._execute(query, "delete", table).data or [])

    def _rpc(self, function: str, params: Dict[str, Any]):
        query = self.client.rpc(function, {key: to_json(value) for key, value in params.items()})
        return self._execute(query, "call", function).data

    def replace(self, table, filters, rows):
        """Delete the rows matching ``filters`` and insert ``rows`` atomically."""
        function = REPLACE_FUNCTIONS.get(table)
        if function is None:
            raise StoreError(f"No replace function for {table}")
        params = {f"p_{column}": value for column, value in filters.items()}
        params["p_rows"] = [to_json_row(r) for r in rows]
        return self._rpc(function, params) or []

    def run_cascade(self, plan):
        if plan.rpc is None:
            execute_cascade(self, plan)
            return
        try:
            self._rpc(plan.rpc, plan.params)
        except StoreError as e:
            # Rolled back as a whole, so nothing completed
            raise CascadeError(
                f"Cascade {plan.rpc} failed: {e.message}",
                completed=[],
                failed=plan.rpc,
            ) from e
