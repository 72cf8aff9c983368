from __future__ import annotations

import logging
import time
import uuid
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any

import httpx
from sqlalchemy import Boolean, Date, DateTime, Numeric, Uuid, func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from starlette.concurrency import run_in_threadpool

from agencydesk.core.config import Settings, get_settings
from agencydesk.core.database import SessionLocal
from agencydesk.errors import (
    FOREIGN_KEY_VIOLATION,
    INTERNAL_ERROR,
    NETWORK_ERROR,
    NOT_NULL_VIOLATION,
    UNIQUE_VIOLATION,
    DataError,
)
from agencydesk.metrics import observe_store_operation
from agencydesk.otel import get_tracer
from agencydesk.store.models import TABLES
from agencydesk.store.procedures import PROCEDURES


logger = logging.getLogger("agencydesk.store")
tracer = get_tracer("agencydesk.store")

UNDEFINED_TABLE = "42P01"
UNDEFINED_COLUMN = "42703"
INVALID_TEXT = "22P02"

MUTATION_OPS = {"insert", "update", "delete"}


@dataclass(frozen=True)
class FilterSpec:
    """Row selection for ``DataClient.query``.

    Equality, ``in``, range and null filters are AND'ed. ``head`` asks for the
    matching row count only.
    """

    eq: Mapping[str, Any] = field(default_factory=dict)
    in_: Mapping[str, Sequence[Any]] = field(default_factory=dict)
    gte: Mapping[str, Any] = field(default_factory=dict)
    lte: Mapping[str, Any] = field(default_factory=dict)
    is_null: Mapping[str, bool] = field(default_factory=dict)
    order_by: str | None = None
    descending: bool = False
    limit: int | None = None
    head: bool = False


@dataclass
class StoreError:
    code: str
    message: str
    details: Any = None


@dataclass
class Result:
    rows: list[dict[str, Any]] = field(default_factory=list)
    count: int | None = None
    data: Any = None
    error: StoreError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def raise_for_error(self) -> Result:
        if self.error is not None:
            raise DataError(self.error.code, self.error.message, self.error.details)
        return self


def _integrity_error_code(exc: IntegrityError) -> str:
    sqlstate = getattr(exc.orig, "sqlstate", None) or getattr(exc.orig, "pgcode", None)
    if isinstance(sqlstate, str) and sqlstate:
        return sqlstate
    message = str(exc.orig).upper()
    if "FOREIGN KEY" in message:
        return FOREIGN_KEY_VIOLATION
    if "UNIQUE" in message:
        return UNIQUE_VIOLATION
    if "NOT NULL" in message:
        return NOT_NULL_VIOLATION
    return INTERNAL_ERROR


def _normalize(value: Any) -> Any:
    # sqlite drops tzinfo on round-trip; everything stored is UTC.
    if isinstance(value, datetime) and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def row_to_dict(instance: Any) -> dict[str, Any]:
    mapper = instance.__class__.__mapper__
    return {attr.key: _normalize(getattr(instance, attr.key)) for attr in mapper.column_attrs}


class DataClient:
    """Async facade over the relational store and the serverless functions endpoint.

    Store work is synchronous SQLAlchemy run in the threadpool with one session per
    call. Failures come back as ``Result.error`` rather than exceptions.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        *,
        settings: Settings | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._settings = settings or get_settings()
        self._http_client = http_client

    @property
    def http_client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self._settings.functions_timeout_seconds)
        return self._http_client

    async def aclose(self) -> None:
        if self._http_client is not None:
            await self._http_client.aclose()

    async def query(self, table: str, spec: FilterSpec | None = None) -> Result:
        spec = spec or FilterSpec()
        with tracer.start_as_current_span("store.query") as span:
            span.set_attribute("store.table", table)
            return await self._timed(table, "query", self._query_sync, table, spec)

    async def mutate(
        self,
        table: str,
        op: str,
        payload: Mapping[str, Any] | Sequence[Mapping[str, Any]] | None = None,
        *,
        match: Mapping[str, Any] | None = None,
    ) -> Result:
        if op not in MUTATION_OPS:
            raise ValueError(f"Unsupported mutation: {op}")
        with tracer.start_as_current_span(f"store.{op}") as span:
            span.set_attribute("store.table", table)
            return await self._timed(table, op, self._mutate_sync, table, op, payload, match)

    async def rpc(self, name: str, params: Mapping[str, Any]) -> Result:
        with tracer.start_as_current_span("store.rpc") as span:
            span.set_attribute("store.procedure", name)
            return await self._timed(name, "rpc", self._rpc_sync, name, dict(params))

    async def invoke(self, function_name: str, payload: Mapping[str, Any]) -> Result:
        url = f"{self._settings.functions_url.rstrip('/')}/{function_name}"
        headers = {
            "Authorization": f"Bearer {self._settings.functions_api_key}",
            "Content-Type": "application/json",
        }
        started = time.perf_counter()
        with tracer.start_as_current_span("functions.invoke") as span:
            span.set_attribute("functions.name", function_name)
            try:
                response = await self.http_client.post(url, json=dict(payload), headers=headers)
            except httpx.HTTPError as exc:
                observe_store_operation(function_name, "invoke", "error", time.perf_counter() - started)
                logger.warning(
                    "functions.invoke_failed",
                    extra={"function_name": function_name, "error_code": NETWORK_ERROR, "error": str(exc)},
                )
                return Result(error=StoreError(code=NETWORK_ERROR, message=str(exc) or exc.__class__.__name__))

        duration = time.perf_counter() - started
        body = _json_or_none(response)
        if response.is_error:
            message = body.get("error") if isinstance(body, dict) and body.get("error") else response.reason_phrase
            observe_store_operation(function_name, "invoke", "error", duration)
            logger.warning(
                "functions.invoke_failed",
                extra={"function_name": function_name, "error_code": f"http_{response.status_code}", "error": message},
            )
            return Result(error=StoreError(code=f"http_{response.status_code}", message=str(message), details=body))

        observe_store_operation(function_name, "invoke", "ok", duration)
        return Result(data=body)

    async def _timed(self, label: str, operation: str, func_, *args: Any) -> Result:  # type: ignore[no-untyped-def]
        started = time.perf_counter()
        result: Result = await run_in_threadpool(func_, *args)
        duration = time.perf_counter() - started
        observe_store_operation(label, operation, "ok" if result.ok else "error", duration)
        if result.error is not None:
            logger.warning(
                "store.operation_failed",
                extra={
                    "table": label,
                    "operation": operation,
                    "error_code": result.error.code,
                    "error": result.error.message,
                    "duration_ms": round(duration * 1000, 2),
                },
            )
        return result

    def _model(self, table: str) -> Any:
        model = TABLES.get(table)
        if model is None:
            raise DataError(UNDEFINED_TABLE, f'relation "{table}" does not exist')
        return model

    def _column(self, model: Any, name: str) -> Any:
        attr = model.__mapper__.column_attrs.get(name)
        if attr is None:
            raise DataError(UNDEFINED_COLUMN, f'column "{name}" of relation "{model.__tablename__}" does not exist')
        return attr.columns[0]

    def _coerce(self, model: Any, name: str, value: Any) -> Any:
        if value is None:
            return None
        column_type = self._column(model, name).type
        try:
            if isinstance(column_type, Uuid) and not isinstance(value, uuid.UUID):
                return uuid.UUID(str(value))
            if isinstance(column_type, DateTime) and isinstance(value, str):
                return _normalize(datetime.fromisoformat(value.replace("Z", "+00:00")))
            if isinstance(column_type, Date) and isinstance(value, str):
                return date.fromisoformat(value)
            if isinstance(column_type, Numeric) and not isinstance(value, Decimal):
                return Decimal(str(value))
            if isinstance(column_type, Boolean) and not isinstance(value, bool):
                raise ValueError(f"not a boolean: {value!r}")
        except (ValueError, ArithmeticError) as exc:
            raise DataError(INVALID_TEXT, f'invalid input for column "{name}": {value!r}') from exc
        return value

    def _where(self, model: Any, spec: FilterSpec) -> list[Any]:
        clauses: list[Any] = []
        for name, value in spec.eq.items():
            clauses.append(self._column(model, name) == self._coerce(model, name, value))
        for name, values in spec.in_.items():
            clauses.append(self._column(model, name).in_([self._coerce(model, name, v) for v in values]))
        for name, value in spec.gte.items():
            clauses.append(self._column(model, name) >= self._coerce(model, name, value))
        for name, value in spec.lte.items():
            clauses.append(self._column(model, name) <= self._coerce(model, name, value))
        for name, is_null in spec.is_null.items():
            column = self._column(model, name)
            clauses.append(column.is_(None) if is_null else column.is_not(None))
        return clauses

    def _query_sync(self, table: str, spec: FilterSpec) -> Result:
        try:
            model = self._model(table)
            clauses = self._where(model, spec)
            with self._session_factory() as session:
                if spec.head:
                    count = session.scalar(select(func.count()).select_from(model).where(*clauses))
                    return Result(count=int(count or 0))

                stmt = select(model).where(*clauses)
                if spec.order_by:
                    column = self._column(model, spec.order_by)
                    stmt = stmt.order_by(column.desc() if spec.descending else column.asc())
                stmt = stmt.order_by(model.id)
                if spec.limit is not None:
                    stmt = stmt.limit(spec.limit)
                rows = [row_to_dict(instance) for instance in session.scalars(stmt)]
                return Result(rows=rows, count=len(rows))
        except DataError as exc:
            return Result(error=StoreError(exc.code, exc.message, exc.details))
        except SQLAlchemyError as exc:
            logger.exception("store.query_error", extra={"table": table, "error": str(exc)})
            return Result(error=StoreError(INTERNAL_ERROR, "Unexpected database error"))

    def _mutate_sync(
        self,
        table: str,
        op: str,
        payload: Mapping[str, Any] | Sequence[Mapping[str, Any]] | None,
        match: Mapping[str, Any] | None,
    ) -> Result:
        try:
            model = self._model(table)
            with self._session_factory() as session:
                try:
                    if op == "insert":
                        items = [payload] if isinstance(payload, Mapping) else list(payload or [])
                        instances = [
                            model(**{key: self._coerce(model, key, value) for key, value in item.items()})
                            for item in items
                        ]
                        session.add_all(instances)
                    else:
                        if not match:
                            raise DataError("21000", f"{op} requires a match filter")
                        instances = list(session.scalars(select(model).where(*self._where(model, FilterSpec(eq=match)))))
                        for instance in instances:
                            if op == "update":
                                for key, value in (payload or {}).items():  # type: ignore[union-attr]
                                    setattr(instance, key, self._coerce(model, key, value))
                            else:
                                session.delete(instance)
                    session.flush()
                    rows = [row_to_dict(instance) for instance in instances]
                    session.commit()
                except Exception:
                    session.rollback()
                    raise
                return Result(rows=rows, count=len(rows))
        except DataError as exc:
            return Result(error=StoreError(exc.code, exc.message, exc.details))
        except IntegrityError as exc:
            code = _integrity_error_code(exc)
            return Result(error=StoreError(code, str(exc.orig).splitlines()[0]))
        except SQLAlchemyError as exc:
            logger.exception("store.mutation_error", extra={"table": table, "operation": op, "error": str(exc)})
            return Result(error=StoreError(INTERNAL_ERROR, "Unexpected database error"))

    def _rpc_sync(self, name: str, params: dict[str, Any]) -> Result:
        procedure = PROCEDURES.get(name)
        if procedure is None:
            return Result(error=StoreError("42883", f"function {name} does not exist"))
        try:
            with self._session_factory() as session:
                try:
                    value = procedure(session, **params)
                    session.commit()
                except Exception:
                    session.rollback()
                    raise
                return Result(data=value)
        except DataError as exc:
            return Result(error=StoreError(exc.code, exc.message, exc.details))
        except IntegrityError as exc:
            return Result(error=StoreError(_integrity_error_code(exc), str(exc.orig).splitlines()[0]))
        except SQLAlchemyError as exc:
            logger.exception("store.rpc_error", extra={"function_name": name, "error": str(exc)})
            return Result(error=StoreError(INTERNAL_ERROR, "Unexpected database error"))


def _json_or_none(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return None


_default_client: DataClient | None = None


def get_data_client() -> DataClient:
    global _default_client
    if _default_client is None:
        _default_client = DataClient(SessionLocal)
    return _default_client
