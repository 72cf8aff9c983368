from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import EmailStr, TypeAdapter, ValidationError

from agencydesk.context import reset_screen, set_screen
from agencydesk.core.auth import SessionContext
from agencydesk.core.config import Settings, get_settings
from agencydesk.errors import (
    FOREIGN_KEY_VIOLATION,
    INTERNAL_ERROR,
    NETWORK_ERROR,
    DataError,
    DependentRecordsError,
    PermissionDenied,
    ValidationFailed,
)
from agencydesk.metrics import observe_bulk_failures, observe_screen_mutation
from agencydesk.screens.projection import MemoizedProjection, ViewState
from agencydesk.screens.toasts import GENERIC_ERROR, ToastCenter
from agencydesk.store.client import DataClient, Result, StoreError


logger = logging.getLogger("agencydesk.screens")

_email_adapter = TypeAdapter(EmailStr)

Confirm = Callable[[], bool]


class ScreenState(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    LOADED = "loaded"
    MUTATING = "mutating"
    ERROR = "error"


@dataclass(frozen=True)
class BulkResult:
    row_id: str
    ok: bool
    error: str | None = None


def validate_required(payload: Mapping[str, Any], fields: Iterable[str]) -> dict[str, str]:
    errors: dict[str, str] = {}
    for name in fields:
        value = payload.get(name)
        if value is None or (isinstance(value, str) and not value.strip()):
            errors[name] = "This field is required"
    return errors


def validate_email(payload: Mapping[str, Any], field: str = "email") -> dict[str, str]:
    value = payload.get(field)
    if not value:
        return {}
    try:
        _email_adapter.validate_python(value)
    except ValidationError:
        return {field: "Enter a valid email address"}
    return {}


def merge_stats(base: Mapping[str, Any], defaults: Mapping[str, Any], stats: Mapping[str, Any] | None) -> dict[str, Any]:
    return {**base, **defaults, **(stats or {})}


def error_from(store_error: StoreError, entity: str) -> DataError:
    if store_error.code == FOREIGN_KEY_VIOLATION:
        return DependentRecordsError(entity)
    return DataError(store_error.code, store_error.message, store_error.details)


def toast_message(exc: DataError) -> str:
    if exc.code in {INTERNAL_ERROR, NETWORK_ERROR}:
        return GENERIC_ERROR
    return exc.message


class ScreenController:
    """Generic list-filter-mutate screen.

    Subclasses implement ``fetch`` (first wave) and optionally ``fetch_stats``
    (second wave, merged per row over ``stat_defaults``). Every load carries a
    generation number and results from a superseded load are dropped.
    """

    screen_name = "screen"
    entity_name = "record"
    search_fields: Sequence[str] = ()
    stat_defaults: Mapping[str, Any] = {}
    requires_admin = True
    load_error: str | None = None

    def __init__(
        self,
        client: DataClient,
        session: SessionContext,
        toasts: ToastCenter | None = None,
        *,
        settings: Settings | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        if self.requires_admin and not session.is_admin:
            raise PermissionDenied(f"{self.screen_name} requires an admin session")
        self.client = client
        self.session = session
        self.toasts = toasts or ToastCenter()
        self.settings = settings or get_settings()
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self.state = ScreenState.IDLE
        self.error: str | None = None
        self.rows: list[dict[str, Any]] = []
        self.rows_version = 0
        self.view_state = ViewState()
        self._generation = 0
        self._projection = MemoizedProjection(self.search_fields)

    @property
    def view(self) -> list[Mapping[str, Any]]:
        return self._projection(self.rows, self.rows_version, self.view_state)

    def set_search(self, search: str) -> None:
        self.view_state = self.view_state.with_search(search)

    def set_filter(self, field: str, value: Any) -> None:
        self.view_state = self.view_state.with_filter(field, value)

    def toggle_sort(self, field: str) -> None:
        self.view_state = self.view_state.toggle_sort(field)

    def set_sort(self, field: str | None, descending: bool = False) -> None:
        self.view_state = self.view_state.with_sort(field, descending)

    def set_rows(self, rows: list[dict[str, Any]]) -> None:
        self.rows = rows
        self.rows_version += 1

    async def fetch(self) -> Any:
        raise NotImplementedError

    def apply(self, payload: Any) -> None:
        self.set_rows([merge_stats(row, self.stat_defaults, None) for row in payload])

    async def fetch_stats(self, rows: list[dict[str, Any]]) -> dict[Any, dict[str, Any]] | None:
        return None

    def apply_stats(self, stats: dict[Any, dict[str, Any]]) -> None:
        self.set_rows([merge_stats(row, self.stat_defaults, stats.get(row["id"])) for row in self.rows])

    async def load(self) -> None:
        self._generation += 1
        generation = self._generation
        self.state = ScreenState.LOADING
        token = set_screen(self.screen_name)
        try:
            try:
                payload = await self.fetch()
            except DataError as exc:
                if generation != self._generation:
                    return
                self.state = ScreenState.ERROR
                self.error = exc.message
                logger.warning("screen.load_failed", extra={"error_code": exc.code, "error": exc.message})
                self.toasts.error(description=self.load_error or f"Failed to load {self.entity_name}s")
                return

            if generation != self._generation:
                logger.info("screen.stale_load_discarded", extra={"generation": generation})
                return
            self.apply(payload)
            self.error = None
            self.state = ScreenState.LOADED

            try:
                stats = await self.fetch_stats(self.rows)
            except DataError as exc:
                logger.warning("screen.enrichment_failed", extra={"error_code": exc.code, "error": exc.message})
                return
            if stats is None or generation != self._generation:
                return
            self.apply_stats(stats)
        finally:
            reset_screen(token)

    def rows_or_empty(self, result: Result, what: str) -> list[dict[str, Any]]:
        if result.error is not None:
            logger.warning(
                "screen.auxiliary_fetch_failed",
                extra={"table": what, "error_code": result.error.code, "error": result.error.message},
            )
            return []
        return result.rows

    def count_or_zero(self, result: Result, what: str) -> int:
        if result.error is not None:
            logger.warning(
                "screen.auxiliary_fetch_failed",
                extra={"table": what, "error_code": result.error.code, "error": result.error.message},
            )
            return 0
        return result.count or 0

    def require_valid(self, errors: Mapping[str, str]) -> None:
        if errors:
            raise ValidationFailed(dict(errors))

    async def run_mutation(
        self,
        action: str,
        write: Callable[[], Awaitable[Result]],
        *,
        success: str,
        confirm: Confirm | None = None,
        translate: Callable[[StoreError], DataError] | None = None,
        reload: bool = True,
    ) -> Result | None:
        if confirm is not None and not confirm():
            logger.info("screen.mutation_cancelled", extra={"screen": self.screen_name, "operation": action})
            return None

        previous = self.state
        self.state = ScreenState.MUTATING
        try:
            result = await write()
        except DataError as exc:
            self._mutation_failed(action, exc, previous)
            raise
        if result.error is not None:
            exc = (translate or (lambda error: error_from(error, self.entity_name)))(result.error)
            self._mutation_failed(action, exc, previous)
            raise exc

        observe_screen_mutation(self.screen_name, action, "ok")
        logger.info("screen.mutation_succeeded", extra={"screen": self.screen_name, "operation": action})
        self.toasts.success("Success", success)
        self.state = previous if previous != ScreenState.MUTATING else ScreenState.LOADED
        if reload:
            await self.load()
        return result

    def _mutation_failed(self, action: str, exc: DataError, previous: ScreenState) -> None:
        observe_screen_mutation(self.screen_name, action, "error")
        logger.warning(
            "screen.mutation_failed",
            extra={"screen": self.screen_name, "operation": action, "error_code": exc.code, "error": exc.message},
        )
        self.toasts.error(description=toast_message(exc))
        self.state = previous if previous != ScreenState.MUTATING else ScreenState.LOADED

    async def run_bulk(
        self,
        action: str,
        row_ids: Sequence[Any],
        write_one: Callable[[Any], Awaitable[Result]],
        *,
        success: str,
    ) -> list[BulkResult]:
        if not row_ids:
            return []

        previous = self.state
        self.state = ScreenState.MUTATING
        results: list[BulkResult] = []
        for row_id in row_ids:
            try:
                result = await write_one(row_id)
            except DataError as exc:
                results.append(BulkResult(row_id=str(row_id), ok=False, error=exc.message))
                continue
            if result.error is not None:
                results.append(BulkResult(row_id=str(row_id), ok=False, error=result.error.message))
            elif not result.rows:
                results.append(BulkResult(row_id=str(row_id), ok=False, error=f"{self.entity_name} not found"))
            else:
                results.append(BulkResult(row_id=str(row_id), ok=True))

        failed = [item for item in results if not item.ok]
        observe_bulk_failures(self.screen_name, action, len(failed))
        if failed:
            observe_screen_mutation(self.screen_name, action, "partial_failure")
            logger.warning(
                "screen.bulk_failed",
                extra={
                    "screen": self.screen_name,
                    "operation": action,
                    "row_count": len(results),
                    "failed_count": len(failed),
                },
            )
            self.toasts.error(description=GENERIC_ERROR)
        else:
            observe_screen_mutation(self.screen_name, action, "ok")
            self.toasts.success("Success", success)

        self.state = previous if previous != ScreenState.MUTATING else ScreenState.LOADED
        await self.load()
        return results
