from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any

from agencydesk.errors import DataError, DependentRecordsError, NotFound, ValidationFailed
from agencydesk.screens.base import Confirm, ScreenController, validate_email, validate_required
from agencydesk.store.client import FilterSpec
from agencydesk.store.procedures import PROJECT_TYPES


logger = logging.getLogger("agencydesk.screens.pipeline")


@dataclass
class StageColumn:
    stage: dict[str, Any]
    leads: list[Mapping[str, Any]] = field(default_factory=list)

    @property
    def count(self) -> int:
        return len(self.leads)

    @property
    def total_value(self) -> Decimal:
        return sum((Decimal(str(lead.get("deal_value") or 0)) for lead in self.leads), Decimal("0"))


def lead_display_name(lead: Mapping[str, Any]) -> str:
    return " ".join(part for part in (lead.get("first_name"), lead.get("last_name")) if part)


class PipelineController(ScreenController):
    """Kanban board of leads grouped by pipeline stage."""

    screen_name = "pipeline"
    entity_name = "lead"
    search_fields = ("first_name", "last_name", "email", "company")

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.stages: list[dict[str, Any]] = []

    async def fetch(self) -> tuple[list[dict[str, Any]], list[dict[str, Any]]]:
        stages, leads = await asyncio.gather(
            self.client.query("pipeline_stages", FilterSpec(eq={"is_active": True}, order_by="stage_order")),
            self.client.query("leads", FilterSpec(order_by="created_at", descending=True)),
        )
        return stages.raise_for_error().rows, leads.raise_for_error().rows

    def apply(self, payload: tuple[list[dict[str, Any]], list[dict[str, Any]]]) -> None:
        stages, leads = payload
        self.stages = stages
        names = {stage["id"]: stage["name"] for stage in stages}
        self.set_rows([{**lead, "stage_name": names.get(lead.get("pipeline_stage_id"))} for lead in leads])

    @property
    def columns(self) -> list[StageColumn]:
        columns = [StageColumn(stage=stage) for stage in self.stages]
        by_stage = {column.stage["id"]: column for column in columns}
        for lead in self.view:
            column = by_stage.get(lead.get("pipeline_stage_id"))
            if column is not None:
                column.leads.append(lead)
        return columns

    @property
    def first_stage(self) -> dict[str, Any] | None:
        return min(self.stages, key=lambda stage: stage["stage_order"]) if self.stages else None

    def totals(self) -> dict[str, Any]:
        open_leads = [lead for lead in self.rows if not lead.get("converted_to_customer")]
        return {
            "total_leads": len(self.rows),
            "converted": len(self.rows) - len(open_leads),
            "pipeline_value": sum((Decimal(str(lead.get("deal_value") or 0)) for lead in open_leads), Decimal("0")),
        }

    def _lead(self, lead_id: Any) -> dict[str, Any]:
        for lead in self.rows:
            if str(lead["id"]) == str(lead_id):
                return lead
        raise NotFound("Lead", lead_id)

    async def create_lead(self, payload: Mapping[str, Any]) -> None:
        self.require_valid({**validate_required(payload, ("first_name", "email")), **validate_email(payload)})
        stage = self.first_stage
        values = {
            **payload,
            "pipeline_stage_id": payload.get("pipeline_stage_id") or (stage["id"] if stage else None),
            "lead_score": 0,
            "converted_to_customer": False,
        }
        await self.run_mutation(
            "create_lead",
            lambda: self.client.mutate("leads", "insert", values),
            success="Lead created successfully",
        )

    async def update_lead(self, lead_id: Any, payload: Mapping[str, Any]) -> None:
        self.require_valid(validate_email(payload))
        values = {key: value for key, value in payload.items() if key not in {"id", "converted_to_customer", "customer_id"}}
        await self.run_mutation(
            "update_lead",
            lambda: self.client.mutate("leads", "update", values, match={"id": lead_id}),
            success="Lead updated successfully",
        )

    async def move_lead(self, lead_id: Any, stage_id: Any) -> None:
        """Kanban drop: one stage update, then a best-effort activity log entry."""
        lead = self._lead(lead_id)
        stage = next((item for item in self.stages if str(item["id"]) == str(stage_id)), None)
        if stage is None:
            raise NotFound("Pipeline stage", stage_id)
        if str(lead.get("pipeline_stage_id")) == str(stage["id"]):
            return

        await self.run_mutation(
            "move_stage",
            lambda: self.client.mutate("leads", "update", {"pipeline_stage_id": stage["id"]}, match={"id": lead["id"]}),
            success=f"Lead moved to {stage['name']}",
            reload=False,
        )
        audit = await self.client.mutate(
            "lead_activities",
            "insert",
            {
                "lead_id": lead["id"],
                "activity_type": "stage_change",
                "description": f"Moved to {stage['name']}",
                "activity_metadata": {
                    "from_stage": lead.get("stage_name"),
                    "to_stage": stage["name"],
                },
            },
        )
        if audit.error is not None:
            logger.warning(
                "pipeline.activity_log_failed",
                extra={"table": "lead_activities", "error_code": audit.error.code, "error": audit.error.message},
            )
        await self.load()

    async def delete_lead(self, lead_id: Any, confirm: Confirm | None = None) -> None:
        if self._lead(lead_id).get("converted_to_customer"):
            error = DependentRecordsError("lead", "This lead has been converted to a project and cannot be deleted")
            self._mutation_failed("delete_lead", error, self.state)
            raise error

        async def write():  # type: ignore[no-untyped-def]
            cleared = await self.client.mutate("lead_activities", "delete", match={"lead_id": lead_id})
            if cleared.error is not None:
                return cleared
            return await self.client.mutate("leads", "delete", match={"id": lead_id})

        await self.run_mutation("delete_lead", write, success="Lead deleted successfully", confirm=confirm)

    def conversion_defaults(self, lead_id: Any) -> dict[str, Any]:
        lead = self._lead(lead_id)
        name = lead.get("company") or lead_display_name(lead)
        return {
            "title": f"{name} Project",
            "description": lead.get("notes") or "",
            "type": "web",
            "budget": lead.get("deal_value"),
        }

    async def convert(
        self,
        lead_id: Any,
        *,
        title: str | None = None,
        description: str | None = None,
        type: str | None = None,
        budget: Any = None,
        confirm: Confirm | None = None,
    ) -> str | None:
        """Convert a lead into a customer project through the store procedure. Returns the project id."""
        lead = self._lead(lead_id)
        if lead.get("converted_to_customer"):
            raise ValidationFailed({"lead_id": "Lead has already been converted"})
        defaults = self.conversion_defaults(lead_id)
        project_type = type or defaults["type"]
        errors = validate_required({"title": title or defaults["title"]}, ("title",))
        if project_type not in PROJECT_TYPES:
            errors["type"] = f"Type must be one of: {', '.join(sorted(PROJECT_TYPES))}"
        self.require_valid(errors)

        params = {
            "lead_id": str(lead["id"]),
            "title": title or defaults["title"],
            "description": description if description is not None else defaults["description"],
            "type": project_type,
            "budget": budget if budget is not None else defaults["budget"],
        }
        result = await self.run_mutation(
            "convert",
            lambda: self.client.rpc("convert_lead_to_project", params),
            success="Lead converted to project",
            confirm=confirm,
        )
        if result is None:
            return None
        if not result.data:
            raise DataError("P0002", "Conversion did not return a project")
        return str(result.data)
