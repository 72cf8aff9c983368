"""Chart series computed from already-fetched rows.

All functions are pure. Rows are bucketed by the ``YYYY-MM`` prefix of their
``created_at``; every ratio is guarded so an empty denominator yields 0.
"""

from __future__ import annotations

import csv
import io
import random
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Any


TIME_RANGES = {"1m": 1, "3m": 3, "6m": 6, "1y": 12}
DEFAULT_TIME_RANGE = "6m"
FORECAST_CONVERSION = Decimal("0.3")
TARGET_GROWTH = Decimal("1.2")

COLORS = (
    "hsl(var(--chart-1))",
    "hsl(var(--chart-2))",
    "hsl(var(--chart-3))",
    "hsl(var(--chart-4))",
    "hsl(var(--chart-5))",
)


@dataclass(frozen=True)
class MonthBucket:
    key: str
    label: str
    start: date


def ratio(numerator: Any, denominator: Any, scale: int = 100, digits: int = 1) -> float:
    denominator = float(denominator or 0)
    if denominator <= 0:
        return 0.0
    return round(float(numerator or 0) / denominator * scale, digits)


def _money(value: Any) -> Decimal:
    return Decimal(str(value)) if value is not None else Decimal("0")


def _shift_months(day: date, months: int) -> date:
    index = day.year * 12 + (day.month - 1) + months
    return date(index // 12, index % 12 + 1, 1)


def range_start(time_range: str, today: date) -> date:
    months = TIME_RANGES.get(time_range, TIME_RANGES[DEFAULT_TIME_RANGE])
    return _shift_months(today.replace(day=1), -months)


def month_buckets(start: date, end: date) -> list[MonthBucket]:
    buckets: list[MonthBucket] = []
    current = start.replace(day=1)
    while current <= end:
        buckets.append(MonthBucket(key=current.strftime("%Y-%m"), label=current.strftime("%b %Y"), start=current))
        current = _shift_months(current, 1)
    return buckets


def month_key(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, (datetime, date)):
        return value.strftime("%Y-%m")
    return str(value)[:7]


def _group_by_month(rows: Iterable[Mapping[str, Any]], field: str = "created_at") -> dict[str, list[Mapping[str, Any]]]:
    grouped: dict[str, list[Mapping[str, Any]]] = {}
    for row in rows:
        key = month_key(row.get(field))
        if key is not None:
            grouped.setdefault(key, []).append(row)
    return grouped


def conversion_trend(
    leads: Sequence[Mapping[str, Any]],
    customers: Sequence[Mapping[str, Any]],
    buckets: Sequence[MonthBucket],
) -> list[dict[str, Any]]:
    leads_by_month = _group_by_month(leads)
    customers_by_month = _group_by_month(customers)
    series = []
    for bucket in buckets:
        lead_count = len(leads_by_month.get(bucket.key, []))
        conversions = len(customers_by_month.get(bucket.key, []))
        series.append(
            {
                "month": bucket.label,
                "key": bucket.key,
                "leads": lead_count,
                "conversions": conversions,
                "rate": ratio(conversions, lead_count),
            }
        )
    return series


def lead_sources(leads: Sequence[Mapping[str, Any]]) -> list[dict[str, Any]]:
    totals: dict[str, dict[str, Any]] = {}
    for lead in leads:
        source = lead.get("source") or "Unknown"
        entry = totals.setdefault(source, {"count": 0, "value": Decimal("0")})
        entry["count"] += 1
        entry["value"] += _money(lead.get("deal_value"))

    total = len(leads)
    series = [
        {
            "source": source,
            "count": entry["count"],
            "value": entry["value"],
            "percentage": ratio(entry["count"], total),
            "color": COLORS[index % len(COLORS)],
        }
        for index, (source, entry) in enumerate(totals.items())
    ]
    return sorted(series, key=lambda item: item["count"], reverse=True)


def pipeline_funnel(leads: Sequence[Mapping[str, Any]], stages: Sequence[Mapping[str, Any]]) -> list[dict[str, Any]]:
    ordered = sorted(stages, key=lambda stage: stage["stage_order"])
    series = []
    previous: int | None = None
    for stage in ordered:
        in_stage = [lead for lead in leads if str(lead.get("pipeline_stage_id")) == str(stage["id"])]
        count = len(in_stage)
        if previous is None:
            conversion = 100.0 if count else 0.0
        else:
            conversion = ratio(count, previous)
        series.append(
            {
                "stage": stage["name"],
                "count": count,
                "value": sum((_money(lead.get("deal_value")) for lead in in_stage), Decimal("0")),
                "conversion_from_previous": conversion,
            }
        )
        previous = count
    return series


def open_pipeline_value(leads: Sequence[Mapping[str, Any]]) -> Decimal:
    return sum((_money(lead.get("deal_value")) for lead in leads if not lead.get("converted_to_customer")), Decimal("0"))


def revenue_forecast(
    invoices: Sequence[Mapping[str, Any]],
    leads: Sequence[Mapping[str, Any]],
    buckets: Sequence[MonthBucket],
) -> list[dict[str, Any]]:
    paid_by_month = _group_by_month(invoice for invoice in invoices if invoice.get("status") == "paid")
    pipeline_value = open_pipeline_value(leads)
    series = []
    for bucket in buckets:
        actual = sum((_money(invoice.get("amount")) for invoice in paid_by_month.get(bucket.key, [])), Decimal("0"))
        series.append(
            {
                "month": bucket.start.strftime("%b"),
                "key": bucket.key,
                "actual": actual,
                "forecast": (actual + pipeline_value * FORECAST_CONVERSION).quantize(Decimal("0.01")),
                "target": (actual * TARGET_GROWTH).quantize(Decimal("0.01")),
            }
        )
    return series


def activity_counts(activities: Sequence[Mapping[str, Any]]) -> list[dict[str, Any]]:
    counts: dict[str, int] = {}
    for activity in activities:
        kind = activity.get("activity_type") or "call"
        counts[kind] = counts.get(kind, 0) + 1
    return [{"activity": kind.replace("_", " ").capitalize(), "count": count} for kind, count in counts.items()]


def summary(
    leads: Sequence[Mapping[str, Any]],
    customers: Sequence[Mapping[str, Any]],
) -> dict[str, Any]:
    converted = sum(1 for lead in leads if lead.get("converted_to_customer"))
    values = [_money(lead.get("deal_value")) for lead in leads if lead.get("deal_value") is not None]
    average = (sum(values, Decimal("0")) / len(values)).quantize(Decimal("0.01")) if values else Decimal("0")
    return {
        "total_leads": len(leads),
        "converted_leads": converted,
        "new_customers": len(customers),
        "conversion_rate": ratio(converted, len(leads)),
        "pipeline_value": open_pipeline_value(leads),
        "average_deal_value": average,
    }


# Placeholder series. Nothing in the store records deal cycle times, activity
# outcomes or rep assignments, so these are generated and always marked synthetic.


def synthetic_deal_velocity(rng: random.Random) -> dict[str, Any]:
    data = [
        {"period": f"Week {week}", "avg_days": rng.randint(14, 43), "avg_value": rng.randint(5000, 14999)}
        for week in range(1, 5)
    ]
    return {"synthetic": True, "data": data}


def synthetic_activity_effectiveness(counts: Sequence[Mapping[str, Any]], rng: random.Random) -> dict[str, Any]:
    data = [{**entry, "effectiveness": rng.randint(0, 99)} for entry in counts]
    return {"synthetic": True, "data": data}


def synthetic_sales_rep_performance(customers: Sequence[Mapping[str, Any]]) -> dict[str, Any]:
    data = [
        {"rep": "Admin User", "deals": len(customers), "revenue": len(customers) * 5000, "conversion_rate": 25},
        {"rep": "Sales Rep 1", "deals": 8, "revenue": 45000, "conversion_rate": 32},
        {"rep": "Sales Rep 2", "deals": 12, "revenue": 67000, "conversion_rate": 28},
    ]
    return {"synthetic": True, "data": data}


def conversion_trend_csv(trend: Sequence[Mapping[str, Any]]) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(["Month", "Leads", "Conversions", "Rate"])
    for item in trend:
        writer.writerow([item["month"], item["leads"], item["conversions"], f"{item['rate']:.2f}%"])
    return buffer.getvalue()
