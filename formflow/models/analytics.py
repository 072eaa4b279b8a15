from typing import Any

from pydantic import BaseModel


class NumericSummary(BaseModel):
    min: float
    max: float
    mean: float


class FieldAnalytics(BaseModel):
    field_name: str
    field_label: str
    field_type: str
    response_count: int = 0
    most_common_value: Any = None
    distribution: dict[str, int] | None = None
    numeric_summary: NumericSummary | None = None
    in_schema: bool = True


class FormAnalytics(BaseModel):
    form_id: str
    total_responses: int
    completion_rate: float
    average_completion_time: float | None = None  # seconds
    per_field: list[FieldAnalytics]
    skipped_records: int = 0
