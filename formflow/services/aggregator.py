"""Per-field and per-form statistics over stored responses.

Statistics are folded one response at a time into a :class:`FormAggregate`,
so the same code serves a full scan (:func:`aggregate`) and the incremental
:class:`AnalyticsCache` that absorbs each accepted submission as it arrives.
"""

import logging
import threading
from collections import Counter
from functools import lru_cache
from typing import Any, Callable, Iterable

from pydantic import ValidationError

from formflow.models.analytics import FieldAnalytics, FormAnalytics, NumericSummary
from formflow.models.fields import ordered_fields
from formflow.models.forms import Form
from formflow.models.responses import NormalizedAnswer, StoredResponse
from formflow.services.field_types import (
    FieldTypeDescriptor,
    ValueShape,
    describe,
    group_key,
    is_empty,
)

logger = logging.getLogger(__name__)


def _descriptor(field_type: str) -> FieldTypeDescriptor | None:
    try:
        return describe(field_type)
    except ValueError:
        return None


class _FieldTally:
    def __init__(self, name: str, label: str | None, field_type: str | None, in_schema: bool):
        self.name = name
        self.label = label
        self.field_type = field_type
        self.in_schema = in_schema
        self.snapshot_taken = False
        self.count = 0
        self.frequencies: Counter = Counter()
        self.numbers = 0
        self.total = 0.0
        self.low: float | None = None
        self.high: float | None = None

    def add(self, answer: NormalizedAnswer) -> None:
        if not self.snapshot_taken:
            # the first stored answer fixes label and type for reporting
            self.label = answer.field_label
            self.field_type = answer.field_type
            self.snapshot_taken = True
        if is_empty(answer.value):
            return
        self.count += 1

        descriptor = _descriptor(answer.field_type)
        if descriptor is None:
            return
        if descriptor.is_choice:
            values = answer.value if descriptor.is_multi else [answer.value]
            if not isinstance(values, list):
                logger.warning("Skipping malformed %s value for field %s", answer.field_type, self.name)
                return
            for v in values:
                self.frequencies[group_key(v)] += 1
        elif descriptor.value_shape == ValueShape.NUMBER:
            value = answer.value
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                logger.warning("Skipping non-numeric value for field %s", self.name)
                return
            self.numbers += 1
            self.total += value
            self.low = value if self.low is None else min(self.low, value)
            self.high = value if self.high is None else max(self.high, value)

    def _most_common(self) -> str | None:
        best, best_count = None, 0
        # Counter keeps first-seen order, so ties go to the earliest value
        for value, count in self.frequencies.items():
            if count > best_count:
                best, best_count = value, count
        return best

    def result(self) -> FieldAnalytics:
        analytics = FieldAnalytics(
            field_name=self.name,
            field_label=self.label or self.name,
            field_type=self.field_type or "",
            response_count=self.count,
            in_schema=self.in_schema,
        )
        descriptor = _descriptor(self.field_type or "")
        if descriptor is None:
            return analytics
        if descriptor.is_choice:
            analytics.distribution = dict(self.frequencies)
            analytics.most_common_value = self._most_common()
        elif descriptor.value_shape == ValueShape.NUMBER and self.numbers:
            analytics.numeric_summary = NumericSummary(
                min=self.low, max=self.high, mean=self.total / self.numbers,
            )
        return analytics


class FormAggregate:
    """Running statistics for one form."""

    def __init__(self, form: Form):
        self.form_id = form.id
        self.version = form.updated_at
        self._required = [f.name for f in form.fields if f.required]
        self._tallies: dict[str, _FieldTally] = {
            f.name: _FieldTally(f.name, f.label, f.type.value, in_schema=True)
            for f in ordered_fields(form.fields)
        }
        self._seen: set[str] = set()
        self.total = 0
        self.complete = 0
        self.skipped = 0
        self._durations = 0
        self._duration_sum = 0.0

    def add(self, record: StoredResponse | dict[str, Any]) -> bool:
        """Fold one response in. Returns False if it was skipped or already counted."""
        if not isinstance(record, StoredResponse):
            try:
                record = StoredResponse.model_validate(record)
            except ValidationError as e:
                self.skipped += 1
                logger.warning(
                    "Skipping corrupted response record for form %s: %d validation errors",
                    self.form_id, e.error_count(),
                )
                return False
        if record.id in self._seen:
            return False
        self._seen.add(record.id)
        self.total += 1

        present = set()
        for answer in record.answers:
            tally = self._tallies.get(answer.field_name)
            if tally is None:
                tally = _FieldTally(answer.field_name, None, None, in_schema=False)
                self._tallies[answer.field_name] = tally
            tally.add(answer)
            if not is_empty(answer.value):
                present.add(answer.field_name)
        if all(name in present for name in self._required):
            self.complete += 1

        if record.started_at is not None:
            elapsed = (record.submitted_at - record.started_at).total_seconds()
            if elapsed >= 0:
                self._durations += 1
                self._duration_sum += elapsed
        return True

    def snapshot(self) -> FormAnalytics:
        return FormAnalytics(
            form_id=self.form_id,
            total_responses=self.total,
            completion_rate=self.complete / self.total if self.total else 0.0,
            average_completion_time=(
                self._duration_sum / self._durations if self._durations else None
            ),
            per_field=[t.result() for t in self._tallies.values()],
            skipped_records=self.skipped,
        )


def aggregate(form: Form, answer_sets: Iterable[StoredResponse | dict[str, Any]]) -> FormAnalytics:
    agg = FormAggregate(form)
    for record in answer_sets:
        agg.add(record)
    return agg.snapshot()


class AnalyticsCache:
    """Per-form aggregates, built on first request and updated on each accepted submission."""

    def __init__(self):
        self._lock = threading.Lock()
        self._entries: dict[str, FormAggregate] = {}

    def get(self, form: Form, load: Callable[[], Iterable[StoredResponse | dict[str, Any]]]) -> FormAnalytics:
        with self._lock:
            entry = self._entries.get(form.id)
            if entry is None or entry.version != form.updated_at:
                entry = FormAggregate(form)
                for record in load():
                    entry.add(record)
                self._entries[form.id] = entry
            return entry.snapshot()

    def record(self, form_id: str, response: StoredResponse) -> None:
        with self._lock:
            entry = self._entries.get(form_id)
            if entry is not None:
                entry.add(response)

    def invalidate(self, form_id: str) -> None:
        with self._lock:
            if self._entries.pop(form_id, None) is not None:
                logger.debug("Dropped cached analytics for form %s", form_id)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()


@lru_cache
def get_analytics_cache() -> AnalyticsCache:
    return AnalyticsCache()
