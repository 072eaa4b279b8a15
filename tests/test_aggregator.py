from datetime import datetime, timedelta, timezone

from formflow.models.responses import NormalizedAnswer, StoredResponse
from formflow.services.aggregator import AnalyticsCache, FormAggregate, aggregate
from tests.conftest import make_form

T0 = datetime(2026, 1, 1, tzinfo=timezone.utc)

RATING_FIELDS = [{
    "name": "rating", "label": "Rating", "type": "radio", "required": True,
    "options": [{"value": "1"}, {"value": "3"}, {"value": "5"}],
}]


def _response(rid: str, answers: dict, types: dict | None = None, labels: dict | None = None, **kwargs) -> StoredResponse:
    types = types or {}
    labels = labels or {}
    return StoredResponse(
        id=rid,
        form_id="form1",
        answers=[
            NormalizedAnswer(
                field_name=name,
                field_label=labels.get(name, name.title()),
                field_type=types.get(name, "radio"),
                value=value,
            )
            for name, value in answers.items()
        ],
        **kwargs,
    )


def _field(analytics, name):
    return next(f for f in analytics.per_field if f.field_name == name)


class TestChoiceFields:
    def test_distribution_and_most_common(self):
        form = make_form(fields=RATING_FIELDS)
        corpus = [
            _response("r1", {"rating": "5"}),
            _response("r2", {"rating": "5"}),
            _response("r3", {"rating": "3"}),
        ]
        analytics = aggregate(form, corpus)
        rating = _field(analytics, "rating")
        assert rating.most_common_value == "5"
        assert rating.distribution == {"5": 2, "3": 1}
        assert rating.response_count == 3
        assert analytics.total_responses == 3

    def test_tie_goes_to_first_seen(self):
        form = make_form(fields=RATING_FIELDS)
        corpus = [_response("r1", {"rating": "3"}), _response("r2", {"rating": "5"})]
        assert _field(aggregate(form, corpus), "rating").most_common_value == "3"

    def test_multi_choice_counts_each_option(self):
        form = make_form()
        corpus = [
            _response("r1", {"toppings": ["a", "b"]}, types={"toppings": "checkbox"}),
            _response("r2", {"toppings": ["b"]}, types={"toppings": "checkbox"}),
        ]
        toppings = _field(aggregate(form, corpus), "toppings")
        assert toppings.distribution == {"a": 1, "b": 2}
        assert toppings.most_common_value == "b"
        assert toppings.response_count == 2


class TestNumericFields:
    def test_summary(self):
        form = make_form()
        corpus = [
            _response(f"r{i}", {"age": v}, types={"age": "number"})
            for i, v in enumerate([20, 30, 40])
        ]
        summary = _field(aggregate(form, corpus), "age").numeric_summary
        assert (summary.min, summary.max, summary.mean) == (20, 40, 30)

    def test_no_values_no_summary(self):
        age = _field(aggregate(make_form(), []), "age")
        assert age.numeric_summary is None
        assert age.response_count == 0


class TestFormLevel:
    def test_empty_corpus(self):
        analytics = aggregate(make_form(), [])
        assert analytics.total_responses == 0
        assert analytics.completion_rate == 0.0
        assert analytics.average_completion_time is None

    def test_completion_rate(self):
        form = make_form(fields=RATING_FIELDS)
        corpus = [
            _response("r1", {"rating": "5"}),
            _response("r2", {"rating": ""}),
        ]
        assert aggregate(form, corpus).completion_rate == 0.5

    def test_average_completion_time(self):
        form = make_form(fields=RATING_FIELDS)
        corpus = [
            _response("r1", {"rating": "5"}, started_at=T0, submitted_at=T0 + timedelta(seconds=30)),
            _response("r2", {"rating": "5"}, started_at=T0, submitted_at=T0 + timedelta(seconds=90)),
            _response("r3", {"rating": "5"}, submitted_at=T0),
        ]
        assert aggregate(form, corpus).average_completion_time == 60

    def test_text_fields_report_count_only(self):
        form = make_form()
        name = _field(aggregate(form, [_response("r1", {"name": "Al"}, types={"name": "text"})]), "name")
        assert name.response_count == 1
        assert name.distribution is None
        assert name.numeric_summary is None


class TestTolerance:
    def test_corrupted_records_skipped(self):
        form = make_form(fields=RATING_FIELDS)
        corpus = [
            _response("r1", {"rating": "5"}).model_dump(mode="json"),
            {"id": "broken", "answers": "not-a-list"},
            "garbage",
        ]
        analytics = aggregate(form, corpus)
        assert analytics.total_responses == 1
        assert analytics.skipped_records == 2

    def test_removed_field_uses_snapshot(self):
        form = make_form(fields=RATING_FIELDS)
        corpus = [_response("r1", {"rating": "5", "mood": "happy"}, labels={"mood": "Mood"})]
        mood = _field(aggregate(form, corpus), "mood")
        assert mood.in_schema is False
        assert mood.field_label == "Mood"
        assert mood.distribution == {"happy": 1}

    def test_relabel_keeps_snapshot_label(self):
        corpus = [_response("r1", {"rating": "5"}, labels={"rating": "Rating"})]
        before = aggregate(make_form(fields=RATING_FIELDS), corpus)
        relabeled = [dict(RATING_FIELDS[0], label="Score (1-5)")]
        after = aggregate(make_form(fields=relabeled), corpus)
        assert _field(after, "rating") == _field(before, "rating")

    def test_renamed_field_keeps_history(self):
        corpus = [_response("r1", {"rating": "5"}), _response("r2", {"rating": "3"})]
        before = _field(aggregate(make_form(fields=RATING_FIELDS), corpus), "rating")
        renamed = [dict(RATING_FIELDS[0], name="score")]
        analytics = aggregate(make_form(fields=renamed), corpus)
        old = _field(analytics, "rating")
        assert old.distribution == before.distribution
        assert old.field_label == before.field_label
        assert _field(analytics, "score").response_count == 0


class TestIncremental:
    def test_add_matches_full_scan(self):
        form = make_form(fields=RATING_FIELDS)
        corpus = [_response(f"r{i}", {"rating": v}) for i, v in enumerate("5535")]
        agg = FormAggregate(form)
        for record in corpus:
            agg.add(record)
        assert agg.snapshot() == aggregate(form, corpus)

    def test_same_record_counted_once(self):
        agg = FormAggregate(make_form(fields=RATING_FIELDS))
        record = _response("r1", {"rating": "5"})
        assert agg.add(record) is True
        assert agg.add(record) is False
        assert agg.snapshot().total_responses == 1

    def test_cache_records_new_submissions(self):
        form = make_form(fields=RATING_FIELDS)
        cache = AnalyticsCache()
        loads = []

        def load():
            loads.append(1)
            return [_response("r1", {"rating": "5"})]

        assert cache.get(form, load).total_responses == 1
        cache.record(form.id, _response("r2", {"rating": "3"}))
        analytics = cache.get(form, load)
        assert analytics.total_responses == 2
        assert len(loads) == 1

    def test_cache_rebuilds_after_invalidate_or_form_change(self):
        form = make_form(fields=RATING_FIELDS)
        cache = AnalyticsCache()
        loads = []

        def load():
            loads.append(1)
            return []

        cache.get(form, load)
        cache.invalidate(form.id)
        cache.get(form, load)
        cache.get(form.model_copy(update={"updated_at": T0}), load)
        assert len(loads) == 3

    def test_record_without_entry_is_noop(self):
        cache = AnalyticsCache()
        cache.record("form1", _response("r1", {"rating": "5"}))
        form = make_form(fields=RATING_FIELDS)
        assert cache.get(form, lambda: []).total_responses == 0
