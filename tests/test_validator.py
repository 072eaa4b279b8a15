from formflow.models.responses import FieldErrorKind, FileRef, ValidationFailure, ValidationSuccess
from formflow.services.validator import answers_as_values, validate
from tests.conftest import make_form

VALID = {
    "name": "Alice",
    "email": "alice@example.com",
    "age": "30",
    "color": "blue",
    "toppings": ["a", "c"],
    "born": "1995-04-02",
    "cv": "upload-123",
}


class TestValidateSuccess:
    def test_normalizes_values(self):
        result = validate(make_form(), VALID)
        assert isinstance(result, ValidationSuccess)
        by_name = {a.field_name: a for a in result.answers}
        assert by_name["age"].value == 30
        assert by_name["toppings"].value == ["a", "c"]
        assert by_name["color"].field_label == "Favorite color"
        assert by_name["color"].field_type == "radio"

    def test_answers_follow_field_order(self):
        fields = [
            {"name": "second", "label": "Second", "type": "text", "order": 2},
            {"name": "first", "label": "First", "type": "text", "order": 1},
            {"name": "tie", "label": "Tie", "type": "text", "order": 2},
        ]
        result = validate(make_form(fields=fields), {"first": "1", "second": "2", "tie": "3"})
        assert [a.field_name for a in result.answers] == ["first", "second", "tie"]

    def test_optional_missing_fields_skipped(self):
        result = validate(make_form(), {"name": "Alice"})
        assert isinstance(result, ValidationSuccess)
        assert [a.field_name for a in result.answers] == ["name"]

    def test_unknown_keys_ignored(self):
        result = validate(make_form(), {"name": "Alice", "legacy_field": "x"})
        assert isinstance(result, ValidationSuccess)
        assert len(result.answers) == 1

    def test_upload_gets_file_refs(self):
        result = validate(make_form(), {"name": "Alice", "cv": ["t1", "t2"]})
        cv = [a for a in result.answers if a.field_name == "cv"][0]
        assert cv.files == [FileRef(token="t1"), FileRef(token="t2")]

    def test_custom_file_resolver(self):
        def resolver(tokens):
            return [FileRef(token=t, filename=f"{t}.pdf") for t in tokens]

        result = validate(make_form(), {"name": "Alice", "cv": "t1"}, resolve_files=resolver)
        cv = [a for a in result.answers if a.field_name == "cv"][0]
        assert cv.files[0].filename == "t1.pdf"

    def test_revalidating_normalized_answers_is_stable(self):
        form = make_form()
        first = validate(form, VALID)
        second = validate(form, answers_as_values(first.answers))
        assert isinstance(second, ValidationSuccess)
        assert answers_as_values(second.answers) == answers_as_values(first.answers)


class TestValidateFailure:
    def test_required_missing(self):
        for empty in (None, "", [], "  "):
            result = validate(make_form(), {"name": empty})
            assert isinstance(result, ValidationFailure)
            assert result.errors[0].field_name == "name"
            assert result.errors[0].kind == FieldErrorKind.REQUIRED_MISSING

    def test_collects_every_error(self):
        result = validate(make_form(), {
            "email": "not-an-email",
            "age": "200",
            "color": "green",
            "toppings": ["a", "a"],
            "born": "yesterday",
        })
        assert isinstance(result, ValidationFailure)
        kinds = {e.field_name: e.kind for e in result.errors}
        assert kinds == {
            "name": FieldErrorKind.REQUIRED_MISSING,
            "email": FieldErrorKind.INVALID_FORMAT,
            "age": FieldErrorKind.OUT_OF_RANGE,
            "color": FieldErrorKind.INVALID_OPTION,
            "toppings": FieldErrorKind.DUPLICATE_OPTION,
            "born": FieldErrorKind.INVALID_FORMAT,
        }

    def test_errors_keyed_by_field(self):
        result = validate(make_form(), {"age": "abc"})
        grouped = result.errors_by_field()
        assert set(grouped) == {"name", "age"}

    def test_out_of_range_names_bound(self):
        fields = [{
            "name": "rating", "label": "Rating", "type": "number",
            "constraints": {"minimum": 1, "maximum": 5},
        }]
        result = validate(make_form(fields=fields), {"rating": "6"})
        assert result.errors[0].kind == FieldErrorKind.OUT_OF_RANGE
        assert result.errors[0].context == {"maximum": 5}

        ok = validate(make_form(fields=fields), {"rating": "3"})
        assert ok.answers[0].value == 3

    def test_huge_number_is_a_field_error(self):
        result = validate(make_form(), {"name": "Alice", "age": 10**400})
        assert isinstance(result, ValidationFailure)
        assert [(e.field_name, e.kind) for e in result.errors] == [("age", FieldErrorKind.INVALID_FORMAT)]

    def test_no_partial_success(self):
        result = validate(make_form(), {"name": "Alice", "age": "17"})
        assert isinstance(result, ValidationFailure)
        assert not hasattr(result, "answers")

    def test_none_values_treated_as_empty_answer_set(self):
        result = validate(make_form(), None)
        assert isinstance(result, ValidationFailure)
        assert [e.kind for e in result.errors] == [FieldErrorKind.REQUIRED_MISSING]
