import pytest

from fastapi.testclient import TestClient

from formflow.auth import UserStore
from formflow.models.fields import FieldDefinition
from formflow.models.forms import Form, FormSettings, FormStatus
from formflow.services.aggregator import get_analytics_cache
from formflow.services.storage import FormStore


# --- Canned form definitions ---

SURVEY_FIELDS = [
    {"name": "name", "label": "Name", "type": "text", "required": True, "order": 1},
    {"name": "email", "label": "Email", "type": "email", "order": 2},
    {
        "name": "age", "label": "Age", "type": "number", "order": 3,
        "constraints": {"minimum": 18, "maximum": 120},
    },
    {
        "name": "color", "label": "Favorite color", "type": "radio", "order": 4,
        "options": [{"value": "red", "label": "Red"}, {"value": "blue", "label": "Blue"}],
    },
    {
        "name": "toppings", "label": "Toppings", "type": "checkbox", "order": 5,
        "options": [{"value": "a"}, {"value": "b"}, {"value": "c"}],
    },
    {"name": "born", "label": "Birth date", "type": "date", "order": 6},
    {"name": "cv", "label": "CV", "type": "file", "order": 7},
]

OWNER = "user-owner"
EDITOR = "user-editor"
STRANGER = "user-stranger"

TOKENS = {
    "owner-token": {"user_id": OWNER, "email": "owner@example.com"},
    "editor-token": {"user_id": EDITOR, "email": "editor@example.com"},
    "stranger-token": {"user_id": STRANGER, "email": "stranger@example.com"},
}


def auth(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


def make_form(form_id: str = "form1", fields: list[dict] | None = None, **overrides) -> Form:
    settings = overrides.pop("settings", {})
    return Form(
        id=form_id,
        title=overrides.pop("title", "Survey"),
        fields=[FieldDefinition.model_validate(f) for f in (fields or SURVEY_FIELDS)],
        creator=overrides.pop("creator", OWNER),
        status=overrides.pop("status", FormStatus.ACTIVE),
        settings=FormSettings(**settings),
        **overrides,
    )


@pytest.fixture(autouse=True)
def fresh_cache():
    get_analytics_cache().clear()
    yield
    get_analytics_cache().clear()


@pytest.fixture
def store(mocker):
    """In-memory form store wired into every service."""
    mem = FormStore()
    mocker.patch("formflow.services.storage.get_store", return_value=mem)
    return mem


@pytest.fixture
def users(tmp_path, mocker):
    user_store = UserStore(tmp_path / "users.json")
    for token, user in TOKENS.items():
        user_store.save(token, user["user_id"], user["email"])
    mocker.patch("formflow.auth._get_user_store", return_value=user_store)
    return user_store


@pytest.fixture
def api_client(store, users):
    """FastAPI TestClient for router tests."""
    from formflow.main import api
    return TestClient(api)
