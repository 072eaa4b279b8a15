import json
from pathlib import Path

from fastapi import Header

from formflow.config import get_settings
from formflow.exceptions import AuthenticationError
from formflow.models.responses import Submitter


class UserStore:
    """Reads bearer tokens from a local JSON file: {token: {"user_id": ..., "email": ...}}."""

    def __init__(self, path: Path):
        self.path = path

    def _read_all(self) -> dict:
        if not self.path.exists():
            return {}
        return json.loads(self.path.read_text())

    def get(self, token: str) -> dict | None:
        return self._read_all().get(token)

    def save(self, token: str, user_id: str, email: str | None = None) -> None:
        all_users = self._read_all()
        all_users[token] = {"user_id": user_id, "email": email}
        self.path.write_text(json.dumps(all_users, indent=2))


def _get_user_store() -> UserStore:
    return UserStore(get_settings().users_file)


def _bearer_token(authorization: str | None) -> str | None:
    if not authorization:
        return None
    parts = authorization.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        return None
    return parts[1]


def resolve_user(authorization: str | None) -> Submitter:
    """Map an Authorization header to a submitter. Unknown tokens count as anonymous."""
    token = _bearer_token(authorization)
    if token is None:
        return Submitter()
    user = _get_user_store().get(token)
    if not user or not user.get("user_id"):
        return Submitter()
    return Submitter(user_id=user["user_id"], email=user.get("email"))


def get_current_user(authorization: str | None = Header(None)) -> Submitter:
    return resolve_user(authorization)


def require_user(authorization: str | None = Header(None)) -> Submitter:
    user = resolve_user(authorization)
    if user.is_anonymous:
        raise AuthenticationError("Authentication required")
    return user
