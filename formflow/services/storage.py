import json
import logging
import os
import threading
from functools import lru_cache
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from formflow.config import get_settings
from formflow.exceptions import StorageUnavailableError
from formflow.models.forms import Form

logger = logging.getLogger(__name__)


class FormStore:
    """Forms and their responses in one JSON document.

    With ``path=None`` nothing touches disk. Every operation holds the store
    lock, which makes counting and storing a response under the quota atomic
    within a process.
    """

    def __init__(self, path: Path | None = None):
        self.path = path
        self._lock = threading.RLock()
        self._doc: dict | None = None if path is not None else {"forms": {}, "responses": {}}

    def _read_all(self) -> dict:
        if self._doc is None:
            try:
                if self.path.exists():
                    doc = json.loads(self.path.read_text())
                else:
                    doc = {}
            except (OSError, ValueError) as e:
                logger.error("Could not read %s: %s", self.path, e)
                raise StorageUnavailableError(f"Could not read form store: {e}") from e
            doc.setdefault("forms", {})
            doc.setdefault("responses", {})
            self._doc = doc
        return self._doc

    def _flush(self) -> None:
        if self.path is None:
            return
        tmp = self.path.with_name(self.path.name + ".tmp")
        try:
            tmp.write_text(json.dumps(self._doc, indent=2))
            os.replace(tmp, self.path)
        except OSError as e:
            logger.error("Could not write %s: %s", self.path, e)
            # reload from disk on next access so memory matches what was persisted
            self._doc = None
            raise StorageUnavailableError(f"Could not write form store: {e}") from e

    # --- forms ---

    def load_schema(self, form_id: str) -> Form | None:
        with self._lock:
            data = self._read_all()["forms"].get(form_id)
        if data is None:
            return None
        try:
            return Form.model_validate(data)
        except ValidationError as e:
            raise StorageUnavailableError(f"Stored form {form_id} is unreadable") from e

    def save_form(self, form: Form) -> None:
        """Insert or replace a form. The response count of an existing form is kept;
        only the counter operations change it."""
        with self._lock:
            forms = self._read_all()["forms"]
            data = form.model_dump(mode="json")
            if form.id in forms:
                data["response_count"] = forms[form.id].get("response_count", 0)
            forms[form.id] = data
            self._flush()

    def delete_form(self, form_id: str) -> bool:
        with self._lock:
            doc = self._read_all()
            removed = doc["forms"].pop(form_id, None) is not None
            doc["responses"].pop(form_id, None)
            if removed:
                self._flush()
            return removed

    def list_forms(self, user_id: str) -> list[Form]:
        with self._lock:
            forms = list(self._read_all()["forms"].values())
        result = []
        for data in forms:
            try:
                form = Form.model_validate(data)
            except ValidationError:
                logger.warning("Skipping unreadable form %s", data.get("id"))
                continue
            if form.role_of(user_id) is not None:
                result.append(form)
        return result

    @staticmethod
    def _under_quota(data: dict | None) -> bool:
        if data is None:
            return False
        limit = (data.get("settings") or {}).get("max_responses")
        return limit is None or data.get("response_count", 0) < limit

    def append_answer_set_if_under_quota(self, record: dict[str, Any]) -> bool:
        """Count and store a response in one write, unless the form's quota is reached.

        A failed write leaves neither the count nor the record behind.
        """
        with self._lock:
            doc = self._read_all()
            data = doc["forms"].get(record["form_id"])
            if not self._under_quota(data):
                return False
            data["response_count"] = data.get("response_count", 0) + 1
            doc["responses"].setdefault(record["form_id"], []).append(record)
            self._flush()
            return True

    def decrement_response_count(self, form_id: str) -> None:
        with self._lock:
            data = self._read_all()["forms"].get(form_id)
            if data is None:
                return
            data["response_count"] = max(0, data.get("response_count", 0) - 1)
            self._flush()

    # --- responses ---

    def load_answer_sets(self, form_id: str) -> list[dict[str, Any]]:
        with self._lock:
            return list(self._read_all()["responses"].get(form_id, []))

    def get_answer_set(self, form_id: str, response_id: str) -> dict[str, Any] | None:
        for record in self.load_answer_sets(form_id):
            if isinstance(record, dict) and record.get("id") == response_id:
                return record
        return None

    def update_answer_set(self, form_id: str, response_id: str, record: dict[str, Any]) -> bool:
        with self._lock:
            records = self._read_all()["responses"].get(form_id, [])
            for i, existing in enumerate(records):
                if isinstance(existing, dict) and existing.get("id") == response_id:
                    records[i] = record
                    self._flush()
                    return True
            return False

    def delete_answer_set(self, form_id: str, response_id: str) -> bool:
        with self._lock:
            records = self._read_all()["responses"].get(form_id, [])
            for i, existing in enumerate(records):
                if isinstance(existing, dict) and existing.get("id") == response_id:
                    del records[i]
                    self._flush()
                    return True
            return False


@lru_cache
def get_store() -> FormStore:
    return FormStore(get_settings().data_file)
