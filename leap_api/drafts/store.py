"""
Local Draft Store

Client-side convenience cache: contact details used to prefill forms, and the
receipt of a completed submission. Never the system of record; a receipt only
lets the client skip a submission it already made from this device.
"""
import json
import logging
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterator, Mapping, MutableMapping, Optional

from leap_api.errors import ReceiptExists

logger = logging.getLogger(__name__)

CONTACT_KEY = "leap_user_details"
RECEIPT_KEY = "leap_assessment_data"
CONTACT_FIELDS = ("full_name", "email", "company", "role", "phone")


class JsonFileStorage(MutableMapping[str, str]):
    """A string-to-string mapping persisted as one JSON file."""

    def __init__(self, path: os.PathLike | str):
        self.path = Path(path)

    def _load(self) -> Dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"Failed to read draft storage {self.path}: {e}")
            return {}
        return data if isinstance(data, dict) else {}

    def _dump(self, data: Dict[str, str]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp_path.write_text(json.dumps(data), encoding="utf-8")
        tmp_path.replace(self.path)

    def __getitem__(self, key: str) -> str:
        return self._load()[key]

    def __setitem__(self, key: str, value: str) -> None:
        data = self._load()
        data[key] = value
        self._dump(data)

    def __delitem__(self, key: str) -> None:
        data = self._load()
        del data[key]
        self._dump(data)

    def __iter__(self) -> Iterator[str]:
        return iter(self._load())

    def __len__(self) -> int:
        return len(self._load())


def _present(value: Any) -> bool:
    return bool(value.strip()) if isinstance(value, str) else bool(value)


class LocalDraftStore:
    def __init__(self, storage: Optional[MutableMapping[str, str]] = None):
        self.storage: MutableMapping[str, str] = storage if storage is not None else {}

    def _read(self, key: str) -> Dict[str, Any]:
        raw = self.storage.get(key)
        if not raw:
            return {}
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            logger.error(f"Discarding unreadable draft entry {key}: {e}")
            return {}
        return data if isinstance(data, dict) else {}

    def _write(self, key: str, data: Dict[str, Any]) -> None:
        self.storage[key] = json.dumps(data)

    # --- Contact prefill ---

    def get_contact(self) -> Dict[str, Any]:
        return self._read(CONTACT_KEY)

    def save_contact(self, **fields: Any) -> Dict[str, Any]:
        """Merges non-empty values over the stored contact details."""
        updated = self.get_contact()
        updated.update({key: value for key, value in fields.items() if _present(value)})
        self._write(CONTACT_KEY, updated)
        return updated

    def merge_profile(self, profile: Mapping[str, Any]) -> Dict[str, Any]:
        """
        Merges the authoritative profile into the local contact details.

        A stored value that is longer than the incoming one is kept (the user
        probably corrected it by hand); otherwise the incoming value wins.
        """
        existing = self.get_contact()
        merged = dict(existing)
        for field in CONTACT_FIELDS:
            incoming = profile.get(field)
            current = existing.get(field)
            if not _present(incoming):
                continue
            if isinstance(current, str) and isinstance(incoming, str) and _present(current) and len(current) > len(incoming):
                continue
            merged[field] = incoming
        self._write(CONTACT_KEY, merged)
        return merged

    def clear_contact(self) -> None:
        self.storage.pop(CONTACT_KEY, None)

    # --- Submission receipt ---

    def get_receipt(self) -> Dict[str, Any]:
        return self._read(RECEIPT_KEY)

    def has_submitted(self) -> bool:
        return bool(self.get_receipt().get("submittedEmail"))

    def has_scheduled_call(self) -> bool:
        return bool(self.get_receipt().get("callScheduled"))

    def record_submission(self, email: str, response_id: str, submitted_at: Optional[datetime] = None) -> Dict[str, Any]:
        """
        Writes the receipt of a completed submission. Write-once.

        Raises:
            ReceiptExists: a receipt is already stored.
        """
        if self.has_submitted():
            raise ReceiptExists()
        receipt = {
            "submittedEmail": email,
            "responseId": str(response_id),
            "submittedAt": (submitted_at or datetime.now(timezone.utc)).isoformat(),
            "callScheduled": False,
        }
        self._write(RECEIPT_KEY, receipt)
        return receipt

    def mark_call_scheduled(self) -> Dict[str, Any]:
        receipt = self.get_receipt()
        receipt["callScheduled"] = True
        self._write(RECEIPT_KEY, receipt)
        return receipt

    def replace_receipt(self, email: str, response_id: str, submitted_at: str) -> Dict[str, Any]:
        """Overwrites the receipt with the latest server-side submission."""
        receipt = {
            "submittedEmail": email,
            "responseId": str(response_id),
            "submittedAt": submitted_at,
        }
        self._write(RECEIPT_KEY, receipt)
        return receipt

    def clear_receipt(self) -> None:
        self.storage.pop(RECEIPT_KEY, None)
