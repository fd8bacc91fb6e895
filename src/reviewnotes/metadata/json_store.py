"""File-backed review metadata store.

The file holds a JSON array of review records, or an object with a
``records`` array. Two shapes are accepted and normalized into
``ReviewRecord``:

- current: ``{"change_id", "project", "branch", "revision", "status",
  "approvals": [{"label", "value", "account", "granted", "is_submit"}], ...}``
- legacy: ``dest_branch`` instead of ``branch``, one-letter status codes,
  approvals keyed by ``category`` with ``account_id``, the submit recorded
  as a ``SUBM`` category or as top-level ``submitter``/``submitted_at``.
"""

import json
import threading
from pathlib import Path
from typing import Any, Dict, List

import structlog
from pydantic import ValidationError

from reviewnotes.errors import MetadataUnavailable
from reviewnotes.metadata.memory import InMemoryMetadataStore
from reviewnotes.models.review import ReviewRecord

logger = structlog.get_logger(__name__)

LEGACY_SUBMIT_CATEGORY = "SUBM"
LEGACY_STATUS_CODES = {"N": "new", "M": "merged", "A": "abandoned"}


def _account(value: Any) -> Dict[str, Any]:
    if isinstance(value, int):
        return {"account_id": value}
    return dict(value)


def adapt_record(raw: Dict[str, Any]) -> ReviewRecord:
    """Convert a raw record of either schema into a ReviewRecord.

    Raises:
        pydantic.ValidationError: If the record is incomplete
    """
    data = dict(raw)

    if "branch" not in data and "dest_branch" in data:
        data["branch"] = data.pop("dest_branch")
    status = data.get("status")
    if isinstance(status, str) and status in LEGACY_STATUS_CODES:
        data["status"] = LEGACY_STATUS_CODES[status]

    approvals = []
    for approval in data.get("approvals", []):
        approval = dict(approval)
        if "label" not in approval and "category" in approval:
            approval["label"] = approval.pop("category")
            if approval["label"] == LEGACY_SUBMIT_CATEGORY:
                approval["is_submit"] = True
        if "account" not in approval and "account_id" in approval:
            approval["account"] = approval.pop("account_id")
        if "account" in approval:
            approval["account"] = _account(approval["account"])
        approvals.append(approval)

    submitter = data.pop("submitter", None)
    submitted_at = data.pop("submitted_at", None)
    if submitter is not None and submitted_at is None:
        logger.warning("submit_without_timestamp", change=data.get("change_id"), project=data.get("project"))
    elif submitter is not None and not any(a.get("is_submit") for a in approvals):
        approvals.append(
            {
                "label": LEGACY_SUBMIT_CATEGORY,
                "value": 1,
                "account": _account(submitter),
                "granted": submitted_at,
                "is_submit": True,
            }
        )

    data["approvals"] = approvals
    return ReviewRecord.model_validate(data)


class JsonMetadataStore(InMemoryMetadataStore):
    """Metadata store reading review records from a JSON file.

    The file is loaded lazily on first access and then served from memory.
    """

    def __init__(self, path: Path) -> None:
        """Initialize the store.

        Args:
            path: Path to the JSON file
        """
        super().__init__()
        self.path = Path(path)
        self._loaded = False
        self._lock = threading.Lock()

    def _ensure_loaded(self) -> None:
        with self._lock:
            if self._loaded:
                return
            for record in self._read():
                self.add(record)
            self._loaded = True

    def _read(self) -> List[ReviewRecord]:
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise MetadataUnavailable(f"Cannot read review records from {self.path}: {e}") from e

        if isinstance(data, dict):
            data = data.get("records", [])
        if not isinstance(data, list):
            raise MetadataUnavailable(f"Expected a list of review records in {self.path}")

        try:
            records = [adapt_record(raw) for raw in data]
        except (ValidationError, TypeError, ValueError) as e:
            raise MetadataUnavailable(f"Invalid review record in {self.path}: {e}") from e

        logger.debug("review_records_loaded", path=str(self.path), count=len(records))
        return records

    def all_review_records(self) -> List[ReviewRecord]:
        self._ensure_loaded()
        return super().all_review_records()

    def records_for_revision(self, project: str, branch: str, revision: str) -> List[ReviewRecord]:
        self._ensure_loaded()
        return super().records_for_revision(project, branch, revision)
