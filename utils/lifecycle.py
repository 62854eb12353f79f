"""Complaint queries, officer updates, deletion and dashboard statistics."""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from typing import Any, Callable, Dict, List, Mapping, Optional
from zoneinfo import ZoneInfo

from werkzeug.datastructures import FileStorage

from models import COMPLAINT_PRIORITIES, COMPLAINT_STATUSES
from models.records import ComplaintRecord, utcnow
from utils.errors import InvalidStatusError, NotFoundError, ValidationError
from utils.image_utils import DEFAULT_MAX_IMAGE_BYTES, persist_image
from utils.repository import ComplaintRepository, DateRange

# API field name -> record attribute.
PATCHABLE_FIELDS = {
    "status": "status",
    "priority": "priority",
    "assignedTo": "assigned_to",
    "resolutionNotes": "resolution_notes",
    "resolutionPhoto": "resolution_photo",
}


@dataclass(frozen=True)
class ComplaintPage:
    items: List[ComplaintRecord]
    total: int
    limit: int
    skip: int


def _naive_utc(moment: datetime) -> datetime:
    return moment.astimezone(timezone.utc).replace(tzinfo=None)


def _parse_offset(value: Any, field: str, default: int) -> int:
    if value is None or value == "":
        return default
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be an integer") from None
    if number < 0:
        raise ValidationError(f"{field} must not be negative")
    return number


class ComplaintLifecycle:
    def __init__(
        self,
        repository: ComplaintRepository,
        default_limit: int = 100,
        max_limit: int = 1000,
        timezone_name: str = "UTC",
        upload_dir: str | None = None,
        public_upload_path: str = "/uploads",
        max_image_bytes: int = DEFAULT_MAX_IMAGE_BYTES,
        clock: Callable[[], datetime] = utcnow,
        logger: logging.Logger | None = None,
    ) -> None:
        self.repository = repository
        self.default_limit = default_limit
        self.max_limit = max_limit
        self.tz = ZoneInfo(timezone_name)
        self.upload_dir = upload_dir
        self.public_upload_path = public_upload_path
        self.max_image_bytes = max_image_bytes
        self.clock = clock
        self.logger = logger or logging.getLogger(__name__)

    def day_range(self, value: str) -> DateRange:
        """UTC bounds of a calendar day in the reporting time zone."""
        try:
            day = date.fromisoformat(str(value).strip()[:10])
        except ValueError:
            raise ValidationError("date must be an ISO date (YYYY-MM-DD)") from None
        start_local = datetime.combine(day, time.min, tzinfo=self.tz)
        end_local = datetime.combine(day + timedelta(days=1), time.min, tzinfo=self.tz)
        return _naive_utc(start_local), _naive_utc(end_local)

    def list(
        self,
        status: Optional[str] = None,
        issue_type: Optional[str] = None,
        day: Optional[str] = None,
        skip: Any = None,
        limit: Any = None,
    ) -> ComplaintPage:
        skip_value = _parse_offset(skip, "skip", 0)
        limit_value = min(_parse_offset(limit, "limit", self.default_limit), self.max_limit)
        created_between = self.day_range(day) if day else None
        items, total = self.repository.list(
            status=status or None,
            issue_type=issue_type or None,
            created_between=created_between,
            skip=skip_value,
            limit=limit_value,
        )
        return ComplaintPage(items=items, total=total, limit=limit_value, skip=skip_value)

    def get(self, complaint_id: str) -> ComplaintRecord:
        record = self.repository.get(complaint_id)
        if record is None:
            raise NotFoundError("Complaint not found")
        return record

    def _changes_from_patch(self, patch: Mapping[str, Any]) -> Dict[str, Any]:
        changes: Dict[str, Any] = {}
        for api_field, attribute in PATCHABLE_FIELDS.items():
            value = patch.get(api_field)
            if value is None or value == "":
                continue
            changes[attribute] = str(value).strip()
        if "status" in changes and changes["status"] not in COMPLAINT_STATUSES:
            raise InvalidStatusError(f"status must be one of: {', '.join(COMPLAINT_STATUSES)}")
        if "priority" in changes and changes["priority"] not in COMPLAINT_PRIORITIES:
            raise ValidationError(f"priority must be one of: {', '.join(COMPLAINT_PRIORITIES)}")
        return changes

    def update(
        self,
        complaint_id: str,
        patch: Mapping[str, Any],
        resolution_photo: Optional[FileStorage] = None,
    ) -> ComplaintRecord:
        changes = self._changes_from_patch(patch)
        self.get(complaint_id)

        stored = None
        if resolution_photo is not None:
            if not self.upload_dir:
                raise ValidationError("Photo uploads are not configured")
            stored = persist_image(
                resolution_photo,
                self.upload_dir,
                public_prefix=self.public_upload_path,
                max_bytes=self.max_image_bytes,
            )
            changes["resolution_photo"] = stored["public_path"]

        try:
            record = self.repository.update(complaint_id, changes, self.clock())
            if record is None:
                raise NotFoundError("Complaint not found")
        except Exception:
            # The complaint vanished or the write failed; drop the orphaned photo.
            if stored is not None and os.path.exists(stored["path"]):
                os.remove(stored["path"])
            raise

        self.logger.info(
            "Complaint updated",
            extra={"complaint_id": complaint_id, "fields": sorted(changes)},
        )
        return record

    def remove(self, complaint_id: str) -> None:
        if not self.repository.delete(complaint_id):
            raise NotFoundError("Complaint not found")
        self.logger.info("Complaint deleted", extra={"complaint_id": complaint_id})

    def stats(self) -> Dict[str, Any]:
        raw = self.repository.stats()
        by_status = raw["by_status"]
        return {
            "total": raw["total"],
            "pending": by_status.get("pending", 0),
            "inProgress": by_status.get("in-progress", 0),
            "resolved": by_status.get("resolved", 0),
            "rejected": by_status.get("rejected", 0),
            "recentCount": raw["total"],
            "byType": raw["by_type"],
        }
