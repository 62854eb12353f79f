"""Complaint intake: photo storage, AI classification, fallback, routing and persistence."""
from __future__ import annotations

import logging
import math
import os
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from werkzeug.datastructures import FileStorage

from models import ISSUE_TYPES
from models.records import ComplaintRecord, utcnow
from utils.ai_vision import VisionClassifier, VisionResult
from utils.classifier import department_for, resolve_issue_type
from utils.errors import DuplicateKeyError, InternalError, ValidationError
from utils.image_utils import DEFAULT_MAX_IMAGE_BYTES, persist_image
from utils.repository import ComplaintRepository
from utils.security import generate_complaint_id

MAX_DESCRIPTION_LENGTH = 1000
MAX_ID_ATTEMPTS = 5


@dataclass(frozen=True)
class CitizenInfo:
    name: str = "Anonymous"
    phone: str = ""
    email: str = ""

    @classmethod
    def from_values(cls, name: str | None, phone: str | None, email: str | None) -> "CitizenInfo":
        return cls(
            name=(name or "").strip() or "Anonymous",
            phone=(phone or "").strip(),
            email=(email or "").strip(),
        )


def parse_coordinate(value: Any, field: str, bound: float) -> float:
    if value is None or (isinstance(value, str) and not value.strip()):
        raise ValidationError("Latitude and longitude are required")
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be a number") from None
    if not math.isfinite(number):
        raise ValidationError(f"{field} must be a finite number")
    if not -bound <= number <= bound:
        raise ValidationError(f"{field} must be between -{bound:g} and {bound:g}")
    return number


def amplify_description(description: str, analysis: VisionResult) -> str:
    if not analysis.description:
        return description
    note = f"(AI Detected: {analysis.description})"
    return f"{description} {note}" if description else note


class IntakePipeline:
    def __init__(
        self,
        repository: ComplaintRepository,
        vision: VisionClassifier,
        upload_dir: str,
        public_upload_path: str = "/uploads",
        max_image_bytes: int = DEFAULT_MAX_IMAGE_BYTES,
        id_prefix: str = "CIV",
        clock: Callable[[], datetime] = utcnow,
        logger: logging.Logger | None = None,
    ) -> None:
        self.repository = repository
        self.vision = vision
        self.upload_dir = upload_dir
        self.public_upload_path = public_upload_path
        self.max_image_bytes = max_image_bytes
        self.id_prefix = id_prefix
        self.clock = clock
        self.logger = logger or logging.getLogger(__name__)

    def submit(
        self,
        *,
        description: Optional[str],
        latitude: Any,
        longitude: Any,
        issue_type: Optional[str] = None,
        address: Optional[str] = None,
        citizen: Optional[CitizenInfo] = None,
        photo: Optional[FileStorage] = None,
    ) -> ComplaintRecord:
        self.logger.info("Received complaint submission", extra={"has_photo": photo is not None})

        if description is None:
            raise ValidationError("Description is required")
        if not isinstance(description, str):
            raise ValidationError("Description must be text")
        if len(description) > MAX_DESCRIPTION_LENGTH:
            raise ValidationError(f"Description must be at most {MAX_DESCRIPTION_LENGTH} characters")
        lat = parse_coordinate(latitude, "latitude", 90)
        lng = parse_coordinate(longitude, "longitude", 180)
        issue_type = (issue_type or "").strip() or None
        if issue_type is not None and issue_type not in ISSUE_TYPES:
            raise ValidationError(f"issueType must be one of: {', '.join(ISSUE_TYPES)}")
        citizen = citizen or CitizenInfo()

        stored: Dict[str, Any] | None = None
        if photo is not None:
            stored = persist_image(
                photo,
                self.upload_dir,
                public_prefix=self.public_upload_path,
                max_bytes=self.max_image_bytes,
            )

        try:
            record = self._classify_and_persist(
                stored,
                issue_type=issue_type,
                description=description,
                latitude=lat,
                longitude=lng,
                address=(address or "").strip(),
                citizen=citizen,
            )
        except Exception:
            if stored is not None and os.path.exists(stored["path"]):
                os.remove(stored["path"])
            raise

        self.logger.info(
            "Complaint saved",
            extra={
                "complaint_id": record.complaint_id,
                "issue_type": record.issue_type,
                "department": record.department,
            },
        )
        return record

    def _classify_and_persist(
        self,
        stored: Dict[str, Any] | None,
        *,
        issue_type: Optional[str],
        description: str,
        latitude: float,
        longitude: float,
        address: str,
        citizen: CitizenInfo,
    ) -> ComplaintRecord:
        priority = "medium"
        analysis: VisionResult | None = None
        if stored is not None:
            analysis = self.vision.classify(stored["bytes"], stored["mime_type"])
            if analysis is not None:
                self.logger.info(
                    "AI result applied",
                    extra={"issue_type": analysis.issue_type, "priority": analysis.priority},
                )
                issue_type = analysis.issue_type
                priority = analysis.priority
                description = amplify_description(description, analysis)

        issue_type = resolve_issue_type(issue_type, description)
        department = department_for(issue_type)

        return self._persist(
            issue_type=issue_type,
            description=description,
            latitude=latitude,
            longitude=longitude,
            address=address,
            photo=stored["public_path"] if stored else "",
            priority=priority,
            department=department,
            assigned_to=department,
            citizen_name=citizen.name,
            citizen_phone=citizen.phone,
            citizen_email=citizen.email,
            ai_analysis_applied=analysis is not None,
        )

    def _persist(self, **fields: Any) -> ComplaintRecord:
        for attempt in range(1, MAX_ID_ATTEMPTS + 1):
            now = self.clock()
            record = ComplaintRecord(
                complaint_id=generate_complaint_id(self.id_prefix),
                created_at=now,
                updated_at=now,
                **fields,
            )
            try:
                return self.repository.create(record)
            except DuplicateKeyError:
                self.logger.warning(
                    "Complaint id collision; regenerating",
                    extra={"complaint_id": record.complaint_id, "attempt": attempt},
                )
        raise InternalError("Could not allocate a unique complaint id")
