"""Immutable snapshots handed out by the repositories.

Both storage backends return these instead of live ORM rows so callers never
observe a half-applied update and never depend on an open session.
"""
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict

from flask_login import UserMixin


def utcnow() -> datetime:
	"""Naive UTC timestamp, the form both backends store."""
	return datetime.now(timezone.utc).replace(tzinfo=None)


def isoformat_utc(value: datetime | None) -> str | None:
	if value is None:
		return None
	return value.replace(tzinfo=timezone.utc).isoformat().replace("+00:00", "Z")


@dataclass(frozen=True)
class ComplaintRecord:
	complaint_id: str
	issue_type: str
	description: str
	latitude: float
	longitude: float
	department: str
	created_at: datetime
	updated_at: datetime
	address: str = ""
	photo: str = ""
	status: str = "pending"
	priority: str = "medium"
	assigned_to: str = ""
	citizen_name: str = "Anonymous"
	citizen_phone: str = ""
	citizen_email: str = ""
	resolution_photo: str = ""
	resolution_notes: str = ""
	ai_analysis_applied: bool = False

	def public_payload(self) -> Dict[str, Any]:
		"""Minimal projection returned to citizens on submission."""
		return {
			"complaintId": self.complaint_id,
			"status": self.status,
			"createdAt": isoformat_utc(self.created_at),
		}

	def to_dict(self) -> Dict[str, Any]:
		return {
			"complaintId": self.complaint_id,
			"issueType": self.issue_type,
			"description": self.description,
			"photo": self.photo,
			"location": {
				"latitude": self.latitude,
				"longitude": self.longitude,
				"address": self.address,
			},
			"status": self.status,
			"priority": self.priority,
			"department": self.department,
			"assignedTo": self.assigned_to,
			"citizenName": self.citizen_name,
			"citizenPhone": self.citizen_phone,
			"citizenEmail": self.citizen_email,
			"resolutionPhoto": self.resolution_photo,
			"resolutionNotes": self.resolution_notes,
			"aiAnalysis": self.ai_analysis_applied,
			"createdAt": isoformat_utc(self.created_at),
			"updatedAt": isoformat_utc(self.updated_at),
		}


@dataclass(frozen=True)
class IdentityRecord(UserMixin):
	phone: str
	citizen_id: str
	joined_at: datetime

	def get_id(self) -> str:  # Flask-Login session key
		return self.citizen_id

	def to_dict(self) -> Dict[str, Any]:
		return {
			"citizenId": self.citizen_id,
			"phone": self.phone,
			"joinedAt": isoformat_utc(self.joined_at),
		}


@dataclass(frozen=True)
class OtpChallenge:
	phone: str
	code: str
	expires_at: datetime
	attempts: int = 0

	def is_expired(self, now: datetime) -> bool:
		return now > self.expires_at
