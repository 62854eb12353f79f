"""Persistent tables for complaints, verified citizen identities and pending OTP challenges."""
from extensions import db
from models.records import (
	ComplaintRecord,
	IdentityRecord,
	OtpChallenge,
	utcnow,
)


ISSUE_TYPES: tuple[str, ...] = (
	"pothole",
	"garbage",
	"streetlight",
	"water-leakage",
	"dirty-toilet",
	"other",
)

COMPLAINT_STATUSES: tuple[str, ...] = (
	"pending",
	"in-progress",
	"resolved",
	"rejected",
)

COMPLAINT_PRIORITIES: tuple[str, ...] = (
	"low",
	"medium",
	"high",
	"critical",
)


def _in_clause(column: str, values: tuple[str, ...]) -> str:
	quoted = ",".join(f"'{value}'" for value in values)
	return f"{column} IN ({quoted})"


class Complaint(db.Model):
	__tablename__ = "complaints"

	id = db.Column(db.Integer, primary_key=True)
	complaint_id = db.Column(db.String(40), unique=True, nullable=False, index=True)
	issue_type = db.Column(db.String(20), nullable=False, index=True)
	description = db.Column(db.Text, nullable=False, default="")
	photo = db.Column(db.String(512), nullable=False, default="")
	latitude = db.Column(db.Float, nullable=False)
	longitude = db.Column(db.Float, nullable=False)
	address = db.Column(db.String(500), nullable=False, default="")
	status = db.Column(db.String(20), nullable=False, default="pending", index=True)
	priority = db.Column(db.String(20), nullable=False, default="medium")
	department = db.Column(db.String(120), nullable=False)
	assigned_to = db.Column(db.String(120), nullable=False, default="")
	citizen_name = db.Column(db.String(150), nullable=False, default="Anonymous")
	citizen_phone = db.Column(db.String(30), nullable=False, default="")
	citizen_email = db.Column(db.String(255), nullable=False, default="")
	resolution_photo = db.Column(db.String(512), nullable=False, default="")
	resolution_notes = db.Column(db.Text, nullable=False, default="")
	ai_analysis_applied = db.Column(db.Boolean, nullable=False, default=False)
	created_at = db.Column(db.DateTime, default=utcnow, nullable=False, index=True)
	updated_at = db.Column(db.DateTime, default=utcnow, nullable=False)

	__table_args__ = (
		db.CheckConstraint(_in_clause("issue_type", ISSUE_TYPES), name="ck_complaint_issue_type_valid"),
		db.CheckConstraint(_in_clause("status", COMPLAINT_STATUSES), name="ck_complaint_status_valid"),
		db.CheckConstraint(_in_clause("priority", COMPLAINT_PRIORITIES), name="ck_complaint_priority_valid"),
	)

	# Columns that map one-to-one onto ComplaintRecord fields.
	RECORD_FIELDS: tuple[str, ...] = (
		"complaint_id",
		"issue_type",
		"description",
		"photo",
		"latitude",
		"longitude",
		"address",
		"status",
		"priority",
		"department",
		"assigned_to",
		"citizen_name",
		"citizen_phone",
		"citizen_email",
		"resolution_photo",
		"resolution_notes",
		"ai_analysis_applied",
		"created_at",
		"updated_at",
	)

	@classmethod
	def from_record(cls, record: ComplaintRecord) -> "Complaint":
		return cls(**{field: getattr(record, field) for field in cls.RECORD_FIELDS})

	def to_record(self) -> ComplaintRecord:
		return ComplaintRecord(**{field: getattr(self, field) for field in self.RECORD_FIELDS})


class VerifiedIdentity(db.Model):
	__tablename__ = "verified_identities"

	id = db.Column(db.Integer, primary_key=True)
	phone = db.Column(db.String(30), unique=True, nullable=False, index=True)
	citizen_id = db.Column(db.String(20), unique=True, nullable=False, index=True)
	joined_at = db.Column(db.DateTime, default=utcnow, nullable=False)

	def to_record(self) -> IdentityRecord:
		return IdentityRecord(phone=self.phone, citizen_id=self.citizen_id, joined_at=self.joined_at)


class PendingOtp(db.Model):
	__tablename__ = "pending_otps"

	phone = db.Column(db.String(30), primary_key=True)
	code = db.Column(db.String(8), nullable=False)
	expires_at = db.Column(db.DateTime, nullable=False)
	attempts = db.Column(db.Integer, nullable=False, default=0)

	def to_challenge(self) -> OtpChallenge:
		return OtpChallenge(phone=self.phone, code=self.code, expires_at=self.expires_at, attempts=self.attempts)
