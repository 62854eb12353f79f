"""Complaint intake, officer dashboard queries, updates and statistics."""
from typing import Iterable

from flask import Blueprint, current_app, jsonify, request
from flask_wtf import FlaskForm
from flask_wtf.file import FileAllowed, FileField
from wtforms import StringField, TextAreaField
from wtforms.validators import Email, Length, Optional

from utils.errors import UnsupportedMediaError, ValidationError
from utils.image_utils import ALLOWED_IMAGE_EXTENSIONS
from utils.intake import MAX_DESCRIPTION_LENGTH, CitizenInfo, IntakePipeline
from utils.lifecycle import ComplaintLifecycle
from utils.repository import current_storage
from .forms import as_text

complaints_bp = Blueprint("complaints", __name__, url_prefix="/api/complaints")

IMAGES_ONLY = "Only image files are allowed!"


class ComplaintIntakeForm(FlaskForm):
    class Meta:
        csrf = False

    issueType = StringField("Issue Type", filters=[as_text], validators=[Optional(), Length(max=20)])
    description = TextAreaField(
        "Description", filters=[as_text], validators=[Length(max=MAX_DESCRIPTION_LENGTH)]
    )
    latitude = StringField("Latitude")
    longitude = StringField("Longitude")
    address = StringField("Address", filters=[as_text], validators=[Optional(), Length(max=500)])
    citizenName = StringField("Name", filters=[as_text], validators=[Optional(), Length(max=150)])
    citizenPhone = StringField("Phone", filters=[as_text], validators=[Optional(), Length(max=30)])
    citizenEmail = StringField("Email", filters=[as_text], validators=[Optional(), Email(), Length(max=255)])
    photo = FileField("Photo", validators=[FileAllowed(list(ALLOWED_IMAGE_EXTENSIONS), IMAGES_ONLY)])


class ComplaintUpdateForm(FlaskForm):
    class Meta:
        csrf = False

    status = StringField("Status", filters=[as_text], validators=[Optional(), Length(max=20)])
    priority = StringField("Priority", filters=[as_text], validators=[Optional(), Length(max=20)])
    assignedTo = StringField("Assigned To", filters=[as_text], validators=[Optional(), Length(max=120)])
    resolutionNotes = TextAreaField(
        "Resolution Notes", filters=[as_text], validators=[Optional(), Length(max=2000)]
    )
    resolutionPhoto = FileField(
        "Resolution Photo",
        validators=[FileAllowed(list(ALLOWED_IMAGE_EXTENSIONS), IMAGES_ONLY)],
    )


def _raise_form_errors(form: FlaskForm, media_fields: Iterable[str]) -> None:
    for field_name in media_fields:
        if form.errors.get(field_name):
            raise UnsupportedMediaError(form.errors[field_name][0])
    field_name, messages = next(iter(form.errors.items()))
    raise ValidationError(f"{field_name}: {messages[0]}")


def _pipeline() -> IntakePipeline:
    config = current_app.config
    return IntakePipeline(
        repository=current_storage().complaints,
        vision=current_app.extensions["civic_vision"],
        upload_dir=config["UPLOAD_FOLDER"],
        public_upload_path=config.get("PUBLIC_UPLOAD_PATH", "/uploads"),
        max_image_bytes=int(config.get("MAX_IMAGE_UPLOAD_BYTES", 10 * 1024 * 1024)),
        id_prefix=config.get("COMPLAINT_ID_PREFIX", "CIV"),
        logger=current_app.logger,
    )


def _lifecycle() -> ComplaintLifecycle:
    config = current_app.config
    return ComplaintLifecycle(
        repository=current_storage().complaints,
        default_limit=int(config.get("DEFAULT_PAGE_LIMIT", 100)),
        max_limit=int(config.get("MAX_PAGE_LIMIT", 1000)),
        timezone_name=config.get("REPORTING_TIMEZONE", "UTC"),
        upload_dir=config["UPLOAD_FOLDER"],
        public_upload_path=config.get("PUBLIC_UPLOAD_PATH", "/uploads"),
        max_image_bytes=int(config.get("MAX_IMAGE_UPLOAD_BYTES", 10 * 1024 * 1024)),
        logger=current_app.logger,
    )


@complaints_bp.route("", methods=["POST"])
def create_complaint():
    form = ComplaintIntakeForm()
    if not form.validate():
        _raise_form_errors(form, media_fields=("photo",))

    record = _pipeline().submit(
        issue_type=form.issueType.data,
        description=form.description.data if form.description.raw_data else None,
        latitude=form.latitude.data,
        longitude=form.longitude.data,
        address=form.address.data,
        citizen=CitizenInfo.from_values(form.citizenName.data, form.citizenPhone.data, form.citizenEmail.data),
        photo=form.photo.data or None,
    )
    return (
        jsonify(
            {
                "success": True,
                "message": "Complaint submitted successfully",
                "data": record.public_payload(),
            }
        ),
        201,
    )


@complaints_bp.route("", methods=["GET"])
def list_complaints():
    page = _lifecycle().list(
        status=request.args.get("status"),
        issue_type=request.args.get("issueType"),
        day=request.args.get("date"),
        skip=request.args.get("skip"),
        limit=request.args.get("limit"),
    )
    return jsonify(
        {
            "success": True,
            "data": [record.to_dict() for record in page.items],
            "total": page.total,
            "limit": page.limit,
            "skip": page.skip,
        }
    )


@complaints_bp.route("/stats", methods=["GET"])
def complaint_stats():
    return jsonify({"success": True, "data": _lifecycle().stats()})


@complaints_bp.route("/<string:complaint_id>", methods=["GET"])
def get_complaint(complaint_id):
    record = _lifecycle().get(complaint_id)
    return jsonify({"success": True, "data": record.to_dict()})


@complaints_bp.route("/<string:complaint_id>", methods=["PATCH"])
def update_complaint(complaint_id):
    form = ComplaintUpdateForm()
    if not form.validate():
        _raise_form_errors(form, media_fields=("resolutionPhoto",))

    patch = {
        "status": form.status.data,
        "priority": form.priority.data,
        "assignedTo": form.assignedTo.data,
        "resolutionNotes": form.resolutionNotes.data,
    }
    record = _lifecycle().update(complaint_id, patch, resolution_photo=form.resolutionPhoto.data or None)
    return jsonify(
        {
            "success": True,
            "message": "Complaint updated successfully",
            "data": record.to_dict(),
        }
    )


@complaints_bp.route("/<string:complaint_id>", methods=["DELETE"])
def delete_complaint(complaint_id):
    _lifecycle().remove(complaint_id)
    return jsonify({"success": True, "message": "Complaint deleted successfully"})
