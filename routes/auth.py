"""Passwordless citizen sign-in via one-time passcodes."""
from flask import Blueprint, current_app, jsonify
from flask_login import current_user, login_required, login_user, logout_user
from flask_wtf import FlaskForm
from wtforms import StringField
from wtforms.validators import Length, Optional

from utils.errors import ValidationError
from utils.otp_service import OtpIssuer
from utils.repository import current_storage
from .forms import as_text

auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


class OtpRequestForm(FlaskForm):
    class Meta:
        csrf = False

    phone = StringField("Phone", filters=[as_text], validators=[Optional(), Length(max=30)])


class OtpVerifyForm(FlaskForm):
    class Meta:
        csrf = False

    phone = StringField("Phone", filters=[as_text], validators=[Optional(), Length(max=30)])
    otp = StringField("OTP", filters=[as_text], validators=[Optional(), Length(max=8)])


def _issuer() -> OtpIssuer:
    storage = current_storage()
    return OtpIssuer(
        otps=storage.otps,
        identities=storage.identities,
        sms=current_app.extensions["civic_sms"],
        ttl_seconds=int(current_app.config.get("OTP_TTL_SECONDS", 300)),
        max_attempts=int(current_app.config.get("OTP_MAX_ATTEMPTS", 5)),
        logger=current_app.logger,
    )


def _validated(form: FlaskForm) -> FlaskForm:
    if not form.validate():
        field_name, messages = next(iter(form.errors.items()))
        raise ValidationError(f"{field_name}: {messages[0]}")
    return form


@auth_bp.route("/send-otp", methods=["POST"])
def send_otp():
    form = _validated(OtpRequestForm())
    result = _issuer().request_code(form.phone.data)
    return jsonify({"success": True, "message": "OTP sent successfully", "data": result})


@auth_bp.route("/verify-otp", methods=["POST"])
def verify_otp():
    form = _validated(OtpVerifyForm())
    identity, is_new = _issuer().verify_code(form.phone.data, form.otp.data)
    login_user(identity, remember=True)
    payload = identity.to_dict()
    payload["isNew"] = is_new
    return jsonify(
        {
            "success": True,
            "message": "Welcome! Your citizen ID has been created." if is_new else "Welcome back!",
            "data": payload,
        }
    )


@auth_bp.route("/me", methods=["GET"])
@login_required
def me():
    return jsonify({"success": True, "data": current_user.to_dict()})


@auth_bp.route("/logout", methods=["POST"])
@login_required
def logout():
    logout_user()
    return jsonify({"success": True, "message": "Logged out"})
