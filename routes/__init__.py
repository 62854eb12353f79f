"""Blueprint registration, service banner, health check and uploaded photo serving."""
from datetime import datetime, timezone

from flask import Blueprint, current_app, jsonify, send_from_directory

from utils.repository import current_storage
from .auth import auth_bp
from .complaints import complaints_bp

main_bp = Blueprint("main", __name__)


@main_bp.route("/", methods=["GET"])
def index():
    return jsonify(
        {
            "success": True,
            "message": "Civic Issue Detection Platform API",
            "endpoints": {
                "complaints": "/api/complaints",
                "stats": "/api/complaints/stats",
                "otp": "/api/auth/send-otp",
                "health": "/api/health",
            },
        }
    )


@main_bp.route("/api/health", methods=["GET"])
def health():
    storage = current_storage()
    connected = storage.is_connected()
    return jsonify(
        {
            "status": "ok",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "storage": {"backend": storage.backend, "connected": connected},
            "database": "connected" if connected else "disconnected",
        }
    )


@main_bp.route("/uploads/<path:filename>", methods=["GET"])
def uploaded_file(filename):
    return send_from_directory(current_app.config["UPLOAD_FOLDER"], filename)


__all__ = ["main_bp", "auth_bp", "complaints_bp"]
