"""
Shared pytest fixtures for the civic intake test suite.

Apps run with the in-process store by default; ``sql_app`` points the same
code at a throwaway SQLite file.
"""

import io
import threading
from datetime import datetime, timedelta

import pytest
from PIL import Image
from werkzeug.datastructures import FileStorage

from app import create_app
from extensions import db
from utils.ai_vision import VisionClassifier


def make_image_bytes(fmt: str = "PNG", size=(8, 8)) -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", size, color=(120, 80, 40)).save(buffer, format=fmt)
    return buffer.getvalue()


def make_upload(data: bytes, filename: str = "road.png", content_type: str = "image/png") -> FileStorage:
    return FileStorage(stream=io.BytesIO(data), filename=filename, content_type=content_type)


class FakeClock:
    """Deterministic clock; each call returns the current value."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2024, 5, 1, 12, 0, 0)
        self._lock = threading.Lock()

    def __call__(self) -> datetime:
        with self._lock:
            return self.now

    def advance(self, **kwargs) -> None:
        with self._lock:
            self.now = self.now + timedelta(**kwargs)


class FakeVision(VisionClassifier):
    def __init__(self, result=None) -> None:
        self.result = result
        self.calls = []

    def classify(self, image_bytes, mime_type):
        self.calls.append((len(image_bytes), mime_type))
        return self.result


@pytest.fixture
def png_bytes():
    return make_image_bytes("PNG")


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def upload_dir(tmp_path):
    path = tmp_path / "uploads"
    path.mkdir()
    return str(path)


@pytest.fixture
def app(tmp_path):
    application = create_app(
        "testing",
        overrides={
            "LOG_DIR": str(tmp_path / "logs"),
            "UPLOAD_FOLDER": str(tmp_path / "app-uploads"),
        },
    )
    yield application


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def sql_app(tmp_path):
    application = create_app(
        "testing",
        overrides={
            "LOG_DIR": str(tmp_path / "logs"),
            "UPLOAD_FOLDER": str(tmp_path / "app-uploads"),
            "STORAGE_BACKEND": "sql",
            "SQLALCHEMY_DATABASE_URI": f"sqlite:///{tmp_path / 'civic.db'}",
        },
    )
    yield application
    with application.app_context():
        db.session.remove()
        db.engine.dispose()
