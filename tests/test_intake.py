import os

import pytest

from conftest import FakeVision, make_upload
from utils.ai_vision import DisabledVisionClassifier, VisionResult
from utils.errors import InternalError, UnsupportedMediaError, ValidationError
from utils.intake import CitizenInfo, IntakePipeline, amplify_description, parse_coordinate
from utils.repository import InMemoryComplaintRepository


@pytest.fixture
def repository():
    return InMemoryComplaintRepository()


@pytest.fixture
def make_pipeline(repository, upload_dir, clock):
    def factory(vision=None, **kwargs):
        return IntakePipeline(
            repository=repository,
            vision=vision or DisabledVisionClassifier(),
            upload_dir=upload_dir,
            clock=clock,
            **kwargs,
        )

    return factory


def submit(pipeline, **overrides):
    fields = dict(description="Huge pothole on the main road", latitude="12.97", longitude="77.59")
    fields.update(overrides)
    return pipeline.submit(**fields)


def test_submission_without_photo_uses_keyword_fallback(make_pipeline, repository, clock):
    record = submit(make_pipeline(), address="MG Road")
    assert record.issue_type == "pothole"
    assert record.department == "Roads & Highway Dept"
    assert record.assigned_to == "Roads & Highway Dept"
    assert record.priority == "medium"
    assert record.status == "pending"
    assert record.ai_analysis_applied is False
    assert record.citizen_name == "Anonymous"
    assert record.created_at == record.updated_at == clock.now
    assert (record.latitude, record.longitude) == (12.97, 77.59)
    assert repository.get(record.complaint_id) == record


def test_public_payload_exposes_only_tracking_fields(make_pipeline):
    payload = submit(make_pipeline()).public_payload()
    assert set(payload) == {"complaintId", "status", "createdAt"}
    assert payload["status"] == "pending"
    assert payload["createdAt"].endswith("Z")


def test_explicit_issue_type_is_kept(make_pipeline):
    record = submit(make_pipeline(), issue_type="garbage")
    assert record.issue_type == "garbage"
    assert record.department == "Sanitation Dept"


def test_citizen_details_are_stored(make_pipeline):
    citizen = CitizenInfo.from_values("  Asha ", "9876543210", "asha@example.com")
    record = submit(make_pipeline(), citizen=citizen)
    assert (record.citizen_name, record.citizen_phone, record.citizen_email) == (
        "Asha",
        "9876543210",
        "asha@example.com",
    )
    assert CitizenInfo.from_values("", None, None).name == "Anonymous"


def test_photo_without_vision_classifies_like_no_photo(make_pipeline, png_bytes, upload_dir):
    with_photo = submit(make_pipeline(), photo=make_upload(png_bytes))
    without_photo = submit(make_pipeline())
    assert with_photo.issue_type == without_photo.issue_type == "pothole"
    assert with_photo.priority == without_photo.priority == "medium"
    assert with_photo.description == without_photo.description
    assert with_photo.photo.startswith("/uploads/")
    assert os.listdir(upload_dir) == [with_photo.photo.rsplit("/", 1)[1]]


def test_ai_result_overrides_type_and_priority(make_pipeline, png_bytes):
    vision = FakeVision(VisionResult(issue_type="garbage", priority="high", description="Overflowing bin."))
    record = submit(make_pipeline(vision), issue_type="pothole", photo=make_upload(png_bytes))
    assert vision.calls == [(len(png_bytes), "image/png")]
    assert record.issue_type == "garbage"
    assert record.department == "Sanitation Dept"
    assert record.priority == "high"
    assert record.description == "Huge pothole on the main road (AI Detected: Overflowing bin.)"
    assert record.ai_analysis_applied is True


def test_ai_other_still_gets_keyword_fallback(make_pipeline, png_bytes):
    vision = FakeVision(VisionResult(issue_type="other", priority="low", description=""))
    record = submit(make_pipeline(vision), description="broken street light", photo=make_upload(png_bytes))
    assert record.issue_type == "streetlight"
    assert record.priority == "low"
    assert record.description == "broken street light"


def test_vision_is_not_called_without_photo(make_pipeline):
    vision = FakeVision(VisionResult("garbage", "high", "x"))
    submit(make_pipeline(vision))
    assert vision.calls == []


def test_amplify_description():
    result = VisionResult("garbage", "high", "Bin overflowing.")
    assert amplify_description("Smelly corner", result) == "Smelly corner (AI Detected: Bin overflowing.)"
    assert amplify_description("", result) == "(AI Detected: Bin overflowing.)"
    assert amplify_description("Smelly corner", VisionResult("garbage", "high", "")) == "Smelly corner"


@pytest.mark.parametrize(
    "overrides",
    [
        {"latitude": None},
        {"longitude": ""},
        {"latitude": "north"},
        {"latitude": "nan"},
        {"longitude": "inf"},
        {"latitude": "91"},
        {"longitude": "-180.5"},
        {"description": None},
        {"description": "x" * 1001},
        {"issue_type": "volcano"},
    ],
)
def test_invalid_submissions_are_rejected(make_pipeline, repository, overrides):
    with pytest.raises(ValidationError):
        submit(make_pipeline(), **overrides)
    assert repository.list() == ([], 0)


def test_parse_coordinate_accepts_boundaries():
    assert parse_coordinate("90", "latitude", 90) == 90.0
    assert parse_coordinate(-180, "longitude", 180) == -180.0


def test_empty_description_is_allowed(make_pipeline):
    record = submit(make_pipeline(), description="")
    assert record.issue_type == "other"
    assert record.department == "General Administration"


@pytest.mark.parametrize(
    "data, filename, content_type",
    [
        (b"just some notes", "notes.txt", "text/plain"),
        (b"not really a png", "road.png", "image/png"),
        (None, "road.png", "application/octet-stream"),
        (b"", "road.png", "image/png"),
    ],
)
def test_non_images_are_rejected(make_pipeline, repository, upload_dir, png_bytes, data, filename, content_type):
    upload = make_upload(png_bytes if data is None else data, filename=filename, content_type=content_type)
    with pytest.raises(UnsupportedMediaError):
        submit(make_pipeline(), photo=upload)
    assert os.listdir(upload_dir) == []
    assert repository.list() == ([], 0)


def test_oversized_photo_is_rejected(make_pipeline, png_bytes, upload_dir):
    pipeline = make_pipeline(max_image_bytes=len(png_bytes) - 1)
    with pytest.raises(UnsupportedMediaError):
        submit(pipeline, photo=make_upload(png_bytes))
    assert os.listdir(upload_dir) == []


def test_id_collision_is_retried(make_pipeline, repository, monkeypatch):
    ids = iter(["CIV-A-AAAA", "CIV-A-AAAA", "CIV-B-BBBB"])
    monkeypatch.setattr("utils.intake.generate_complaint_id", lambda prefix: next(ids))
    first = submit(make_pipeline())
    second = submit(make_pipeline())
    assert first.complaint_id == "CIV-A-AAAA"
    assert second.complaint_id == "CIV-B-BBBB"
    assert repository.list()[1] == 2


def test_exhausted_id_attempts_remove_stored_photo(make_pipeline, png_bytes, upload_dir, monkeypatch):
    monkeypatch.setattr("utils.intake.generate_complaint_id", lambda prefix: "CIV-A-AAAA")
    submit(make_pipeline())
    with pytest.raises(InternalError):
        submit(make_pipeline(), photo=make_upload(png_bytes))
    assert os.listdir(upload_dir) == []


class ExplodingVision(FakeVision):
    def classify(self, image_bytes, mime_type):
        raise RuntimeError("vision backend crashed")


def test_stored_photo_is_removed_when_classification_raises(make_pipeline, repository, png_bytes, upload_dir):
    with pytest.raises(RuntimeError):
        submit(make_pipeline(ExplodingVision()), photo=make_upload(png_bytes))
    assert os.listdir(upload_dir) == []
    assert repository.list() == ([], 0)


def test_non_text_description_is_rejected(make_pipeline):
    with pytest.raises(ValidationError):
        submit(make_pipeline(), description=5)
