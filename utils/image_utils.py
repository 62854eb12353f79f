"""Validation and storage of citizen-uploaded complaint photos."""
import io
import os
import secrets
import time
from typing import Dict, Tuple

from PIL import Image, UnidentifiedImageError
from werkzeug.datastructures import FileStorage
from werkzeug.utils import secure_filename

from utils.errors import UnsupportedMediaError

ALLOWED_IMAGE_EXTENSIONS = {"jpg", "jpeg", "png", "gif", "webp"}
DEFAULT_MAX_IMAGE_BYTES = 10 * 1024 * 1024  # 10 MiB

# Pillow format name -> extensions that may carry it.
_FORMAT_EXTENSIONS = {
    "JPEG": {"jpg", "jpeg"},
    "PNG": {"png"},
    "GIF": {"gif"},
    "WEBP": {"webp"},
}


def _fail_if(condition: bool, message: str) -> None:
    if condition:
        raise UnsupportedMediaError(message)


def _get_mime_type(ext: str) -> str:
    mapping = {
        "jpg": "image/jpeg",
        "jpeg": "image/jpeg",
        "png": "image/png",
        "gif": "image/gif",
        "webp": "image/webp",
    }
    return mapping.get(ext, "application/octet-stream")


def _declared_type_allowed(content_type: str | None) -> bool:
    if not content_type:
        return False
    main, _, subtype = content_type.split(";", 1)[0].strip().lower().partition("/")
    return main == "image" and subtype in ALLOWED_IMAGE_EXTENSIONS


def validate_image_file(file: FileStorage, max_bytes: int = DEFAULT_MAX_IMAGE_BYTES) -> Tuple[bytes, str]:
    _fail_if(not file, "No file provided")
    filename = secure_filename(file.filename or "")
    _fail_if(not filename or "." not in filename, "Unsupported file name")
    ext = filename.rsplit(".", 1)[1].lower()
    _fail_if(ext not in ALLOWED_IMAGE_EXTENSIONS, "Only image files are allowed!")
    _fail_if(not _declared_type_allowed(file.mimetype), "Only image files are allowed!")

    file.stream.seek(0, os.SEEK_END)
    size = file.stream.tell()
    file.stream.seek(0)
    _fail_if(size == 0, "Empty file")
    _fail_if(size > max_bytes, "File exceeds size limits")

    content = file.read()
    _fail_if(len(content) > max_bytes, "File exceeds size limits")

    try:
        with Image.open(io.BytesIO(content)) as img:
            detected = img.format
            img.verify()
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, SyntaxError) as exc:
        raise UnsupportedMediaError("Image validation failed") from exc
    _fail_if(detected not in _FORMAT_EXTENSIONS, "Invalid image data")

    file.stream.seek(0)
    return content, ext


def build_upload_name(extension: str) -> str:
    """Collision-resistant name: epoch millis, random suffix, original extension."""
    return f"{int(time.time() * 1000)}-{secrets.randbelow(10**9)}.{extension}"


def save_image_bytes(image_bytes: bytes, upload_dir: str, extension: str) -> Tuple[str, str]:
    os.makedirs(upload_dir, exist_ok=True)
    safe_name = secure_filename(build_upload_name(extension))
    path = os.path.join(upload_dir, safe_name)
    # "xb" refuses to clobber an existing upload.
    with open(path, "xb") as f:
        f.write(image_bytes)
    return path, safe_name


def persist_image(
    file: FileStorage,
    upload_dir: str,
    public_prefix: str = "/uploads",
    max_bytes: int = DEFAULT_MAX_IMAGE_BYTES,
) -> Dict:
    image_bytes, ext = validate_image_file(file, max_bytes=max_bytes)
    stored_path, stored_name = save_image_bytes(image_bytes, upload_dir, ext)
    return {
        "path": stored_path,
        "file_name": stored_name,
        "public_path": f"{public_prefix.rstrip('/')}/{stored_name}",
        "extension": ext,
        "mime_type": _get_mime_type(ext),
        "bytes": image_bytes,
    }
