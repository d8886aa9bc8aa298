# app/utils/file_storage.py
import base64
import logging
import os
import re
import uuid
from pathlib import Path

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from app.core.config import get_settings

logger = logging.getLogger(__name__)

PDF_MIME_TYPE = "application/pdf"


class StorageError(Exception):
    pass


def get_storage_root() -> Path:
    """
    Returns the absolute path to the file storage root directory.

    By default, this is "<cwd>/uploads", but it can be overridden
    via FILE_STORAGE_ROOT or file_storage_root in settings.
    """
    root = Path(get_settings().file_storage_root)
    if not root.is_absolute():
        root = Path.cwd() / root
    root.mkdir(parents=True, exist_ok=True)
    return root


def save_bytes_to_storage(
    data: bytes,
    original_filename: str,
    subdir: str,
) -> str:
    """
    Save a blob of bytes to storage under a subdirectory.

    Returns a **relative storage path** (e.g. "prescriptions/<uuid>.pdf")
    which can be stored in the database.
    """
    try:
        storage_root = get_storage_root()
        safe_subdir = subdir.strip().strip("/").replace("\\", "/")

        dir_path = storage_root / safe_subdir
        dir_path.mkdir(parents=True, exist_ok=True)

        ext = Path(original_filename).suffix
        file_id = uuid.uuid4().hex
        filename = f"{file_id}{ext}"
        full_path = dir_path / filename

        with open(full_path, "wb") as f:
            f.write(data)
    except OSError as exc:
        raise StorageError(f"Could not write {original_filename} to local storage") from exc

    # Return path relative to storage_root
    rel_path = os.path.join(safe_subdir, filename).replace("\\", "/")
    return rel_path


def upload_bytes_to_s3(data: bytes, key: str, content_type: str = PDF_MIME_TYPE) -> str:
    """
    Upload bytes to the configured bucket and return the object URL.
    """
    settings = get_settings()
    if not settings.aws_bucket_name:
        raise StorageError("AWS bucket is not configured")

    try:
        client = boto3.client(
            "s3",
            region_name=settings.aws_region,
            aws_access_key_id=settings.aws_access_key_id,
            aws_secret_access_key=settings.aws_secret_access_key,
        )
        client.put_object(
            Bucket=settings.aws_bucket_name,
            Key=key,
            Body=data,
            ContentType=content_type,
        )
    except (BotoCoreError, ClientError) as exc:
        raise StorageError(f"S3 upload failed for {key}: {exc}") from exc

    return f"https://{settings.aws_bucket_name}.s3.{settings.aws_region}.amazonaws.com/{key}"


def to_data_uri(data: bytes, content_type: str = PDF_MIME_TYPE) -> str:
    return f"data:{content_type};base64,{base64.b64encode(data).decode('ascii')}"


def prescription_pdf_key(prescription_id: str, version_number: int, timestamp_ms: int) -> str:
    safe_id = re.sub(r"[^A-Za-z0-9._-]", "_", prescription_id)
    suffix = f"-v{version_number}" if version_number > 1 else ""
    return f"prescriptions/{safe_id}-{timestamp_ms}{suffix}.pdf"


def store_prescription_pdf(
    pdf_bytes: bytes,
    *,
    prescription_id: str,
    version_number: int,
    timestamp_ms: int,
) -> str:
    """
    Store a rendered prescription PDF and return its reference.

    The configured sink ("s3" or "local") is tried first. Storage failures
    are not fatal: the PDF is then embedded inline as a data: URI.
    """
    backend = get_settings().pdf_storage_backend.lower()
    key = prescription_pdf_key(prescription_id, version_number, timestamp_ms)

    try:
        if backend == "s3":
            url = upload_bytes_to_s3(pdf_bytes, key)
            logger.info("Prescription PDF uploaded to S3: %s", url)
            return url
        if backend == "local":
            path = save_bytes_to_storage(pdf_bytes, original_filename=Path(key).name, subdir="prescriptions")
            logger.info("Prescription PDF stored locally: %s", path)
            return path
    except StorageError as e:
        logger.warning("PDF storage via %s failed, embedding inline instead: %s", backend, e)

    return to_data_uri(pdf_bytes)
