import base64

import pytest
from botocore.exceptions import ClientError

from app.core.config import get_settings
from app.utils import file_storage
from app.utils.file_storage import prescription_pdf_key, store_prescription_pdf

PDF_BYTES = b"%PDF-1.4 fake"


@pytest.fixture()
def settings(monkeypatch):
    settings = get_settings()
    monkeypatch.setattr(settings, "aws_bucket_name", "rx-bucket")
    monkeypatch.setattr(settings, "aws_region", "ap-south-1")
    return settings


class FakeS3Client:
    def __init__(self, error=None):
        self.error = error
        self.calls = []

    def put_object(self, **kwargs):
        self.calls.append(kwargs)
        if self.error:
            raise self.error


def test_pdf_key_includes_version_suffix_after_first():
    assert prescription_pdf_key("RX-1", 1, 1700000000000) == "prescriptions/RX-1-1700000000000.pdf"
    assert prescription_pdf_key("RX/1 a", 3, 5) == "prescriptions/RX_1_a-5-v3.pdf"


def test_inline_backend_returns_data_uri(settings, monkeypatch):
    monkeypatch.setattr(settings, "pdf_storage_backend", "inline")
    url = store_prescription_pdf(PDF_BYTES, prescription_id="RX-1", version_number=1, timestamp_ms=1)

    prefix = "data:application/pdf;base64,"
    assert url.startswith(prefix)
    assert base64.b64decode(url[len(prefix):]) == PDF_BYTES


def test_local_backend_writes_file(settings, monkeypatch, tmp_path):
    monkeypatch.setattr(settings, "pdf_storage_backend", "local")
    monkeypatch.setattr(settings, "file_storage_root", str(tmp_path))

    path = store_prescription_pdf(PDF_BYTES, prescription_id="RX-1", version_number=2, timestamp_ms=1)

    assert path.startswith("prescriptions/")
    assert (tmp_path / path).read_bytes() == PDF_BYTES


def test_s3_backend_uploads(settings, monkeypatch):
    monkeypatch.setattr(settings, "pdf_storage_backend", "s3")
    client = FakeS3Client()
    monkeypatch.setattr(file_storage.boto3, "client", lambda *args, **kwargs: client)

    url = store_prescription_pdf(PDF_BYTES, prescription_id="RX-1", version_number=1, timestamp_ms=42)

    assert url == "https://rx-bucket.s3.ap-south-1.amazonaws.com/prescriptions/RX-1-42.pdf"
    assert client.calls[0]["Bucket"] == "rx-bucket"
    assert client.calls[0]["ContentType"] == "application/pdf"
    assert client.calls[0]["Body"] == PDF_BYTES


def test_s3_failure_falls_back_to_inline(settings, monkeypatch):
    monkeypatch.setattr(settings, "pdf_storage_backend", "s3")
    error = ClientError({"Error": {"Code": "AccessDenied", "Message": "denied"}}, "PutObject")
    monkeypatch.setattr(file_storage.boto3, "client", lambda *args, **kwargs: FakeS3Client(error))

    url = store_prescription_pdf(PDF_BYTES, prescription_id="RX-1", version_number=1, timestamp_ms=42)

    assert url.startswith("data:application/pdf;base64,")


def test_s3_without_bucket_falls_back_to_inline(settings, monkeypatch):
    monkeypatch.setattr(settings, "pdf_storage_backend", "s3")
    monkeypatch.setattr(settings, "aws_bucket_name", None)

    url = store_prescription_pdf(PDF_BYTES, prescription_id="RX-1", version_number=1, timestamp_ms=42)

    assert url.startswith("data:application/pdf;base64,")
