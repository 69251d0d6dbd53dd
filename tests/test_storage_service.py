import boto3
import pytest
from botocore.stub import ANY, Stubber

from clinicscribe.core.exceptions import UpstreamServiceError
from clinicscribe.services.storage_service import ObjectStorage, draft_audio_key, session_document_key


@pytest.fixture
def s3_client():
    return boto3.client(
        "s3",
        region_name="us-east-1",
        aws_access_key_id="test",
        aws_secret_access_key="test",
    )


def test_object_keys():
    assert draft_audio_key("doctor-1", "webm", now_ms=1700000000000) == "drafts/doctor-1/1700000000000.webm"
    assert session_document_key("doctor-1", "abc") == "documents/doctor-1/abc.html"


@pytest.mark.asyncio
async def test_upload_returns_public_url(s3_client):
    storage = ObjectStorage(client=s3_client, bucket="notes", public_base_url="https://cdn.example.test/")
    with Stubber(s3_client) as stubber:
        stubber.add_response(
            "put_object",
            {},
            {"Bucket": "notes", "Key": "doc.html", "Body": ANY, "ContentType": "text/html"},
        )

        url = await storage.upload(b"<html></html>", "doc.html", "text/html")

    assert url == "https://cdn.example.test/doc.html"


@pytest.mark.asyncio
async def test_upload_failure_raises_upstream_error(s3_client):
    storage = ObjectStorage(client=s3_client, bucket="notes", public_base_url="https://cdn.example.test")
    with Stubber(s3_client) as stubber:
        stubber.add_client_error("put_object", service_error_code="AccessDenied", http_status_code=403)

        with pytest.raises(UpstreamServiceError) as exc_info:
            await storage.upload(b"data", "doc.html", "text/html")

    assert exc_info.value.service == "storage"


@pytest.mark.asyncio
async def test_check_reports_unreachable_bucket(s3_client):
    storage = ObjectStorage(client=s3_client, bucket="notes", public_base_url="https://cdn.example.test")
    with Stubber(s3_client) as stubber:
        stubber.add_response("head_bucket", {}, {"Bucket": "notes"})
        stubber.add_client_error("head_bucket", service_error_code="NoSuchBucket", http_status_code=404)

        assert await storage.check() is True
        assert await storage.check() is False
