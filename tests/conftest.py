"""Pytest configuration for ndjson-cache tests."""

import io
from unittest.mock import patch

import pytest
from botocore.exceptions import ClientError
from botocore.response import StreamingBody

CACHE_ENV_VARS = (
    "NDJSON_CACHE_BUCKET",
    "NDJSON_CACHE_ENDPOINT_URL",
    "NDJSON_CACHE_VERBOSITY",
    "NDJSON_CACHE_LOG_PREFIX",
    "AWS_REGION",
)


class FakeS3Client:
    """In-memory stand-in for the subset of the S3 client the cache uses."""

    def __init__(self, read_size: int = 1024 * 1024):
        self.objects = {}
        self.read_size = read_size
        self.progress_calls = []

    def upload_fileobj(self, Fileobj, Bucket, Key, ExtraArgs=None, Callback=None, Config=None):
        assert not Fileobj.seekable()
        chunks = []
        while True:
            chunk = Fileobj.read(self.read_size)
            if not chunk:
                break
            chunks.append(chunk)
            if Callback is not None:
                Callback(len(chunk))
                self.progress_calls.append(len(chunk))
        self.objects[(Bucket, Key)] = b"".join(chunks)

    def get_object(self, Bucket, Key):
        data = self._lookup(Bucket, Key, "NoSuchKey", "GetObject")
        return {"Body": StreamingBody(io.BytesIO(data), len(data)), "ContentLength": len(data)}

    def head_object(self, Bucket, Key):
        data = self._lookup(Bucket, Key, "404", "HeadObject")
        return {"ContentLength": len(data)}

    def delete_object(self, Bucket, Key):
        self.objects.pop((Bucket, Key), None)
        return {}

    def _lookup(self, bucket, key, code, operation):
        try:
            return self.objects[(bucket, key)]
        except KeyError:
            raise ClientError(
                {"Error": {"Code": code, "Message": "Not Found"}},
                operation,
            ) from None


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Remove cache environment variables so tests start from defaults."""
    for name in CACHE_ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def fake_s3():
    """Patch boto3.client to return an in-memory S3 client."""
    client = FakeS3Client()
    with patch("ndjson_cache.cache.boto3.client", return_value=client):
        yield client
