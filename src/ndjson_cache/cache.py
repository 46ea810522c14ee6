"""S3 object cache for arrays of JSON records.

Each cached value is one object in the bucket, holding one compact JSON
record per line (NDJSON). Uploads are streamed from a lazy encoder and
downloads are parsed line by line, so neither side buffers the raw body.
"""

import asyncio
import json
import threading
from functools import partial
from itertools import islice
from typing import Any, AsyncIterator, Iterator, List, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from .codec import decode_lines, encode_stream, iter_records
from .config import CacheSettings, Verbosity
from .errors import ConfigurationError, ParseError
from .logging_config import get_logger

DEFAULT_STREAM_BATCH_SIZE = 1000

NOT_FOUND_CODES = frozenset({"404", "NoSuchKey", "NotFound"})

_SECRET_KEYS = ("aws_secret_access_key", "aws_session_token")


def _redact(config: dict) -> dict:
    """Copy of a client config with secret values masked for logging."""
    return {key: "***" if key in _SECRET_KEYS and value else value for key, value in config.items()}


def _take(records: Iterator[Any], count: int) -> List[Any]:
    return list(islice(records, count))


class _UploadProgress:
    """Upload callback accumulating transferred bytes.

    The transfer manager may call it from several threads.
    """

    def __init__(self, log, bucket: str, key: str):
        self._log = log
        self._bucket = bucket
        self._key = key
        self._loaded = 0
        self._lock = threading.Lock()

    def __call__(self, bytes_amount: int) -> None:
        with self._lock:
            self._loaded += bytes_amount
            progress = {"loaded": self._loaded, "Bucket": self._bucket, "Key": self._key}
        self._log.info(json.dumps(progress))

    @property
    def loaded(self) -> int:
        return self._loaded


class ObjectCache:
    """Key-value cache of JSON record arrays stored as NDJSON objects.

    Attributes:
        bucket: Target bucket name
        config: Keyword arguments the S3 client was built with
        verbosity: Lowest log level this instance emits
    """

    def __init__(
        self,
        bucket: Optional[str] = None,
        config: Optional[dict] = None,
        settings: Optional[CacheSettings] = None,
    ):
        """Initialize the cache.

        Args:
            bucket: Bucket name (default: ``NDJSON_CACHE_BUCKET``)
            config: S3 client options layered over the defaults, e.g.
                ``region_name``, ``endpoint_url``, ``aws_access_key_id``
            settings: Environment-derived defaults (default: read from the
                process environment)

        Raises:
            ConfigurationError: If no bucket is given or configured
        """
        if settings is None:
            settings = CacheSettings()

        self.verbosity: Verbosity = settings.NDJSON_CACHE_VERBOSITY
        self.log = get_logger(__name__, self.verbosity, settings.NDJSON_CACHE_LOG_PREFIX)
        self.log.debug("Instantiating cache")

        self.config = {**settings.client_defaults(), **(config or {})}
        self.log.debug("Using config %s", _redact(self.config))

        self.bucket = bucket or settings.NDJSON_CACHE_BUCKET
        if not self.bucket:
            self.log.error("No bucket specified")
            raise ConfigurationError("No bucket specified")
        self.log.debug("Using bucket %s", self.bucket)

        self._client = boto3.client("s3", **self.config)

    def get_options(self) -> dict:
        """Return the resolved bucket, client config and verbosity."""
        return {
            "bucket": self.bucket,
            "config": dict(self.config),
            "verbosity": self.verbosity,
        }

    async def store(self, key: str, data: Any) -> None:
        """Serialize records to NDJSON and upload them under ``key``.

        Records are encoded while the upload reads them, so ``data`` may be
        a generator of any length. An existing object is overwritten.

        Args:
            key: Object key
            data: Iterable of JSON values, a mapping (written as
                ``[key, value]`` pairs) or an object with an ``items``
                attribute

        Raises:
            SerializationError: If a record cannot be encoded as JSON
            ClientError: If the upload fails
        """
        self.log.info("Caching data in S3 bucket %s", {"bucket": self.bucket, "key": key})
        body = encode_stream(iter_records(data))
        progress = _UploadProgress(self.log, self.bucket, key)
        loop = asyncio.get_event_loop()

        try:
            await loop.run_in_executor(
                None,
                partial(self._client.upload_fileobj, body, self.bucket, key, Callback=progress),
            )
        except (ClientError, BotoCoreError) as exc:
            self.log.error("Upload to %s/%s failed: %s", self.bucket, key, exc)
            raise
        finally:
            body.close()

        self.log.debug("Uploaded %d bytes to %s/%s", progress.loaded, self.bucket, key)

    async def retrieve(self, key: str) -> List[Any]:
        """Download the object at ``key`` and parse every record.

        The whole result is held in memory; use ``stream`` for large objects.

        Args:
            key: Object key

        Returns:
            Records in the order they were stored

        Raises:
            ParseError: If any line is not valid JSON
            ClientError: If the object cannot be downloaded
        """
        self.log.debug("Read cached data in S3 bucket %s", {"bucket": self.bucket, "key": key})
        loop = asyncio.get_event_loop()

        try:
            items = await loop.run_in_executor(None, self._read_all, key)
        except ParseError:
            self.log.error("Error happened when deserializing ndjson")
            raise
        except (ClientError, BotoCoreError) as exc:
            self.log.error("Download of %s/%s failed: %s", self.bucket, key, exc)
            raise

        self.log.debug("Every item successfully deserialized")
        return items

    async def stream(self, key: str, batch_size: int = DEFAULT_STREAM_BATCH_SIZE) -> AsyncIterator[Any]:
        """Iterate the records at ``key`` without loading them all.

        Records are decoded ``batch_size`` at a time. The iterator is not
        restartable; a malformed line ends it with ``ParseError`` after the
        records before it have been yielded.

        Args:
            key: Object key
            batch_size: Records decoded per executor call

        Yields:
            Records in the order they were stored

        Raises:
            ParseError: If a line is not valid JSON
            ClientError: If the object cannot be downloaded
        """
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")

        self.log.debug("Stream cached data in S3 bucket %s", {"bucket": self.bucket, "key": key})
        loop = asyncio.get_event_loop()

        try:
            response = await loop.run_in_executor(None, self._get_object, key)
        except (ClientError, BotoCoreError) as exc:
            self.log.error("Download of %s/%s failed: %s", self.bucket, key, exc)
            raise

        body = response["Body"]
        records = decode_lines(body.iter_lines())
        try:
            while True:
                try:
                    batch = await loop.run_in_executor(None, _take, records, batch_size)
                except ParseError:
                    self.log.error("Error happened when deserializing ndjson")
                    raise
                if not batch:
                    break
                for record in batch:
                    yield record
        finally:
            body.close()

        self.log.debug("Every item successfully deserialized")

    async def exists(self, key: str) -> bool:
        """Check whether an object exists at ``key``.

        Args:
            key: Object key

        Returns:
            True if the object exists, False on a not-found response

        Raises:
            ClientError: For errors other than not-found
        """
        loop = asyncio.get_event_loop()

        try:
            await loop.run_in_executor(
                None, lambda: self._client.head_object(Bucket=self.bucket, Key=key)
            )
            return True
        except ClientError as exc:
            if exc.response.get("Error", {}).get("Code") in NOT_FOUND_CODES:
                return False
            raise

    async def flush(self, key: str) -> None:
        """Delete the object at ``key``.

        No existence check is made; deleting a missing key is left to the
        store (a no-op on S3).

        Args:
            key: Object key

        Raises:
            ClientError: If the delete request fails
        """
        self.log.info("Removing object cached at %s", {"bucket": self.bucket, "key": key})
        loop = asyncio.get_event_loop()

        try:
            await loop.run_in_executor(
                None, lambda: self._client.delete_object(Bucket=self.bucket, Key=key)
            )
        except (ClientError, BotoCoreError) as exc:
            self.log.error("Delete of %s/%s failed: %s", self.bucket, key, exc)
            raise

    def _get_object(self, key: str) -> dict:
        return self._client.get_object(Bucket=self.bucket, Key=key)

    def _read_all(self, key: str) -> List[Any]:
        body = self._get_object(key)["Body"]
        try:
            return list(decode_lines(body.iter_lines()))
        finally:
            body.close()
