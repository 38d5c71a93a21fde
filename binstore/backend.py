"""Key-value backends executing prepared record statements."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from functools import partial
from typing import TYPE_CHECKING, Any, Literal, Protocol

from anyio import to_thread
from boto3.session import Session
from botocore.config import Config as BotoConfig
from botocore.exceptions import ClientError

from .errors import DecodeFailure

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping

    from .settings import StoreSettings

LOG = logging.getLogger("binstore.backend")

FILES = "files"
CHUNKS = "chunks"

Row = dict[str, Any]


async def _run_sync(func: Callable[..., Any], /, *args: Any, **kwargs: Any) -> Any:
    return await to_thread.run_sync(partial(func, *args, **kwargs))


@dataclass(frozen=True)
class Statement:
    """A prepared operation bound to its key and values."""

    keyspace: str
    table: Literal["files", "chunks"]
    operation: Literal["insert", "select"]
    key: tuple[Any, ...]
    values: Mapping[str, Any] | None = None


class Statements:
    """Prepares the statements used by the file and chunk stores."""

    def __init__(self, keyspace: str = "binarystore"):
        self.keyspace = keyspace

    def store_file(self, record: Mapping[str, Any]) -> Statement:
        return Statement(self.keyspace, FILES, "insert", (record["id"],), record)

    def store_chunk(self, file_id: str, num: int, data: bytes) -> Statement:
        return Statement(
            self.keyspace,
            CHUNKS,
            "insert",
            (file_id, num),
            {"file_id": file_id, "num": num, "data": data},
        )

    def load_file(self, file_id: str) -> Statement:
        return Statement(self.keyspace, FILES, "select", (file_id,))

    def load_chunk(self, file_id: str, num: int) -> Statement:
        return Statement(self.keyspace, CHUNKS, "select", (file_id, num))


class RecordBackend(Protocol):
    """Asynchronous key-value backend interface.

    ``execute`` returns the selected rows (empty when the key is absent) and
    an empty list for inserts. Failures are raised as the backend's own
    exceptions.
    """

    async def startup(self) -> None: ...

    async def shutdown(self) -> None: ...

    async def execute(self, statement: Statement) -> list[Row]: ...


class MemoryBackend:
    """Dict-backed backend for tests and local development."""

    def __init__(self) -> None:
        self._tables: dict[tuple[str, str], dict[tuple[Any, ...], Row]] = {}

    async def startup(self) -> None:
        LOG.info("memory backend ready")

    async def shutdown(self) -> None:
        self._tables.clear()

    async def execute(self, statement: Statement) -> list[Row]:
        table = self._tables.setdefault((statement.keyspace, statement.table), {})
        if statement.operation == "insert":
            table[statement.key] = dict(statement.values or {})
            return []
        row = table.get(statement.key)
        return [] if row is None else [dict(row)]


class S3Backend:
    """Backend storing each record as one object in an S3 bucket.

    File records are JSON documents at ``<keyspace>/files/<id>`` and chunk
    records are raw objects at ``<keyspace>/chunks/<id>/<num>``.
    """

    def __init__(self, settings: StoreSettings, client: Any = None):
        self._settings = settings
        self._client = client if client is not None else self._build_client()

    def _build_client(self):
        session = Session(
            aws_access_key_id=self._settings.access_key,
            aws_secret_access_key=self._settings.secret_key,
            aws_session_token=self._settings.session_token,
            region_name=self._settings.region,
        )
        return session.client(
            "s3",
            endpoint_url=self._settings.endpoint,
            config=BotoConfig(
                signature_version="s3v4",
                retries={"max_attempts": 3},
                s3={"addressing_style": self._settings.addressing_style},
            ),
        )

    async def startup(self) -> None:
        await self._ensure_bucket(self._settings.bucket)
        LOG.info(
            "S3 backend ready (endpoint=%s, bucket=%s)",
            self._settings.endpoint or "aws",
            self._settings.bucket,
        )

    async def shutdown(self) -> None:
        LOG.debug("S3 backend shut down")

    async def execute(self, statement: Statement) -> list[Row]:
        key = self.object_key(statement)
        if statement.operation == "insert":
            await self._put(statement, key)
            return []
        return await self._get(statement, key)

    @staticmethod
    def object_key(statement: Statement) -> str:
        parts = "/".join(str(part) for part in statement.key)
        return f"{statement.keyspace}/{statement.table}/{parts}"

    async def _put(self, statement: Statement, key: str) -> None:
        values = statement.values or {}
        if statement.table == FILES:
            body = json.dumps(values).encode("utf-8")
            content_type = "application/json"
        else:
            body = values["data"]
            content_type = "application/octet-stream"
        await _run_sync(
            self._client.put_object,
            Bucket=self._settings.bucket,
            Key=key,
            Body=body,
            ContentType=content_type,
        )
        LOG.debug("stored s3://%s/%s (%d bytes)", self._settings.bucket, key, len(body))

    async def _get(self, statement: Statement, key: str) -> list[Row]:
        try:
            obj = await _run_sync(
                self._client.get_object, Bucket=self._settings.bucket, Key=key
            )
        except ClientError as error:
            code = error.response.get("Error", {}).get("Code")
            if code in {"404", "NoSuchKey", "NotFound"}:
                LOG.debug("miss for s3://%s/%s", self._settings.bucket, key)
                return []
            raise

        stream = obj["Body"]
        try:
            body = await _run_sync(stream.read)
        finally:
            await _run_sync(stream.close)

        if statement.table == CHUNKS:
            file_id, num = statement.key
            return [{"file_id": file_id, "num": num, "data": body}]

        try:
            row = json.loads(body)
        except ValueError as error:
            msg = f"invalid file record at {key}"
            raise DecodeFailure(msg, error) from error
        if not isinstance(row, dict):
            msg = f"file record at {key} is not an object"
            raise DecodeFailure(msg)
        return [row]

    async def _ensure_bucket(self, bucket: str) -> None:
        try:
            await _run_sync(self._client.head_bucket, Bucket=bucket)
        except ClientError as error:
            code = error.response.get("Error", {}).get("Code")
            if code not in {"404", "NoSuchBucket", "NotFound"}:
                raise
            create_kwargs: dict[str, Any] = {"Bucket": bucket}
            location = self._settings.bucket_location
            if location and location != "us-east-1":
                create_kwargs["CreateBucketConfiguration"] = {
                    "LocationConstraint": location
                }
            await _run_sync(self._client.create_bucket, **create_kwargs)
            LOG.info("created bucket %s", bucket)


def create_backend(settings: StoreSettings) -> RecordBackend:
    """Build the backend selected by ``settings.backend``."""
    if settings.backend == "memory":
        return MemoryBackend()
    return S3Backend(settings)
