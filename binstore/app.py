from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any
from uuid import UUID

from litestar import Litestar, MediaType, Request, Response, get, put
from litestar.config.cors import CORSConfig
from litestar.exceptions import NotFoundException, ValidationException
from litestar.plugins.prometheus import PrometheusConfig, PrometheusController
from litestar.response import Stream
from prometheus_client import REGISTRY
from pydantic import ValidationError

from .errors import BackendFailure, DecodeFailure, InvalidRange
from .manager import BinaryStore
from .models import ChunkInfo, FileInfo, ReadResult
from .ranges import (
    content_range_header,
    parse_range_header,
    parse_suffix_length,
    suffix_range,
    unsatisfied_range_header,
)

if TYPE_CHECKING:
    from .reader import FileReader

LOG = logging.getLogger("binstore.app")

prometheus_config = PrometheusConfig(app_name="binstore", prefix="binstore")


def _status_for(error: BaseException | None) -> int:
    if isinstance(error, InvalidRange):
        return 416
    if isinstance(error, BackendFailure):
        return 502
    return 500


def _unsatisfiable(error: InvalidRange, total_size: int) -> Response:
    return Response(
        content=str(error),
        status_code=416,
        headers={"Content-Range": unsatisfied_range_header(total_size)},
        media_type=MediaType.TEXT,
    )


def _read_failure(reader: FileReader) -> Response:
    if reader.result is ReadResult.NOT_FOUND:
        return Response(
            content=f"file {reader.file_id} not found",
            status_code=404,
            media_type=MediaType.TEXT,
        )
    error = reader.exception
    if isinstance(error, InvalidRange) and reader.file_info is not None:
        return _unsatisfiable(error, reader.file_info.length)
    return Response(
        content=str(error) if error is not None else "read failed",
        status_code=_status_for(error),
        media_type=MediaType.TEXT,
    )


def _store_error_handler(request: Request, exc: Exception) -> Response:
    LOG.error("request %s %s failed: %s", request.method, request.url.path, exc)
    return Response(
        content=str(exc), status_code=_status_for(exc), media_type=MediaType.TEXT
    )


def create_app(store: BinaryStore | None = None) -> Litestar:
    """Create the binary store ASGI application."""
    if store is None:
        store = BinaryStore.from_env(REGISTRY)

    @get("/health", include_in_schema=False)
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    @put("/files/{file_id:uuid}", status_code=201)
    async def put_file(file_id: UUID, data: dict[str, Any]) -> dict[str, Any]:
        record = {**data, "id": file_id}
        if "chunkSize" not in record and "chunk_size" not in record:
            record["chunkSize"] = store.default_chunk_size
        try:
            file_info = FileInfo.model_validate(record)
        except ValidationError as error:
            raise ValidationException(detail=str(error)) from error
        await store.store_file(file_info)
        return file_info.model_dump(mode="json", by_alias=True)

    @get("/files/{file_id:uuid}/info")
    async def get_file_info(file_id: UUID) -> dict[str, Any]:
        file_info = await store.load_file(file_id)
        if file_info is None:
            raise NotFoundException(detail=f"file {file_id} not found")
        return file_info.model_dump(mode="json", by_alias=True)

    @put("/files/{file_id:uuid}/chunks/{num:int}", status_code=201)
    async def put_chunk(file_id: UUID, num: int, request: Request) -> dict[str, Any]:
        body = await request.body()
        try:
            chunk_info = ChunkInfo(file_id=file_id, num=num, data=body)
        except ValidationError as error:
            raise ValidationException(detail=str(error)) from error
        await store.store_chunk(chunk_info)
        return {"fileId": str(file_id), "num": num, "size": len(body)}

    @get("/files/{file_id:uuid}/chunks/{num:int}")
    async def get_chunk(file_id: UUID, num: int) -> Response:
        chunk_info = await store.load_chunk(file_id, num)
        if chunk_info is None:
            raise NotFoundException(detail=f"chunk {num} of file {file_id} not found")
        return Response(content=chunk_info.data, media_type="application/octet-stream")

    @get("/files/{file_id:uuid}")
    async def get_file(file_id: UUID, request: Request) -> Response:
        range_header = request.headers.get("range")
        content_range = parse_range_header(range_header)
        suffix_length = parse_suffix_length(range_header)
        if suffix_length is not None:
            # bytes=-N is resolved against the stored length before reading.
            stored = await store.load_file(file_id)
            if stored is None:
                raise NotFoundException(detail=f"file {file_id} not found")
            try:
                content_range = suffix_range(suffix_length, stored.length)
            except InvalidRange as error:
                return _unsatisfiable(error, stored.length)

        reader = (
            store.read(file_id)
            if content_range is None
            else store.read_range(file_id, content_range)
        )
        read_info = await reader.open()
        if read_info is None:
            return _read_failure(reader)

        file_info = read_info.file
        headers = {"Accept-Ranges": "bytes"}
        if file_info.file_name:
            headers["Content-Disposition"] = f'inline; filename="{file_info.file_name}"'

        # Full reads stop at the first missing chunk; no Content-Length.
        if read_info.range is None:
            status_code = 200
        else:
            range_info = reader.range_info
            assert range_info is not None
            headers["Content-Length"] = str(range_info.length)
            headers["Content-Range"] = content_range_header(
                read_info.range, file_info.length
            )
            status_code = 206

        LOG.debug("GET file %s status=%s", file_id, status_code)
        return Stream(
            content=reader.iter_data,
            status_code=status_code,
            headers=headers,
            media_type=file_info.content_type or "application/octet-stream",
        )

    async def startup(app: Litestar) -> None:
        await store.startup()

    async def shutdown(app: Litestar) -> None:
        await store.shutdown()

    cors_config = CORSConfig(
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["Accept-Ranges", "Content-Range", "Content-Length"],
    )

    return Litestar(
        route_handlers=[
            health,
            put_file,
            get_file_info,
            put_chunk,
            get_chunk,
            get_file,
            PrometheusController,
        ],
        on_startup=[startup],
        on_shutdown=[shutdown],
        cors_config=cors_config,
        middleware=[prometheus_config.middleware],
        exception_handlers={
            BackendFailure: _store_error_handler,
            DecodeFailure: _store_error_handler,
        },
    )


app = create_app()
