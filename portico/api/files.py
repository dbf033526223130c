from __future__ import annotations

from typing import Any, Optional

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from narthex.FileSystemGate.models import (
    CompressRequest,
    DecompressRequest,
    ErrorKind,
    FileWriteRequest,
    OperationResult,
)


def status_for(kind: Optional[ErrorKind]) -> int:
    """HTTP status for a failed operation."""
    if kind is None or kind == ErrorKind.IO_ERROR:
        return 500
    return 400


def error_response(result: OperationResult) -> JSONResponse:
    kind = result.error_kind or ErrorKind.IO_ERROR
    return JSONResponse(
        status_code=status_for(kind),
        content={"error": result.error, "kind": kind.value},
    )


def create_router(FileSystemGate, emit_event) -> APIRouter:
    router = APIRouter()

    async def _mutation(result: OperationResult, **payload: Any):
        """Emit an audit event for a successful change and build the response."""
        if not result.success:
            return error_response(result)
        await emit_event("filesystem", result.message, operation=result.operation, path=result.path)
        return {"message": result.message, **payload}

    @router.get("/files/contents")
    async def api_read_file(path: Optional[str] = None, encoding: str = "utf-8"):
        """Read a file's contents (encoding=base64 for binary files)."""
        result = await run_in_threadpool(FileSystemGate.read_file, path, encoding)
        if not result.success:
            return error_response(result)
        return {"content": result.data}

    @router.get("/files/list-directory")
    async def api_list_directory(path: Optional[str] = None):
        """List directory contents."""
        result = await run_in_threadpool(FileSystemGate.list_dir, path)
        if not result.success:
            return error_response(result)
        return result.data

    @router.put("/files/rename")
    async def api_rename(
        old_path: Optional[str] = None,
        new_path: Optional[str] = None,
        overwrite: bool = False,
    ):
        """Move a file or directory."""
        result = await run_in_threadpool(FileSystemGate.rename, old_path, new_path, overwrite)
        return await _mutation(result)

    @router.post("/files/copy")
    async def api_copy(
        src: Optional[str] = None,
        dest: Optional[str] = None,
        overwrite: bool = False,
    ):
        """Copy a file."""
        result = await run_in_threadpool(FileSystemGate.copy, src, dest, overwrite)
        return await _mutation(result)

    @router.post("/files/write")
    async def api_write_file(data: FileWriteRequest, path: Optional[str] = None):
        """Create or replace a file."""
        result = await run_in_threadpool(
            FileSystemGate.write_file,
            path,
            data.content,
            data.encoding,
            data.create_dirs,
        )
        return await _mutation(result)

    @router.post("/files/delete")
    async def api_delete(path: Optional[str] = None, recursive: bool = False):
        """Delete a file or directory."""
        result = await run_in_threadpool(FileSystemGate.delete, path, recursive)
        return await _mutation(result)

    @router.post("/files/compress")
    async def api_compress(data: CompressRequest):
        """Pack files and directories into one archive."""
        result = await run_in_threadpool(
            FileSystemGate.compress,
            data.sources,
            data.destination,
            data.overwrite,
            data.format,
        )
        return await _mutation(result, **(result.data or {}))

    @router.post("/files/decompress")
    async def api_decompress(data: DecompressRequest):
        """Extract an archive into a directory."""
        result = await run_in_threadpool(
            FileSystemGate.decompress,
            data.source,
            data.destination,
            data.overwrite,
            data.format,
        )
        return await _mutation(result, **(result.data or {}))

    @router.post("/files/chmod")
    async def api_chmod(path: Optional[str] = None, mode: Optional[str] = None):
        """Set permission bits from an octal string."""
        result = await run_in_threadpool(FileSystemGate.chmod, path, mode)
        return await _mutation(result)

    return router


__all__ = ["create_router", "error_response", "status_for"]
