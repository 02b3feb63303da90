"""httpx transports serving ``file://`` URLs from the local filesystem."""
from __future__ import annotations

import asyncio
import mimetypes
import threading
from pathlib import Path
from typing import AsyncIterator, BinaryIO, Iterator

import httpx

CHUNK_SIZE = 64 * 1024


def _file_path(url: httpx.URL) -> Path:
    return Path(url.path)


def _open_error(request: httpx.Request, path: Path, exc: OSError) -> httpx.Response:
    """Missing files answer 404 and unreadable ones 403 so they surface like
    any HTTP resource; other OS errors are raised as transport errors.
    """
    if isinstance(exc, (FileNotFoundError, NotADirectoryError)):
        return httpx.Response(404, text=f"No such file: {path}", request=request)
    if isinstance(exc, (PermissionError, IsADirectoryError)):
        return httpx.Response(403, text=f"Cannot read: {path}", request=request)
    raise httpx.ReadError(str(exc), request=request) from exc


def _file_headers(path: Path) -> dict[str, str]:
    content_type, _ = mimetypes.guess_type(path.name)
    return {"Content-Type": content_type or "text/plain"}


class _FileStream(httpx.SyncByteStream):
    def __init__(self, file: BinaryIO) -> None:
        self._file = file

    def __iter__(self) -> Iterator[bytes]:
        while True:
            try:
                chunk = self._file.read(CHUNK_SIZE)
            except OSError as exc:
                raise httpx.ReadError(str(exc)) from exc
            if not chunk:
                return
            yield chunk

    def close(self) -> None:
        self._file.close()


class _AsyncFileStream(httpx.AsyncByteStream):
    """
    Reads the file chunk by chunk on a worker thread, so a slow file (a FIFO
    or a network mount) never blocks the event loop.

    A read still running on its worker when the stream is closed closes the
    file itself once it returns.
    """

    def __init__(self, file: BinaryIO) -> None:
        self._file = file
        self._lock = threading.Lock()
        self._reading = False
        self._closing = False

    def _read(self) -> bytes:
        with self._lock:
            if self._closing:
                return b""
            self._reading = True
        try:
            return self._file.read(CHUNK_SIZE)
        finally:
            with self._lock:
                self._reading = False
                if self._closing:
                    self._file.close()

    async def __aiter__(self) -> AsyncIterator[bytes]:
        while True:
            try:
                chunk = await asyncio.to_thread(self._read)
            except OSError as exc:
                raise httpx.ReadError(str(exc)) from exc
            if not chunk:
                return
            yield chunk

    async def aclose(self) -> None:
        with self._lock:
            self._closing = True
            if not self._reading:
                self._file.close()


class FileTransport(httpx.BaseTransport):
    def handle_request(self, request: httpx.Request) -> httpx.Response:
        path = _file_path(request.url)
        try:
            file = path.open("rb", buffering=0)
        except OSError as exc:
            return _open_error(request, path, exc)
        return httpx.Response(200, headers=_file_headers(path), stream=_FileStream(file), request=request)


class AsyncFileTransport(httpx.AsyncBaseTransport):
    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        path = _file_path(request.url)
        try:
            # Opening a FIFO blocks until a writer shows up
            file = await asyncio.to_thread(path.open, "rb", buffering=0)
        except OSError as exc:
            return _open_error(request, path, exc)
        return httpx.Response(200, headers=_file_headers(path), stream=_AsyncFileStream(file), request=request)
