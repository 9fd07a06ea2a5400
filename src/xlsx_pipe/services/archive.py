"""Lazy access to the parts of an xlsx container.

The central directory is scanned once when the archive is opened; parts
are decompressed only when a caller opens them, and every opened part is
released when the caller's `with` block exits, including when a consumer
abandons the stream early.
"""

import shutil
import tempfile
import zipfile
import zlib
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import IO, BinaryIO

from xlsx_pipe.utils.exceptions import ArchiveCorruptError, EntryMissingError
from xlsx_pipe.utils.logging import get_logger

logger = get_logger(__name__)

# Errors a deflate stream can raise while decompressing a damaged entry.
_DECOMPRESSION_ERRORS = (zipfile.BadZipFile, zlib.error, EOFError)


class ArchiveReader:
    """Read-only view over the parts of an xlsx container.

    Usage:
        with ArchiveReader.open(path) as archive:
            with archive.open_entry("xl/workbook.xml") as stream:
                ...
    """

    def __init__(
        self,
        source: BinaryIO,
        *,
        name: str | None = None,
        close_source: bool = False,
    ) -> None:
        """Scan the central directory of a seekable container stream.

        Args:
            source: Seekable binary stream holding the container.
            name: Display name used in diagnostics.
            close_source: Close `source` when the reader is closed.

        Raises:
            ArchiveCorruptError: If the signature or directory is invalid.
        """
        self.name = name or getattr(source, "name", "<stream>")
        self._source = source
        self._close_source = close_source
        try:
            self._zip = zipfile.ZipFile(source)
        except (zipfile.BadZipFile, zipfile.LargeZipFile, EOFError, OSError) as e:
            if close_source:
                source.close()
            raise ArchiveCorruptError(
                f"Cannot read container {self.name}: {e}"
            ) from e

        # Producers disagree on case and leading slashes; index both away.
        self._entries: dict[str, zipfile.ZipInfo] = {}
        for info in self._zip.infolist():
            if info.is_dir():
                continue
            self._entries.setdefault(self._normalize(info.filename), info)
        logger.debug("Container opened", name=self.name, entries=len(self._entries))

    @classmethod
    def open(cls, path: str | Path) -> "ArchiveReader":
        """Open a container from a file path.

        Raises:
            ArchiveCorruptError: If the file is not a valid container.
            FileNotFoundError: If the path does not exist.
        """
        handle = open(path, "rb")  # noqa: SIM115 - owned by the reader
        return cls(handle, name=str(path), close_source=True)

    @classmethod
    def from_stream(
        cls,
        stream: BinaryIO,
        spool_max_bytes: int = 64 * 1024 * 1024,
    ) -> "ArchiveReader":
        """Open a container from a possibly non-seekable stream such as stdin.

        A seekable stream is used directly. Otherwise the stream is copied
        into a spooled temporary file first, since the central directory
        sits at the end of the container.
        """
        if _is_seekable(stream):
            return cls(stream, name=getattr(stream, "name", "<stream>"))
        spool = tempfile.SpooledTemporaryFile(max_size=spool_max_bytes)  # noqa: SIM115
        shutil.copyfileobj(stream, spool)
        spool.seek(0)
        logger.debug("Buffered non-seekable input", bytes=spool.tell())
        return cls(spool, name="<stdin>", close_source=True)  # type: ignore[arg-type]

    @staticmethod
    def _normalize(path: str) -> str:
        return path.lstrip("/").replace("\\", "/").lower()

    @property
    def names(self) -> list[str]:
        """Names of all file entries in the container."""
        return [info.filename for info in self._entries.values()]

    def has_entry(self, path: str) -> bool:
        return self._normalize(path) in self._entries

    @contextmanager
    def open_entry(self, path: str) -> Iterator[IO[bytes]]:
        """Open one part for streaming reads.

        Args:
            path: Part path inside the container, e.g. "xl/workbook.xml".

        Yields:
            Binary stream of the decompressed part.

        Raises:
            EntryMissingError: If the part does not exist.
            ArchiveCorruptError: If the part's local header is damaged.
        """
        info = self._entries.get(self._normalize(path))
        if info is None:
            raise EntryMissingError(path)
        try:
            stream = self._zip.open(info)
        except (*_DECOMPRESSION_ERRORS, NotImplementedError) as e:
            raise ArchiveCorruptError(f"Cannot open part: {e}", part=path) from e
        try:
            yield stream
        finally:
            stream.close()

    def close(self) -> None:
        self._zip.close()
        if self._close_source:
            self._source.close()

    def __enter__(self) -> "ArchiveReader":
        return self

    def __exit__(self, *args: object) -> None:
        self.close()


def read_chunks(stream: IO[bytes], size: int, part: str) -> Iterator[bytes]:
    """Yield decompressed chunks of a part, mapping damage to ArchiveCorruptError."""
    while True:
        try:
            chunk = stream.read(size)
        except _DECOMPRESSION_ERRORS as e:
            raise ArchiveCorruptError(
                f"Corrupt data while decompressing: {e}", part=part
            ) from e
        if not chunk:
            return
        yield chunk


def _is_seekable(stream: BinaryIO) -> bool:
    try:
        return stream.seekable()
    except (AttributeError, ValueError):
        return False
