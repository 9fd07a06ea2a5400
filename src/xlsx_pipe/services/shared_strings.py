"""Shared-string table loading.

The table is loaded eagerly, once per run, because any sheet may reference
any index at any time. Rich-text formatting is discarded: each entry is
the concatenation of its text runs.
"""

from collections.abc import Iterator, Sequence
from typing import IO, overload

from xlsx_pipe.services.xml_stream import (
    DEFAULT_CHUNK_SIZE,
    iter_events,
    local_name,
    rich_text,
)
from xlsx_pipe.utils.exceptions import MalformedSharedStringsError
from xlsx_pipe.utils.logging import get_logger

logger = get_logger(__name__)

DEFAULT_PART = "xl/sharedStrings.xml"


class SharedStringTable(Sequence[str]):
    """Immutable, indexable sequence of shared strings."""

    __slots__ = ("_strings",)

    def __init__(self, strings: Sequence[str] = ()) -> None:
        self._strings: tuple[str, ...] = tuple(strings)

    @classmethod
    def empty(cls) -> "SharedStringTable":
        """Table for documents that use only inline strings."""
        return cls()

    @classmethod
    def load(
        cls,
        stream: IO[bytes],
        *,
        part: str = DEFAULT_PART,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ) -> "SharedStringTable":
        """Parse a shared-strings part.

        Args:
            stream: Decompressed part stream.
            part: Part path for diagnostics.
            chunk_size: Bytes fed to the pull parser per read.

        Returns:
            The loaded table.

        Raises:
            MalformedSharedStringsError: On truncated or invalid XML.
        """
        strings: list[str] = []
        root = None
        for event, elem in iter_events(
            stream,
            part=part,
            error_factory=lambda msg: MalformedSharedStringsError(msg, part),
            chunk_size=chunk_size,
        ):
            if event == "start":
                if root is None:
                    if local_name(elem.tag) != "sst":
                        raise MalformedSharedStringsError(
                            f"Unexpected root element <{local_name(elem.tag)}>",
                            part,
                        )
                    root = elem
                continue
            if local_name(elem.tag) == "si":
                strings.append(rich_text(elem))
                # Completed items are no longer needed in the tree.
                root.clear()

        logger.debug("Shared strings loaded", part=part, count=len(strings))
        return cls(strings)

    @overload
    def __getitem__(self, index: int) -> str: ...

    @overload
    def __getitem__(self, index: slice) -> Sequence[str]: ...

    def __getitem__(self, index: int | slice) -> str | Sequence[str]:
        return self._strings[index]

    def __len__(self) -> int:
        return len(self._strings)

    def __iter__(self) -> Iterator[str]:
        return iter(self._strings)

    def __repr__(self) -> str:
        return f"SharedStringTable(count={len(self._strings)})"
