"""NDJSON encoding and decoding for cached objects.

Records are written as compact JSON, one per ``\\n``-terminated line, and
read back line by line. Neither direction holds the whole body in memory.
"""

import io
import json
from collections.abc import Mapping
from typing import Any, Iterable, Iterator

import ndjson

from .errors import ParseError, SerializationError

# Arguments forwarded to json.dumps for every record
JSON_DUMPS_KWARGS = {
    "separators": (",", ":"),
    "ensure_ascii": False,
    "allow_nan": False,
}

DEFAULT_BUFFER_SIZE = 64 * 1024


def iter_records(data: Any) -> Iterator[Any]:
    """Iterate the records of a value handed to ``ObjectCache.store``.

    Mappings are written positionally as their ``(key, value)`` pairs. An
    object with a non-callable ``items`` attribute is unwrapped to it. Any
    other iterable is used as is.

    Args:
        data: Records container

    Returns:
        Iterator over the records

    Raises:
        SerializationError: If ``data`` is a string, bytes or not iterable
    """
    if isinstance(data, (str, bytes, bytearray)):
        raise SerializationError(f"Expected an iterable of records, got {type(data).__name__}")

    if isinstance(data, Mapping):
        return (list(pair) for pair in data.items())

    items = getattr(data, "items", None)
    if items is not None and not callable(items):
        data = items

    try:
        return iter(data)
    except TypeError as exc:
        raise SerializationError(f"Expected an iterable of records, got {type(data).__name__}") from exc


class NdjsonEncoder(io.RawIOBase):
    """Non-seekable byte stream producing NDJSON from an iterable of records.

    Records are pulled and encoded only when the reader asks for more bytes,
    so an upload can consume an arbitrarily long iterable.

    Attributes:
        records_written: Number of records encoded so far
    """

    def __init__(self, records: Iterable[Any]):
        super().__init__()
        self._records = iter(records)
        self._text = io.StringIO()
        self._writer = ndjson.writer(self._text, **JSON_DUMPS_KWARGS)
        self._pending = bytearray()
        self._exhausted = False
        self.records_written = 0

    def readable(self) -> bool:
        return True

    def readinto(self, buffer) -> int:
        size = len(buffer)
        while len(self._pending) < size and self._encode_next():
            pass

        count = min(size, len(self._pending))
        buffer[:count] = self._pending[:count]
        del self._pending[:count]
        return count

    def _encode_next(self) -> bool:
        """Encode one more record into the pending buffer.

        Returns:
            False once the records are exhausted
        """
        if self._exhausted:
            return False

        try:
            record = next(self._records)
        except StopIteration:
            self._exhausted = True
            return False

        try:
            self._writer.writerow(record)
        except (TypeError, ValueError) as exc:
            raise SerializationError(
                f"Record {self.records_written} is not JSON serializable: {exc}"
            ) from exc

        self._pending += self._text.getvalue().encode("utf-8")
        self._text.seek(0)
        self._text.truncate()
        self.records_written += 1
        return True


def encode_stream(records: Iterable[Any], buffer_size: int = DEFAULT_BUFFER_SIZE) -> io.BufferedReader:
    """Wrap records in a buffered, file-like NDJSON byte stream.

    Args:
        records: Records to encode
        buffer_size: Read buffer size in bytes

    Returns:
        Readable, non-seekable binary file object
    """
    return io.BufferedReader(NdjsonEncoder(records), buffer_size=buffer_size)


def decode_lines(lines: Iterable[bytes]) -> Iterator[Any]:
    """Parse NDJSON lines into records.

    Blank lines are skipped. The first malformed line stops iteration.

    Args:
        lines: Raw lines (without or with their line terminator)

    Yields:
        One decoded JSON value per non-blank line

    Raises:
        ParseError: If a line is not valid UTF-8 or not valid JSON
    """
    # each line decodes on its own so a truncated sequence fails on its line
    reader = ndjson.reader(line.decode("utf-8") for line in lines)
    index = 0
    while True:
        try:
            record = next(reader)
        except StopIteration:
            return
        except ValueError as exc:
            # json.JSONDecodeError and UnicodeDecodeError
            raise ParseError(f"Malformed NDJSON record {index}: {exc}", record_index=index) from exc
        yield record
        index += 1
