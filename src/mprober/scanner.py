"""Sequential tokenizer over kernel pseudo-file contents.

procfs files are small and regenerated on every read, so a file is read
once into memory and decoded from there. Every parser in this package is
built from the primitives below; format rules stay in the parsers.
"""

from pathlib import Path

_WHITESPACE = b" \t\n\r\x0b\x0c"


class FormatError(ValueError):
    """A kernel file did not have the expected shape."""


class UnexpectedEof(FormatError):
    """A required field was missing."""


class InvalidData(FormatError):
    """A field was present but could not be parsed."""


class Scanner:
    """Cursor over a byte buffer.

    Methods named ``next_*`` return ``None`` at end of input when the value
    is optional for the caller; numeric readers and ``skip*`` raise
    ``UnexpectedEof`` instead, because every numeric field in a kernel file
    is required.
    """

    def __init__(self, data: bytes, source: str = "<bytes>") -> None:
        self._data = data
        self._pos = 0
        self.source = source

    @classmethod
    def from_path(cls, path: Path | str) -> "Scanner":
        """Read a file into a scanner. OSError propagates unchanged."""
        path = Path(path)
        return cls(path.read_bytes(), source=str(path))

    @property
    def at_eof(self) -> bool:
        """True when only whitespace is left."""
        return self._skip_whitespace() >= len(self._data)

    def _skip_whitespace(self) -> int:
        data = self._data
        pos = self._pos
        while pos < len(data) and data[pos] in _WHITESPACE:
            pos += 1
        self._pos = pos
        return pos

    def _eof(self, what: str) -> UnexpectedEof:
        return UnexpectedEof(f"{self.source}: unexpected end of input reading {what}")

    def _invalid(self, what: str, raw: bytes) -> InvalidData:
        return InvalidData(f"{self.source}: invalid {what}: {raw!r}")

    # ─────────────────────────────────────────────────────────────────────
    # Raw tokens
    # ─────────────────────────────────────────────────────────────────────

    def next_token(self) -> bytes | None:
        """Return the next whitespace-delimited token, or None at EOF."""
        data = self._data
        start = self._skip_whitespace()
        if start >= len(data):
            return None
        end = start
        while end < len(data) and data[end] not in _WHITESPACE:
            end += 1
        self._pos = end
        return data[start:end]

    def require_token(self, what: str = "token") -> bytes:
        """Return the next token, raising UnexpectedEof if there is none."""
        token = self.next_token()
        if token is None:
            raise self._eof(what)
        return token

    def next_until(self, delimiter: bytes) -> bytes | None:
        """Return bytes up to ``delimiter`` and move past it.

        Leading whitespace is skipped. If the delimiter never occurs, the
        remaining bytes are returned, or None when nothing is left.
        """
        data = self._data
        start = self._skip_whitespace()
        if start >= len(data):
            return None
        index = data.find(delimiter, start)
        if index < 0:
            self._pos = len(data)
            return data[start:]
        self._pos = index + len(delimiter)
        return data[start:index]

    def next_line(self) -> bytes | None:
        """Return the rest of the current line without its newline."""
        data = self._data
        start = self._pos
        if start >= len(data):
            return None
        index = data.find(b"\n", start)
        if index < 0:
            self._pos = len(data)
            return data[start:]
        self._pos = index + 1
        return data[start:index]

    def skip_line(self) -> bool:
        """Drop the rest of the current line. False at EOF."""
        return self.next_line() is not None

    def skip(self, count: int = 1) -> None:
        """Drop ``count`` tokens."""
        for _ in range(count):
            if self.next_token() is None:
                raise self._eof("skipped field")

    def skip_until(self, delimiter: bytes) -> None:
        """Drop everything up to and including ``delimiter``."""
        index = self._data.find(delimiter, self._pos)
        if index < 0:
            raise self._eof(f"delimiter {delimiter!r}")
        self._pos = index + len(delimiter)

    def skip_bytes(self, count: int) -> None:
        """Drop exactly ``count`` bytes."""
        if self._pos + count > len(self._data):
            raise self._eof(f"{count} bytes")
        self._pos += count

    def expect(self, literal: bytes) -> None:
        """Require the next token to equal ``literal``."""
        token = self.require_token(f"label {literal!r}")
        if token != literal:
            raise self._invalid(f"label (expected {literal!r})", token)

    # ─────────────────────────────────────────────────────────────────────
    # Typed values
    # ─────────────────────────────────────────────────────────────────────

    def next_uint(self, what: str = "unsigned integer") -> int:
        return self.parse_uint(self.require_token(what), what)

    def next_int(self, what: str = "integer") -> int:
        return self.parse_int(self.require_token(what), what)

    def next_float(self, what: str = "number") -> float:
        return self.parse_float(self.require_token(what), what)

    def next_uint_until(self, delimiter: bytes, what: str = "unsigned integer") -> int:
        raw = self.next_until(delimiter)
        if raw is None:
            raise self._eof(what)
        return self.parse_uint(raw.strip(), what)

    def next_int_until(self, delimiter: bytes, what: str = "integer") -> int:
        raw = self.next_until(delimiter)
        if raw is None:
            raise self._eof(what)
        return self.parse_int(raw.strip(), what)

    def parse_uint(self, raw: bytes, what: str = "unsigned integer") -> int:
        if not raw.isdigit():
            raise self._invalid(what, raw)
        return int(raw)

    def parse_int(self, raw: bytes, what: str = "integer") -> int:
        digits = raw[1:] if raw[:1] in (b"-", b"+") else raw
        if not digits.isdigit():
            raise self._invalid(what, raw)
        return int(raw)

    def parse_float(self, raw: bytes, what: str = "number") -> float:
        try:
            return float(raw)
        except ValueError:
            raise self._invalid(what, raw) from None


def decode(raw: bytes) -> str:
    """Decode kernel text, substituting U+FFFD for ill-formed bytes."""
    return raw.decode("utf-8", errors="replace")
