"""Exception types raised by the graphics protocol encoder and parser."""

from __future__ import annotations


class GraphicsError(Exception):
    """Base class for all graphics protocol errors."""


class EncodingError(GraphicsError):
    """Sequence bytes could not be decoded as UTF-8."""


class InvalidDimensions(GraphicsError, ValueError):
    """Pixel data length does not match the declared width and height."""

    def __init__(self, width: int, height: int, actual: int | None = None) -> None:
        self.width = width
        self.height = height
        self.actual = actual
        message = f"Invalid image dimensions: width={width}, height={height}"
        if actual is not None:
            message += f" (got {actual} bytes)"
        super().__init__(message)


class InvalidChunkSize(GraphicsError, ValueError):
    """Chunk size is not a positive multiple of 4 within the maximum."""

    def __init__(self, size: int) -> None:
        self.size = size
        super().__init__(
            f"Invalid chunk size: {size} (must be multiple of 4, max 4096)"
        )


class MissingField(GraphicsError):
    """A field required for the requested serialization mode is unset."""

    def __init__(self, field: str) -> None:
        self.field = field
        super().__init__(f"Missing required field: {field}")


class InvalidResponse(GraphicsError, ValueError):
    """Bytes read from the terminal are not a well-formed reply."""

    def __init__(self, raw: bytes | str) -> None:
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8", errors="replace")
        self.raw = raw
        super().__init__(f"Invalid response from terminal: {raw!r}")


class TerminalError(GraphicsError):
    """The terminal could not be driven (not a TTY, no reply, ...)."""
