"""Response parsing for terminal graphics replies.

Reply layout::

    ESC _ G <control> ; <message> ESC \\

- Control: ``i=<id>``, ``I=<number>``, ``p=<placement>`` (others ignored)
- Message: ``OK`` or ``<ERRCODE>:<text>``
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum

from ..errors import EncodingError, InvalidResponse
from .framing import APC_END, APC_START, ESC, GRAPHICS_PREFIX

logger = logging.getLogger(__name__)

RESPONSE_START = APC_START + GRAPHICS_PREFIX.encode("ascii")
MIN_RESPONSE_SIZE = 6
MAX_U32 = 0xFFFFFFFF

# Known error prefixes and their human readable form
ERROR_PREFIXES: list[tuple[str, str]] = [
    ("ENOENT:", "Not found"),
    ("EINVAL:", "Invalid argument"),
    ("EIO:", "IO error"),
    ("ETOODEEP:", "Chain too deep"),
    ("ECYCLE:", "Cycle detected"),
    ("ENOPARENT:", "Parent not found"),
]

# Control keys carried in replies
_CONTROL_KEYS = {"i": "image_id", "I": "image_number", "p": "placement_id"}


class ErrorCode(Enum):
    """Error codes a terminal reports in its reply message."""

    NOT_FOUND = "ENOENT"
    INVALID_ARGUMENT = "EINVAL"
    IO_ERROR = "EIO"
    TOO_DEEP = "ETOODEEP"
    CYCLE = "ECYCLE"
    NO_PARENT = "ENOPARENT"
    UNKNOWN = ""

    @classmethod
    def from_message(cls, message: str) -> ErrorCode:
        """Classify a raw reply message by its leading token."""
        for code in cls:
            if code is not cls.UNKNOWN and message.startswith(code.value):
                return code
        return cls.UNKNOWN


@dataclass(frozen=True)
class Response:
    """A parsed terminal reply."""

    image_id: int | None = None
    image_number: int | None = None
    placement_id: int | None = None
    success: bool = False
    error: str | None = None
    message: str = ""

    @classmethod
    def parse(cls, data: bytes) -> Response:
        return parse_response(data)

    @property
    def is_ok(self) -> bool:
        return self.success

    @property
    def is_error(self) -> bool:
        return not self.success

    @property
    def error_code(self) -> ErrorCode | None:
        """Classified error code, ``None`` for successful replies."""
        if self.success:
            return None
        return ErrorCode.from_message(self.message)

    def __str__(self) -> str:
        if self.success:
            if self.image_id is None:
                return "OK"
            if self.placement_id is None:
                return f"OK (image_id={self.image_id})"
            return f"OK (image_id={self.image_id}, placement_id={self.placement_id})"
        return f"ERROR: {self.error}"


def _parse_u32(value: str) -> int | None:
    if not (value.isascii() and value.isdigit()):
        return None
    number = int(value)
    return number if number <= MAX_U32 else None


def _decode(raw: bytes) -> str:
    try:
        return raw.decode("utf-8")
    except UnicodeDecodeError as e:
        raise EncodingError(f"UTF-8 error: {e}") from e


def describe_error(message: str) -> str:
    """Human readable failure reason for a non-OK reply message."""
    for prefix, label in ERROR_PREFIXES:
        if message.startswith(prefix):
            return f"{label}: {message[len(prefix):]}"
    return message


def parse_response(data: bytes) -> Response:
    """Parse one graphics reply read from the terminal.

    Args:
        data: Raw reply bytes, ``ESC _ G ... ; ... ESC \\``.

    Returns:
        A :class:`Response`. Unknown or malformed control keys are ignored.

    Raises:
        InvalidResponse: If the frame is too short, has the wrong magic,
            lacks the ``;`` separator or the closing ESC.
        EncodingError: If control data or message are not UTF-8.
    """
    data = bytes(data)
    if len(data) < MIN_RESPONSE_SIZE or not data.startswith(RESPONSE_START):
        raise InvalidResponse(data)

    semicolon = data.find(b";", len(RESPONSE_START))
    if semicolon < 0:
        raise InvalidResponse(data)

    end = data.rfind(bytes([ESC]))
    if end < semicolon:
        raise InvalidResponse(data)

    control = _decode(data[len(RESPONSE_START):semicolon])
    message = _decode(data[semicolon + 1:end])

    ids: dict[str, int | None] = {}
    for part in control.split(","):
        key, sep, value = part.partition("=")
        if not sep:
            continue
        name = _CONTROL_KEYS.get(key)
        if name is None:
            logger.debug("Ignoring unknown reply key %r", key)
            continue
        ids[name] = _parse_u32(value)

    if message == "OK":
        success, error = True, None
    else:
        success, error = False, describe_error(message)

    return Response(success=success, error=error, message=message, **ids)


def find_responses(buffer: bytes) -> list[bytes]:
    """Extract complete graphics replies from a read buffer.

    Bytes outside ``ESC _ G ... ESC \\`` frames (other escape sequences,
    stray input) are skipped. An incomplete trailing frame is dropped.
    """
    frames: list[bytes] = []
    pos = 0
    while True:
        start = buffer.find(RESPONSE_START, pos)
        if start < 0:
            break
        end = buffer.find(APC_END, start + len(RESPONSE_START))
        if end < 0:
            break
        frames.append(bytes(buffer[start:end + len(APC_END)]))
        pos = end + len(APC_END)
    return frames
