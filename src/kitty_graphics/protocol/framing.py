"""APC frame builder and chunked transmission for graphics commands.

Frame layout::

    +-----------+---+--------------+---+------------------+---------+
    | APC start | G | control data | ; | base64 payload   | APC end |
    | ESC _     |   | k=v,k=v,...  |   | (may be empty)   | ESC \\   |
    +-----------+---+--------------+---+------------------+---------+

- Control data: comma-joined ``key=value`` pairs, single-letter keys
- Payload: standard base64 text of the image bytes (or of a file path)
- Large payloads are split across several frames. Only the first carries
  the control data; every frame carries ``m=1`` except the last (``m=0``)
"""

from __future__ import annotations

import base64
import logging

from ..errors import InvalidChunkSize

logger = logging.getLogger(__name__)

ESC = 0x1B
APC_START = b"\x1b_"
APC_END = b"\x1b\\"
GRAPHICS_PREFIX = "G"
MAX_CHUNK_SIZE = 4096  # base64 characters per frame
# base64 groups are 4 characters; a boundary must never split one
CHUNK_SIZE = (MAX_CHUNK_SIZE // 4) * 4


def encode_payload(data: bytes) -> str:
    """Standard base64 text for a payload."""
    return base64.standard_b64encode(data).decode("ascii")


def build_frame(control: str, encoded: str = "") -> bytes:
    """Build one complete APC graphics frame.

    Args:
        control: Control data string (``a=T,f=100,...``).
        encoded: Base64 payload text, already encoded.

    Returns:
        The raw escape sequence bytes.
    """
    return (
        APC_START
        + GRAPHICS_PREFIX.encode("ascii")
        + control.encode("ascii")
        + b";"
        + encoded.encode("ascii")
        + APC_END
    )


class ChunkedSerializer:
    """Lazy iterator over the frames of one chunked transmission.

    The payload is base64-encoded once up front and then sliced in
    base64-character space. An instance is single-use: once exhausted it
    yields nothing further; build a new one to iterate again.

    Usage::

        for chunk in ChunkedSerializer("a=T,f=100", encode_payload(png)):
            out.write(chunk)
    """

    def __init__(self, control: str, encoded: str, chunk_size: int = CHUNK_SIZE) -> None:
        if chunk_size <= 0 or chunk_size % 4 or chunk_size > MAX_CHUNK_SIZE:
            raise InvalidChunkSize(chunk_size)
        self._control = control
        self._encoded = encoded
        self._chunk_size = chunk_size
        self._offset = 0
        self._is_first = True

    @property
    def offset(self) -> int:
        """Number of base64 characters already emitted."""
        return self._offset

    @property
    def chunk_size(self) -> int:
        return self._chunk_size

    def total_chunks(self) -> int:
        """Total number of frames this transmission produces."""
        return -(-len(self._encoded) // self._chunk_size)

    def has_more(self) -> bool:
        """Whether another frame remains to be produced."""
        return self._offset < len(self._encoded)

    def __iter__(self) -> ChunkedSerializer:
        return self

    def __next__(self) -> str:
        total = len(self._encoded)
        if self._offset >= total:
            raise StopIteration

        end = min(self._offset + self._chunk_size, total)
        chunk = self._encoded[self._offset:end]
        is_last = end >= total

        parts = [APC_START.decode("ascii"), GRAPHICS_PREFIX]
        if self._is_first:
            # First frame carries the full control data
            parts.append(self._control)
            parts.append(",")
            self._is_first = False
        parts.append(f"m={0 if is_last else 1};")
        parts.append(chunk)
        parts.append(APC_END.decode("ascii"))

        logger.debug(
            "Chunk %d/%d: %d base64 chars (last=%s)",
            self._offset // self._chunk_size + 1,
            self.total_chunks(),
            len(chunk),
            is_last,
        )
        self._offset = end
        return "".join(parts)
