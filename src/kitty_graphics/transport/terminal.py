"""Terminal connection for sending graphics commands and reading replies.

Writes escape sequences to the terminal's output stream and reads
replies from its input file descriptor with ``select`` timeouts.
Replies only arrive while the terminal is in raw mode, see
:meth:`TerminalConnection.raw_mode`.
"""

from __future__ import annotations

import logging
import os
import select
import struct
import sys
import time
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, Iterator

from ..errors import InvalidResponse, TerminalError
from ..models.types import Action, ImageFormat
from ..protocol.commands import (
    DEFAULT_QUIET,
    Command,
    delete_all,
    place,
    transmit_png,
    transmit_rgb,
    transmit_rgba,
)
from ..protocol.framing import APC_END
from ..protocol.parser import RESPONSE_START, Response, find_responses, parse_response

logger = logging.getLogger(__name__)

READ_TIMEOUT = 0.2  # seconds
READ_POLL_INTERVAL = 0.05
READ_SIZE = 256
MAX_REPLY_SIZE = 4096
SUPPORT_QUERY_ID = 31
WINDOW_SIZE_QUERY = b"\x1b[14t"


@dataclass(frozen=True)
class WindowSize:
    """Terminal geometry in cells and pixels."""

    rows: int
    cols: int
    width: int
    height: int

    @property
    def cell_width(self) -> int:
        return self.width // self.cols if self.cols else 0

    @property
    def cell_height(self) -> int:
        return self.height // self.rows if self.rows else 0

    def cells_for_image(self, img_width: int, img_height: int) -> tuple[int, int]:
        """Columns and rows needed to show an image of the given pixel size."""
        cell_w, cell_h = self.cell_width, self.cell_height
        if cell_w == 0 or cell_h == 0:
            return (0, 0)
        return (-(-img_width // cell_w), -(-img_height // cell_h))


def get_window_size(fd: int | None = None) -> WindowSize:
    """Read the window size with the ``TIOCGWINSZ`` ioctl.

    Raises:
        OSError: If ``fd`` is not a terminal.
    """
    import fcntl
    import termios

    if fd is None:
        fd = sys.stdout.fileno()
    packed = fcntl.ioctl(fd, termios.TIOCGWINSZ, b"\x00" * 8)
    rows, cols, width, height = struct.unpack("HHHH", packed)
    return WindowSize(rows=rows, cols=cols, width=width, height=height)


def parse_size_response(response: str, rows: int = 0, cols: int = 0) -> WindowSize:
    """Parse a ``CSI 4 ; <height> ; <width> t`` pixel size reply.

    The reply carries no cell counts; ``rows`` and ``cols`` are taken from
    the caller.

    Raises:
        InvalidResponse: If the reply is malformed.
    """
    if not response.startswith("\x1b[4;"):
        raise InvalidResponse(response)
    parts = response[4:].rstrip("t").split(";")
    if len(parts) < 2 or not all(p.isascii() and p.isdigit() for p in parts[:2]):
        raise InvalidResponse(response)
    return WindowSize(rows=rows, cols=cols, width=int(parts[1]), height=int(parts[0]))


class TerminalConnection:
    """Sends graphics commands to a terminal and reads its replies.

    Usage::

        term = TerminalConnection()
        with term.raw_mode():
            response = term.send_and_receive(query_support())
        term.display_png_file("image.png")
    """

    def __init__(
        self,
        input_fd: int | None = None,
        output: BinaryIO | None = None,
        quiet: int = DEFAULT_QUIET,
    ) -> None:
        self._input_fd = sys.stdin.fileno() if input_fd is None else input_fd
        self._output = sys.stdout.buffer if output is None else output
        self._quiet = quiet

    @property
    def quiet(self) -> int:
        return self._quiet

    @property
    def is_tty(self) -> bool:
        return os.isatty(self._input_fd)

    @contextmanager
    def raw_mode(self) -> Iterator[None]:
        """Put the input side in raw mode for the duration of the block.

        A no-op when the input is not a TTY (pipes, tests).
        """
        if not self.is_tty:
            yield
            return

        import termios
        import tty

        saved = termios.tcgetattr(self._input_fd)
        try:
            tty.setraw(self._input_fd)
            yield
        finally:
            termios.tcsetattr(self._input_fd, termios.TCSANOW, saved)

    def write(self, data: bytes | str) -> int:
        """Write an escape sequence verbatim and flush.

        Returns:
            Number of bytes written.
        """
        if isinstance(data, str):
            data = data.encode("utf-8")
        self._output.write(data)
        self._output.flush()
        return len(data)

    def send(self, command: Command, data: bytes = b"") -> int:
        """Send a command with its payload as one escape sequence."""
        logger.debug("Sending %s with %d payload bytes", command, len(data))
        return self.write(command.serialize_bytes(data))

    def send_chunked(self, command: Command, data: bytes) -> int:
        """Send a command with a large payload as chunked sequences."""
        chunks = command.serialize_chunked(data)
        logger.debug("Sending %s in %d chunks", command, chunks.total_chunks())
        return sum(self.write(chunk) for chunk in chunks)

    def send_path(self, command: Command) -> int:
        """Send a file or shared memory transmission."""
        return self.write(command.serialize_with_path())

    def read(self, timeout: float = READ_TIMEOUT, terminator: bytes = APC_END) -> bytes | None:
        """Read from the terminal until ``terminator`` or the timeout.

        Args:
            timeout: Overall read deadline in seconds.
            terminator: Byte string ending the expected reply.

        Returns:
            The bytes read, or None if nothing arrived.
        """
        buffer = bytearray()
        deadline = time.monotonic() + timeout
        while len(buffer) < MAX_REPLY_SIZE:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                break
            ready, _, _ = select.select(
                [self._input_fd], [], [], min(remaining, READ_POLL_INTERVAL)
            )
            if not ready:
                continue
            chunk = os.read(self._input_fd, READ_SIZE)
            if not chunk:
                break
            buffer += chunk
            if terminator in buffer:
                break

        if not buffer:
            logger.debug("No reply within %.3fs", timeout)
            return None
        return bytes(buffer)

    def read_response(self, timeout: float = READ_TIMEOUT) -> Response | None:
        """Read and parse the next graphics reply.

        Returns:
            The parsed reply, or None if no graphics reply arrived.
        """
        raw = self.read(timeout)
        if raw is None:
            return None
        frames = find_responses(raw)
        if not frames:
            logger.debug("Read %d bytes without a graphics reply", len(raw))
            return None
        return parse_response(frames[0])

    def send_and_receive(
        self,
        command: Command,
        data: bytes = b"",
        timeout: float = READ_TIMEOUT,
    ) -> Response | None:
        """Send a command and wait for the terminal's reply."""
        self.send(command, data)
        return self.read_response(timeout)

    def query_window_size(self, timeout: float = READ_TIMEOUT) -> WindowSize:
        """Ask the terminal for its pixel size with ``CSI 14 t``.

        Raises:
            TerminalError: If the terminal does not answer.
            InvalidResponse: If the answer is malformed.
        """
        with self.raw_mode():
            self.write(WINDOW_SIZE_QUERY)
            raw = self.read(timeout, terminator=b"t")
        if raw is None:
            raise TerminalError("No reply to window size query")

        try:
            cols, rows = os.get_terminal_size(self._input_fd)
        except OSError:
            rows = cols = 0
        return parse_size_response(raw.decode("ascii", errors="replace"), rows, cols)

    def check_protocol_support(self, timeout: float = READ_TIMEOUT) -> bool:
        """Probe whether the terminal understands graphics commands.

        Sends a 1x1 RGB query and looks for any graphics reply. When the
        input is not a TTY there is nobody to answer, so support is assumed.
        """
        if not self.is_tty:
            logger.debug("Input is not a TTY, assuming graphics support")
            return True

        probe = (
            Command.builder()
            .action(Action.QUERY)
            .format(ImageFormat.RGB)
            .dimensions(1, 1)
            .image_id(SUPPORT_QUERY_ID)
            .build()
        )
        with self.raw_mode():
            self.send(probe, b"\x00\x00\x00")
            raw = self.read(timeout)

        if raw is None or RESPONSE_START not in raw:
            logger.info("Terminal did not answer the graphics query")
            return False
        text = raw.decode("utf-8", errors="replace")
        return "OK" in text or "ENO" in text

    # ─── DISPLAY HELPERS ──────────────────────────────────────────────

    def display_png(self, data: bytes) -> int:
        """Transmit and display PNG data."""
        return sum(self.write(chunk) for chunk in transmit_png(data))

    def display_png_file(self, path: str | Path) -> int:
        """Transmit and display a PNG file."""
        return self.display_png(Path(path).read_bytes())

    def display_rgba(self, data: bytes, width: int, height: int) -> int:
        """Transmit and display raw RGBA pixels."""
        return sum(self.write(chunk) for chunk in transmit_rgba(data, width, height))

    def display_rgb(self, data: bytes, width: int, height: int) -> int:
        """Transmit and display raw RGB pixels."""
        return sum(self.write(chunk) for chunk in transmit_rgb(data, width, height))

    def transmit_png(self, data: bytes, image_id: int) -> int:
        """Transmit PNG data without displaying it, for a later place."""
        cmd = (
            Command.builder()
            .action(Action.TRANSMIT)
            .format(ImageFormat.PNG)
            .image_id(image_id)
            .quiet(self._quiet)
            .build()
        )
        return self.send_chunked(cmd, data)

    def place_image(self, image_id: int, columns: int, rows: int) -> int:
        """Display a previously transmitted image."""
        return self.send(place(image_id, columns, rows))

    def clear_all(self) -> int:
        """Delete all visible placements."""
        return self.send(delete_all())
