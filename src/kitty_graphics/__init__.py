"""Encoder and decoder for the terminal graphics protocol.

Build a command, serialize it into APC escape sequences, and parse the
terminal's replies::

    from kitty_graphics import Action, Command, ImageFormat

    cmd = (
        Command.builder()
        .action(Action.TRANSMIT_AND_DISPLAY)
        .format(ImageFormat.PNG)
        .build()
    )
    for chunk in cmd.serialize_chunked(png_bytes):
        sys.stdout.write(chunk)
"""

from .errors import (
    GraphicsError,
    EncodingError,
    InvalidDimensions,
    InvalidChunkSize,
    MissingField,
    InvalidResponse,
    TerminalError,
)
from .models.types import (
    Action,
    ImageFormat,
    TransmissionMedium,
    Compression,
    CursorPolicy,
    AnimationControl,
    CompositionMode,
    DeleteKind,
    DeleteTarget,
    UnicodePlaceholder,
    FrameComposition,
)
from .protocol.framing import (
    APC_START,
    APC_END,
    GRAPHICS_PREFIX,
    MAX_CHUNK_SIZE,
    ChunkedSerializer,
)
from .protocol.commands import (
    Command,
    CommandBuilder,
    query_support,
    delete_all,
    delete_by_id,
    place,
    transmit_png,
    transmit_rgba,
    transmit_rgb,
)
from .protocol.parser import Response, ErrorCode, parse_response
from .transport.terminal import TerminalConnection, WindowSize

__version__ = "0.1.0"
