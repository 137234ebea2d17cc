"""Protocol layer: APC framing, command encoding, and response parsing."""

from .framing import build_frame, ChunkedSerializer
from .commands import Command, CommandBuilder
from .parser import Response, ErrorCode, parse_response
