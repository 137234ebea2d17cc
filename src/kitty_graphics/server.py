"""MCP server exposing the graphics protocol encoder and parser.

Lets an MCP client build escape sequences for inline images and decode
the terminal's replies, using the official Python MCP SDK with stdio
transport. The server never writes to a terminal itself; it returns the
sequences for the client to deliver.
"""

from __future__ import annotations

import base64
import binascii
import json
import logging
import os
from pathlib import Path
from typing import Any

from mcp.server.fastmcp import FastMCP

from .errors import GraphicsError
from .models.types import Action, CursorPolicy, DeleteKind, DeleteTarget, ImageFormat
from .protocol.commands import (
    Command,
    DEFAULT_QUIET,
    delete_all,
    place,
    query_support,
)
from .protocol.parser import ErrorCode, describe_error, parse_response

logger = logging.getLogger(__name__)

mcp = FastMCP(
    "kitty-graphics",
    instructions="Encode terminal graphics protocol commands and parse replies",
)

LOG_LEVEL_ENV = "KITTY_GRAPHICS_LOG_LEVEL"


# ─── KEY REFERENCE ────────────────────────────────────────────────────

CONTROL_KEYS = {
    "a": "action",
    "f": "format (24 RGB, 32 RGBA, 100 PNG)",
    "t": "transmission medium",
    "s": "width, or animation state with a=a",
    "v": "height, or loop count with a=a",
    "i": "image id",
    "I": "image number",
    "p": "placement id",
    "m": "more data follows (chunking)",
    "o": "compression",
    "q": "quiet level",
    "x": "source rect x",
    "y": "source rect y",
    "w": "source rect width",
    "h": "source rect height",
    "X": "cell offset x",
    "Y": "cell offset y, or background color for frames",
    "c": "display columns, or frame number",
    "r": "display rows",
    "z": "z-index, or frame gap in ms",
    "C": "cursor policy (1 = do not move)",
    "d": "delete target",
    "S": "data size",
    "O": "data offset",
    "U": "unicode placeholder",
    "P": "parent image id",
    "Q": "parent placement id",
    "H": "relative horizontal offset",
    "V": "relative vertical offset",
}


def _parse_action(value: str) -> Action:
    """Accept a wire token (``T``) or a name (``transmit_and_display``)."""
    try:
        return Action(value)
    except ValueError:
        pass
    try:
        return Action[value.upper()]
    except KeyError:
        raise ValueError(
            f"Unknown action '{value}'. Valid: {[a.name.lower() for a in Action]}"
        ) from None


def _parse_delete_kind(value: str) -> DeleteKind:
    try:
        return DeleteKind(value.lower())
    except ValueError:
        pass
    try:
        return DeleteKind[value.upper()]
    except KeyError:
        raise ValueError(
            f"Unknown delete target '{value}'. "
            f"Valid: {[k.name.lower() for k in DeleteKind]}"
        ) from None


def _decode_reply(reply: str) -> bytes:
    """Turn a reply pasted as text into raw bytes.

    Accepts literal ESC characters, ``\\x1b`` / ``\\033`` / ``\\e``
    escapes, or a hex string.
    """
    text = reply.strip()
    compact = text.replace(" ", "")
    if compact and len(compact) % 2 == 0 and all(
        c in "0123456789abcdefABCDEF" for c in compact
    ):
        return bytes.fromhex(compact)
    for escape in ("\\x1b", "\\x1B", "\\033", "\\e"):
        text = text.replace(escape, "\x1b")
    return text.encode("utf-8")


def _chunks_result(command: Command, data: bytes) -> dict[str, Any]:
    chunks = list(command.serialize_chunked(data)) if data else [command.serialize()]
    return {
        "control": command.build_control_data(),
        "chunks": chunks,
        "total_chunks": len(chunks),
    }


# ─── ENCODING TOOLS ───────────────────────────────────────────────────

@mcp.tool()
def encode_command(
    action: str,
    image_format: int | None = None,
    image_id: int | None = None,
    placement_id: int | None = None,
    width: int | None = None,
    height: int | None = None,
    columns: int | None = None,
    rows: int | None = None,
    z_index: int | None = None,
    quiet: int | None = None,
    no_move_cursor: bool = False,
    payload_base64: str = "",
) -> dict[str, Any]:
    """Build the escape sequences for a graphics command.

    Args:
        action: Action name or token (transmit_and_display / T, place / p, ...).
        image_format: 24 (RGB), 32 (RGBA) or 100 (PNG).
        image_id: Image id to assign or address.
        placement_id: Placement id.
        width: Image width in pixels.
        height: Image height in pixels.
        columns: Display area width in cells.
        rows: Display area height in cells.
        z_index: Stacking order.
        quiet: 0 all replies, 1 suppress OK, 2 suppress all.
        no_move_cursor: Leave the cursor where it is after placing.
        payload_base64: Image bytes, base64 encoded.
    """
    try:
        builder = Command.builder().action(_parse_action(action))
        if image_format is not None:
            builder.format(ImageFormat(image_format))
        if width is not None and height is not None:
            builder.dimensions(width, height)
        if image_id is not None:
            builder.image_id(image_id)
        if placement_id is not None:
            builder.placement_id(placement_id)
        if columns is not None and rows is not None:
            builder.display_area(columns, rows)
        if z_index is not None:
            builder.z_index(z_index)
        if quiet is not None:
            if not 0 <= quiet <= 2:
                return {"error": f"Quiet level must be 0-2, got {quiet}"}
            builder.quiet(quiet)
        if no_move_cursor:
            builder.cursor_policy(CursorPolicy.NO_MOVE)
        data = base64.b64decode(payload_base64, validate=True)
    except (ValueError, binascii.Error) as e:
        return {"error": str(e)}

    return _chunks_result(builder.build(), data)


@mcp.tool()
def transmit_image_file(path: str, image_id: int | None = None) -> dict[str, Any]:
    """Build the chunked sequences that display a PNG file.

    Args:
        path: Path to a PNG file.
        image_id: Optional id so the image can be placed again later.
    """
    file_path = Path(path).expanduser()
    if not file_path.is_file():
        return {"error": f"File not found: {path}"}

    data = file_path.read_bytes()
    builder = (
        Command.builder()
        .action(Action.TRANSMIT_AND_DISPLAY)
        .format(ImageFormat.PNG)
        .quiet(DEFAULT_QUIET)
    )
    if image_id is not None:
        builder.image_id(image_id)
    logger.info("Encoding %s (%d bytes)", file_path, len(data))
    return _chunks_result(builder.build(), data)


@mcp.tool()
def place_image(image_id: int, columns: int, rows: int) -> dict[str, Any]:
    """Build the sequence that places a previously transmitted image.

    Args:
        image_id: Id used when the image was transmitted.
        columns: Display width in cells.
        rows: Display height in cells.
    """
    return {"sequence": place(image_id, columns, rows).serialize()}


@mcp.tool()
def delete_images(
    target: str = "all",
    free_data: bool = False,
    image_id: int | None = None,
) -> dict[str, Any]:
    """Build a delete command.

    Args:
        target: Delete target name or letter (all, by_id, at_cursor, ...).
        free_data: Also free the stored image data.
        image_id: Image id for id based targets.
    """
    try:
        kind = _parse_delete_kind(target)
    except ValueError as e:
        return {"error": str(e)}

    if kind is DeleteKind.ALL and not free_data:
        command = delete_all()
    else:
        builder = (
            Command.builder()
            .action(Action.DELETE)
            .delete_target(DeleteTarget(kind, free_data=free_data))
        )
        if image_id is not None:
            builder.image_id(image_id)
        command = builder.build()
    return {"control": command.build_control_data(), "sequence": command.serialize()}


@mcp.tool()
def query_support_sequence() -> dict[str, str]:
    """Build the query a client sends to detect graphics support."""
    return {"sequence": query_support().serialize()}


# ─── PARSING TOOLS ────────────────────────────────────────────────────

@mcp.tool()
def parse_terminal_response(reply: str) -> dict[str, Any]:
    """Parse a graphics reply received from the terminal.

    Args:
        reply: The reply, with ESC written literally, as ``\\x1b``, or as hex.
    """
    try:
        response = parse_response(_decode_reply(reply))
    except (GraphicsError, ValueError) as e:
        return {"error": str(e)}

    return {
        "success": response.success,
        "image_id": response.image_id,
        "image_number": response.image_number,
        "placement_id": response.placement_id,
        "error": response.error,
        "error_code": response.error_code.name if response.error_code else None,
    }


@mcp.tool()
def describe_error_code(message: str) -> dict[str, str]:
    """Classify a terminal error message such as ``ENOENT:No such image``.

    Args:
        message: The message part of a reply.
    """
    return {
        "code": ErrorCode.from_message(message).name,
        "description": describe_error(message),
    }


# ─── RESOURCES ────────────────────────────────────────────────────────

@mcp.resource("graphics://reference/keys")
def resource_control_keys() -> str:
    """Control data keys and their meanings."""
    return json.dumps({"keys": CONTROL_KEYS, "count": len(CONTROL_KEYS)})


@mcp.resource("graphics://reference/actions")
def resource_actions() -> str:
    """Available actions and their wire tokens."""
    return json.dumps({a.name.lower(): a.value for a in Action})


# ─── ENTRY POINT ─────────────────────────────────────────────────────

def main():
    """Run the MCP server with stdio transport."""
    level = os.environ.get(LOG_LEVEL_ENV, "INFO").upper()
    logging.basicConfig(level=getattr(logging, level, logging.INFO))
    mcp.run(transport="stdio")


if __name__ == "__main__":
    main()
