"""Tests for the MCP server tools."""

from __future__ import annotations

import base64
import json
import sys
from unittest.mock import MagicMock, patch

import pytest


def _get_server_module():
    """Import server module with FastMCP mocked to avoid init issues."""
    mock_fastmcp_cls = MagicMock()
    mock_fastmcp_instance = MagicMock()
    # Make the @mcp.tool() decorator a no-op that returns the function unchanged
    mock_fastmcp_instance.tool.return_value = lambda fn: fn
    mock_fastmcp_instance.resource.return_value = lambda fn: fn
    mock_fastmcp_instance.prompt.return_value = lambda fn: fn
    mock_fastmcp_cls.return_value = mock_fastmcp_instance

    with patch("mcp.server.fastmcp.FastMCP", mock_fastmcp_cls):
        # Remove cached server module so it re-imports with our mock
        sys.modules.pop("kitty_graphics.server", None)
        import kitty_graphics.server as server_mod

    return server_mod


@pytest.fixture(scope="module")
def server():
    return _get_server_module()


def test_encode_command_single_sequence(server):
    result = server.encode_command(action="place", image_id=4, columns=10, rows=5)
    assert result["control"] == "a=p,i=4,c=10,r=5"
    assert result["chunks"] == ["\x1b_Ga=p,i=4,c=10,r=5;\x1b\\"]
    assert result["total_chunks"] == 1


def test_encode_command_accepts_wire_token(server):
    result = server.encode_command(action="T", image_format=100, quiet=2)
    assert result["control"] == "a=T,f=100,q=2"


def test_encode_command_chunks_payload(server):
    payload = base64.b64encode(b"\x00" * 6000).decode("ascii")
    result = server.encode_command(
        action="transmit_and_display",
        image_format=100,
        no_move_cursor=True,
        payload_base64=payload,
    )
    assert result["control"] == "a=T,f=100,C=1"
    assert result["total_chunks"] == 2
    assert result["chunks"][0].startswith("\x1b_Ga=T,f=100,C=1,m=1;")


def test_encode_command_errors(server):
    assert "error" in server.encode_command(action="explode")
    assert "error" in server.encode_command(action="T", image_format=7)
    assert "error" in server.encode_command(action="T", quiet=3)
    assert "error" in server.encode_command(action="T", payload_base64="not base64!")


def test_transmit_image_file(server, tmp_path):
    image = tmp_path / "a.png"
    image.write_bytes(b"\x89PNG")
    result = server.transmit_image_file(str(image), image_id=2)
    assert result["chunks"] == ["\x1b_Ga=T,f=100,i=2,q=2,m=0;iVBORw==\x1b\\"]


def test_transmit_image_file_missing(server, tmp_path):
    result = server.transmit_image_file(str(tmp_path / "missing.png"))
    assert "error" in result


def test_place_image(server):
    assert server.place_image(1, 2, 3) == {"sequence": "\x1b_Ga=p,i=1,c=2,r=3;\x1b\\"}


def test_delete_images(server):
    assert server.delete_images()["control"] == "a=d,d=a"
    assert server.delete_images("all", free_data=True)["control"] == "a=d,d=A"
    result = server.delete_images("by_id", free_data=True, image_id=7)
    assert result["control"] == "a=d,i=7,d=I"
    assert server.delete_images("z")["control"] == "a=d,d=z"
    assert "error" in server.delete_images("everything")


def test_query_support_sequence(server):
    assert server.query_support_sequence() == {"sequence": "\x1b_Ga=q,q=2;\x1b\\"}


@pytest.mark.parametrize(
    "reply",
    [
        "\x1b_Gi=42,p=7;OK\x1b\\",
        "\\x1b_Gi=42,p=7;OK\\x1b\\",
        "\\033_Gi=42,p=7;OK\\033\\",
        "1b5f47693d34322c703d373b4f4b1b5c",
    ],
)
def test_parse_terminal_response_formats(server, reply):
    result = server.parse_terminal_response(reply)
    assert result["success"] is True
    assert result["image_id"] == 42
    assert result["placement_id"] == 7
    assert result["error_code"] is None


def test_parse_terminal_response_error(server):
    result = server.parse_terminal_response("\\x1b_Gi=1;ENOENT:gone\\x1b\\")
    assert result["success"] is False
    assert result["error"] == "Not found: gone"
    assert result["error_code"] == "NOT_FOUND"


def test_parse_terminal_response_malformed(server):
    assert "error" in server.parse_terminal_response("hello")


def test_describe_error_code(server):
    assert server.describe_error_code("ECYCLE:loop") == {
        "code": "CYCLE",
        "description": "Cycle detected: loop",
    }


def test_resources(server):
    keys = json.loads(server.resource_control_keys())
    assert keys["keys"]["a"] == "action"
    actions = json.loads(server.resource_actions())
    assert actions["transmit_and_display"] == "T"
