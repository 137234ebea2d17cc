"""Tests for command building, control data and serialization."""

import base64
import logging

import pytest

from kitty_graphics.errors import InvalidDimensions, MissingField
from kitty_graphics.models.types import (
    Action,
    AnimationControl,
    Compression,
    CursorPolicy,
    DeleteKind,
    DeleteTarget,
    FrameComposition,
    ImageFormat,
    TransmissionMedium,
)
from kitty_graphics.protocol.commands import (
    Command,
    delete_all,
    delete_by_id,
    place,
    query_support,
    transmit_png,
    transmit_rgb,
    transmit_rgba,
)


def _payload_of(chunk: str) -> str:
    return chunk.split(";", 1)[1][:-2]


def test_action_and_format_only():
    """Only a= and f= are emitted, in order, with no stray commas."""
    cmd = (
        Command.builder()
        .action(Action.TRANSMIT_AND_DISPLAY)
        .format(ImageFormat.PNG)
        .build()
    )
    assert cmd.build_control_data() == "a=T,f=100"


def test_empty_command():
    assert Command.builder().build().build_control_data() == ""


def test_image_id_wins_over_image_number():
    cmd = Command.builder().image_id(7).image_number(9).build()
    assert cmd.build_control_data() == "i=7"


def test_image_number_alone():
    cmd = Command.builder().image_number(9).build()
    assert cmd.build_control_data() == "I=9"


def test_canonical_order():
    """Every primary key in its fixed position."""
    cmd = (
        Command.builder()
        .action(Action.TRANSMIT_AND_DISPLAY)
        .format(ImageFormat.RGBA)
        .medium(TransmissionMedium.FILE)
        .dimensions(10, 20)
        .image_id(1)
        .placement_id(2)
        .more_data(True)
        .compression(Compression.ZLIB)
        .quiet(1)
        .source_rect(3, 4, 5, 6)
        .cell_offset(7, 8)
        .display_area(9, 10)
        .z_index(-1)
        .cursor_policy(CursorPolicy.NO_MOVE)
        .data_range(100, 200)
        .unicode_placeholder(4, 2)
        .parent(11, 12)
        .relative_offset(-2, 3)
        .build()
    )
    assert cmd.build_control_data() == (
        "a=T,f=32,t=f,s=10,v=20,i=1,p=2,m=1,o=z,q=1,"
        "x=3,y=4,w=5,h=6,X=7,Y=8,c=9,r=10,z=-1,C=1,"
        "S=100,O=200,U=1,P=11,Q=12,H=-2,V=3"
    )


def test_more_data_false_is_emitted():
    """m=0 is sent only when the caller set it."""
    assert Command.builder().more_data(False).build().build_control_data() == "m=0"
    assert "m=" not in Command.builder().build().build_control_data()


def test_quiet_zero_is_emitted():
    assert Command.builder().quiet(0).build().build_control_data() == "q=0"


def test_source_rect_fields_are_independent():
    cmd = Command(source_x=5, source_height=9)
    assert cmd.build_control_data() == "x=5,h=9"


def test_cursor_default_is_not_emitted():
    cmd = Command.builder().cursor_policy(CursorPolicy.DEFAULT).build()
    assert cmd.build_control_data() == ""


def test_delete_target_codes():
    cmd = (
        Command.builder()
        .action(Action.DELETE)
        .delete_target(DeleteTarget(DeleteKind.BY_Z_INDEX, free_data=True))
        .z_index(3)
        .build()
    )
    assert cmd.build_control_data() == "a=d,z=3,d=Z"


def test_path_is_not_control_data():
    cmd = Command.builder().medium(TransmissionMedium.FILE).path("/tmp/a.png").build()
    assert cmd.build_control_data() == "t=f"


def test_animation_control_reuses_s():
    cmd = (
        Command.builder()
        .action(Action.ANIMATION_CONTROL)
        .image_id(3)
        .animation_control(AnimationControl.RUN)
        .loop_count(1)
        .build()
    )
    assert cmd.build_control_data() == "a=a,i=3,s=3,v=1"


def test_frame_number_reuses_c():
    cmd = Command.builder().action(Action.ANIMATION_CONTROL).frame_number(4).build()
    assert cmd.build_control_data() == "a=a,c=4"


def test_frame_gap_reuses_z():
    cmd = Command.builder().action(Action.FRAME).frame_gap(40).build()
    assert cmd.build_control_data() == "a=f,z=40"


def test_zero_frame_gap_and_loop_count_are_skipped():
    cmd = Command.builder().frame_gap(0).loop_count(0).build()
    assert cmd.build_control_data() == ""


def test_negative_frame_gap_is_emitted():
    assert Command.builder().frame_gap(-1).build().build_control_data() == "z=-1"


def test_background_color_last():
    cmd = Command.builder().action(Action.FRAME).frame_gap(100).background_color(0xFF0000FF).build()
    assert cmd.build_control_data() == "a=f,z=100,Y=4278190335"


def test_ref_frame_and_composition_not_emitted():
    cmd = (
        Command.builder()
        .action(Action.COMPOSE_FRAME)
        .ref_frame(2)
        .composition(FrameComposition(source_frame=2, dest_frame=3))
        .build()
    )
    assert cmd.build_control_data() == "a=c"


def test_shared_slot_conflict_is_sent_twice(caplog):
    """Conflicting fields are not rejected; both tokens go out, later wins."""
    with caplog.at_level(logging.WARNING):
        cmd = (
            Command.builder()
            .dimensions(10, 20)
            .animation_control(AnimationControl.STOP)
            .build()
        )
    assert cmd.build_control_data() == "s=10,v=20,s=1"
    assert "width" in caplog.text


def test_zero_frame_gap_does_not_conflict(caplog):
    with caplog.at_level(logging.WARNING):
        cmd = Command.builder().z_index(5).frame_gap(0).build()
    assert cmd.build_control_data() == "z=5"
    assert caplog.text == ""


def test_command_is_immutable():
    cmd = Command.builder().image_id(1).build()
    with pytest.raises(AttributeError):
        cmd.image_id = 2


def test_builder_chaining_returns_builder():
    builder = Command.builder()
    assert builder.action(Action.QUERY) is builder


def test_str():
    cmd = Command.builder().action(Action.QUERY).build()
    assert str(cmd) == "Command(a=q)"


def test_serialize():
    cmd = Command.builder().action(Action.TRANSMIT).image_id(5).build()
    assert cmd.serialize(b"\x00\x00\x00") == "\x1b_Ga=t,i=5;AAAA\x1b\\"


def test_serialize_bytes_matches_serialize():
    cmd = Command.builder().action(Action.TRANSMIT).build()
    data = b"pixel bytes"
    assert cmd.serialize_bytes(data) == cmd.serialize(data).encode("ascii")


def test_serialize_and_chunked_decode_to_same_payload():
    data = bytes(range(256)) * 30
    cmd = Command.builder().action(Action.TRANSMIT_AND_DISPLAY).format(ImageFormat.PNG).build()
    single = _payload_of(cmd.serialize(data))
    chunked = "".join(_payload_of(c) for c in cmd.serialize_chunked(data))
    assert base64.standard_b64decode(single) == data
    assert base64.standard_b64decode(chunked) == data


def test_serialize_chunked_first_chunk_prefix():
    cmd = Command.builder().action(Action.TRANSMIT).format(ImageFormat.PNG).build()
    chunks = list(cmd.serialize_chunked(b"\x89PNG" * 2000))
    assert chunks[0].startswith("\x1b_Ga=t,f=100,m=1;")
    assert chunks[-1].startswith("\x1b_Gm=0;")


def test_serialize_with_path():
    cmd = (
        Command.builder()
        .action(Action.TRANSMIT_AND_DISPLAY)
        .format(ImageFormat.PNG)
        .medium(TransmissionMedium.FILE)
        .path("/tmp/image.png")
        .build()
    )
    encoded = base64.standard_b64encode(b"/tmp/image.png").decode("ascii")
    assert cmd.serialize_with_path() == f"\x1b_Ga=T,f=100,t=f;{encoded}\x1b\\"


def test_serialize_with_path_missing():
    cmd = Command.builder().medium(TransmissionMedium.FILE).build()
    with pytest.raises(MissingField) as exc:
        cmd.serialize_with_path()
    assert exc.value.field == "path"


def test_query_support():
    assert query_support().build_control_data() == "a=q,q=2"


def test_delete_all():
    assert delete_all().serialize() == "\x1b_Ga=d,d=a;\x1b\\"


def test_delete_by_id():
    assert delete_by_id(42).build_control_data() == "a=d,i=42,d=I"


def test_place():
    assert place(1, 20, 10).build_control_data() == "a=p,i=1,c=20,r=10"


def test_transmit_rgba():
    chunks = transmit_rgba(b"\x00" * (2 * 3 * 4), 2, 3)
    assert len(chunks) == 1
    assert chunks[0].startswith("\x1b_Ga=T,f=32,s=2,v=3,q=2,m=0;")


def test_transmit_rgba_wrong_size():
    with pytest.raises(InvalidDimensions) as exc:
        transmit_rgba(b"\x00" * 10, 2, 3)
    assert exc.value.width == 2
    assert exc.value.height == 3


def test_transmit_rgb():
    chunks = transmit_rgb(b"\x00" * (4 * 4 * 3), 4, 4)
    assert chunks[0].startswith("\x1b_Ga=T,f=24,s=4,v=4,q=2,m=0;")


def test_transmit_rgb_rejects_rgba_sized_data():
    with pytest.raises(ValueError):
        transmit_rgb(b"\x00" * (4 * 4 * 4), 4, 4)


def test_transmit_png_no_dimension_check():
    chunks = transmit_png(b"\x89PNG\r\n\x1a\n" * 1000)
    assert len(chunks) == 3
    assert chunks[0].startswith("\x1b_Ga=T,f=100,q=2,m=1;")
