"""Graphics commands: the immutable Command record and its builder.

A command is rendered into control data as an ordered list of
``key=value`` tokens. Several keys are reused by the protocol with a
meaning that depends on the action:

- ``s``: image width, or the animation state when animation_control is set
- ``v``: image height, or the loop count for animation control
- ``z``: z-index, or the frame gap in milliseconds for frame actions
- ``c``: display columns, or the frame number

The emission order below is fixed so sequences are reproducible.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from ..errors import EncodingError, InvalidDimensions, MissingField
from ..models.types import (
    Action,
    AnimationControl,
    Compression,
    CursorPolicy,
    DeleteKind,
    DeleteTarget,
    FrameComposition,
    ImageFormat,
    TransmissionMedium,
    UnicodePlaceholder,
    wire_token,
)
from .framing import ChunkedSerializer, CHUNK_SIZE, build_frame, encode_payload

logger = logging.getLogger(__name__)

DEFAULT_QUIET = 2

# Fields that share a wire key; the second one is emitted later and wins.
SHARED_SLOTS: list[tuple[str, str, str]] = [
    ("s", "width", "animation_control"),
    ("c", "columns", "frame_number"),
    ("z", "z_index", "frame_gap"),
    ("v", "height", "loop_count"),
]


def _to_text(raw: bytes) -> str:
    try:
        return raw.decode("utf-8")
    except UnicodeDecodeError as e:
        raise EncodingError(f"UTF-8 error: {e}") from e


@dataclass(frozen=True)
class Command:
    """A graphics protocol command ready for serialization.

    Every field is optional; ``None`` means "not sent". Build instances
    with :meth:`Command.builder` or the module-level helpers.
    """

    action: Action | None = None
    format: ImageFormat | None = None
    medium: TransmissionMedium | None = None
    width: int | None = None
    height: int | None = None
    image_id: int | None = None
    image_number: int | None = None
    placement_id: int | None = None
    more_data: bool | None = None
    compression: Compression | None = None
    quiet: int | None = None
    source_x: int | None = None
    source_y: int | None = None
    source_width: int | None = None
    source_height: int | None = None
    cell_offset_x: int | None = None
    cell_offset_y: int | None = None
    columns: int | None = None
    rows: int | None = None
    z_index: int | None = None
    cursor_policy: CursorPolicy | None = None
    delete_target: DeleteTarget | None = None
    path: str | None = None
    data_size: int | None = None
    data_offset: int | None = None
    unicode_placeholder: UnicodePlaceholder | None = None
    parent_image_id: int | None = None
    parent_placement_id: int | None = None
    relative_h_offset: int | None = None
    relative_v_offset: int | None = None
    animation_control: AnimationControl | None = None
    frame_number: int | None = None
    frame_gap: int | None = None
    loop_count: int | None = None
    background_color: int | None = None
    ref_frame: int | None = None
    composition: FrameComposition | None = None

    @staticmethod
    def builder() -> CommandBuilder:
        return CommandBuilder()

    def build_control_data(self) -> str:
        """Render the control data string (``a=T,f=100,...``)."""
        parts: list[str] = []

        def emit(key: str, value) -> None:
            if value is not None:
                parts.append(f"{key}={wire_token(value)}")

        emit("a", self.action)
        emit("f", self.format)
        emit("t", self.medium)
        emit("s", self.width)
        emit("v", self.height)

        # image_id takes priority over image_number
        if self.image_id is not None:
            emit("i", self.image_id)
        else:
            emit("I", self.image_number)

        emit("p", self.placement_id)
        emit("m", self.more_data)
        emit("o", self.compression)
        emit("q", self.quiet)

        emit("x", self.source_x)
        emit("y", self.source_y)
        emit("w", self.source_width)
        emit("h", self.source_height)

        emit("X", self.cell_offset_x)
        emit("Y", self.cell_offset_y)

        emit("c", self.columns)
        emit("r", self.rows)

        emit("z", self.z_index)

        if self.cursor_policy == CursorPolicy.NO_MOVE:
            emit("C", self.cursor_policy)

        emit("d", self.delete_target)

        # path travels in the payload slot, see serialize_with_path()

        emit("S", self.data_size)
        emit("O", self.data_offset)

        if self.unicode_placeholder is not None:
            parts.append("U=1")

        emit("P", self.parent_image_id)
        emit("Q", self.parent_placement_id)

        emit("H", self.relative_h_offset)
        emit("V", self.relative_v_offset)

        # Reused keys, emitted after their primary meaning
        emit("s", self.animation_control)
        emit("c", self.frame_number)
        if self.frame_gap:
            emit("z", self.frame_gap)
        if self.loop_count is not None and self.loop_count > 0:
            emit("v", self.loop_count)

        emit("Y", self.background_color)

        return ",".join(parts)

    def serialize(self, data: bytes = b"") -> str:
        """Serialize to a single escape sequence string.

        Raises:
            EncodingError: If the sequence is not valid UTF-8.
        """
        return _to_text(self.serialize_bytes(data))

    def serialize_bytes(self, data: bytes = b"") -> bytes:
        """Serialize to a single escape sequence as raw bytes."""
        return build_frame(self.build_control_data(), encode_payload(data))

    def serialize_chunked(
        self, data: bytes, chunk_size: int = CHUNK_SIZE
    ) -> ChunkedSerializer:
        """Lazily serialize a large payload into several frames."""
        return ChunkedSerializer(
            self.build_control_data(), encode_payload(data), chunk_size
        )

    def serialize_with_path(self) -> str:
        """Serialize a file / shared memory transmission.

        The base64-encoded path replaces the pixel payload.

        Raises:
            MissingField: If no path was set.
        """
        if self.path is None:
            raise MissingField("path")
        return _to_text(
            build_frame(
                self.build_control_data(),
                encode_payload(self.path.encode("utf-8")),
            )
        )

    def __str__(self) -> str:
        return f"Command({self.build_control_data()})"


class CommandBuilder:
    """Accumulates options for a :class:`Command`.

    Setters return the builder so calls can be chained::

        cmd = (
            Command.builder()
            .action(Action.TRANSMIT_AND_DISPLAY)
            .format(ImageFormat.PNG)
            .quiet(2)
            .build()
        )
    """

    def __init__(self) -> None:
        self._values: dict[str, object] = {}

    def _set(self, **values) -> CommandBuilder:
        self._values.update(values)
        return self

    def action(self, action: Action) -> CommandBuilder:
        return self._set(action=action)

    def format(self, format: ImageFormat) -> CommandBuilder:
        return self._set(format=format)

    def medium(self, medium: TransmissionMedium) -> CommandBuilder:
        return self._set(medium=medium)

    def dimensions(self, width: int, height: int) -> CommandBuilder:
        """Image size in pixels."""
        return self._set(width=width, height=height)

    def image_id(self, image_id: int) -> CommandBuilder:
        return self._set(image_id=image_id)

    def image_number(self, number: int) -> CommandBuilder:
        """Image number, used when no image_id is set."""
        return self._set(image_number=number)

    def placement_id(self, placement_id: int) -> CommandBuilder:
        return self._set(placement_id=placement_id)

    def more_data(self, more: bool) -> CommandBuilder:
        return self._set(more_data=more)

    def compression(self, compression: Compression) -> CommandBuilder:
        return self._set(compression=compression)

    def quiet(self, mode: int) -> CommandBuilder:
        """Quiet level: 0 all replies, 1 suppress OK, 2 suppress all."""
        return self._set(quiet=mode)

    def source_rect(self, x: int, y: int, width: int, height: int) -> CommandBuilder:
        return self._set(
            source_x=x, source_y=y, source_width=width, source_height=height
        )

    def cell_offset(self, x: int, y: int) -> CommandBuilder:
        """Pixel offset within the first cell."""
        return self._set(cell_offset_x=x, cell_offset_y=y)

    def display_area(self, columns: int, rows: int) -> CommandBuilder:
        return self._set(columns=columns, rows=rows)

    def z_index(self, z: int) -> CommandBuilder:
        return self._set(z_index=z)

    def cursor_policy(self, policy: CursorPolicy) -> CommandBuilder:
        return self._set(cursor_policy=policy)

    def delete_target(self, target: DeleteTarget) -> CommandBuilder:
        return self._set(delete_target=target)

    def path(self, path: str) -> CommandBuilder:
        """File path or shared memory name."""
        return self._set(path=str(path))

    def data_range(self, size: int, offset: int) -> CommandBuilder:
        return self._set(data_size=size, data_offset=offset)

    def unicode_placeholder(self, columns: int, rows: int) -> CommandBuilder:
        return self._set(unicode_placeholder=UnicodePlaceholder(columns, rows))

    def parent(self, image_id: int, placement_id: int) -> CommandBuilder:
        """Parent placement for relative positioning."""
        return self._set(parent_image_id=image_id, parent_placement_id=placement_id)

    def relative_offset(self, h: int, v: int) -> CommandBuilder:
        return self._set(relative_h_offset=h, relative_v_offset=v)

    def animation_control(self, control: AnimationControl) -> CommandBuilder:
        return self._set(animation_control=control)

    def frame_number(self, frame: int) -> CommandBuilder:
        return self._set(frame_number=frame)

    def frame_gap(self, gap_ms: int) -> CommandBuilder:
        """Frame gap in milliseconds (negative = gapless frame)."""
        return self._set(frame_gap=gap_ms)

    def loop_count(self, count: int) -> CommandBuilder:
        """Loop count (0 = ignored, 1 = infinite)."""
        return self._set(loop_count=count)

    def background_color(self, color: int) -> CommandBuilder:
        """Background color as 32-bit RGBA."""
        return self._set(background_color=color)

    def ref_frame(self, frame: int) -> CommandBuilder:
        return self._set(ref_frame=frame)

    def composition(self, composition: FrameComposition) -> CommandBuilder:
        return self._set(composition=composition)

    def build(self) -> Command:
        """Build the command. Never fails; checks happen at serialization."""
        values = self._values
        reused = {
            "animation_control": values.get("animation_control") is not None,
            "frame_number": values.get("frame_number") is not None,
            "frame_gap": bool(values.get("frame_gap")),
            "loop_count": (values.get("loop_count") or 0) > 0,
        }
        for key, first, second in SHARED_SLOTS:
            if values.get(first) is not None and reused[second]:
                logger.warning(
                    "Both %s and %s set; wire key '%s' is sent twice and "
                    "the terminal keeps the later %s",
                    first, second, key, second,
                )
        return Command(**self._values)


# ─── CONVENIENCE BUILDERS ────────────────────────────────────────────


def query_support() -> Command:
    """Build a command asking whether the terminal speaks the protocol."""
    return Command.builder().action(Action.QUERY).quiet(DEFAULT_QUIET).build()


def delete_all() -> Command:
    """Build a command deleting all visible placements."""
    return (
        Command.builder()
        .action(Action.DELETE)
        .delete_target(DeleteTarget.all())
        .build()
    )


def delete_by_id(image_id: int) -> Command:
    """Build a command deleting an image and freeing its data."""
    return (
        Command.builder()
        .action(Action.DELETE)
        .delete_target(DeleteTarget(DeleteKind.BY_ID, free_data=True))
        .image_id(image_id)
        .build()
    )


def place(image_id: int, columns: int, rows: int) -> Command:
    """Build a command placing a previously transmitted image."""
    return (
        Command.builder()
        .action(Action.PLACE)
        .image_id(image_id)
        .display_area(columns, rows)
        .build()
    )


def transmit_png(data: bytes) -> list[str]:
    """Build the frames that transmit and display PNG data."""
    cmd = (
        Command.builder()
        .action(Action.TRANSMIT_AND_DISPLAY)
        .format(ImageFormat.PNG)
        .quiet(DEFAULT_QUIET)
        .build()
    )
    return list(cmd.serialize_chunked(data))


def _transmit_raw(
    data: bytes, width: int, height: int, image_format: ImageFormat
) -> list[str]:
    expected = width * height * image_format.bytes_per_pixel
    if len(data) != expected:
        raise InvalidDimensions(width, height, len(data))
    cmd = (
        Command.builder()
        .action(Action.TRANSMIT_AND_DISPLAY)
        .format(image_format)
        .dimensions(width, height)
        .quiet(DEFAULT_QUIET)
        .build()
    )
    return list(cmd.serialize_chunked(data))


def transmit_rgba(data: bytes, width: int, height: int) -> list[str]:
    """Build the frames that transmit and display raw RGBA pixels.

    Raises:
        InvalidDimensions: If ``len(data) != width * height * 4``.
    """
    return _transmit_raw(data, width, height, ImageFormat.RGBA)


def transmit_rgb(data: bytes, width: int, height: int) -> list[str]:
    """Build the frames that transmit and display raw RGB pixels.

    Raises:
        InvalidDimensions: If ``len(data) != width * height * 3``.
    """
    return _transmit_raw(data, width, height, ImageFormat.RGB)
