"""Protocol vocabulary: actions, formats, delete targets and friends.

Every value here has exactly one wire token. Enum values *are* the tokens,
so encoding is ``str(member.value)``; numeric codes are fixed protocol
constants, not ordinal positions.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, IntEnum


class Action(str, Enum):
    """Graphics command action (key ``a``)."""

    QUERY = "q"
    TRANSMIT = "t"
    TRANSMIT_AND_DISPLAY = "T"
    PLACE = "p"
    DELETE = "d"
    FRAME = "f"
    ANIMATION_CONTROL = "a"
    COMPOSE_FRAME = "c"


class ImageFormat(IntEnum):
    """Pixel data format (key ``f``)."""

    RGB = 24
    RGBA = 32
    PNG = 100

    @property
    def bytes_per_pixel(self) -> int | None:
        """Bytes per pixel for raw formats, ``None`` for PNG."""
        return {ImageFormat.RGB: 3, ImageFormat.RGBA: 4}.get(self)


class TransmissionMedium(str, Enum):
    """Where the terminal reads the image data from (key ``t``)."""

    DIRECT = "d"
    FILE = "f"
    TEMP_FILE = "t"
    SHARED_MEMORY = "s"


class Compression(str, Enum):
    """Payload compression (key ``o``)."""

    ZLIB = "z"


class CursorPolicy(IntEnum):
    """Cursor movement after placement (key ``C``, only sent for NO_MOVE)."""

    DEFAULT = 0
    NO_MOVE = 1


class AnimationControl(IntEnum):
    """Animation state selector (key ``s`` with ``a=a``)."""

    STOP = 1
    LOADING = 2
    RUN = 3


class CompositionMode(IntEnum):
    """Pixel composition for frame operations."""

    ALPHA_BLEND = 0
    REPLACE = 1


class DeleteKind(str, Enum):
    """Which placements a delete command selects.

    The value is the lowercase wire letter; the uppercase letter also
    frees the underlying image data.
    """

    ALL = "a"
    BY_ID = "i"
    BY_NUMBER = "n"
    AT_CURSOR = "c"
    FRAMES = "f"
    AT_CELL = "p"
    AT_CELL_WITH_Z_INDEX = "q"
    BY_ID_RANGE = "r"
    BY_COLUMN = "x"
    BY_ROW = "y"
    BY_Z_INDEX = "z"


@dataclass(frozen=True)
class DeleteTarget:
    """Delete selector (key ``d``).

    ``DeleteTarget(DeleteKind.BY_ID, free_data=True)`` encodes as ``I``.
    Use :meth:`all` and :meth:`all_with_free` for the two "all" variants.
    """

    kind: DeleteKind
    free_data: bool = False

    @classmethod
    def all(cls) -> DeleteTarget:
        return cls(DeleteKind.ALL)

    @classmethod
    def all_with_free(cls) -> DeleteTarget:
        return cls(DeleteKind.ALL, free_data=True)

    def code(self) -> str:
        """Single character wire code for this target."""
        letter = self.kind.value
        return letter.upper() if self.free_data else letter


@dataclass(frozen=True)
class UnicodePlaceholder:
    """Virtual placement shown through Unicode placeholder cells."""

    columns: int
    rows: int


@dataclass(frozen=True)
class FrameComposition:
    """Parameters for composing one animation frame onto another."""

    source_frame: int = 1
    dest_frame: int = 1
    width: int | None = None
    height: int | None = None
    source_x: int | None = None
    source_y: int | None = None
    dest_x: int | None = None
    dest_y: int | None = None
    mode: CompositionMode = CompositionMode.ALPHA_BLEND


def wire_token(value) -> str:
    """Return the canonical wire token for a vocabulary value or number."""
    if isinstance(value, DeleteTarget):
        return value.code()
    if isinstance(value, bool):
        return "1" if value else "0"
    if isinstance(value, Enum):
        return str(value.value)
    return str(value)
