"""Protocol vocabulary: enums and small value types."""

from .types import (
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
