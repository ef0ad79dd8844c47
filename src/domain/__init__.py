"""Domain layer: errors and schemas."""

from .errors import (
    AlreadyExistsError,
    EncodeError,
    PathEscapeError,
    ReservedNameError,
    StoreError,
)
from .schemas import (
    FolderContent,
    FolderMetadata,
    FolderNode,
    StepResult,
    StoreSettings,
)

__all__ = [
    "StoreError",
    "PathEscapeError",
    "ReservedNameError",
    "AlreadyExistsError",
    "EncodeError",
    "FolderMetadata",
    "FolderNode",
    "FolderContent",
    "StepResult",
    "StoreSettings",
]
