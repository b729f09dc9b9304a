import base64
from dataclasses import dataclass
from typing import Optional, Union


@dataclass(frozen=True)
class DroppedFile:
    name: str
    mime_type: str
    data: bytes

    @property
    def is_image(self) -> bool:
        return (self.mime_type or "").startswith("image/")


@dataclass(frozen=True)
class RemoteImage:
    """Output of a previous generation, referenced by its provider URL."""

    url: str


@dataclass(frozen=True)
class LocalImage:
    """Dropped file kept in memory; `preview` is what the page displays."""

    name: str
    mime_type: str
    preview: bytes


ImageReference = Union[RemoteImage, LocalImage]


def file_to_base64(file: DroppedFile) -> str:
    return base64.b64encode(file.data).decode("ascii")


class DragTracker:
    """
    Nesting counter for drag enter/leave events.
    Nested elements fire their own enter/leave pairs, so the drop zone is
    active while depth > 0. A drop resets depth to 0 whatever came before.
    """

    def __init__(self):
        self.depth = 0

    @property
    def active(self) -> bool:
        return self.depth > 0

    def enter(self) -> None:
        self.depth += 1

    def leave(self) -> None:
        self.depth = max(0, self.depth - 1)

    def drop(self) -> None:
        self.depth = 0


def first_image(files) -> Optional[DroppedFile]:
    """Only the first dropped file is considered; None if it is not an image."""
    if not files:
        return None
    file = files[0]
    return file if file.is_image else None
