"""Domain models for ephemeral photo intake."""

from dataclasses import dataclass, field
from enum import StrEnum
from uuid import UUID


class PhotoStage(StrEnum):
    """Sub-stage of photo collection."""

    WAITING_FACE = "waiting_face"
    WAITING_PALMS = "waiting_palms"
    COMPLETED = "completed"


_STAGE_ORDER = list(PhotoStage)


class StageRegressionError(Exception):
    """Raised when a session would move back to an earlier stage."""


@dataclass
class PhotoSession:
    """Per-user photo intake progress. Stages only move forward."""

    user_id: UUID
    stage: PhotoStage = PhotoStage.WAITING_FACE
    face_photo: str | None = None
    palm_photos: list[str] = field(default_factory=list)

    @property
    def photos(self) -> list[str]:
        """All accepted photos, face first."""
        face = [self.face_photo] if self.face_photo else []
        return face + self.palm_photos

    def accept_face(self, photo_ref: str) -> None:
        self._advance(PhotoStage.WAITING_PALMS)
        self.face_photo = photo_ref

    def add_palm(self, photo_ref: str) -> None:
        if self.stage is not PhotoStage.WAITING_PALMS:
            raise StageRegressionError(f"Cannot add a palm photo in {self.stage}")
        self.palm_photos.append(photo_ref)

    def complete(self) -> None:
        self._advance(PhotoStage.COMPLETED)

    def _advance(self, stage: PhotoStage) -> None:
        if _STAGE_ORDER.index(stage) <= _STAGE_ORDER.index(self.stage):
            raise StageRegressionError(f"Cannot move from {self.stage} to {stage}")
        self.stage = stage


@dataclass
class MediaGroupEntry:
    """Photos of one provider media group waiting for the debounce timer."""

    group_id: str
    owner_user_id: UUID
    chat_id: int
    arrived_at: float
    photos: list[str] = field(default_factory=list)
