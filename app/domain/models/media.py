import logging
import os
from dataclasses import dataclass
from enum import Enum
from typing import Optional

logger = logging.getLogger("staging")


@dataclass
class StagedFile:
    """Arquivo recebido na requisição e mantido em disco até o upload."""
    path: str
    filename: str
    content_type: str
    size: int

    def discard(self) -> None:
        try:
            os.remove(self.path)
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning("Falha ao remover arquivo temporário %s: %s", self.path, e)


class MediaKind(str, Enum):
    NONE = "none"
    VIDEO_ONLY = "video_only"
    THUMBNAIL_ONLY = "thumbnail_only"
    BOTH = "both"


@dataclass
class StagedMedia:
    video: Optional[StagedFile] = None
    thumbnail: Optional[StagedFile] = None

    @property
    def kind(self) -> MediaKind:
        if self.video and self.thumbnail:
            return MediaKind.BOTH
        if self.video:
            return MediaKind.VIDEO_ONLY
        if self.thumbnail:
            return MediaKind.THUMBNAIL_ONLY
        return MediaKind.NONE

    def discard(self) -> None:
        for staged in (self.video, self.thumbnail):
            if staged is not None:
                staged.discard()
