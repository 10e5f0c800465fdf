"""Staging local dos arquivos recebidos no multipart."""
import logging
import os
from typing import Optional

from fastapi import UploadFile

from app.config import settings
from app.core.errors import MediaTooLarge
from app.core.metrics import UPLOAD_BYTES
from app.domain.models.media import StagedFile, StagedMedia
from app.utils.id_gen import new_id

logger = logging.getLogger("staging")

CHUNK_SIZE = 1024 * 1024  # 1 MB


def _present(upload: Optional[UploadFile]) -> bool:
    return upload is not None and bool(upload.filename)


async def stage_file(upload: UploadFile, staging_dir: str, max_bytes: int) -> StagedFile:
    os.makedirs(staging_dir, exist_ok=True)
    name = os.path.basename(upload.filename or "") or "file"
    path = os.path.join(staging_dir, f"{new_id()}-{name}")
    staged = StagedFile(
        path=path,
        filename=name,
        content_type=(upload.content_type or "application/octet-stream").split(";")[0].strip().lower(),
        size=0,
    )
    try:
        with open(path, "wb") as f:
            while chunk := await upload.read(CHUNK_SIZE):
                staged.size += len(chunk)
                if staged.size > max_bytes:
                    raise MediaTooLarge(f"Arquivo excede limite de {settings.max_upload_mb}MB")
                f.write(chunk)
    except BaseException:
        staged.discard()
        raise
    UPLOAD_BYTES.inc(staged.size)
    return staged


async def stage_uploads(
    video: Optional[UploadFile],
    thumbnail: Optional[UploadFile],
    staging_dir: Optional[str] = None,
    max_bytes: Optional[int] = None,
) -> StagedMedia:
    """Grava em disco os arquivos presentes e devolve a variante correspondente
    (nenhum, só vídeo, só thumbnail, ambos). Em erro nada fica em disco."""
    staging_dir = staging_dir or settings.staging_dir
    max_bytes = max_bytes if max_bytes is not None else settings.max_upload_mb * 1024 * 1024

    media = StagedMedia()
    try:
        if _present(video):
            media.video = await stage_file(video, staging_dir, max_bytes)
        if _present(thumbnail):
            media.thumbnail = await stage_file(thumbnail, staging_dir, max_bytes)
    except BaseException:
        media.discard()
        raise
    logger.debug("Staging concluído: %s", media.kind.value)
    return media
