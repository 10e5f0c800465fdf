import logging
import os
from dataclasses import dataclass
from typing import Optional

from boto3.exceptions import S3UploadFailedError
from botocore.exceptions import BotoCoreError, ClientError

from app.config import settings
from app.domain.models.media import StagedFile
from app.utils import s3 as s3_utils
from app.utils.media_probe import probe_duration

logger = logging.getLogger("storage")


@dataclass(frozen=True)
class UploadResult:
    url: str
    key: str
    duration: Optional[float] = None

    def __bool__(self) -> bool:
        return bool(self.url)


class ObjectStorage:
    """Cliente do storage de objetos (S3) usado pelo pipeline de publicação.

    ``upload`` nunca propaga erro do boto: devolve None e loga, o chamador
    decide o que fazer com o upload ausente.
    """

    def __init__(self, bucket: str | None = None, ffprobe: str | None = None):
        self._bucket = bucket or settings.s3_bucket
        self._ffprobe = ffprobe or settings.ffprobe_path

    @property
    def bucket(self) -> str:
        return self._bucket

    def upload(self, staged: StagedFile, kind: str, vid: str | None = None) -> Optional[UploadResult]:
        duration = None
        if kind == "videos":
            # duração vem do arquivo local, antes de subir
            duration = probe_duration(staged.path, self._ffprobe)
            if duration is None:
                duration = 0.0

        # nome do staging já é único ("<uuid>-<arquivo>"); evita sobrescrever a thumbnail anterior
        _, key = s3_utils.build_s3_key(os.path.basename(staged.path), kind=kind, vid=vid)
        try:
            s3_utils.upload_file(self._bucket, key, staged.path, staged.content_type)
        except (BotoCoreError, ClientError, S3UploadFailedError, OSError) as e:
            logger.error("Falha ao salvar no storage (key=%s): %s", key, e)
            return None

        logger.info("Upload concluído", extra={"size_bytes": staged.size, "op": f"put:{kind}"})
        return UploadResult(url=s3_utils.object_url(self._bucket, key), key=key, duration=duration)

    def delete(self, key: str | None) -> bool:
        if not key:
            return True
        try:
            s3_utils.delete_object(self._bucket, key)
            return True
        except (BotoCoreError, ClientError) as e:
            logger.error("Falha ao remover objeto do storage (key=%s): %s", key, e)
            return False

    def delete_prefix(self, prefix: str) -> bool:
        """Varre e remove tudo sob ``prefix`` (ex.: objetos de um vídeo cujo item já sumiu)."""
        if not prefix.strip("/"):
            raise ValueError("prefixo vazio apagaria o bucket inteiro")
        try:
            removed = s3_utils.delete_prefix(self._bucket, prefix)
        except (BotoCoreError, ClientError, RuntimeError) as e:
            logger.error("Falha ao varrer objetos do storage (prefix=%s): %s", prefix, e)
            return False
        if removed:
            logger.info("Objetos remanescentes removidos: %d", removed, extra={"op": "delete_prefix"})
        return True
