"""Publicação de vídeos e operações de ciclo de vida (update, delete, toggle).

Publicar é tudo-ou-nada: vídeo e thumbnail sobem em sequência e só então o
item é gravado no catálogo. Qualquer falha remove do storage o que já tinha
subido, e os arquivos em staging são apagados em todos os caminhos de saída.

Escritas no catálogo que mexem com objetos do storage nunca são abandonadas:
o boto3 roda numa thread que não pode ser interrompida, então o storage só é
ajustado depois que o resultado da escrita é conhecido. Um item gravado nunca
fica apontando para objeto removido.
"""
import asyncio
import logging
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Callable, Iterable, Optional

from boto3.exceptions import Boto3Error
from botocore.exceptions import BotoCoreError, ClientError

from app.config import settings
from app.core.errors import (
    CatalogUnavailable,
    InvalidInput,
    MissingField,
    NotFound,
    PersistenceFailed,
    UnsupportedMedia,
    UploadFailed,
    VideoServiceError,
)
from app.core.metrics import LIFECYCLE_OPS
from app.domain.models.media import MediaKind, StagedFile, StagedMedia
from app.domain.models.video import DeleteResult, Video
from app.domain.repositories.video_repository_interface import IVideoRepository
from app.services.storage import ObjectStorage, UploadResult
from app.utils.id_gen import is_valid_id, new_id
from app.utils.threads import run_blocking

logger = logging.getLogger("publishing")

_BOTO_ERRORS = (BotoCoreError, ClientError, Boto3Error)
_STORE_ERRORS = _BOTO_ERRORS + (asyncio.TimeoutError,)

# tipo genérico (padrão do curl -F); a duração sai do ffprobe no upload
GENERIC_CONTENT_TYPE = "application/octet-stream"

MAX_TITLE = 200
MAX_DESCRIPTION = 5000

# tarefas de limpeza que seguem rodando depois que a requisição terminou
_background: set = set()


def _keep(task: asyncio.Future) -> asyncio.Future:
    _background.add(task)
    task.add_done_callback(_background.discard)
    return task


@contextmanager
def _tracked(op: str):
    try:
        yield
    except VideoServiceError as e:
        LIFECYCLE_OPS.labels(op=op, status="rejected" if e.status_code < 500 else "error").inc()
        raise
    except BaseException:
        LIFECYCLE_OPS.labels(op=op, status="error").inc()
        raise
    LIFECYCLE_OPS.labels(op=op, status="ok").inc()


def _require_text(value: Optional[str], field: str, label: str, max_length: int) -> str:
    text = (value or "").strip()
    if not text:
        raise MissingField(field, f"{label} ausente")
    if len(text) > max_length:
        raise InvalidInput(f"{label} excede {max_length} caracteres")
    return text


def _require_type(staged: StagedFile, prefix: str, label: str) -> None:
    if staged.content_type == GENERIC_CONTENT_TYPE:
        return
    if not staged.content_type.startswith(prefix):
        raise UnsupportedMedia(f"Tipo de arquivo não suportado para {label} (esperado {prefix}*)")


def _now() -> datetime:
    return datetime.now(timezone.utc)


class PublishingService:
    def __init__(
        self,
        videos: IVideoRepository,
        storage: ObjectStorage,
        upload_timeout: Optional[float] = None,
        query_timeout: Optional[float] = None,
    ):
        self._videos = videos
        self._storage = storage
        self._upload_timeout = settings.upload_timeout_seconds if upload_timeout is None else upload_timeout
        self._query_timeout = settings.query_timeout_seconds if query_timeout is None else query_timeout

    # ---------- storage helpers ----------

    async def _upload(self, staged: StagedFile, kind: str, video_id: str) -> Optional[UploadResult]:
        try:
            return await run_blocking(
                self._storage.upload, staged, kind, video_id, timeout=self._upload_timeout
            )
        except asyncio.TimeoutError:
            # a thread pode terminar o upload depois; o objeto fica órfão
            logger.error(
                "Timeout no upload de %s após %.0fs",
                kind, self._upload_timeout,
                extra={"video_id": video_id, "op": f"put:{kind}"},
            )
            return None

    def _delete_keys(self, keys: Iterable[Optional[str]]) -> None:
        for key in keys:
            if key and not self._storage.delete(key):
                logger.error("Objeto órfão no storage: %s", key, extra={"op": "delete"})

    async def _discard_remote(self, *keys: Optional[str]) -> None:
        keys = [k for k in keys if k]
        if not keys:
            return
        # cancelada a requisição, a remoção continua na thread
        await self._settle(self._delete_keys, keys)

    async def _settle(self, fn: Callable[..., Any], *args) -> Any:
        """Roda ``fn`` numa thread e espera até o fim, mesmo se a requisição for cancelada."""
        return await asyncio.shield(_keep(asyncio.ensure_future(asyncio.to_thread(fn, *args))))

    async def _write(
        self,
        fn: Callable[..., Any],
        *args,
        on_abandon: Callable[[Any, Optional[BaseException]], Any],
    ) -> Any:
        """Escrita no catálogo cujo resultado decide o que fazer com o storage.

        Passado o ``query_timeout`` a espera continua (a thread do boto3 segue
        até o read_timeout/retries do botocore). Se a requisição for cancelada,
        ``on_abandon(resultado, erro)`` roda em background quando a escrita
        terminar.
        """
        task = asyncio.ensure_future(asyncio.to_thread(fn, *args))
        try:
            try:
                return await asyncio.wait_for(asyncio.shield(task), self._query_timeout)
            except asyncio.TimeoutError:
                logger.warning(
                    "Escrita no catálogo passou de %.1fs; aguardando o resultado",
                    self._query_timeout, extra={"op": getattr(fn, "__name__", "write")},
                )
                return await asyncio.shield(task)
        except asyncio.CancelledError:
            task.add_done_callback(lambda t: self._after_abandoned(t, on_abandon))
            raise

    def _after_abandoned(self, task: asyncio.Future, on_abandon) -> None:
        if task.cancelled():
            logger.error("Resultado da escrita desconhecido; storage não foi ajustado")
            return
        error = task.exception()
        result = None if error is not None else task.result()
        _keep(asyncio.ensure_future(asyncio.to_thread(on_abandon, result, error)))

    def _reconcile(self, video_id: str, key: str, discard: Iterable[str]) -> Optional[Video]:
        """Relê o item depois de uma escrita que falhou.

        Se o item já referencia ``key`` a escrita entrou e ele é devolvido.
        Senão os objetos em ``discard`` são removidos. Se nem a leitura
        funcionar, nada é removido.
        """
        discard = [k for k in discard if k]
        try:
            row = self._videos.get(video_id)
        except _BOTO_ERRORS as e:
            logger.error(
                "Estado do vídeo incerto, objetos mantidos: %s (%r)", ", ".join(discard), e,
                extra={"video_id": video_id},
            )
            return None
        if row is not None and key in (row.media_key, row.thumbnail_key):
            return row
        self._delete_keys(discard)
        return None

    async def _load(self, video_id: str) -> Video:
        try:
            video = await run_blocking(self._videos.get, video_id, timeout=self._query_timeout)
        except _STORE_ERRORS as e:
            logger.error("Falha ao buscar vídeo: %r", e, extra={"video_id": video_id})
            raise CatalogUnavailable() from e
        if video is None:
            raise NotFound()
        return video

    # ---------- publish ----------

    async def publish(
        self,
        title: Optional[str],
        description: Optional[str],
        media: StagedMedia,
        owner_id: str,
    ) -> Video:
        try:
            with _tracked("publish"):
                return await self._publish(title, description, media, owner_id)
        finally:
            media.discard()

    async def _publish(self, title, description, media: StagedMedia, owner_id: str) -> Video:
        title = _require_text(title, "title", "Título", MAX_TITLE)
        description = _require_text(description, "description", "Descrição", MAX_DESCRIPTION)

        kind = media.kind
        if kind == MediaKind.NONE:
            raise MissingField("media", "Vídeo e thumbnail ausentes")
        if kind != MediaKind.BOTH:
            raise MissingField("media-pair", "Vídeo ou thumbnail ausente")
        _require_type(media.video, "video/", "o vídeo")
        _require_type(media.thumbnail, "image/", "a thumbnail")

        video_id = new_id()

        video_up = await self._upload(media.video, "videos", video_id)
        if not video_up:
            raise UploadFailed("Falha ao enviar o vídeo para o storage")

        try:
            thumb_up = await self._upload(media.thumbnail, "thumbnails", video_id)
        except BaseException:
            await self._discard_remote(video_up.key)
            raise
        if not thumb_up:
            await self._discard_remote(video_up.key)
            raise UploadFailed("Falha ao enviar a thumbnail para o storage")

        now = _now()
        video = Video(
            id=video_id,
            title=title,
            description=description,
            media_url=video_up.url,
            media_key=video_up.key,
            thumbnail_url=thumb_up.url,
            thumbnail_key=thumb_up.key,
            duration=video_up.duration or 0.0,
            owner_id=owner_id,
            is_published=True,
            created_at=now,
            updated_at=now,
        )

        try:
            await self._write(
                self._videos.put, video,
                on_abandon=lambda _, error: error is not None and self._settle_publish(video, error),
            )
        except Exception as e:
            stored = await self._settle(self._settle_publish, video, e)
            if stored is None:
                if isinstance(e, _STORE_ERRORS):
                    logger.error("Falha ao gravar vídeo no catálogo: %r", e, extra={"video_id": video_id})
                    raise PersistenceFailed() from e
                raise
            logger.warning("Gravação confirmada apesar do erro: %r", e, extra={"video_id": video_id})
            video = stored

        logger.info("Vídeo publicado", extra={"video_id": video_id, "op": "publish"})
        return video

    def _settle_publish(self, video: Video, error: Optional[BaseException]) -> Optional[Video]:
        if error is None:
            return video
        return self._reconcile(video.id, video.media_key, [video.media_key, video.thumbnail_key])

    # ---------- update ----------

    async def update_details(
        self,
        video_id: str,
        title: Optional[str],
        description: Optional[str],
        thumbnail: Optional[StagedFile],
    ) -> Video:
        try:
            with _tracked("update"):
                return await self._update_details(video_id, title, description, thumbnail)
        finally:
            if thumbnail is not None:
                thumbnail.discard()

    async def _update_details(self, video_id, title, description, thumbnail) -> Video:
        if not is_valid_id(video_id):
            raise InvalidInput("ID de vídeo inválido")
        title = _require_text(title, "title", "Título", MAX_TITLE)
        description = _require_text(description, "description", "Descrição", MAX_DESCRIPTION)
        if thumbnail is None:
            raise MissingField("thumbnail", "Thumbnail ausente")
        _require_type(thumbnail, "image/", "a thumbnail")

        current = await self._load(video_id)

        thumb_up = await self._upload(thumbnail, "thumbnails", video_id)
        if not thumb_up:
            raise UploadFailed("Falha ao enviar a thumbnail para o storage")

        def settle(result, error):
            return self._settle_update(video_id, current.thumbnail_key, thumb_up.key, result, error)

        error: Optional[Exception] = None
        updated = None
        try:
            updated = await self._write(
                self._videos.update_details,
                video_id,
                title,
                description,
                thumb_up.url,
                thumb_up.key,
                _now(),
                on_abandon=settle,
            )
        except Exception as e:
            error = e

        updated = await self._settle(settle, updated, error)
        if updated is None:
            if error is None:
                # removido entre a leitura e a escrita
                raise NotFound()
            if isinstance(error, _STORE_ERRORS):
                logger.error("Falha ao atualizar vídeo: %r", error, extra={"video_id": video_id})
                raise PersistenceFailed("Falha ao atualizar o vídeo no catálogo") from error
            raise error

        logger.info("Vídeo atualizado", extra={"video_id": video_id, "op": "update"})
        return updated

    def _settle_update(
        self,
        video_id: str,
        old_key: Optional[str],
        new_key: str,
        result: Optional[Video],
        error: Optional[BaseException],
    ) -> Optional[Video]:
        """Ajusta o storage ao resultado do update; devolve o item se ele aponta para ``new_key``."""
        if error is not None:
            result = self._reconcile(video_id, new_key, [new_key])
            if result is None:
                return None
        elif result is None:
            self._delete_keys([new_key])
            return None
        if old_key and old_key != new_key:
            self._delete_keys([old_key])
        return result

    # ---------- delete ----------

    async def delete(self, video_id: str) -> DeleteResult:
        with _tracked("delete"):
            if not is_valid_id(video_id):
                raise InvalidInput("ID de vídeo inválido")
            try:
                removed = await self._write(
                    self._videos.delete, video_id,
                    on_abandon=lambda row, error: error is None and self._settle_delete(video_id, row),
                )
            except _STORE_ERRORS as e:
                logger.error("Falha ao remover vídeo: %r", e, extra={"video_id": video_id})
                raise PersistenceFailed("Falha ao remover o vídeo do catálogo") from e

            # catálogo primeiro: nunca sobra item apontando para objeto removido
            await self._settle(self._settle_delete, video_id, removed)
            if removed is None:
                logger.info("Vídeo já ausente", extra={"video_id": video_id, "op": "delete"})
                return DeleteResult(video_id=video_id, deleted=False)
            logger.info("Vídeo removido", extra={"video_id": video_id, "op": "delete"})
            return DeleteResult(video_id=video_id, deleted=True)

    def _settle_delete(self, video_id: str, removed: Optional[Video]) -> None:
        if removed is not None:
            self._delete_keys([removed.media_key, removed.thumbnail_key])
            return
        # item já ausente: uma tentativa anterior pode ter removido o item sem
        # chegar a limpar o storage
        for kind in ("videos", "thumbnails"):
            if not self._storage.delete_prefix(f"{kind}/{video_id}/"):
                logger.error("Objetos órfãos sob %s/%s/", kind, video_id, extra={"video_id": video_id})

    # ---------- toggle ----------

    async def toggle_publish(self, video_id: str) -> Video:
        with _tracked("toggle"):
            if not is_valid_id(video_id):
                raise InvalidInput("ID de vídeo inválido")
            current = await self._load(video_id)
            try:
                updated = await run_blocking(
                    self._videos.set_published,
                    video_id,
                    current.is_published,
                    not current.is_published,
                    _now(),
                    timeout=self._query_timeout,
                )
            except _STORE_ERRORS as e:
                logger.error("Falha ao alterar publicação: %r", e, extra={"video_id": video_id})
                raise PersistenceFailed("Falha ao alterar o status de publicação") from e

            if updated is None:
                # condição falhou: removido ou alterado por outra requisição
                await self._load(video_id)
                raise PersistenceFailed("Vídeo modificado por outra requisição, tente novamente")

            logger.info(
                "Publicação alterada para %s", updated.is_published,
                extra={"video_id": video_id, "op": "toggle"},
            )
            return updated
