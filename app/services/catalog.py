"""Consulta do catálogo: filtro -> ordenação -> janela -> join com o dono."""
import asyncio
import logging
from typing import Iterable, List, Optional

from boto3.exceptions import Boto3Error
from botocore.exceptions import BotoCoreError, ClientError

from app.config import settings
from app.core.errors import CatalogUnavailable, InvalidInput, NotFound
from app.domain.models.query import CatalogQuery, SortDirection
from app.domain.models.video import OwnerProjection, Video, VideoView
from app.domain.repositories.video_repository_interface import IUserRepository, IVideoRepository
from app.utils.id_gen import is_valid_id
from app.utils.threads import run_blocking

logger = logging.getLogger("catalog")

_STORE_ERRORS = (BotoCoreError, ClientError, Boto3Error, asyncio.TimeoutError)


def sort_videos(videos: Iterable[Video], query: CatalogQuery) -> List[Video]:
    # desempate pelo id para paginação reprodutível
    attr = query.sort_by.attribute
    reverse = query.sort_direction == SortDirection.DESC
    if attr == "title":
        key = lambda v: (v.title.lower(), v.title, v.id)
    else:
        key = lambda v: (getattr(v, attr), v.id)
    return sorted(videos, key=key, reverse=reverse)


def window(videos: List[Video], query: CatalogQuery) -> List[Video]:
    start = max(query.skip, 0)
    return videos[start:start + max(query.limit, 0)]


class CatalogService:
    def __init__(
        self,
        videos: IVideoRepository,
        users: IUserRepository,
        timeout: Optional[float] = None,
    ):
        self._videos = videos
        self._users = users
        self._timeout = settings.query_timeout_seconds if timeout is None else timeout

    async def list_videos(self, query: CatalogQuery) -> List[VideoView]:
        try:
            matches = await run_blocking(
                self._videos.scan,
                query.text_filter,
                query.search_field,
                query.owner_filter,
                timeout=self._timeout,
            )
        except _STORE_ERRORS as e:
            logger.error("Falha ao consultar o catálogo: %r", e)
            raise CatalogUnavailable() from e

        page = window(sort_videos(matches, query), query)
        logger.info(
            "Listagem: %d de %d vídeos (skip=%d limit=%d)",
            len(page), len(matches), query.skip, query.limit,
        )
        return await self.attach_owners(page)

    async def get_video(self, video_id: str) -> VideoView:
        if not is_valid_id(video_id):
            raise InvalidInput("ID de vídeo inválido")
        try:
            video = await run_blocking(self._videos.get, video_id, timeout=self._timeout)
        except _STORE_ERRORS as e:
            logger.error("Falha ao buscar vídeo %s: %r", video_id, e)
            raise CatalogUnavailable() from e
        if video is None:
            raise NotFound()
        views = await self.attach_owners([video])
        return views[0]

    async def attach_owners(self, videos: List[Video]) -> List[VideoView]:
        """Dono não resolvido (ou falha na busca) vira owner=None, nunca erro."""
        if not videos:
            return []
        owners: dict[str, OwnerProjection] = {}
        try:
            owners = await run_blocking(
                self._users.get_projections,
                [v.owner_id for v in videos],
                timeout=self._timeout,
            )
        except _STORE_ERRORS as e:
            logger.warning("Falha ao buscar donos dos vídeos; seguindo sem projeção: %r", e)
        return [
            VideoView(**v.model_dump(), owner=owners.get(v.owner_id))
            for v in videos
        ]
