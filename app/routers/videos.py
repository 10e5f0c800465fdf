# app/routers/videos.py
import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile
from fastapi.responses import JSONResponse

from ..auth import require_user
from ..config import settings
from ..domain.models.response import ApiResponse
from ..domain.models.user_model import UserContext
from ..domain.repositories.video_repository_interface import IUserRepository, IVideoRepository
from ..infrastructure.repositories.user_repo import UserRepo
from ..infrastructure.repositories.video_repo import VideoRepo
from ..services.catalog import CatalogService
from ..services.publishing import PublishingService
from ..services.query_params import normalize_list_params
from ..services.staging import stage_file, stage_uploads
from ..services.storage import ObjectStorage

router = APIRouter(
    prefix="/api/v1/videos",
    tags=["videos"],
    dependencies=[Depends(require_user)]
)

logger = logging.getLogger("videos")


def get_video_repo() -> IVideoRepository:
    return VideoRepo()

def get_user_repo() -> IUserRepository:
    return UserRepo()

def get_storage() -> ObjectStorage:
    return ObjectStorage()

def get_catalog(
    videos: IVideoRepository = Depends(get_video_repo),
    users: IUserRepository = Depends(get_user_repo),
) -> CatalogService:
    return CatalogService(videos, users)

def get_publishing(
    videos: IVideoRepository = Depends(get_video_repo),
    storage: ObjectStorage = Depends(get_storage),
) -> PublishingService:
    return PublishingService(videos, storage)


def _ok(data, message: str, status_code: int = 200) -> JSONResponse:
    body = ApiResponse(status=status_code, data=data, message=message)
    return JSONResponse(status_code=status_code, content=body.model_dump(mode="json"))

def _dump(model) -> dict:
    return model.model_dump(mode="json", by_alias=True)


@router.get("")
async def list_videos(
    page: Optional[str] = Query(None),
    limit: Optional[str] = Query(None),
    query: Optional[str] = Query(None),
    search_field: Optional[str] = Query(None, alias="searchField"),
    sort_by: Optional[str] = Query(None, alias="sortBy"),
    sort_type: Optional[str] = Query(None, alias="sortType"),
    user_id: Optional[str] = Query(None, alias="userId"),
    catalog: CatalogService = Depends(get_catalog),
):
    spec = normalize_list_params(
        page=page,
        limit=limit,
        query=query,
        search_field=search_field,
        sort_by=sort_by,
        sort_type=sort_type,
        user_id=user_id,
    )
    videos = await catalog.list_videos(spec)
    return _ok([_dump(v) for v in videos], "Vídeos listados com sucesso")


@router.post("", status_code=201)
async def publish_video(
    title: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    video_file: Optional[UploadFile] = File(None, alias="videoFile"),
    thumbnail: Optional[UploadFile] = File(None),
    user: UserContext = Depends(require_user),
    publishing: PublishingService = Depends(get_publishing),
):
    media = await stage_uploads(video_file, thumbnail)
    video = await publishing.publish(title, description, media, owner_id=user.id)
    return _ok(_dump(video), "Vídeo publicado com sucesso", status_code=201)


@router.get("/{video_id}")
async def get_video(video_id: str, catalog: CatalogService = Depends(get_catalog)):
    video = await catalog.get_video(video_id)
    return _ok(_dump(video), "Vídeo encontrado")


@router.patch("/toggle/publish/{video_id}")
async def toggle_publish_status(
    video_id: str,
    publishing: PublishingService = Depends(get_publishing),
):
    video = await publishing.toggle_publish(video_id)
    return _ok(_dump(video), "Status de publicação alterado")


@router.patch("/{video_id}")
async def update_video(
    video_id: str,
    title: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    thumbnail: Optional[UploadFile] = File(None),
    publishing: PublishingService = Depends(get_publishing),
):
    staged = None
    if thumbnail is not None and thumbnail.filename:
        staged = await stage_file(thumbnail, settings.staging_dir, settings.max_upload_mb * 1024 * 1024)
    video = await publishing.update_details(video_id, title, description, staged)
    return _ok(_dump(video), "Vídeo atualizado com sucesso")


@router.delete("/{video_id}")
async def delete_video(
    video_id: str,
    publishing: PublishingService = Depends(get_publishing),
):
    result = await publishing.delete(video_id)
    message = "Vídeo removido com sucesso" if result.deleted else "Vídeo já removido"
    return _ok(_dump(result), message)
