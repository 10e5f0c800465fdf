import os
from datetime import datetime, timedelta, timezone
from typing import Dict, Iterable, List, Optional

# Credenciais "dummy": nenhum teste fala com AWS de verdade
os.environ.setdefault("AWS_ACCESS_KEY_ID", "test")
os.environ.setdefault("AWS_SECRET_ACCESS_KEY", "test")
os.environ.setdefault("AWS_DEFAULT_REGION", "us-east-1")
os.environ.setdefault("AUTH_BASE_URL", "http://auth:8000")

import pytest
from botocore.exceptions import ClientError

from app.domain.models.media import StagedFile, StagedMedia
from app.domain.models.query import SearchField
from app.domain.models.video import OwnerProjection, Video
from app.domain.repositories.video_repository_interface import IUserRepository, IVideoRepository
from app.services.storage import UploadResult
from app.utils.id_gen import new_id

BASE_TIME = datetime(2025, 1, 1, tzinfo=timezone.utc)


def make_video(**overrides) -> Video:
    vid = overrides.pop("id", None) or new_id()
    data = dict(
        id=vid,
        title="Video",
        description="Descrição",
        media_url=f"http://s3/bucket/videos/{vid}/v.mp4",
        media_key=f"videos/{vid}/v.mp4",
        thumbnail_url=f"http://s3/bucket/thumbnails/{vid}/t.png",
        thumbnail_key=f"thumbnails/{vid}/t.png",
        duration=12.5,
        owner_id=new_id(),
        is_published=True,
        created_at=BASE_TIME,
        updated_at=BASE_TIME,
    )
    data.update(overrides)
    return Video(**data)


def boto_error(code: str = "InternalServerError", op: str = "Scan") -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": "boom"}}, op)


# ========= Repositórios fakes =========

class InMemoryVideoRepo(IVideoRepository):
    def __init__(self, videos: Iterable[Video] = ()):
        self.items: Dict[str, Video] = {v.id: v for v in videos}
        self.fail_on: set[str] = set()
        self.calls: List[str] = []

    def _maybe_fail(self, op: str):
        self.calls.append(op)
        if op in self.fail_on:
            raise boto_error(op=op)

    def put(self, video: Video) -> None:
        self._maybe_fail("put")
        self.items[video.id] = video

    def get(self, video_id: str) -> Optional[Video]:
        self._maybe_fail("get")
        return self.items.get(video_id)

    def scan(self, text_filter="", search_field=SearchField.ANY, owner_id=None) -> List[Video]:
        self._maybe_fail("scan")
        needle = (text_filter or "").lower()
        out = []
        for v in self.items.values():
            if owner_id and v.owner_id != owner_id:
                continue
            if needle:
                fields = {
                    SearchField.TITLE: [v.title],
                    SearchField.DESCRIPTION: [v.description],
                }.get(search_field, [v.title, v.description])
                if not any(needle in f.lower() for f in fields):
                    continue
            out.append(v)
        return out

    def update_details(self, video_id, title, description, thumbnail_url, thumbnail_key, updated_at):
        self._maybe_fail("update_details")
        current = self.items.get(video_id)
        if current is None:
            return None
        updated = current.model_copy(update=dict(
            title=title,
            description=description,
            thumbnail_url=thumbnail_url,
            thumbnail_key=thumbnail_key,
            updated_at=updated_at,
        ))
        self.items[video_id] = updated
        return updated

    def set_published(self, video_id, expected, value, updated_at):
        self._maybe_fail("set_published")
        current = self.items.get(video_id)
        if current is None or current.is_published != expected:
            return None
        updated = current.model_copy(update=dict(is_published=value, updated_at=updated_at))
        self.items[video_id] = updated
        return updated

    def delete(self, video_id: str) -> Optional[Video]:
        self._maybe_fail("delete")
        return self.items.pop(video_id, None)


class InMemoryUserRepo(IUserRepository):
    def __init__(self, users: Optional[Dict[str, OwnerProjection]] = None, fail: bool = False):
        self.users = dict(users or {})
        self.fail = fail

    def get_projections(self, user_ids):
        if self.fail:
            raise boto_error(op="BatchGetItem")
        return {uid: self.users[uid] for uid in user_ids if uid in self.users}


class FakeStorage:
    """Imita ObjectStorage: registra uploads/removals, falha por tipo ("videos"/"thumbnails")."""
    bucket = "test-bucket"

    def __init__(self, duration: float = 42.0):
        self.duration = duration
        self.fail_kinds: set[str] = set()
        self.uploads: List[tuple] = []
        self.deleted: List[str] = []
        self.objects: set[str] = set()
        self.swept: List[str] = []

    def upload(self, staged: StagedFile, kind: str, vid: str | None = None):
        self.uploads.append((kind, staged.filename, vid))
        if kind in self.fail_kinds:
            return None
        key = f"{kind}/{vid}/{os.path.basename(staged.path)}"
        self.objects.add(key)
        return UploadResult(
            url=f"http://s3/{self.bucket}/{key}",
            key=key,
            duration=self.duration if kind == "videos" else None,
        )

    def delete(self, key):
        self.deleted.append(key)
        self.objects.discard(key)
        return True

    def delete_prefix(self, prefix):
        self.swept.append(prefix)
        for key in [k for k in self.objects if k.startswith(prefix)]:
            self.objects.discard(key)
        return True


# ========= fixtures =========

@pytest.fixture
def video_repo():
    return InMemoryVideoRepo()


@pytest.fixture
def user_repo():
    return InMemoryUserRepo()


@pytest.fixture
def storage():
    return FakeStorage()


@pytest.fixture
def staged_factory(tmp_path):
    def _make(filename: str, content_type: str, data: bytes = b"\x00\x01") -> StagedFile:
        path = tmp_path / f"{new_id()}-{filename}"
        path.write_bytes(data)
        return StagedFile(path=str(path), filename=filename, content_type=content_type, size=len(data))
    return _make


@pytest.fixture
def both_media(staged_factory):
    return StagedMedia(
        video=staged_factory("clip.mp4", "video/mp4"),
        thumbnail=staged_factory("thumb.png", "image/png"),
    )


@pytest.fixture
def timeline():
    """25 vídeos com created_at crescente (1 minuto entre eles)."""
    return [
        make_video(title=f"Video {i:02d}", created_at=BASE_TIME + timedelta(minutes=i))
        for i in range(1, 26)
    ]
