import asyncio
import os

import pytest

from app.core.errors import (
    CatalogUnavailable,
    InvalidInput,
    MissingField,
    NotFound,
    PersistenceFailed,
    UnsupportedMedia,
    UploadFailed,
)
from app.domain.models.media import StagedMedia
from app.services.publishing import PublishingService
from app.utils.id_gen import is_valid_id, new_id

from conftest import InMemoryVideoRepo, make_video


OWNER = new_id()


def staged_paths(media: StagedMedia):
    return [f.path for f in (media.video, media.thumbnail) if f is not None]


# ========= publish: sucesso =========

@pytest.mark.asyncio
async def test_publish_success(video_repo, storage, both_media):
    svc = PublishingService(video_repo, storage)
    video = await svc.publish("T", "D", both_media, owner_id=OWNER)

    assert is_valid_id(video.id)
    assert video.title == "T"
    assert video.description == "D"
    assert video.media_url and video.thumbnail_url
    assert isinstance(video.duration, float) and video.duration == 42.0
    assert video.owner_id == OWNER
    assert video.is_published is True
    assert video_repo.items[video.id] == video


@pytest.mark.asyncio
async def test_publish_uploads_video_before_thumbnail(video_repo, storage, both_media):
    svc = PublishingService(video_repo, storage)
    video = await svc.publish("T", "D", both_media, owner_id=OWNER)
    assert [u[0] for u in storage.uploads] == ["videos", "thumbnails"]
    assert all(u[2] == video.id for u in storage.uploads)


@pytest.mark.asyncio
async def test_publish_strips_text(video_repo, storage, both_media):
    svc = PublishingService(video_repo, storage)
    video = await svc.publish("  T  ", " D ", both_media, owner_id=OWNER)
    assert (video.title, video.description) == ("T", "D")


@pytest.mark.asyncio
async def test_publish_removes_staged_files_on_success(video_repo, storage, both_media):
    paths = staged_paths(both_media)
    await PublishingService(video_repo, storage).publish("T", "D", both_media, owner_id=OWNER)
    assert not any(os.path.exists(p) for p in paths)


# ========= publish: validação (fail fast) =========

@pytest.mark.asyncio
@pytest.mark.parametrize("title,description,field", [
    (None, "D", "title"),
    ("   ", "D", "title"),
    ("T", None, "description"),
    (None, None, "title"),
])
async def test_publish_missing_text_fields(video_repo, storage, both_media, title, description, field):
    svc = PublishingService(video_repo, storage)
    with pytest.raises(MissingField) as exc:
        await svc.publish(title, description, both_media, owner_id=OWNER)
    assert exc.value.field == field
    assert storage.uploads == []


@pytest.mark.asyncio
async def test_publish_without_files(video_repo, storage):
    svc = PublishingService(video_repo, storage)
    with pytest.raises(MissingField) as exc:
        await svc.publish("T", "D", StagedMedia(), owner_id=OWNER)
    assert exc.value.field == "media"


@pytest.mark.asyncio
async def test_publish_video_without_thumbnail_makes_no_upload(video_repo, storage, staged_factory):
    media = StagedMedia(video=staged_factory("clip.mp4", "video/mp4"))
    svc = PublishingService(video_repo, storage)
    with pytest.raises(MissingField) as exc:
        await svc.publish("T", "D", media, owner_id=OWNER)
    assert exc.value.field == "media-pair"
    assert storage.uploads == []
    assert video_repo.items == {}
    assert not os.path.exists(media.video.path)


@pytest.mark.asyncio
async def test_publish_thumbnail_without_video(video_repo, storage, staged_factory):
    media = StagedMedia(thumbnail=staged_factory("thumb.png", "image/png"))
    with pytest.raises(MissingField) as exc:
        await PublishingService(video_repo, storage).publish("T", "D", media, owner_id=OWNER)
    assert exc.value.field == "media-pair"


@pytest.mark.asyncio
async def test_publish_rejects_wrong_media_types(video_repo, storage, staged_factory):
    media = StagedMedia(
        video=staged_factory("notes.txt", "text/plain"),
        thumbnail=staged_factory("thumb.png", "image/png"),
    )
    with pytest.raises(UnsupportedMedia):
        await PublishingService(video_repo, storage).publish("T", "D", media, owner_id=OWNER)
    assert storage.uploads == []


@pytest.mark.asyncio
async def test_publish_rejects_title_too_long(video_repo, storage, both_media):
    with pytest.raises(InvalidInput):
        await PublishingService(video_repo, storage).publish("x" * 201, "D", both_media, owner_id=OWNER)
    assert storage.uploads == []


# ========= publish: falhas de upload / persistência =========

@pytest.mark.asyncio
async def test_video_upload_failure(video_repo, storage, both_media):
    storage.fail_kinds.add("videos")
    with pytest.raises(UploadFailed):
        await PublishingService(video_repo, storage).publish("T", "D", both_media, owner_id=OWNER)
    assert [u[0] for u in storage.uploads] == ["videos"]
    assert video_repo.items == {}


@pytest.mark.asyncio
async def test_thumbnail_failure_rolls_back_video_object(video_repo, storage, both_media):
    storage.fail_kinds.add("thumbnails")
    paths = staged_paths(both_media)
    with pytest.raises(UploadFailed):
        await PublishingService(video_repo, storage).publish("T", "D", both_media, owner_id=OWNER)

    # nenhum item no catálogo e nenhum objeto órfão
    assert video_repo.items == {}
    assert "put" not in video_repo.calls
    assert storage.objects == set()
    assert len(storage.deleted) == 1 and storage.deleted[0].startswith("videos/")
    assert not any(os.path.exists(p) for p in paths)


@pytest.mark.asyncio
async def test_thumbnail_timeout_rolls_back_video_object(video_repo, storage, both_media):
    import time

    original = storage.upload

    def slow_thumbnail(staged, kind, vid=None):
        if kind == "thumbnails":
            time.sleep(1.0)
        return original(staged, kind, vid)

    storage.upload = slow_thumbnail
    svc = PublishingService(video_repo, storage, upload_timeout=0.3)
    with pytest.raises(UploadFailed):
        await svc.publish("T", "D", both_media, owner_id=OWNER)
    assert video_repo.items == {}
    assert any(k.startswith("videos/") for k in storage.deleted)


@pytest.mark.asyncio
async def test_persistence_failure_rolls_back_both_objects(video_repo, storage, both_media):
    video_repo.fail_on.add("put")
    with pytest.raises(PersistenceFailed):
        await PublishingService(video_repo, storage).publish("T", "D", both_media, owner_id=OWNER)
    assert storage.objects == set()
    assert sorted(k.split("/")[0] for k in storage.deleted) == ["thumbnails", "videos"]


@pytest.mark.asyncio
async def test_cancellation_still_removes_staged_files(video_repo, storage, both_media):
    import time

    def blocking_upload(staged, kind, vid=None):
        time.sleep(0.3)
        return None

    storage.upload = blocking_upload
    paths = staged_paths(both_media)
    svc = PublishingService(video_repo, storage)
    task = asyncio.ensure_future(svc.publish("T", "D", both_media, owner_id=OWNER))
    await asyncio.sleep(0.05)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task
    assert not any(os.path.exists(p) for p in paths)


# ========= update =========

@pytest.mark.asyncio
async def test_update_changes_only_title_description_thumbnail(storage, staged_factory):
    original = make_video(title="old", description="old d")
    repo = InMemoryVideoRepo([original])
    thumb = staged_factory("new.png", "image/png")

    updated = await PublishingService(repo, storage).update_details(original.id, "new", "new d", thumb)

    assert (updated.title, updated.description) == ("new", "new d")
    assert updated.thumbnail_url != original.thumbnail_url
    assert updated.thumbnail_key.startswith(f"thumbnails/{original.id}/")
    assert updated.media_url == original.media_url
    assert updated.media_key == original.media_key
    assert updated.duration == original.duration
    assert updated.owner_id == original.owner_id
    assert updated.created_at == original.created_at
    assert updated.updated_at > original.updated_at
    # thumbnail anterior aposentada, arquivo de staging removido
    assert storage.deleted == [original.thumbnail_key]
    assert not os.path.exists(thumb.path)


@pytest.mark.asyncio
@pytest.mark.parametrize("title,description,with_thumb,field", [
    (None, "d", True, "title"),
    ("t", "", True, "description"),
    ("t", "d", False, "thumbnail"),
])
async def test_update_missing_fields(storage, staged_factory, title, description, with_thumb, field):
    video = make_video()
    thumb = staged_factory("t.png", "image/png") if with_thumb else None
    with pytest.raises(MissingField) as exc:
        await PublishingService(InMemoryVideoRepo([video]), storage).update_details(
            video.id, title, description, thumb
        )
    assert exc.value.field == field
    assert storage.uploads == []


@pytest.mark.asyncio
async def test_update_invalid_id(video_repo, storage, staged_factory):
    with pytest.raises(InvalidInput):
        await PublishingService(video_repo, storage).update_details(
            "nope", "t", "d", staged_factory("t.png", "image/png")
        )
    assert video_repo.calls == []


@pytest.mark.asyncio
async def test_update_unknown_id_does_not_upload(video_repo, storage, staged_factory):
    thumb = staged_factory("t.png", "image/png")
    with pytest.raises(NotFound):
        await PublishingService(video_repo, storage).update_details(new_id(), "t", "d", thumb)
    assert storage.uploads == []
    assert not os.path.exists(thumb.path)


@pytest.mark.asyncio
async def test_update_thumbnail_upload_failure_keeps_entry(storage, staged_factory):
    video = make_video()
    repo = InMemoryVideoRepo([video])
    storage.fail_kinds.add("thumbnails")
    with pytest.raises(UploadFailed):
        await PublishingService(repo, storage).update_details(
            video.id, "t", "d", staged_factory("t.png", "image/png")
        )
    assert repo.items[video.id] == video


@pytest.mark.asyncio
async def test_update_entry_removed_meanwhile(storage, staged_factory):
    video = make_video()

    class VanishingRepo(InMemoryVideoRepo):
        def update_details(self, *a, **k):
            self.items.clear()
            return super().update_details(*a, **k)

    with pytest.raises(NotFound):
        await PublishingService(VanishingRepo([video]), storage).update_details(
            video.id, "t", "d", staged_factory("t.png", "image/png")
        )
    # nova thumbnail removida; a antiga fica para o delete
    assert storage.objects == set()
    assert video.thumbnail_key not in storage.deleted


@pytest.mark.asyncio
async def test_update_store_failure(storage, staged_factory):
    video = make_video()
    repo = InMemoryVideoRepo([video])
    repo.fail_on.add("update_details")
    with pytest.raises(PersistenceFailed):
        await PublishingService(repo, storage).update_details(
            video.id, "t", "d", staged_factory("t.png", "image/png")
        )
    assert storage.objects == set()


# ========= delete =========

@pytest.mark.asyncio
async def test_delete_removes_entry_and_remote_objects(storage):
    video = make_video()
    repo = InMemoryVideoRepo([video])
    result = await PublishingService(repo, storage).delete(video.id)
    assert result.deleted is True
    assert result.video_id == video.id
    assert video.id not in repo.items
    assert storage.deleted == [video.media_key, video.thumbnail_key]


@pytest.mark.asyncio
async def test_delete_is_idempotent(video_repo, storage):
    vid = new_id()
    svc = PublishingService(video_repo, storage)
    first = await svc.delete(vid)
    second = await svc.delete(vid)
    assert first.deleted is False and second.deleted is False
    assert storage.deleted == []


@pytest.mark.asyncio
async def test_delete_invalid_id(video_repo, storage):
    with pytest.raises(InvalidInput):
        await PublishingService(video_repo, storage).delete("123")
    assert video_repo.calls == []


@pytest.mark.asyncio
async def test_delete_store_failure_keeps_remote_objects(storage):
    video = make_video()
    repo = InMemoryVideoRepo([video])
    repo.fail_on.add("delete")
    with pytest.raises(PersistenceFailed):
        await PublishingService(repo, storage).delete(video.id)
    assert storage.deleted == []


# ========= toggle =========

@pytest.mark.asyncio
async def test_toggle_flips_and_persists(storage):
    video = make_video(is_published=True)
    repo = InMemoryVideoRepo([video])
    svc = PublishingService(repo, storage)

    off = await svc.toggle_publish(video.id)
    assert off.is_published is False
    assert repo.items[video.id].is_published is False

    on = await svc.toggle_publish(video.id)
    assert on.is_published is True
    assert on.title == video.title and on.media_url == video.media_url


@pytest.mark.asyncio
async def test_toggle_not_found(video_repo, storage):
    with pytest.raises(NotFound):
        await PublishingService(video_repo, storage).toggle_publish(new_id())


@pytest.mark.asyncio
async def test_toggle_invalid_id(video_repo, storage):
    with pytest.raises(InvalidInput):
        await PublishingService(video_repo, storage).toggle_publish("x")


@pytest.mark.asyncio
async def test_toggle_concurrent_change_is_persistence_failure(storage):
    video = make_video(is_published=True)

    class RacingRepo(InMemoryVideoRepo):
        def set_published(self, video_id, expected, value, updated_at):
            # outra requisição alterou antes
            self.items[video_id] = self.items[video_id].model_copy(update={"is_published": not expected})
            return super().set_published(video_id, expected, value, updated_at)

    with pytest.raises(PersistenceFailed):
        await PublishingService(RacingRepo([video]), storage).toggle_publish(video.id)


@pytest.mark.asyncio
async def test_toggle_store_failure_on_read(storage):
    repo = InMemoryVideoRepo()
    repo.fail_on.add("get")
    with pytest.raises(CatalogUnavailable):
        await PublishingService(repo, storage).toggle_publish(new_id())


# ========= escritas lentas / canceladas: storage só muda com resultado conhecido =========

class SlowRepo(InMemoryVideoRepo):
    """Escritas que demoram mais que o query_timeout (a thread termina depois)."""
    def __init__(self, videos=(), delay=0.3, fail_after_delay=()):
        super().__init__(videos)
        self.delay = delay
        self.fail_after_delay = set(fail_after_delay)

    def _slow(self, op):
        import time
        self.calls.append(f"{op}:start")
        time.sleep(self.delay)
        if op in self.fail_after_delay:
            from conftest import boto_error
            raise boto_error(op=op)

    def put(self, video):
        self._slow("put")
        return super().put(video)

    def update_details(self, *a, **k):
        self._slow("update_details")
        return super().update_details(*a, **k)

    def delete(self, video_id):
        self._slow("delete")
        return super().delete(video_id)


@pytest.mark.asyncio
async def test_slow_put_keeps_objects_referenced_by_the_row(storage, both_media):
    repo = SlowRepo()
    svc = PublishingService(repo, storage, query_timeout=0.05)

    video = await svc.publish("T", "D", both_media, owner_id=OWNER)

    assert repo.items[video.id] == video
    assert {video.media_key, video.thumbnail_key} <= storage.objects
    assert storage.deleted == []


@pytest.mark.asyncio
async def test_slow_put_that_fails_rolls_back_both_objects(storage, both_media):
    repo = SlowRepo(fail_after_delay={"put"})
    with pytest.raises(PersistenceFailed):
        await PublishingService(repo, storage, query_timeout=0.05).publish("T", "D", both_media, owner_id=OWNER)
    assert repo.items == {}
    assert storage.objects == set()


@pytest.mark.asyncio
async def test_put_error_after_the_row_landed_is_a_success(storage, both_media):
    class LandedThenFailed(InMemoryVideoRepo):
        def put(self, video):
            super().put(video)
            from conftest import boto_error
            raise boto_error("RequestTimeout", op="PutItem")

    repo = LandedThenFailed()
    video = await PublishingService(repo, storage).publish("T", "D", both_media, owner_id=OWNER)
    assert video.id in repo.items
    assert storage.deleted == []


@pytest.mark.asyncio
async def test_cancelled_publish_does_not_orphan_the_row(storage, both_media):
    repo = SlowRepo()
    svc = PublishingService(repo, storage, query_timeout=5)
    task = asyncio.ensure_future(svc.publish("T", "D", both_media, owner_id=OWNER))
    while "put:start" not in repo.calls:
        await asyncio.sleep(0.01)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    # a thread termina a gravação; o ajuste do storage roda em background
    await asyncio.sleep(0.6)
    [row] = repo.items.values()
    assert {row.media_key, row.thumbnail_key} <= storage.objects
    assert storage.deleted == []


@pytest.mark.asyncio
async def test_cancelled_publish_cleans_up_when_the_write_fails(storage, both_media):
    repo = SlowRepo(fail_after_delay={"put"})
    svc = PublishingService(repo, storage, query_timeout=5)
    task = asyncio.ensure_future(svc.publish("T", "D", both_media, owner_id=OWNER))
    while "put:start" not in repo.calls:
        await asyncio.sleep(0.01)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    await asyncio.sleep(0.6)
    assert repo.items == {}
    assert storage.objects == set()


@pytest.mark.asyncio
async def test_slow_update_keeps_new_thumbnail_and_retires_old(storage, staged_factory):
    video = make_video()
    repo = SlowRepo([video])
    updated = await PublishingService(repo, storage, query_timeout=0.05).update_details(
        video.id, "t", "d", staged_factory("t.png", "image/png")
    )
    assert repo.items[video.id].thumbnail_key == updated.thumbnail_key
    assert updated.thumbnail_key in storage.objects
    assert storage.deleted == [video.thumbnail_key]


@pytest.mark.asyncio
async def test_update_error_with_unreadable_row_keeps_new_thumbnail(storage, staged_factory):
    video = make_video()

    class Flaky(InMemoryVideoRepo):
        def update_details(self, *a, **k):
            self.fail_on.add("get")
            return super().update_details(*a, **k)

    repo = Flaky([video])
    repo.fail_on.add("update_details")
    with pytest.raises(PersistenceFailed):
        await PublishingService(repo, storage).update_details(
            video.id, "t", "d", staged_factory("t.png", "image/png")
        )
    # estado incerto: nada removido
    assert storage.deleted == []
    assert len(storage.objects) == 1


@pytest.mark.asyncio
async def test_slow_delete_still_retires_remote_objects(storage):
    video = make_video()
    repo = SlowRepo([video])
    result = await PublishingService(repo, storage, query_timeout=0.05).delete(video.id)
    assert result.deleted is True
    assert repo.items == {}
    assert storage.deleted == [video.media_key, video.thumbnail_key]


@pytest.mark.asyncio
async def test_delete_of_absent_entry_sweeps_leftover_objects(video_repo, storage):
    vid = new_id()
    storage.objects.update({f"videos/{vid}/a-clip.mp4", f"thumbnails/{vid}/b-t.png", "videos/other/x.mp4"})

    result = await PublishingService(video_repo, storage).delete(vid)

    assert result.deleted is False
    assert storage.swept == [f"videos/{vid}/", f"thumbnails/{vid}/"]
    assert storage.objects == {"videos/other/x.mp4"}


@pytest.mark.asyncio
async def test_remote_cleanup_runs_off_the_event_loop(video_repo, storage, both_media):
    import threading

    loop_thread = threading.get_ident()
    threads = []
    original = storage.delete

    def tracking_delete(key):
        threads.append(threading.get_ident())
        return original(key)

    storage.delete = tracking_delete
    storage.fail_kinds.add("thumbnails")
    with pytest.raises(UploadFailed):
        await PublishingService(video_repo, storage).publish("T", "D", both_media, owner_id=OWNER)
    assert threads and loop_thread not in threads


# ========= tipo genérico =========

@pytest.mark.asyncio
async def test_publish_accepts_generic_content_type(video_repo, storage, staged_factory):
    media = StagedMedia(
        video=staged_factory("clip.mp4", "application/octet-stream"),
        thumbnail=staged_factory("thumb.png", "application/octet-stream"),
    )
    video = await PublishingService(video_repo, storage).publish("T", "D", media, owner_id=OWNER)
    assert video.id in video_repo.items
