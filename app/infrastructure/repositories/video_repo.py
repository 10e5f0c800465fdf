# app/infrastructure/repositories/video_repo.py
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from boto3.dynamodb.conditions import Attr
from botocore.exceptions import ClientError

import app.aws as aws_mod   # <-- importe o módulo, não o símbolo
from app.core.metrics import DDB_OPS
from app.domain.models.query import SearchField
from app.domain.models.video import Video
from app.domain.repositories.video_repository_interface import IVideoRepository


def _is_conditional_failure(e: ClientError) -> bool:
    return e.response.get("Error", {}).get("Code") == "ConditionalCheckFailedException"


def to_item(video: Video) -> dict:
    item = video.model_dump(mode="json")
    item["id_video"] = item.pop("id")
    # DynamoDB não aceita float
    item["duration"] = Decimal(str(video.duration))
    item["title_search"] = video.title.lower()
    item["description_search"] = video.description.lower()
    return item


def from_item(item: dict) -> Video:
    data = {k: v for k, v in item.items() if k not in ("id_video", "title_search", "description_search")}
    data["id"] = item["id_video"]
    return Video.model_validate(data)


class VideoRepo(IVideoRepository):
    def __init__(self, table=None):
        self._table = table

    @property
    def table(self):
        # resolve tarde para permitir trocar aws_mod.table_videos nos testes
        return self._table if self._table is not None else aws_mod.table_videos

    def _track(self, op: str, fn, **kwargs):
        try:
            resp = fn(**kwargs)
        except ClientError as e:
            status = "conflict" if _is_conditional_failure(e) else "error"
            DDB_OPS.labels(op=op, status=status).inc()
            raise
        except Exception:
            DDB_OPS.labels(op=op, status="error").inc()
            raise
        DDB_OPS.labels(op=op, status="ok").inc()
        return resp

    def put(self, video: Video) -> None:
        self._track(
            "put",
            self.table.put_item,
            Item=to_item(video),
            ConditionExpression="attribute_not_exists(id_video)",
        )

    def get(self, video_id: str) -> Optional[Video]:
        resp = self._track("get", self.table.get_item, Key={"id_video": video_id})
        item = resp.get("Item")
        return from_item(item) if item else None

    def scan(
        self,
        text_filter: str = "",
        search_field: SearchField = SearchField.ANY,
        owner_id: Optional[str] = None,
    ) -> List[Video]:
        """
        Scan + Filter paginado (segue LastEvaluatedKey até o fim).
        Os atributos *_search guardam o texto em minúsculas para o contains.
        """
        condition = None
        needle = (text_filter or "").lower()
        if needle:
            on_title = Attr("title_search").contains(needle)
            on_description = Attr("description_search").contains(needle)
            if search_field == SearchField.TITLE:
                condition = on_title
            elif search_field == SearchField.DESCRIPTION:
                condition = on_description
            else:
                condition = on_title | on_description
        if owner_id:
            by_owner = Attr("owner_id").eq(owner_id)
            condition = by_owner if condition is None else condition & by_owner

        kwargs = {}
        if condition is not None:
            kwargs["FilterExpression"] = condition

        items: List[dict] = []
        while True:
            resp = self._track("scan", self.table.scan, **kwargs)
            items.extend(resp.get("Items", []))
            last_key = resp.get("LastEvaluatedKey")
            if not last_key:
                break
            kwargs["ExclusiveStartKey"] = last_key
        return [from_item(i) for i in items]

    def update_details(
        self,
        video_id: str,
        title: str,
        description: str,
        thumbnail_url: str,
        thumbnail_key: str,
        updated_at: datetime,
    ) -> Optional[Video]:
        try:
            resp = self._track(
                "update",
                self.table.update_item,
                Key={"id_video": video_id},
                UpdateExpression=(
                    "SET #t = :t, #d = :d, title_search = :ts, description_search = :ds, "
                    "thumbnail_url = :tu, thumbnail_key = :tk, updated_at = :u"
                ),
                ConditionExpression="attribute_exists(id_video)",
                ExpressionAttributeNames={"#t": "title", "#d": "description"},
                ExpressionAttributeValues={
                    ":t": title,
                    ":d": description,
                    ":ts": title.lower(),
                    ":ds": description.lower(),
                    ":tu": thumbnail_url,
                    ":tk": thumbnail_key,
                    ":u": updated_at.isoformat(),
                },
                ReturnValues="ALL_NEW",
            )
        except ClientError as e:
            if _is_conditional_failure(e):
                return None
            raise
        return from_item(resp["Attributes"])

    def set_published(
        self, video_id: str, expected: bool, value: bool, updated_at: datetime
    ) -> Optional[Video]:
        try:
            resp = self._track(
                "update",
                self.table.update_item,
                Key={"id_video": video_id},
                UpdateExpression="SET is_published = :v, updated_at = :u",
                ConditionExpression="attribute_exists(id_video) AND is_published = :e",
                ExpressionAttributeValues={
                    ":v": value,
                    ":e": expected,
                    ":u": updated_at.isoformat(),
                },
                ReturnValues="ALL_NEW",
            )
        except ClientError as e:
            if _is_conditional_failure(e):
                return None
            raise
        return from_item(resp["Attributes"])

    def delete(self, video_id: str) -> Optional[Video]:
        resp = self._track(
            "delete",
            self.table.delete_item,
            Key={"id_video": video_id},
            ReturnValues="ALL_OLD",
        )
        item = resp.get("Attributes")
        return from_item(item) if item else None
