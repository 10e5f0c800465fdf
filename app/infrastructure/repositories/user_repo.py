# app/infrastructure/repositories/user_repo.py
from typing import Dict, Iterable, List

import app.aws as aws_mod
from app.core.metrics import DDB_OPS
from app.domain.models.video import OwnerProjection
from app.domain.repositories.video_repository_interface import IUserRepository

# limite do BatchGetItem
_BATCH_SIZE = 100
_MAX_ROUNDS = 5


class UserRepo(IUserRepository):
    def __init__(self, resource=None, table_name: str | None = None):
        self._resource = resource
        self._table_name = table_name

    @property
    def resource(self):
        return self._resource if self._resource is not None else aws_mod.ddb

    @property
    def table_name(self) -> str:
        return self._table_name or aws_mod.table_users.name

    def get_projections(self, user_ids: Iterable[str]) -> Dict[str, OwnerProjection]:
        ids: List[str] = sorted({str(u) for u in user_ids if u})
        found: Dict[str, OwnerProjection] = {}
        for start in range(0, len(ids), _BATCH_SIZE):
            chunk = ids[start:start + _BATCH_SIZE]
            request = {
                self.table_name: {
                    "Keys": [{"id": uid} for uid in chunk],
                    "ProjectionExpression": "#id, #u, #e, #a",
                    "ExpressionAttributeNames": {"#id": "id", "#u": "username", "#e": "email", "#a": "avatar"},
                }
            }
            rounds = 0
            while request and rounds < _MAX_ROUNDS:
                rounds += 1
                try:
                    resp = self.resource.batch_get_item(RequestItems=request)
                    DDB_OPS.labels(op="batch_get", status="ok").inc()
                except Exception:
                    DDB_OPS.labels(op="batch_get", status="error").inc()
                    raise
                for item in resp.get("Responses", {}).get(self.table_name, []):
                    found[str(item["id"])] = OwnerProjection(
                        username=item.get("username"),
                        email=item.get("email"),
                        avatar=item.get("avatar"),
                    )
                request = resp.get("UnprocessedKeys") or {}
        return found
