from dataclasses import dataclass
from enum import Enum
from typing import Optional


class SearchField(str, Enum):
    ANY = ""
    TITLE = "title"
    DESCRIPTION = "description"


class SortField(str, Enum):
    TITLE = "title"
    CREATED_AT = "createdAt"
    UPDATED_AT = "updatedAt"

    @property
    def attribute(self) -> str:
        return {"title": "title", "createdAt": "created_at", "updatedAt": "updated_at"}[self.value]


class SortDirection(int, Enum):
    ASC = 1
    DESC = -1


@dataclass(frozen=True)
class CatalogQuery:
    """Especificação já normalizada de uma listagem do catálogo."""
    skip: int = 0
    limit: int = 10
    text_filter: str = ""
    search_field: SearchField = SearchField.ANY
    sort_by: SortField = SortField.CREATED_AT
    sort_direction: SortDirection = SortDirection.ASC
    owner_filter: Optional[str] = None
