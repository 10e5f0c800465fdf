"""Normalização dos parâmetros da listagem de vídeos.

Nunca falha: qualquer valor inválido vira o default seguro.

Regra herdada da API pública: ``page``/``limit`` que parecem números voltam
para o default (1/10). Com ``HONOR_NUMERIC_PAGING`` ligado, inteiros
positivos passam a ser respeitados (``limit`` limitado a ``MAX_PAGE_LIMIT``).
"""
from typing import Optional

from app.config import settings
from app.domain.models.query import CatalogQuery, SearchField, SortDirection, SortField
from app.utils.id_gen import is_valid_id

DEFAULT_PAGE = 1
DEFAULT_LIMIT = 10
MAX_QUERY_LENGTH = 200


def _looks_numeric(value) -> bool:
    if value is None:
        return False
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return True
    text = str(value).strip()
    if text == "":
        # string vazia conta como número (0) na regra herdada
        return True
    try:
        float(text)
        return True
    except ValueError:
        return False


def _positive_int(value, default: int, cap: Optional[int] = None) -> int:
    try:
        number = int(str(value).strip())
    except (TypeError, ValueError):
        return default
    if number < 1:
        return default
    if cap is not None:
        number = min(number, cap)
    return number


def _paging_value(value, default: int, honor_numeric: bool, cap: Optional[int] = None) -> int:
    if value is None:
        return default
    if not honor_numeric:
        # numérico -> default; não numérico também não serve como página
        return default
    if not _looks_numeric(value):
        return default
    return _positive_int(value, default, cap)


def normalize_list_params(
    page=None,
    limit=None,
    query: Optional[str] = None,
    search_field: Optional[str] = None,
    sort_by: Optional[str] = None,
    sort_type: Optional[str] = None,
    user_id: Optional[str] = None,
    honor_numeric_paging: Optional[bool] = None,
) -> CatalogQuery:
    honor = settings.honor_numeric_paging if honor_numeric_paging is None else honor_numeric_paging
    page_n = _paging_value(page, DEFAULT_PAGE, honor)
    limit_n = _paging_value(limit, DEFAULT_LIMIT, honor, cap=max(settings.max_page_limit, 1))

    try:
        field = SearchField(search_field or "")
    except ValueError:
        field = SearchField.ANY

    try:
        sort_field = SortField(sort_by)
    except ValueError:
        sort_field = SortField.CREATED_AT

    direction = SortDirection.DESC if sort_type == "desc" else SortDirection.ASC

    text = (query or "").strip()[:MAX_QUERY_LENGTH] if isinstance(query, str) else ""

    return CatalogQuery(
        skip=(page_n - 1) * limit_n,
        limit=limit_n,
        text_filter=text,
        search_field=field,
        sort_by=sort_field,
        sort_direction=direction,
        owner_filter=user_id if is_valid_id(user_id) else None,
    )
