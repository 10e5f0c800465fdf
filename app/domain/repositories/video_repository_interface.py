# app/domain/repositories/video_repository_interface.py
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from app.domain.models.query import SearchField
from app.domain.models.video import OwnerProjection, Video


class IVideoRepository(ABC):
    """Contrato para persistência de vídeos"""

    @abstractmethod
    def put(self, video: Video) -> None:
        """Insere um novo vídeo"""

    @abstractmethod
    def get(self, video_id: str) -> Optional[Video]:
        """Busca um vídeo pelo ID"""

    @abstractmethod
    def scan(
        self,
        text_filter: str = "",
        search_field: SearchField = SearchField.ANY,
        owner_id: Optional[str] = None,
    ) -> List[Video]:
        """Todos os vídeos cujo título/descrição contém ``text_filter`` (sem diferenciar caixa)"""

    @abstractmethod
    def update_details(
        self,
        video_id: str,
        title: str,
        description: str,
        thumbnail_url: str,
        thumbnail_key: str,
        updated_at: datetime,
    ) -> Optional[Video]:
        """Atualiza título/descrição/thumbnail; None se o vídeo não existir"""

    @abstractmethod
    def set_published(
        self, video_id: str, expected: bool, value: bool, updated_at: datetime
    ) -> Optional[Video]:
        """Grava is_published=value se o valor atual for ``expected``; None se a condição falhar"""

    @abstractmethod
    def delete(self, video_id: str) -> Optional[Video]:
        """Remove o vídeo e devolve o item removido (None se não existia)"""


class IUserRepository(ABC):
    """Leitura da projeção pública dos usuários donos dos vídeos"""

    @abstractmethod
    def get_projections(self, user_ids: Iterable[str]) -> Dict[str, OwnerProjection]:
        """Mapa id -> projeção; ids não encontrados ficam fora do mapa"""
