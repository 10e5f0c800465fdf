# app/auth.py
from __future__ import annotations
from typing import Optional
from fastapi import Security, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import ValidationError
import httpx
import hashlib
import logging

from app.core.logging import set_request_context
from app.domain.models.user_model import UserContext
from app.infrastructure.clients.auth_client import AuthClient


logger = logging.getLogger("auth")

_auth_client: Optional[AuthClient] = None  # privado no módulo
bearer_scheme = HTTPBearer(auto_error=False)

def _safe_token_id(token: str) -> str:
    # não loga o token; loga um identificador abreviado
    return hashlib.sha1(token.encode()).hexdigest()[:8]

def set_auth_client(client: Optional[AuthClient]) -> None:
    """
    Injeta o client criado no lifespan (ou um fake nos testes).
    """
    global _auth_client
    _auth_client = client


def get_auth_client() -> Optional[AuthClient]:
    return _auth_client


def _ensure_client() -> AuthClient:
    global _auth_client
    if _auth_client is not None:
        return _auth_client
    # cria on-demand a partir de settings
    from app.config import settings
    if not settings.auth_base_url:
        logger.error("AUTH_BASE_URL ausente; não dá para inicializar AuthClient")
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                            detail="Serviço de autenticação indisponível")

    _auth_client = AuthClient(
        base_url=settings.auth_base_url,
        timeout_seconds=settings.auth_timeout_seconds,
        cache_ttl=settings.auth_cache_ttl_seconds,
    )
    logger.info("AuthClient criado on-demand (base_url=%s)", settings.auth_base_url)
    return _auth_client

async def _fetch_me(token: str) -> dict:
    tid = _safe_token_id(token)
    client = _ensure_client()

    try:
        logger.debug("Chamando /me (token_id=%s)", tid)
        data = await client.me(token)
        logger.info("Auth OK (token_id=%s)", tid)
        return data
    except httpx.HTTPStatusError as e:
        sc = e.response.status_code
        logger.warning("HTTPStatusError em /me (status=%s url=%s token_id=%s)", sc, e.request.url, tid)
        if sc in (401, 403):
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Token inválido ou expirado")
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Falha ao validar token no Auth Service")
    except (httpx.TimeoutException, httpx.RequestError) as e:
        logger.error("Erro de rede em /me (token_id=%s): %s", tid, e)
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Auth Service inacessível")

async def require_user(
    credentials: HTTPAuthorizationCredentials = Security(bearer_scheme)
) -> UserContext:
    """
    Dependency principal. Valida o Bearer e devolve o usuário autenticado (dono dos vídeos publicados).
    """
    if credentials is None or (credentials.scheme or "").lower() != "bearer":
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Token ausente")
    token = credentials.credentials.strip()
    if not token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Token vazio")

    payload = await _fetch_me(token)
    try:
        user = UserContext.model_validate(payload)
    except ValidationError as e:
        logger.warning("Payload de /me inválido (token_id=%s): %s", _safe_token_id(token), e.error_count())
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Resposta inválida do Auth Service")

    if not user.is_active:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Usuário inativo")

    set_request_context(user_id=user.id)
    return user
