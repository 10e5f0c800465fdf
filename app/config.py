# app/config.py
from typing import Optional
from pydantic import Field, AliasChoices
from pydantic_settings import BaseSettings, SettingsConfigDict
import os

class Settings(BaseSettings):

    os.environ.setdefault("AUTH_BASE_URL", "http://172.17.0.1:8000")
    os.environ.setdefault("S3_BUCKET", "video-catalog-bucket")
    os.environ.setdefault("MAX_UPLOAD_MB", "200")

    # AWS / LocalStack
    aws_region: str = "us-east-1"
    aws_endpoint_url: Optional[str] = None
    s3_bucket: str = "video-catalog-bucket"
    # base pública dos objetos (CDN); vazio = URL do endpoint S3
    s3_public_base_url: Optional[str] = None
    ddb_table: str = "videos"
    ddb_users_table: str = "users"

    # Upload / staging
    max_upload_mb: int = 200
    staging_dir: str = "/tmp/video-staging"
    ffprobe_path: str = "ffprobe"
    upload_timeout_seconds: float = 120.0
    query_timeout_seconds: float = 10.0

    # Paginação: por padrão page/limit numéricos voltam ao default.
    # Ligar HONOR_NUMERIC_PAGING para respeitar inteiros positivos.
    honor_numeric_paging: bool = False
    max_page_limit: int = 100

    # Vars do Auth (obrigatório: auth_base_url)
    auth_base_url: str = Field(
        ...,
        validation_alias=AliasChoices("AUTH_BASE_URL", "auth_base_url"),
    )
    auth_timeout_seconds: int = Field(
        5,
        validation_alias=AliasChoices("AUTH_TIMEOUT_SECONDS", "auth_timeout_seconds"),
    )
    auth_cache_ttl_seconds: int = Field(
        30,
        validation_alias=AliasChoices("AUTH_CACHE_TTL_SECONDS", "auth_cache_ttl_seconds"),
    )

    # pydantic-settings v2
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="",   # sem prefixo
        extra="ignore",
    )

settings = Settings()
