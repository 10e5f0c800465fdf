import os
from typing import Tuple
from ..config import settings
from ..aws import s3
from .id_gen import new_id
from app.core.metrics import S3_OPS

def build_s3_key(original_filename: str, kind: str = "videos", vid: str | None = None) -> Tuple[str, str]:
    vid = vid or new_id()
    # só o nome base; evita "../" vindo do cliente
    name = os.path.basename(original_filename or "") or "file"
    key = f"{kind}/{vid}/{name}"
    return vid, key

def object_url(bucket: str, key: str) -> str:
    base = settings.s3_public_base_url
    if base:
        return f"{base.rstrip('/')}/{key}"
    endpoint = settings.aws_endpoint_url or f"https://s3.{settings.aws_region}.amazonaws.com"
    return f"{endpoint.rstrip('/')}/{bucket}/{key}"

def upload_file(bucket: str, key: str, path: str, content_type: str) -> None:
    """Envia o arquivo local ao S3 e incrementa métricas de sucesso/erro."""
    try:
        s3.upload_file(path, bucket, key, ExtraArgs={"ContentType": content_type})
        S3_OPS.labels(op="put", status="ok").inc()
    except Exception:
        S3_OPS.labels(op="put", status="error").inc()
        raise

def delete_object(bucket: str, key: str) -> None:
    try:
        s3.delete_object(Bucket=bucket, Key=key)
        S3_OPS.labels(op="delete", status="ok").inc()
    except Exception:
        S3_OPS.labels(op="delete", status="error").inc()
        raise

def delete_prefix(bucket: str, prefix: str) -> int:
    """Remove todos os objetos sob ``prefix``; devolve quantos foram apagados."""
    removed = 0
    try:
        paginator = s3.get_paginator("list_objects_v2")
        for page in paginator.paginate(Bucket=bucket, Prefix=prefix):
            keys = [{"Key": obj["Key"]} for obj in page.get("Contents", [])]
            if not keys:
                continue
            # delete_objects aceita até 1000 chaves; list_objects_v2 devolve no máximo 1000
            resp = s3.delete_objects(Bucket=bucket, Delete={"Objects": keys, "Quiet": True})
            if resp.get("Errors"):
                raise RuntimeError(f"Falha ao remover {len(resp['Errors'])} objeto(s) em {prefix}")
            removed += len(keys)
        S3_OPS.labels(op="delete_prefix", status="ok").inc()
    except Exception:
        S3_OPS.labels(op="delete_prefix", status="error").inc()
        raise
    return removed
