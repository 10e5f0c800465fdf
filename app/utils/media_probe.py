"""Leitura de metadados técnicos (duração) do vídeo via ffprobe."""
import json
import logging
import subprocess
from typing import Optional

logger = logging.getLogger("storage")

PROBE_TIMEOUT_SECONDS = 60


def probe_duration(path: str, ffprobe: str = "ffprobe") -> Optional[float]:
    """Duração em segundos do arquivo, ou None se o ffprobe não conseguir ler."""
    cmd = [
        ffprobe,
        "-v", "error",
        "-show_entries", "format=duration",
        "-of", "json",
        path,
    ]
    try:
        proc = subprocess.run(cmd, check=True, capture_output=True, timeout=PROBE_TIMEOUT_SECONDS)
    except subprocess.CalledProcessError as e:
        logger.warning("ffprobe falhou para %s: %s", path, e.stderr and e.stderr.decode(errors="ignore") or e)
        return None
    except subprocess.TimeoutExpired:
        logger.warning("ffprobe excedeu o tempo para %s", path)
        return None
    except FileNotFoundError:
        logger.error("ffprobe não encontrado; instale o FFmpeg para extrair a duração")
        return None

    try:
        raw = json.loads(proc.stdout or b"{}").get("format", {}).get("duration")
        duration = float(raw)
    except (ValueError, TypeError, AttributeError):
        logger.warning("ffprobe não retornou duração válida para %s", path)
        return None
    return duration if duration >= 0 else None
