import asyncio
from typing import Any, Callable


async def run_blocking(fn: Callable[..., Any], *args, timeout: float | None = None, **kwargs) -> Any:
    """Roda uma chamada bloqueante (boto3, ffprobe) numa thread, com timeout opcional."""
    return await asyncio.wait_for(asyncio.to_thread(fn, *args, **kwargs), timeout)
