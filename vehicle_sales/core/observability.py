import functools
import inspect
import logging
import time
from typing import Any, Callable

from pydantic import BaseModel

from .logging import _redact

logger = logging.getLogger("steps")

PREVIEW_MAX = 200


def _preview(result: Any) -> str:
    """Short text form of a step result, with sensitive keys masked."""
    if isinstance(result, BaseModel):
        result = _redact(result.model_dump(mode="json"))
    elif isinstance(result, (list, tuple)):
        result = [_redact(r.model_dump(mode="json")) if isinstance(r, BaseModel) else _redact(r) for r in result]
    elif isinstance(result, dict):
        result = _redact(result)
    return str(result)[:PREVIEW_MAX]


def log_step(step: str):
    """
    Logs entry, exit, timing and exceptions of a service step.
    Example: @log_step("sales.create")
    """
    def decorator(fn: Callable):
        @functools.wraps(fn)
        async def awrapped(*args, **kwargs):
            t0 = time.perf_counter()
            logger.debug("ENTER %s", step, extra={"extra": {"step": step, "args": _redact(kwargs)}})
            try:
                result = await fn(*args, **kwargs)
                dt = round((time.perf_counter() - t0) * 1000)
                logger.info("EXIT %s", step, extra={"extra": {"step": step, "elapsed_ms": dt, "result_preview": _preview(result)}})
                return result
            except Exception as e:
                dt = round((time.perf_counter() - t0) * 1000)
                logger.error("ERROR %s: %s", step, e, extra={"extra": {"step": step, "elapsed_ms": dt,
                                                                      "error_type": type(e).__name__}})
                raise

        @functools.wraps(fn)
        def wrapped(*args, **kwargs):
            t0 = time.perf_counter()
            logger.debug("ENTER %s", step, extra={"extra": {"step": step, "args": _redact(kwargs)}})
            try:
                result = fn(*args, **kwargs)
                dt = round((time.perf_counter() - t0) * 1000)
                logger.info("EXIT %s", step, extra={"extra": {"step": step, "elapsed_ms": dt, "result_preview": _preview(result)}})
                return result
            except Exception as e:
                dt = round((time.perf_counter() - t0) * 1000)
                logger.error("ERROR %s: %s", step, e, extra={"extra": {"step": step, "elapsed_ms": dt,
                                                                      "error_type": type(e).__name__}})
                raise

        # Pick the wrapper by function kind (async or sync)
        if inspect.iscoroutinefunction(fn):
            return awrapped
        else:
            return wrapped

    return decorator
