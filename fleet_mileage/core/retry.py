import functools
import logging
from typing import Awaitable, Callable, Optional

import httpx
from tenacity import (
    AsyncRetrying,
    RetryError,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from fleet_mileage.config import settings

logger = logging.getLogger(__name__)


def is_transient_error(exc: BaseException) -> bool:
    """Errores de red, 5xx y 429; un 4xx no mejora con reintentos."""
    if isinstance(exc, httpx.HTTPStatusError):
        status = exc.response.status_code
        return status >= 500 or status == 429
    return isinstance(exc, (httpx.TransportError, ConnectionError, TimeoutError))


def retry_with_fallback(
    fallback: Callable[..., Awaitable],
    attempts: Optional[int] = None,
    max_wait: Optional[float] = None,
):
    """Reintenta la corrutina con backoff exponencial ante errores transitorios;
    si se agotan los intentos, o el error no es transitorio, llama a
    `fallback(error, *args, **kwargs)` en lugar de propagar.

    Los límites se leen de `settings` en cada llamada.
    """

    def decorator(func):
        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            retrying = AsyncRetrying(
                stop=stop_after_attempt(attempts or settings.AUDIT_RETRY_ATTEMPTS),
                wait=wait_exponential(
                    multiplier=1,
                    max=settings.AUDIT_RETRY_MAX_WAIT_SECONDS if max_wait is None else max_wait,
                ),
                retry=retry_if_exception(is_transient_error),
                before_sleep=lambda state: logger.warning(
                    "%s intento %s falló: %s",
                    func.__name__,
                    state.attempt_number,
                    state.outcome.exception(),
                ),
                reraise=False,
            )
            try:
                async for attempt in retrying:
                    with attempt:
                        return await func(*args, **kwargs)
            except RetryError as exc:
                error = exc.last_attempt.exception()
            except Exception as exc:
                error = exc
            return await fallback(error, *args, **kwargs)

        return wrapper

    return decorator
