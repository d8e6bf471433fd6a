"""Rate limit handling for the remote document store."""

import asyncio
import logging
from typing import Callable, Any, Optional
from functools import wraps

import httpx

from services.document_store.errors import DocumentStoreError

logger = logging.getLogger(__name__)

DEFAULT_RETRY_AFTER = 1.0


def handle_rate_limit(max_retries: int = 3):
    """
    Decorator to handle document store rate limits with automatic retry.

    The store answers 429 when rate limited, along with a Retry-After
    header indicating how long to wait. Any other failure is re-raised
    immediately.

    Args:
        max_retries: Maximum number of retry attempts

    Returns:
        Decorated coroutine function that handles rate limits
    """
    def decorator(func: Callable) -> Callable:
        @wraps(func)
        async def wrapper(*args, **kwargs) -> Any:
            retries = 0

            while True:
                try:
                    return await func(*args, **kwargs)

                except DocumentStoreError as e:
                    if not e.is_rate_limited:
                        raise

                    retries += 1
                    if retries > max_retries:
                        logger.error(f"Max retries ({max_retries}) exceeded for rate limit")
                        raise

                    retry_after = e.retry_after if e.retry_after is not None else DEFAULT_RETRY_AFTER

                    logger.warning(
                        f"Rate limit hit. Waiting {retry_after} seconds before retry "
                        f"(attempt {retries}/{max_retries})"
                    )

                    await asyncio.sleep(retry_after)

        return wrapper
    return decorator


def extract_retry_after(response: httpx.Response) -> Optional[float]:
    """
    Extract retry-after duration from a 429 response.

    Args:
        response: Response returned by the document store

    Returns:
        Number of seconds to wait before retrying, or None if not given
    """
    retry_after = response.headers.get('Retry-After')
    if retry_after:
        try:
            return float(retry_after)
        except ValueError:
            pass

    try:
        body = response.json()
    except ValueError:
        return None

    if isinstance(body, dict) and 'retry_after' in body:
        try:
            return float(body['retry_after'])
        except (TypeError, ValueError):
            return None
    return None
