import asyncio
import functools
import logging

import httpx

from errors import ProviderUnavailable

logger = logging.getLogger(__name__)


def with_retry(max_retries=2, delay=0.5):
    """Retries an async provider call on transport errors (timeouts, connection resets)."""
    def decorator(func):
        @functools.wraps(func)
        async def wrapper(self, *args, **kwargs):
            attempts = max(1, getattr(self, 'max_retries', max_retries))
            last_error = None
            for attempt in range(attempts):
                try:
                    return await func(self, *args, **kwargs)
                except httpx.TransportError as e:
                    last_error = e
                    logger.warning(
                        f"retry_attempt - function: {func.__name__}, attempt: {attempt + 1}/{attempts}, error: {e!r}"
                    )
                    if attempt < attempts - 1:
                        await asyncio.sleep(delay * (attempt + 1))
            logger.error(f"max_retries_reached - function: {func.__name__}, error: {last_error!r}")
            raise ProviderUnavailable(f"Provider request failed: {last_error.__class__.__name__}") from last_error
        return wrapper
    return decorator


class ProviderClient:
    """
    Base for outbound provider APIs.

    A fresh ``httpx.AsyncClient`` is opened per call: async Flask views run
    each request on its own event loop, so a pooled client cannot be shared.
    The timeout budget is split across retry attempts so a whole call stays
    bounded by ``timeout_seconds``.
    """

    def __init__(self, base_url, timeout_seconds=12.0, max_retries=2, transport=None):
        self.base_url = (base_url or '').rstrip('/')
        self.max_retries = max(1, int(max_retries))
        self.timeout = httpx.Timeout(float(timeout_seconds) / self.max_retries)
        self.transport = transport

    def _client(self):
        return httpx.AsyncClient(base_url=self.base_url, timeout=self.timeout, transport=self.transport)

    async def _send(self, method, path, **kwargs):
        async with self._client() as client:
            return await client.request(method, path, **kwargs)

    @staticmethod
    def _json(response):
        try:
            data = response.json()
        except ValueError as e:
            raise ProviderUnavailable(f"Invalid provider response ({response.status_code})") from e
        if not isinstance(data, dict):
            raise ProviderUnavailable(f"Unexpected provider response ({response.status_code})")
        return data
