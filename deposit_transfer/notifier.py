"""
Notifications

User-facing messages about transfers: insufficient balance skips, transfer
initiation and completion, and failures. Delivery problems are logged and
never interrupt the transfer pipeline.
"""

import asyncio
from typing import Any, Iterable, List, Optional

import aiohttp
from loguru import logger


class Notifier:
    """Notifier interface"""

    async def notify(self, message: str, **fields: Any):
        raise NotImplementedError


class LogNotifier(Notifier):
    """Write notifications to the log"""

    async def notify(self, message: str, **fields: Any):
        logger.bind(notification=True, **fields).info(f"🔔 {message}")


class WebhookNotifier(Notifier):
    """
    POST notifications to a webhook (Slack-compatible "text" payload)
    """

    def __init__(self, url: str, timeout: float = 10.0):
        """
        Initialize webhook notifier

        Args:
            url: Webhook URL
            timeout: Request timeout in seconds
        """
        self.url = url
        self.timeout = timeout
        self._session: Optional[aiohttp.ClientSession] = None

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout)
            )
        return self._session

    async def notify(self, message: str, **fields: Any):
        payload = {'text': message}
        payload.update({k: str(v) for k, v in fields.items()})

        try:
            session = await self._get_session()
            async with session.post(self.url, json=payload) as response:
                if response.status >= 400:
                    body = await response.text()
                    logger.warning(f"Webhook notification rejected ({response.status}): {body[:200]}")
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.warning(f"Webhook notification failed: {e}")

    async def close(self):
        if self._session and not self._session.closed:
            await self._session.close()


class CompositeNotifier(Notifier):
    """Fan out notifications to several notifiers"""

    def __init__(self, notifiers: Iterable[Notifier]):
        self.notifiers: List[Notifier] = list(notifiers)

    async def notify(self, message: str, **fields: Any):
        for notifier in self.notifiers:
            await notifier.notify(message, **fields)

    async def close(self):
        for notifier in self.notifiers:
            if hasattr(notifier, 'close'):
                await notifier.close()
