"""
Telegram alert delivery.

Alerts are posted to the Bot API ``sendMessage`` method with aiohttp.
Delivery is best effort: failures are logged and never raised, and
``dispatch`` returns immediately so ingestion is never held up by the network.
"""

import asyncio
from typing import Optional, Set

import aiohttp

from src.utils.logging import get_logger

from .config import TelegramConfig

logger = get_logger(__name__)

TELEGRAM_API_BASE = "https://api.telegram.org"


class TelegramNotifier:
    """Fire-and-forget Telegram sender."""

    def __init__(
        self,
        bot_token: str,
        chat_id: str,
        *,
        proxy: Optional[str] = None,
        parse_mode: Optional[str] = "Markdown",
        timeout: float = 10.0,
        api_base: str = TELEGRAM_API_BASE,
    ):
        self.bot_token = bot_token
        self.chat_id = chat_id
        self.proxy = proxy
        self.parse_mode = parse_mode
        self.timeout = aiohttp.ClientTimeout(total=timeout)
        self.api_base = api_base.rstrip("/")

        self.session: Optional[aiohttp.ClientSession] = None
        self._pending: Set[asyncio.Task] = set()
        self.sent_count = 0
        self.failed_count = 0

    @classmethod
    def from_config(cls, config: TelegramConfig) -> "TelegramNotifier":
        return cls(config.bot_token, config.chat_id, proxy=config.proxy_url)

    @property
    def url(self) -> str:
        return f"{self.api_base}/bot{self.bot_token}/sendMessage"

    def _get_session(self) -> aiohttp.ClientSession:
        if self.session is None or self.session.closed:
            self.session = aiohttp.ClientSession(timeout=self.timeout)
        return self.session

    async def send(self, text: str) -> bool:
        """Post one message. Returns True when Telegram accepted it."""
        payload = {"chat_id": self.chat_id, "text": text}
        if self.parse_mode:
            payload["parse_mode"] = self.parse_mode

        try:
            session = self._get_session()
            async with session.post(self.url, json=payload, proxy=self.proxy) as response:
                result = await response.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            self.failed_count += 1
            logger.error(
                f"Failed to send Telegram alert: {type(e).__name__}: {e}",
                extra={"error_type": type(e).__name__, "error_details": str(e)},
            )
            return False

        if not isinstance(result, dict) or not result.get("ok"):
            self.failed_count += 1
            description = result.get("description") if isinstance(result, dict) else result
            logger.error(
                f"Telegram API rejected alert: {description}",
                extra={"status": response.status},
            )
            return False

        self.sent_count += 1
        logger.debug("Telegram alert delivered")
        return True

    def dispatch(self, message: str) -> None:
        """Schedule delivery of ``message`` on the running loop without waiting."""
        task = asyncio.get_running_loop().create_task(self.send(message))
        self._pending.add(task)
        task.add_done_callback(self._on_done)

    def _on_done(self, task: asyncio.Task) -> None:
        self._pending.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            self.failed_count += 1
            logger.error(
                f"Unexpected error delivering Telegram alert: {type(error).__name__}: {error}",
                exc_info=error,
            )

    @property
    def pending(self) -> int:
        return len(self._pending)

    async def close(self, timeout: float = 5.0) -> None:
        """Give in-flight alerts a moment to finish, then close the HTTP session."""
        if self._pending:
            _, not_done = await asyncio.wait(set(self._pending), timeout=timeout)
            for task in not_done:
                task.cancel()
            if not_done:
                logger.warning(f"Dropped {len(not_done)} undelivered alerts on shutdown")

        if self.session is not None and not self.session.closed:
            await self.session.close()
        self.session = None
