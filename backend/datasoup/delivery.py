"""Telegram Bot API transport."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import httpx

from datasoup.config import Settings
from datasoup.errors import ConfigError, DeliveryError
from datasoup.notifications import NotificationMessage

logger = logging.getLogger(__name__)


def resolve_token(settings: Settings) -> str:
    """Bot token from ``TELEGRAM_TOKEN``, else from the legacy token file."""
    if settings.TELEGRAM_TOKEN:
        return settings.TELEGRAM_TOKEN.strip()
    token_path = Path(settings.TELEGRAM_TOKEN_FILE)
    try:
        token = token_path.read_text(encoding="utf-8").strip()
    except OSError as exc:
        raise ConfigError(
            f"TELEGRAM_TOKEN not set and token file {token_path} not readable"
        ) from exc
    if not token:
        raise ConfigError(f"token file {token_path} is empty")
    return token


@dataclass(frozen=True)
class DeliveryResult:
    ok: bool
    status_code: int
    description: str | None = None
    message_id: int | None = None


class TelegramTransport:
    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        token: str,
        api_base: str = "https://api.telegram.org",
        timeout: float = 30.0,
    ) -> None:
        self.client = client
        self.endpoint = f"{api_base.rstrip('/')}/bot{token}"
        self.timeout = timeout

    async def check(self) -> dict[str, Any]:
        """Call ``getMe``; raises :class:`DeliveryError` if the bot is unusable."""
        try:
            resp = await self.client.get(f"{self.endpoint}/getMe", timeout=self.timeout)
            data = resp.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise DeliveryError(f"Telegram getMe failed: {type(exc).__name__}") from exc
        if resp.status_code != 200 or not data.get("ok"):
            raise DeliveryError(
                f"Telegram getMe rejected (HTTP {resp.status_code}): {data.get('description')}"
            )
        bot = data.get("result") or {}
        logger.info("Telegram bot ready", extra={"bot_username": bot.get("username")})
        return bot

    async def send(self, message: NotificationMessage) -> DeliveryResult:
        """Post ``message``; failures are logged and reported, never raised."""
        try:
            resp = await self.client.post(
                f"{self.endpoint}/sendMessage",
                json=message.to_payload(),
                timeout=self.timeout,
            )
        except httpx.HTTPError as exc:
            logger.error("Telegram sendMessage failed: %s: %s", type(exc).__name__, exc)
            return DeliveryResult(ok=False, status_code=0, description=type(exc).__name__)

        try:
            data = resp.json()
        except ValueError:
            data = {}
        ok = resp.status_code == 200 and bool(data.get("ok"))
        result = DeliveryResult(
            ok=ok,
            status_code=resp.status_code,
            description=data.get("description"),
            message_id=(data.get("result") or {}).get("message_id"),
        )
        if ok:
            logger.info("Notification delivered", extra={"message_id": result.message_id})
        else:
            logger.error(
                "Telegram rejected notification (HTTP %s): %s", resp.status_code, result.description,
                extra={"status_code": resp.status_code},
            )
        return result
