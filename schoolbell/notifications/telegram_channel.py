"""Telegram implementation of the NotificationChannel protocol."""

from __future__ import annotations

import logging

import telegram
from telegram.constants import MessageLimit, ParseMode
from telegram.error import BadRequest

logger = logging.getLogger(__name__)


def split_message(text: str, limit: int = MessageLimit.MAX_TEXT_LENGTH) -> list[str]:
    """Split *text* into chunks of at most *limit* characters.

    Chunks end on a line break where possible; a single line longer than
    *limit* is cut at the limit.
    """
    chunks: list[str] = []
    while len(text) > limit:
        cut = text.rfind("\n", 0, limit + 1)
        if cut <= 0:
            chunks.append(text[:limit])
            text = text[limit:]
        else:
            chunks.append(text[:cut])
            text = text[cut + 1 :]
    if text or not chunks:
        chunks.append(text)
    return chunks


class TelegramChannel:
    """Sends notifications via the Telegram Bot API."""

    def __init__(self, bot: telegram.Bot) -> None:
        self._bot = bot

    @property
    def name(self) -> str:
        return "telegram"

    async def send(self, user_id: str, message: str) -> bool:
        """Send a Markdown message, split into several if over the API limit."""
        try:
            for chunk in split_message(message):
                await self._send_chunk(int(user_id), chunk)
            return True
        except Exception:
            logger.exception("TelegramChannel.send failed for user_id=%s", user_id)
            return False

    async def _send_chunk(self, chat_id: int, text: str) -> None:
        try:
            await self._bot.send_message(chat_id=chat_id, text=text, parse_mode=ParseMode.MARKDOWN)
        except BadRequest as exc:
            # Usually an entity cut in half by splitting; resend as plain text
            logger.warning("Markdown rejected for chat %s (%s), sending plain text", chat_id, exc)
            await self._bot.send_message(chat_id=chat_id, text=text)
