"""
Telegram transport built on aiogram.

Converts incoming messages and button presses into InboundEvents, hands
them to the Dispatcher, and renders the returned replies with inline
keyboards, reply-keyboard menus and document uploads. The reminder loop
runs as a background task next to long polling.
"""

import asyncio
import contextlib
import logging
from typing import Optional, Union

from aiogram import Bot, F, Router
from aiogram import Dispatcher as AiogramDispatcher
from aiogram.exceptions import TelegramAPIError
from aiogram.types import (
    BufferedInputFile,
    CallbackQuery,
    ForceReply,
    InlineKeyboardButton,
    InlineKeyboardMarkup,
    KeyboardButton,
    Message,
    ReplyKeyboardMarkup,
)

from repairdesk.bot.app import RepairDesk, build_desk
from repairdesk.bot.dispatcher import Reply
from repairdesk.config import AppConfig, settings
from repairdesk.errors import DeliveryFailure
from repairdesk.schemas.request_schema import EventKind, InboundEvent, NotificationIntent
from repairdesk.utils import split_message

logger = logging.getLogger(__name__)

Markup = Union[InlineKeyboardMarkup, ReplyKeyboardMarkup, ForceReply]


class TelegramNotifier:
    """Sends notification intents as private messages, bounded by a timeout."""

    def __init__(self, bot: Bot, timeout_sec: float, max_message_length: int = 4096) -> None:
        self._bot = bot
        self._timeout = timeout_sec
        self._max_length = max_message_length

    async def notify(self, intent: NotificationIntent) -> None:
        try:
            for chunk in split_message(intent.text, self._max_length):
                await asyncio.wait_for(
                    self._bot.send_message(intent.target_user_id, chunk),
                    timeout=self._timeout,
                )
        except (TelegramAPIError, asyncio.TimeoutError) as exc:
            logger.error("Failed to notify user %s: %s", intent.target_user_id, exc)
            raise DeliveryFailure(f"Could not deliver to {intent.target_user_id}") from exc


def _markup(reply: Reply) -> Optional[Markup]:
    if reply.buttons:
        return InlineKeyboardMarkup(inline_keyboard=[
            [InlineKeyboardButton(text=b.text, callback_data=b.callback_data) for b in row]
            for row in reply.buttons
        ])
    if reply.menu:
        return ReplyKeyboardMarkup(
            keyboard=[[KeyboardButton(text=label) for label in row] for row in reply.menu],
            resize_keyboard=True,
        )
    if reply.force_reply:
        return ForceReply()
    return None


async def send_replies(bot: Bot, chat_id: int, replies: list[Reply]) -> None:
    for reply in replies:
        if reply.document is not None:
            await bot.send_document(
                chat_id,
                BufferedInputFile(reply.document.content, filename=reply.document.filename),
                caption=reply.document.caption,
            )
        else:
            await bot.send_message(chat_id, reply.text, reply_markup=_markup(reply))


def _command_name(text: str) -> str:
    """``/start@my_bot arg`` -> ``start``"""
    return text[1:].split(maxsplit=1)[0].split("@", 1)[0] if len(text) > 1 else ""


def build_router(desk: RepairDesk) -> Router:
    router = Router(name="repairdesk")

    @router.message(F.text.startswith("/"))
    async def on_command(message: Message) -> None:
        if message.from_user is None:
            return
        event = InboundEvent(
            conversation_id=message.chat.id,
            user_id=message.from_user.id,
            kind=EventKind.COMMAND,
            payload=_command_name(message.text),
        )
        await send_replies(message.bot, message.chat.id, await desk.dispatcher.handle(event))

    @router.message(F.text)
    async def on_text(message: Message) -> None:
        if message.from_user is None:
            return
        event = InboundEvent(
            conversation_id=message.chat.id,
            user_id=message.from_user.id,
            kind=EventKind.FREE_TEXT,
            payload=message.text,
        )
        await send_replies(message.bot, message.chat.id, await desk.dispatcher.handle(event))

    @router.callback_query(F.data)
    async def on_callback(query: CallbackQuery) -> None:
        if query.message is None:
            await query.answer()
            return
        event = InboundEvent(
            conversation_id=query.message.chat.id,
            user_id=query.from_user.id,
            kind=EventKind.CALLBACK_ACTION,
            payload=query.data,
        )
        replies = await desk.dispatcher.handle(event)
        await query.answer()
        await send_replies(query.bot, query.message.chat.id, replies)

    return router


async def stop_task(task: asyncio.Task) -> None:
    """Cancel a background task and wait for it to unwind."""
    task.cancel()
    with contextlib.suppress(asyncio.CancelledError):
        await task


async def run_polling(config: AppConfig = settings) -> None:
    """Start long polling and the reminder loop until interrupted."""
    if not config.bot.telegram_token:
        raise RuntimeError("TELEGRAM_BOT_TOKEN is not set")

    bot = Bot(token=config.bot.telegram_token)
    notifier = TelegramNotifier(
        bot, config.bot.notify_timeout_sec, config.bot.max_message_length
    )
    desk = build_desk(notifier, config)

    dp = AiogramDispatcher()
    dp.include_router(build_router(desk))

    reminder_task = asyncio.create_task(
        desk.scheduler.run_forever(config.timing.scheduler_poll_sec)
    )
    logger.info("Bot '%s' polling started", config.bot_name)
    try:
        await dp.start_polling(bot)
    finally:
        await stop_task(reminder_task)
        await bot.session.close()
        logger.info("Bot '%s' stopped", config.bot_name)
