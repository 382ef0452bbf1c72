"""
Telegram-часть бота: команды шины, отправка и правка сообщений задачи дня.
"""

import asyncio
from collections import defaultdict
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, Optional, Type

from aiogram import Bot, Dispatcher
from aiogram.exceptions import TelegramAPIError, TelegramBadRequest

from ..types import ChannelState, MessageRef
from .bus import CommandBus, CommandLoop, Handler
from .commands import AnnounceProblem, GetChannelState, UpdateSolvingStatus
from .logger import get_logger
from .storage import ChannelStore
from .verdicts import render_status_message

logger = get_logger('messaging')


class MessagingConnectionLost(Exception):
    """Поллинг Telegram завершился без запроса на остановку."""


class MessagingService:
    """Владелец состояния чатов. Все изменения состояния проходят через него."""

    def __init__(self, bot: Bot, store: ChannelStore):
        self.bot = bot
        self.store = store
        self._locks: Dict[int, asyncio.Lock] = defaultdict(asyncio.Lock)

    def handlers(self) -> Dict[Type, Handler]:
        return {
            GetChannelState: self.get_channel_state,
            AnnounceProblem: self.announce_problem,
            UpdateSolvingStatus: self.update_solving_status,
        }

    @asynccontextmanager
    async def edit_state(self, chat_id: int) -> AsyncIterator[ChannelState]:
        """
        Читает состояние чата и сохраняет его после выхода из блока.

        Если блок завершился исключением, состояние не сохраняется.
        """
        async with self._locks[chat_id]:
            state = await self.store.get(chat_id)
            yield state
            await self.store.put(chat_id, state)

    async def get_channel_state(self, command: GetChannelState) -> None:
        state = await self.store.get(command.chat_id)
        if not command.reply.done():
            command.reply.set_result(state)

    async def announce_problem(self, command: AnnounceProblem) -> None:
        """Публикует задачу дня; предыдущая задача уходит в архив."""
        async with self.edit_state(command.chat_id) as state:
            text = render_status_message(state, command.problem, {})
            sent = await self.bot.send_message(command.chat_id, text)
            state.set_daily_problem(
                command.problem,
                MessageRef(chat_id=sent.chat.id, message_id=sent.message_id, text=sent.text),
            )
        logger.info(f"📣 Задача дня {command.problem.identifier} опубликована в чате {command.chat_id}")

    async def update_solving_status(self, command: UpdateSolvingStatus) -> None:
        """
        Перерисовывает все отслеживаемые сообщения чата.

        Сообщение правится только если текст изменился; состояние сохраняется
        только если была хотя бы одна правка.
        """
        async with self._locks[command.chat_id]:
            state = await self.store.get(command.chat_id)
            edited = 0
            for problem, message in state.tracked_messages():
                new_text = render_status_message(state, problem, command.status.get(problem, {}))
                if message.text is None:
                    logger.error(
                        f"❌ У сообщения {message.message_id} в чате {message.chat_id} нет текста"
                    )
                elif message.text == new_text:
                    continue

                if await self._edit_message(message, new_text):
                    edited += 1

            if edited:
                await self.store.put(command.chat_id, state)
                logger.info(f"✏️ Обновлено сообщений в чате {command.chat_id}: {edited}")

    async def _edit_message(self, message: MessageRef, new_text: str) -> bool:
        try:
            result = await self.bot.edit_message_text(
                text=new_text,
                chat_id=message.chat_id,
                message_id=message.message_id,
            )
        except TelegramBadRequest as e:
            if 'message is not modified' not in str(e):
                logger.error(f"❌ Не удалось обновить сообщение {message.message_id}: {e}")
                return False
            result = None
        except TelegramAPIError as e:
            logger.error(f"❌ Ошибка Telegram при обновлении сообщения {message.message_id}: {e}")
            return False

        message.text = getattr(result, 'text', None) or new_text
        return True


class MessagingSubsystem:
    """Поллинг Telegram вместе с циклом команд шины."""

    def __init__(self, bot: Bot, dispatcher: Dispatcher, bus: CommandBus, service: MessagingService):
        self.bot = bot
        self.dispatcher = dispatcher
        self.bus = bus
        self.service = service
        self.command_loop = CommandLoop('telegram', bus.messaging_queue, service.handlers())
        self._stop = asyncio.Event()

    def stop(self) -> None:
        """Просит подсистему завершиться."""
        self._stop.set()

    async def run(self) -> None:
        logger.info("🚀 Запуск Telegram бота...")
        loop_task = asyncio.create_task(self.command_loop.run())
        polling_task = asyncio.create_task(
            self.dispatcher.start_polling(self.bot, handle_signals=False, close_bot_session=False)
        )
        stop_task = asyncio.create_task(self._stop.wait())
        logger.info("✅ Telegram бот запущен")

        lost: Optional[BaseException] = None
        try:
            await asyncio.wait({polling_task, stop_task}, return_when=asyncio.FIRST_COMPLETED)
            if polling_task.done() and not self._stop.is_set():
                lost = polling_task.exception() if not polling_task.cancelled() else None
                logger.error(f"❌ Telegram бот завершился с ошибкой: {lost!r}")
            else:
                logger.info("⏹ Останавливаем Telegram бота...")
                # Сначала перестаём принимать команды из чатов
                if not polling_task.done():
                    try:
                        await self.dispatcher.stop_polling()
                    except RuntimeError:
                        # Поллинг ещё не успел стартовать
                        polling_task.cancel()
                    await asyncio.gather(polling_task, return_exceptions=True)
        finally:
            stop_task.cancel()
            self.command_loop.stop()
            await loop_task

        if polling_task.done() and not self._stop.is_set():
            raise MessagingConnectionLost("Поллинг Telegram завершился неожиданно") from lost
        logger.info("✅ Telegram бот остановлен")
