"""
Шина команд между планировщиком и Telegram-частью бота.

Две неограниченные очереди (к планировщику и к Telegram-части) и общий
цикл обработки команд. Синхронный запрос состояния реализован через
одноразовый Future, который получатель заполняет ровно один раз.
"""

import asyncio
from typing import Any, Awaitable, Callable, Dict, Optional, Set, Type

from ..types import ChannelState
from .commands import GetChannelState, MessagingCommand, SchedulerCommand
from .logger import bot_logger, get_logger, log_error

logger = get_logger('bus')

Handler = Callable[[Any], Awaitable[None]]


class DeliveryError(Exception):
    """Получатель не ответил на запрос."""


class CommandBus:
    """Пара очередей команд и синхронный запрос состояния чата."""

    def __init__(self, query_timeout: Optional[float] = 30.0):
        self.query_timeout = query_timeout
        self.scheduler_queue: 'asyncio.Queue[SchedulerCommand]' = asyncio.Queue()
        self.messaging_queue: 'asyncio.Queue[MessagingCommand]' = asyncio.Queue()

    def send_to_scheduler(self, command: SchedulerCommand) -> None:
        self.scheduler_queue.put_nowait(command)

    def send_to_messaging(self, command: MessagingCommand) -> None:
        self.messaging_queue.put_nowait(command)

    async def query_channel_state(self, chat_id: int) -> ChannelState:
        """Запрашивает состояние чата у Telegram-части и ждёт ответа."""
        reply = asyncio.get_running_loop().create_future()
        self.send_to_messaging(GetChannelState(chat_id=chat_id, reply=reply))
        try:
            return await asyncio.wait_for(reply, self.query_timeout)
        except asyncio.TimeoutError as e:
            raise DeliveryError(
                f"Не дождались состояния чата {chat_id} за {self.query_timeout}с"
            ) from e


class CommandLoop:
    """
    Цикл обработки очереди команд.

    Каждая команда обрабатывается в отдельной задаче своим обработчиком.
    Завершённые задачи периодически вычищаются. При остановке новые команды
    из очереди больше не ожидаются, уже поставленные дообрабатываются,
    после чего цикл дожидается всех задач.
    """

    def __init__(self, name: str, queue: asyncio.Queue, handlers: Dict[Type, Handler]):
        self.name = name
        self.queue = queue
        self.handlers = handlers
        self._tasks: Set[asyncio.Task] = set()
        self._stop = asyncio.Event()

    @property
    def open_tasks(self) -> int:
        return sum(1 for task in self._tasks if not task.done())

    def stop(self) -> None:
        """Просит цикл завершиться."""
        self._stop.set()

    async def run(self) -> None:
        logger.info(f"▶️ Цикл команд '{self.name}' запущен")
        stop_waiter = asyncio.ensure_future(self._stop.wait())
        try:
            while not self._stop.is_set():
                getter = asyncio.ensure_future(self.queue.get())
                await asyncio.wait({getter, stop_waiter}, return_when=asyncio.FIRST_COMPLETED)

                if getter.done():
                    self._spawn(getter.result())
                else:
                    getter.cancel()

                # Чистим завершённые задачи, чтобы не копить память
                self._tasks = {task for task in self._tasks if not task.done()}
        finally:
            stop_waiter.cancel()

        logger.info(f"⏹ Останавливаем цикл команд '{self.name}'...")
        await self.drain()
        logger.info(f"✅ Цикл команд '{self.name}' остановлен")

    async def drain(self) -> None:
        """Обрабатывает уже поставленные команды и ждёт все открытые задачи."""
        while not self.queue.empty():
            self._spawn(self.queue.get_nowait())

        logger.debug(f"{self.open_tasks} открытых задач в цикле '{self.name}'")
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks.clear()

    def _spawn(self, command: Any) -> None:
        task = asyncio.create_task(self._handle(command))
        self._tasks.add(task)

    async def _handle(self, command: Any) -> None:
        command_name = type(command).__name__
        chat_id = getattr(command, 'chat_id', 0)
        reply = getattr(command, 'reply', None)
        try:
            handler = self.handlers.get(type(command))
            if handler is None:
                raise TypeError(f"Нет обработчика для команды {command_name} в цикле '{self.name}'")
            await handler(command)
            bot_logger.log_command_processed(command_name, chat_id)
        except Exception as e:
            log_error(e, {'handler_name': command_name, 'chat_id': chat_id})
        finally:
            if reply is not None and not reply.done():
                reply.set_exception(
                    DeliveryError(f"Команда {command_name} для чата {chat_id} осталась без ответа")
                )
