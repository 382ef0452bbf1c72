"""
Планировщик ежедневной задачи и обновления статусов решения.
"""

import asyncio
import uuid
from typing import Awaitable, Callable, Dict, Optional, Set

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.base import BaseTrigger
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from .bus import CommandBus, CommandLoop
from .codeforces import CodeforcesClient
from .commands import AnnounceProblem, StartDailyMessages, UpdateSolvingStatus
from .logger import bot_logger, get_logger, log_error
from .selection import find_daily_problem
from .verdicts import collect_solving_status

logger = get_logger('scheduler')

ANNOUNCER = 'announcer'
UPDATER = 'updater'


class DailyScheduler:
    """
    Единственный владелец движка заданий.

    Для каждого чата держит не больше одного задания каждой роли:
    announcer публикует задачу дня по cron, updater периодически
    обновляет статусы решения.
    """

    def __init__(
        self,
        bus: CommandBus,
        client: CodeforcesClient,
        messages_cron: str = '30 7 * * *',
        update_interval_minutes: int = 5,
        job_timeout: Optional[float] = 600.0,
        engine: Optional[AsyncIOScheduler] = None,
    ):
        self.bus = bus
        self.client = client
        self.messages_cron = messages_cron
        self.update_interval_minutes = update_interval_minutes
        self.job_timeout = job_timeout
        self.engine = engine or AsyncIOScheduler()
        self._jobs: Dict[int, Dict[str, str]] = {}
        self._jobs_lock = asyncio.Lock()
        self._job_tasks: Set[asyncio.Task] = set()
        self.command_loop = CommandLoop(
            'scheduler',
            bus.scheduler_queue,
            {StartDailyMessages: self.start_daily_messages},
        )

    def jobs_for(self, chat_id: int) -> Dict[str, str]:
        """Текущие задания чата: роль -> id задания."""
        return dict(self._jobs.get(chat_id, {}))

    def _announcer_trigger(self) -> BaseTrigger:
        return CronTrigger.from_crontab(self.messages_cron)

    def _updater_trigger(self) -> BaseTrigger:
        return IntervalTrigger(minutes=self.update_interval_minutes)

    async def start_daily_messages(self, command: StartDailyMessages) -> None:
        """(Пере)устанавливает оба задания чата, снимая предыдущие."""
        async with self._jobs_lock:
            self._install(command.chat_id, ANNOUNCER, self._announcer_trigger())
            self._install(command.chat_id, UPDATER, self._updater_trigger())
        logger.info(f"📅 Ежедневные сообщения зарегистрированы для чата {command.chat_id}")

    def _install(self, chat_id: int, role: str, trigger: BaseTrigger) -> None:
        chat_jobs = self._jobs.setdefault(chat_id, {})

        old_job_id = chat_jobs.pop(role, None)
        if old_job_id is not None:
            try:
                self.engine.remove_job(old_job_id)
            except JobLookupError:
                logger.warning(f"Задание {old_job_id} уже отсутствует в движке")

        job = self.engine.add_job(
            self._fire,
            trigger=trigger,
            args=[role, chat_id],
            id=f"{role}:{chat_id}:{uuid.uuid4().hex}",
            coalesce=True,
            max_instances=1,
            misfire_grace_time=60,
        )
        chat_jobs[role] = job.id
        logger.debug(f"Задание {role} для чата {chat_id}: {job.id}")

    async def _fire(self, role: str, chat_id: int) -> None:
        """Срабатывание задания: работа уходит в отдельную задачу, движок не ждёт."""
        bot_logger.log_job_fired(role, chat_id)
        work = self.announce if role == ANNOUNCER else self.update
        self._spawn(role, chat_id, work)

    def _spawn(self, role: str, chat_id: int, work: Callable[[int], Awaitable[None]]) -> asyncio.Task:
        task = asyncio.create_task(self._run_job(role, chat_id, work))
        self._job_tasks.add(task)
        task.add_done_callback(self._job_tasks.discard)
        return task

    async def _run_job(self, role: str, chat_id: int, work: Callable[[int], Awaitable[None]]) -> None:
        try:
            await asyncio.wait_for(work(chat_id), self.job_timeout)
        except Exception as e:
            log_error(e, {'job_role': role, 'chat_id': chat_id})

    async def announce(self, chat_id: int) -> None:
        """Выбирает новую задачу дня и отправляет её в Telegram-часть."""
        state = await self.bus.query_channel_state(chat_id)
        logger.info(f"🎲 Готовим задачу дня для чата {chat_id}")
        problem = await find_daily_problem(state, self.client, chat_id)
        logger.info(f"📤 Отправляем задачу дня {problem.identifier} в чат {chat_id}")
        self.bus.send_to_messaging(AnnounceProblem(chat_id=chat_id, problem=problem))

    async def update(self, chat_id: int) -> None:
        """Собирает свежие вердикты для всех отслеживаемых задач чата."""
        state = await self.bus.query_channel_state(chat_id)
        if state.current_daily_problem is None:
            logger.debug(f"Обновление без задачи дня в чате {chat_id} пропущено")
            return

        status = await collect_solving_status(state, self.client, state.tracked_problems())
        self.bus.send_to_messaging(UpdateSolvingStatus(chat_id=chat_id, status=status))

    def stop(self) -> None:
        """Просит подсистему завершиться."""
        self.command_loop.stop()

    async def run(self) -> None:
        """Запускает движок и обрабатывает команды до остановки."""
        logger.info("🚀 Запуск планировщика...")
        self.engine.start()
        logger.info("✅ Планировщик запущен")
        try:
            await self.command_loop.run()
        finally:
            await self.shutdown()

    async def shutdown(self) -> None:
        # Новые срабатывания не нужны, пока дожидаемся уже запущенных
        if self.engine.running:
            self.engine.pause()

        logger.debug(f"{len(self._job_tasks)} открытых заданий в планировщике")
        if self._job_tasks:
            await asyncio.gather(*list(self._job_tasks), return_exceptions=True)

        if self.engine.running:
            self.engine.shutdown(wait=False)
        logger.info("⏹ Планировщик остановлен")
