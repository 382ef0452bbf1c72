"""
Точка входа для запуска бота: python -m daily_bot
"""

import argparse
import asyncio
import signal
import sys
from typing import Any, List, Optional, Tuple

from apscheduler.triggers.cron import CronTrigger

from .bot import create_bot, create_dispatcher
from .config import Settings
from .services.bus import CommandBus
from .services.codeforces import CodeforcesClient
from .services.logger import bot_logger, get_logger
from .services.messaging import MessagingConnectionLost, MessagingService, MessagingSubsystem
from .services.scheduler import DailyScheduler
from .services.storage import create_store

logger = get_logger('main')


def parse_args(settings: Settings, argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Аргументы командной строки; значения по умолчанию берутся из окружения."""
    parser = argparse.ArgumentParser(prog='daily_bot', description='Бот «задача дня» для Codeforces')
    parser.add_argument('-v', '--verbose', action='count', default=0,
                        help='Подробное логирование (debug)')
    parser.add_argument('--messages-cron', default=settings.messages_cron,
                        help='Расписание задачи дня в формате crontab (5 полей)')
    parser.add_argument('--update-interval', type=int, default=settings.update_interval_minutes,
                        help='Период обновления статусов, минуты')
    parser.add_argument('--storage', choices=['memory', 'json'], default=settings.storage_backend,
                        help='Хранилище состояния чатов')
    parser.add_argument('--data-file', default=settings.data_file,
                        help='Файл JSON-хранилища')
    args = parser.parse_args(argv)

    try:
        CronTrigger.from_crontab(args.messages_cron)
    except ValueError as e:
        parser.error(f"Некорректное расписание --messages-cron: {e}")
    if args.update_interval < 1:
        parser.error("--update-interval должен быть не меньше 1")
    return args


async def stop_in_order(stages: List[Tuple[asyncio.Task, Any]], grace_period: float) -> List[asyncio.Task]:
    """
    Останавливает подсистемы по одной в заданном порядке.

    Следующая подсистема получает stop() только после завершения предыдущей,
    поэтому команды, которые предыдущая успела отправить, ещё будут обработаны.
    Все этапы вместе ограничены grace_period. Возвращает задачи, которые не
    завершились вовремя.
    """
    loop = asyncio.get_running_loop()
    deadline = loop.time() + grace_period
    still_running: List[asyncio.Task] = []

    for task, subsystem in stages:
        subsystem.stop()
        if task.done():
            continue
        _, pending = await asyncio.wait({task}, timeout=max(0.0, deadline - loop.time()))
        still_running.extend(pending)

    return still_running


async def run(settings: Settings, args: argparse.Namespace) -> int:
    """Запускает обе подсистемы и координирует их остановку."""
    bus = CommandBus(query_timeout=settings.query_timeout)
    codeforces = CodeforcesClient(
        base_url=settings.codeforces_api_base,
        min_interval=settings.codeforces_min_interval,
    )
    store = create_store(args.storage, args.data_file)
    bot = create_bot(settings.bot_token)
    messaging_service = MessagingService(bot, store)
    dispatcher = create_dispatcher(bus, messaging_service, codeforces)

    scheduler = DailyScheduler(
        bus,
        codeforces,
        messages_cron=args.messages_cron,
        update_interval_minutes=args.update_interval,
        job_timeout=settings.job_timeout,
    )
    messaging = MessagingSubsystem(bot, dispatcher, bus, messaging_service)

    shutdown_requested = asyncio.Event()

    def request_shutdown(sig: Optional[signal.Signals] = None):
        if sig is not None:
            logger.info(f"Получен сигнал {sig.name}, завершаем работу...")
        shutdown_requested.set()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, request_shutdown, sig)
        except NotImplementedError:
            # Windows: остаётся KeyboardInterrupt
            pass

    subsystems = {
        asyncio.create_task(scheduler.run(), name='scheduler'): scheduler,
        asyncio.create_task(messaging.run(), name='telegram'): messaging,
    }
    shutdown_waiter = asyncio.create_task(shutdown_requested.wait())

    exit_code = 0
    done, _ = await asyncio.wait({shutdown_waiter, *subsystems}, return_when=asyncio.FIRST_COMPLETED)
    for task in done & subsystems.keys():
        if task.exception() is not None:
            logger.error(f"❌ Подсистема {task.get_name()} завершилась с ошибкой: {task.exception()!r}")
            exit_code = 1

    logger.info("🔴 Останавливаем подсистемы...")
    shutdown_waiter.cancel()

    # Порядок важен: scheduler раньше telegram
    still_running = await stop_in_order(list(subsystems.items()), settings.shutdown_grace_period)
    if still_running:
        names = ', '.join(task.get_name() for task in still_running)
        logger.error(f"❌ Подсистемы не остановились за {settings.shutdown_grace_period}с: {names}")
        for task in still_running:
            task.cancel()
        await asyncio.gather(*still_running, return_exceptions=True)
        exit_code = 1

    for task in subsystems:
        if task.done() and not task.cancelled() and task.exception() is not None:
            if isinstance(task.exception(), MessagingConnectionLost):
                logger.error("❌ Соединение с Telegram потеряно")
            exit_code = 1

    await codeforces.close()
    await bot.session.close()
    logger.info("🔴 Бот остановлен")
    return exit_code


def main(argv: Optional[List[str]] = None) -> int:
    """Главная функция запуска."""
    settings = Settings.from_env()
    args = parse_args(settings, argv)

    bot_logger.setup(settings.logs_dir, args.verbose)
    bot_logger.start_metrics_logging(interval=300)
    logger.info("🚀 Запуск daily-bot...")

    try:
        return asyncio.run(run(settings, args))
    except KeyboardInterrupt:
        logger.info("🔴 Получен сигнал прерывания")
        return 0


if __name__ == '__main__':
    sys.exit(main())
