"""
Создание экземпляра бота, диспетчера и настройка middlewares.
"""

from aiogram import Bot, Dispatcher
from aiogram.types import BotCommand

from .handlers import channel_commands
from .middlewares.error_handler import ErrorHandlerMiddleware, PerformanceMiddleware
from .services.bus import CommandBus
from .services.codeforces import CodeforcesClient
from .services.logger import get_logger
from .services.messaging import MessagingService

logger = get_logger('bot')

BOT_COMMANDS = [
    BotCommand(command="help", description="Список команд"),
    BotCommand(command="start", description="(Пере)запустить задачу дня в чате"),
    BotCommand(command="register", description="Зарегистрировать участника"),
    BotCommand(command="setrange", description="Задать диапазон рейтингов"),
]


def create_bot(token: str) -> Bot:
    """Создаёт экземпляр бота."""
    return Bot(token=token)


def create_dispatcher(bus: CommandBus, messaging: MessagingService, codeforces: CodeforcesClient) -> Dispatcher:
    """Создаёт диспетчер с обработчиками и зависимостями для них."""
    dp = Dispatcher()

    # Зависимости пробрасываются в обработчики по имени аргумента
    dp['bus'] = bus
    dp['messaging'] = messaging
    dp['codeforces'] = codeforces

    dp.include_router(channel_commands.router)

    dp.message.middleware(PerformanceMiddleware(slow_threshold_ms=500))
    dp.message.middleware(ErrorHandlerMiddleware())

    dp.startup.register(on_startup)

    logger.info("Handlers зарегистрированы")
    logger.info("Middleware подключены")
    return dp


async def on_startup(bot: Bot):
    """Выполняется при запуске поллинга."""
    me = await bot.get_me()
    logger.info(f"✅ Бот подключен: @{me.username} ({me.first_name})")

    await bot.set_my_commands(BOT_COMMANDS)
    logger.info("✅ Команды бота настроены")
