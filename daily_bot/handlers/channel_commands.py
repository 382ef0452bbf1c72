"""
Обработчики команд чата: /help, /start, /register, /setrange.
"""

from aiogram import Router
from aiogram.filters import Command, CommandObject
from aiogram.types import Message

from ..services.bus import CommandBus
from ..services.channels import InvalidRatingRange, format_registrations, register_user, set_rating_range
from ..services.codeforces import CodeforcesClient
from ..services.commands import StartDailyMessages
from ..services.logger import get_logger
from ..services.messaging import MessagingService

logger = get_logger('handlers')

router = Router()

HELP_TEXT = """Поддерживаются команды:
/help — показать это сообщение
/start — (пере)запустить бота в этом чате
/register <имя> <хэндл> — зарегистрировать участника
/setrange <от> <до> — задать диапазон рейтингов задач"""

START_TEXT = "Задача дня будет подготовлена для вас 🍴"

REGISTER_USAGE_TEXT = "Использование: /register <имя> <хэндл Codeforces>"

SETRANGE_USAGE_TEXT = "Использование: /setrange <нижняя граница> <верхняя граница>"


@router.message(Command("help"))
async def cmd_help(message: Message):
    """Список команд."""
    await message.answer(HELP_TEXT)


@router.message(Command("start"))
async def cmd_start(message: Message, bus: CommandBus):
    """Запускает ежедневные сообщения в чате."""
    chat_id = message.chat.id
    logger.info(f"🚀 Команда /start в чате {chat_id}")
    bus.send_to_scheduler(StartDailyMessages(chat_id=chat_id))
    await message.answer(START_TEXT)


@router.message(Command("register"))
async def cmd_register(
    message: Message,
    command: CommandObject,
    messaging: MessagingService,
    codeforces: CodeforcesClient,
):
    """Регистрирует участника с проверенным хэндлом."""
    args = (command.args or '').split()
    if len(args) != 2:
        await message.answer(REGISTER_USAGE_TEXT)
        return

    display_name, raw_handle = args
    handle = await codeforces.validate_handle(raw_handle)
    if handle is None:
        await message.answer(f"{raw_handle} не является корректным хэндлом Codeforces")
        return

    async with messaging.edit_state(message.chat.id) as state:
        register_user(state, display_name, handle)
        reply = format_registrations(state)

    logger.info(f"👤 В чате {message.chat.id} зарегистрирован {display_name} ({handle})")
    await message.answer(reply)


@router.message(Command("setrange"))
async def cmd_setrange(message: Message, command: CommandObject, messaging: MessagingService):
    """Задаёт диапазон рейтингов задач чата."""
    args = (command.args or '').split()
    try:
        lower, upper = (int(arg) for arg in args)
    except ValueError:
        await message.answer(SETRANGE_USAGE_TEXT)
        return

    try:
        async with messaging.edit_state(message.chat.id) as state:
            set_rating_range(state, lower, upper)
    except InvalidRatingRange:
        await message.answer("Нижняя граница не должна превышать верхнюю")
        return

    await message.answer(f"Диапазон рейтингов обновлён: [{lower}, {upper}]")
