"""
Middleware для обработки ошибок обработчиков команд и логирования.
"""

import time
from typing import Any, Awaitable, Callable, Dict

from aiogram import BaseMiddleware
from aiogram.types import Message, TelegramObject

from ..services.logger import get_logger, log_error

logger = get_logger('middleware')


def _handler_name(data: Dict[str, Any]) -> str:
    handler = data.get('handler')
    callback = getattr(handler, 'callback', None)
    return getattr(callback, '__name__', 'unknown_handler')


class ErrorHandlerMiddleware(BaseMiddleware):
    """Middleware для глобальной обработки ошибок с детальным логированием."""

    def __init__(self):
        super().__init__()
        self.error_count = 0

    async def __call__(
        self,
        handler: Callable[[TelegramObject, Dict[str, Any]], Awaitable[Any]],
        event: TelegramObject,
        data: Dict[str, Any]
    ) -> Any:
        chat_id = event.chat.id if isinstance(event, Message) else None
        user_id = event.from_user.id if isinstance(event, Message) and event.from_user else None

        if isinstance(event, Message):
            text = event.text or 'non-text'
            logger.debug(f"📩 Сообщение в чате {chat_id} от {user_id}: {text[:100]}")

        try:
            return await handler(event, data)
        except Exception as e:
            self.error_count += 1
            log_error(e, {
                'handler_name': _handler_name(data),
                'chat_id': chat_id,
                'user_id': user_id,
            })

            if isinstance(event, Message):
                try:
                    await event.reply(
                        "⚠️ Произошла ошибка при обработке команды. Попробуйте ещё раз.\n\n"
                        f"🔍 Код ошибки: #{self.error_count}"
                    )
                except Exception as reply_error:
                    logger.error(f"❌ Не удалось отправить сообщение об ошибке: {reply_error}")

            return None


class PerformanceMiddleware(BaseMiddleware):
    """Middleware для мониторинга производительности."""

    def __init__(self, slow_threshold_ms: float = 1000):
        super().__init__()
        self.slow_threshold_ms = slow_threshold_ms

    async def __call__(
        self,
        handler: Callable[[TelegramObject, Dict[str, Any]], Awaitable[Any]],
        event: TelegramObject,
        data: Dict[str, Any]
    ) -> Any:
        start_time = time.time()

        try:
            return await handler(event, data)
        finally:
            duration_ms = (time.time() - start_time) * 1000

            # Логируем только медленные операции
            if duration_ms > self.slow_threshold_ms:
                logger.warning(
                    f"🐌 Медленная операция: {_handler_name(data)} ({duration_ms:.2f}ms)",
                    extra={'handler_name': _handler_name(data), 'duration': duration_ms}
                )
