"""
Централизованная система логирования и метрик бота.
"""

import json
import logging
import logging.handlers
import sys
import threading
import time
import traceback
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

ROOT_LOGGER_NAME = 'daily_bot'


class JsonFormatter(logging.Formatter):
    """Форматтер для JSON логов."""

    EXTRA_FIELDS = ('chat_id', 'user_id', 'handler_name', 'duration', 'error_type', 'job_role', 'url', 'metrics')

    def format(self, record: logging.LogRecord) -> str:
        """Форматирует запись лога в JSON."""
        log_data = {
            'timestamp': datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
            'module': record.module,
            'function': record.funcName,
            'line': record.lineno,
        }

        for name in self.EXTRA_FIELDS:
            if hasattr(record, name):
                log_data[name] = getattr(record, name)

        if record.exc_info:
            log_data['exception'] = {
                'type': record.exc_info[0].__name__,
                'message': str(record.exc_info[1]),
                'traceback': traceback.format_exception(*record.exc_info)
            }

        return json.dumps(log_data, ensure_ascii=False)


class BotLogger:
    """Менеджер логирования и счётчиков бота."""

    def __init__(self):
        self._metrics = {
            'commands_processed': 0,
            'jobs_fired': 0,
            'api_calls': 0,
            'cache_fallbacks': 0,
            'errors_count': 0,
            'last_activity': time.time()
        }
        self._metrics_lock = threading.Lock()
        self._start_time = time.time()
        self.main_logger = logging.getLogger(ROOT_LOGGER_NAME)
        self.metrics_logger = logging.getLogger(f'{ROOT_LOGGER_NAME}.metrics')

    def setup(self, logs_dir: str = 'logs', verbose: int = 0) -> None:
        """Настраивает обработчики: консоль, файлы и структурированный JSON."""
        logs_path = Path(logs_dir)
        logs_path.mkdir(parents=True, exist_ok=True)

        self.main_logger.setLevel(logging.DEBUG)
        self.main_logger.handlers.clear()

        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(logging.DEBUG if verbose else logging.INFO)
        console_formatter = logging.Formatter(
            '%(asctime)s | %(levelname)-8s | %(name)-28s | %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )
        console_handler.setFormatter(console_formatter)
        self.main_logger.addHandler(console_handler)

        file_handler = logging.handlers.TimedRotatingFileHandler(
            logs_path / "bot_all.log",
            when='midnight',
            interval=1,
            backupCount=7,
            encoding='utf-8'
        )
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(console_formatter)
        self.main_logger.addHandler(file_handler)

        json_handler = logging.handlers.TimedRotatingFileHandler(
            logs_path / "bot_structured.jsonl",
            when='midnight',
            interval=1,
            backupCount=7,
            encoding='utf-8'
        )
        json_handler.setLevel(logging.INFO)
        json_handler.setFormatter(JsonFormatter())
        self.main_logger.addHandler(json_handler)

        error_handler = logging.handlers.TimedRotatingFileHandler(
            logs_path / "bot_errors.log",
            when='midnight',
            interval=1,
            backupCount=30,
            encoding='utf-8'
        )
        error_handler.setLevel(logging.ERROR)
        error_handler.setFormatter(JsonFormatter())
        self.main_logger.addHandler(error_handler)

        # Метрики пишутся только в отдельный почасовой файл
        perf_handler = logging.handlers.TimedRotatingFileHandler(
            logs_path / "bot_performance.jsonl",
            when='H',
            interval=1,
            backupCount=24,
            encoding='utf-8'
        )
        perf_handler.setFormatter(JsonFormatter())
        self.metrics_logger.setLevel(logging.INFO)
        self.metrics_logger.handlers.clear()
        self.metrics_logger.addHandler(perf_handler)
        self.metrics_logger.propagate = False

        logging.getLogger('aiogram').setLevel(logging.WARNING)
        logging.getLogger('aiohttp').setLevel(logging.WARNING)
        logging.getLogger('apscheduler').setLevel(logging.WARNING)

        self.main_logger.info("🔧 Система логирования инициализирована")

    def get_logger(self, name: str) -> logging.Logger:
        """Возвращает логгер с указанным именем."""
        return logging.getLogger(f'{ROOT_LOGGER_NAME}.{name}')

    def _increment(self, counter: str) -> None:
        with self._metrics_lock:
            self._metrics[counter] += 1
            self._metrics['last_activity'] = time.time()

    def log_command_processed(self, command_name: str, chat_id: int) -> None:
        """Учитывает обработанную команду шины."""
        self._increment('commands_processed')
        self.get_logger('commands').debug(
            f"📨 Команда обработана: {command_name}",
            extra={'chat_id': chat_id, 'handler_name': command_name}
        )

    def log_job_fired(self, role: str, chat_id: int) -> None:
        """Учитывает срабатывание задания планировщика."""
        self._increment('jobs_fired')
        self.get_logger('jobs').debug(
            f"⏰ Сработало задание {role}",
            extra={'chat_id': chat_id, 'job_role': role}
        )

    def log_api_call(self, url: str) -> None:
        self._increment('api_calls')

    def log_cache_fallback(self, url: str) -> None:
        self._increment('cache_fallbacks')

    def log_error(self, error: Exception, context: Optional[Dict[str, Any]] = None) -> None:
        """Логирует ошибку с контекстом."""
        with self._metrics_lock:
            self._metrics['errors_count'] += 1

        extra_data = {'error_type': type(error).__name__}
        if context:
            extra_data.update(context)

        self.get_logger('errors').error(
            f"❌ Ошибка: {error}",
            extra=extra_data,
            exc_info=(type(error), error, error.__traceback__)
        )

    def get_metrics(self) -> Dict[str, Any]:
        """Возвращает текущие метрики."""
        with self._metrics_lock:
            metrics = dict(self._metrics)
        metrics['uptime_seconds'] = time.time() - self._start_time
        return metrics

    def log_metrics(self) -> None:
        """Записывает текущие метрики в лог."""
        metrics = self.get_metrics()
        self.metrics_logger.info("📊 Метрики работы", extra={'metrics': metrics})

    def start_metrics_logging(self, interval: int = 300) -> None:
        """Запускает периодическое логирование метрик."""

        def log_metrics_periodically():
            while True:
                time.sleep(interval)
                self.log_metrics()

        thread = threading.Thread(target=log_metrics_periodically, daemon=True)
        thread.start()

        self.main_logger.info(f"📊 Запущено периодическое логирование метрик (каждые {interval}с)")


# Глобальный экземпляр логгера
bot_logger = BotLogger()


def get_logger(name: str) -> logging.Logger:
    """Возвращает логгер для указанного модуля."""
    return bot_logger.get_logger(name)


def log_error(error: Exception, context: Optional[Dict[str, Any]] = None) -> None:
    """Логирует ошибку."""
    bot_logger.log_error(error, context)
