"""
Настройки бота из переменных окружения и .env файла.
"""

import os
from dataclasses import dataclass

from dotenv import load_dotenv


@dataclass
class Settings:
    """Параметры запуска бота."""
    bot_token: str
    messages_cron: str = '30 7 * * *'
    update_interval_minutes: int = 5
    storage_backend: str = 'memory'
    data_file: str = 'data.json'
    codeforces_api_base: str = 'https://codeforces.com/api'
    codeforces_min_interval: float = 3.0
    query_timeout: float = 30.0
    job_timeout: float = 600.0
    shutdown_grace_period: float = 20.0
    logs_dir: str = 'logs'

    @classmethod
    def from_env(cls) -> 'Settings':
        """Собирает настройки из окружения."""
        load_dotenv()

        bot_token = os.getenv('BOT_TOKEN')
        if not bot_token:
            raise ValueError("BOT_TOKEN не найден в переменных окружения")

        return cls(
            bot_token=bot_token,
            messages_cron=os.getenv('MESSAGES_CRON', cls.messages_cron),
            update_interval_minutes=int(os.getenv('UPDATE_INTERVAL_MINUTES', cls.update_interval_minutes)),
            storage_backend=os.getenv('STORAGE_BACKEND', cls.storage_backend).lower(),
            data_file=os.getenv('DATA_FILE', cls.data_file),
            codeforces_api_base=os.getenv('CODEFORCES_API_BASE', cls.codeforces_api_base),
            codeforces_min_interval=float(os.getenv('CODEFORCES_MIN_INTERVAL', cls.codeforces_min_interval)),
            query_timeout=float(os.getenv('QUERY_TIMEOUT', cls.query_timeout)),
            job_timeout=float(os.getenv('JOB_TIMEOUT', cls.job_timeout)),
            shutdown_grace_period=float(os.getenv('SHUTDOWN_GRACE_PERIOD', cls.shutdown_grace_period)),
            logs_dir=os.getenv('LOGS_DIR', cls.logs_dir),
        )
