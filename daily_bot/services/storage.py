"""
Хранилища состояния чатов: в памяти и в JSON-файле с атомарной записью.
"""

import copy
import json
import os
from pathlib import Path
from threading import Lock
from typing import Any, Dict

from ..types import ChannelState
from .logger import get_logger

logger = get_logger('storage')


class ChannelStore:
    """Хранилище состояния чатов: одно чтение, локальное изменение, одна запись."""

    async def get(self, chat_id: int) -> ChannelState:
        """Возвращает состояние чата или пустое состояние, если его нет."""
        raise NotImplementedError

    async def put(self, chat_id: int, state: ChannelState) -> None:
        """Сохраняет состояние чата."""
        raise NotImplementedError


class MemoryChannelStore(ChannelStore):
    """Хранилище в памяти процесса. Данные теряются при перезапуске."""

    def __init__(self):
        self._records: Dict[str, Dict[str, Any]] = {}

    async def get(self, chat_id: int) -> ChannelState:
        record = self._records.get(str(chat_id))
        if record is None:
            return ChannelState()
        return ChannelState.from_dict(copy.deepcopy(record))

    async def put(self, chat_id: int, state: ChannelState) -> None:
        self._records[str(chat_id)] = state.to_dict()


class JsonChannelStore(ChannelStore):
    """Хранилище в JSON-файле: {"channels": {"<chat_id>": {...}}}."""

    EMPTY = {'channels': {}}

    def __init__(self, file_path: str = 'data.json'):
        self.file_path = file_path
        self._lock = Lock()
        self._ensure_initialized()

    def _ensure_initialized(self) -> None:
        """Создаёт файл хранилища с пустым набором чатов, если его нет."""
        if not os.path.exists(self.file_path):
            Path(self.file_path).parent.mkdir(parents=True, exist_ok=True)
            self.save(copy.deepcopy(self.EMPTY))

    def load(self) -> Dict[str, Any]:
        """Загружает данные из файла."""
        try:
            with open(self.file_path, 'r', encoding='utf-8') as f:
                return json.load(f)
        except FileNotFoundError:
            self._ensure_initialized()
            return copy.deepcopy(self.EMPTY)
        except json.JSONDecodeError as e:
            logger.error(f"❌ Файл хранилища {self.file_path} поврежден: {e}")
            raise

    def save(self, store: Dict[str, Any]) -> None:
        """Сохраняет данные атомарно: запись во временный файл и os.replace."""
        tmp_path = self.file_path + '.tmp'
        try:
            with open(tmp_path, 'w', encoding='utf-8') as f:
                json.dump(store, f, ensure_ascii=False, indent=2)
            os.replace(tmp_path, self.file_path)
        except Exception:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise

    async def get(self, chat_id: int) -> ChannelState:
        with self._lock:
            record = self.load().get('channels', {}).get(str(chat_id))
        if record is None:
            return ChannelState()
        return ChannelState.from_dict(record)

    async def put(self, chat_id: int, state: ChannelState) -> None:
        with self._lock:
            store = self.load()
            store.setdefault('channels', {})[str(chat_id)] = state.to_dict()
            self.save(store)
        logger.debug(f"💾 Состояние чата {chat_id} сохранено")


def create_store(backend: str, data_file: str = 'data.json') -> ChannelStore:
    """Создаёт хранилище по имени бэкенда из настроек."""
    if backend == 'memory':
        return MemoryChannelStore()
    if backend == 'json':
        return JsonChannelStore(data_file)
    raise ValueError(f"Неизвестное хранилище: {backend!r} (ожидается memory или json)")
