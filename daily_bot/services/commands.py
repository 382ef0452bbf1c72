"""
Команды, которыми обмениваются планировщик и Telegram-часть бота.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Union

from ..types import ChannelState, Problem, SolvingStatus


# Команды для планировщика

@dataclass(frozen=True)
class StartDailyMessages:
    """(Пере)запустить ежедневные задания для чата."""
    chat_id: int


SchedulerCommand = Union[StartDailyMessages]


# Команды для Telegram-части

@dataclass(frozen=True)
class GetChannelState:
    """Запрос состояния чата. Ответ приходит через reply ровно один раз."""
    chat_id: int
    reply: 'asyncio.Future[ChannelState]' = field(compare=False)


@dataclass(frozen=True)
class AnnounceProblem:
    """Опубликовать новую задачу дня."""
    chat_id: int
    problem: Problem


@dataclass(frozen=True)
class UpdateSolvingStatus:
    """Обновить статус решения во всех отслеживаемых сообщениях чата."""
    chat_id: int
    status: SolvingStatus = field(compare=False)


MessagingCommand = Union[GetChannelState, AnnounceProblem, UpdateSolvingStatus]
