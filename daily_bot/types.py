"""
Модели данных бота «задача дня»: задачи, посылки, вердикты и состояние чата.
"""

from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Any, Dict, Iterator, List, Optional, Tuple

PROBLEM_BASE_URL = "https://codeforces.com"


class Handle(str):
    """Хэндл участника на Codeforces, прошедший проверку."""


class VerdictCategory(IntEnum):
    """Грубая классификация вердикта. Порядок значим: чем больше, тем лучше."""
    INCORRECT = 0
    JUDGING_NOT_COMPLETED = 1
    CORRECT = 2


class Verdict(Enum):
    """Вердикты в том виде, в каком их отдаёт API Codeforces."""
    FAILED = 'FAILED'
    OK = 'OK'
    PARTIAL = 'PARTIAL'
    COMPILATION_ERROR = 'COMPILATION_ERROR'
    RUNTIME_ERROR = 'RUNTIME_ERROR'
    WRONG_ANSWER = 'WRONG_ANSWER'
    PRESENTATION_ERROR = 'PRESENTATION_ERROR'
    TIME_LIMIT_EXCEEDED = 'TIME_LIMIT_EXCEEDED'
    MEMORY_LIMIT_EXCEEDED = 'MEMORY_LIMIT_EXCEEDED'
    IDLENESS_LIMIT_EXCEEDED = 'IDLENESS_LIMIT_EXCEEDED'
    SECURITY_VIOLATED = 'SECURITY_VIOLATED'
    CRASHED = 'CRASHED'
    INPUT_PREPARATION_CRASHED = 'INPUT_PREPARATION_CRASHED'
    CHALLENGED = 'CHALLENGED'
    SKIPPED = 'SKIPPED'
    TESTING = 'TESTING'
    REJECTED = 'REJECTED'

    @property
    def category(self) -> VerdictCategory:
        if self is Verdict.OK:
            return VerdictCategory.CORRECT
        if self in _INCORRECT_VERDICTS:
            return VerdictCategory.INCORRECT
        return VerdictCategory.JUDGING_NOT_COMPLETED


_INCORRECT_VERDICTS = frozenset({
    Verdict.PARTIAL,
    Verdict.WRONG_ANSWER,
    Verdict.PRESENTATION_ERROR,
    Verdict.TIME_LIMIT_EXCEEDED,
    Verdict.MEMORY_LIMIT_EXCEEDED,
    Verdict.IDLENESS_LIMIT_EXCEEDED,
    Verdict.CHALLENGED,
    Verdict.RUNTIME_ERROR,
})


@dataclass(frozen=True)
class Problem:
    """
    Задача Codeforces.

    Сравнение и хэш только по идентичности на стороне Codeforces
    (контест, индекс, problemset), чтобы переименованная задача или задача
    с изменёнными тегами оставалась той же самой.
    """
    contest_id: Optional[int]
    index: str
    name: str = field(default='', compare=False)
    tags: Tuple[str, ...] = field(default=(), compare=False)
    rating: Optional[int] = field(default=None, compare=False)
    problemset_name: Optional[str] = None

    @property
    def url(self) -> str:
        if self.contest_id is None:
            raise ValueError(f"Нельзя построить ссылку на задачу {self.index!r} без contest_id")
        return f"{PROBLEM_BASE_URL}/contest/{self.contest_id}/problem/{self.index}"

    @property
    def identifier(self) -> str:
        if self.contest_id is None:
            raise ValueError(f"Нельзя идентифицировать задачу {self.index!r} без contest_id")
        return f"{self.contest_id}/{self.index}"

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> 'Problem':
        """Создаёт задачу из JSON-объекта Problem API Codeforces."""
        return cls(
            contest_id=data.get('contestId'),
            index=data['index'],
            name=data.get('name', ''),
            tags=tuple(data.get('tags', [])),
            rating=data.get('rating'),
            problemset_name=data.get('problemsetName'),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'contestId': self.contest_id,
            'index': self.index,
            'name': self.name,
            'tags': list(self.tags),
            'rating': self.rating,
            'problemsetName': self.problemset_name,
        }


@dataclass(frozen=True)
class Submission:
    """Посылка участника."""
    id: int
    contest_id: Optional[int]
    problem: Problem
    author_handles: Tuple[str, ...] = ()
    verdict: Optional[Verdict] = None

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> 'Submission':
        """Создаёт посылку из JSON-объекта Submission API Codeforces."""
        raw_verdict = data.get('verdict')
        try:
            verdict = Verdict(raw_verdict) if raw_verdict else None
        except ValueError:
            # Неизвестный вердикт трактуем как отсутствие вердикта
            verdict = None

        members = data.get('author', {}).get('members', [])
        return cls(
            id=data['id'],
            contest_id=data.get('contestId'),
            problem=Problem.from_api(data['problem']),
            author_handles=tuple(member['handle'] for member in members),
            verdict=verdict,
        )


@dataclass(frozen=True)
class RatingRange:
    """Замкнутый диапазон рейтингов задач."""
    lower: int
    upper: int

    def contains(self, rating: int) -> bool:
        return self.lower <= rating <= self.upper

    def __str__(self) -> str:
        return f"[{self.lower}, {self.upper}]"


DEFAULT_RATING_RANGE = RatingRange(2000, 2400)


@dataclass
class MessageRef:
    """Ссылка на отправленное ботом сообщение вместе с последним известным текстом."""
    chat_id: int
    message_id: int
    text: Optional[str]

    def to_dict(self) -> Dict[str, Any]:
        return {'chat_id': self.chat_id, 'message_id': self.message_id, 'text': self.text}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'MessageRef':
        return cls(chat_id=data['chat_id'], message_id=data['message_id'], text=data.get('text'))


@dataclass
class ChannelState:
    """Состояние одного чата."""
    registered_users: Dict[str, Handle] = field(default_factory=dict)
    custom_rating_range: Optional[RatingRange] = None
    current_daily_problem: Optional[Problem] = None
    current_daily_message: Optional[MessageRef] = None
    archived_daily_messages: Dict[Problem, List[MessageRef]] = field(default_factory=dict)

    @property
    def rating_range(self) -> RatingRange:
        return self.custom_rating_range or DEFAULT_RATING_RANGE

    def set_daily_problem(self, problem: Problem, message: MessageRef) -> None:
        """Делает задачу текущей, отправляя предыдущую пару в архив."""
        if self.current_daily_problem is not None and self.current_daily_message is not None:
            self.archived_daily_messages.setdefault(self.current_daily_problem, []).append(
                self.current_daily_message
            )
        self.current_daily_problem = problem
        self.current_daily_message = message

    def tracked_problems(self) -> List[Problem]:
        """Все задачи, чьи сообщения продолжают обновляться."""
        problems = list(self.archived_daily_messages)
        if self.current_daily_problem is not None and self.current_daily_problem not in problems:
            problems.append(self.current_daily_problem)
        return problems

    def tracked_messages(self) -> Iterator[Tuple[Problem, MessageRef]]:
        for problem, messages in self.archived_daily_messages.items():
            for message in messages:
                yield problem, message
        if self.current_daily_problem is not None and self.current_daily_message is not None:
            yield self.current_daily_problem, self.current_daily_message

    def to_dict(self) -> Dict[str, Any]:
        rating_range = self.custom_rating_range
        return {
            'registered_users': dict(self.registered_users),
            'rating_range': [rating_range.lower, rating_range.upper] if rating_range else None,
            'current_daily_problem': (
                self.current_daily_problem.to_dict() if self.current_daily_problem else None
            ),
            'current_daily_message': (
                self.current_daily_message.to_dict() if self.current_daily_message else None
            ),
            'archived_daily_messages': [
                {'problem': problem.to_dict(), 'messages': [m.to_dict() for m in messages]}
                for problem, messages in self.archived_daily_messages.items()
            ],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ChannelState':
        rating_range = data.get('rating_range')
        problem = data.get('current_daily_problem')
        message = data.get('current_daily_message')
        return cls(
            registered_users={
                name: Handle(handle) for name, handle in data.get('registered_users', {}).items()
            },
            custom_rating_range=RatingRange(*rating_range) if rating_range else None,
            current_daily_problem=Problem.from_api(problem) if problem else None,
            current_daily_message=MessageRef.from_dict(message) if message else None,
            archived_daily_messages={
                Problem.from_api(entry['problem']): [
                    MessageRef.from_dict(m) for m in entry['messages']
                ]
                for entry in data.get('archived_daily_messages', [])
            },
        )


# Статус решения: задача -> (хэндл -> категория вердикта)
SolvingStatus = Dict[Problem, Dict[Handle, VerdictCategory]]
