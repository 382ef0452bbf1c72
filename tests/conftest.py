"""
Общие заглушки для тестов: клиент Codeforces и Telegram-бот без сети.
"""

import asyncio
from contextlib import asynccontextmanager
from types import SimpleNamespace

import pytest

from daily_bot.services.codeforces import CodeforcesError
from daily_bot.types import Handle, Problem, Submission, Verdict


def make_problem(contest_id=1700, index='E', rating=2000, tags=('dp',), name='Задача'):
    return Problem(contest_id=contest_id, index=index, name=name, tags=tuple(tags), rating=rating)


def make_submission(problem, verdict, submission_id=1, handle='alice'):
    return Submission(
        id=submission_id,
        contest_id=problem.contest_id,
        problem=problem,
        author_handles=(handle,),
        verdict=verdict,
    )


class FakeCodeforcesClient:
    """Клиент Codeforces, отвечающий заранее заданными данными."""

    def __init__(self, problems_by_tag=None, submissions=None, valid_handles=(), failing_handles=()):
        self.problems_by_tag = problems_by_tag or {}
        self.submissions = submissions or {}
        self.valid_handles = set(valid_handles)
        self.failing_handles = set(failing_handles)
        self.problem_requests = []

    async def list_problems_by_tag(self, tags):
        tags = list(tags)
        self.problem_requests.append(tags)
        return list(self.problems_by_tag.get(';'.join(tags), []))

    async def list_submissions(self, handle):
        if handle in self.failing_handles:
            raise CodeforcesError(f"Не удалось получить посылки {handle}")
        return list(self.submissions.get(handle, []))

    async def validate_handle(self, name):
        return Handle(name) if name in self.valid_handles else None


class FakeBot:
    """Бот, который запоминает отправленные и отредактированные сообщения."""

    def __init__(self):
        self.sent = []
        self.edits = []
        self._next_message_id = 100

    async def send_message(self, chat_id, text, **kwargs):
        self._next_message_id += 1
        message = SimpleNamespace(
            chat=SimpleNamespace(id=chat_id),
            message_id=self._next_message_id,
            text=text,
        )
        self.sent.append(message)
        return message

    async def edit_message_text(self, text, chat_id, message_id, **kwargs):
        self.edits.append((chat_id, message_id, text))
        return SimpleNamespace(chat=SimpleNamespace(id=chat_id), message_id=message_id, text=text)


class FakeMessage:
    """Входящее сообщение чата для прямого вызова обработчиков."""

    def __init__(self, chat_id=42, text=''):
        self.chat = SimpleNamespace(id=chat_id)
        self.from_user = SimpleNamespace(id=7)
        self.text = text
        self.answers = []

    async def answer(self, text, **kwargs):
        self.answers.append(text)


@asynccontextmanager
async def running(command_loop):
    """Крутит цикл команд в фоне на время блока."""
    task = asyncio.create_task(command_loop.run())
    try:
        yield command_loop
    finally:
        command_loop.stop()
        await task


@pytest.fixture
def fake_bot():
    return FakeBot()
