"""
Тесты Telegram-части: публикация задачи дня и правка сообщений со статусами.
"""

import asyncio
import random

import pytest
from aiogram.exceptions import TelegramBadRequest
from aiogram.methods import EditMessageText

from conftest import FakeBot, FakeCodeforcesClient, make_problem, make_submission
from daily_bot.services.commands import AnnounceProblem, GetChannelState, UpdateSolvingStatus
from daily_bot.services.messaging import MessagingService
from daily_bot.services.selection import find_daily_problem
from daily_bot.services.storage import MemoryChannelStore
from daily_bot.services.verdicts import ANNOUNCEMENT_PREFIX, collect_solving_status
from daily_bot.types import ChannelState, Handle, MessageRef, RatingRange, Verdict, VerdictCategory

CHAT_ID = 42


@pytest.fixture
def service(fake_bot):
    return MessagingService(fake_bot, MemoryChannelStore())


async def prepare_channel(service, users, rating_range=None):
    async with service.edit_state(CHAT_ID) as state:
        state.registered_users.update(users)
        state.custom_rating_range = rating_range


class TestDailyCycle:
    """Полный цикл: выбор задачи, публикация, обновление статуса."""

    async def test_announce_then_update(self, service, fake_bot):
        await prepare_channel(service, {'Алиса': Handle('alice')}, RatingRange(1900, 2100))
        problem = make_problem(index='E', rating=2000, tags=('dp',))
        client = FakeCodeforcesClient(problems_by_tag={'dp': [
            make_problem(index='A', rating=800, tags=('dp',)),
            problem,
        ]})

        state = await service.store.get(CHAT_ID)
        chosen = await find_daily_problem(state, client, CHAT_ID, rng=random.Random(7))
        await service.announce_problem(AnnounceProblem(chat_id=CHAT_ID, problem=chosen))

        [sent] = fake_bot.sent
        assert chosen == problem
        assert sent.text.startswith(f"{ANNOUNCEMENT_PREFIX}{problem.url}")
        assert "⬜ Алиса" in sent.text

        client.submissions['alice'] = [make_submission(problem, Verdict.OK)]
        state = await service.store.get(CHAT_ID)
        status = await collect_solving_status(state, client, state.tracked_problems())
        await service.update_solving_status(UpdateSolvingStatus(chat_id=CHAT_ID, status=status))

        assert len(fake_bot.edits) == 1
        chat_id, message_id, text = fake_bot.edits[0]
        assert (chat_id, message_id) == (CHAT_ID, sent.message_id)
        assert "🟩 Алиса" in text

        # Статус не изменился, правок нет
        await service.update_solving_status(UpdateSolvingStatus(chat_id=CHAT_ID, status=status))
        assert len(fake_bot.edits) == 1

    async def test_archived_messages_are_updated(self, service, fake_bot):
        """После новой задачи дня сообщение о предыдущей продолжает обновляться."""
        await prepare_channel(service, {'Алиса': Handle('alice')})
        first = make_problem(index='D')
        second = make_problem(index='E')

        await service.announce_problem(AnnounceProblem(chat_id=CHAT_ID, problem=first))
        await service.announce_problem(AnnounceProblem(chat_id=CHAT_ID, problem=second))

        state = await service.store.get(CHAT_ID)
        assert state.current_daily_problem == second
        assert list(state.archived_daily_messages) == [first]

        status = {
            first: {Handle('alice'): VerdictCategory.CORRECT},
            second: {Handle('alice'): VerdictCategory.INCORRECT},
        }
        await service.update_solving_status(UpdateSolvingStatus(chat_id=CHAT_ID, status=status))

        edited = {message_id: text for _, message_id, text in fake_bot.edits}
        first_id, second_id = (message.message_id for message in fake_bot.sent)
        assert "🟩 Алиса" in edited[first_id]
        assert "🟥 Алиса" in edited[second_id]

    async def test_stored_text_follows_edits(self, service, fake_bot):
        await prepare_channel(service, {'Алиса': Handle('alice')})
        problem = make_problem()
        await service.announce_problem(AnnounceProblem(chat_id=CHAT_ID, problem=problem))

        status = {problem: {Handle('alice'): VerdictCategory.JUDGING_NOT_COMPLETED}}
        await service.update_solving_status(UpdateSolvingStatus(chat_id=CHAT_ID, status=status))

        state = await service.store.get(CHAT_ID)
        assert "🟦 Алиса" in state.current_daily_message.text


class TestUpdateSolvingStatus:
    """Тесты правки сообщений."""

    async def test_no_problem_no_edits(self, service, fake_bot):
        await service.update_solving_status(UpdateSolvingStatus(chat_id=CHAT_ID, status={}))
        assert fake_bot.edits == []

    async def test_message_without_text_is_edited(self, service, fake_bot):
        problem = make_problem()
        async with service.edit_state(CHAT_ID) as state:
            state.set_daily_problem(problem, MessageRef(chat_id=CHAT_ID, message_id=5, text=None))

        await service.update_solving_status(UpdateSolvingStatus(chat_id=CHAT_ID, status={}))

        assert [message_id for _, message_id, _ in fake_bot.edits] == [5]

    async def test_not_modified_counts_as_updated(self, service):
        class NotModifiedBot(FakeBot):
            async def edit_message_text(self, text, chat_id, message_id, **kwargs):
                raise TelegramBadRequest(
                    method=EditMessageText(text=text, chat_id=chat_id, message_id=message_id),
                    message="Bad Request: message is not modified",
                )

        service.bot = NotModifiedBot()
        problem = make_problem()
        async with service.edit_state(CHAT_ID) as state:
            state.set_daily_problem(problem, MessageRef(chat_id=CHAT_ID, message_id=5, text='старый текст'))

        await service.update_solving_status(UpdateSolvingStatus(chat_id=CHAT_ID, status={}))

        state = await service.store.get(CHAT_ID)
        assert state.current_daily_message.text == f"{ANNOUNCEMENT_PREFIX}{problem.url}"

    async def test_failed_edit_is_not_saved(self, service):
        class BrokenBot(FakeBot):
            async def edit_message_text(self, text, chat_id, message_id, **kwargs):
                raise TelegramBadRequest(
                    method=EditMessageText(text=text, chat_id=chat_id, message_id=message_id),
                    message="Bad Request: message to edit not found",
                )

        service.bot = BrokenBot()
        problem = make_problem()
        async with service.edit_state(CHAT_ID) as state:
            state.set_daily_problem(problem, MessageRef(chat_id=CHAT_ID, message_id=5, text='старый текст'))

        await service.update_solving_status(UpdateSolvingStatus(chat_id=CHAT_ID, status={}))

        state = await service.store.get(CHAT_ID)
        assert state.current_daily_message.text == 'старый текст'


class TestChannelState:
    """Тесты чтения и изменения состояния."""

    async def test_edit_state_not_saved_on_error(self, service):
        with pytest.raises(RuntimeError):
            async with service.edit_state(CHAT_ID) as state:
                state.registered_users['Алиса'] = Handle('alice')
                raise RuntimeError("сбой посреди изменения")

        state = await service.store.get(CHAT_ID)
        assert state.registered_users == {}

    async def test_get_channel_state_answers(self, service):
        await prepare_channel(service, {'Алиса': Handle('alice')})
        reply = asyncio.get_running_loop().create_future()

        await service.get_channel_state(GetChannelState(chat_id=CHAT_ID, reply=reply))

        state = reply.result()
        assert isinstance(state, ChannelState)
        assert state.registered_users == {'Алиса': 'alice'}
