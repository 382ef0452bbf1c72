"""
Unit-тесты для выбора задачи дня.
"""

import random

import pytest

from conftest import FakeCodeforcesClient, make_problem, make_submission
from daily_bot.services.codeforces import TAGS
from daily_bot.services.selection import NoEligibleProblemError, find_daily_problem, known_problems, seeded_random
from daily_bot.types import ChannelState, Handle, Problem, RatingRange, Verdict


def dp_state():
    return ChannelState(
        registered_users={'Алиса': Handle('alice')},
        custom_rating_range=RatingRange(1900, 2100),
    )


class TestSeededRandom:
    """Тесты генератора случайных чисел."""

    def test_reproducible_within_same_second(self):
        first = seeded_random(42, now=1_700_000_000.2)
        second = seeded_random(42, now=1_700_000_000.9)
        assert first.random() == second.random()

    def test_differs_between_chats(self):
        first = seeded_random(42, now=1_700_000_000)
        second = seeded_random(43, now=1_700_000_000)
        assert first.random() != second.random()


class TestFindDailyProblem:
    """Тесты поиска задачи дня."""

    async def test_picks_problem_in_rating_range(self):
        in_range = make_problem(index='E', rating=2000, tags=('dp',))
        client = FakeCodeforcesClient(problems_by_tag={'dp': [
            make_problem(index='A', rating=800, tags=('dp',)),
            in_range,
            make_problem(index='G', rating=2500, tags=('dp',)),
            make_problem(index='H', rating=None, tags=('dp',)),
        ]})

        problem = await find_daily_problem(dp_state(), client, chat_id=42, rng=random.Random(1))

        assert problem == in_range
        assert 'dp' in problem.tags
        assert 1900 <= problem.rating <= 2100

    async def test_skips_problems_already_attempted(self):
        attempted = make_problem(index='E', rating=2000)
        fresh = make_problem(index='F', rating=2050)
        client = FakeCodeforcesClient(
            problems_by_tag={'dp': [attempted, fresh]},
            submissions={'alice': [make_submission(attempted, Verdict.WRONG_ANSWER)]},
        )

        problem = await find_daily_problem(dp_state(), client, chat_id=42, rng=random.Random(2))

        assert problem == fresh

    async def test_skips_problems_without_contest(self):
        client = FakeCodeforcesClient(problems_by_tag={'dp': [
            Problem(contest_id=None, index='A', rating=2000, tags=('dp',), problemset_name='acmsguru'),
        ]})

        with pytest.raises(NoEligibleProblemError):
            await find_daily_problem(dp_state(), client, chat_id=42, rng=random.Random(3))

    async def test_gives_up_after_every_tag_once(self):
        """Если ни один тег не подходит, каждый тег запрошен ровно один раз."""
        client = FakeCodeforcesClient()

        with pytest.raises(NoEligibleProblemError):
            await find_daily_problem(dp_state(), client, chat_id=42, rng=random.Random(4))

        requested = [tags[0] for tags in client.problem_requests]
        assert sorted(requested) == sorted(TAGS)

    async def test_uses_default_rating_range(self):
        problem = make_problem(rating=2200)
        client = FakeCodeforcesClient(problems_by_tag={'dp': [problem]})

        chosen = await find_daily_problem(ChannelState(), client, chat_id=1, rng=random.Random(5))

        assert chosen == problem


class TestKnownProblems:
    """Тесты множества уже встречавшихся задач."""

    async def test_union_over_participants(self):
        first, second = make_problem(index='A'), make_problem(index='B')
        client = FakeCodeforcesClient(
            submissions={
                'alice': [make_submission(first, Verdict.OK)],
                'bob': [make_submission(second, Verdict.WRONG_ANSWER, handle='bob')],
            },
            failing_handles={'carol'},
        )
        state = ChannelState(registered_users={
            'Алиса': Handle('alice'),
            'Боб': Handle('bob'),
            'Кэрол': Handle('carol'),
        })

        assert await known_problems(state, client) == {first, second}
