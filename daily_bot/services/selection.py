"""
Выбор задачи дня.
"""

import random
import time
from typing import Optional, Set

from ..types import ChannelState, Problem
from .codeforces import TAGS, CodeforcesClient, CodeforcesError
from .logger import get_logger

logger = get_logger('selection')


class NoEligibleProblemError(Exception):
    """Ни один тег не дал подходящей задачи."""


def seeded_random(chat_id: int, now: Optional[float] = None) -> random.Random:
    """
    Генератор, зависящий от текущей секунды и чата.

    В пределах одной секунды для одного чата выбор воспроизводим.
    """
    unix_time_s = int(time.time() if now is None else now)
    return random.Random(f"{unix_time_s}:{chat_id}")


async def known_problems(state: ChannelState, client: CodeforcesClient) -> Set[Problem]:
    """Задачи, которые хоть раз сдавал кто-то из зарегистрированных участников."""
    problems: Set[Problem] = set()
    for handle in state.registered_users.values():
        try:
            submissions = await client.list_submissions(handle)
        except CodeforcesError as e:
            logger.warning(f"Ошибка при получении посылок {handle}: {e}")
            continue
        problems.update(submission.problem for submission in submissions)
    return problems


async def find_daily_problem(
    state: ChannelState,
    client: CodeforcesClient,
    chat_id: int,
    rng: Optional[random.Random] = None,
) -> Problem:
    """
    Выбирает случайную задачу из диапазона рейтингов чата, которую ещё никто не решал.

    Теги перебираются в случайном порядке, каждый не более одного раза.
    Если ни один тег не дал подходящих задач, бросает NoEligibleProblemError.
    """
    rng = rng or seeded_random(chat_id)
    known = await known_problems(state, client)
    rating_range = state.rating_range

    tags = list(TAGS)
    rng.shuffle(tags)
    for tag in tags:
        problems = await client.list_problems_by_tag([tag])
        admissible = [
            problem for problem in problems
            if problem.rating is not None
            and rating_range.contains(problem.rating)
            and problem.contest_id is not None
            and problem not in known
        ]
        logger.debug(f"Для тега {tag} в чате {chat_id} подходящих задач: {len(admissible)}")

        if admissible:
            return rng.choice(admissible)
        logger.warning(f"Тег {tag} не дал подходящих задач в чате {chat_id}")

    raise NoEligibleProblemError(
        f"Нет подходящих задач с рейтингом {rating_range} для чата {chat_id}"
    )
