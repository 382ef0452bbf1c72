"""
Сбор вердиктов участников и текст сообщения со статусом решения.
"""

from typing import Dict, Iterable, List, Optional

from ..types import ChannelState, Handle, Problem, SolvingStatus, Submission, VerdictCategory
from .codeforces import CodeforcesClient, CodeforcesError
from .logger import get_logger

logger = get_logger('verdicts')

ANNOUNCEMENT_PREFIX = "Задача дня: "

STATUS_GLYPHS = {
    VerdictCategory.CORRECT: "🟩",
    VerdictCategory.JUDGING_NOT_COMPLETED: "🟦",
    VerdictCategory.INCORRECT: "🟥",
    None: "⬜",
}


def merge_verdict(submissions: Iterable[Submission], problem: Problem) -> Optional[VerdictCategory]:
    """Лучшая категория вердикта среди посылок по задаче, None если посылок нет."""
    categories = [
        submission.verdict.category
        for submission in submissions
        if submission.verdict is not None and submission.problem == problem
    ]
    return max(categories, default=None)


async def collect_solving_status(
    state: ChannelState,
    client: CodeforcesClient,
    problems: Iterable[Problem],
) -> SolvingStatus:
    """Для каждой задачи собирает категории вердиктов всех зарегистрированных участников."""
    problems = list(problems)
    status: SolvingStatus = {problem: {} for problem in problems}

    for handle in set(state.registered_users.values()):
        try:
            submissions = await client.list_submissions(handle)
        except CodeforcesError as e:
            logger.error(f"Ошибка при получении посылок {handle}: {e}")
            continue

        for problem in problems:
            category = merge_verdict(submissions, problem)
            if category is not None:
                status[problem][Handle(handle)] = category

    return status


def _sort_key(entry):
    category, display_name = entry
    # Сначала решившие, потом ожидающие, потом неверные, в конце без посылок
    rank = -1 if category is None else int(category)
    return -rank, display_name


def render_status_message(
    state: ChannelState,
    problem: Problem,
    status: Dict[Handle, VerdictCategory],
) -> str:
    """Текст сообщения задачи дня со статусами участников."""
    lines: List[str] = [f"{ANNOUNCEMENT_PREFIX}{problem.url}"]

    if state.registered_users:
        entries = sorted(
            ((status.get(handle), display_name) for display_name, handle in state.registered_users.items()),
            key=_sort_key,
        )
        lines.append("")
        for category, display_name in entries:
            lines.append(f"{STATUS_GLYPHS[category]} {display_name}")

    return "\n".join(lines)
