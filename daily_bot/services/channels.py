"""
Изменения состояния чата по командам пользователей.
"""

from ..types import ChannelState, Handle, RatingRange


class InvalidRatingRange(ValueError):
    """Нижняя граница больше верхней."""


def register_user(state: ChannelState, display_name: str, handle: Handle) -> None:
    """Регистрирует участника. Повторная регистрация имени заменяет хэндл."""
    state.registered_users[display_name] = handle


def set_rating_range(state: ChannelState, lower: int, upper: int) -> None:
    """Задаёт диапазон рейтингов задач. При lower > upper состояние не меняется."""
    if lower > upper:
        raise InvalidRatingRange(f"Нижняя граница {lower} больше верхней {upper}")
    state.custom_rating_range = RatingRange(lower, upper)


def format_registrations(state: ChannelState) -> str:
    """Текст со списком зарегистрированных участников."""
    lines = ["Зарегистрированные участники:"]
    for display_name, handle in sorted(state.registered_users.items()):
        lines.append(f"Имя: {display_name}\tХэндл: {handle}")
    return "\n".join(lines)
