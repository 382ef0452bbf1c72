"""
Клиент API Codeforces с ограничением частоты запросов и запасным кэшем.
"""

import asyncio
import random
import time
from typing import Any, Dict, Generic, Iterable, List, Optional, Tuple, TypeVar

import aiohttp

from ..types import Handle, Problem, Submission
from .logger import bot_logger, get_logger

logger = get_logger('codeforces')

API_BASE = "https://codeforces.com/api"

# HTTP статусы, которыми Codeforces сообщает о перегрузке
OVERLOAD_STATUSES = frozenset({429, 503})

TAGS = (
    "2-sat",
    "binary search",
    "bitmasks",
    "brute force",
    "chinese remainder theorem",
    "combinatorics",
    "constructive algorithms",
    "data structures",
    "dfs and similar",
    "divide and conquer",
    "dp",
    "dsu",
    "expression parsing",
    "fft",
    "flows",
    "games",
    "geometry",
    "graph matchings",
    "graphs",
    "greedy",
    "hashing",
    "implementation",
    "math",
    "matrices",
    "meet-in-the-middle",
    "number theory",
    "probabilities",
    "schedules",
    "shortest paths",
    "sortings",
    "string suffix structures",
    "strings",
    "ternary search",
    "trees",
    "two pointers",
)

T = TypeVar('T')
CacheKey = Tuple[str, Tuple[Tuple[str, str], ...]]


class CodeforcesError(Exception):
    """Codeforces не выполнил запрос."""


class RateLimiter:
    """Минимальный интервал между запросами плюс случайная задержка."""

    def __init__(self, min_interval: float = 3.0, jitter: Tuple[float, float] = (0.05, 0.5)):
        self.min_interval = min_interval
        self.jitter = jitter
        self._lock = asyncio.Lock()
        self._last_call: Optional[float] = None

    async def wait(self) -> None:
        async with self._lock:
            if self._last_call is not None and self.min_interval > 0:
                elapsed = time.monotonic() - self._last_call
                delay = self.min_interval - elapsed
                if delay > 0:
                    await asyncio.sleep(delay + random.uniform(*self.jitter))
            self._last_call = time.monotonic()


class ResponseCache(Generic[T]):
    """Кэш последних успешных ответов одного метода API. Записи не устаревают."""

    def __init__(self, endpoint: str):
        self.endpoint = endpoint
        self._entries: Dict[CacheKey, T] = {}

    def key(self, params: Dict[str, str]) -> CacheKey:
        return self.endpoint, tuple(sorted(params.items()))

    def get(self, params: Dict[str, str]) -> Optional[T]:
        return self._entries.get(self.key(params))

    def put(self, params: Dict[str, str], value: T) -> None:
        self._entries[self.key(params)] = value

    def __len__(self) -> int:
        return len(self._entries)


class CodeforcesClient:
    """Общий на весь процесс клиент API Codeforces."""

    def __init__(
        self,
        base_url: str = API_BASE,
        min_interval: float = 3.0,
        timeout: float = 30.0,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        self.base_url = base_url.rstrip('/')
        self.rate_limiter = RateLimiter(min_interval)
        self.timeout = aiohttp.ClientTimeout(total=timeout)
        self._session = session
        self._owns_session = session is None
        self.problems_cache: ResponseCache[List[Problem]] = ResponseCache('problemset.problems')
        self.submissions_cache: ResponseCache[List[Submission]] = ResponseCache('user.status')
        self.users_cache: ResponseCache[List[Dict[str, Any]]] = ResponseCache('user.info')

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self.timeout)
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        if self._session is not None and self._owns_session and not self._session.closed:
            await self._session.close()

    async def _call(self, cache: ResponseCache[T], params: Dict[str, str], parse) -> T:
        """
        Выполняет запрос к методу API.

        При перегрузке Codeforces возвращает последний успешный ответ на тот же
        запрос, если он есть. Иначе ответ обязан иметь статус "OK".
        """
        await self.rate_limiter.wait()

        url = f"{self.base_url}/{cache.endpoint}"
        bot_logger.log_api_call(url)
        logger.debug(f"🌐 Запрос {url} {params}")

        try:
            async with self._get_session().get(url, params=params) as response:
                if response.status in OVERLOAD_STATUSES:
                    logger.warning(f"⚠️ Codeforces перегружен ({response.status}), используем кэш")
                    cached = cache.get(params)
                    if cached is not None:
                        logger.debug(f"\tИз кэша: {url} {params}")
                        bot_logger.log_cache_fallback(url)
                        return cached
                    logger.warning(f"\tНет в кэше: {url} {params}")

                try:
                    data = await response.json(content_type=None)
                except ValueError as e:
                    raise CodeforcesError(
                        f"Codeforces вернул не JSON (HTTP {response.status}) для {url}"
                    ) from e
        except aiohttp.ClientError as e:
            raise CodeforcesError(f"Ошибка соединения с Codeforces ({url}): {e}") from e
        except asyncio.TimeoutError as e:
            raise CodeforcesError(f"Codeforces не ответил за {self.timeout.total}с ({url})") from e

        if not isinstance(data, dict) or data.get('status') != 'OK':
            comment = data.get('comment') if isinstance(data, dict) else None
            raise CodeforcesError(f"Codeforces не выполнил запрос. Комментарий: {comment!r}")
        if 'result' not in data:
            raise CodeforcesError("Codeforces не вернул result")

        try:
            result = parse(data['result'])
        except (KeyError, TypeError) as e:
            raise CodeforcesError(f"Неожиданный формат ответа {cache.endpoint}: {e!r}") from e
        cache.put(params, result)
        return result

    async def validate_handle(self, name: str) -> Optional[Handle]:
        """Возвращает проверенный хэндл, если Codeforces знает такого пользователя."""
        try:
            await self._call(self.users_cache, {'handles': name}, list)
        except CodeforcesError as e:
            logger.info(f"Хэндл {name!r} не прошёл проверку: {e}")
            return None
        return Handle(name)

    async def list_problems_by_tag(self, tags: Iterable[str]) -> List[Problem]:
        """Возвращает задачи, у которых есть все перечисленные теги."""
        params = {'tags': ';'.join(tags)}
        return await self._call(
            self.problems_cache,
            params,
            lambda result: [Problem.from_api(p) for p in result['problems']],
        )

    async def list_submissions(self, handle: str) -> List[Submission]:
        """Возвращает все посылки пользователя."""
        return await self._call(
            self.submissions_cache,
            {'handle': handle},
            lambda result: [Submission.from_api(s) for s in result],
        )
