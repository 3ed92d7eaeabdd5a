"""Posts and todos services built on the resilience combinators.

Two interchangeable backends expose the same operations: an in-memory one
over an explicitly owned ``PostStore`` (simulated latency and flakiness), and
an HTTP one over a ``TransportClient`` talking to a JSONPlaceholder-style API.
The workflow functions at the bottom show the combinators in real use.
"""

from __future__ import annotations

import asyncio
from collections import Counter
from dataclasses import dataclass, field
import logging
import math
import random
import time
from typing import TYPE_CHECKING, Any, Protocol

from pydantic import BaseModel, ConfigDict, Field

from steadfast.codec import decode
from steadfast.concurrency import run_all
from steadfast.operation import attempt, invoke
from steadfast.result import Err, Ok
from steadfast.retry import RetryPolicy
from steadfast.runner import OperationRunner, RunPolicy
from steadfast.scope import with_resource
from steadfast.taxonomy import NotFound, Transport
from steadfast.timeout import with_timeout
from steadfast.transport import Request

if TYPE_CHECKING:
    from collections.abc import Callable

    from steadfast.operation import Operation
    from steadfast.result import Result
    from steadfast.taxonomy import AppError
    from steadfast.transport import TransportClient

logger = logging.getLogger(__name__)

BASE_URL = "https://jsonplaceholder.typicode.com"
USER_AGENT = "steadfast/0.1"


class Post(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: int
    title: str
    body: str
    user_id: int = Field(alias="userId")


class Todo(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: int
    title: str
    completed: bool
    user_id: int = Field(alias="userId")


def _demo_posts() -> list[Post]:
    return [
        Post(
            id=1,
            title="Effect-TS: Functional Programming Made Easy",
            body="Effect-TS provides a powerful toolkit for building robust, type-safe applications with composable effects.",
            user_id=1,
        ),
        Post(
            id=2,
            title="SvelteKit: The Modern Web Framework",
            body="SvelteKit offers the best developer experience with its component-based architecture and server-side rendering.",
            user_id=1,
        ),
        Post(
            id=3,
            title="Combining Effect and SvelteKit",
            body="Learn how to integrate Effect-TS with SvelteKit for building scalable web applications.",
            user_id=2,
        ),
    ]


def _demo_todos() -> list[Todo]:
    return [
        Todo(id=1, title="Learn Effect-TS basics", completed=True, user_id=1),
        Todo(id=2, title="Build a SvelteKit app", completed=True, user_id=1),
        Todo(id=3, title="Integrate Effect with SvelteKit", completed=False, user_id=1),
        Todo(id=4, title="Write comprehensive documentation", completed=False, user_id=2),
        Todo(id=5, title="Create example applications", completed=True, user_id=2),
    ]


@dataclass
class PostStore:
    """In-memory posts and todos, owned by whoever constructs it."""

    posts: list[Post] = field(default_factory=list)
    todos: list[Todo] = field(default_factory=list)

    @classmethod
    def seeded(cls) -> PostStore:
        return cls(posts=_demo_posts(), todos=_demo_todos())

    def find_post(self, post_id: int) -> Post | None:
        return next((p for p in self.posts if p.id == post_id), None)

    def todos_for(self, user_id: int | None) -> list[Todo]:
        if user_id is None:
            return list(self.todos)
        return [t for t in self.todos if t.user_id == user_id]


def _matches(post: Post, query: str) -> bool:
    needle = query.lower()
    return needle in post.title.lower() or needle in post.body.lower()


class PostsApi(Protocol):
    """Operations every posts backend provides."""

    def get_posts(self) -> Operation[list[Post], AppError]: ...  # noqa: D102
    def get_post(self, post_id: int) -> Operation[Post, AppError]: ...  # noqa: D102
    def get_todos(self, user_id: int | None = None) -> Operation[list[Todo], AppError]: ...  # noqa: D102
    def search_posts(self, query: str) -> Operation[list[Post], AppError]: ...  # noqa: D102


class InMemoryPostService:
    """Posts backend over a ``PostStore`` with simulated network behavior.

    Each call sleeps for a latency drawn from *latency_s* and fails with a
    ``Transport`` error with probability *failure_rate*.
    """

    def __init__(
        self,
        store: PostStore,
        *,
        latency_s: tuple[float, float] | None = (0.1, 0.6),
        failure_rate: float = 0.1,
        rng: random.Random | None = None,
    ) -> None:
        if not 0.0 <= failure_rate <= 1.0:
            raise ValueError(f"failure_rate must be within [0, 1], got {failure_rate}")
        self.store = store
        self.latency_s = latency_s
        self.failure_rate = failure_rate
        self._rng = rng or random.Random()

    def _simulate[T](self, produce: Callable[[], Result[T, AppError]]) -> Operation[T, AppError]:
        async def _call() -> Result[T, AppError]:
            if self.latency_s is not None:
                await asyncio.sleep(self._rng.uniform(*self.latency_s))
            if self._rng.random() < self.failure_rate:
                return Err(Transport("Network request failed"))
            return produce()

        return _call

    def get_posts(self) -> Operation[list[Post], AppError]:
        return self._simulate(lambda: Ok(list(self.store.posts)))

    def get_post(self, post_id: int) -> Operation[Post, AppError]:
        def _lookup() -> Result[Post, AppError]:
            post = self.store.find_post(post_id)
            if post is None:
                return Err(NotFound(f"Post with ID {post_id} not found", identifier=post_id))
            return Ok(post)

        return self._simulate(_lookup)

    def get_todos(self, user_id: int | None = None) -> Operation[list[Todo], AppError]:
        return self._simulate(lambda: Ok(self.store.todos_for(user_id)))

    def search_posts(self, query: str) -> Operation[list[Post], AppError]:
        return self._simulate(
            lambda: Ok([p for p in self.store.posts if _matches(p, query)])
        )


class HttpPostService:
    """Posts backend over HTTP."""

    def __init__(self, transport: TransportClient, *, base_url: str = BASE_URL) -> None:
        self.transport = transport
        self.base_url = base_url.rstrip("/")

    def _get[T](self, path: str, schema: Any) -> Operation[T, AppError]:
        request = Request(
            url=f"{self.base_url}{path}",
            headers={"Content-Type": "application/json", "User-Agent": USER_AGENT},
        )

        async def _call() -> Result[T, AppError]:
            sent = await self.transport.send(request)
            if isinstance(sent, Err):
                return sent
            return decode(schema, sent.value.content)

        return _call

    def get_posts(self) -> Operation[list[Post], AppError]:
        return self._get("/posts", list[Post])

    def get_post(self, post_id: int) -> Operation[Post, AppError]:
        return self._get(f"/posts/{post_id}", Post)

    def get_todos(self, user_id: int | None = None) -> Operation[list[Todo], AppError]:
        path = "/todos" if user_id is None else f"/todos?userId={user_id}"
        return self._get(path, list[Todo])

    def search_posts(self, query: str) -> Operation[list[Post], AppError]:
        fetch = self.get_posts()

        async def _search() -> Result[list[Post], AppError]:
            outcome = await invoke(fetch)
            return outcome.map(lambda posts: [p for p in posts if _matches(p, query)])

        return _search


# =============================================================================
# Workflows
# =============================================================================


FETCH_RETRY = RetryPolicy(max_attempts=3, base_delay_s=0.1, jitter=False)
USER_DATA_TIMEOUT_S = 5.0


@dataclass(frozen=True)
class UserSummary:
    total_todos: int
    completed_todos: int
    post_title: str


@dataclass(frozen=True)
class UserData:
    post: Post
    todos: list[Todo]
    summary: UserSummary


@dataclass(frozen=True)
class PostStats:
    total: int
    batches: int
    avg_title_length: float
    user_post_counts: dict[int, int]
    top_users: list[tuple[int, int]]
    processing_time_s: float


@dataclass
class ProcessingContext:
    started_at: float
    processed: int = 0


async def fetch_posts_with_retry(
    service: PostsApi, runner: OperationRunner
) -> Result[list[Post], AppError]:
    """Fetch all posts, retrying transient failures with exponential backoff."""
    return await runner.run(service.get_posts(), RunPolicy(retry=FETCH_RETRY))


def fallback_post(post_id: int) -> Post:
    return Post(
        id=post_id,
        title="Fallback Post",
        body="This is a fallback post when the original could not be loaded.",
        user_id=0,
    )


async def fetch_post_with_fallback(
    service: PostsApi, post_id: int, runner: OperationRunner
) -> Result[Post, AppError]:
    """Fetch one post; any failure (a missing id included) yields a placeholder."""

    def _log_discarded(error: AppError) -> None:
        logger.info("Serving fallback for post %s: %s", post_id, error)

    policy = RunPolicy(fallback=fallback_post(post_id), on_fallback=_log_discarded)
    return await runner.run(service.get_post(post_id), policy)


async def fetch_user_data(
    service: PostsApi, user_id: int, runner: OperationRunner
) -> Result[UserData, AppError]:
    """Fetch a user's post and todos in parallel under a 5s deadline."""
    post_op = service.get_post(user_id)
    todos_op = service.get_todos(user_id)

    async def _both() -> Result[list[Any], AppError]:
        return await run_all([post_op, todos_op], 2)

    outcome = await runner.run(with_timeout(_both, USER_DATA_TIMEOUT_S), RunPolicy())
    if isinstance(outcome, Err):
        return outcome

    post, todos = outcome.value
    return Ok(
        UserData(
            post=post,
            todos=todos,
            summary=UserSummary(
                total_todos=len(todos),
                completed_todos=sum(1 for t in todos if t.completed),
                post_title=post.title,
            ),
        )
    )


def _post_stats(posts: list[Post], *, batch_size: int, started_at: float) -> PostStats:
    counts = Counter(p.user_id for p in posts)
    return PostStats(
        total=len(posts),
        batches=math.ceil(len(posts) / batch_size),
        avg_title_length=(
            sum(len(p.title) for p in posts) / len(posts) if posts else 0.0
        ),
        user_post_counts=dict(counts),
        top_users=counts.most_common(3),
        processing_time_s=time.monotonic() - started_at,
    )


async def summarize_posts(
    service: PostsApi, runner: OperationRunner, *, batch_size: int = 5
) -> Result[PostStats, AppError]:
    """Compute post statistics inside a processing scope.

    The scope's release logs how many posts were processed and how long it
    took, whether or not fetching succeeded.
    """
    if batch_size < 1:
        raise ValueError(f"batch_size must be >= 1, got {batch_size}")

    def _open() -> ProcessingContext:
        logger.info("Starting post processing")
        return ProcessingContext(started_at=time.monotonic())

    async def _process(ctx: ProcessingContext) -> Result[PostStats, AppError]:
        outcome = await invoke(service.get_posts())
        if isinstance(outcome, Err):
            return outcome
        ctx.processed = len(outcome.value)
        return Ok(_post_stats(outcome.value, batch_size=batch_size, started_at=ctx.started_at))

    def _close(ctx: ProcessingContext) -> None:
        elapsed_ms = (time.monotonic() - ctx.started_at) * 1000
        logger.info("Processed %d posts in %.0fms", ctx.processed, elapsed_ms)

    return await runner.run(with_resource(attempt(_open), _process, _close), RunPolicy())
