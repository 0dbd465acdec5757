"""
X-Ray Tracer - Main SDK Interface

Holds the collaborators every session needs (store, hooks, middleware) and
hands out sessions. Also provides decorators that turn plain functions into
recorded steps.

Usage:
    tracer = XRayTracer.from_config()

    async with tracer.start_execution("competitor_selection", tags=["team-a"]) as session:
        await session.step("keyword_generation", lambda s: s.input(product).output(keywords))

        @xray_step(session, "search")
        async def search(keywords):
            return await search_api(keywords)

        results = await search(keywords)
"""

import functools
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Callable, Iterable, Mapping, Optional, Sequence, Union

from .client import ExportHook, XRayClient
from .config import XRayConfig, create_store, load_config
from .hooks import ExecutionHook, StepHook, StepMiddleware, resolve
from .models import Execution
from .session import XRaySession
from .step import StepBuilder
from .store import EventStore, InMemoryStore
from .utils import generate_id, utcnow
from .validation import validate_execution_name, validate_step_name


class XRayTracer:
    """
    Factory for sessions sharing one store and one set of hooks.

    Args:
        store: Where executions are persisted (a fresh InMemoryStore if omitted)
        step_hooks / execution_hooks / step_middleware: passed to every session
        enabled: If False, sessions run step callbacks but record nothing
            (production kill-switch)
        failure_policy: Passed to every session, see XRaySession
    """

    def __init__(
        self,
        store: Optional[EventStore] = None,
        step_hooks: Optional[Iterable[StepHook]] = None,
        execution_hooks: Optional[Iterable[ExecutionHook]] = None,
        step_middleware: Optional[Iterable[StepMiddleware]] = None,
        enabled: bool = True,
        failure_policy: Optional[Mapping] = None,
    ):
        self.store = store if store is not None else InMemoryStore()
        self.step_hooks = list(step_hooks or [])
        self.execution_hooks = list(execution_hooks or [])
        self.step_middleware = list(step_middleware or [])
        self.enabled = enabled
        self.failure_policy = failure_policy

    @classmethod
    def from_config(cls, config: Optional[XRayConfig] = None, **kwargs: Any) -> "XRayTracer":
        """Build a tracer from XRayConfig (loaded from the environment by default)"""
        config = config or load_config()
        execution_hooks = list(kwargs.pop("execution_hooks", None) or [])
        if config.collector_url:
            client = XRayClient(
                config.collector_url,
                timeout=config.collector_timeout,
                api_key=config.collector_api_key,
            )
            execution_hooks.append(ExportHook(client))
        return cls(store=create_store(config), execution_hooks=execution_hooks, **kwargs)

    def session(
        self,
        name: str,
        execution_id: Optional[str] = None,
        tags: Optional[Sequence[str]] = None,
        notes: Optional[str] = None,
    ) -> Union[XRaySession, "_NoOpSession"]:
        if not self.enabled:
            return _NoOpSession(name, execution_id)
        return XRaySession(
            name=name,
            store=self.store,
            execution_id=execution_id,
            step_hooks=self.step_hooks,
            execution_hooks=self.execution_hooks,
            step_middleware=self.step_middleware,
            tags=tags,
            notes=notes,
            failure_policy=self.failure_policy,
        )

    @asynccontextmanager
    async def start_execution(
        self,
        name: str,
        execution_id: Optional[str] = None,
        tags: Optional[Sequence[str]] = None,
        notes: Optional[str] = None,
    ) -> AsyncIterator[Union[XRaySession, "_NoOpSession"]]:
        """
        Open a session and complete it when the block exits, even on error.
        Errors raised inside the block are re-raised after completion.
        """
        session = self.session(name, execution_id=execution_id, tags=tags, notes=notes)
        async with session:
            yield session


def xray_step(session: Any, name: Optional[str] = None) -> Callable[[Callable], Callable]:
    """
    Decorator recording each call of the wrapped function as a step.

    The decorated function becomes a coroutine function whether or not the
    original was one.

    Usage:
        @xray_step(session, "keyword_generation")
        async def generate_keywords(product):
            ...
    """
    def decorator(fn: Callable) -> Callable:
        return with_xray_step(session, name or fn.__name__, fn)
    return decorator


def with_xray_step(session: Any, name: str, fn: Callable) -> Callable:
    """
    Wrap `fn` so each call is recorded as step `name` on `session`.

    Records {"args": [...]} (plus "kwargs" if any) as input and
    {"result": ...} as output. If a hook skips the step, `fn` still runs.
    """
    validate_step_name(name)

    @functools.wraps(fn)
    async def wrapper(*args: Any, **kwargs: Any) -> Any:
        outcome = {}

        async def record(step: StepBuilder) -> None:
            captured = {"args": list(args)}
            if kwargs:
                captured["kwargs"] = dict(kwargs)
            step.input(captured)
            outcome["ran"] = True
            result = await resolve(fn(*args, **kwargs))
            step.output({"result": result})
            outcome["result"] = result

        await session.step(name, record)
        if not outcome.get("ran"):
            return await resolve(fn(*args, **kwargs))
        return outcome["result"]

    return wrapper


class _NoOpSession:
    """Stand-in used when tracing is disabled; runs callbacks, stores nothing"""

    def __init__(self, name: str, execution_id: Optional[str] = None):
        validate_execution_name(name)
        self._execution = Execution(
            id=execution_id or generate_id("exec"),
            name=name,
            started_at=utcnow(),
        )

    async def __aenter__(self) -> "_NoOpSession":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        return None

    @property
    def is_completed(self) -> bool:
        return False

    def get_id(self) -> str:
        return self._execution.id

    def get_execution(self) -> Execution:
        return self._execution.copy()

    async def step(self, name: str, callback: Callable[[StepBuilder], Any]) -> "_NoOpSession":
        await resolve(callback(StepBuilder(name)))
        return self

    async def batch_steps(self, steps: Iterable[Any]) -> "_NoOpSession":
        for definition in steps:
            definition = XRaySession._as_batch_step(definition)
            await self.step(definition.name, definition.callback)
        return self

    async def complete(self) -> None:
        return None

