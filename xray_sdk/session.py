"""
X-Ray Session - records one execution

A session owns one Execution for its lifetime. It is the only writer to the
in-memory execution and the only caller into the store.

Usage:
    session = XRaySession(name="competitor_selection", store=SQLStore())

    await session.step("keyword_generation", lambda s: s.input(product).output(keywords))

    async def rank(step):
        ranked = await rank_with_llm(candidates)
        step.evaluate(ranked, lambda c, i: {"min_rating": {"passed": c["rating"] >= 4, "detail": ""}})
        step.select(ranked[0]["id"], "highest relevance score")

    await session.step("rank", rank)
    await session.complete()

State machine: OPEN -> COMPLETED, exactly once. The execution shell is written
to the store lazily, on the first step call (or by complete()).

Failures are handled per call site, see FAILURE_POLICY below:
    - persisting the shell: logged, the step still runs
    - persisting a step / the final save: raised to the caller
    - hooks: logged, never interrupt the operation

step(), batch_steps() and complete() are serialized per session, so steps
land in the order the calls were issued even if the caller does not await
each one. A step callback may itself record nested steps on the same session,
directly or from tasks it spawns; those are serialized in issue order too.
"""

import asyncio
import inspect
from collections.abc import Mapping
from contextlib import asynccontextmanager
from contextvars import ContextVar
from enum import Enum
from types import MappingProxyType
from typing import Any, Callable, Iterable, List, NamedTuple, Optional, Sequence, Tuple, Union

import structlog

from .errors import HookError, StateError
from .hooks import ExecutionHook, StepHook, StepMiddleware, capability, resolve
from .models import Execution, StepRecord
from .step import StepBuilder
from .store import EventStore, InMemoryStore
from .utils import generate_id, utcnow, utcnow_after
from .validation import (
    validate_execution_id,
    validate_execution_name,
    validate_notes,
    validate_step_name,
    validate_tags,
)

logger = structlog.get_logger(__name__)

StepCallback = Callable[[StepBuilder], Any]


class SessionState(str, Enum):
    OPEN = "open"
    COMPLETED = "completed"


class CallSite(str, Enum):
    """Places where the session talks to something that can fail"""
    PERSIST_SHELL = "persist_shell"  # lazy first save of the execution
    PERSIST_STEP = "persist_step"  # store.add_step
    FINALIZE = "finalize"  # final save in complete()
    HOOK = "hook"  # any hook method


class FailurePolicy(str, Enum):
    SWALLOW = "swallow"  # log and carry on
    PROPAGATE = "propagate"  # log and re-raise


FAILURE_POLICY = MappingProxyType({
    CallSite.PERSIST_SHELL: FailurePolicy.SWALLOW,
    CallSite.PERSIST_STEP: FailurePolicy.PROPAGATE,
    CallSite.FINALIZE: FailurePolicy.PROPAGATE,
    CallSite.HOOK: FailurePolicy.SWALLOW,
})


class BatchStep(NamedTuple):
    name: str
    callback: StepCallback


# Session id -> lock that work started inside a held section must take.
# Each held section gets a fresh child lock, so nested calls and tasks spawned
# from a step callback queue among themselves instead of on the parent lock.
_held_sessions: ContextVar[Mapping] = ContextVar("xray_held_sessions", default=MappingProxyType({}))

# Returned by _call_hook when the hook lacks the method or the call failed
_NO_RESULT = object()


class XRaySession:
    """
    Coordinates step creation and completion for one Execution.

    Args:
        name: Human-readable execution name (non-empty)
        store: Where the execution is persisted (a fresh InMemoryStore if omitted)
        execution_id: Custom id (otherwise generated)
        step_hooks: Objects with any of before_step, after_step_created,
            after_step_persisted, on_step_error
        execution_hooks: Objects with any of on_execution_start,
            on_execution_complete, on_execution_error
        step_middleware: Objects with process and/or post_process
        tags: Optional list of strings for categorization
        notes: Optional free-form description
        failure_policy: Overrides for FAILURE_POLICY, keyed by CallSite
    """

    def __init__(
        self,
        name: str,
        store: Optional[EventStore] = None,
        execution_id: Optional[str] = None,
        step_hooks: Optional[Iterable[StepHook]] = None,
        execution_hooks: Optional[Iterable[ExecutionHook]] = None,
        step_middleware: Optional[Iterable[StepMiddleware]] = None,
        tags: Optional[Sequence[str]] = None,
        notes: Optional[str] = None,
        failure_policy: Optional[Mapping] = None,
    ):
        validate_execution_name(name)
        if execution_id is not None:
            validate_execution_id(execution_id)
        validate_tags(tags)
        validate_notes(notes)

        self._store = store if store is not None else InMemoryStore()
        self._step_hooks = list(step_hooks or [])
        self._execution_hooks = list(execution_hooks or [])
        self._step_middleware = list(step_middleware or [])
        self._policy = dict(FAILURE_POLICY)
        for site, policy in (failure_policy or {}).items():
            self._policy[CallSite(site)] = FailurePolicy(policy)

        fields = {
            "id": execution_id or generate_id("exec"),
            "name": name,
            "started_at": utcnow(),
        }
        if tags is not None:
            fields["tags"] = list(tags)
        if notes is not None:
            fields["notes"] = notes
        self._execution = Execution(**fields)
        self._state = SessionState.OPEN
        self._lock: Optional[asyncio.Lock] = None
        self._log = logger.bind(execution_id=self._execution.id)

        self._pending_start = self._notify_start()

    def __repr__(self) -> str:
        return f"XRaySession(id={self._execution.id!r}, name={self._execution.name!r}, state={self._state.value})"

    async def __aenter__(self) -> "XRaySession":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if exc_type is None:
            await self.complete()
            return
        # Keep the caller's exception; a failed final save is only logged here
        try:
            await self.complete()
        except Exception as complete_exc:
            self._log.error("session.complete_after_error_failed", error=str(complete_exc))

    # --- Public surface ---

    @property
    def execution_id(self) -> str:
        return self._execution.id

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def is_completed(self) -> bool:
        return self._state is SessionState.COMPLETED

    def get_id(self) -> str:
        return self._execution.id

    def get_execution(self) -> Execution:
        """Read-only snapshot; changing it does not affect the session"""
        return self._execution.copy()

    async def step(self, name: str, callback: StepCallback) -> "XRaySession":
        """
        Record one step.

        `callback` receives a StepBuilder and may be a plain function or a
        coroutine function. The step is persisted before this returns.

        Raises:
            ValidationError: empty name
            StateError: the execution is already completed
            Exception: whatever the callback, middleware or store raised
        """
        validate_step_name(name)
        self._ensure_open()

        async with self._serialized():
            self._ensure_open()
            await self._drain_start_hooks()
            await self._persist_shell_if_needed()

            record = await self._build_step(name, callback)
            if record is not None:
                await self._commit_step(record)

        return self

    async def batch_steps(
        self,
        steps: Iterable[Union[BatchStep, Tuple[str, StepCallback], Mapping]],
    ) -> "XRaySession":
        """
        Build every step first, then persist them in order.

        A failure while building aborts the batch before anything is
        persisted. A failure while persisting stops the remaining writes but
        does not undo the steps already written.
        """
        definitions = [self._as_batch_step(definition) for definition in steps]
        for definition in definitions:
            validate_step_name(definition.name)
        self._ensure_open()

        async with self._serialized():
            self._ensure_open()
            await self._drain_start_hooks()
            await self._persist_shell_if_needed()

            built: List[StepRecord] = []
            for definition in definitions:
                record = await self._build_step(definition.name, definition.callback)
                if record is not None:
                    built.append(record)

            for record in built:
                await self._commit_step(record)

        return self

    async def complete(self) -> None:
        """
        Mark the execution completed and save it with all its steps.

        Calling it again is a no-op. If the final save fails the execution
        stays completed in memory (the store may still show it open),
        on_execution_error hooks run and the error is raised.
        """
        if self.is_completed:
            return

        async with self._serialized():
            if self.is_completed:
                return
            await self._drain_start_hooks()

            self._execution.completed_at = utcnow_after(self._execution.started_at)
            self._state = SessionState.COMPLETED

            try:
                await self._store.save_execution(self._execution.copy())
            except Exception as exc:
                propagate = self._should_propagate(CallSite.FINALIZE, exc)
                await self._fire_execution_hooks("on_execution_error", exc)
                if propagate:
                    raise
                return

            self._log.info("session.completed", steps=len(self._execution.steps))
            await self._fire_execution_hooks("on_execution_complete")

    # --- Step pipeline ---

    async def _build_step(self, name: str, callback: StepCallback) -> Optional[StepRecord]:
        """Run hooks, middleware and the callback; None means the step was skipped"""
        if not await self._before_step(name):
            self._log.debug("session.step_skipped", step=name)
            return None

        result = None
        try:
            builder = StepBuilder(name)
            builder = await self._apply_middleware("process", name, builder)

            result = callback(builder)
            builder = await self._apply_middleware("post_process", name, builder)
            await resolve(result)
            builder = await self._apply_middleware("post_process", name, builder)

            return await self._after_step_created(builder.build())
        except Exception as exc:
            if inspect.iscoroutine(result):
                result.close()
            self._log.error("session.step_failed", step=name, error=str(exc))
            await self._fire_step_hooks("on_step_error", name, exc)
            raise

    async def _commit_step(self, record: StepRecord) -> None:
        # complete() may have run from inside the callback
        if self.is_completed:
            error = StateError("Cannot add steps to a completed execution")
            await self._fire_step_hooks("on_step_error", record.name, error)
            raise error

        try:
            await self._store.add_step(self._execution.id, record)
        except Exception as exc:
            propagate = self._should_propagate(CallSite.PERSIST_STEP, exc, step=record.name)
            await self._fire_step_hooks("on_step_error", record.name, exc)
            if propagate:
                raise
            return

        # Only after the store accepted it
        self._execution.steps.append(record)
        await self._fire_step_hooks("after_step_persisted", record.model_copy(deep=True))

    async def _persist_shell_if_needed(self) -> None:
        if self._execution.steps:
            return
        try:
            await self._store.save_execution(self._execution.copy())
        except Exception as exc:
            if self._should_propagate(CallSite.PERSIST_SHELL, exc):
                raise

    async def _apply_middleware(self, method_name: str, name: str, builder: StepBuilder) -> StepBuilder:
        for middleware in self._step_middleware:
            method = capability(middleware, method_name)
            if method is None:
                continue
            replacement = await resolve(method(name, builder))
            if not callable(getattr(replacement, "build", None)):
                raise TypeError(
                    f"{type(middleware).__name__}.{method_name} must return a step builder, "
                    f"got {type(replacement).__name__}"
                )
            builder = replacement
        return builder

    # --- Hooks ---

    async def _call_hook(self, hook: Any, method_name: str, *args: Any) -> Any:
        method = capability(hook, method_name)
        if method is None:
            return _NO_RESULT
        try:
            return await resolve(method(*args))
        except Exception as exc:
            if self._should_propagate(CallSite.HOOK, exc, hook=method_name):
                raise HookError(method_name, exc) from exc
            return _NO_RESULT

    async def _before_step(self, name: str) -> bool:
        for hook in self._step_hooks:
            # Only an explicit False skips; errors and other values continue
            if await self._call_hook(hook, "before_step", name) is False:
                return False
        return True

    async def _after_step_created(self, step: StepRecord) -> StepRecord:
        for hook in self._step_hooks:
            result = await self._call_hook(hook, "after_step_created", step.model_copy(deep=True))
            if isinstance(result, StepRecord):
                step = result.model_copy(deep=True)
            elif result is not None and result is not _NO_RESULT:
                self._log.warning(
                    "session.hook_result_ignored",
                    hook="after_step_created",
                    result_type=type(result).__name__,
                )
        return step

    async def _fire_step_hooks(self, method_name: str, *args: Any) -> None:
        for hook in self._step_hooks:
            await self._call_hook(hook, method_name, *args)

    async def _fire_execution_hooks(self, method_name: str, *args: Any) -> None:
        for hook in self._execution_hooks:
            await self._call_hook(hook, method_name, self.get_execution(), *args)

    def _notify_start(self) -> List[Any]:
        """
        Call on_execution_start hooks from the constructor.

        Awaitables they return are kept and awaited by the first step(),
        batch_steps() or complete() call.
        """
        pending = []
        for hook in self._execution_hooks:
            method = capability(hook, "on_execution_start")
            if method is None:
                continue
            try:
                result = method(self.get_execution())
            except Exception as exc:
                if self._should_propagate(CallSite.HOOK, exc, hook="on_execution_start"):
                    raise HookError("on_execution_start", exc) from exc
                continue
            if inspect.isawaitable(result):
                pending.append(result)
        return pending

    async def _drain_start_hooks(self) -> None:
        pending, self._pending_start = self._pending_start, []
        for awaitable in pending:
            try:
                await awaitable
            except Exception as exc:
                if self._should_propagate(CallSite.HOOK, exc, hook="on_execution_start"):
                    raise HookError("on_execution_start", exc) from exc

    # --- Helpers ---

    def _should_propagate(self, site: CallSite, exc: BaseException, **context: Any) -> bool:
        """Log a failure at `site` and tell the caller whether to re-raise it"""
        propagate = self._policy[site] is FailurePolicy.PROPAGATE
        self._log.error(
            f"session.{site.value}_failed",
            error=str(exc),
            error_type=type(exc).__name__,
            propagated=propagate,
            **context,
        )
        return propagate

    def _ensure_open(self) -> None:
        if self._state is SessionState.COMPLETED:
            raise StateError("Cannot add steps to a completed execution")

    @asynccontextmanager
    async def _serialized(self):
        held = _held_sessions.get()
        lock = held.get(id(self))
        if lock is None:
            if self._lock is None:
                self._lock = asyncio.Lock()
            lock = self._lock
        async with lock:
            token = _held_sessions.set(MappingProxyType({**held, id(self): asyncio.Lock()}))
            try:
                yield
            finally:
                _held_sessions.reset(token)

    @staticmethod
    def _as_batch_step(definition: Any) -> BatchStep:
        if isinstance(definition, BatchStep):
            return definition
        if isinstance(definition, Mapping):
            return BatchStep(definition["name"], definition["callback"])
        name, callback = definition
        return BatchStep(name, callback)
