"""
Hook and Middleware Contracts

Extension points consumed by XRaySession. Implementers supply any subset of
the methods below; the session only calls the ones that are present. Every
method may be a plain function or a coroutine function.

Hooks observe (and, for after_step_created, rewrite) the trace. Their
failures are isolated by the session. Middleware transforms the step builder
and its failures are step failures.

Usage:
    class Redact:
        def after_step_created(self, step):
            return step.replace(input="<redacted>")

    class SkipDebugSteps:
        def before_step(self, step_name):
            return not step_name.startswith("debug_")

    session = XRaySession(name="checkout", step_hooks=[Redact(), SkipDebugSteps()])
"""

import inspect
from typing import Any, Awaitable, Callable, Optional, Protocol, Union

from .models import Execution, StepRecord
from .step import StepBuilder

MaybeAwaitable = Union[Any, Awaitable[Any]]


class ExecutionHook(Protocol):
    """Execution lifecycle events (all optional)"""

    def on_execution_start(self, execution: Execution) -> MaybeAwaitable:
        ...

    def on_execution_complete(self, execution: Execution) -> MaybeAwaitable:
        ...

    def on_execution_error(self, execution: Execution, error: BaseException) -> MaybeAwaitable:
        ...


class StepHook(Protocol):
    """Step lifecycle events (all optional)"""

    def before_step(self, step_name: str) -> MaybeAwaitable:
        """Return False to skip the step; anything else continues"""
        ...

    def after_step_created(self, step: StepRecord) -> MaybeAwaitable:
        """Return a (possibly rewritten) step; None keeps the step unchanged"""
        ...

    def after_step_persisted(self, step: StepRecord) -> MaybeAwaitable:
        ...

    def on_step_error(self, step_name: str, error: BaseException) -> MaybeAwaitable:
        ...


class StepMiddleware(Protocol):
    """Builder transforms run around the step callback (both optional)"""

    def process(self, step_name: str, builder: StepBuilder) -> MaybeAwaitable:
        """Before the callback; returns the builder or a replacement"""
        ...

    def post_process(self, step_name: str, builder: StepBuilder) -> MaybeAwaitable:
        """After the callback; returns the builder or a replacement"""
        ...


def capability(obj: Any, method_name: str) -> Optional[Callable[..., Any]]:
    """The bound method `method_name` of `obj`, or None if it does not provide it"""
    method = getattr(obj, method_name, None)
    return method if callable(method) else None


async def resolve(value: Any) -> Any:
    """Await `value` if it is awaitable, otherwise return it unchanged"""
    if inspect.isawaitable(value):
        return await value
    return value
