"""
X-Ray SDK Errors

- ValidationError: bad name/tags/notes at construction; never retried
- StateError: step attempted on a completed execution
- PersistenceError: a storage operation failed
- HookError: a hook raised; logged by the session, never propagated by default
"""


class XRayError(Exception):
    """Base class for all X-Ray SDK errors"""


class ValidationError(XRayError, ValueError):
    """Invalid argument supplied to a session or step builder"""


class StateError(XRayError, RuntimeError):
    """Operation not allowed in the execution's current state"""


class PersistenceError(XRayError):
    """A storage backend failed to save or load trace data"""


class ExecutionNotFoundError(PersistenceError, LookupError):
    """The storage backend has no execution with the given id"""

    def __init__(self, execution_id: str):
        super().__init__(f"Execution {execution_id} not found")
        self.execution_id = execution_id


class HookError(XRayError):
    """A hook callback failed"""

    def __init__(self, hook: str, cause: BaseException):
        super().__init__(f"Hook {hook} failed: {cause}")
        self.hook = hook
        self.cause = cause
