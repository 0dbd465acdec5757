"""
X-Ray SDK - Decision transparency for multi-step, non-deterministic pipelines

Public API:
    - XRaySession: Records one execution, step by step
    - StepBuilder: Captures one step's input, output, evaluations and selection
    - XRayTracer: Creates sessions sharing a store, hooks and middleware
    - InMemoryStore / SQLStore: Storage backends
    - xray_step / with_xray_step: Record function calls as steps
"""

from .client import ExportHook, XRayClient
from .config import XRayConfig, create_store, load_config
from .errors import (
    ExecutionNotFoundError,
    HookError,
    PersistenceError,
    StateError,
    ValidationError,
    XRayError,
)
from .hooks import ExecutionHook, StepHook, StepMiddleware
from .models import CandidateEvaluation, Execution, FilterResult, Selection, StepRecord
from .session import BatchStep, CallSite, FailurePolicy, SessionState, XRaySession
from .step import StepBuilder
from .store import EventStore, InMemoryStore, SQLStore, supports
from .tracer import XRayTracer, with_xray_step, xray_step

__version__ = "0.2.0"

__all__ = [
    "XRaySession",
    "BatchStep",
    "SessionState",
    "CallSite",
    "FailurePolicy",
    "StepBuilder",
    "XRayTracer",
    "xray_step",
    "with_xray_step",
    "Execution",
    "StepRecord",
    "CandidateEvaluation",
    "FilterResult",
    "Selection",
    "StepHook",
    "ExecutionHook",
    "StepMiddleware",
    "EventStore",
    "InMemoryStore",
    "SQLStore",
    "supports",
    "XRayClient",
    "ExportHook",
    "XRayConfig",
    "load_config",
    "create_store",
    "XRayError",
    "ValidationError",
    "StateError",
    "PersistenceError",
    "ExecutionNotFoundError",
    "HookError",
]
