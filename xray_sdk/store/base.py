"""
Storage contract used by XRaySession

Implementations can use memory, SQLite, PostgreSQL or any other backend, as
long as they honor these semantics:

- save_execution: idempotent upsert by execution id; afterwards every step
  the execution carried is retrievable
- get_execution: a value copy, or None; mutating it never affects the store
- list_executions: stable order (newest started_at first, ties by id),
  `offset` then `limit` applied independently; omitted bounds return everything
- add_step: raises ExecutionNotFoundError for unknown ids; idempotent by step id
  (re-adding overwrites, never duplicates)

count_executions, delete_execution and delete_executions are optional. Use
`supports()` to feature-detect them.
"""

from abc import ABC, abstractmethod
from typing import Any, List, Optional

from ..models import Execution, StepRecord

OPTIONAL_CAPABILITIES = ("count_executions", "delete_execution", "delete_executions")


class EventStore(ABC):
    """Abstract persistence interface for X-Ray executions"""

    @abstractmethod
    async def save_execution(self, execution: Execution) -> None:
        """Save or update an execution"""

    @abstractmethod
    async def get_execution(self, execution_id: str) -> Optional[Execution]:
        """Retrieve an execution by id"""

    @abstractmethod
    async def list_executions(
        self,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
    ) -> List[Execution]:
        """List executions with pagination"""

    @abstractmethod
    async def add_step(self, execution_id: str, step: StepRecord) -> None:
        """Append a step to an existing execution"""


def supports(store: Any, capability_name: str) -> bool:
    """True if `store` implements the optional method `capability_name`"""
    if capability_name not in OPTIONAL_CAPABILITIES:
        raise ValueError(f"{capability_name} is not an optional store capability")
    return callable(getattr(store, capability_name, None))


def page(items: List[Any], limit: Optional[int], offset: Optional[int]) -> List[Any]:
    if offset is not None:
        items = items[max(offset, 0):]
    if limit is not None:
        items = items[:max(limit, 0)]
    return items
