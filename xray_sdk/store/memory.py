"""
In-memory EventStore for tests, notebooks and local development

Everything is copied on the way in and on the way out, so callers can never
reach the stored objects.
"""

from typing import Dict, List, Optional

from ..errors import ExecutionNotFoundError
from ..models import Execution, StepRecord
from .base import EventStore, page


class InMemoryStore(EventStore):
    """Volatile store; all data is lost with the process"""

    def __init__(self):
        self._executions: Dict[str, Execution] = {}

    async def save_execution(self, execution: Execution) -> None:
        self._executions[execution.id] = execution.copy()

    async def get_execution(self, execution_id: str) -> Optional[Execution]:
        execution = self._executions.get(execution_id)
        return execution.copy() if execution else None

    async def list_executions(
        self,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
    ) -> List[Execution]:
        # Two stable sorts: by id, then newest first
        ordered = sorted(self._executions.values(), key=lambda e: e.id)
        ordered.sort(key=lambda e: e.started_at, reverse=True)
        return [e.copy() for e in page(ordered, limit, offset)]

    async def count_executions(self) -> int:
        return len(self._executions)

    async def add_step(self, execution_id: str, step: StepRecord) -> None:
        execution = self._executions.get(execution_id)
        if execution is None:
            raise ExecutionNotFoundError(execution_id)

        stored = step.model_copy(deep=True)
        for index, existing in enumerate(execution.steps):
            if existing.id == step.id:
                execution.steps[index] = stored
                return
        execution.steps.append(stored)

    async def delete_execution(self, execution_id: str) -> None:
        self._executions.pop(execution_id, None)

    async def delete_executions(self, execution_ids: List[str]) -> None:
        for execution_id in execution_ids:
            self._executions.pop(execution_id, None)

    def clear(self) -> None:
        self._executions.clear()
