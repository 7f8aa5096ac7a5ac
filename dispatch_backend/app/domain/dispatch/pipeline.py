"""
Ordered, named operation pipelines.

Each dispatch operation is a fixed list of steps run in order against one
OperationContext. A step raising stops the pipeline; steps after the commit
step never run on failure.
"""

import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

logger = logging.getLogger("dispatch.pipeline")

StepFunc = Callable[["OperationContext"], Awaitable[None]]


class OperationContext:
    """Mutable state shared by the steps of one operation run."""

    def __init__(self, operation: str, params: Optional[Dict[str, Any]] = None, actor: Optional[dict] = None):
        self.operation = operation
        self.params = params or {}
        self.actor = actor

        # Loaded or produced by steps
        self.route = None
        self.route_stops = []
        self.event = None
        self.stops = []
        self.stop = None
        self.stop_change = None
        self.deleted = False
        self.assignment: Dict[str, Any] = {}
        self.changes: Dict[str, Any] = {}
        self.previous_status = None
        self.cascaded_status = None

        # Side effects queued until after commit
        self.messages: List[Tuple[int, str, Any]] = []
        self.audit_entries: List[Dict[str, Any]] = []
        self.completed_steps: List[str] = []

    def publish(self, terminal_id: int, event: str, payload: Any):
        self.messages.append((terminal_id, event, payload))

    def audit(self, action: str, entity_id: Optional[int], summary: str, metadata: Optional[Dict[str, Any]] = None):
        self.audit_entries.append({
            "action": action,
            "entity_id": entity_id,
            "summary": summary,
            "metadata": metadata,
        })


class Pipeline:

    def __init__(self, name: str, steps: List[Tuple[str, StepFunc]]):
        self.name = name
        self.steps = list(steps)

    @property
    def step_names(self) -> List[str]:
        return [name for name, _ in self.steps]

    async def run(self, ctx: OperationContext) -> OperationContext:
        for step_name, step in self.steps:
            logger.debug("%s: %s", self.name, step_name)
            await step(ctx)
            ctx.completed_steps.append(step_name)
        return ctx

    def __repr__(self):
        return f"<Pipeline({self.name}: {' -> '.join(self.step_names)})>"
