"""High level service running action batches on remembered browser instances.

The service owns an :class:`~pagerunner.instances.InstanceRegistry` and an
:class:`~pagerunner.executor.ActionRunner` sharing one event bus. Callers hand
it wire-shaped step dictionaries; parameters are substituted, steps are
validated through the action registry and executed on either the remembered
local instance or an explicitly addressed one.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

from pagerunner.config import RunConfig, load_config
from pagerunner.events import EventBus
from pagerunner.executor import ActionRunner, RunReport
from pagerunner.instances import Instance, InstanceRegistry, Launcher

from .dsl.registry import RunPlan
from .template import render_params

log = logging.getLogger(__name__)


@dataclass(slots=True)
class StepsOutcome:
    """Result of one submission."""

    result: Any
    instance_id: str
    is_new_instance: bool
    history_length: int = 0
    report: Optional[RunReport] = None

    def as_dict(self) -> Dict[str, Any]:
        return {
            "result": self.result,
            "instance_id": self.instance_id,
            "is_new_instance": self.is_new_instance,
            "history_length": self.history_length,
        }


class PipelineService:
    """Entry point for running steps locally against managed instances."""

    def __init__(
        self,
        *,
        config: Optional[RunConfig] = None,
        bus: Optional[EventBus] = None,
        launcher: Optional[Launcher] = None,
    ) -> None:
        self.config = config or load_config()
        self.bus = bus or EventBus()
        self.instances = InstanceRegistry(config=self.config, bus=self.bus, launcher=launcher)
        self.runner = ActionRunner(bus=self.bus, config=self.config)
        self._local_instance_id: Optional[str] = None

    # ------------------------------------------------------------------
    # public API
    # ------------------------------------------------------------------
    def on(self, event: str, handler: Callable[[Dict[str, Any]], Any]) -> Callable[[], None]:
        return self.bus.on(event, handler)

    async def execute_steps(
        self,
        steps: Sequence[Mapping[str, Any]],
        params: Optional[Mapping[str, Any]] = None,
        launch_options: Optional[Dict[str, Any]] = None,
        force_new_instance: bool = False,
        categories: Optional[Dict[str, Any]] = None,
    ) -> StepsOutcome:
        """Run ``steps`` on the remembered local instance, launching one if needed."""

        plan = self._plan(steps, params)
        instance: Optional[Instance] = None
        if self._local_instance_id and not force_new_instance:
            instance = await self.instances.get(self._local_instance_id)
        is_new = instance is None
        if instance is None:
            instance = await self.instances.create(launch_options=launch_options, categories=categories)
            self._local_instance_id = instance.instance_id
        report = await self.runner.run(instance, plan.actions)
        return StepsOutcome(
            result=report.value(),
            instance_id=instance.instance_id,
            is_new_instance=is_new,
            history_length=len(instance.history),
            report=report,
        )

    async def execute_more_steps(
        self,
        instance_id: str,
        steps: Sequence[Mapping[str, Any]],
        params: Optional[Mapping[str, Any]] = None,
    ) -> StepsOutcome:
        """Append ``steps`` to an existing instance's history."""

        instance = await self.instances.require(instance_id)
        plan = self._plan(steps, params)
        report = await self.runner.run(instance, plan.actions)
        return StepsOutcome(
            result=report.value(),
            instance_id=instance_id,
            is_new_instance=False,
            history_length=len(instance.history),
            report=report,
        )

    async def get_instance(self, instance_id: str) -> Optional[Instance]:
        return await self.instances.get(instance_id)

    def instance_ids(self) -> List[str]:
        return self.instances.ids()

    async def get_page(self, instance_id: Optional[str] = None) -> Any:
        target = instance_id or self._local_instance_id
        if not target:
            return None
        instance = await self.instances.get(target)
        return instance.page if instance is not None else None

    async def close_instance(self, instance_id: str) -> bool:
        closed = await self.instances.delete(instance_id)
        if instance_id == self._local_instance_id:
            self._local_instance_id = None
        return closed

    async def close_local_instance(self) -> bool:
        if not self._local_instance_id:
            return False
        return await self.close_instance(self._local_instance_id)

    async def close_all(self) -> None:
        await self.instances.close_all()
        self._local_instance_id = None

    @property
    def local_instance_id(self) -> Optional[str]:
        return self._local_instance_id

    # ------------------------------------------------------------------
    # helpers
    # ------------------------------------------------------------------
    def _plan(self, steps: Sequence[Mapping[str, Any]], params: Optional[Mapping[str, Any]]) -> RunPlan:
        rendered = render_params(list(steps), params)
        plan = RunPlan.model_validate({"actions": rendered})
        log.debug("Validated %d steps", len(plan.actions))
        return plan
