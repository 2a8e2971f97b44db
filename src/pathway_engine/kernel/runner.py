"""
Population Runner: drives many entities through a set of modules.

Each entity is simulated by exactly one worker thread, so its histories have
a single writer. Module definitions are shared by all workers and only read.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Sequence

from .errors import PathwayError
from .module import ModuleDefinition
from .schema import Entity

logger = logging.getLogger(__name__)


@dataclass
class EntityReport:
    """Outcome of simulating one entity."""
    entity_id: str
    alive: bool
    died_at: Optional[int] = None
    completed: List[str] = field(default_factory=list)
    histories: Dict[str, List[str]] = field(default_factory=dict)
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "entity_id": self.entity_id,
            "alive": self.alive,
            "died_at": self.died_at,
            "completed": self.completed,
            "histories": self.histories,
        }
        if self.error is not None:
            result["error"] = self.error
        return result


def make_population(size: int, seed: int = 0, birthdate: int = 0) -> List[Entity]:
    """Create size entities with consecutive seeds starting at seed."""
    return [
        Entity(id=f"entity-{index}", seed=seed + index, birthdate=birthdate)
        for index in range(size)
    ]


def simulate_entity(
    entity: Entity,
    modules: Sequence[ModuleDefinition],
    start: int,
    end: int,
    step: int,
) -> EntityReport:
    """
    Process every module for the entity at each tick from start to end.

    Modules that completed are not visited again. The loop stops early
    once the entity is dead.
    """
    if step <= 0:
        raise ValueError(f"step must be positive, got {step}")

    completed: List[str] = []
    time = start
    while time <= end and entity.alive(time):
        for module in modules:
            if module.name in completed:
                continue
            if module.process(entity, time):
                completed.append(module.name)
        time += step

    return EntityReport(
        entity_id=entity.id,
        alive=entity.alive(min(time, end)),
        died_at=entity.death_time,
        completed=completed,
        histories={
            name: [state.name for state in history]
            for name, history in entity.histories.items()
        },
    )


def _simulate_or_report(
    entity: Entity,
    modules: Sequence[ModuleDefinition],
    start: int,
    end: int,
    step: int,
) -> EntityReport:
    try:
        return simulate_entity(entity, modules, start, end, step)
    except PathwayError as exc:
        logger.error("Simulation of %s failed: %s", entity.id, exc)
        return EntityReport(
            entity_id=entity.id,
            alive=entity.alive(start),
            died_at=entity.death_time,
            error=str(exc),
        )


def run_population(
    modules: Sequence[ModuleDefinition],
    entities: Iterable[Entity],
    start: int,
    end: int,
    step: int,
    workers: int = 1,
) -> List[EntityReport]:
    """
    Simulate every entity on a thread pool.

    A module error for one entity is recorded on that entity's report and
    the rest of the population carries on.

    Returns:
        Reports in the same order as entities.
    """
    entities = list(entities)
    with ThreadPoolExecutor(max_workers=max(1, workers)) as pool:
        futures = [
            pool.submit(_simulate_or_report, entity, modules, start, end, step)
            for entity in entities
        ]
        return [future.result() for future in futures]
