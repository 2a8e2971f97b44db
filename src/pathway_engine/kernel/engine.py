"""
SimulationEngine: the single entry point used by the CLI and by embedders.

Architecture:
    CLI ─────┐
    Caller ──┴──> SimulationEngine ──> ModuleRegistry ──> ModuleDefinition.process()

The engine discovers its registry lazily on first use and turns kernel
errors into SimulationResult values for callers that prefer not to handle
exceptions.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence

from ..config import EngineConfig, load_config
from .errors import ModuleLoadError, PathwayError
from .module import ModuleDefinition
from .registry import ModuleRegistry, PathFilter
from .runner import make_population, run_population
from .schema import Entity

logger = logging.getLogger(__name__)


@dataclass
class SimulationResult:
    """Result of an engine operation."""
    ok: bool
    data: Dict[str, Any] = field(default_factory=dict)
    error_kind: Optional[str] = None
    error_message: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        result = {"ok": self.ok, "data": self.data}
        if not self.ok:
            result["error_kind"] = self.error_kind
            result["error_message"] = self.error_message
        return result


class SimulationEngine:
    """
    Facade over the registry, the VM and the population runner.

    Example:
        engine = SimulationEngine(load_config(modules_dir="modules"))
        result = engine.simulate(["appendicitis"], population=10, start=0, end=YEAR)
    """

    def __init__(
        self,
        config: Optional[EngineConfig] = None,
        registry: Optional[ModuleRegistry] = None,
    ) -> None:
        self.config = config or load_config()
        self._registry = registry
        self._discovered = False

    def _ensure_discovered(self) -> None:
        """Lazily build and scan the registry."""
        if self._discovered:
            return
        if self._registry is None:
            from ..lib.lifecycle import LifecycleModule

            self._registry = ModuleRegistry(self.config.modules_dir, builtins=[LifecycleModule()])
        self._registry.discover()
        self._discovered = True

    @property
    def registry(self) -> ModuleRegistry:
        self._ensure_discovered()
        assert self._registry is not None
        return self._registry

    def module_names(self) -> List[str]:
        return self.registry.names()

    def list_modules(self, path_filter: Optional[PathFilter] = None) -> List[ModuleDefinition]:
        return self.registry.list(path_filter)

    def get_module(self, path: str) -> Optional[ModuleDefinition]:
        return self.registry.get(path)

    def process(self, entity: Entity, path: str, time: int) -> SimulationResult:
        """Advance one entity through one module to time."""
        try:
            module = self.get_module(path)
        except ModuleLoadError as exc:
            return SimulationResult(ok=False, error_kind="module_load_error", error_message=str(exc))
        if module is None:
            return SimulationResult(
                ok=False,
                error_kind="module_not_found",
                error_message=f"Module not registered: {path}",
            )

        try:
            completed = module.process(entity, time)
        except PathwayError as exc:
            return SimulationResult(ok=False, error_kind="execution_error", error_message=str(exc))

        history = entity.histories.get(module.name, [])
        return SimulationResult(
            ok=True,
            data={
                "module": module.name,
                "completed": completed,
                "current": history[0].name if history else None,
            },
        )

    def simulate(
        self,
        paths: Optional[Sequence[str]] = None,
        population: int = 1,
        start: int = 0,
        end: int = 0,
        step: Optional[int] = None,
        workers: Optional[int] = None,
        entities: Optional[Sequence[Entity]] = None,
        path_filter: Optional[PathFilter] = None,
        output_sink: Optional[Callable[[str], None]] = None,
    ) -> SimulationResult:
        """
        Simulate a population from start to end.

        Args:
            paths: Module paths to run. None runs every top-level module.
            population: Number of entities to create when entities is None.
            start, end: Simulated time window in milliseconds.
            step: Tick length; defaults to the configured tick.
            workers: Thread count; defaults to the configured worker count.
            entities: Pre-built entities to simulate instead.
            path_filter: Narrows the top-level modules when paths is None.
            output_sink: Receives one progress line per finished run.

        Returns:
            SimulationResult whose data holds one report per entity and a
            per-module completion count.
        """
        try:
            if paths is None:
                modules = self.list_modules(path_filter)
            else:
                modules = []
                for path in paths:
                    module = self.get_module(path)
                    if module is None:
                        return SimulationResult(
                            ok=False,
                            error_kind="module_not_found",
                            error_message=f"Module not registered: {path}",
                        )
                    modules.append(module)
        except ModuleLoadError as exc:
            return SimulationResult(ok=False, error_kind="module_load_error", error_message=str(exc))

        if entities is None:
            entities = make_population(population, seed=self.config.seed, birthdate=start)

        reports = run_population(
            modules,
            entities,
            start,
            end,
            step or self.config.tick_ms,
            workers or self.config.workers,
        )

        summary = {module.name: 0 for module in modules}
        for report in reports:
            for name in report.completed:
                summary[name] = summary.get(name, 0) + 1

        if output_sink:
            output_sink(
                f"Simulated {len(reports)} entities through {len(modules)} modules"
            )

        failures = sum(1 for report in reports if report.error is not None)
        return SimulationResult(
            ok=failures == 0,
            data={
                "completed": summary,
                "deaths": sum(1 for report in reports if not report.alive),
                "reports": [report.to_dict() for report in reports],
            },
            error_kind="entity_errors" if failures else None,
            error_message=f"{failures} entities failed" if failures else None,
        )
