"""
Kernel: the machinery of the pathway engine.

This package contains the execution infrastructure:
- schema: Module descriptions and simulated entities
- states: State contract and the built-in catalog of state kinds
- module: Shared, read-only module definitions
- vm: Per-entity interpreter with time rewind
- registry: Lazy, single-flight module catalog
- runner: Population simulation on a thread pool
- engine: High-level orchestration

The kernel is distinct from lib/ (modules written in Python).
"""
from .errors import (
    ModuleLoadError,
    ModuleValidationError,
    PathwayError,
    UnknownStateError,
)
from .schema import ACTIVE_WELLNESS_ENCOUNTER, Entity, ModuleDescription
from .states import State, Terminal, build_state
from .module import BuiltinModule, ModuleDefinition
from .registry import ModuleEntry, ModuleRegistry, get_registry, reset_registry
from .runner import EntityReport, make_population, run_population, simulate_entity
from .engine import SimulationEngine, SimulationResult

__all__ = [
    # Errors
    "PathwayError",
    "ModuleLoadError",
    "ModuleValidationError",
    "UnknownStateError",
    # Schema
    "ACTIVE_WELLNESS_ENCOUNTER",
    "Entity",
    "ModuleDescription",
    # States
    "State",
    "Terminal",
    "build_state",
    # Module
    "ModuleDefinition",
    "BuiltinModule",
    # Registry
    "ModuleEntry",
    "ModuleRegistry",
    "get_registry",
    "reset_registry",
    # Runner
    "EntityReport",
    "make_population",
    "run_population",
    "simulate_entity",
    # Engine
    "SimulationEngine",
    "SimulationResult",
]
