"""
pathway-engine: simulate clinical pathways over a population.

Public API re-exports from kernel/ (machinery) and lib/ (built-in modules).
"""
from .kernel.errors import (
    ModuleLoadError,
    ModuleValidationError,
    PathwayError,
    UnknownStateError,
)
from .kernel.schema import Entity, ModuleDescription
from .kernel.module import ModuleDefinition
from .kernel.registry import ModuleRegistry, get_registry, reset_registry
from .kernel.engine import SimulationEngine, SimulationResult
from .lib.lifecycle import LifecycleModule

__all__ = [
    # Errors
    "PathwayError",
    "ModuleLoadError",
    "ModuleValidationError",
    "UnknownStateError",
    # Schema
    "Entity",
    "ModuleDescription",
    # Module
    "ModuleDefinition",
    # Registry
    "ModuleRegistry",
    "get_registry",
    "reset_registry",
    # Engine
    "SimulationEngine",
    "SimulationResult",
    # Lib
    "LifecycleModule",
]
