"""
Module definitions: the shared, read-only side of a pathway.

A definition is built once (by the registry, usually lazily) and then read
concurrently by every thread that simulates part of the population. Nothing
on the execution path writes to it; per-entity progress lives in clones of
its prototype states, stored on the entity.
"""
from __future__ import annotations

import json
import logging
from pathlib import Path
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Dict, Iterable, Mapping, Optional, Tuple, Union

import yaml
from pydantic import ValidationError

from .errors import ModuleValidationError
from .schema import Entity, ModuleDescription
from .states import State, build_state
from . import vm

if TYPE_CHECKING:
    from .registry import ModuleRegistry

logger = logging.getLogger(__name__)

INITIAL_STATE = "Initial"
JSON_SUFFIXES = (".json",)
YAML_SUFFIXES = (".yaml", ".yml")
DESCRIPTION_SUFFIXES = JSON_SUFFIXES + YAML_SUFFIXES


class ModuleDefinition:
    def __init__(
        self,
        description: Union[ModuleDescription, Dict[str, Any]],
        submodule: bool = False,
        registry: Optional["ModuleRegistry"] = None,
    ) -> None:
        """
        Build a definition from a structural description.

        Args:
            description: Parsed module file (name, remarks, states).
            submodule: Whether this module is a reusable fragment.
            registry: Registry used by states that call other modules.

        Raises:
            ModuleValidationError: missing fields, unknown state types, no
                Initial state, or a transition to an undefined state.
        """
        if not isinstance(description, ModuleDescription):
            try:
                description = ModuleDescription.model_validate(description)
            except ValidationError as exc:
                raise ModuleValidationError(f"Invalid module description: {exc}") from exc

        self._name = f"{description.name} Module"
        self._submodule = submodule
        self._remarks: Tuple[str, ...] = tuple(description.remarks)
        self.registry = registry

        states: Dict[str, State] = {}
        for state_name, body in description.states.items():
            states[state_name] = build_state(self, state_name, body)
        self._states: Mapping[str, State] = MappingProxyType(states)
        self._validate()

    @classmethod
    def from_file(
        cls,
        path: Union[str, Path],
        submodule: bool = False,
        registry: Optional["ModuleRegistry"] = None,
    ) -> "ModuleDefinition":
        """Read a .json or .yaml description file and build its definition."""
        path = Path(path)
        logger.info("Loading %s %s", "submodule" if submodule else "module", path)
        return cls(read_description(path), submodule=submodule, registry=registry)

    @property
    def name(self) -> str:
        return self._name

    @property
    def submodule(self) -> bool:
        return self._submodule

    @property
    def remarks(self) -> Tuple[str, ...]:
        return self._remarks

    @property
    def states(self) -> Mapping[str, State]:
        return self._states

    def initial_state(self) -> State:
        return self._states[INITIAL_STATE]

    def get_state(self, name: str) -> Optional[State]:
        return self._states.get(name)

    def state_names(self) -> Iterable[str]:
        return self._states.keys()

    def process(self, entity: Entity, time: int) -> bool:
        """Advance the entity through this module up to time.

        Returns True once the module has completed for this entity, or if
        the entity is not alive at time.
        """
        return vm.process(self, entity, time)

    def _validate(self) -> None:
        if INITIAL_STATE not in self._states:
            raise ModuleValidationError(f"{self._name} has no {INITIAL_STATE} state")
        for state in self._states.values():
            for target in state.transition_targets():
                if target not in self._states:
                    raise ModuleValidationError(
                        f"{self._name}: state {state.name} transitions to undefined state {target}"
                    )

    def __repr__(self) -> str:
        kind = "submodule" if self._submodule else "module"
        return f"<ModuleDefinition {kind} {self._name!r} states={len(self._states)}>"


class BuiltinModule(ModuleDefinition):
    """A module implemented in Python rather than described in a file.

    Built-ins have no state table; subclasses override process().
    """

    display_name = ""

    def __init__(self) -> None:
        self._name = f"{self.display_name} Module"
        self._submodule = False
        self._remarks = ()
        self._states = MappingProxyType({})
        self.registry = None

    def initial_state(self) -> State:
        raise ModuleValidationError(f"{self._name} is built in and has no states")

    def process(self, entity: Entity, time: int) -> bool:
        raise NotImplementedError


def read_description(path: Path) -> Dict[str, Any]:
    """Parse a description file, choosing the parser from its suffix."""
    suffix = path.suffix.lower()
    try:
        text = path.read_text(encoding="utf-8")
        if suffix in JSON_SUFFIXES:
            data = json.loads(text)
        elif suffix in YAML_SUFFIXES:
            data = yaml.safe_load(text)
        else:
            raise ModuleValidationError(f"Unsupported module format: {path}")
    except (OSError, UnicodeDecodeError) as exc:
        raise ModuleValidationError(f"Cannot read {path}: {exc}") from exc
    except (json.JSONDecodeError, yaml.YAMLError) as exc:
        raise ModuleValidationError(f"Cannot parse {path}: {exc}") from exc

    if not isinstance(data, dict):
        raise ModuleValidationError(f"{path}: top level must be an object")
    return data
