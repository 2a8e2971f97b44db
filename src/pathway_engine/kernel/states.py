"""
State catalog: the nodes of a module's state machine.

Prototypes are built once per module and never executed. The engine
clones a prototype, runs the clone, and moves it into the entity's
history. Every kind satisfies the same contract:

    run(entity, time) -> bool      True when a transition is due now
    transition(entity, time) -> str
    exited                          when the active period ended, or None
    clone()                         independent per-entity instance

Terminal is the distinguished end state; the engine tests for it through
the is_terminal flag and knows nothing about the other kinds.
"""
from __future__ import annotations

import copy
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Tuple, Type

from .errors import ModuleValidationError, PathwayError
from .schema import Entity

if TYPE_CHECKING:
    from .module import ModuleDefinition


UNIT_MS: Dict[str, int] = {
    "milliseconds": 1,
    "seconds": 1000,
    "minutes": 60 * 1000,
    "hours": 60 * 60 * 1000,
    "days": 24 * 60 * 60 * 1000,
    "weeks": 7 * 24 * 60 * 60 * 1000,
    "months": 30 * 24 * 60 * 60 * 1000,
    "years": 365 * 24 * 60 * 60 * 1000,
}


def to_ms(quantity: float, unit: str) -> int:
    """Convert a quantity in the given unit to whole milliseconds."""
    try:
        return int(quantity * UNIT_MS[unit])
    except KeyError:
        raise ModuleValidationError(f"Unknown time unit: {unit}")


# =============================================================================
# Transitions
# =============================================================================


class DirectTransition:
    def __init__(self, target: str) -> None:
        self.target = target

    def follow(self, entity: Entity) -> str:
        return self.target

    def targets(self) -> List[str]:
        return [self.target]


class DistributedTransition:
    """Pick one target at random, weighted by each option's distribution."""

    def __init__(self, options: List[Dict[str, Any]]) -> None:
        if not options:
            raise ModuleValidationError("distributed_transition needs at least one option")
        self.options: Tuple[Tuple[str, float], ...] = tuple(
            (option["transition"], float(option["distribution"])) for option in options
        )

    def follow(self, entity: Entity) -> str:
        roll = entity.rng.random()
        cumulative = 0.0
        for target, weight in self.options:
            cumulative += weight
            if roll < cumulative:
                return target
        # rounding leftovers go to the last option
        return self.options[-1][0]

    def targets(self) -> List[str]:
        return [target for target, _ in self.options]


def parse_transition(description: Dict[str, Any]):
    if "direct_transition" in description:
        return DirectTransition(description["direct_transition"])
    if "distributed_transition" in description:
        return DistributedTransition(description["distributed_transition"])
    return None


# =============================================================================
# States
# =============================================================================


class State:
    is_terminal = False

    def __init__(
        self,
        module: "ModuleDefinition",
        name: str,
        description: Dict[str, Any],
    ) -> None:
        self.module = module
        self.name = name
        self.entered: Optional[int] = None
        self.exited: Optional[int] = None
        self._transition = parse_transition(description)

    def clone(self) -> "State":
        instance = copy.copy(self)
        instance.entered = None
        instance.exited = None
        instance._reset()
        return instance

    def _reset(self) -> None:
        """Clear per-instance fields on a fresh clone."""

    def run(self, entity: Entity, time: int) -> bool:
        if self.entered is None:
            self.entered = time
        exit_now = self.process(entity, time)
        if exit_now and self.exited is None:
            self.exited = time
        return exit_now

    def process(self, entity: Entity, time: int) -> bool:
        return True

    def transition(self, entity: Entity, time: int) -> str:
        if self._transition is None:
            raise ModuleValidationError(f"{self.module.name}: state {self.name} has no transition")
        return self._transition.follow(entity)

    def transition_targets(self) -> List[str]:
        if self._transition is None:
            return []
        return self._transition.targets()

    def __repr__(self) -> str:
        return (
            f"<{type(self).__name__} {self.name!r} "
            f"entered={self.entered} exited={self.exited}>"
        )


class Initial(State):
    pass


class Simple(State):
    pass


class Terminal(State):
    is_terminal = True

    def process(self, entity: Entity, time: int) -> bool:
        return False


class Delay(State):
    """Wait for a fixed or random duration before exiting.

    The scheduled end is stored in exited as soon as the wait starts, so a
    caller that arrives late can replay the transition at that moment.
    """

    def __init__(self, module, name, description) -> None:
        super().__init__(module, name, description)
        if "exact" in description:
            exact = description["exact"]
            self.low = self.high = to_ms(exact["quantity"], exact["unit"])
        elif "range" in description:
            spec = description["range"]
            self.low = to_ms(spec["low"], spec["unit"])
            self.high = to_ms(spec["high"], spec["unit"])
        else:
            raise ModuleValidationError(f"{module.name}: Delay {name} needs exact or range")
        self.next: Optional[int] = None

    def _reset(self) -> None:
        self.next = None

    def process(self, entity: Entity, time: int) -> bool:
        if self.next is None:
            duration = self.low
            if self.high > self.low:
                duration = entity.rng.randint(self.low, self.high)
            self.next = time + duration
            self.exited = self.next
        return time >= self.next


class SetAttribute(State):
    def __init__(self, module, name, description) -> None:
        super().__init__(module, name, description)
        if "attribute" not in description:
            raise ModuleValidationError(f"{module.name}: SetAttribute {name} needs attribute")
        self.attribute = description["attribute"]
        self.value = description.get("value")

    def process(self, entity: Entity, time: int) -> bool:
        if self.value is None:
            entity.attributes.pop(self.attribute, None)
        else:
            entity.attributes[self.attribute] = copy.deepcopy(self.value)
        return True


class Death(State):
    """Record the entity's death at the moment this state is reached."""

    def process(self, entity: Entity, time: int) -> bool:
        entity.record_death(time)
        return True


class CallSubmodule(State):
    """Run a submodule on the entity until it completes."""

    def __init__(self, module, name, description) -> None:
        super().__init__(module, name, description)
        if "submodule" not in description:
            raise ModuleValidationError(f"{module.name}: CallSubmodule {name} needs submodule")
        self.submodule = description["submodule"]
        self.submodule_history: Optional[List[State]] = None

    def _reset(self) -> None:
        self.submodule_history = None

    def process(self, entity: Entity, time: int) -> bool:
        registry = self.module.registry
        if registry is None:
            raise PathwayError(f"{self.module.name}: no registry to resolve {self.submodule}")
        submodule = registry.get(self.submodule)
        if submodule is None:
            raise PathwayError(f"{self.module.name}: submodule {self.submodule} is not registered")
        completed = submodule.process(entity, time)
        if completed:
            # release the key so the submodule can be called again later
            self.submodule_history = entity.histories.pop(submodule.name, None)
        return completed


STATE_TYPES: Dict[str, Type[State]] = {
    "Initial": Initial,
    "Simple": Simple,
    "Terminal": Terminal,
    "Delay": Delay,
    "SetAttribute": SetAttribute,
    "Death": Death,
    "CallSubmodule": CallSubmodule,
}


def build_state(module: "ModuleDefinition", name: str, description: Dict[str, Any]) -> State:
    """Construct the prototype for one entry of a module's state table."""
    kind = description.get("type")
    if kind is None:
        raise ModuleValidationError(f"{module.name}: state {name} has no type")
    cls = STATE_TYPES.get(kind)
    if cls is None:
        raise ModuleValidationError(f"{module.name}: state {name} has unknown type {kind}")
    try:
        return cls(module, name, description)
    except (KeyError, TypeError, ValueError) as exc:
        raise ModuleValidationError(f"{module.name}: state {name} is malformed: {exc}") from exc
