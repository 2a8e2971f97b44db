"""
Pathway VM: advances one entity through one module.

The VM owns no state. Everything it touches is either read from the shared
module definition or written to the entity's own history for that module.

Time rewind: a waiting state may end between two visits of the driving
loop. When a state exits at a moment earlier than the current call, the VM
re-enters itself at that moment so the follow-on transitions are recorded
when they logically happened, then resumes at the original time.
"""
from __future__ import annotations

from typing import TYPE_CHECKING, List

from .errors import UnknownStateError
from .schema import ACTIVE_WELLNESS_ENCOUNTER, Entity

if TYPE_CHECKING:
    from .module import ModuleDefinition
    from .states import State


def encounter_key(module: "ModuleDefinition") -> str:
    """Attribute flagging an active wellness encounter for one module."""
    return f"{ACTIVE_WELLNESS_ENCOUNTER} {module.name}"


def ensure_history(module: "ModuleDefinition", entity: Entity) -> List["State"]:
    history = entity.histories.get(module.name)
    if history is None:
        history = [module.initial_state().clone()]
        entity.histories[module.name] = history
    return history


def _mark_encounter(module: "ModuleDefinition", entity: Entity) -> None:
    if ACTIVE_WELLNESS_ENCOUNTER in entity.attributes:
        entity.attributes[encounter_key(module)] = True


def process(module: "ModuleDefinition", entity: Entity, time: int) -> bool:
    """
    Run the entity's current state for this module until it suspends.

    Returns:
        True if the module is finished for this entity (terminal state
        reached, or the entity is dead at time or died while a wait was
        running), False if it is waiting for a later tick.

    Raises:
        UnknownStateError: a transition named a state the module lacks.
    """
    if not entity.alive(time):
        return True

    history = ensure_history(module, entity)
    _mark_encounter(module, entity)
    try:
        current = history[0]
        while current.run(entity, time):
            exited = current.exited
            next_name = current.transition(entity, time)
            prototype = module.get_state(next_name)
            if prototype is None:
                raise UnknownStateError(module.name, next_name)
            current = prototype.clone()
            history.insert(0, current)

            if exited is not None and exited < time:
                if not entity.alive(exited):
                    return True
                if process(module, entity, exited):
                    return True
                # the nested call clears the encounter flag on its way out
                _mark_encounter(module, entity)
                current = history[0]

        return current.is_terminal
    finally:
        entity.attributes.pop(encounter_key(module), None)
