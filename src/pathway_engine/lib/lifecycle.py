"""
Built-in Lifecycle module.

Keeps the entity's age current on every tick. It has no state table and
never completes, so it runs for as long as the entity is simulated.
"""
from __future__ import annotations

from ..kernel.module import BuiltinModule
from ..kernel.schema import Entity
from ..kernel.states import UNIT_MS

YEAR_MS = UNIT_MS["years"]


class LifecycleModule(BuiltinModule):
    display_name = "Lifecycle"

    def process(self, entity: Entity, time: int) -> bool:
        if not entity.alive(time):
            return True
        entity.attributes["age"] = max(0, (time - entity.birthdate) // YEAR_MS)
        return False
