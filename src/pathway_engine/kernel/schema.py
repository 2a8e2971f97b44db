from __future__ import annotations

import random
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr, field_validator


ACTIVE_WELLNESS_ENCOUNTER = "active_wellness_encounter"


class ModuleDescription(BaseModel):
    """Structural view of one module file.

    Only name, remarks and the state table are read here. State bodies stay
    opaque dicts until they reach build_state().
    """

    name: str
    remarks: List[str] = Field(default_factory=list)
    states: Dict[str, Dict[str, Any]]

    model_config = ConfigDict(extra="ignore")

    @field_validator("remarks", mode="before")
    @classmethod
    def _coerce_remarks(cls, value: Any) -> Any:
        if value is None:
            return []
        if isinstance(value, str):
            return [value]
        return value


class Entity(BaseModel):
    """One simulated member of the population.

    Histories are keyed by module name and ordered most-recent-first.
    Only one thread may process a given entity at a time.
    """

    id: str
    seed: int = 0
    birthdate: int = 0
    death_time: Optional[int] = None
    attributes: Dict[str, Any] = Field(default_factory=dict)
    histories: Dict[str, List[Any]] = Field(default_factory=dict)

    model_config = ConfigDict(arbitrary_types_allowed=True)

    _random: random.Random = PrivateAttr(default=None)

    def model_post_init(self, __context: Any) -> None:
        self._random = random.Random(self.seed)

    @property
    def rng(self) -> random.Random:
        return self._random

    def alive(self, time: int) -> bool:
        return self.death_time is None or time < self.death_time

    def record_death(self, time: int) -> None:
        if self.death_time is None or time < self.death_time:
            self.death_time = time

    def history(self, module_name: str) -> Optional[List[Any]]:
        return self.histories.get(module_name)
