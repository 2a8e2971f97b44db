"""
Pytest configuration and shared fixtures for pathway engine tests.
"""
import json
from pathlib import Path
from typing import Any, Dict, Optional

import pytest
from pytest_bdd import given
import yaml

from pathway_engine.kernel.module import ModuleDefinition
from pathway_engine.kernel.registry import ModuleRegistry, reset_registry


def linear_states() -> Dict[str, Any]:
    """Initial -> A -> Terminal, with no waiting."""
    return {
        "Initial": {"type": "Initial", "direct_transition": "A"},
        "A": {"type": "Simple", "direct_transition": "Terminal"},
        "Terminal": {"type": "Terminal"},
    }


def waiting_states(wait_ms: int) -> Dict[str, Any]:
    """Initial -> Wait (wait_ms) -> After -> Terminal."""
    return {
        "Initial": {"type": "Initial", "direct_transition": "Wait"},
        "Wait": {
            "type": "Delay",
            "exact": {"quantity": wait_ms, "unit": "milliseconds"},
            "direct_transition": "After",
        },
        "After": {"type": "Simple", "direct_transition": "Terminal"},
        "Terminal": {"type": "Terminal"},
    }


def make_module(
    name: str,
    states: Dict[str, Any],
    remarks: Optional[list] = None,
    submodule: bool = False,
    registry: Optional[ModuleRegistry] = None,
) -> ModuleDefinition:
    description: Dict[str, Any] = {"name": name, "states": states}
    if remarks is not None:
        description["remarks"] = remarks
    return ModuleDefinition(description, submodule=submodule, registry=registry)


def write_module(root: Path, relative: str, description: Dict[str, Any]) -> Path:
    """Write a description under root; the suffix of relative picks the format."""
    path = root / relative
    path.parent.mkdir(parents=True, exist_ok=True)
    if path.suffix in (".yaml", ".yml"):
        path.write_text(yaml.safe_dump(description, sort_keys=False))
    else:
        path.write_text(json.dumps(description))
    return path


@pytest.fixture
def test_context():
    """Shared context for passing data between steps."""
    return {}


@pytest.fixture
def module_root(tmp_path):
    """An empty module directory."""
    root = tmp_path / "modules"
    root.mkdir()
    return root


@pytest.fixture
def module_tree(module_root):
    """A small module tree: two top-level modules and two submodules."""
    write_module(module_root, "linear.json", {"name": "Linear", "states": linear_states()})
    write_module(
        module_root,
        "waiting.yaml",
        {"name": "Waiting", "remarks": ["Waits ten ms"], "states": waiting_states(10)},
    )
    write_module(
        module_root,
        "medications/analgesic.json",
        {"name": "Analgesic", "states": linear_states()},
    )
    write_module(
        module_root,
        "medications/deep/nested.json",
        {"name": "Nested", "states": linear_states()},
    )
    return module_root


@pytest.fixture(autouse=True)
def fresh_default_registry():
    """Keep the process-wide registry from leaking between tests."""
    reset_registry()
    yield
    reset_registry()


class ModuleKit:
    """Builders for module descriptions, exposed to step definitions."""

    linear_states = staticmethod(linear_states)
    waiting_states = staticmethod(waiting_states)
    make_module = staticmethod(make_module)
    write_module = staticmethod(write_module)


@pytest.fixture
def kit():
    return ModuleKit()


@pytest.fixture
def simulation_tree(module_root):
    """Module tree used by the simulation and CLI features.

    waiting      waits 10 ms, then finishes
    fatal        waits 10 ms, then records the entity's death
    broken_call  calls a submodule that does not exist
    unparsable   is not valid JSON
    shared/pause a valid submodule
    """
    write_module(module_root, "waiting.json", {"name": "Waiting", "states": waiting_states(10)})
    write_module(
        module_root,
        "fatal.json",
        {
            "name": "Fatal",
            "states": {
                "Initial": {"type": "Initial", "direct_transition": "Wait"},
                "Wait": {
                    "type": "Delay",
                    "exact": {"quantity": 10, "unit": "milliseconds"},
                    "direct_transition": "Dying",
                },
                "Dying": {"type": "Death", "direct_transition": "Terminal"},
                "Terminal": {"type": "Terminal"},
            },
        },
    )
    write_module(
        module_root,
        "broken_call.json",
        {
            "name": "Broken Call",
            "states": {
                "Initial": {"type": "Initial", "direct_transition": "Call"},
                "Call": {
                    "type": "CallSubmodule",
                    "submodule": "shared/missing",
                    "direct_transition": "Terminal",
                },
                "Terminal": {"type": "Terminal"},
            },
        },
    )
    (module_root / "unparsable.json").write_text("{oops")
    write_module(module_root, "shared/pause.yaml", {"name": "Pause", "states": waiting_states(1)})
    return module_root


@given("a module directory with simulation content")
def given_simulation_content(test_context, simulation_tree):
    test_context["root"] = simulation_tree
