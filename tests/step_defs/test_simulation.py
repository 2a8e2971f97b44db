"""
Step definitions for the Population Simulation feature.

These tests verify the behaviors of SimulationEngine and the runner:
- populations run on a thread pool, one worker per entity
- death stops an entity's simulation
- module errors are reported per entity, load errors per run
- the built-in Lifecycle module

BDD Flow: Feature file -> Step definitions -> Implementation
"""
import pytest
from pytest_bdd import given, parsers, scenarios, then, when

from pathway_engine.config import load_config
from pathway_engine.kernel.engine import SimulationEngine
from pathway_engine.kernel.schema import Entity
from pathway_engine.kernel.states import UNIT_MS
from pathway_engine.lib.lifecycle import LifecycleModule

# Load scenarios from feature file
scenarios("../features/simulation.feature")


@pytest.fixture
def engine(test_context):
    return SimulationEngine(load_config(modules_dir=test_context["root"], workers=3))


def _split(names: str):
    return [name.strip() for name in names.split(",") if name.strip()]


# =============================================================================
# Given Steps
# =============================================================================


@given(parsers.parse("an entity born at {birthdate:d}"))
def entity_born(test_context, birthdate: int):
    test_context["entity"] = Entity(id="entity-1", birthdate=birthdate)


# =============================================================================
# When Steps
# =============================================================================


@when(
    parsers.parse(
        '{count:d} entities are simulated through "{path}" from {start:d} to {end:d} in steps of {step:d}'
    )
)
def simulate_path(test_context, engine, count: int, path: str, start: int, end: int, step: int):
    test_context["result"] = engine.simulate(
        paths=[path], population=count, start=start, end=end, step=step
    )


@when(
    parsers.parse(
        '{count:d} entities are simulated through all modules matching "{paths}" '
        "from {start:d} to {end:d} in steps of {step:d}"
    )
)
def simulate_all(test_context, engine, count: int, paths: str, start: int, end: int, step: int):
    allowed = set(_split(paths))
    test_context["result"] = engine.simulate(
        population=count,
        start=start,
        end=end,
        step=step,
        path_filter=lambda path: path in allowed,
    )


@when(parsers.parse('one entity is processed through "{path}" at {time:d}'))
def process_one(test_context, engine, path: str, time: int):
    test_context["result"] = engine.process(Entity(id="solo"), path, time)


@when(parsers.parse("the lifecycle module processes the entity at {years:d} years"))
def lifecycle_process(test_context, years: int):
    test_context["completed"] = LifecycleModule().process(
        test_context["entity"], years * UNIT_MS["years"]
    )


# =============================================================================
# Then Steps
# =============================================================================


@then("the simulation succeeded")
def check_ok(test_context):
    result = test_context["result"]
    assert result.ok, result.to_dict()


@then(parsers.parse('the simulation failed with "{kind}"'))
def check_failed(test_context, kind: str):
    result = test_context["result"]
    assert not result.ok
    assert result.error_kind == kind
    assert result.to_dict()["error_kind"] == kind


@then(parsers.parse('{count:d} entities completed "{name}"'))
def check_completed_count(test_context, count: int, name: str):
    assert test_context["result"].data["completed"][name] == count


@then(parsers.parse("{count:d} entities died"))
def check_deaths(test_context, count: int):
    assert test_context["result"].data["deaths"] == count


@then(parsers.parse("every entity died at {time:d}"))
def check_death_times(test_context, time: int):
    reports = test_context["result"].data["reports"]
    assert reports
    assert all(report["died_at"] == time for report in reports)


@then(parsers.parse('every report shows the history "{names}"'))
def check_report_histories(test_context, names: str):
    for report in test_context["result"].data["reports"]:
        assert report["histories"]["Waiting Module"] == _split(names)


@then("every report carries an error")
def check_report_errors(test_context):
    reports = test_context["result"].data["reports"]
    assert len(reports) == 4
    assert all("shared/missing" in report["error"] for report in reports)


@then(parsers.parse('the engine reports the module is not completed at "{state}"'))
def check_single_process(test_context, state: str):
    result = test_context["result"]
    assert result.ok
    assert result.data == {"module": "Waiting Module", "completed": False, "current": state}


@then(parsers.parse("the entity is {years:d} years old"))
def check_age(test_context, years: int):
    assert test_context["entity"].attributes["age"] == years


@then("the lifecycle module is not completed")
def check_lifecycle_running(test_context):
    assert test_context["completed"] is False
