import pytest

from stepsim import EngineConfig, PluginRegistry, StepController

from fake_plugins import Acc, ScenarioA, Spin


@pytest.fixture
def registry():
    reg = PluginRegistry()
    reg.register(ScenarioA)
    reg.register(Acc)
    reg.register(Spin)
    return reg


@pytest.fixture
def controller(registry):
    return StepController(registry=registry)


@pytest.fixture
def small_controller(registry):
    """Low step cap and batch size so limit / batching paths are cheap."""
    return StepController(config=EngineConfig(max_steps=50, batch_size=4),
                          registry=registry)
