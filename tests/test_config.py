import pytest

from ecsim.config import SimulationConfig
from ecsim.errors import InvalidConfiguration


def test_defaults():
    config = SimulationConfig().validate()
    assert (config.nodes, config.data_chunks, config.parity_chunks) == (6, 4, 2)
    assert config.storage_overhead == 1.5
    assert config.demo is None and not config.headless


@pytest.mark.parametrize(
    "changes",
    [
        {"nodes": 5},
        {"data_chunks": 0},
        {"parity_chunks": -1},
        {"demo": "chaos"},
        {"tick_interval": 0},
        {"partition_size": 0},
    ],
)
def test_invalid_values_are_rejected(changes):
    with pytest.raises(InvalidConfiguration):
        SimulationConfig(**changes).validate()


def test_with_overrides_ignores_none():
    config = SimulationConfig().with_overrides(nodes=8, demo=None)
    assert config.nodes == 8
    assert config.demo is None


def test_from_env():
    config = SimulationConfig.from_env(
        {"ECSIM_NODES": "9", "ECSIM_DEMO": "stress", "ECSIM_HEADLESS": "yes", "ECSIM_TICK_INTERVAL": "0.5"}
    )
    assert config.nodes == 9
    assert config.demo == "stress"
    assert config.headless is True
    assert config.tick_interval == 0.5
