from pathlib import Path

import pytest

from netepi.config import ConfigError, ModelConfig, dump_config, load_config

CONFIGS = Path(__file__).resolve().parent.parent / "configs"


def test_load_config():
    cfg = load_config(CONFIGS / "sis_baseline.yaml")
    assert cfg.network.n_nodes == 100
    assert cfg.network.target_stats == [20]
    assert cfg.epidemic.disease_type == "SIS"
    assert cfg.sim.nsims == 5


def test_config_base_inheritance():
    cfg = load_config(CONFIGS / "sir_concurrent.yaml")
    assert cfg.network.formation == ["edges", "concurrent"]
    assert cfg.network.constraints == {"max_degree": 4}
    # inherited from the base file
    assert cfg.epidemic.inf_prob == 0.4
    assert cfg.epidemic.disease_type == "SIR"
    assert cfg.sim.skip_extinct is True


def test_invalid_config_raises(tmp_path: Path):
    path = tmp_path / "bad.yaml"
    path.write_text("epidemic:\n  disease_type: SEIR\n")
    with pytest.raises(ConfigError):
        load_config(path)


def test_dump_roundtrip(tmp_path: Path):
    cfg = ModelConfig()
    cfg.sim.seed = 7
    dump_config(cfg, tmp_path / "cfg.yaml")
    assert load_config(tmp_path / "cfg.yaml").sim.seed == 7
