import argparse
import json

import pandas as pd
import yaml

from netepi.cli import run_estimate, run_single


def _write_config(tmp_path):
    cfg = {
        "network": {"n_nodes": 40, "formation": ["edges"], "target_stats": [15], "duration": [5], "verbose": False},
        "epidemic": {"disease_type": "SIS", "inf_prob": 0.3, "act_rate": 1, "rec_rate": 0.1, "initial_infected": 4},
        "sim": {"nsims": 2, "nsteps": 10, "seed": 3},
    }
    path = tmp_path / "cfg.yaml"
    path.write_text(yaml.safe_dump(cfg))
    return path


def test_run_writes_outputs(tmp_path):
    config = _write_config(tmp_path)
    out = tmp_path / "out"
    args = argparse.Namespace(config=str(config), seed=None, nsims=None, nsteps=None, workers=None, out=str(out))
    run_single(args)
    epi = pd.read_csv(out / "epi.csv")
    assert sorted(epi["sim"].unique().tolist()) == [1, 2]
    assert len(epi) == 2 * 11
    assert (out / "aggregate_epi.csv").exists()
    assert (out / "replicate_summary.csv").exists()
    assert (out / "config_resolved.yaml").exists()
    assert (out / "run_metadata.json").exists()


def test_estimate_writes_fit(tmp_path):
    config = _write_config(tmp_path)
    out = tmp_path / "fit"
    run_estimate(argparse.Namespace(config=str(config), method=None, out=str(out)))
    record = json.loads((out / "fit.json").read_text())
    assert record["estimation_method"] == "approximate"
    assert record["duration"] == [5.0]
    assert "edges" in record["formation"]
    metadata = json.loads((out / "run_metadata.json").read_text())
    assert metadata["command"] == "estimate"
    assert metadata["seed"] == 3
    assert set(metadata["packages"]) >= {"numpy", "torch", "networkx"}
