from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List, Literal

import yaml
from pydantic import BaseModel, Field, ValidationError


class NetworkConfig(BaseModel):
    n_nodes: int = 100
    formation: List[str] = ["edges"]
    target_stats: List[float] = [20.0]
    dissolution: List[str] = ["offset(edges)"]
    duration: List[float] = [10.0]
    constraints: Dict[str, int] = Field(default_factory=dict)
    coef_form: List[float] | None = None
    method: Literal["approximate", "direct"] = "approximate"
    verbose: bool = True


class SolverConfig(BaseModel):
    max_iterations: int = 60
    sample_size: int = 200
    mcmc_burnin: int = 2000
    mcmc_interval: int = 50
    gain: float = 0.5
    tolerance: float = 0.1
    dynamic_steps: int = 200


class EpidemicConfig(BaseModel):
    disease_type: Literal["SI", "SIS", "SIR"] = "SIS"
    inf_prob: float = 0.5
    act_rate: float = 1.0
    rec_rate: float = 0.0
    initial_infected: int = 10


class SimConfig(BaseModel):
    nsims: int = 1
    nsteps: int = 100
    seed: int = 42
    workers: int = 1
    skip_extinct: bool = False
    formation_proposals: int | None = None


class DiagnosticsConfig(BaseModel):
    nsims: int = 5
    nsteps: int | None = 500
    nwstats: List[str] | None = None


class OutputConfig(BaseModel):
    save_edges: bool = True
    save_transmissions: bool = True


class ModelConfig(BaseModel):
    network: NetworkConfig = NetworkConfig()
    solver: SolverConfig = SolverConfig()
    epidemic: EpidemicConfig = EpidemicConfig()
    sim: SimConfig = SimConfig()
    diagnostics: DiagnosticsConfig = DiagnosticsConfig()
    output: OutputConfig = OutputConfig()


class ConfigError(Exception):
    pass


def deep_merge(base: Dict[str, Any], update: Dict[str, Any]) -> Dict[str, Any]:
    merged = dict(base)
    for key, value in update.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_config(path: str | Path) -> ModelConfig:
    path = Path(path)
    data = yaml.safe_load(path.read_text()) or {}
    base_path = data.get("base")
    if base_path:
        base_data = yaml.safe_load((path.parent / base_path).read_text()) or {}
        data = deep_merge(base_data, data)
        data.pop("base", None)
    try:
        return ModelConfig.model_validate(data)
    except ValidationError as exc:
        raise ConfigError(str(exc)) from exc


def dump_config(cfg: ModelConfig, path: str | Path) -> None:
    path = Path(path)
    path.write_text(yaml.safe_dump(cfg.model_dump(), sort_keys=False))
