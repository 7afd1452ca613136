from __future__ import annotations

import argparse
import json
import logging
import math
from pathlib import Path

import pandas as pd

from netepi.analysis.aggregate import aggregate_replicates
from netepi.config import ModelConfig, dump_config, load_config
from netepi.diagnostics import diagnose_network_model
from netepi.epidemic.params import EpidemicParams
from netepi.io.logging import setup_logging
from netepi.io.metadata import build_run_metadata
from netepi.network.estimation import NetworkModelFit, dissolution_coefs, estimate_network_model
from netepi.network.solver import SolverControl
from netepi.simulation import run_simulation


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="netepi", description="Dynamic network epidemic simulator")
    sub = parser.add_subparsers(dest="command", required=True)

    est = sub.add_parser("estimate", help="Fit the dynamic network model")
    est.add_argument("--config", required=True, help="Path to config YAML")
    est.add_argument("--method", choices=["approximate", "direct"], default=None)
    est.add_argument("--out", required=True, help="Output directory")

    dx = sub.add_parser("dx", help="Fit and diagnose the network model")
    dx.add_argument("--config", required=True, help="Path to config YAML")
    dx.add_argument("--nsims", type=int, default=None)
    dx.add_argument("--nsteps", type=int, default=None)
    dx.add_argument("--static", action="store_true", help="Cross-sectional draws only")
    dx.add_argument("--out", required=True, help="Output directory")

    run = sub.add_parser("run", help="Fit the network model and simulate the epidemic")
    run.add_argument("--config", required=True, help="Path to config YAML")
    run.add_argument("--seed", type=int, default=None)
    run.add_argument("--nsims", type=int, default=None)
    run.add_argument("--nsteps", type=int, default=None)
    run.add_argument("--workers", type=int, default=None)
    run.add_argument("--out", required=True, help="Output directory")

    sweep = sub.add_parser("sweep", help="Run a config sweep")
    sweep.add_argument("--configs", nargs="+", required=True)
    sweep.add_argument("--seeds", nargs="+", type=int, required=True)
    sweep.add_argument("--out", required=True)

    return parser.parse_args()


def override_config(cfg: ModelConfig, args: argparse.Namespace) -> None:
    for name in ("seed", "nsims", "nsteps", "workers"):
        value = getattr(args, name, None)
        if value is not None:
            setattr(cfg.sim, name, value)


def fit_from_config(cfg: ModelConfig) -> NetworkModelFit:
    net = cfg.network
    coef_diss = dissolution_coefs(net.dissolution, net.duration)
    return estimate_network_model(
        net.n_nodes,
        net.formation,
        net.dissolution,
        net.target_stats,
        coef_diss,
        constraints=net.constraints,
        coef_form=net.coef_form,
        method=net.method,
        control=SolverControl(settings=cfg.solver, seed=cfg.sim.seed),
        verbose=net.verbose,
    )


def _fit_record(fit: NetworkModelFit) -> dict:
    def _num(value: float) -> float | str:
        return value if math.isfinite(value) else str(value)

    return {
        "estimation_method": fit.estimation_method.value,
        "n_nodes": fit.n_nodes,
        "formation": {k: _num(v) for k, v in fit.coefficient_table().items()},
        "static_coefficients": [_num(c) for c in fit.static_coefficients],
        "dissolution": list(fit.dissolution_coefs.dissolution),
        "duration": list(fit.dissolution_coefs.duration),
        "coef_crude": [_num(c) for c in fit.dissolution_coefs.coef_crude],
        "target_stats": list(fit.target_stats),
        "converged": fit.solver_result.converged if fit.solver_result else None,
    }


def _prepare(cfg: ModelConfig, out_dir: Path, command: str) -> None:
    out_dir.mkdir(parents=True, exist_ok=True)
    dump_config(cfg, out_dir / "config_resolved.yaml")
    with (out_dir / "run_metadata.json").open("w") as f:
        json.dump(build_run_metadata(cfg, command), f, indent=2)


def run_estimate(args: argparse.Namespace) -> None:
    cfg = load_config(args.config)
    if args.method is not None:
        cfg.network.method = args.method
    out_dir = Path(args.out)
    _prepare(cfg, out_dir, "estimate")
    fit = fit_from_config(cfg)
    with (out_dir / "fit.json").open("w") as f:
        json.dump(_fit_record(fit), f, indent=2)
    for term, coef in fit.coefficient_table().items():
        logging.info("%s: %.4f", term, coef)


def run_dx(args: argparse.Namespace) -> None:
    cfg = load_config(args.config)
    out_dir = Path(args.out)
    _prepare(cfg, out_dir, "dx")
    fit = fit_from_config(cfg)
    nsims = args.nsims if args.nsims is not None else cfg.diagnostics.nsims
    nsteps = None if args.static else (args.nsteps if args.nsteps is not None else cfg.diagnostics.nsteps)
    dx = diagnose_network_model(
        fit,
        nsims=nsims,
        nsteps=nsteps,
        nwstats=cfg.diagnostics.nwstats,
        seed=cfg.sim.seed,
        control=SolverControl(settings=cfg.solver, seed=cfg.sim.seed),
    )
    dx.stats.to_csv(out_dir / "dx_stats.csv", index=False)
    dx.summary.to_csv(out_dir / "dx_summary.csv", index=False)
    logging.info("\n%s", dx.summary.to_string(index=False))


def _simulate(cfg: ModelConfig, out_dir: Path, command: str):
    _prepare(cfg, out_dir, command)
    fit = fit_from_config(cfg)
    params = EpidemicParams.from_config(cfg.epidemic)
    outputs = run_simulation(fit, params, cfg.sim)

    outputs.epi_frame().to_csv(out_dir / "epi.csv", index=False)
    if cfg.output.save_edges:
        frames = [r.edges.assign(sim=r.replicate) for r in outputs.results]
        if frames:
            pd.concat(frames, ignore_index=True).to_csv(out_dir / "edges.csv", index=False)
    if cfg.output.save_transmissions:
        frames = [r.transmissions.assign(sim=r.replicate) for r in outputs.results]
        if frames:
            pd.concat(frames, ignore_index=True).to_csv(out_dir / "transmissions.csv", index=False)
    for failure in outputs.failures:
        logging.warning("Replicate %d (seed %d) failed: %s", failure.replicate, failure.seed, failure.message)
    return outputs


def run_single(args: argparse.Namespace) -> None:
    cfg = load_config(args.config)
    override_config(cfg, args)
    out_dir = Path(args.out)
    outputs = _simulate(cfg, out_dir, "run")
    agg, summary = aggregate_replicates(outputs.results)
    agg.to_csv(out_dir / "aggregate_epi.csv", index=False)
    summary.to_csv(out_dir / "replicate_summary.csv", index=False)


def run_sweep(args: argparse.Namespace) -> None:
    base_out = Path(args.out)
    base_out.mkdir(parents=True, exist_ok=True)
    summaries = []
    for config_path in args.configs:
        for seed in args.seeds:
            cfg = load_config(config_path)
            cfg.sim.seed = seed
            run_name = f"{Path(config_path).stem}_seed_{seed}"
            logging.info("Running %s", run_name)
            outputs = _simulate(cfg, base_out / run_name, "sweep")
            _, summary = aggregate_replicates(outputs.results)
            if not summary.empty:
                summaries.append(summary.assign(run=run_name))

    if summaries:
        pd.concat(summaries, ignore_index=True).to_csv(base_out / "sweep_summary.csv", index=False)


def main() -> None:
    setup_logging()
    args = parse_args()
    if args.command == "estimate":
        run_estimate(args)
    elif args.command == "dx":
        run_dx(args)
    elif args.command == "run":
        run_single(args)
    elif args.command == "sweep":
        run_sweep(args)


if __name__ == "__main__":
    main()
