from __future__ import annotations

import subprocess
import sys
from importlib import metadata
from typing import Dict

from netepi.config import ModelConfig

TRACKED_PACKAGES = ("netepi-sim", "numpy", "scipy", "pandas", "torch", "networkx")


def _git_commit() -> str:
    try:
        return subprocess.check_output(
            ["git", "rev-parse", "HEAD"], text=True, stderr=subprocess.DEVNULL
        ).strip()
    except (OSError, subprocess.CalledProcessError):
        return "unknown"


def build_run_metadata(cfg: ModelConfig, command: str) -> Dict[str, object]:
    """Provenance for one CLI run: what ran, with which code and which seed."""
    versions = {}
    for name in TRACKED_PACKAGES:
        try:
            versions[name] = metadata.version(name)
        except metadata.PackageNotFoundError:
            versions[name] = "unknown"
    return {
        "command": command,
        "python": sys.version.split()[0],
        "packages": versions,
        "git_commit": _git_commit(),
        "seed": cfg.sim.seed,
        "estimation_method": cfg.network.method,
        "disease_type": cfg.epidemic.disease_type,
    }
