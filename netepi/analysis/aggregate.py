from __future__ import annotations

from typing import Iterable, List, Tuple

import numpy as np
import pandas as pd

from netepi.simulation import ReplicateResult

DEFAULT_COLS = ["s_num", "i_num", "r_num", "si_flow", "is_flow", "ir_flow"]


def aggregate_replicates(
    runs: Iterable[ReplicateResult],
    metric_cols: List[str] | None = None,
) -> Tuple[pd.DataFrame, pd.DataFrame]:
    """Per-time mean/std/ci95 across replicates, plus a per-replicate summary."""
    runs = list(runs)
    metric_cols = metric_cols or DEFAULT_COLS
    if not runs:
        return pd.DataFrame(), pd.DataFrame()

    rows = []
    for run in runs:
        frame = run.epi.copy()
        frame["sim"] = run.replicate
        rows.append(frame)

    combined = pd.concat(rows, ignore_index=True)
    grouped = combined.groupby("time")
    agg = grouped[metric_cols].agg(["mean", "std"]).reset_index()
    agg.columns = ["_".join(col).rstrip("_") for col in agg.columns]

    n_runs = combined["sim"].nunique()
    for col in metric_cols:
        std_col = f"{col}_std"
        ci_col = f"{col}_ci95"
        agg[ci_col] = 1.96 * agg[std_col].fillna(0) / max(np.sqrt(n_runs), 1)

    summary_df = pd.DataFrame([epidemic_summary(run) for run in runs])
    return agg, summary_df


def epidemic_summary(run: ReplicateResult) -> dict:
    epi = run.epi
    peak_idx = epi["i_num"].idxmax()
    return {
        "sim": run.replicate,
        "peak_time": int(epi.loc[peak_idx, "time"]),
        "peak_prevalence": float(epi.loc[peak_idx, "i_num"] / epi.loc[peak_idx, "num"]),
        "cumulative_incidence": int(epi["si_flow"].sum()),
        "final_i_num": int(epi.iloc[-1]["i_num"]),
        "final_r_num": int(epi.iloc[-1]["r_num"]),
        "completed_steps": run.completed_steps,
    }
