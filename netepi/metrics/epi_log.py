from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List

import pandas as pd

from netepi.epidemic.transitions import EpidemicState

EPI_COLUMNS = ["time", "s_num", "i_num", "r_num", "num", "si_flow", "is_flow", "ir_flow"]
FLOW_COLUMNS = ["si_flow", "is_flow", "ir_flow"]


@dataclass
class StatisticsLog:
    """Per-step compartment counts and flows; one row per recorded time step."""

    rows: List[Dict[str, int]] = field(default_factory=list)

    def record(self, time: int, state: EpidemicState, flows: Dict[str, int] | None = None) -> Dict[str, int]:
        row = {"time": time, **state.counts()}
        for col in FLOW_COLUMNS:
            row[col] = 0
        if flows:
            row.update(flows)
        self.rows.append(row)
        return row

    def repeat_last(self, time: int) -> Dict[str, int]:
        """Copy the last row's counts forward with zero flows."""
        row = dict(self.rows[-1])
        row["time"] = time
        for col in FLOW_COLUMNS:
            row[col] = 0
        self.rows.append(row)
        return row

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame(self.rows, columns=EPI_COLUMNS)
