from __future__ import annotations

from dataclasses import dataclass
from typing import List

import numpy as np
import torch


@dataclass
class RNGManager:
    """Per-replicate random streams.

    ``network`` drives edge formation and dissolution, ``torch_cpu`` drives
    the epidemic passes. Keeping them apart means skipping an epidemic pass
    never shifts the network stream.
    """

    seed: int

    def __post_init__(self) -> None:
        network_seq, epidemic_seq = np.random.SeedSequence(self.seed).spawn(2)
        self.network = np.random.default_rng(network_seq)
        epidemic_seed = int(epidemic_seq.generate_state(1, dtype=np.uint64)[0] >> np.uint64(1))
        self.torch_cpu = torch.Generator(device="cpu").manual_seed(epidemic_seed)

    def torch(self) -> torch.Generator:
        return self.torch_cpu


def spawn_seeds(master_seed: int, n: int) -> List[int]:
    """Independent per-replicate seeds derived from one master seed."""
    children = np.random.SeedSequence(master_seed).spawn(n)
    return [int(child.generate_state(1, dtype=np.uint32)[0]) for child in children]
