"""
Regenotype a candidate de novo CNV from its trio dCR matrix.

Rows of the matrix are bins, columns are child, father, mother and then any
background samples of the child's batch. Values are on the copy-number scale.
"""

import math
from dataclasses import asdict, dataclass
from typing import NamedTuple, Optional

import numpy as np
import pandas as pd
from scipy.stats import median_abs_deviation


# bins whose spread across samples reaches this MAD are too noisy to use
MAD_CUTOFF = 0.5


class TrioIds(NamedTuple):
    child: str
    father: str
    mother: str


@dataclass
class RegenotypeResult:
    M: float = math.nan
    MF: float = math.nan
    MM: float = math.nan
    MD: float = math.nan
    bins_fail: Optional[int] = None
    bins: Optional[int] = None

    def to_dict(self):
        return asdict(self)


def bin_mads(dcr: pd.DataFrame) -> np.ndarray:
    """Normal-consistent MAD of every bin (row), ignoring missing values."""
    values = dcr.to_numpy(dtype=float)
    if values.size == 0:
        return np.zeros(len(dcr))
    observed = ~np.isnan(values).all(axis=1)
    mads = np.full(len(dcr), np.nan)
    if observed.any():
        mads[observed] = median_abs_deviation(
            values[observed], axis=1, scale="normal", nan_policy="omit"
        )
    return mads


def regenotype(dcr: Optional[pd.DataFrame], trio: Optional[TrioIds] = None) -> RegenotypeResult:
    """
    Compute M, MF, MM, MD, bins_fail and bins for one candidate.

    `trio` names the child/father/mother columns; without it the first three
    columns are taken in that order. A missing matrix gives an all-undefined
    result; a matrix whose bins are all noisy keeps the bin counts so it can
    be told apart from one that was never measured.
    """
    if dcr is None:
        return RegenotypeResult()
    if trio is None:
        trio = TrioIds(*dcr.columns[:3])

    mads = bin_mads(dcr)
    with np.errstate(invalid="ignore"):
        fail = mads >= MAD_CUTOFF
        keep = mads < MAD_CUTOFF
    mads_fail = int(fail.sum())
    n_bins = len(mads)
    if mads_fail == n_bins:
        return RegenotypeResult(bins_fail=mads_fail, bins=n_bins)

    means = dcr.loc[keep].mean(axis=0, skipna=True)
    m = float(means[trio.child])
    mf = float(means[trio.father])
    mm = float(means[trio.mother])
    md = float(np.min([abs(m - mf), abs(m - mm)]))
    return RegenotypeResult(M=m, MF=mf, MM=mm, MD=md, bins_fail=mads_fail, bins=n_bins)
