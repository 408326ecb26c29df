"""
Refine overlap-based de novo calls with the regenotyping statistics.

The rules below run in a fixed order over the whole candidate table, each
one overwriting the inheritance label of the rows it matches:

   1. fail_miss_parents : no dCR mean for father or mother
   2. fail_M            : child mean far from the called CN (CN <= 3)
   3. fail_MD           : child mean close to one of the parents
   4. fail_M_MD         : both 2 and 3
   5. fail_bad_bins     : at least half of fewer than 100 bins are noisy
   6. inherited         : still de novo gain with a parent above 2.5
   7. inherited         : still de novo loss with a parent below 1.5
   8. mosaic_father / mosaic_mother : still de novo DUP, parent above the
                          bin-count adjusted gain threshold
   9. mosaic_father / mosaic_mother : still de novo DEL, parent below the
                          bin-count adjusted loss threshold
  10. mosaic_both       : both parents below the loss threshold

Comparisons with missing statistics never match.
"""

from typing import Tuple

import numpy as np
import pandas as pd
from scipy.stats import norm


M_TOLERANCE = 0.175
M_MAX_CN = 3
MD_MIN = 0.7
BAD_BIN_FRAC = 0.5
BAD_BIN_MAX_BINS = 100
DUP_PARENT_CN = 2.5
DEL_PARENT_CN = 1.5

MOSAIC_QUANTILE = 0.98
MOSAIC_SD = 0.5
MOSAIC_DUP_FLOOR = 2.1
MOSAIC_DEL_CAP = 1.9

INHERITANCE_LABELS = (
    "denovo",
    "inherited",
    "paternal",
    "maternal",
    "biparental",
    "fail_miss_parents",
    "fail_M",
    "fail_MD",
    "fail_M_MD",
    "fail_bad_bins",
    "mosaic_father",
    "mosaic_mother",
    "mosaic_both",
)


def _num(table: pd.DataFrame, col: str) -> pd.Series:
    # nullable ints -> float so that missing values compare False
    return pd.to_numeric(table[col], errors="coerce").astype(float)


def _m_off(table: pd.DataFrame) -> pd.Series:
    cn = _num(table, "CN")
    return ((_num(table, "M") - cn).abs() > M_TOLERANCE) & (cn <= M_MAX_CN)


def _md_low(table: pd.DataFrame) -> pd.Series:
    return _num(table, "MD") < MD_MIN


def _still_denovo(table: pd.DataFrame) -> pd.Series:
    return table["inheritance"] == "denovo"


# Rules ----------------------------------------------------------------------

def fail_miss_parents(table: pd.DataFrame) -> pd.Series:
    missing = _num(table, "MF").isna() | _num(table, "MM").isna()
    return table["inheritance"].mask(missing, "fail_miss_parents")


def fail_m(table: pd.DataFrame) -> pd.Series:
    return table["inheritance"].mask(_m_off(table), "fail_M")


def fail_md(table: pd.DataFrame) -> pd.Series:
    return table["inheritance"].mask(_md_low(table), "fail_MD")


def fail_m_md(table: pd.DataFrame) -> pd.Series:
    return table["inheritance"].mask(_m_off(table) & _md_low(table), "fail_M_MD")


def fail_bad_bins(table: pd.DataFrame) -> pd.Series:
    bins = _num(table, "bins")
    with np.errstate(divide="ignore", invalid="ignore"):
        frac = _num(table, "bins_fail") / bins
    bad = (frac >= BAD_BIN_FRAC) & (bins < BAD_BIN_MAX_BINS)
    return table["inheritance"].mask(bad, "fail_bad_bins")


def inherited_gain(table: pd.DataFrame) -> pd.Series:
    parent_high = (_num(table, "MF") > DUP_PARENT_CN) | (_num(table, "MM") > DUP_PARENT_CN)
    hit = (_num(table, "CN") > 2) & _still_denovo(table) & parent_high
    return table["inheritance"].mask(hit, "inherited")


def inherited_loss(table: pd.DataFrame) -> pd.Series:
    parent_low = (_num(table, "MF") < DEL_PARENT_CN) | (_num(table, "MM") < DEL_PARENT_CN)
    hit = (_num(table, "CN") < 2) & _still_denovo(table) & parent_low
    return table["inheritance"].mask(hit, "inherited")


def mosaic_gain(table: pd.DataFrame) -> pd.Series:
    thresh = _num(table, "mos_dup_thresh")
    inh = table["inheritance"].mask(_num(table, "MF") > thresh, "mosaic_father")
    return inh.mask(_num(table, "MM") > thresh, "mosaic_mother")


def mosaic_loss(table: pd.DataFrame) -> pd.Series:
    thresh = _num(table, "mos_del_thresh")
    inh = table["inheritance"].mask(_num(table, "MF") < thresh, "mosaic_father")
    return inh.mask(_num(table, "MM") < thresh, "mosaic_mother")


def mosaic_both(table: pd.DataFrame) -> pd.Series:
    thresh = _num(table, "mos_del_thresh")
    both = (_num(table, "MF") < thresh) & (_num(table, "MM") < thresh)
    return table["inheritance"].mask(both, "mosaic_both")


FAILURE_RULES = (fail_miss_parents, fail_m, fail_md, fail_m_md, fail_bad_bins)
INHERITED_RULES = (inherited_gain, inherited_loss)
MOSAIC_RULES = (mosaic_gain, mosaic_loss, mosaic_both)


# Mosaicism thresholds ---------------------------------------------------------

def mosaic_thresholds(bins) -> Tuple[np.ndarray, np.ndarray]:
    """
    Gain and loss thresholds for a parental mean given the number of bins.

    The parental mean of a non-carrier is ~2 with a standard error of
    0.5 / sqrt(bins); a parent beyond the 98th percentile of that, and at
    least 0.1 away from 2, is called mosaic.
    """
    bins = np.asarray(bins, dtype=float)
    with np.errstate(divide="ignore", invalid="ignore"):
        z = norm.ppf(MOSAIC_QUANTILE, loc=0, scale=MOSAIC_SD / np.sqrt(bins))
    dup_thresh = np.fmax(2 + z, MOSAIC_DUP_FLOOR)
    del_thresh = np.fmin(2 - z, MOSAIC_DEL_CAP)
    # undefined bin counts give no threshold at all
    undefined = np.isnan(bins)
    dup_thresh = np.where(undefined, np.nan, dup_thresh)
    del_thresh = np.where(undefined, np.nan, del_thresh)
    return dup_thresh, del_thresh


def add_mosaic_thresholds(table: pd.DataFrame) -> pd.DataFrame:
    """Thresholds for the calls that are still de novo, NaN elsewhere."""
    dup_thresh, del_thresh = mosaic_thresholds(_num(table, "bins"))
    denovo = _still_denovo(table).to_numpy()
    svtype = table["svtype"].astype(str).str.upper().to_numpy()
    table["mos_dup_thresh"] = np.where(denovo & (svtype == "DUP"), dup_thresh, np.nan)
    table["mos_del_thresh"] = np.where(denovo & (svtype == "DEL"), del_thresh, np.nan)
    return table


def refine_inheritance(table: pd.DataFrame) -> pd.DataFrame:
    """
    Run the rule cascade over a table of candidates.

    Needs CN, svtype, inheritance and the regenotyping columns M, MF, MM,
    MD, bins_fail, bins. Returns a copy with the final inheritance label and
    the mosaicism thresholds (mos_dup_thresh, mos_del_thresh).
    """
    table = table.copy()
    for rule in FAILURE_RULES + INHERITED_RULES:
        table["inheritance"] = rule(table)

    table = add_mosaic_thresholds(table)
    for rule in MOSAIC_RULES:
        table["inheritance"] = rule(table)
    return table
