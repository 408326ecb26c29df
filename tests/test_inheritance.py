# -*- coding: utf-8 -*-
"""Tests for the de novo refinement cascade"""

import math

import numpy as np
import pandas as pd
import pytest

from inheritance import (
    MOSAIC_DEL_CAP,
    MOSAIC_DUP_FLOOR,
    mosaic_thresholds,
    refine_inheritance,
)


def candidate(**kwargs):
    """A clean de novo deletion unless overridden."""
    row = {
        "CN": 1, "svtype": "DEL", "inheritance": "denovo",
        "M": 1.0, "MF": 2.0, "MM": 2.0, "MD": 1.0, "bins_fail": 0, "bins": 50,
    }
    row.update(kwargs)
    return row


def refine(*rows):
    table = pd.DataFrame(list(rows))
    table["bins_fail"] = table["bins_fail"].astype("Int64")
    table["bins"] = table["bins"].astype("Int64")
    return refine_inheritance(table)


def label(**kwargs):
    return refine(candidate(**kwargs))["inheritance"].iloc[0]


# Test failure rules ------------------------------------------------------------------------------


def test_clean_deletion_stays_denovo():
    assert label() == "denovo"


def test_missing_parent_means():
    assert label(MF=np.nan) == "fail_miss_parents"
    assert label(MM=np.nan) == "fail_miss_parents"
    # an all-undefined result (no dCR evidence at all)
    assert label(M=np.nan, MF=np.nan, MM=np.nan, MD=np.nan, bins_fail=None, bins=None) == (
        "fail_miss_parents"
    )


def test_child_mean_off_called_cn():
    assert label(M=1.3, MD=0.7) == "fail_M"
    # high-level amplifications are not checked
    assert label(CN=4, svtype="DUP", M=3.0, MF=2.0, MM=2.0, MD=1.0) == "denovo"


def test_child_close_to_parent():
    # CN=2 DUP with a child mean that sits right on both parents
    out = refine(candidate(CN=2, svtype="DUP", M=2.05, MF=2.0, MM=2.0, MD=0.05, bins=50, bins_fail=2))
    assert out["inheritance"].iloc[0] == "fail_MD"


def test_both_m_and_md_fail():
    assert label(M=1.5, MD=0.5) == "fail_M_MD"


def test_bad_bins_overrides_other_failures():
    assert label(bins=10, bins_fail=5) == "fail_bad_bins"
    assert label(bins=10, bins_fail=5, M=1.5, MD=0.5) == "fail_bad_bins"
    # enough bins in total
    assert label(bins=200, bins_fail=150) == "denovo"
    assert label(bins=10, bins_fail=4) == "denovo"


# Test inherited rules ----------------------------------------------------------------------------


def test_gain_with_high_parent_is_inherited():
    assert label(CN=4, svtype="DUP", M=4.0, MF=2.6, MM=2.0, MD=1.4, bins=200) == "inherited"


def test_gain_guard_keeps_failed_calls():
    # the child mean is within 0.3 of the father: already failed, not re-labelled
    out = label(CN=3, svtype="DUP", M=2.9, MF=2.6, MM=2.0, MD=0.3, bins=200)
    assert out == "fail_MD"


def test_loss_with_low_parent_is_inherited():
    assert label(CN=0, M=0.0, MF=1.0, MM=2.0, MD=1.0, bins=200) == "inherited"


# Test mosaic rules -------------------------------------------------------------------------------


def test_mosaic_father_gain():
    assert label(CN=3, svtype="DUP", M=3.0, MF=2.2, MM=2.0, MD=0.8, bins=400) == "mosaic_father"


def test_mosaic_gain_mother_wins_over_father():
    assert label(CN=3, svtype="DUP", M=3.0, MF=2.2, MM=2.3, MD=0.7, bins=400) == "mosaic_mother"


def test_mosaic_gain_needs_enough_bins():
    # with 4 bins the gain threshold is ~2.51
    assert label(CN=3, svtype="DUP", M=3.0, MF=2.2, MM=2.0, MD=0.8, bins=4) == "denovo"


def test_mosaic_loss():
    assert label(CN=1, M=0.85, MF=1.6, MM=2.0, MD=0.75, bins=400) == "mosaic_father"
    assert label(CN=1, M=0.85, MF=2.0, MM=1.6, MD=0.75, bins=400) == "mosaic_mother"


def test_mosaic_both():
    out = refine(candidate(CN=1, M=0.85, MF=1.6, MM=1.6, MD=0.75, bins=400))
    assert out["inheritance"].iloc[0] == "mosaic_both"
    assert out["mos_del_thresh"].iloc[0] == pytest.approx(MOSAIC_DEL_CAP)
    assert math.isnan(out["mos_dup_thresh"].iloc[0])


def test_mosaic_not_applied_to_failed_calls():
    out = refine(candidate(CN=1, M=1.0, MF=1.6, MM=1.6, MD=0.6, bins=400))
    assert out["inheritance"].iloc[0] == "fail_MD"
    assert math.isnan(out["mos_del_thresh"].iloc[0])


# Test thresholds ---------------------------------------------------------------------------------


def test_mosaic_thresholds_monotonic():
    bins = np.array([1, 4, 16, 100, 400, 10000])
    dup_thresh, del_thresh = mosaic_thresholds(bins)
    assert (np.diff(dup_thresh) <= 0).all()
    assert (np.diff(del_thresh) >= 0).all()
    assert (dup_thresh >= MOSAIC_DUP_FLOOR).all()
    assert (del_thresh <= MOSAIC_DEL_CAP).all()
    assert dup_thresh[-1] == pytest.approx(MOSAIC_DUP_FLOOR)
    assert del_thresh[-1] == pytest.approx(MOSAIC_DEL_CAP)
    # 98th percentile of N(0, 0.5 / sqrt(4))
    assert dup_thresh[1] == pytest.approx(2.5135, abs=1e-3)
    assert del_thresh[1] == pytest.approx(1.4865, abs=1e-3)


def test_mosaic_thresholds_undefined_bins():
    dup_thresh, del_thresh = mosaic_thresholds(np.array([np.nan]))
    assert np.isnan(dup_thresh[0]) and np.isnan(del_thresh[0])


# Test cascade as a whole -------------------------------------------------------------------------


MIXED = [
    candidate(),
    candidate(MF=np.nan),
    candidate(M=1.3, MD=0.7),
    candidate(M=1.5, MD=0.5),
    candidate(bins=10, bins_fail=6),
    candidate(CN=4, svtype="DUP", M=4.0, MF=2.6, MM=2.0, MD=1.4, bins=200),
    candidate(CN=3, svtype="DUP", M=3.0, MF=2.2, MM=2.0, MD=0.8, bins=400),
    candidate(CN=1, M=0.85, MF=1.6, MM=1.6, MD=0.75, bins=400),
]


def test_cascade_labels():
    out = refine(*MIXED)
    assert out["inheritance"].tolist() == [
        "denovo",
        "fail_miss_parents",
        "fail_M",
        "fail_M_MD",
        "fail_bad_bins",
        "inherited",
        "mosaic_father",
        "mosaic_both",
    ]


def test_cascade_idempotent():
    once = refine(*MIXED)
    twice = refine_inheritance(once)
    assert twice["inheritance"].tolist() == once["inheritance"].tolist()


def test_cascade_does_not_modify_input():
    table = pd.DataFrame([candidate(MF=np.nan)])
    refine_inheritance(table)
    assert table["inheritance"].tolist() == ["denovo"]
    assert "mos_dup_thresh" not in table.columns


def test_cascade_empty_table():
    table = pd.DataFrame(columns=["CN", "svtype", "inheritance", "M", "MF", "MM", "MD", "bins_fail", "bins"])
    out = refine_inheritance(table)
    assert out.empty
    assert "mos_del_thresh" in out.columns
