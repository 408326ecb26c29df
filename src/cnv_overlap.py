"""
Overlap-based (preliminary) inheritance of child CNVs.

A child CNV is covered on the paternal (maternal) axis if at least 30% of it
is overlapped by CNVs of its own father (mother), measured either in genomic
coordinates or on the bin grid. Uncovered calls become the de novo
candidates that are later checked against the dCR evidence.
"""

from typing import List, Optional

import bioframe as bf
import numpy as np
import pandas as pd


COVERAGE_THRESH = 0.3
PARENT_FREQ_MAX = 0.01
SEX_CHROM_PATTERN = "X|Y"


def call_ranges(calls: pd.DataFrame, extra: Optional[List[str]] = None) -> pd.DataFrame:
    """Calls as a 0-based half-open (chrom, start, end) frame for bioframe."""
    ranges = pd.DataFrame({
        "chrom": calls["chr"].astype(str).to_numpy(),
        "start": calls["start0"].to_numpy(),
        "end": calls["end"].to_numpy(),
    })
    for col in extra or []:
        ranges[col] = calls[col].to_numpy()
    return ranges


def get_coverage(x: pd.DataFrame, y: pd.DataFrame, relation: str = "paternal") -> np.ndarray:
    """
    Fraction of each interval in x covered by the intervals in y that belong
    to its father (relation="paternal") or mother (relation="maternal").

    x needs a paternal_id / maternal_id column, y a sample column. Fractions
    from several parental intervals are summed, so values above 1 are
    possible. Rows with no coordinates (e.g. off the bin grid) stay at 0.
    """
    if relation not in ("paternal", "maternal"):
        raise ValueError(f"relation must be 'paternal' or 'maternal', got {relation!r}")
    id_col = f"{relation}_id"

    out = np.zeros(len(x), dtype=float)
    query = x.assign(_row=np.arange(len(x)))[["chrom", "start", "end", "_row", id_col]]
    query = query.dropna(subset=["start", "end"])
    subject = y[["chrom", "start", "end", "sample"]].dropna(subset=["start", "end"])
    if query.empty or subject.empty:
        return out

    query = query.astype({"start": np.int64, "end": np.int64})
    subject = subject.astype({"start": np.int64, "end": np.int64})
    ov = bf.overlap(query, subject, how="inner", suffixes=("", "_p"))
    if ov.empty:
        return out

    ov = ov[ov[id_col] == ov["sample_p"]]
    if ov.empty:
        return out

    ov_len = (np.minimum(ov["end"], ov["end_p"]) - np.maximum(ov["start"], ov["start_p"])).astype(float)
    frac = ov_len / (ov["end"] - ov["start"]).astype(float)
    cov_hit = frac.groupby(ov["_row"].astype(np.int64)).sum()
    out[cov_hit.index.to_numpy(dtype=np.int64)] = cov_hit.to_numpy(dtype=float)
    return out


def to_bin_space(ranges: pd.DataFrame, bins: pd.DataFrame) -> pd.DataFrame:
    """
    Re-express intervals as ranges of bin indices on the bin grid.

    An interval spanning bins i..j becomes [i, j + 1) on the same chromosome.
    Intervals that touch no bin get missing coordinates.
    """
    grid = bins[["chrom", "start", "end"]].reset_index(drop=True)
    grid = grid.assign(bin_idx=np.arange(len(grid)))

    first = np.full(len(ranges), -1, dtype=np.int64)
    last = np.full(len(ranges), -1, dtype=np.int64)
    query = ranges[["chrom", "start", "end"]].assign(_row=np.arange(len(ranges)))
    if not query.empty:
        ov = bf.overlap(query, grid, how="inner", suffixes=("", "_b"))
        if not ov.empty:
            span = ov.groupby(ov["_row"].astype(np.int64))["bin_idx_b"].agg(["min", "max"])
            rows = span.index.to_numpy(dtype=np.int64)
            first[rows] = span["min"].to_numpy(dtype=np.int64)
            last[rows] = span["max"].to_numpy(dtype=np.int64) + 1

    on_grid = first >= 0
    out = ranges.copy()
    out["start"] = pd.array(np.where(on_grid, first, 0), dtype="Int64")
    out["end"] = pd.array(np.where(on_grid, last, 0), dtype="Int64")
    out.loc[~on_grid, ["start", "end"]] = pd.NA
    return out


def recalibrate_parental_frequency(calls: pd.DataFrame, ped: pd.DataFrame) -> pd.DataFrame:
    """
    Replace the callset's sc/sf with the carrier count / fraction among the
    trio parents, so that offspring never inflate the frequency of their own
    CNVs.
    """
    parent_ids = pd.unique(pd.concat([ped["paternal_id"], ped["maternal_id"]]))
    parent_cnvs = (
        calls[calls["sample"].isin(parent_ids)]
        .groupby("variant_name")["sample"]
        .nunique()
        .rename("sc")
        .reset_index()
    )
    parent_cnvs["sf"] = parent_cnvs["sc"] / max(len(parent_ids), 1)

    calls = calls.drop(columns=["sc", "sf"], errors="ignore").merge(
        parent_cnvs, on="variant_name", how="left", validate="many_to_one"
    )
    calls["sc"] = calls["sc"].fillna(0).astype(np.int64)
    calls["sf"] = calls["sf"].fillna(0.0)
    return calls.sort_values(["sample", "chr", "start"], kind="mergesort").reset_index(drop=True)


def is_autosomal(calls: pd.DataFrame) -> pd.Series:
    return ~calls["chr"].astype(str).str.contains(SEX_CHROM_PATTERN)


def filter_child_calls(calls: pd.DataFrame, ped: pd.DataFrame) -> pd.DataFrame:
    """
    Child calls eligible for de novo classification: passing sample and
    quality filters, rare among the parents, autosomal, and from a child of
    a complete trio (pedigree columns merged in).
    """
    keep = (
        calls["PASS_SAMPLE"]
        & calls["PASS_QS"]
        & (calls["sf"] < PARENT_FREQ_MAX)
        & is_autosomal(calls)
    )
    children = ped.drop_duplicates("sample_id", keep="first")[
        ["sample_id", "family_id", "paternal_id", "maternal_id"]
    ]
    child_calls = calls[keep].merge(
        children, left_on="sample", right_on="sample_id", how="inner"
    )
    return child_calls.drop(columns="sample_id").reset_index(drop=True)


def classify_overlap(child_calls: pd.DataFrame) -> pd.Series:
    """Preliminary label from the native and bin-space coverage fractions."""
    t = COVERAGE_THRESH
    pat = (child_calls["cov_p_bs"] >= t) | (child_calls["cov_p"] >= t)
    mat = (child_calls["cov_m_bs"] >= t) | (child_calls["cov_m"] >= t)
    none = (
        (child_calls["cov_m_bs"] < t) & (child_calls["cov_m"] < t)
        & (child_calls["cov_p_bs"] < t) & (child_calls["cov_p"] < t)
    )
    labels = np.select(
        [pat & mat, pat, mat, none],
        ["biparental", "paternal", "maternal", "denovo"],
        default="inherited",
    )
    return pd.Series(labels, index=child_calls.index, dtype=object)


def predict_inheritance(calls: pd.DataFrame, ped: pd.DataFrame, bins: pd.DataFrame) -> pd.DataFrame:
    """
    Filter the (recalibrated) callset down to child calls and label each by
    parental overlap. Adds cov_p, cov_m, cov_p_bs, cov_m_bs and inheritance.
    """
    child_calls = filter_child_calls(calls, ped)
    autosomal = is_autosomal(calls)
    paternal_calls = calls[calls["sample"].isin(ped["paternal_id"]) & autosomal]
    maternal_calls = calls[calls["sample"].isin(ped["maternal_id"]) & autosomal]

    gr_c = call_ranges(child_calls, ["paternal_id", "maternal_id"])
    gr_p = call_ranges(paternal_calls, ["sample"])
    gr_m = call_ranges(maternal_calls, ["sample"])

    child_calls["cov_p"] = get_coverage(gr_c, gr_p, "paternal")
    child_calls["cov_m"] = get_coverage(gr_c, gr_m, "maternal")

    gr_c_bs = to_bin_space(gr_c, bins)
    gr_p_bs = to_bin_space(gr_p, bins)
    gr_m_bs = to_bin_space(gr_m, bins)

    child_calls["cov_p_bs"] = get_coverage(gr_c_bs, gr_p_bs, "paternal")
    child_calls["cov_m_bs"] = get_coverage(gr_c_bs, gr_m_bs, "maternal")

    child_calls["inheritance"] = classify_overlap(child_calls)
    return child_calls
