"""
Readers for the inputs of the de novo CNV annotation.

  - callset    : final gCNV callset, one row per (sample, CNV)
  - bins       : genomic bins the callset was produced on
  - pedigree   : PED file linking children to parents
  - dCR list   : batch -> dCR matrix paths
  - dCR matrix : bgzipped + tabix-indexed bin x sample depth ratios

Malformed rows are dropped here so nothing downstream has to re-check them.
"""

import os
from collections import defaultdict
from typing import Dict, List, Optional

import bioframe as bf
import numpy as np
import pandas as pd
import pysam


CALLSET_COLUMNS = [
    "chr", "start", "end", "sample", "batch", "CN", "svtype",
    "variant_name", "PASS_SAMPLE", "PASS_QS",
]
PED_COLUMNS = ["family_id", "sample_id", "paternal_id", "maternal_id", "sex", "phenotype"]
SVTYPES = {"DEL", "DUP"}

# dCR is normalised to the diploid depth; the classifier works on copy number
DCR_PLOIDY = 2

TRUE_STRINGS = {"true", "t", "1", "yes"}
FALSE_STRINGS = {"false", "f", "0", "no"}


def parse_bool(series: pd.Series) -> pd.Series:
    """TRUE/FALSE, True/False, 1/0 -> bool (anything else is False)."""
    if series.dtype == bool:
        return series
    s = series.astype(str).str.strip().str.lower()
    unknown = ~s.isin(TRUE_STRINGS | FALSE_STRINGS)
    if unknown.any():
        print(f"[WARN] {int(unknown.sum())} unrecognised boolean values treated as FALSE")
    return s.isin(TRUE_STRINGS)


def _strip_hash(df: pd.DataFrame) -> pd.DataFrame:
    df.columns = [str(c).lstrip("#") for c in df.columns]
    return df


def read_callset(path: str) -> pd.DataFrame:
    """
    Read the gCNV callset (TSV with header).

    Coordinates stay 1-based inclusive in `start`/`end`; `start0` holds the
    0-based half-open start used for all interval arithmetic.
    """
    df = _strip_hash(pd.read_csv(path, sep="\t", dtype=str))
    missing = [c for c in CALLSET_COLUMNS if c not in df.columns]
    if missing:
        raise ValueError(f"Callset {path} is missing required columns: {', '.join(missing)}")
    return validate_callset(df)


def validate_callset(df: pd.DataFrame) -> pd.DataFrame:
    """Coerce types and drop rows that can't be classified."""
    df = df.copy()
    for col in ("start", "end", "CN"):
        df[col] = pd.to_numeric(df[col], errors="coerce")
    df["chr"] = df["chr"].astype(str)
    df["svtype"] = df["svtype"].astype(str).str.strip().str.upper()
    df["PASS_SAMPLE"] = parse_bool(df["PASS_SAMPLE"])
    df["PASS_QS"] = parse_bool(df["PASS_QS"])

    bad = (
        df[["start", "end", "CN"]].isna().any(axis=1)
        | (df["CN"] < 0)
        | (df["end"] < df["start"])
        | ~df["svtype"].isin(SVTYPES)
        | df["sample"].isna()
        | df["batch"].isna()
    )
    if bad.any():
        print(f"[WARN] dropping {int(bad.sum())} malformed calls "
              "(missing coordinates, negative CN, zero-length interval or unknown SVTYPE)")
        df = df[~bad].copy()

    df["start"] = df["start"].astype(np.int64)
    df["end"] = df["end"].astype(np.int64)
    df["CN"] = df["CN"].astype(np.int64)
    df["start0"] = df["start"] - 1
    return df.reset_index(drop=True)


def read_gcnv_bins(path: str, reduce: bool = False) -> pd.DataFrame:
    """
    Read the bins file as a sorted 0-based half-open table (chrom, start, end).

    Accepts a BED-like file or a GATK interval list (@-header, 1-based).
    With reduce, overlapping bins are merged into one (book-ended bins stay
    apart), as needed for the padded hg19 bin grids.
    """
    with open(path) as fh:
        interval_list = fh.read(1) == "@"
    try:
        raw = pd.read_csv(
            path, sep="\t", header=None, usecols=[0, 1, 2], dtype=str,
            comment="@" if interval_list else "#",
        )
    except pd.errors.EmptyDataError:
        raw = pd.DataFrame(columns=[0, 1, 2])

    # header lines like "CONTIG START END" don't survive the numeric coercion
    bins = pd.DataFrame({
        "chrom": raw[0].astype(str),
        "start": pd.to_numeric(raw[1], errors="coerce"),
        "end": pd.to_numeric(raw[2], errors="coerce"),
    }).dropna(subset=["start", "end"])
    if bins.empty:
        raise ValueError(f"No bins found in {path}")

    bins = bins.astype({"start": np.int64, "end": np.int64})
    if interval_list:
        bins["start"] = bins["start"] - 1
    if reduce:
        n_bins = len(bins)
        bins = bf.merge(bins, min_dist=None)[["chrom", "start", "end"]]
        print(f"[INFO] merged {n_bins} bins into {len(bins)} non-overlapping bins")
    return bins.sort_values(["chrom", "start"], kind="mergesort").reset_index(drop=True)


def is_hg19_callset(calls: pd.DataFrame) -> bool:
    """True when the callset names chromosomes without the 'chr' prefix."""
    hg19_names = [str(i) for i in range(1, 23)] + ["X", "Y"]
    return bool(calls["chr"].astype(str).isin(hg19_names).any())


def read_pedigree(path: str) -> pd.DataFrame:
    """Read a 6-column PED file; '#' lines are treated as comments/header."""
    ped = pd.read_csv(path, sep=r"\s+", comment="#", header=None, dtype=str)
    if ped.shape[1] < 6:
        raise ValueError(f"Pedigree {path} has {ped.shape[1]} columns; expected 6")
    ped = ped.iloc[:, :6]
    ped.columns = PED_COLUMNS
    return ped


def filter_pedigree(ped: pd.DataFrame, samples) -> pd.DataFrame:
    """Keep only trios whose child, father and mother all appear in the callset."""
    samples = set(samples)
    keep = (
        ped["sample_id"].isin(samples)
        & ped["paternal_id"].isin(samples)
        & ped["maternal_id"].isin(samples)
    )
    n_drop = int((~keep).sum())
    if n_drop:
        print(f"[INFO] {n_drop} pedigree rows without a complete trio in the callset were dropped")
    return ped[keep].reset_index(drop=True)


def read_dcr_list(path: str) -> Dict[str, List[str]]:
    """
    Build the batch -> dCR paths registry.

    Each line is either "batch<TAB>path" or a bare path, in which case the
    batch is the file name up to its first dot. Relative paths are resolved
    against the list's directory.
    """
    base = os.path.dirname(os.path.abspath(path))
    dcr_map: Dict[str, List[str]] = defaultdict(list)
    with open(path) as fh:
        for lineno, line in enumerate(fh, start=1):
            line = line.strip()
            if not line or line.startswith("#"):
                continue
            p = line.split("\t")
            if len(p) == 1:
                dcr_path = p[0]
                batch = os.path.basename(dcr_path).split(".", 1)[0]
            elif len(p) == 2:
                batch, dcr_path = p
            else:
                raise ValueError(f"{path}:{lineno}: expected 'path' or 'batch<TAB>path'")
            if not os.path.isabs(dcr_path):
                dcr_path = os.path.join(base, dcr_path)
            dcr_map[batch].append(dcr_path)
    if not dcr_map:
        raise ValueError(f"No dCR matrices listed in {path}")
    return dict(dcr_map)


def get_samples_dcr(
    region,
    dcr_paths: List[str],
    samples: List[str],
    include_bg: bool = False,
) -> Optional[pd.DataFrame]:
    """
    Fetch the dCR rows overlapping `region` (chrom, start0, end) from the
    tabix-indexed matrices of one batch.

    Returns a table with chr/start/end followed by the requested sample
    columns (every sample of the batch when include_bg), on the copy-number
    scale. Raises if the region or the samples can't be found.
    """
    chrom, start0, end = region
    blocks = []
    for dcr_path in dcr_paths:
        with pysam.TabixFile(dcr_path) as tbx:
            header_lines = list(tbx.header)
            header = header_lines[-1].lstrip("#").split("\t") if header_lines else []
            if len(header) < 4:
                raise ValueError(f"dCR matrix {dcr_path} has no sample header")
            columns = ["chr", "start", "end"] + header[3:]
            wanted = header[3:] if include_bg else [s for s in header[3:] if s in samples]
            if not wanted:
                continue
            rows = [rec.split("\t") for rec in tbx.fetch(chrom, start0, end)]

        block = pd.DataFrame(rows, columns=columns)[["chr", "start", "end"] + wanted]
        # a repeated bin row would break the column-wise concat below
        block = block.drop_duplicates(["chr", "start", "end"], keep="first").copy()
        block[wanted] = block[wanted].apply(pd.to_numeric, errors="coerce") * DCR_PLOIDY
        blocks.append(block.set_index(["chr", "start", "end"]))

    if not blocks:
        raise ValueError(f"None of {', '.join(samples)} found in the dCR matrices")

    dcr = pd.concat(blocks, axis=1, join="outer")
    dcr = dcr.loc[:, ~dcr.columns.duplicated()]
    missing = [s for s in samples if s not in dcr.columns]
    if missing:
        print(f"[WARN] samples missing from dCR matrices: {', '.join(missing)}")
    return dcr.reset_index()
