"""
Gather dCR evidence for candidate de novo CNVs.

For every candidate the trio's dCR rows over the CNV region are pulled from
the matrices of the batches the child, father and mother were processed in,
merged into one bin x individual matrix and regenotyped. Candidates are
independent, so they are spread over a process pool.
"""

from functools import partial
from multiprocessing import Pool
from typing import Dict, List, Optional

import pandas as pd

from cnv_io import get_samples_dcr
from regenotype import RegenotypeResult, TrioIds, regenotype


COORD_COLS = ["chr", "start", "end"]
RG_COLUMNS = ["M", "MF", "MM", "MD", "bins_fail", "bins"]


def call_trio(call) -> TrioIds:
    return TrioIds(call["sample"], call["paternal_id"], call["maternal_id"])


def call_region(call):
    """(chrom, start0, end) of a call, 0-based half-open."""
    return str(call["chr"]), int(call["start"]) - 1, int(call["end"])


def group_by_batch(call) -> Dict[str, List[str]]:
    """Trio members keyed by the batch they were processed in."""
    groups: Dict[str, List[str]] = {}
    batches = (call["batch"], call["paternal_batch"], call["maternal_batch"])
    for sample, batch in zip(call_trio(call), batches):
        groups.setdefault(batch, []).append(sample)
    return groups


def bin_keys(dcr: pd.DataFrame) -> pd.Index:
    return pd.Index(
        dcr["chr"].astype(str) + ":" + dcr["start"].astype(str) + "-" + dcr["end"].astype(str)
    )


def assemble_trio_dcr(call, dcr_map: Dict[str, List[str]]) -> Optional[pd.DataFrame]:
    """
    Build the bin x individual dCR matrix of one candidate call.

    Columns are child, father, mother, then the background samples of the
    child's batch. Bins missing from one batch stay NaN. Returns None when
    a batch has no dCR matrix, its region can't be read, a trio member is
    absent or no bin overlaps the call.
    """
    trio = call_trio(call)
    region = call_region(call)

    blocks = []
    for batch, samples in group_by_batch(call).items():
        dcr_paths = dcr_map.get(batch)
        if not dcr_paths:
            return None
        try:
            dcr = get_samples_dcr(region, dcr_paths, samples, include_bg=trio.child in samples)
        except Exception as e:
            print(f"[WARN] could not read dCR for {trio.child} at "
                  f"{region[0]}:{region[1] + 1}-{region[2]} (batch {batch}): {e}")
            return None
        if dcr is None or dcr.empty:
            return None
        if any(s not in dcr.columns for s in samples):
            return None

        other_batch = [s for s in trio if s not in samples and s in dcr.columns]
        mat = dcr.drop(columns=COORD_COLS + other_batch)
        mat.index = bin_keys(dcr)
        blocks.append(mat[~mat.index.duplicated()])

    trio_dcr = pd.concat(blocks, axis=1, join="outer")
    trio_dcr = trio_dcr.loc[:, ~trio_dcr.columns.duplicated()]
    if trio_dcr.shape[0] == 0:
        return None

    bg_samples = [s for s in trio_dcr.columns if s not in trio]
    return trio_dcr[list(trio) + bg_samples]


def get_denovo_evidence(call, dcr_map: Dict[str, List[str]]) -> RegenotypeResult:
    """M, MF, MM, MD, bins_fail and bins for one candidate call."""
    return regenotype(assemble_trio_dcr(call, dcr_map), call_trio(call))


def gather_evidence(candidates: pd.DataFrame, dcr_map: Dict[str, List[str]], nproc: int = 1) -> pd.DataFrame:
    """
    Regenotype every candidate, nproc at a time.

    The result is row-aligned with `candidates` (same index, same order).
    """
    calls = candidates.to_dict("records")
    worker = partial(get_denovo_evidence, dcr_map=dcr_map)
    if nproc <= 1 or len(calls) <= 1:
        results = [worker(call) for call in calls]
    else:
        with Pool(min(nproc, len(calls))) as pool:
            results = pool.map(worker, calls)

    rg = pd.DataFrame([r.to_dict() for r in results], columns=RG_COLUMNS, index=candidates.index)
    for col in ("M", "MF", "MM", "MD"):
        rg[col] = pd.to_numeric(rg[col]).astype(float)
    for col in ("bins_fail", "bins"):
        rg[col] = pd.to_numeric(rg[col]).astype("Int64")
    return rg
