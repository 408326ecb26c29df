#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
De novo CNV annotation for trios (gCNV callsets)
------------------------------------------------

Pipeline:
1. Read the callset, bins, pedigree and the list of dCR matrices.
    - pedigree rows are kept only when child, father and mother all have
      calls in the callset

2. Overlap-based prediction:
    - recalibrate CNV frequency to the parents (sc / sf)
    - keep PASS, rare (sf < 0.01), autosomal child calls
    - child CNVs covered >= 30% by a CNV of the father / mother, in genomic
      or in bin space, are paternal / maternal / biparental; the rest are
      de novo candidates

3. dCR evidence:
    - per candidate, the trio dCR over the CNV region is merged across
      batches and regenotyped (M, MF, MM, MD, bins_fail, bins)

4. Refinement:
    - the rule cascade turns candidates into denovo, inherited, fail_* or
      mosaic_* calls

Outputs:
    - OUT (TSV)     : one row per de novo candidate with the regenotyping
                      statistics and the final inheritance label
    - --report      : compact text summary (optional)
    - --plot-dir    : figures (optional)
"""

import argparse
import os
import sys
from typing import Dict, List, Tuple

import pandas as pd

from cnv_io import (
    filter_pedigree,
    is_hg19_callset,
    read_callset,
    read_dcr_list,
    read_gcnv_bins,
    read_pedigree,
)
from cnv_overlap import predict_inheritance, recalibrate_parental_frequency
from dcr_evidence import RG_COLUMNS, gather_evidence
from inheritance import INHERITANCE_LABELS, refine_inheritance

#custom module for plotting the results
from plot import make_plots


# 1. ARGUMENT PARSING

def parse_args(argv=None):
    """
    Parse command-line arguments.

    Returns a Namespace with:
      callset, bins, ped, dcrs : input paths
      nproc                    : number of worker processes
      out                      : output TSV
      report, plot_dir         : optional extra outputs
    """
    p = argparse.ArgumentParser(description="Annotate de novo CNVs from a gCNV callset.")
    p.add_argument("--callset", required=True, help="final callset produced by the gCNV pipeline")
    p.add_argument("--bins", required=True, help="genomic bins used by the gCNV pipeline")
    p.add_argument("--ped", required=True, help="pedigree file")
    p.add_argument("--dcrs", required=True, help="list of dCR matrix paths, one per line")
    p.add_argument("--nproc", type=int, default=1, help="number of processes to use")
    p.add_argument("--out", required=True, help="where to write the annotated de novo calls")
    p.add_argument("--report", default=None, help="optional text summary")
    p.add_argument("--plot-dir", default=None, help="optional directory for figures")
    args = p.parse_args(argv)
    if args.nproc < 1:
        p.error("--nproc must be at least 1")
    return args


# 2. CANDIDATES

def add_parental_batches(dn: pd.DataFrame, calls: pd.DataFrame) -> pd.DataFrame:
    """Attach the batch of each candidate's father and mother."""
    batch_tbl = calls[["sample", "batch"]].drop_duplicates()
    multi = batch_tbl["sample"].duplicated(keep=False)
    if multi.any():
        print(f"[WARN] {batch_tbl.loc[multi, 'sample'].nunique()} samples appear in "
              "several batches; using the first batch of each")
        batch_tbl = batch_tbl.drop_duplicates("sample", keep="first")

    pat = batch_tbl.rename(columns={"sample": "paternal_id", "batch": "paternal_batch"})
    mat = batch_tbl.rename(columns={"sample": "maternal_id", "batch": "maternal_batch"})
    dn = dn.merge(pat, on="paternal_id", how="inner", validate="many_to_one")
    dn = dn.merge(mat, on="maternal_id", how="inner", validate="many_to_one")
    return dn.reset_index(drop=True)


def preliminary_calls(
    calls: pd.DataFrame, ped: pd.DataFrame, bins: pd.DataFrame
) -> Tuple[pd.DataFrame, pd.DataFrame, pd.DataFrame]:
    """
    Restrict the pedigree to complete trios, recalibrate the frequencies and
    label every eligible child call by parental overlap.

    Returns (recalibrated calls, trio pedigree, labelled child calls).
    """
    ped = filter_pedigree(ped, calls["sample"].unique())
    if ped.empty:
        raise RuntimeError("No trio in the pedigree has calls for child, father and mother")

    print("[INFO] making initial de novo predictions based on CNV overlap")
    calls = recalibrate_parental_frequency(calls, ped)
    child_calls = predict_inheritance(calls, ped, bins)
    return calls, ped, child_calls


def classify_candidates(
    candidates: pd.DataFrame, dcr_map: Dict[str, List[str]], nproc: int = 1
) -> pd.DataFrame:
    """
    Regenotype the de novo candidates and run the refinement cascade.

    `candidates` needs the call columns plus paternal/maternal ids and
    batches. The returned table is row-aligned with it and carries M, MF,
    MM, MD, bins_fail, bins, the mosaicism thresholds and the final
    inheritance.
    """
    print("[INFO] gathering dCR evidence")
    rg_info = gather_evidence(candidates, dcr_map, nproc)

    print("[INFO] regenotyping")
    table = pd.concat([candidates.drop(columns=RG_COLUMNS, errors="ignore"), rg_info], axis=1)
    return refine_inheritance(table)


def annotate_denovo_cnvs(
    calls: pd.DataFrame,
    ped: pd.DataFrame,
    bins: pd.DataFrame,
    dcr_map: Dict[str, List[str]],
    nproc: int = 1,
) -> Tuple[pd.DataFrame, pd.DataFrame, pd.DataFrame]:
    """
    Run the whole annotation.

    Returns (trio pedigree, labelled child calls, refined de novo table).
    """
    calls, ped, child_calls = preliminary_calls(calls, ped, bins)

    dn = child_calls[child_calls["inheritance"] == "denovo"]
    print(f"[INFO] found {len(dn)} de novo events based on overlap")
    dn = add_parental_batches(dn, calls)

    out = classify_candidates(dn, dcr_map, nproc)
    return ped, child_calls, out


# 3. OUTPUT

OUTPUT_DROP = ["start0", "mos_dup_thresh", "mos_del_thresh"]


def write_output(out: pd.DataFrame, path: str):
    cols = [c for c in out.columns if c not in OUTPUT_DROP and c != "inheritance"]
    out[cols + ["inheritance"]].to_csv(path, sep="\t", index=False, na_rep="NA")


def label_counts(labels: pd.Series) -> pd.DataFrame:
    counts = labels.value_counts()
    order = [c for c in INHERITANCE_LABELS if c in counts.index]
    counts = counts.reindex(order + [c for c in counts.index if c not in order])
    return counts.rename_axis("INHERITANCE").reset_index(name="COUNT")


def write_report(path: str, calls: pd.DataFrame, ped: pd.DataFrame,
                 child_calls: pd.DataFrame, out: pd.DataFrame):
    with open(path, "w") as f:
        f.write("===== INPUT =====\n")
        f.write(f"Calls in callset          : {len(calls)}\n")
        f.write(f"Samples in callset        : {calls['sample'].nunique()}\n")
        f.write(f"Complete trios            : {len(ped)}\n")
        f.write(f"Child calls considered    : {len(child_calls)}\n\n")

        f.write("===== OVERLAP-BASED INHERITANCE =====\n")
        f.write(label_counts(child_calls["inheritance"]).to_string(index=False))
        f.write("\n\n")

        f.write("===== REFINED DE NOVO CANDIDATES =====\n")
        if out.empty:
            f.write("No de novo candidates.\n")
        else:
            f.write(label_counts(out["inheritance"]).to_string(index=False))
            f.write("\n\n")
            confirmed = out[out["inheritance"] == "denovo"]
            f.write(f"Confirmed de novo CNVs ({len(confirmed)}):\n")
            cols = ["sample", "chr", "start", "end", "svtype", "CN", "M", "MF", "MM", "MD", "bins"]
            if not confirmed.empty:
                f.write(confirmed[cols].to_string(index=False))
                f.write("\n")


# 4. MAIN

def main(argv=None):
    args = parse_args(argv)

    try:
        print("[INFO] reading callset")
        raw_calls = read_callset(args.callset)
        print("[INFO] reading bins")
        bins = read_gcnv_bins(args.bins, reduce=is_hg19_callset(raw_calls))
        print("[INFO] reading pedigree")
        ped = read_pedigree(args.ped)
        print("[INFO] reading dCR paths")
        dcr_map = read_dcr_list(args.dcrs)

        trios, child_calls, out = annotate_denovo_cnvs(raw_calls, ped, bins, dcr_map, args.nproc)
    except (OSError, ValueError, RuntimeError) as e:
        print(f"[ERROR] {e}", file=sys.stderr)
        sys.exit(1)

    # ------------------------------
    # WRITE ANNOTATIONS
    # ------------------------------
    print("[INFO] writing output")
    write_output(out, args.out)

    if args.report:
        write_report(args.report, raw_calls, trios, child_calls, out)
        print(f"[INFO] report saved in: {args.report}")

    if args.plot_dir:
        os.makedirs(args.plot_dir, exist_ok=True)
        make_plots(args.plot_dir, args.out)

    print("[INFO] done")


if __name__ == "__main__":
    main()
