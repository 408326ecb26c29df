# -*- coding: utf-8 -*-
"""Shared fixtures: small trio callsets and tabix-indexed dCR matrices"""

import pysam
import pytest


CALLSET_HEADER = [
    "#chr", "start", "end", "name", "sample", "batch", "CN", "svtype",
    "variant_name", "PASS_SAMPLE", "PASS_QS", "sc", "sf",
]

# 1-based inclusive coordinates
CALLS = [
    # kid1: de novo deletion, no parental CNV nearby
    ("chr1", 2001, 6000, "c1", "kid1", "A", 1, "DEL", "v1", "TRUE", "TRUE", 9, 0.9),
    # kid1: duplication mostly covered by a paternal duplication
    ("chr1", 10001, 14000, "c2", "kid1", "A", 3, "DUP", "v2", "TRUE", "TRUE", 0, 0),
    ("chr1", 10001, 13000, "c3", "dad1", "B", 3, "DUP", "v2b", "TRUE", "TRUE", 0, 0),
    # kid1: deletion half covered by a maternal deletion
    ("chr1", 15001, 16000, "c4", "kid1", "A", 1, "DEL", "v3", "TRUE", "TRUE", 0, 0),
    ("chr1", 15501, 16000, "c5", "mom1", "A", 1, "DEL", "v3b", "TRUE", "TRUE", 0, 0),
    # kid1: sex chromosome and failing calls never become candidates
    ("chrX", 2001, 6000, "c6", "kid1", "A", 1, "DEL", "v4", "TRUE", "TRUE", 0, 0),
    ("chr1", 17001, 18000, "c7", "kid1", "A", 1, "DEL", "v6", "TRUE", "FALSE", 0, 0),
    # kid2: de novo deletion in a batch without a dCR matrix
    ("chr1", 2001, 6000, "c8", "kid2", "C", 1, "DEL", "v5", "TRUE", "TRUE", 0, 0),
    # kid2: common among parents (dad2 carries v9)
    ("chr1", 8001, 9000, "c9", "kid2", "C", 3, "DUP", "v9", "TRUE", "TRUE", 0, 0),
    ("chr2", 1001, 2000, "c10", "dad2", "C", 3, "DUP", "v9", "TRUE", "TRUE", 0, 0),
    ("chr3", 1001, 2000, "c11", "mom2", "C", 1, "DEL", "v10", "TRUE", "TRUE", 0, 0),
]

PED = [
    ("fam1", "kid1", "dad1", "mom1", "1", "2"),
    ("fam1", "dad1", "0", "0", "1", "1"),
    ("fam1", "mom1", "0", "0", "2", "1"),
    ("fam2", "kid2", "dad2", "mom2", "2", "2"),
    ("fam3", "kid3", "dad3", "mom3", "1", "2"),
]


def write_dcr_matrix(path, samples, values, chrom="chr1", n_bins=20, width=1000):
    """
    Write a bgzipped, tabix-indexed dCR matrix with n_bins bins of `width`
    on `chrom`. `values` maps sample -> function(bin_start) -> dCR (str or
    float); samples missing from it get 1.0.
    """
    with open(path, "w") as fh:
        fh.write("\t".join(["#chr", "start", "end"] + list(samples)) + "\n")
        for i in range(n_bins):
            start, end = i * width, (i + 1) * width
            row = [chrom, str(start), str(end)]
            for s in samples:
                fn = values.get(s)
                row.append(str(fn(start)) if fn else "1.0")
            fh.write("\t".join(row) + "\n")
    return pysam.tabix_index(
        str(path), seq_col=0, start_col=1, end_col=2, zerobased=True, force=True
    )


@pytest.fixture
def dcr_writer():
    return write_dcr_matrix


@pytest.fixture
def dcr_files(tmp_path):
    """Batch A (kid1, mom1 + background) and batch B (dad1 + background)."""
    kid_del = lambda start: 0.5 if 2000 <= start < 6000 else 1.0
    path_a = write_dcr_matrix(
        tmp_path / "A.dcr.bed", ["kid1", "mom1", "bg1", "bg2"], {"kid1": kid_del}
    )
    # batch B lacks the last bin of batch A
    path_b = write_dcr_matrix(tmp_path / "B.dcr.bed", ["dad1", "bg3"], {}, n_bins=19)
    return {"A": [path_a], "B": [path_b]}


@pytest.fixture
def trio_inputs(tmp_path, dcr_files):
    """Paths of a complete set of pipeline inputs."""
    callset = tmp_path / "callset.tsv"
    with open(callset, "w") as fh:
        fh.write("\t".join(CALLSET_HEADER) + "\n")
        for call in CALLS:
            fh.write("\t".join(str(v) for v in call) + "\n")

    ped = tmp_path / "cohort.ped"
    with open(ped, "w") as fh:
        fh.write("#family_id\tsample_id\tpaternal_id\tmaternal_id\tsex\tphenotype\n")
        for row in PED:
            fh.write("\t".join(row) + "\n")

    bins = tmp_path / "bins.bed"
    with open(bins, "w") as fh:
        for chrom in ("chr1", "chr2", "chr3", "chrX"):
            for i in range(20):
                fh.write(f"{chrom}\t{i * 1000}\t{(i + 1) * 1000}\n")

    # one line with an explicit batch, one bare path (batch from the file name)
    dcrs = tmp_path / "dcrs.txt"
    with open(dcrs, "w") as fh:
        fh.write(f"A\t{dcr_files['A'][0]}\n")
        fh.write(f"{dcr_files['B'][0]}\n")

    return {
        "callset": str(callset),
        "ped": str(ped),
        "bins": str(bins),
        "dcrs": str(dcrs),
        "dir": tmp_path,
    }
