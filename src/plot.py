import os
import pandas as pd
import numpy as np
import matplotlib
matplotlib.use("Agg")
import matplotlib.pyplot as plt

from inheritance import INHERITANCE_LABELS, MD_MIN


def make_plots(out_dir: str, table_path: str):
    """
    Generate PNG plots from the annotated de novo table.
    Includes:
      - Final inheritance categories of the de novo candidates
      - Child dCR mean vs distance to the nearest parent
      - Number of bins per candidate (log10)
    """

    def safe_read_tsv(path, **kwargs):
        if not os.path.exists(path):
            print(f"[WARN] File not found for plotting: {path}")
            return None
        return pd.read_csv(path, sep="\t", **kwargs)

    dn = safe_read_tsv(table_path)
    if dn is None or dn.empty:
        print("[WARN] No de novo candidates to plot.")
        return

    # ----------------------------------------------------------
    # FIGURE 1: Final inheritance categories
    # ----------------------------------------------------------
    if "inheritance" in dn.columns:
        counts = dn["inheritance"].value_counts()
        ordered = [c for c in INHERITANCE_LABELS if c in counts.index]
        ordered += [c for c in counts.index if c not in ordered]
        counts = counts.reindex(ordered)

        plt.figure(figsize=(7, 4))
        plt.bar(counts.index.astype(str), counts.values)
        for x, y in zip(counts.index.astype(str), counts.values):
            plt.text(x, y, str(y), ha="center", va="bottom", fontsize=8)
        plt.title("Refined De Novo CNV Candidates")
        plt.xlabel("Inheritance category")
        plt.ylabel("Number of CNVs")
        plt.xticks(rotation=30, ha="right")
        plt.tight_layout()
        fig1_path = os.path.join(out_dir, "fig1_inheritance_counts.png")
        plt.savefig(fig1_path, dpi=300)
        plt.close()
        print(f"[INFO] Saved {fig1_path}")

    # ----------------------------------------------------------
    # FIGURE 2: M vs MD, coloured by SV type
    # ----------------------------------------------------------
    if {"M", "MD", "svtype"}.issubset(dn.columns):
        rg = dn.dropna(subset=["M", "MD"])
        if not rg.empty:
            plt.figure(figsize=(6, 4.5))
            for svt in sorted(rg["svtype"].astype(str).unique()):
                sub = rg[rg["svtype"] == svt]
                plt.scatter(sub["M"], sub["MD"], s=10, alpha=0.7, label=svt)
            plt.axhline(MD_MIN, color="grey", linestyle="--", linewidth=0.8)
            plt.title("Child Copy Number vs Distance to Nearest Parent")
            plt.xlabel("Child mean dCR (M, copy number scale)")
            plt.ylabel("Distance to nearest parent (MD)")
            plt.legend(title="SVTYPE", fontsize=8)
            plt.tight_layout()
            fig2_path = os.path.join(out_dir, "fig2_m_vs_md.png")
            plt.savefig(fig2_path, dpi=300)
            plt.close()
            print(f"[INFO] Saved {fig2_path}")

    # ----------------------------------------------------------
    # FIGURE 3: Bins per candidate (log10)
    # ----------------------------------------------------------
    if "bins" in dn.columns:
        bins = pd.to_numeric(dn["bins"], errors="coerce").replace(0, np.nan).dropna()
        if not bins.empty:
            plt.figure(figsize=(6, 4))
            plt.hist(np.log10(bins), bins=40)
            plt.title("Bins per De Novo Candidate (log10 scale)")
            plt.xlabel("log10(number of bins)")
            plt.ylabel("Count")
            plt.tight_layout()
            fig3_path = os.path.join(out_dir, "fig3_bins_log10.png")
            plt.savefig(fig3_path, dpi=300)
            plt.close()
            print(f"[INFO] Saved {fig3_path}")
