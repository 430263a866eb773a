from pathlib import Path
import numpy as np
import pandas as pd
from Bio import SeqIO

from .steps.common import Context
from .utils import regex

BUSCO_RESULT = "busco_result"
QUAST_COLUMNS = ["Assembly", "# contigs", "Largest contig", "Total length", "N50", "L50"]

# runs quast on one or more assemblies, labelled by [labels]
def Quast(C: Context, assemblies: list[Path], out: Path, labels: list[str]|None=None):
    C.log.info(f"running quast on {len(assemblies)} assemblies")
    _labels = "" if labels is None else f"-l {','.join(labels)}"
    report = out.joinpath("report.tsv")
    C.Shell(f"""\
        quast -o {out} -t {C.threads} {_labels} \
            {' '.join(str(a) for a in assemblies)}
    """, expect=[report])
    return report

def SummarizeQuast(quast_dir: Path) -> pd.DataFrame:
    df = pd.read_csv(quast_dir.joinpath("transposed_report.tsv"), sep="\t")
    cols = [c for c in QUAST_COLUMNS if c in df.columns]
    return df[cols].set_index("Assembly")

def Busco(C: Context, genome: Path, out: Path):
    cfg = C.config
    C.log.info(f"running busco with lineage [{cfg.busco_lineage}]")
    offline = "" if cfg.busco_db is None else f"--offline --download_path {cfg.busco_db}"
    summary = out.joinpath(BUSCO_RESULT, f"short_summary.specific.{cfg.busco_lineage}.{BUSCO_RESULT}.txt")
    C.Shell(f"""\
        busco -m genome -i {genome} -o {BUSCO_RESULT} --out_path {out} \
            -l {cfg.busco_lineage} -c {C.threads} -f {offline}
    """, expect=[summary])
    return summary

def BuscoCompleteness(summary: Path) -> str|None:
    """the C:..%[S:..%,D:..%],F:..%,M:..%,n:.. line of a busco short summary"""
    with open(summary) as f:
        text = f.read()
    for m in regex(r"C:[\d.]+%\[S:[\d.]+%,D:[\d.]+%\],F:[\d.]+%,M:[\d.]+%,n:\d+", text):
        return m
    return None

# k-mer based consensus quality of [genome] against the hifi reads
def Merqury(C: Context, genome: Path, out: Path, k: int=21):
    cfg = C.config
    C.log.info(f"running merqury with k={k}")
    qv = out.joinpath(f"{cfg.prefix}.qv")
    C.Shell(f"""\
        meryl k={k} count threads={C.threads} output reads.meryl {' '.join(str(p) for p in cfg.hifi)}
        merqury.sh reads.meryl {genome} {cfg.prefix}
    """, cwd=out, expect=[qv])
    return qv

def MerquryQV(qv: Path) -> float:
    # asm, k-mers only in asm, k-mers total, QV, error rate
    df = pd.read_csv(qv, sep="\t", header=None)
    return float(df.iloc[0, 3])

def Nx(lengths: list[int]|np.ndarray, x: float=0.5) -> int:
    if len(lengths) == 0: return 0
    ordered = np.sort(np.asarray(lengths))[::-1]
    cumulative = np.cumsum(ordered)
    return int(ordered[np.searchsorted(cumulative, cumulative[-1]*x)])

def SequenceStats(fasta: Path) -> dict:
    """sequence count, total length, N50 and gap (N run) count of a fasta"""
    lengths, gaps = [], 0
    for e in SeqIO.parse(fasta, "fasta"):
        lengths.append(len(e.seq))
        gaps += sum(1 for _ in regex(r"[Nn]+", str(e.seq)))
    return dict(
        sequences=len(lengths),
        total_length=int(np.sum(lengths)) if len(lengths)>0 else 0,
        n50=Nx(lengths, 0.5),
        gaps=gaps,
    )
