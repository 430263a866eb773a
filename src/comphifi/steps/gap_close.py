from pathlib import Path
from Bio import SeqIO

from ..constants import GAPCLOSE_DIR, GAP_CLOSED, PRIMARY_ASM, PRIMARY_ASSEMBLER, SCAFFOLDS, AssemblyAlias
from ..external_qc import SequenceStats
from ..utils import NonEmpty
from .common import Context

OUT_DIR = GAPCLOSE_DIR
FILLED = "quarTeT.genome.filled.fasta"

def PoolContigs(assemblies: dict[str, Path], out: Path) -> int:
    """concatenates contigs, ids prefixed with the assembler name so they stay unique"""
    def _records():
        for name, fasta in assemblies.items():
            for e in SeqIO.parse(fasta, "fasta"):
                e.id = f"{name}_{e.id}"
                e.name = e.id
                e.description = ""
                yield e
    return SeqIO.write(_records(), out, "fasta")

def Procedure(C: Context):
    cfg = C.config
    scaffolds = C.Require(SCAFFOLDS)
    C.Require(PRIMARY_ASM)
    published = C.out_dir.joinpath(f"{cfg.prefix}.gapclosed.fa")
    work = C.Dir("quartet")
    filled = work.joinpath(FILLED)
    if filled.exists(): filled.unlink()

    # the primary assembly is what was scaffolded, filling from it adds nothing
    others = {k:p for k, p in C.artifacts.Assemblies().items() if k != PRIMARY_ASSEMBLER}
    for name in others:
        C.Require(AssemblyAlias(name))
    pool = C.out_dir.joinpath("all_contigs.fa")
    n = PoolContigs(others, pool) if len(others)>0 else 0
    if n == 0:
        C.log.warning("no alternate contigs to fill gaps with, skipping quartet")
    else:
        C.log.info(f"filling gaps with {n} contigs from [{', '.join(others)}]")
        C.Shell(f"""\
            quartet gf -t {C.threads} -d {scaffolds} -g {pool} -p quarTeT
        """, cwd=work)

    if NonEmpty(filled):
        C.Publish(GAP_CLOSED, filled, published)
    else:
        C.log.warning("quartet produced no filled genome, publishing the scaffolds unchanged")
        C.Publish(GAP_CLOSED, scaffolds, published)

    before, after = SequenceStats(scaffolds), SequenceStats(published)
    C.log.info(f"gaps: {before['gaps']} -> {after['gaps']}, N50: {before['n50']} -> {after['n50']}")
    C.log.info(f"gap closed genome is [{published}]")
