import os
import shutil
from pathlib import Path
from typing import Callable
from Bio import SeqIO
from Bio.Seq import Seq
from Bio.SeqRecord import SeqRecord

from ..constants import ASM_DIR, PRIMARY_ASSEMBLER, PRIMARY_ASM, AssemblyAlias
from ..models import StageFailure
from ..utils import MODULE_ROOT, NonEmpty
from .common import Context

OUT_DIR = ASM_DIR
NEXTDENOVO_TEMPLATE = MODULE_ROOT.joinpath("steps/nextdenovo.cfg")

def GfaToFasta(gfa: Path, fasta: Path) -> int:
    """writes the segment (S) lines of a GFA as fasta records, returns the record count"""
    def _segments():
        with open(gfa) as f:
            for line in f:
                if not line.startswith("S\t"): continue
                toks = line.rstrip("\n").split("\t")
                yield SeqRecord(Seq(toks[2]), id=toks[1], description="")
    return SeqIO.write(_segments(), fasta, "fasta")

def _hifiasm(C: Context, reads: str, ws: Path) -> Path:
    cfg = C.config
    out = ws.joinpath(f"{cfg.prefix}.hic.p_ctg.gfa")
    C.Shell(f"""\
        hifiasm -o {cfg.prefix} -t {C.threads} \
            --h1 {cfg.hic1} --h2 {cfg.hic2} \
            {reads}
    """, cwd=ws, expect=[out])
    fasta = ws.joinpath(f"{cfg.prefix}.hic.p_ctg.fa")
    n = GfaToFasta(out, fasta)
    C.log.info(f"converted {n} primary contigs from gfa")
    return fasta

def _verkko(C: Context, reads: str, ws: Path) -> Path:
    cfg = C.config
    out = ws.joinpath("assembly.fasta")
    C.Shell(f"""\
        verkko -d {ws} --local-cpus {C.threads} \
            --hifi {reads} \
            --hic1 {cfg.hic1} --hic2 {cfg.hic2}
    """, expect=[out])
    return out

def _canu(C: Context, reads: str, ws: Path) -> Path:
    cfg = C.config
    out = ws.joinpath("canu.contigs.fasta")
    C.Shell(f"""\
        canu -p canu -d {ws} \
            genomeSize={cfg.genome_size} maxThreads={C.threads} \
            -pacbio-hifi {reads}
    """, expect=[out])
    return out

def _flye(C: Context, reads: str, ws: Path) -> Path:
    cfg = C.config
    out = ws.joinpath("assembly.fasta")
    C.Shell(f"""\
        flye --pacbio-hifi {reads} --out-dir {ws} \
            --genome-size {cfg.genome_size} -t {C.threads}
    """, expect=[out])
    return out

def _nextdenovo(C: Context, reads: str, ws: Path) -> Path:
    cfg = C.config
    fofn = ws.joinpath("input.fofn")
    with open(fofn, "w") as f:
        f.writelines(f"{p}\n" for p in cfg.hifi)
    with open(NEXTDENOVO_TEMPLATE) as f:
        template = f.read()
    run_cfg = ws.joinpath("run.cfg")
    with open(run_cfg, "w") as f:
        f.write(template.format(
            input_fofn=fofn,
            workdir=ws.joinpath("work"),
            genome_size=cfg.genome_size.lower(),
            threads=C.threads,
            parallel_jobs=max(1, C.threads//8),
        ))
    out = ws.joinpath("work/03.ctg_graph/nd.asm.fasta")
    C.Shell(f"nextDenovo {run_cfg}", cwd=ws, expect=[out])
    return out

ASSEMBLE: dict[str, Callable[[Context, str, Path], Path]] = dict(
    hifiasm=_hifiasm,
    verkko=_verkko,
    canu=_canu,
    flye=_flye,
    nextdenovo=_nextdenovo,
)

def Procedure(C: Context):
    cfg = C.config
    reads = " ".join(str(p) for p in cfg.hifi)
    assemblers = cfg.assemblers
    C.log.info(f"performing {len(assemblers)} assemblies using [{', '.join(assemblers)}]")

    failed = []
    for i, assembler in enumerate(assemblers):
        published = C.out_dir.joinpath(f"{assembler}.asm.fa")
        aliases = [AssemblyAlias(assembler)]
        if assembler == PRIMARY_ASSEMBLER: aliases.append(PRIMARY_ASM)
        if NonEmpty(published) and C.reuse:
            C.log.info(f"{i+1} of {len(assemblers)}: existing [{assembler}] assembly registered")
            for a in aliases: C.artifacts.Register(a, published)
            continue

        C.log.info(f"{i+1} of {len(assemblers)}: running [{assembler}]")
        ws = C.out_dir.joinpath(assembler)
        if ws.exists(): shutil.rmtree(ws)
        os.makedirs(ws)
        try:
            contigs = ASSEMBLE[assembler](C, reads, ws)
        except StageFailure as e:
            if assembler == PRIMARY_ASSEMBLER or not cfg.keep_going: raise
            C.log.warning(f"assembler [{assembler}] failed, continuing without it: {e}")
            C.artifacts.Remove(AssemblyAlias(assembler))
            if published.is_symlink() or published.exists(): published.unlink()
            failed.append(assembler)
            continue
        for a in aliases: C.Publish(a, contigs, published)

    done = [a for a in assemblers if a not in failed]
    C.log.info(f"assembled with [{', '.join(done)}], results are in [{C.out_dir}]")
