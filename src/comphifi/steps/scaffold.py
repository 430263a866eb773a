import os
import shutil
from pathlib import Path

from ..constants import SCAFFOLD_DIR, ENZYME, PRIMARY_ASM, SCAFFOLDS
from ..models import Checkpoint, ScaffoldState
from ..utils import NonEmpty
from .common import Context

OUT_DIR = SCAFFOLD_DIR

class Layout:
    """where Juicer and 3D-DNA read and write inside the scaffolding directory"""
    def __init__(self, out_dir: Path, prefix: str) -> None:
        self.juicer = out_dir.joinpath("juicer")
        self.scripts = self.juicer.joinpath("scripts")
        self.reference = self.juicer.joinpath("references", f"{prefix}.fa")
        self.sites = self.juicer.joinpath("restriction_sites", f"{prefix}_{ENZYME}.txt")
        self.chrom_sizes = self.juicer.joinpath("restriction_sites", f"{prefix}.chrom.sizes")
        self.fastq = self.juicer.joinpath("fastq")
        self.contacts = self.juicer.joinpath("aligned", "merged_nodups.txt")

        self.dna3d = out_dir.joinpath("3d-dna")
        self.genome_id = f"{prefix}.hifiasm"
        self.draft_input = self.dna3d.joinpath(f"{self.genome_id}.fa")
        self.draft_assembly = self.dna3d.joinpath(f"{self.genome_id}.final.assembly")
        self.draft_fasta = self.dna3d.joinpath(f"{self.genome_id}.final.fasta")
        self.final_fasta = self.dna3d.joinpath(f"{self.genome_id}.FINAL.fasta")
        self.published = out_dir.joinpath("scaffolds.fa")

def _relink(link: Path, target: Path):
    if link.is_symlink() or link.exists(): link.unlink()
    os.makedirs(link.parent, exist_ok=True)
    os.symlink(target.resolve(), link)

def WriteChromSizes(sites: Path, chrom_sizes: Path) -> int:
    """
    Each line of a juicer restriction site file is the sequence name
    followed by cut positions, the last being the sequence length.
    """
    n = 0
    with open(sites) as f, open(chrom_sizes, "w") as out:
        for line in f:
            toks = line.split()
            if len(toks) == 0: continue
            out.write(f"{toks[0]}\t{toks[-1]}\n")
            n += 1
    return n

def _hic_name(p: Path, prefix: str, read: int):
    ext = ".fastq.gz" if p.name.endswith(".gz") else ".fastq"
    return f"{prefix}_R{read}{ext}"

def StageJuicer(C: Context, L: Layout):
    juicer = shutil.which("juicer.sh")
    if juicer is None: C.Fail("juicer.sh is not on PATH")
    src = Path(juicer).resolve().parent
    C.log.info(f"staging a working copy of juicer from [{src}]")
    shutil.copytree(src, L.scripts, dirs_exist_ok=True)

def ContactMap(C: Context, L: Layout, primary: Path):
    cfg = C.config
    StageJuicer(C, L)

    C.log.info("indexing the primary assembly")
    _relink(L.reference, primary)
    C.Shell(f"bwa index {L.reference}", cwd=L.reference.parent, expect=[Path(f"{L.reference}.bwt")])

    C.log.info(f"generating {ENZYME} restriction sites")
    os.makedirs(L.sites.parent, exist_ok=True)
    C.Shell(f"generate_site_positions.py {ENZYME} {cfg.prefix} {L.reference}", cwd=L.sites.parent, expect=[L.sites])
    n = WriteChromSizes(L.sites, L.chrom_sizes)
    C.log.info(f"wrote sizes of {n} sequences")

    for read, p in [(1, cfg.hic1), (2, cfg.hic2)]:
        _relink(L.fastq.joinpath(_hic_name(p, cfg.prefix, read)), p)

    # juicer refuses to start over existing alignments
    for d in ["aligned", "splits"]:
        if L.juicer.joinpath(d).exists(): shutil.rmtree(L.juicer.joinpath(d))
    C.log.info("building the Hi-C contact map with juicer")
    C.Shell(f"""\
        bash {L.scripts.joinpath('juicer.sh')} -g {cfg.prefix} \
            -d {L.juicer} -D {L.juicer} \
            -z {L.reference} -y {L.sites} -p {L.chrom_sizes} \
            -s {ENZYME} -t {C.threads}
    """, cwd=L.juicer, expect=[L.contacts])

def Draft(C: Context, L: Layout, primary: Path):
    os.makedirs(L.dna3d, exist_ok=True)
    _relink(L.draft_input, primary)
    C.log.info("scaffolding draft with 3d-dna, no editing rounds")
    C.Shell(f"""\
        run-asm-pipeline.sh -r 0 {L.draft_input.name} {L.contacts}
    """, cwd=L.dna3d, expect=[L.draft_assembly, L.draft_fasta])

def Finalize(C: Context, reviewed: Path):
    """builds the final scaffolds from a (possibly hand edited) 3d-dna .assembly file"""
    L = Layout(C.out_dir, C.config.prefix)
    C.log.info(f"state [{ScaffoldState.FINALIZING.value}] with [{reviewed.name}]")
    if L.final_fasta.exists(): L.final_fasta.unlink()
    C.Shell(f"""\
        run-asm-pipeline-post-review.sh -r {reviewed} {L.draft_input.name} {L.contacts}
    """, cwd=L.dna3d, expect=[L.final_fasta])
    C.Publish(SCAFFOLDS, L.final_fasta, L.published)
    _save_checkpoint(C, L, ScaffoldState.COMPLETE)
    C.log.info(f"state [{ScaffoldState.COMPLETE.value}], scaffolds are in [{L.published}]")
    return ScaffoldState.COMPLETE

def _save_checkpoint(C: Context, L: Layout, state: ScaffoldState):
    cp = Checkpoint(
        state=state,
        genome_id=L.genome_id,
        workdir=L.dna3d,
        draft_assembly=L.draft_assembly,
        draft_fasta=L.draft_fasta,
        contacts=L.contacts,
        completed=C.history,
    )
    cp.Save(C.root_workspace)
    return cp

def Procedure(C: Context) -> ScaffoldState:
    cfg = C.config
    L = Layout(C.out_dir, cfg.prefix)
    primary = C.Require(PRIMARY_ASM)

    state = ScaffoldState.AWAITING_CONTACT_MAP
    C.log.info(f"state [{state.value}]")
    if NonEmpty(L.contacts) and C.reuse:
        C.log.info(f"existing contact list [{L.contacts}] reused")
    else:
        ContactMap(C, L, primary)

    state = ScaffoldState.AWAITING_SCAFFOLD
    C.log.info(f"state [{state.value}]")
    if NonEmpty(L.draft_assembly) and NonEmpty(L.draft_fasta) and C.reuse:
        C.log.info(f"existing draft [{L.draft_assembly}] reused")
    else:
        Draft(C, L, primary)

    state = ScaffoldState.DRAFT_READY
    C.log.info(f"state [{state.value}]")
    if not cfg.review:
        return Finalize(C, L.draft_assembly)

    state = ScaffoldState.AWAITING_REVIEW
    _save_checkpoint(C, L, state)
    C.log.info(f"state [{state.value}], review the draft in juicebox: [{L.draft_assembly}]")
    C.log.info(f"place the reviewed .assembly file in [{L.dna3d}], then continue with:")
    C.log.info(f"    comphifi resume --assembly <reviewed.assembly> -o {C.root_workspace}")
    return state
