from ..constants import ASM_EVAL_DIR, ASM_REPORT, AssemblyAlias
from ..external_qc import Quast, SummarizeQuast
from .common import Context

OUT_DIR = ASM_EVAL_DIR

def Procedure(C: Context):
    assemblies = C.artifacts.Assemblies()
    if len(assemblies) == 0: C.Fail("no assemblies to evaluate")
    for name in assemblies:
        C.Require(AssemblyAlias(name))
    names = list(assemblies)
    report = Quast(C, [assemblies[n] for n in names], C.out_dir, labels=names)
    C.artifacts.Register(ASM_REPORT, report)

    summary = SummarizeQuast(C.out_dir)
    summary.to_csv(C.out_dir.joinpath("summary.tsv"), sep="\t")
    for name, row in summary.iterrows():
        C.log.info(f"[{name}] "+", ".join(f"{k}: {v}" for k, v in row.items()))
    C.log.info(f"evaluation reports are in [{C.out_dir}]")
