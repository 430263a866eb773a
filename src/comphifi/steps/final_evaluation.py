from ..constants import FINAL_EVAL_DIR, GAP_CLOSED, FINAL_QUAST, FINAL_BUSCO, FINAL_MERQURY
from ..external_qc import Quast, Busco, BuscoCompleteness, Merqury, MerquryQV
from .common import Context

OUT_DIR = FINAL_EVAL_DIR

def Procedure(C: Context):
    cfg = C.config
    genome = C.Require(GAP_CLOSED)

    report = Quast(C, [genome], C.Dir("quast"), labels=[cfg.prefix])
    C.artifacts.Register(FINAL_QUAST, report)

    summary = Busco(C, genome, C.out_dir)
    C.Publish(FINAL_BUSCO, summary, C.out_dir.joinpath("busco.short_summary.txt"))
    completeness = BuscoCompleteness(summary)
    if completeness is None:
        C.log.warning(f"no completeness line found in [{summary}]")
    else:
        C.log.info(f"busco [{cfg.busco_lineage}]: {completeness}")

    if cfg.merqury:
        qv = Merqury(C, genome, C.Dir("merqury"))
        C.artifacts.Register(FINAL_MERQURY, qv)
        C.log.info(f"merqury QV: {MerquryQV(qv)}")

    C.log.info(f"final evaluation results are in [{C.out_dir}]")
