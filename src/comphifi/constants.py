from pathlib import Path

ASM_DIR = Path("01.assemblies")
ASM_EVAL_DIR = Path("02.asm_eval")
SCAFFOLD_DIR = Path("03.scaffolding")
GAPCLOSE_DIR = Path("04.gapClose")
FINAL_EVAL_DIR = Path("05.final_eval")
LOG_DIR = Path("logs")

INTERNALS = Path("internals")
RUN_CONFIG = INTERNALS.joinpath("run_config.json")
ARTIFACTS = INTERNALS.joinpath("artifacts.json")
CHECKPOINT = INTERNALS.joinpath("checkpoint.json")
PARAMS = Path("params.json")

PRIMARY_ASSEMBLER = "hifiasm"
ASSEMBLERS = ["hifiasm", "verkko", "canu", "flye", "nextdenovo"]
ASSEMBLER_BINARIES = dict(
    hifiasm="hifiasm",
    verkko="verkko",
    canu="canu",
    flye="flye",
    nextdenovo="nextDenovo",
)

# artifact aliases
PRIMARY_ASM = "assembly.primary"
ASM_REPORT = "evaluation.report"
SCAFFOLDS = "scaffolds"
GAP_CLOSED = "gap_closed"
FINAL_QUAST = "final.quast"
FINAL_BUSCO = "final.busco"
FINAL_MERQURY = "final.merqury"

def AssemblyAlias(assembler: str):
    return f"assembly.{assembler}"

ENZYME = "DpnII"
DEFAULT_PREFIX = "species"
DEFAULT_BUSCO_LINEAGE = "embryophyta_odb10"
