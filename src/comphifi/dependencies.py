import shutil

from .constants import ASSEMBLER_BINARIES
from .models import DependencyError, RunConfig

SCAFFOLD_TOOLS = ["bwa", "generate_site_positions.py", "juicer.sh", "run-asm-pipeline.sh"]
FINALIZE_TOOLS = ["run-asm-pipeline-post-review.sh"]
GAPCLOSE_TOOLS = ["quartet"]
EVAL_TOOLS = ["quast", "busco"]
MERQURY_TOOLS = ["meryl", "merqury.sh"]

def RequiredTools(config: RunConfig, resume=False):
    tools = []
    if not resume:
        tools += [ASSEMBLER_BINARIES[a] for a in config.assemblers]
        tools += SCAFFOLD_TOOLS
    tools += FINALIZE_TOOLS
    if len(config.assemblers)>1: tools += GAPCLOSE_TOOLS # no contig pool otherwise
    tools += EVAL_TOOLS
    if config.merqury: tools += MERQURY_TOOLS
    return list(dict.fromkeys(tools))

def CheckDependencies(tools: list[str]):
    """raises a single DependencyError naming every tool not found on PATH"""
    missing = [t for t in tools if shutil.which(t) is None]
    if len(missing)>0:
        raise DependencyError(missing)
