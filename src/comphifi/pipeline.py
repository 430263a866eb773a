import importlib
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable

from .constants import (
    PRIMARY_ASM, ASM_REPORT, SCAFFOLDS, GAP_CLOSED,
    FINAL_QUAST, FINAL_BUSCO, FINAL_MERQURY, AssemblyAlias,
)
from .models import Artifacts, Checkpoint, ConfigError, RunConfig, ScaffoldState, StageFailure
from .steps.common import ClearFolder, Init
from .utils import NAME, NonEmpty

@dataclass
class Stage:
    name: str
    ordinal: int
    title: str
    inputs: list[str]
    outputs: list[str]
    extra_outputs: Callable[[RunConfig], list[str]]|None = field(default=None)

    def Outputs(self, config: RunConfig):
        extra = [] if self.extra_outputs is None else self.extra_outputs(config)
        return self.outputs+extra

    def Module(self):
        return importlib.import_module(name=f".steps.{self.name}", package=NAME)

    def OutDir(self) -> Path:
        return self.Module().OUT_DIR

STAGES = [
    Stage("assembly", 1, "Assembly", [], [PRIMARY_ASM],
        lambda cfg: [AssemblyAlias(a) for a in cfg.assemblers] if not cfg.keep_going else []),
    Stage("evaluation", 2, "Assembly Evaluation", [PRIMARY_ASM], [ASM_REPORT]),
    Stage("scaffold", 3, "Scaffolding", [PRIMARY_ASM], [SCAFFOLDS]),
    Stage("gap_close", 4, "Gap Closing", [SCAFFOLDS, PRIMARY_ASM], [GAP_CLOSED]),
    Stage("final_evaluation", 5, "Final Evaluation", [GAP_CLOSED], [FINAL_QUAST, FINAL_BUSCO],
        lambda cfg: [FINAL_MERQURY] if cfg.merqury else []),
]
STAGE_NAMES = [s.name for s in STAGES]
RESUME_FROM = "scaffold"

def GetStage(name: str) -> Stage:
    for s in STAGES:
        if s.name == name: return s
    raise ConfigError(f"unknown step [{name}], pick from {STAGE_NAMES}")

class Pipeline:
    """
    Runs the stages in order, in one process. A stage only starts once
    every artifact it declares as input is present and non-empty, and
    counts as done once all of its declared outputs are.
    """
    def __init__(self, config: RunConfig) -> None:
        self.config = config
        self.root = config.output
        self.artifacts = Artifacts.Load(self.root)
        self.artifacts.RetainAssemblies(config.assemblers)
        self.log = logging.getLogger(f"{NAME}.pipeline")
        self.visited: list[str] = []
        self.completed: list[str] = []

    def IsComplete(self, stage: Stage):
        return all(self.artifacts.IsReady(a) for a in stage.Outputs(self.config))

    def _require(self, stage: Stage, aliases: list[str], what: str):
        missing = [a for a in aliases if not self.artifacts.IsReady(a)]
        if len(missing)>0:
            raise StageFailure(stage.name, f"{what} artifacts missing or empty: {missing}")

    def _context(self, stage: Stage, reuse: bool):
        return Init(stage.name, self.config, self.artifacts, stage.OutDir(), history=self.completed, reuse=reuse)

    def _finish(self, stage: Stage):
        self._require(stage, stage.Outputs(self.config), "output")
        self.completed.append(stage.name)
        self.log.info(f"Section {stage.ordinal}: {stage.title} completed. Results are in the {stage.OutDir()} directory.")

    def RunStage(self, stage: Stage, reuse: bool|None=None):
        """[reuse] lets the stage keep intermediate results of an earlier run, default unless --overwrite"""
        if reuse is None: reuse = not self.config.overwrite
        self._require(stage, stage.inputs, "input")
        self.log.info(f"Section {stage.ordinal}: {stage.title}")
        self.visited.append(stage.name)
        result = stage.Module().Procedure(self._context(stage, reuse))
        if result == ScaffoldState.AWAITING_REVIEW:
            return result
        self._finish(stage)
        return result

    def Run(self) -> ScaffoldState:
        # once a stage reruns, everything after it is stale
        stale = self.config.overwrite
        for stage in STAGES:
            if not stale and self.IsComplete(stage):
                self.log.info(f"Section {stage.ordinal}: {stage.title} already complete, skipping")
                self.completed.append(stage.name)
                continue
            reuse, stale = not stale, True
            if self.RunStage(stage, reuse=reuse) == ScaffoldState.AWAITING_REVIEW:
                return ScaffoldState.AWAITING_REVIEW
        self._report()
        return ScaffoldState.COMPLETE

    def Resume(self, reviewed_name: str) -> ScaffoldState:
        """finalizes scaffolding with a reviewed assembly, then runs the remaining stages"""
        checkpoint = Checkpoint.Load(self.root)
        if checkpoint is None:
            raise ConfigError(f"no checkpoint found in [{self.root}], was the pipeline run with --review?")
        problems = checkpoint.Problems()
        if len(problems)>0:
            raise ConfigError("checkpoint can not be resumed: "+"; ".join(problems))
        if Path(reviewed_name).name != reviewed_name:
            raise ConfigError(f"--assembly takes a file name, not a path, the file must be in [{checkpoint.workdir}]")
        reviewed = checkpoint.workdir.joinpath(reviewed_name)
        if not NonEmpty(reviewed):
            raise ConfigError(f"reviewed assembly [{reviewed}] is missing or empty")

        self.completed = [s for s in checkpoint.completed if s in STAGE_NAMES]
        i = STAGE_NAMES.index(RESUME_FROM)
        scaffold, remaining = STAGES[i], STAGES[i+1:]
        for stage in remaining:
            self.log.info(f"clearing previous results of [{stage.name}]")
            ClearFolder(self.root.joinpath(stage.OutDir()))
            for alias in stage.Outputs(self.config):
                self.artifacts.Remove(alias)

        self._require(scaffold, scaffold.inputs, "input")
        self.log.info(f"Section {scaffold.ordinal}: {scaffold.title}, continuing after manual review")
        self.visited.append(scaffold.name)
        scaffold.Module().Finalize(self._context(scaffold, reuse=False), reviewed)
        self._finish(scaffold)
        for stage in remaining:
            self.RunStage(stage, reuse=False)
        self._report()
        return ScaffoldState.COMPLETE

    def _report(self):
        self.log.info("All pipeline finished!")
        self.log.info(f"Assembled genome in the [{self.artifacts.Get(GAP_CLOSED)}] file")
        evals = [GetStage(n).OutDir() for n in ["evaluation", "final_evaluation"]]
        self.log.info(f"Evaluation results in the [{evals[0]}] and [{evals[1]}] directories.")
