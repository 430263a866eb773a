import os
import re
import json
from enum import Enum
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Callable

from .constants import (
    ASSEMBLERS, PRIMARY_ASSEMBLER, DEFAULT_PREFIX, DEFAULT_BUSCO_LINEAGE,
    ARTIFACTS, CHECKPOINT, RUN_CONFIG, PRIMARY_ASM,
    AssemblyAlias,
)
from .utils import NonEmpty, StdTime

class CompHiFiError(Exception):
    pass

class ConfigError(CompHiFiError):
    pass

class DependencyError(CompHiFiError):
    def __init__(self, missing: list[str]) -> None:
        self.missing = list(missing)
        super().__init__(f"missing required tools: {', '.join(self.missing)}")

class StageFailure(CompHiFiError):
    def __init__(self, stage: str, message: str) -> None:
        self.stage = stage
        super().__init__(f"[{stage}] {message}")

class Saveable:
    def Save(self, path: str|Path):
        path = Path(path)
        if not path.parent.exists(): os.makedirs(path.parent)

        def _can_save(k, v):
            if k.upper() == k: return False
            if callable(v): return False
            if isinstance(k, str) and k[0] == "_": return False
            return True

        def _jsonable(v):
            if isinstance(v, list):
                return [_jsonable(x) for x in v]
            elif isinstance(v, dict):
                return {str(k):_jsonable(x) for k, x in v.items()}
            elif isinstance(v, Enum):
                return v.name
            elif v is None or isinstance(v, (bool, int, float, str)):
                return v
            else:
                return str(v)

        # readers must never see a half written file
        temp = path.with_name(f".{path.name}.tmp")
        with open(temp, "w") as j:
            json.dump(_jsonable({k:v for k, v in self.__dict__.items() if _can_save(k, v)}), j, indent=4)
        os.replace(temp, path)

@dataclass(frozen=True)
class RunConfig(Saveable):
    output: Path
    hifi: list[Path]
    hic1: Path
    hic2: Path
    genome_size: str
    prefix: str = DEFAULT_PREFIX
    cpu: int = 1
    review: bool = False
    assemblers: list[str] = field(default_factory=lambda: list(ASSEMBLERS))
    keep_going: bool = False
    busco_lineage: str = DEFAULT_BUSCO_LINEAGE
    busco_db: Path|None = None
    merqury: bool = False
    overwrite: bool = False

    GENOME_SIZE = re.compile(r"^\d+(\.\d+)?[kmg]?$", re.IGNORECASE)
    PREFIX = re.compile(r"^[\w.-]+$")

    @classmethod
    def Parse(cls, args, on_error: Callable[[str], None]):
        _resolve = lambda p: Path(p).expanduser().resolve()
        hifi = []
        for arg in args.hifi:
            hifi += [_resolve(tok) for tok in arg.split(",") if len(tok.strip())>0]
        required = dict(hifi=hifi, hic1=args.hic1, hic2=args.hic2, genomeSize=args.genomeSize)
        for k, v in required.items():
            if not v: on_error(f"missing required parameter --{k}")

        hic1, hic2 = [_resolve(p) if p else None for p in [args.hic1, args.hic2]]
        for p in hifi+[hic1, hic2]:
            if p is None or p.exists(): continue
            on_error(f"[{p}] does not exist")
        if args.genomeSize and cls.GENOME_SIZE.match(args.genomeSize) is None:
            on_error(f"genome size [{args.genomeSize}] should look like 5m, 1.2g or 800000")
        if cls.PREFIX.match(args.prefix) is None:
            on_error(f"prefix [{args.prefix}] may only contain letters, digits, '_', '-' and '.'")
        if args.cpu < 1:
            on_error(f"--cpu must be at least 1, got [{args.cpu}]")

        assemblers = []
        for a in args.assemblers:
            a = a.lower()
            if a in assemblers: continue
            if a not in ASSEMBLERS:
                on_error(f"[{a}] is not an assembler, pick from {ASSEMBLERS}")
                continue
            assemblers.append(a)
        if PRIMARY_ASSEMBLER not in assemblers:
            on_error(f"[{PRIMARY_ASSEMBLER}] provides the primary assembly and can not be left out")
        assemblers = [a for a in ASSEMBLERS if a in assemblers] # canonical order

        busco_db = None
        if args.busco_db is not None:
            busco_db = _resolve(args.busco_db)
            if not busco_db.exists(): on_error(f"busco download path [{busco_db}] does not exist")

        return cls(
            output=_resolve(args.output),
            hifi=hifi,
            hic1=hic1,
            hic2=hic2,
            genome_size=args.genomeSize,
            prefix=args.prefix,
            cpu=args.cpu,
            review=args.review,
            assemblers=assemblers,
            keep_going=args.keep_going,
            busco_lineage=args.busco_lineage,
            busco_db=busco_db,
            merqury=args.merqury,
            overwrite=args.overwrite,
        )

    def Replace(self, **changes):
        return replace(self, **changes)

    def Save(self, path: str|Path|None=None):
        super().Save(self.output.joinpath(RUN_CONFIG) if path is None else path)

    @classmethod
    def Load(cls, path):
        with open(path) as j:
            raw = json.load(j)
        for k in ["output", "hic1", "hic2"]:
            raw[k] = Path(raw[k])
        raw["hifi"] = [Path(p) for p in raw["hifi"]]
        if raw.get("busco_db") is not None:
            raw["busco_db"] = Path(raw["busco_db"])
        return cls(**raw)

class Artifacts(Saveable):
    """
    Maps stable aliases to the files stages publish. Every path is
    absolute, so stages never depend on the current directory.
    """
    def __init__(self, root: Path, paths: dict[str, Path]|None=None) -> None:
        self._root = root
        self.paths: dict[str, Path] = {} if paths is None else dict(paths)

    def Register(self, alias: str, path: Path):
        self.paths[alias] = Path(path).absolute()
        self.Save(self._root.joinpath(ARTIFACTS))

    def Remove(self, alias: str):
        if alias not in self.paths: return
        del self.paths[alias]
        self.Save(self._root.joinpath(ARTIFACTS))

    def Get(self, alias: str) -> Path|None:
        return self.paths.get(alias)

    def IsReady(self, alias: str):
        return NonEmpty(self.Get(alias))

    def Assemblies(self) -> dict[str, Path]:
        """published contigs by assembler name, excluding the primary alias"""
        return {
            k.split(".", 1)[1]:p for k, p in self.paths.items()
            if k.startswith("assembly.") and k != PRIMARY_ASM
        }

    def RetainAssemblies(self, names: list[str]):
        """drops the aliases of assemblers not in [names], left over from earlier runs"""
        for name in list(self.Assemblies()):
            if name not in names: self.Remove(AssemblyAlias(name))

    @classmethod
    def Load(cls, root: Path):
        path = root.joinpath(ARTIFACTS)
        if not path.exists(): return cls(root)
        with open(path) as j:
            raw = json.load(j)
        return cls(root, {k:Path(v) for k, v in raw["paths"].items()})

class ScaffoldState(Enum):
    AWAITING_CONTACT_MAP = "AwaitingContactMap"
    AWAITING_SCAFFOLD = "AwaitingScaffold"
    DRAFT_READY = "DraftReady"
    AWAITING_REVIEW = "AwaitingManualReview"
    FINALIZING = "Finalizing"
    COMPLETE = "Complete"

@dataclass
class Checkpoint(Saveable):
    state: ScaffoldState
    genome_id: str
    workdir: Path
    draft_assembly: Path
    draft_fasta: Path
    contacts: Path
    completed: list[str]
    created: str = field(default_factory=StdTime.Timestamp)

    # a completed run may be finalized again with a newly reviewed assembly
    RESUMABLE = [ScaffoldState.AWAITING_REVIEW, ScaffoldState.COMPLETE]

    def Problems(self) -> list[str]:
        problems = []
        if self.state not in self.RESUMABLE:
            problems.append(f"checkpoint is in state [{self.state.value}], can only resume from {[s.value for s in self.RESUMABLE]}")
        for name, p in [
            ("draft assembly", self.draft_assembly),
            ("draft fasta", self.draft_fasta),
            ("contact list", self.contacts),
        ]:
            if not NonEmpty(p): problems.append(f"{name} [{p}] is missing or empty")
        return problems

    def Save(self, root: Path):
        super().Save(root.joinpath(CHECKPOINT))

    @classmethod
    def Load(cls, root: Path):
        path = root.joinpath(CHECKPOINT)
        if not path.exists(): return None
        with open(path) as j:
            raw = json.load(j)
        raw["state"] = ScaffoldState[raw["state"]]
        for k in ["workdir", "draft_assembly", "draft_fasta", "contacts"]:
            raw[k] = Path(raw[k])
        return cls(**raw)
