import os, sys
import shutil
from pathlib import Path
from dataclasses import dataclass, field
import logging
from typing import NoReturn

from ..constants import LOG_DIR
from ..models import Artifacts, RunConfig, StageFailure
from ..process_management import Shell, ShellResult
from ..utils import NAME, NonEmpty, StdTime

class ConsoleFormatter(logging.Formatter):
    GREEN = "\x1b[32m"
    RESET = "\x1b[0m"
    COLORS = {
        logging.WARNING: "\x1b[33m",
        logging.ERROR: "\x1b[31m",
        logging.CRITICAL: "\x1b[31m",
    }

    def format(self, record):
        msg = super().format(record)
        return f"{self.COLORS.get(record.levelno, self.GREEN)}{msg}{self.RESET}"

def ConfigureLogging(workspace: Path|None=None, level=logging.INFO):
    """console output, plus a log file in the workspace once one is known"""
    log = logging.getLogger(NAME)
    for h in list(log.handlers):
        log.removeHandler(h)
        h.close()
    log.setLevel(level)
    log.propagate = False

    if workspace is not None:
        log_dir = workspace.joinpath(LOG_DIR)
        os.makedirs(log_dir, exist_ok=True)
        to_file = logging.FileHandler(log_dir.joinpath(f"{NAME}.log"), mode="a")
        to_file.setFormatter(logging.Formatter('%(asctime)s %(levelname)s: %(message)s', datefmt='%H:%M:%S'))
        log.addHandler(to_file)

    to_console = logging.StreamHandler(sys.stderr)
    to_console.setFormatter(ConsoleFormatter('[%(asctime)s] %(message)s', datefmt='%H:%M:%S'))
    log.addHandler(to_console)
    return log

@dataclass
class Context:
    name: str
    config: RunConfig
    artifacts: Artifacts
    root_workspace: Path
    out_dir: Path
    log: logging.Logger
    log_file: Path
    history: list[str] = field(default_factory=list) # stages already completed
    reuse: bool = True # false once an upstream stage has rerun

    @property
    def threads(self):
        return self.config.cpu

    def Fail(self, message: str) -> NoReturn:
        raise StageFailure(self.name, message)

    def Shell(self, cmd: str, cwd: Path|None=None, expect: list[Path]|None=None) -> ShellResult:
        """
        Runs [cmd] with tool output appended to this stage's log file.
        Raises StageFailure if the command exits non-zero or any path in
        [expect] is missing or empty afterwards.
        """
        def _log(x: str):
            with open(self.log_file, "a") as f:
                f.write(x)
        _log(f"$ {cmd.strip()}\n")
        r = Shell(cmd, cwd, _log, lambda x: _log(f"ERR: {x}"))
        if r.killed:
            self.Fail("killed")
        if r.exit_code != 0:
            tool = cmd.strip().split()[0] if len(cmd.strip())>0 else cmd
            self.Fail(f"[{tool}] exited with status [{r.exit_code}], see [{self.log_file}]")
        for p in expect or []:
            if not NonEmpty(p): self.Fail(f"expected output [{p}] is missing or empty")
        return r

    def Require(self, alias: str) -> Path:
        p = self.artifacts.Get(alias)
        if p is None or not NonEmpty(p): self.Fail(f"input artifact [{alias}] is missing or empty")
        return p

    def Publish(self, alias: str, target: Path, link: Path) -> Path:
        """(re)points [link] at [target] and registers [link] under [alias]"""
        if not NonEmpty(target): self.Fail(f"can not publish [{alias}], [{target}] is missing or empty")
        if link.is_symlink() or link.exists(): link.unlink()
        os.makedirs(link.parent, exist_ok=True)
        os.symlink(target.resolve(), link)
        self.artifacts.Register(alias, link)
        return link

    def Dir(self, *parts: str) -> Path:
        d = self.out_dir.joinpath(*parts)
        os.makedirs(d, exist_ok=True)
        return d

def Init(name: str, config: RunConfig, artifacts: Artifacts, out_dir: Path, history: list[str]|None=None, reuse: bool=True) -> Context:
    ws = config.output
    out = ws.joinpath(out_dir)
    os.makedirs(out, exist_ok=True)
    log_file = ws.joinpath(LOG_DIR, f"{name}.log")
    os.makedirs(log_file.parent, exist_ok=True)
    with open(log_file, "a") as f:
        f.write(f"\n-- START {StdTime.Timestamp()} --\n")
    return Context(
        name=name,
        config=config,
        artifacts=artifacts,
        root_workspace=ws,
        out_dir=out,
        log=logging.getLogger(f"{NAME}.{name}"),
        log_file=log_file,
        history=[] if history is None else list(history),
        reuse=reuse,
    )

def ClearFolder(folder: Path):
    if not folder.exists(): return
    for p in folder.iterdir():
        if p.is_dir() and not p.is_symlink():
            shutil.rmtree(p)
        else:
            p.unlink()
