import os, sys
from datetime import datetime as dt
from pathlib import Path
import re

MODULE_ROOT = Path("/".join(os.path.realpath(__file__).split('/')[:-1]))
NAME = MODULE_ROOT.name.lower()
ENTRY_POINTS = [f"{e} = {NAME}.cli:main" for e in [NAME, "chf"]]

def _get_version() -> str:
    with open(MODULE_ROOT.joinpath("version.txt")) as v:
        return v.readline().strip()
VERSION = _get_version()

def regex(r, s):
    for m in re.finditer(r, s):
        yield s[m.start():m.end()]

def NonEmpty(p: Path|None):
    """a file with content, or a directory with at least one entry"""
    if p is None or not p.exists(): return False
    if p.is_dir(): return any(True for _ in p.iterdir())
    return p.stat().st_size > 0

class StdTime:
    FORMAT = '%Y-%m-%d_%H-%M-%S'

    @classmethod
    def Timestamp(cls, timestamp: dt|None = None):
        ts = dt.now() if timestamp is None else timestamp
        return f"{ts.strftime(StdTime.FORMAT)}"

if __name__ == "__main__":
    sys.path = [str(p) for p in set([
        MODULE_ROOT.parents[1]
    ]+sys.path)]
    from setup import SHORT_SUMMARY
    if len(sys.argv)>1:
        k = sys.argv[1]
        meta = dict(
            NAME = NAME,
            ENTRY_POINTS = ENTRY_POINTS,
            VERSION = VERSION,
            SHORT_SUMMARY = SHORT_SUMMARY,
            MODULE_ROOT = MODULE_ROOT,
        )
        print(meta.get(k, ""))
