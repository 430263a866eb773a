import os
import re
import signal
from dataclasses import dataclass
from pathlib import Path
from typing import IO, Any, Callable
from threading import Condition
from threading import Thread
import subprocess
import select

@dataclass
class ShellResult:
    killed: bool
    exit_code: int|None

# example: colors, escape, control sequences
# https://stackoverflow.com/questions/14693701/how-can-i-remove-the-ansi-escape-sequences-from-a-string-in-python 
def StripANSI(s: str):
    return re.compile(r'\x1B(?:[@-Z\\-_]|\[[0-?]*[ -/]*[@-~])').sub('', s)

def Shell(cmd: str, cwd: Path|None=None, on_out: Callable[[str], Any]|None=None, on_err: Callable[[str], Any]|None=None):
    """
    runs [cmd] in a fresh bash with errexit and pipefail set, so a
    multi-line script stops at the first failing tool
    """
    killed = False
    with LiveShell(cwd) as shell:
        if on_out is not None: shell.RegisterOnOut(lambda x: on_out(shell.Decode(x)))
        if on_err is not None: shell.RegisterOnErr(lambda x: on_err(shell.Decode(x)))
        try:
            # bash reads its script from stdin, tools must not
            shell.Write(f"set -eo pipefail\n{{\n{cmd}\n}} </dev/null\nexit")
            shell.Wait()
        except KeyboardInterrupt:
            killed = True
            shell.Kill()
    return ShellResult(killed, shell.ExitCode())

class LiveShell:
    class Pipe:
        def __init__(self, io:IO[bytes]|None) -> None:
            assert io is not None
            self.IO = io
            self.Lock = Condition()

        def __enter__(self):
            self.Lock.acquire()

        def __exit__(self, exc_type, exc_val, exc_tb):
            self.Lock.release()

    def __init__(self, cwd: Path|None=None) -> None:
        import pty

        # https://stackoverflow.com/questions/41542960/run-interactive-bash-with-popen-and-a-dedicated-tty-python
        out_master, out_slave = pty.openpty()
        err_master, err_slave = pty.openpty()
        self._fds = [out_master, err_master]

        console = subprocess.Popen(
            ["/bin/bash"],
            stdin=subprocess.PIPE,
            stdout=out_slave,
            stderr=err_slave,
            cwd=None if cwd is None else str(cwd),
            close_fds=True,
            start_new_session=True, # own process group, so Kill() reaches the tools and not us
        )
        os.close(out_slave)
        os.close(err_slave)

        self.ENCODING = "utf-8"
        self._console = console
        self._in = LiveShell.Pipe(console.stdin)
        self._onCloseLock = Condition()
        self._closed = False
        self.pid = console.pid
        self._on_out_callbacks = []
        self._on_err_callbacks = []

        def reader(fd: int, callbacks):
            pending = b""
            while True:
                closing = self.IsClosed()
                try:
                    # https://stackoverflow.com/a/21429655/13690762
                    r, _, _ = select.select([ fd ], [], [], 0.1)
                    if fd not in r:
                        if closing: break # drained
                        continue
                    chunk = os.read(fd, 1024)
                except OSError: # fd closed or child side hung up
                    break
                if len(chunk) == 0: break
                pending += chunk
                *lines, pending = pending.split(b"\n")
                for line in lines:
                    for cb in callbacks: cb(line+b"\n")
            if len(pending)>0:
                for cb in callbacks: cb(pending+b"\n")

        workers: list[Thread] = []
        workers.append(Thread(target=reader, args=[out_master, self._on_out_callbacks]))
        workers.append(Thread(target=reader, args=[err_master, self._on_err_callbacks]))
        self._workers = workers
        for w in workers:
            w.start()

    def Send(self, payload: bytes):
        stdin = self._in
        with self._in:
            stdin.IO.write(payload)
            stdin.IO.flush()
    
    def Decode(self, payload: bytes):
        return StripANSI(payload.decode(encoding=self.ENCODING, errors="replace")).replace("\r\n", "\n")

    def Write(self, msg: str):
        self.Send(bytes('%s\n' % (msg), encoding=self.ENCODING))

    def Wait(self):
        return self._console.wait()

    def ExitCode(self):
        return self._console.poll()

    def Kill(self):
        try:
            os.killpg(os.getpgid(self.pid), signal.SIGTERM)
        except ProcessLookupError:
            pass
        self._console.wait()

    def RegisterOnOut(self, callback: Callable[[bytes], None]):
        self._on_out_callbacks.append(callback)

    def RegisterOnErr(self, callback: Callable[[bytes], None]):
        self._on_err_callbacks.append(callback)
    
    def __enter__(self):
        return self
    
    def __exit__(self, exc_type, exc_val, exc_tb):
        self.Dispose()
        return

    def IsClosed(self):
        with self._onCloseLock:
            return self._closed

    def Dispose(self):
        with self._onCloseLock:
            if self._closed:
                return
            self._closed = True
            self._onCloseLock.notify_all()

        for w in self._workers:
            w.join()

        self._console.terminate()
        self._console.wait()
        try:
            self._in.IO.close()
        except BrokenPipeError:
            pass
        for fd in self._fds:
            os.close(fd)
