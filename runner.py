"""
runner.py: run external commands (git, dot) and hand back their raw output.

Nothing here raises for a failing command: timeouts, non-zero exit codes and
missing executables come back as CmdResult(ok=False) and are logged.
"""

import logging
import subprocess
import time
from dataclasses import dataclass

log = logging.getLogger(__name__)

COMMAND_TIMEOUT = 60

@dataclass(frozen=True)
class CmdResult:
    output: bytes
    ok: bool
    code: int
    duration: int

def run_command(cwd, args, timeout=COMMAND_TIMEOUT, merge_stderr=False, diagnostics=None):
    """
    Run `args` in `cwd` and return its stdout (plus stderr when merge_stderr).
    duration is the wall time in whole seconds.
    """
    started = time.monotonic()
    try:
        proc = subprocess.run(
            args,
            cwd=cwd,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT if merge_stderr else subprocess.PIPE,
            timeout=timeout,
            check=False,
        )
    except subprocess.TimeoutExpired:
        _warn(diagnostics, f"run_command: {' '.join(args)} timed out after {timeout}s")
        return CmdResult(b"", False, -1, round(time.monotonic() - started))
    except OSError as e:
        _warn(diagnostics, f"run_command: cannot start {args[0]}: {e}")
        return CmdResult(b"", False, -1, round(time.monotonic() - started))

    duration = round(time.monotonic() - started)
    if proc.returncode != 0:
        _warn(diagnostics, f"run_command: unexpected return code {proc.returncode} from {' '.join(args)}")
    return CmdResult(proc.stdout, proc.returncode == 0, proc.returncode, duration)

def _warn(diagnostics, message):
    if diagnostics is None:
        log.warning(message)
    else:
        diagnostics.warning(message)

# ----------------------
# git helpers
# ----------------------

def parse_branch_list(text):
    """Branch names from `git branch -a` output, in listing order."""
    branches = []
    for line in text.splitlines():
        name = line.strip()
        if not name or "->" in name:
            continue
        if name.startswith("* "):
            name = name[2:]
        # detached HEAD shows up as "(no branch)" or "(HEAD detached at ...)"
        if name.lower().startswith("(no ") or name.startswith("(HEAD"):
            continue
        branches.append(name)
    return branches

def git_branches(cwd, timeout=COMMAND_TIMEOUT):
    res = run_command(cwd, ["git", "branch", "-a"], timeout=timeout)
    if not res.ok:
        return []
    return parse_branch_list(res.output.decode("utf-8", errors="replace"))

def git_log(cwd, ref, timeout=COMMAND_TIMEOUT, diagnostics=None):
    return run_command(cwd, ["git", "log", "--parents", ref], timeout=timeout, diagnostics=diagnostics)

def git_diff_stat(cwd, diff_range, timeout=COMMAND_TIMEOUT, diagnostics=None):
    return run_command(cwd, ["git", "diff", "--stat", diff_range], timeout=timeout, diagnostics=diagnostics)
