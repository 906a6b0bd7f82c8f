"""
history.py: commit graphs built from `git log --parents` output

Operations:
- parse_log_to_history: parse log text into a fully linked HistoryGraph.
- resolve_links: turn deferred parent shas into edges (second parse phase).
- build_primary_path: walk first parents from the tip down to a root.
- delta_history: the commits of one history that another one lacks.
- all_edge_diffs: one "<parent>...<child>" range label per edge.
- parse_diff_stat: reduce `git diff --stat` output to "+I -D".

Data Structures:
- Commit: one node (sha, author, date, message) with ordered parent links and
  the parent shas that have no node in the same graph.
- HistoryGraph: owns its commits in encounter order, indexes them by sha and
  tracks the roots, the primary path and the per-edge annotations.
- Diagnostics: collects warnings raised while scanning text and forwards
  them to the logging module.

Malformed input is never fatal: it is recorded on the Diagnostics sink and the
scan moves on. The only exception raised here is HistoryIntegrityError, for a
primary path that does not terminate.
"""

import logging
import re

log = logging.getLogger(__name__)

SHORT_SHA_LENGTH = 8
HEADER_TOKEN = "commit "

# ----------------------
# Data Structures
# ----------------------

class HistoryIntegrityError(Exception):
    pass

class Diagnostics:
    """Sink for the warnings produced while parsing.

    Entries are kept as (severity, message) pairs so callers can inspect them,
    and every entry is also passed on to the logger.
    """
    def __init__(self, logger=None):
        self.entries = []
        self.logger = logger or log

    def record(self, severity, message):
        self.entries.append((severity, message))
        self.logger.log(severity, message)

    def warning(self, message):
        self.record(logging.WARNING, message)

    @property
    def warnings(self):
        return [message for severity, message in self.entries if severity >= logging.WARNING]

class Commit:
    def __init__(self, sha, author="", date="", message=""):
        self.sha = sha
        self.author = author
        self.date = date
        self.message = message
        self.parents = []
        self.unresolved_parents = []

    def __repr__(self):
        return f"Commit({self.short_sha})"

    @property
    def short_sha(self):
        return self.sha[:SHORT_SHA_LENGTH]

    @property
    def is_root(self):
        return not self.parents

    @property
    def is_merge(self):
        return len(self.parents) + len(self.unresolved_parents) > 1

    @property
    def subject(self):
        for line in self.message.splitlines():
            if line.strip():
                return " ".join(line.split())
        return ""

    def copy(self):
        # metadata only, links belong to the graph that owns the copy
        return Commit(self.sha, self.author, self.date, self.message)

    def range_to(self, child):
        return f"{self.short_sha}...{child.short_sha}"

    def range_from(self, parent_sha):
        return f"{parent_sha[:SHORT_SHA_LENGTH]}...{self.short_sha}"

class HistoryGraph:
    def __init__(self):
        self.entry_commit = None
        self.commits = []
        self.by_sha = {}
        self.roots = []
        self.primary_path = []
        self.edge_annotations = {}

    def __len__(self):
        return len(self.commits)

    def __contains__(self, sha):
        return sha in self.by_sha

    def get(self, sha):
        return self.by_sha.get(sha)

    def add(self, commit):
        self.by_sha[commit.sha] = commit
        self.commits.append(commit)
        self.roots.append(commit)
        if self.entry_commit is None:
            self.entry_commit = commit

    def edge_ranges(self, include_unresolved=False):
        return all_edge_diffs(self, include_unresolved)

# ----------------------
# Linking
# ----------------------

def resolve_links(history, requests, diagnostics=None):
    """
    Second phase of construction. Each request is (owner, parent_shas); the
    parents are appended to owner.parents in the order given, so the first
    entry stays the first parent. Shas with no node in the graph are kept on
    owner.unresolved_parents instead.
    """
    diagnostics = diagnostics or Diagnostics()
    for owner, parent_shas in requests:
        for sha in parent_shas:
            if sha == owner.sha:
                diagnostics.warning(f"resolve_links: {owner.short_sha} lists itself as a parent. ignoring.")
                continue
            parent = history.by_sha.get(sha)
            if parent is None:
                if sha not in owner.unresolved_parents:
                    owner.unresolved_parents.append(sha)
                continue
            if sha in owner.unresolved_parents:
                owner.unresolved_parents.remove(sha)
            if parent not in owner.parents:
                owner.parents.append(parent)
            # the owner has a known parent now, so it is no longer a root
            if owner in history.roots:
                history.roots.remove(owner)

def build_primary_path(history):
    """Descend from the entry commit through the first parent of every node."""
    history.primary_path = []
    commit = history.entry_commit
    while commit is not None:
        if len(history.primary_path) >= len(history.commits):
            raise HistoryIntegrityError(
                f"primary path from {history.entry_commit.short_sha} does not reach a root "
                f"within {len(history.commits)} steps"
            )
        history.primary_path.append(commit)
        commit = commit.parents[0] if commit.parents else None
    return history.primary_path

# ----------------------
# Log parsing
# ----------------------

SEEKING_HEADER = "seeking-header"
READING_METADATA = "reading-metadata"
EXPECTING_BLANK = "expecting-blank"
READING_MESSAGE = "reading-message"
SKIPPING = "skipping"

def _as_text(data):
    if isinstance(data, bytes):
        return data.decode("utf-8", errors="replace")
    return data or ""

def _header_shas(line):
    shas = []
    for token in line[len(HEADER_TOKEN):].split():
        # `--decorate` appends "(HEAD -> main, ...)" after the parents
        if token.startswith("("):
            break
        shas.append(token)
    return shas

def parse_log_to_history(log_text, diagnostics=None):
    """
    Parse the output of `git log --parents` into a HistoryGraph.

    Example commit:
      commit 7a4d3c3a5889a3486eeb8d9bd61d64d669712b78 fc3566dd8afb671f5f2629103dc98fc790e21a90 5d642ece04e802dcbaa12629f75de3ea292e8444
      Merge: fc3566d 5d642ec
      Author: Cary Clark <cary@android.com>
      Date:   Thu Apr 22 06:51:03 2010 -0700

          Merge message

    Parents usually appear further down the log than their children, so links
    are collected while scanning and resolved once every node exists.

    Malformed lines are only reported on `diagnostics`. A log whose parent
    links form a cycle raises HistoryIntegrityError from build_primary_path.
    """
    diagnostics = diagnostics or Diagnostics()
    history = HistoryGraph()
    requests = []
    state = SEEKING_HEADER
    commit = None

    for number, line in enumerate(_as_text(log_text).splitlines(), start=1):
        if line.startswith(HEADER_TOKEN):
            shas = _header_shas(line)
            if not shas:
                diagnostics.warning(f"parse_log_to_history: line {number}: header without a sha. ignoring.")
                state = SKIPPING
                continue
            if shas[0] in history:
                diagnostics.warning(f"parse_log_to_history: line {number}: duplicate commit {shas[0][:SHORT_SHA_LENGTH]}. skipping.")
                state = SKIPPING
                continue
            commit = Commit(shas[0])
            history.add(commit)
            if len(shas) > 1:
                requests.append((commit, shas[1:]))
            state = READING_METADATA
            continue

        if state == READING_MESSAGE:
            commit.message += line + "\n"
        elif state == READING_METADATA:
            if line.startswith("Author: "):
                commit.author = line[len("Author: "):].strip()
            elif line.startswith("Date: "):
                commit.date = line[len("Date: "):].strip()
                state = EXPECTING_BLANK
            elif line.startswith("Merge: ") or not line.strip():
                # the header already lists the parents
                continue
            else:
                diagnostics.warning(f"parse_log_to_history: line {number}: unexpected metadata {line!r}. ignoring.")
        elif state == EXPECTING_BLANK:
            if line.strip():
                diagnostics.warning(f"parse_log_to_history: line {number}: expected blank. keeping it as message text.")
                commit.message += line + "\n"
            state = READING_MESSAGE
        elif state == SEEKING_HEADER and line.strip():
            diagnostics.warning(f"parse_log_to_history: line {number}: text before the first commit. ignoring.")

    resolve_links(history, requests, diagnostics)
    build_primary_path(history)
    return history

# ----------------------
# Graph operations
# ----------------------

def delta_history(history_a, history_b, diagnostics=None):
    """
    result = A - B

    Every commit of A missing from B is copied into a new graph. Links are
    rebuilt from the parents the commit has in A: parents that are part of
    the result become edges, shared ones stay behind as unresolved shas.
    """
    history = HistoryGraph()
    requests = []
    for source in history_a.commits:
        if source.sha in history_b:
            continue
        commit = source.copy()
        history.add(commit)
        requests.append((commit, [parent.sha for parent in source.parents]))

    resolve_links(history, requests, diagnostics)
    build_primary_path(history)
    return history

def all_edge_diffs(history, include_unresolved):
    edge_diffs = []
    for commit in history.commits:
        for parent in commit.parents:
            edge_diffs.append(parent.range_to(commit))
        if include_unresolved:
            for parent_sha in commit.unresolved_parents:
                edge_diffs.append(commit.range_from(parent_sha))
    return edge_diffs

# ----------------------
# Diff statistics
# ----------------------

LEADING_NUMBER = re.compile(r"\d+")

def _leading_number(field):
    match = LEADING_NUMBER.match(field.strip())
    return int(match.group()) if match else 0

def parse_diff_stat(stat, diagnostics=None):
    """
    Reduce `git diff --stat` output to "+<insertions> -<deletions>".

    Returns "=" when there is nothing to report (no output, or a summary
    without insertions) and "" when the text could not be understood.
    """
    diagnostics = diagnostics or Diagnostics()
    text = _as_text(stat)
    if not text.strip():
        return "="
    if "insertion" not in text:
        if "changed" in text:
            return "="
        diagnostics.warning("parse_diff_stat: no diff summary found")
        return ""

    for line in text.splitlines():
        if "insertion" not in line or "deletion" not in line:
            continue
        fields = [field for field in line.split(",") if field.strip()]
        if len(fields) != 3:
            diagnostics.warning(f"parse_diff_stat: 3 fields expected, got {len(fields)} in {line.strip()!r}")
            continue
        return f"+{_leading_number(fields[1])} -{_leading_number(fields[2])}"
    diagnostics.warning("parse_diff_stat: no line with insertions and deletions")
    return ""
