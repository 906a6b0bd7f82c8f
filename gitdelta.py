"""
gitdelta.py: draw what one git branch has that another one lacks

Commands: branches, log, delta

Pipeline (delta):
- `git log --parents` of both branches is parsed into two HistoryGraphs.
- The base history is subtracted from the target history; the commits left
  over are re-linked among themselves, and their parents on the base side are
  kept as unresolved shas.
- Optionally one `git diff --stat` per edge annotates the edges with "+I -D".
- The result is written as a Graphviz description and rendered by `dot`.

Leaving out --base compares against an empty history, so the whole target
branch is drawn.
"""

import argparse
import html
import logging
import os
import sys
import tempfile

import graph
import runner
from history import (
    Diagnostics,
    HistoryGraph,
    HistoryIntegrityError,
    delta_history,
    parse_diff_stat,
    parse_log_to_history,
)

log = logging.getLogger(__name__)

HUGE_DIFF_SECONDS = 10

# ----------------------
# Pipeline
# ----------------------

def load_history(repo, ref, timeout=runner.COMMAND_TIMEOUT, diagnostics=None):
    res = runner.git_log(repo, ref, timeout=timeout, diagnostics=diagnostics)
    if not res.ok:
        return None
    return parse_log_to_history(res.output, diagnostics)

def collect_edge_stats(repo, history, timeout=runner.COMMAND_TIMEOUT, diagnostics=None, progress=None):
    """
    Query `git diff --stat` for every edge of `history` (unresolved ones
    included) and store the summaries in history.edge_annotations. Failed
    queries leave their edge unannotated. Returns the number of annotations.
    """
    diff_ranges = history.edge_ranges(include_unresolved=True)
    for index, diff_range in enumerate(diff_ranges):
        if progress:
            progress(index, len(diff_ranges))
        res = runner.git_diff_stat(repo, diff_range, timeout=timeout, diagnostics=diagnostics)
        if not res.ok:
            log.warning("error executing git diff %s", diff_range)
            continue
        edge_diff = parse_diff_stat(res.output, diagnostics)
        if edge_diff:
            history.edge_annotations[diff_range] = edge_diff
        if res.duration > HUGE_DIFF_SECONDS:
            log.warning("huge diff: %s [%s]", diff_range, edge_diff)
    return len(history.edge_annotations)

def graph_title(base, target, count):
    # ref names may contain &, < and >
    base = html.escape(base or "The big bang")
    target = html.escape(target)
    return (
        "<<B>Graph of changes between</B>:<BR/>"
        f"<I>{base}</I>, and<BR/><I>{target}</I><BR/>({count} new nodes)>"
    )

def verify_branches(repo, refs, timeout=runner.COMMAND_TIMEOUT):
    """Return the refs missing from `git branch -a`."""
    branches = runner.git_branches(repo, timeout=timeout)
    return [ref for ref in refs if not any(ref == b or b.endswith("/" + ref) for b in branches)]

# ----------------------
# Commands
# ----------------------

def cmd_branches(args):
    branches = runner.git_branches(args.repo, timeout=args.timeout)
    if not branches:
        print("No branches found.")
        return 1
    for name in branches:
        print(name)
    return 0

def cmd_log(args):
    """
    Parse the history of one ref and show its roots and primary path.
    """
    history = load_history(args.repo, args.ref, timeout=args.timeout)
    if history is None:
        print(f"git log failed for {args.ref}", file=sys.stderr)
        return 1
    print(f"{len(history)} commits, {len(history.roots)} roots")
    for commit in history.roots:
        print(f"root {commit.short_sha} {commit.subject}")
    print("Primary path:")
    for commit in history.primary_path:
        marker = "M" if commit.is_merge else " "
        print(f"  {marker} {commit.short_sha} {commit.subject}")
    return 0

def cmd_delta(args):
    repo = args.repo
    missing = verify_branches(repo, [ref for ref in (args.base, args.target) if ref], timeout=args.timeout)
    if missing:
        print(f"Unknown branch: {', '.join(missing)}", file=sys.stderr)
        return 1

    diagnostics = Diagnostics()
    base = HistoryGraph()
    if args.base:
        base = load_history(repo, args.base, timeout=args.timeout, diagnostics=diagnostics)
        if base is None:
            print(f"git log failed for {args.base}", file=sys.stderr)
            return 1
    target = load_history(repo, args.target, timeout=args.timeout, diagnostics=diagnostics)
    if target is None:
        print(f"git log failed for {args.target}", file=sys.stderr)
        return 1

    # delta = target - base
    delta = delta_history(target, base, diagnostics)
    log.info("%s has %d commits not in %s", args.target, len(delta), args.base or "the empty history")

    if args.edge_stats:
        def progress(index, total):
            log.debug("diff %d/%d", index + 1, total)
        collect_edge_stats(repo, delta, timeout=args.timeout, diagnostics=diagnostics, progress=progress)

    dot = graph.build_delta_graph(
        delta,
        title=graph_title(args.base, args.target, len(delta)),
        color=args.color,
        ref_color=args.ref_color,
        edge_labels=args.edge_labels or args.edge_stats,
    )
    if args.no_render:
        dot.save(args.out + ".dot")
        print(f"Created file '{args.out}.dot' with {len(delta)} changes")
        return 0
    target_file = graph.render_graph(dot, args.out, args.format)
    if target_file is None:
        print(f"Rendering failed, graph description kept in '{args.out}.dot'", file=sys.stderr)
        return 1
    print(f"Created file '{target_file}' with {len(delta)} changes")
    return 0

# ----------------------
# Argument Parser
# ----------------------

def main(argv=None):
    parser = argparse.ArgumentParser(description="gitdelta: graph the commits one branch has over another")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log debug output")
    subparsers = parser.add_subparsers(dest="command", required=True)

    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--repo", default=os.getcwd(), help="Git working tree (default: current directory)")
    common.add_argument("--timeout", type=int, default=runner.COMMAND_TIMEOUT, help="Seconds allowed per git command")

    p_branches = subparsers.add_parser("branches", parents=[common], help="List local and remote branches")
    p_branches.set_defaults(func=cmd_branches)

    p_log = subparsers.add_parser("log", parents=[common], help="Show the roots and primary path of a ref")
    p_log.add_argument("ref", help="Branch or commit to parse")
    p_log.set_defaults(func=cmd_log)

    p_delta = subparsers.add_parser("delta", parents=[common], help="Graph the commits of TARGET missing from BASE")
    p_delta.add_argument("target", help="Branch whose new commits are drawn")
    p_delta.add_argument("--base", help="Branch to subtract (default: none, draw the whole history)")
    p_delta.add_argument("--edge-labels", action="store_true", help="Write the diff range on every edge")
    p_delta.add_argument("--edge-stats", action="store_true", help="Add +insertions -deletions to edge labels, implies --edge-labels (one git diff per edge)")
    p_delta.add_argument("--format", choices=graph.FORMATS, default="png", help="Rendered image format")
    p_delta.add_argument("--out", default=os.path.join(tempfile.gettempdir(), "graph"), help="Output path without extension")
    p_delta.add_argument("--color", default=graph.BRANCH_COLOR, help="Colour of the target branch commits")
    p_delta.add_argument("--ref-color", default=graph.REF_COLOR, help="Colour of the commits shared with the base")
    p_delta.add_argument("--no-render", action="store_true", help="Only write the .dot description")
    p_delta.set_defaults(func=cmd_delta)

    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    try:
        return args.func(args)
    except HistoryIntegrityError as e:
        print(f"Broken history: {e}", file=sys.stderr)
        return 1

if __name__ == "__main__":
    sys.exit(main())
