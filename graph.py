# graph.py

import logging
import subprocess

from graphviz import Digraph, ExecutableNotFound, nohtml

log = logging.getLogger(__name__)

PLACEHOLDER_LENGTH = 7
LABEL_WRAP = 67
FORMATS = ("png", "svg", "pdf")

BRANCH_COLOR = "#006400"
REF_COLOR = "#0000ff"

TITLE_COLOR = "#000080"
NODE_LINE_COLOR = "#000000"
MERGE_TEXT_COLOR = "#808080"
MERGE_LINE_COLOR = "#a0a0a4"
EDGE_TEXT_COLOR = "#808080"
EDGE_LINE_COLOR = "#000000"
MERGE_EDGE_COLOR = "#800000"

def darker(color):
    """Half the brightness of a #rrggbb colour."""
    channels = [int(color[i:i + 2], 16) // 2 for i in (1, 3, 5)]
    return "#" + "".join(f"{c:02x}" for c in channels)

def node_label(commit):
    label = commit.subject.replace('"', "'")
    # break long subjects into lines of LABEL_WRAP characters
    lines = [label[i:i + LABEL_WRAP] for i in range(0, len(label), LABEL_WRAP)]
    # backslashes are DOT escapes and <...> would be read as an HTML label
    return nohtml("\\n".join(line.replace("\\", "\\\\") for line in lines))

def edge_label(history, diff_range):
    annotation = history.edge_annotations.get(diff_range)
    if annotation:
        return f"{diff_range}  ({annotation})"
    return diff_range

def build_delta_graph(history, title=None, color=BRANCH_COLOR, ref_color=REF_COLOR, edge_labels=False):
    """
    Describe `history` as a Graphviz digraph: one box per commit, an ellipse
    per parent that lives outside the graph, bold first-parent edges along
    the primary path and dotted edges towards the outside parents.
    """
    dot = Digraph("gitdelta", comment=f"This graph represents a Git history of {len(history)} elements")
    dot.attr(rankdir="BT")
    if title:
        dot.attr(label=title, fontname="monospace", fontcolor=TITLE_COLOR, fontsize="12")
    dot.attr("node", fontsize="8", color=NODE_LINE_COLOR, fontcolor=color, shape="box", fontname="Courier 10 pitch")
    dot.attr("edge", fontsize="8", color=EDGE_LINE_COLOR, fontcolor=EDGE_TEXT_COLOR, fontname="Arial")

    placeholders = set()
    for commit in history.commits:
        attrs = {}
        if commit.is_merge:
            attrs.update(shape="box", style="rounded", color=MERGE_LINE_COLOR, fontcolor=MERGE_TEXT_COLOR)
        if commit.is_root:
            attrs["color"] = color
        dot.node(commit.short_sha, node_label(commit), **attrs)

        for parent_sha in commit.unresolved_parents:
            name = parent_sha[:PLACEHOLDER_LENGTH]
            if name in placeholders:
                continue
            placeholders.add(name)
            dot.node(name, shape="ellipse", color=ref_color, fontcolor=darker(ref_color))

    primary = set(history.primary_path)
    for commit in history.commits:
        for index, parent in enumerate(commit.parents):
            attrs = {}
            if index > 0:
                attrs["color"] = MERGE_EDGE_COLOR
            elif commit in primary:
                attrs["style"] = "bold"
            label = edge_label(history, parent.range_to(commit)) if edge_labels else None
            dot.edge(parent.short_sha, commit.short_sha, label=label, **attrs)

        for parent_sha in commit.unresolved_parents:
            label = edge_label(history, commit.range_from(parent_sha)) if edge_labels else None
            dot.edge(parent_sha[:PLACEHOLDER_LENGTH], commit.short_sha, label=label, style="dotted", color=ref_color)

    return dot

def render_graph(dot, output, fmt="png"):
    """
    Save the DOT source next to `output` and let the external `dot` tool
    render it. Returns the rendered file path, or None when rendering failed.
    """
    if fmt not in FORMATS:
        raise ValueError(f"unsupported format {fmt!r}, expected one of {', '.join(FORMATS)}")
    dot_file = output + ".dot"
    try:
        return dot.render(dot_file, format=fmt, outfile=f"{output}.{fmt}")
    except ExecutableNotFound:
        log.warning("render_graph: the Graphviz `dot` executable was not found, kept %s", dot_file)
    except subprocess.CalledProcessError as e:
        log.warning("render_graph: dot failed with code %s, kept %s", e.returncode, dot_file)
    return None
