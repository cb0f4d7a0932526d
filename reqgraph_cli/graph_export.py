"""Graph export helpers for Graphviz DOT and plain-text caller trees."""

from __future__ import annotations

from pathlib import Path
from typing import Dict, List, Set, Tuple

from .resolver import CallerMap


def caller_edges(callers: CallerMap) -> List[Tuple[str, str]]:
    """``(callee_module, caller_module)`` pairs in the nested map, deduplicated."""
    edges: List[Tuple[str, str]] = []
    seen: Set[Tuple[str, str]] = set()

    def _walk(module: str, tree: CallerMap) -> None:
        for caller, sub in tree.items():
            edge = (module, caller)
            if edge not in seen:
                seen.add(edge)
                edges.append(edge)
            _walk(caller, sub)

    for module, tree in callers.items():
        _walk(module, tree)
    return edges


def export_dot(callers: CallerMap, output_file: Path, entry_prefix: str = "", focus: str = "") -> None:
    edges = caller_edges(callers)
    if focus:
        edges = [e for e in edges if focus in e[0] or focus in e[1]]

    nodes: Dict[str, None] = {}
    for src, dst in edges:
        nodes.setdefault(src)
        nodes.setdefault(dst)
    if not focus:
        for module in callers:
            nodes.setdefault(module)

    lines = ["digraph ReqGraph {"]
    lines.append("  rankdir=LR;")
    for node in nodes:
        attrs = f'label="{_esc(node)}"'
        if entry_prefix and node.startswith(entry_prefix):
            attrs += ", shape=box, style=bold"
        lines.append(f'  "{_esc(node)}" [{attrs}];')
    for src, dst in edges:
        lines.append(f'  "{_esc(dst)}" -> "{_esc(src)}" [label="calls"];')
    lines.append("}")
    output_file.parent.mkdir(parents=True, exist_ok=True)
    output_file.write_text("\n".join(lines), encoding="utf-8")


def ascii_tree(root: str, callers: CallerMap) -> str:
    lines = [root]

    def _walk(tree: CallerMap, level: int) -> None:
        for caller, sub in tree.items():
            lines.append(f"{'  ' * level}|-called-by-> {caller}")
            _walk(sub, level + 1)

    _walk(callers, 1)
    return "\n".join(lines)


def _esc(text: str) -> str:
    return text.replace('"', '\\"')
