"""Canonical text rendering and content fingerprints for tree-sitter nodes.

Two nodes that differ only in whitespace or comments render to the same
text, so their fingerprints match. This is how functions without a name are
re-identified across the extractor and the resolver.
"""

from __future__ import annotations

import hashlib
from typing import Any, List

COMMENT_TYPES = frozenset({"comment", "html_comment"})

# Literals whose inner whitespace is significant
ATOMIC_TYPES = frozenset({"string", "template_string", "regex"})

_WORD_CHARS = frozenset("abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789_$")


def _needs_space(prev: str, token: str) -> bool:
    a, b = prev[-1], token[0]
    if a in _WORD_CHARS and b in _WORD_CHARS:
        return True
    # a + +b must not become a++b
    return (a == "+" and b == "+") or (a == "-" and b == "-")


def _tokens(root: Any) -> List[str]:
    out: List[str] = []
    stack = [root]
    while stack:
        node = stack.pop()
        if node.type in COMMENT_TYPES:
            continue
        if node.child_count == 0 or node.type in ATOMIC_TYPES:
            text = node.text.decode("utf-8", errors="replace")
            if text:
                out.append(text)
            continue
        stack.extend(reversed(node.children))
    return out


def canonical_text(node: Any) -> str:
    """Render *node* as minified, comment-free source text."""
    tokens = _tokens(node)
    parts: List[str] = []
    for token in tokens:
        if parts and _needs_space(parts[-1], token):
            parts.append(" ")
        parts.append(token)
    return "".join(parts)


def fingerprint(text: str) -> str:
    return hashlib.sha1(text.encode("utf-8")).hexdigest()


def node_fingerprint(node: Any) -> str:
    return fingerprint(canonical_text(node))


def content_hash(source: str) -> str:
    """Fingerprint of raw source text, used to tag stored module records."""
    return fingerprint(source)
