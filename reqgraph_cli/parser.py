"""JavaScript parsing and source discovery built on Tree-sitter.

Tree-sitter produces a *concrete syntax tree* that keeps every token,
including comments, which is what the canonical renderer needs.  Unlike
the grammar itself, the analysis is strict: a tree containing error nodes
is reported as a parse failure and the module is left out of the run.
"""

from __future__ import annotations

import importlib
import logging
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from tree_sitter import Language, Parser as TSParser

from . import config

logger = logging.getLogger(__name__)


class ParseError(Exception):
    """A module's source could not be parsed."""

    def __init__(self, module_path: str, detail: str = "") -> None:
        self.module_path = module_path
        message = f"parse error in {module_path}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class DiscoveryError(Exception):
    """The source tree could not be listed."""


class ParserUnavailableError(RuntimeError):
    """No Tree-sitter grammar could be loaded for the requested language."""


# Map language name -> module that provides the tree-sitter Language
_GRAMMAR_MODULES: Dict[str, str] = {
    "javascript": "tree_sitter_javascript",
}


class JavaScriptParser:
    """Thin wrapper around a Tree-sitter parser for the JavaScript grammar."""

    def __init__(self, language: str = "javascript") -> None:
        self.language = language
        self._parser = self._init_parser(language)

    @staticmethod
    def _init_parser(language: str) -> TSParser:
        mod_name = _GRAMMAR_MODULES.get(language)
        if mod_name is None:
            raise ParserUnavailableError(f"No grammar module mapped for language '{language}'")
        try:
            mod = importlib.import_module(mod_name)
        except ImportError as exc:
            raise ParserUnavailableError(
                f"Grammar package '{mod_name}' not installed. "
                f"Install with: pip install {mod_name.replace('_', '-')}"
            ) from exc
        # tree-sitter >=0.22 per-language packages expose a
        # language() function that returns the Language capsule.
        parser = TSParser(Language(mod.language()))
        logger.debug("Loaded tree-sitter parser for %s", language)
        return parser

    def parse(self, source: str, module_path: str = "<memory>") -> Any:
        """Parse *source* and return the Tree-sitter tree.

        Raises:
            ParseError: the tree contains syntax errors.
        """
        tree = self._parser.parse(source.encode("utf-8"))
        root = tree.root_node
        if root.has_error:
            line = _first_error_line(root)
            detail = f"syntax error near line {line}" if line else "syntax error"
            raise ParseError(module_path, detail)
        return tree


def _first_error_line(node: Any) -> Optional[int]:
    if node.type == "ERROR" or node.is_missing:
        return node.start_point[0] + 1
    for child in node.children:
        if child.has_error:
            return _first_error_line(child)
    return None


# ------------------------------------------------------------------
# Discovery
# ------------------------------------------------------------------

def discover_sources(
    root: Path,
    extensions: Optional[Iterable[str]] = None,
    skip_dirs: Optional[Iterable[str]] = None,
) -> List[Path]:
    """Return every source file under *root*, sorted.

    Raises:
        DiscoveryError: *root* is not a readable directory.
    """
    exts = set(extensions or config.SOURCE_EXTENSIONS)
    skipped = set(skip_dirs if skip_dirs is not None else config.SKIP_DIRS)
    if not root.is_dir():
        raise DiscoveryError(f"Cannot read source directory: {root}")

    files: List[Path] = []
    try:
        for file_path in root.rglob("*"):
            rel_parts = file_path.relative_to(root).parts
            if any(part in skipped for part in rel_parts[:-1]):
                continue
            if file_path.suffix in exts and file_path.is_file():
                files.append(file_path)
    except OSError as exc:
        raise DiscoveryError(f"Cannot read source directory {root}: {exc}") from exc
    return sorted(files)


def module_path_for(root: Path, file_path: Path) -> str:
    """``<root>/lib/db.js`` -> ``lib/db``."""
    rel = file_path.relative_to(root).as_posix()
    suffix = file_path.suffix
    return rel[: -len(suffix)] if suffix else rel
