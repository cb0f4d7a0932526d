"""Pytest configuration and fixtures for ReqGraph CLI tests."""

import shutil
import tempfile
from pathlib import Path
from typing import Callable, Dict, Generator

import pytest

from reqgraph_cli.canonical import content_hash
from reqgraph_cli.extractor import extract
from reqgraph_cli.models import ModuleRecord
from reqgraph_cli.parser import JavaScriptParser
from reqgraph_cli.storage import ModuleStore, ProjectManager


@pytest.fixture(autouse=True)
def _isolated_home(tmp_path: Path, monkeypatch):
    """Point every config path at a throwaway directory.

    The CLI and ProjectManager read these through the ``config`` module at
    call time, so patching the module attributes is enough.
    """
    base = tmp_path / "reqgraph_home"
    monkeypatch.setattr("reqgraph_cli.config.BASE_DIR", base)
    monkeypatch.setattr("reqgraph_cli.config.MEMORY_DIR", base / "memory")
    monkeypatch.setattr("reqgraph_cli.config.CONFIG_FILE", base / "config.toml")
    monkeypatch.setattr("reqgraph_cli.config.REPORT_FILE", base / "reports" / "entrypoints.txt")
    return base


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    tmp = Path(tempfile.mkdtemp())
    yield tmp
    shutil.rmtree(tmp, ignore_errors=True)


@pytest.fixture
def sample_project_path() -> Path:
    """Get path to sample test project."""
    return Path(__file__).parent / "fixtures" / "sample_project"


@pytest.fixture(scope="session")
def js_parser() -> JavaScriptParser:
    return JavaScriptParser()


@pytest.fixture
def temp_project_manager() -> ProjectManager:
    """ProjectManager backed by the isolated home directory."""
    return ProjectManager()


@pytest.fixture
def temp_module_store(temp_dir: Path) -> Generator[ModuleStore, None, None]:
    """Create a ModuleStore with temporary storage."""
    project_dir = temp_dir / "test_project"
    store = ModuleStore(project_dir)
    yield store
    store.close()


@pytest.fixture
def build_module(js_parser: JavaScriptParser) -> Callable[[str, str], ModuleRecord]:
    """Parse and extract one in-memory module."""

    def _build(path: str, source: str) -> ModuleRecord:
        tree = js_parser.parse(source, path)
        return ModuleRecord(
            path=path,
            content_hash=content_hash(source),
            name=path.rsplit("/", 1)[-1],
            file_path=f"{path}.js",
            symbol_table=extract(tree, path),
            tree=tree,
        )

    return _build


@pytest.fixture
def build_module_map(build_module) -> Callable[[Dict[str, str]], Dict[str, ModuleRecord]]:
    """Build a module map from ``{module_path: source}``."""

    def _build(sources: Dict[str, str]) -> Dict[str, ModuleRecord]:
        return {path: build_module(path, src) for path, src in sources.items()}

    return _build


@pytest.fixture
def sample_sources() -> Dict[str, str]:
    """A tiny CommonJS codebase: an API handler reaching ``query`` in lib/db."""
    return {
        "api/user": (
            "const db = require('../lib/db');\n"
            "function getUser(req, res) {\n"
            "  return db.query('SELECT 1');\n"
            "}\n"
            "module.exports = { getUser };\n"
        ),
        "lib/db": (
            "function query(sql) {\n"
            "  return sql.trim();\n"
            "}\n"
            "module.exports = { query };\n"
        ),
    }
