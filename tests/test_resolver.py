"""Tests for cross-module call-graph resolution."""

import pytest

from reqgraph_cli.resolver import (
    CallGraphResolver,
    flatten_callers,
    merge_callers,
    propagate_inheritance,
)


@pytest.fixture
def inheritance_sources():
    return {
        "lib/models/admin": (
            "const User = require('./user');\n"
            "class Admin extends User {\n"
            "  promote(other) { return other.id; }\n"
            "}\n"
            "module.exports = Admin;\n"
        ),
        "lib/models/user": (
            "class User {\n"
            "  login(password) { return check(password); }\n"
            "  promote() { return null; }\n"
            "}\n"
            "module.exports = User;\n"
        ),
    }


class TestPropagateInheritance:
    """Tests for inherited method propagation."""

    def test_parent_methods_copied(self, build_module_map, inheritance_sources):
        modules = build_module_map(inheritance_sources)

        inserted = propagate_inheritance(modules)

        admin = modules["lib/models/admin"].symbol_table.callable
        user = modules["lib/models/user"].symbol_table.callable
        assert ("lib/models/admin", "Admin.login") in inserted
        assert admin["Admin.login"].fingerprint == user["User.login"].fingerprint

    def test_own_methods_not_overwritten(self, build_module_map, inheritance_sources):
        modules = build_module_map(inheritance_sources)
        own = modules["lib/models/admin"].symbol_table.callable["Admin.promote"].fingerprint

        propagate_inheritance(modules)

        assert modules["lib/models/admin"].symbol_table.callable["Admin.promote"].fingerprint == own

    def test_missing_parent_is_skipped(self, build_module_map):
        modules = build_module_map({"lib/a": "class A extends Missing { run() {} }"})

        assert propagate_inheritance(modules) == []

    def test_second_run_duplicates_index_entries(self, build_module_map, inheritance_sources):
        modules = build_module_map(inheritance_sources)
        admin = modules["lib/models/admin"].symbol_table.callable

        first = propagate_inheritance(modules)
        fp = admin["Admin.login"].fingerprint
        second = propagate_inheritance(modules)

        assert first == second
        assert admin.names_for_fingerprint(fp) == ["Admin.login", "Admin.login"]

    def test_resolver_prepares_once(self, build_module_map, inheritance_sources):
        modules = build_module_map(inheritance_sources)
        resolver = CallGraphResolver(modules)

        resolver.prepare()
        resolver.prepare()

        admin = modules["lib/models/admin"].symbol_table.callable
        assert admin.names_for_fingerprint(admin["Admin.login"].fingerprint) == ["Admin.login"]


class TestImportsModule:
    """Tests for import detection between modules."""

    def test_child_imports_parent(self, build_module_map, sample_sources):
        resolver = CallGraphResolver(build_module_map(sample_sources))

        assert resolver.imports_module("lib/db", "api/user") == "db"

    def test_reverse_direction_is_none(self, build_module_map, sample_sources):
        resolver = CallGraphResolver(build_module_map(sample_sources))

        assert resolver.imports_module("api/user", "lib/db") is None

    def test_root_prefix_normalized(self, build_module_map, sample_sources):
        resolver = CallGraphResolver(build_module_map(sample_sources))

        assert resolver.imports_module("db", "api/user") == "db"

    def test_index_fallback(self, build_module_map):
        resolver = CallGraphResolver(build_module_map({
            "lib/app": "const cache = require('./cache');\ncache.get('k');\n",
            "lib/cache/index": "module.exports = { get(k) { return k; } };\n",
        }))

        assert resolver.imports_module("lib/cache/index", "lib/app") == "cache"

    def test_unknown_module(self, build_module_map, sample_sources):
        resolver = CallGraphResolver(build_module_map(sample_sources))

        assert resolver.imports_module("lib/db", "lib/nowhere") is None


class TestCallsInModule:
    """Tests for call-site matching."""

    def test_matches_enclosing_callable(self, build_module_map, sample_sources):
        resolver = CallGraphResolver(build_module_map(sample_sources))

        found = resolver.calls_in_module("lib/db", "query", "api/user")

        assert list(found) == ["getUser"]

    def test_match_is_case_insensitive(self, build_module_map, sample_sources):
        resolver = CallGraphResolver(build_module_map(sample_sources))

        assert list(resolver.calls_in_module("lib/db", "QUERY", "api/user")) == ["getUser"]

    def test_requires_import_of_parent(self, build_module_map, sample_sources):
        resolver = CallGraphResolver(build_module_map(sample_sources))

        assert resolver.calls_in_module("lib/other", "query", "api/user") == {}

    def test_without_parent_searches_module(self, build_module_map, sample_sources):
        resolver = CallGraphResolver(build_module_map(sample_sources))

        assert list(resolver.calls_in_module(None, "sql.trim", "lib/db")) == ["query"]

    def test_top_level_call_has_no_callable(self, build_module_map):
        resolver = CallGraphResolver(build_module_map({"lib/a": "boot();\n"}))

        assert resolver.calls_in_module(None, "boot", "lib/a") == {}


class TestFindCallers:
    """Tests for the reverse-dependency walk."""

    def test_api_module_calls_db_query(self, build_module_map, sample_sources):
        resolver = CallGraphResolver(build_module_map(sample_sources))

        assert resolver.find_callers("lib/db", ["query"]) == {"api/user": {}}

    def test_transitive_callers(self, build_module_map):
        resolver = CallGraphResolver(build_module_map({
            "api/user": (
                "const User = require('../lib/models/user');\n"
                "const login = (req) => {\n"
                "  const user = new User(req.id);\n"
                "  return user.login(req.pw);\n"
                "};\n"
            ),
            "lib/db": "function query(sql) { return sql; }\nmodule.exports = { query };\n",
            "lib/models/user": (
                "const db = require('../db');\n"
                "class User {\n"
                "  login(pw) { return db.query(pw); }\n"
                "}\n"
                "module.exports = User;\n"
            ),
        }))

        assert resolver.find_callers("lib/db", ["query"]) == {
            "lib/models/user": {"api/user": {}},
        }

    def test_structural_walk_without_names(self, build_module_map, sample_sources):
        resolver = CallGraphResolver(build_module_map(sample_sources))

        assert resolver.find_callers("lib/db") == {"api/user": {}}

    def test_mutual_imports_terminate(self, build_module_map):
        resolver = CallGraphResolver(build_module_map({
            "lib/a": "const b = require('./b');\nfunction ping() { return b.pong(); }\nmodule.exports = { ping };\n",
            "lib/b": "const a = require('./a');\nfunction pong() { return a.ping(); }\nmodule.exports = { pong };\n",
        }))

        assert resolver.find_callers("lib/a", ["ping"]) == {"lib/b": {}}
        assert resolver.find_callers("lib/a") == {"lib/b": {}}

    def test_inherited_method_callers(self, build_module_map, inheritance_sources):
        sources = dict(inheritance_sources)
        sources["api/admin"] = (
            "const Admin = require('../lib/models/admin');\n"
            "function handle(a) { return a.login('x'); }\n"
        )
        resolver = CallGraphResolver(build_module_map(sources))

        assert resolver.find_callers("lib/models/admin", ["Admin.login"]) == {}
        assert resolver.find_callers("lib/models/admin", ["login"]) == {"api/admin": {}}


class TestResolve:
    """Tests for the full resolution pass."""

    def test_entrypoints(self, build_module_map, sample_sources):
        resolver = CallGraphResolver(build_module_map(sample_sources))

        report = resolver.resolve()

        assert report.callers["lib/db"] == {"api/user": {}}
        assert report.entrypoints == ["api/user"]

    def test_entity_filter(self, build_module_map, sample_sources):
        resolver = CallGraphResolver(build_module_map(sample_sources))

        report = resolver.resolve(entity="TRIM")

        assert list(report.callers) == ["lib/db"]
        assert report.flattened == ["api/user"]

    def test_custom_entry_prefix(self, build_module_map, sample_sources):
        resolver = CallGraphResolver(build_module_map(sample_sources), entry_prefix="lib/")

        report = resolver.resolve(entity="trim")

        assert report.entrypoints == []


class TestCallerMapHelpers:
    """Tests for merge and flatten helpers."""

    def test_flatten_leaves(self):
        nested = {"a": {"b": {}, "c": {"d": {}}}, "e": {}, "f": {"b": {}}}

        assert flatten_callers(nested) == ["b", "d", "e"]

    def test_flatten_empty(self):
        assert flatten_callers({}) == []

    def test_merge_is_deep(self):
        into = {"a": {"b": {}}}

        merge_callers(into, {"a": {"c": {"d": {}}}, "e": {}})

        assert into == {"a": {"b": {}, "c": {"d": {}}}, "e": {}}
