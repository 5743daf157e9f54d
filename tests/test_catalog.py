"""Tests for the dependency catalog: construction, enrichment, caching and queries."""

import logging
import os
import threading
import time

import pytest

from bndgraph.cache import EdgeCache
from bndgraph.catalog import BndCatalog
from bndgraph.errors import (
    CatalogConstructionError,
    DependencyCycleError,
    ProjectNotFoundError,
)
from bndgraph.models import EnrichmentState
from bndgraph.oracle import OracleAdapter

from conftest import FakeBuildTool, write_project

OLD = 1_000_000


# ── Helpers ───────────────────────────────────────────────────

def _age_descriptors(workspace, when=OLD):
    for descriptor in workspace.glob("*/bnd.bnd"):
        os.utime(descriptor, (when, when))


def _catalog(workspace, tool=None, cache=None, **kwargs):
    oracle = OracleAdapter(tool) if tool is not None else None
    return BndCatalog(workspace, oracle=oracle, cache=cache, **kwargs)


def _names(paths):
    return [p.name for p in paths]


@pytest.fixture
def layered(workspace):
    """util <- api <- impl, with oracle-only edges impl -> core and impl -> testutil."""
    write_project(workspace, "cnf")
    write_project(workspace, "build.image")
    write_project(workspace, "util", nobundles="true")
    write_project(workspace, "api", buildpath="util")
    write_project(workspace, "core", nobundles="true")
    write_project(workspace, "testutil", publish_disabled="true")
    write_project(workspace, "impl", buildpath="api, org.osgi.service.component")
    return workspace


def _layered_tool(**kwargs):
    return FakeBuildTool(
        build={"impl": ["api", "core"]},
        test={"impl": ["testutil", "junit"]},
        **kwargs,
    )


# ── Construction ──────────────────────────────────────────────

class TestConstruction:
    def test_only_directories_with_descriptor(self, workspace):
        write_project(workspace, "real")
        (workspace / "not-a-project").mkdir()
        (workspace / "stray.txt").write_text("x")
        catalog = _catalog(workspace)
        assert _names(catalog.all_project_paths()) == ["real"]

    def test_unreadable_workspace(self, tmp_path):
        with pytest.raises(CatalogConstructionError):
            _catalog(tmp_path / "missing")

    def test_descriptor_must_be_a_file(self, workspace):
        (workspace / "odd" / "bnd.bnd").mkdir(parents=True)
        assert _catalog(workspace).all_project_paths() == []

    def test_lookup_by_symbolic_name(self, workspace):
        root = write_project(workspace, "foo", bsn="com.acme.foo")
        catalog = _catalog(workspace)
        assert catalog.has_project("foo")
        assert catalog.has_project("com.acme.foo")
        assert catalog.get_project_path("com.acme.foo") == root
        assert catalog.get_project("com.acme.foo").name == "foo"

    def test_unknown_name(self, workspace):
        with pytest.raises(ProjectNotFoundError):
            _catalog(workspace).get_project("nope")

    def test_declared_dependency_via_symbolic_name(self, workspace):
        write_project(workspace, "foo", bsn="com.acme.foo")
        write_project(workspace, "bar", buildpath="com.acme.foo")
        assert _catalog(workspace).dependency_names("bar") == {"foo"}

    def test_self_dependency_filtered(self, workspace):
        write_project(workspace, "narcissus", buildpath="narcissus")
        assert _catalog(workspace).dependency_names("narcissus") == set()

    def test_describe_project(self, workspace):
        write_project(workspace, "foo", bsn="com.acme.foo")
        assert "com.acme.foo" in _catalog(workspace).describe_project("foo")

    def test_starts_unenriched(self, scenario):
        assert _catalog(scenario).state is EnrichmentState.UNENRICHED


class TestStaticEdges:
    def test_scenario_edges(self, scenario):
        catalog = _catalog(scenario)
        assert catalog.dependency_names("A") == {"cnf", "build.image"}
        assert catalog.dependency_names("B") == {"A", "cnf"}
        assert catalog.dependency_names("build.image") == {"cnf"}
        assert catalog.dependency_names("cnf") == set()

    def test_scenario_required_order(self, scenario):
        catalog = _catalog(scenario)
        paths = catalog.get_required_project_paths(["B"])
        assert _names(paths) == ["cnf", "build.image", "A", "B"]
        assert paths[-1] == scenario / "B"

    def test_publish_disabled_skips_build_image(self, layered):
        catalog = _catalog(layered)
        assert "build.image" not in catalog.dependency_names("testutil")
        assert "build.image" not in catalog.dependency_names("util")
        assert "build.image" in catalog.dependency_names("api")

    def test_unresolved_declared_names_dropped(self, layered):
        catalog = _catalog(layered)
        assert catalog.dependency_names("impl") == {"api", "cnf", "build.image"}

    def test_custom_convention_projects(self, workspace):
        write_project(workspace, "base")
        write_project(workspace, "img")
        write_project(workspace, "app")
        catalog = _catalog(workspace, config_root="base", build_image="img")
        assert catalog.dependency_names("app") == {"base", "img"}

    def test_without_convention_projects(self, workspace):
        write_project(workspace, "app")
        assert _catalog(workspace).dependency_names("app") == set()


# ── Enrichment ────────────────────────────────────────────────

class TestEnrichment:
    def test_oracle_edges_added(self, layered):
        catalog = _catalog(layered, _layered_tool())
        assert catalog.dependency_names("impl") == {
            "api", "core", "testutil", "cnf", "build.image",
        }
        assert catalog.state is EnrichmentState.ENRICHED
        assert catalog.oracle_edges() == {
            ("impl", "api"), ("impl", "core"), ("impl", "testutil"),
        }

    def test_sweep_runs_once(self, layered):
        tool = _layered_tool()
        catalog = _catalog(layered, tool)
        catalog.get_required_project_paths(["impl"])
        first = catalog.oracle_edges()
        catalog.get_dependent_project_paths(["api"])
        catalog.ensure_enriched()
        assert sorted(tool.build_calls) == sorted(p.name for p in catalog.all_project_paths())
        assert catalog.oracle_edges() == first

    def test_concurrent_queries_sweep_once(self, layered):
        class SlowTool(FakeBuildTool):
            def build_dependencies(self, name):
                time.sleep(0.01)
                return super().build_dependencies(name)

        tool = SlowTool(build={"impl": ["core"]})
        catalog = _catalog(layered, tool)
        barrier = threading.Barrier(8)
        results = []

        def query():
            barrier.wait()
            results.append(catalog.get_required_project_paths(["impl"]))

        threads = [threading.Thread(target=query) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(tool.build_calls) == 7
        assert len(results) == 8
        assert all(r == results[0] for r in results)
        assert "core" in _names(results[0])

    def test_oracle_failure_is_not_fatal(self, layered, caplog):
        tool = _layered_tool(failing=["impl"])
        with caplog.at_level(logging.WARNING, logger="bndgraph"):
            catalog = _catalog(layered, tool)
            deps = catalog.dependency_names("impl")
        # test dependencies still arrive when the build query fails
        assert "testutil" in deps
        assert "core" not in deps
        assert "impl" in caplog.text
        assert len(tool.build_calls) == 7

    def test_unexpected_error_resets_state(self, layered):
        class Exploding:
            def get_build_and_test_dependencies(self, project):
                raise RuntimeError("oracle crashed")

            def bind(self, lookup):
                return self

        catalog = BndCatalog(layered, oracle=Exploding())
        with pytest.raises(RuntimeError, match="oracle crashed"):
            catalog.ensure_enriched()
        assert catalog.state is EnrichmentState.UNENRICHED

    def test_without_oracle(self, scenario):
        catalog = _catalog(scenario)
        catalog.ensure_enriched()
        assert catalog.state is EnrichmentState.ENRICHED
        assert catalog.oracle_edges() == set()

    def test_reanalyze_requeries_and_replaces(self, layered, tmp_path):
        tool = _layered_tool()
        cache = EdgeCache(tmp_path / "settings" / "deps.cache")
        catalog = _catalog(layered, tool, cache)
        catalog.ensure_enriched()
        assert "core" in catalog.dependency_names("impl")

        tool.build = {"api": ["core"]}
        tool.test = {}
        catalog.reanalyze()
        assert len(tool.build_calls) == 14
        assert "core" not in catalog.dependency_names("impl")
        assert "core" in catalog.dependency_names("api")
        assert cache.path.read_text() == "api -> core\n"

    def test_failed_reanalyze_keeps_previous_edges(self, layered):
        class Flaky:
            def __init__(self):
                self.deps = {"impl": ["core"]}
                self.explode = False

            def bind(self, lookup):
                self.lookup = lookup
                return self

            def get_build_and_test_dependencies(self, project):
                if self.explode:
                    raise RuntimeError("oracle crashed")
                return {self.lookup(n) for n in self.deps.get(project.name, [])}

        oracle = Flaky()
        catalog = BndCatalog(layered, oracle=oracle)
        catalog.ensure_enriched()
        assert ("impl", "core") in catalog.oracle_edges()

        oracle.deps = {}
        oracle.explode = True
        with pytest.raises(RuntimeError, match="oracle crashed"):
            catalog.reanalyze()
        assert catalog.state is EnrichmentState.UNENRICHED
        assert ("impl", "core") in catalog.oracle_edges()

        oracle.explode = False
        deps = catalog.dependency_names("impl")
        assert catalog.state is EnrichmentState.ENRICHED
        assert ("core" in deps) == (("impl", "core") in catalog.oracle_edges())

        catalog.reanalyze()
        assert "core" not in catalog.dependency_names("impl")
        assert catalog.oracle_edges() == set()


# ── Cache ─────────────────────────────────────────────────────

class TestCache:
    def test_round_trip(self, layered, tmp_path):
        _age_descriptors(layered)
        cache = EdgeCache(tmp_path / "deps.cache")
        first = _catalog(layered, _layered_tool(), cache)
        first.ensure_enriched()
        assert cache.path.read_text() == "impl -> api\nimpl -> core\nimpl -> testutil\n"

        tool = _layered_tool()
        second = _catalog(layered, tool, cache)
        assert second.state is EnrichmentState.ENRICHED
        assert second.oracle_edges() == first.oracle_edges()
        assert second.get_required_project_paths(["impl"]) == first.get_required_project_paths(["impl"])
        assert tool.build_calls == []

    def test_stale_cache_ignored(self, layered, tmp_path):
        _age_descriptors(layered)
        cache = EdgeCache(tmp_path / "deps.cache")
        _catalog(layered, _layered_tool(), cache).ensure_enriched()

        newer = cache.mtime() + 100
        os.utime(layered / "util" / "bnd.bnd", (newer, newer))

        tool = _layered_tool()
        catalog = _catalog(layered, tool, cache)
        assert catalog.state is EnrichmentState.UNENRICHED
        assert catalog.oracle_edges() == set()
        catalog.get_required_project_paths(["impl"])
        assert len(tool.build_calls) == 7

    def test_malformed_lines_skipped(self, layered, tmp_path, caplog):
        _age_descriptors(layered)
        cache = EdgeCache(tmp_path / "deps.cache")
        cache.path.write_text("impl -> core\nthis is junk\nimpl -> ghost\n")
        with caplog.at_level(logging.WARNING, logger="bndgraph"):
            catalog = _catalog(layered, _layered_tool(), cache)
        assert "malformed" in caplog.text
        assert "this is junk" in caplog.text
        assert catalog.oracle_edges() == {("impl", "core")}

    def test_restore_without_oracle(self, layered, tmp_path):
        _age_descriptors(layered)
        cache = EdgeCache(tmp_path / "deps.cache")
        cache.path.write_text("api -> core\n")
        assert "core" in _catalog(layered, cache=cache).dependency_names("api")

    def test_unwritable_cache_is_a_warning(self, layered, tmp_path, caplog):
        blocker = tmp_path / "blocker"
        blocker.write_text("a file, not a directory")
        cache = EdgeCache(blocker / "deps.cache")
        with caplog.at_level(logging.WARNING, logger="bndgraph"):
            catalog = _catalog(layered, _layered_tool(), cache)
            catalog.ensure_enriched()
        assert catalog.state is EnrichmentState.ENRICHED
        assert "Could not save dependency cache" in caplog.text


# ── Queries ───────────────────────────────────────────────────

class TestFindProjects:
    @pytest.fixture
    def foos(self, workspace):
        for name in ("foobar", "foobaz", "barfoo", "other"):
            write_project(workspace, name)
        write_project(workspace, "short", bsn="com.acme.longname")
        return workspace

    def test_glob_matches(self, foos):
        assert _names(_catalog(foos).find_projects("*foo*")) == ["barfoo", "foobar", "foobaz"]

    def test_strict_no_match(self, foos):
        with pytest.raises(ProjectNotFoundError, match="nomatch"):
            _catalog(foos).find_projects("*nomatch*")

    def test_lenient_no_match(self, foos, caplog):
        with caplog.at_level(logging.WARNING, logger="bndgraph"):
            match = _catalog(foos).collect_projects(["*nomatch*"])
        assert match.paths == []
        assert match.unmatched == ["*nomatch*"]
        assert not match.complete
        assert "*nomatch*" in caplog.text

    def test_lenient_union(self, foos):
        match = _catalog(foos).collect_projects(["foo*", "*foo", "other"])
        assert _names(match.paths) == ["barfoo", "foobar", "foobaz", "other"]
        assert match.complete

    def test_matches_symbolic_name(self, foos):
        assert _names(_catalog(foos).find_projects("com.acme.*")) == ["short"]

    def test_deduplicated_by_root(self, foos):
        assert _names(_catalog(foos).find_projects("*")) == [
            "barfoo", "foobar", "foobaz", "other", "short",
        ]

    def test_does_not_enrich(self, foos):
        tool = FakeBuildTool()
        catalog = _catalog(foos, tool)
        catalog.find_projects("*foo*")
        catalog.collect_projects(["other"])
        assert tool.build_calls == []


class TestLeaves:
    def test_relative_to_subset(self, scenario):
        catalog = _catalog(scenario)
        subset = [scenario / n for n in ("A", "B", "cnf")]
        assert _names(catalog.get_leaves_of_subset(subset)) == ["cnf"]
        # A depends on cnf, which is outside this subset
        assert _names(catalog.get_leaves_of_subset([scenario / "A", scenario / "B"])) == ["A"]

    def test_leaf_property(self, layered):
        catalog = _catalog(layered, _layered_tool())
        subset = [layered / n for n in ("api", "impl", "core", "util", "testutil")]
        leaves = catalog.get_leaves_of_subset(subset)
        names = {p.name for p in subset}
        assert set(leaves) <= set(subset)
        for leaf in leaves:
            assert not (catalog.dependency_names(leaf.name) & names)
        assert _names(leaves) == ["core", "testutil", "util"]

    def test_limit(self, workspace):
        for name in ("c", "a", "b"):
            write_project(workspace, name)
        catalog = _catalog(workspace)
        subset = catalog.all_project_paths()
        assert _names(catalog.get_leaves_of_subset(subset, limit=2)) == ["a", "b"]
        assert _names(catalog.get_leaves_of_subset(subset)) == ["a", "b", "c"]

    @pytest.mark.parametrize("limit", [0, -1])
    def test_limit_must_be_positive(self, scenario, limit):
        with pytest.raises(ValueError):
            _catalog(scenario).get_leaves_of_subset([scenario / "A"], limit=limit)

    def test_unknown_path(self, scenario):
        with pytest.raises(ProjectNotFoundError):
            _catalog(scenario).get_leaves_of_subset([scenario / "ghost"])


class TestRequiredProjects:
    def test_includes_self(self, layered):
        catalog = _catalog(layered, _layered_tool())
        assert layered / "util" in catalog.get_required_project_paths(["util"])

    def test_dependencies_precede_dependents(self, layered):
        catalog = _catalog(layered, _layered_tool())
        order = _names(catalog.get_required_project_paths(["impl"]))
        assert set(order) == {"cnf", "build.image", "util", "api", "core", "testutil", "impl"}
        for name in order:
            for dep in catalog.dependency_names(name):
                assert order.index(dep) < order.index(name)
        assert order == ["cnf", "build.image", "core", "testutil", "util", "api", "impl"]

    def test_unknown_names_dropped(self, scenario):
        catalog = _catalog(scenario)
        assert catalog.get_required_project_paths(["ghost"]) == []
        assert _names(catalog.get_required_project_paths(["ghost", "A"])) == ["cnf", "build.image", "A"]

    def test_closure_subgraph(self, scenario):
        closure = _catalog(scenario).get_project_and_dependency_subgraph(["A"])
        assert {p.name for p in closure} == {"A", "cnf", "build.image"}

    def test_cycle_is_an_error(self, workspace):
        write_project(workspace, "x", buildpath="y")
        write_project(workspace, "y", buildpath="x")
        write_project(workspace, "z", buildpath="x")
        with pytest.raises(DependencyCycleError) as exc:
            _catalog(workspace).get_required_project_paths(["z"])
        assert exc.value.names == ["x", "y", "z"]


class TestDependents:
    def test_immediate_only(self, scenario):
        catalog = _catalog(scenario)
        assert _names(catalog.get_dependent_project_paths(["A"])) == ["B"]
        assert set(_names(catalog.get_dependent_project_paths(["cnf"]))) == {"A", "B", "build.image"}

    def test_never_includes_self(self, scenario):
        catalog = _catalog(scenario)
        for name in ("A", "B", "cnf", "build.image"):
            assert scenario / name not in catalog.get_dependent_project_paths([name])

    def test_deduplicated(self, scenario):
        paths = _catalog(scenario).get_dependent_project_paths(["A", "cnf"])
        assert len(paths) == len(set(paths))
        assert set(_names(paths)) == {"A", "B", "build.image"}

    def test_unknown_name(self, scenario):
        with pytest.raises(ProjectNotFoundError):
            _catalog(scenario).get_dependent_project_paths(["ghost"])

    def test_oracle_edges_count(self, layered):
        catalog = _catalog(layered, _layered_tool())
        assert _names(catalog.get_dependent_project_paths(["core"])) == ["impl"]


class TestTopologicalOrder:
    def test_orders_given_paths_only(self, scenario):
        catalog = _catalog(scenario)
        order = catalog.in_topological_order([scenario / "B", scenario / "A"])
        assert _names(order) == ["A", "B"]

    def test_name_tiebreak(self, layered):
        catalog = _catalog(layered)
        order = catalog.in_topological_order([layered / "testutil", layered / "core"])
        assert _names(order) == ["core", "testutil"]
