"""Shared fixtures: a throwaway bnd workspace and logger isolation."""

import logging
from pathlib import Path

import pytest


def write_project(workspace: Path, name: str, **headers) -> Path:
    """Create ``workspace/name/bnd.bnd`` from keyword headers.

    Keyword names map to bnd headers: ``buildpath`` -> ``-buildpath``,
    ``testpath`` -> ``-testpath``, ``dependson`` -> ``-dependson``,
    ``nobundles`` -> ``-nobundles``, ``bsn`` -> ``Bundle-SymbolicName``,
    ``publish_disabled`` -> ``publish.wlp.jar.disabled``.
    """
    keys = {
        "buildpath": "-buildpath",
        "testpath": "-testpath",
        "dependson": "-dependson",
        "nobundles": "-nobundles",
        "bsn": "Bundle-SymbolicName",
        "publish_disabled": "publish.wlp.jar.disabled",
    }
    root = workspace / name
    root.mkdir(parents=True, exist_ok=True)
    lines = [f"{keys.get(k, k)}: {v}" for k, v in headers.items()]
    (root / "bnd.bnd").write_text("\n".join(lines) + "\n")
    return root


class FakeBuildTool:
    """Build tool answering from dicts and counting how often it is asked."""

    def __init__(self, build=None, test=None, failing=()):
        self.build = build or {}
        self.test = test or {}
        self.failing = set(failing)
        self.build_calls: list[str] = []
        self.test_calls: list[str] = []

    def build_dependencies(self, name):
        self.build_calls.append(name)
        if name in self.failing:
            raise RuntimeError(f"bnd exploded on {name}")
        return list(self.build.get(name, []))

    def test_dependencies(self, name):
        self.test_calls.append(name)
        return list(self.test.get(name, []))


@pytest.fixture
def workspace(tmp_path):
    ws = tmp_path / "ws"
    ws.mkdir()
    return ws


@pytest.fixture
def scenario(workspace):
    """cnf, build.image, A (needs cnf) and B (needs A, produces no bundle)."""
    write_project(workspace, "cnf")
    write_project(workspace, "build.image")
    write_project(workspace, "A", buildpath="cnf")
    write_project(workspace, "B", buildpath="A", nobundles="true")
    return workspace


@pytest.fixture(autouse=True)
def reset_package_logger():
    log = logging.getLogger("bndgraph")
    level, handlers = log.level, list(log.handlers)
    yield
    log.setLevel(level)
    log.handlers[:] = handlers
