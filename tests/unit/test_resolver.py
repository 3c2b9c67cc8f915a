"""Tests for binary name resolution."""

import pytest

from fleetmake.resolver import resolve
from fleetmake.scanner import EntryPoint, RootKind


def services(*paths):
    return [EntryPoint(RootKind.SERVICE, tuple(p.split("/"))) for p in paths]


def tools(*paths):
    return [EntryPoint(RootKind.TOOL, tuple(p.split("/"))) for p in paths]


SERVICES = services("api", "rpc/user", "rpc/msg")
TOOLS = tools("seq", "check")


@pytest.mark.unit
def test_empty_request_resolves_everything():
    resolution = resolve([], SERVICES, TOOLS)

    assert resolution.services == SERVICES
    assert resolution.tools == TOOLS
    assert resolution.unresolved == []


@pytest.mark.unit
def test_names_match_leaf_directory_only():
    resolution = resolve(["user", "seq"], SERVICES, TOOLS)

    assert [str(e) for e in resolution.services] == ["rpc/user"]
    assert [str(e) for e in resolution.tools] == ["seq"]


@pytest.mark.unit
def test_full_path_does_not_match():
    resolution = resolve(["rpc/user"], SERVICES, TOOLS)

    assert resolution.is_empty
    assert resolution.unresolved == ["rpc/user"]


@pytest.mark.unit
def test_unknown_names_are_reported_without_aborting():
    resolution = resolve(["ghost", "api", "phantom", "check"], SERVICES, TOOLS)

    assert [e.leaf_name for e in resolution.services] == ["api"]
    assert [e.leaf_name for e in resolution.tools] == ["check"]
    assert resolution.unresolved == ["ghost", "phantom"]


@pytest.mark.unit
def test_service_root_wins_over_tool_root():
    resolution = resolve(["api"], SERVICES, tools("api"))

    assert [e.root_kind for e in resolution.services] == [RootKind.SERVICE]
    assert resolution.tools == []


@pytest.mark.unit
def test_repeated_names_resolve_once():
    resolution = resolve(["api", "api", "seq", "seq"], SERVICES, TOOLS)

    assert len(resolution.services) == 1
    assert len(resolution.tools) == 1


@pytest.mark.unit
def test_duplicate_leaf_names_keep_first_path():
    duplicated = services("a/worker", "b/worker")

    resolution = resolve([], duplicated, [])

    assert [str(e) for e in resolution.services] == ["a/worker"]
