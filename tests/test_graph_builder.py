"""Tests for candidate graph construction."""

import asyncio

from resolution.graph_builder import GraphBuilder
from resolution.manifest import parse_repository
from resolution.models import Constraint, Dependency, ModuleDescriptor, ModuleIdentity, ModuleVersion
from resolution.platforms import PlatformKind, PlatformRule, PlatformRules
from resolution.provider import InMemoryMetadataProvider


def repository(*modules):
    return parse_repository({"modules": list(modules)})


def build(roots, provider, builder=None, **kwargs):
    return asyncio.run((builder or GraphBuilder()).build(roots, provider, **kwargs))


def mv(token):
    return ModuleVersion.parse(token)


class TrackingProvider(InMemoryMetadataProvider):
    """In-memory provider that records how many lookups overlap."""

    def __init__(self, descriptors):
        super().__init__(descriptors)
        self.in_flight = 0
        self.max_in_flight = 0

    async def get_descriptor(self, module):
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(0.01)
            return await super().get_descriptor(module)
        finally:
            self.in_flight -= 1


class TestGraphBuilder:
    """Transitive expansion."""

    def test_transitive_expansion(self):
        provider = repository(
            {"module": "g:a:1.0", "dependencies": ["g:b:1.0"]},
            {"module": "g:b:1.0", "dependencies": ["g:c:2.0"]},
            {"module": "g:c:2.0"},
        )
        graph = build([Dependency.of("g:a:1.0")], provider)
        assert set(graph.nodes) == {mv("g:a:1.0"), mv("g:b:1.0"), mv("g:c:2.0")}
        assert [d.target for d in graph.edges_of(mv("g:b:1.0"))] == [ModuleIdentity("g", "c")]
        assert not graph.failures

    def test_each_request_looked_up_once(self):
        provider = repository(
            {"module": "g:a:1.0", "dependencies": ["g:c:1.0"]},
            {"module": "g:b:1.0", "dependencies": ["g:c:1.0"]},
            {"module": "g:c:1.0"},
        )
        build([Dependency.of("g:a:1.0"), Dependency.of("g:b:1.0")], provider)
        assert provider.lookup_count == 3

    def test_all_requested_versions_are_candidates(self):
        provider = repository(
            {"module": "g:a:1.0", "dependencies": ["g:c:1.0"]},
            {"module": "g:b:1.0", "dependencies": ["g:c:2.0"]},
            {"module": "g:c:1.0"},
            {"module": "g:c:2.0"},
        )
        graph = build([Dependency.of("g:a:1.0"), Dependency.of("g:b:1.0")], provider)
        assert graph.versions_of(ModuleIdentity("g", "c")) == ["1.0", "2.0"]

    def test_dynamic_version_is_picked(self):
        provider = repository({"module": "g:a:1.0"}, {"module": "g:a:1.5"}, {"module": "g:a:2.0"})
        dep = Dependency.of("g:a:[1.0,2.0)")
        graph = build([dep], provider)
        assert graph.pick_for(dep.target, dep.requested) == mv("g:a:1.5")

    def test_failures_recorded_and_walk_continues(self):
        provider = repository(
            {"module": "g:a:1.0", "dependencies": ["g:missing:1.0"]},
            {"module": "g:b:1.0"},
        )
        graph = build([Dependency.of("g:a:1.0"), Dependency.of("g:b:1.0")], provider)
        assert mv("g:b:1.0") in graph.nodes
        failure = graph.failure_for(ModuleIdentity("g", "missing"), Dependency.of("g:missing:1.0").requested)
        assert failure is not None
        assert failure.requested == "1.0"

    def test_cycles_terminate(self):
        provider = repository(
            {"module": "g:a:1.0", "dependencies": ["g:b:1.0"]},
            {"module": "g:b:1.0", "dependencies": ["g:a:1.0"]},
        )
        graph = build([Dependency.of("g:a:1.0")], provider)
        assert set(graph.nodes) == {mv("g:a:1.0"), mv("g:b:1.0")}

    def test_self_edge_is_ignored(self):
        provider = repository({"module": "g:a:1.0", "dependencies": ["g:a:2.0"]}, {"module": "g:a:2.0"})
        graph = build([Dependency.of("g:a:1.0")], provider)
        assert set(graph.nodes) == {mv("g:a:1.0")}

    def test_lookups_run_concurrently_within_bound(self):
        provider = TrackingProvider(ModuleDescriptor.from_dict({"module": f"g:m{i}:1.0"}) for i in range(6))
        roots = [Dependency.of(f"g:m{i}:1.0") for i in range(6)]
        build(roots, provider, builder=GraphBuilder(max_concurrency=2))
        assert provider.max_in_flight == 2


class TestExclusions:
    """Exclusions prune descendants of the excluding edge only."""

    def test_excluded_module_not_fetched(self):
        provider = repository(
            {"module": "g:a:1.0", "dependencies": ["g:b:1.0"]},
            {"module": "g:b:1.0", "dependencies": ["x:c:1.0"]},
            {"module": "x:c:1.0"},
        )
        graph = build([Dependency.of("g:a:1.0", exclusions=("x:c",))], provider)
        assert mv("x:c:1.0") not in graph.nodes
        assert provider.lookup_count == 2

    def test_module_kept_when_another_path_does_not_exclude(self):
        provider = repository(
            {"module": "g:a:1.0", "dependencies": ["g:b:1.0"]},
            {"module": "g:d:1.0", "dependencies": ["g:b:1.0"]},
            {"module": "g:b:1.0", "dependencies": ["x:c:1.0"]},
            {"module": "x:c:1.0"},
        )
        roots = [Dependency.of("g:a:1.0", exclusions=("x",)), Dependency.of("g:d:1.0")]
        graph = build(roots, provider)
        assert mv("x:c:1.0") in graph.nodes


class TestConstraintsAndPlatforms:
    """Constraints and published platforms during the build."""

    def test_constraint_on_absent_module_is_not_fetched(self):
        provider = repository({"module": "g:a:1.0"}, {"module": "g:z:1.0"})
        graph = build([Dependency.of("g:a:1.0")], provider, constraints=frozenset({Constraint.of("g:z:1.0")}))
        assert mv("g:z:1.0") not in graph.nodes

    def test_constraint_on_present_module_is_fetched(self):
        provider = repository(
            {"module": "g:a:1.0", "dependencies": ["g:b:1.0"]},
            {"module": "g:b:1.0"},
            {"module": "g:b:2.0"},
        )
        graph = build([Dependency.of("g:a:1.0")], provider, constraints=frozenset({Constraint.of("g:b:2.0")}))
        assert mv("g:b:2.0") in graph.nodes

    def test_published_platform_gets_implicit_edge(self):
        provider = repository(
            {"module": "org.pub:x:1.0"},
            {"module": "org.pub:bom:1.0", "category": "platform", "constraints": ["org.pub:y:1.0"]},
        )
        rules = PlatformRules([
            PlatformRule("org.pub", "*", ModuleIdentity("org.pub", "bom"), PlatformKind.PUBLISHED_TRUSTED),
        ])
        graph = build([Dependency.of("org.pub:x:1.0")], provider, rules=rules)
        assert mv("org.pub:bom:1.0") in graph.nodes
        (edge,) = graph.edges_of(mv("org.pub:x:1.0"))
        assert edge.lenient

    def test_previous_snapshot_lookups_are_reused(self):
        provider = repository({"module": "g:a:1.0", "dependencies": ["g:b:1.0"]}, {"module": "g:b:1.0"})
        roots = [Dependency.of("g:a:1.0")]
        first = build(roots, provider)
        assert provider.lookup_count == 2
        second = build(roots, provider, previous=first)
        assert provider.lookup_count == 2
        assert set(second.nodes) == set(first.nodes)
