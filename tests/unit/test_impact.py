"""Tests for the impact module."""

from __future__ import annotations

from fire_diff.impact import ImpactEngine, State
from fire_diff.models import Endpoint, Seed

KEYS_PROJECT = {
    "src/keys.ts": 'export const KEYS = {\n  A: "a",\n  B: "b",\n};\n',
    "src/consumer1.ts": (
        "import { KEYS } from './keys';\n"
        "export const one = onCall(() => KEYS.A);\n"
    ),
    "src/consumer2.ts": (
        "import { KEYS } from './keys';\n"
        "export const two = onRequest((req, res) => res.send(KEYS.B));\n"
    ),
    "src/unrelated.ts": "export const three = onCall(() => KEYS.A);\n",
}

BARREL_PROJECT = {
    "src/a.ts": "export function foo() {}\nexport function baz() {}\n",
    "src/b.ts": "export { foo } from './a';\n",
    "src/c.ts": (
        "import { foo } from './b';\n"
        "export const useFoo = onCall(() => foo());\n"
    ),
}


def _names(endpoints: list[Endpoint]) -> list[str]:
    return sorted(e.name for e in endpoints)


class TestPropagation:
    def test_seed_that_is_endpoint(self, make_context) -> None:
        context = make_context({"src/index.ts": "export const api = onCall(() => 1);\n"})
        (endpoint,) = ImpactEngine(context).run([Seed("api", "src/index.ts")])
        assert endpoint == Endpoint("src/index.ts", "api", "onCall", "v2")

    def test_transitive_through_same_file(self, make_context) -> None:
        context = make_context({
            "src/utils.ts": (
                "export function helper() { return 1; }\n"
                "export function wrapper() { return helper(); }\n"
            ),
            "src/index.ts": (
                "import { wrapper } from './utils';\n"
                "export const api = functions.https.onCall(() => wrapper());\n"
            ),
        })
        engine = ImpactEngine(context)
        (endpoint,) = engine.run([Seed("helper", "src/utils.ts")])
        assert (endpoint.name, endpoint.kind, endpoint.version) == (
            "api",
            "functions.https.onCall",
            "v1",
        )
        assert {s.name for s in engine.affected()} == {"helper", "wrapper", "api"}

    def test_non_importing_file_is_not_affected(self, make_context) -> None:
        context = make_context(KEYS_PROJECT)
        endpoints = ImpactEngine(context).run([Seed("KEYS", "src/keys.ts")])
        assert _names(endpoints) == ["one", "two"]

    def test_property_granularity(self, make_context) -> None:
        context = make_context(KEYS_PROJECT)
        endpoints = ImpactEngine(context).run([Seed("KEYS.A", "src/keys.ts")])
        assert _names(endpoints) == ["one"]

    def test_no_seeds(self, make_context) -> None:
        context = make_context(KEYS_PROJECT)
        assert ImpactEngine(context).run([]) == []


class TestReExports:
    def test_named_reexport_propagates_listed_name(self, make_context) -> None:
        context = make_context(BARREL_PROJECT)
        engine = ImpactEngine(context)
        endpoints = engine.run([Seed("foo", "src/a.ts")])
        assert _names(endpoints) == ["useFoo"]
        assert engine.state(Seed("foo", "src/b.ts")) is State.DONE

    def test_named_reexport_prunes_other_names(self, make_context) -> None:
        context = make_context(BARREL_PROJECT)
        engine = ImpactEngine(context)
        assert engine.run([Seed("baz", "src/a.ts")]) == []
        assert engine.affected() == [Seed("baz", "src/a.ts")]

    def test_star_reexport_propagates_everything(self, make_context) -> None:
        project = dict(BARREL_PROJECT)
        project["src/b.ts"] = "export * from './a';\n"
        project["src/c.ts"] = (
            "import { baz } from './b';\n"
            "export const useBaz = onRequest((req, res) => baz());\n"
        )
        context = make_context(project)
        assert _names(ImpactEngine(context).run([Seed("baz", "src/a.ts")])) == ["useBaz"]

    def test_aliased_reexport_follows_exported_name(self, make_context) -> None:
        context = make_context({
            "src/a.ts": "export function foo() {}\n",
            "src/b.ts": "export { foo as bar } from './a';\n",
            "src/c.ts": (
                "import { bar } from './b';\n"
                "export const useBar = onCall(() => bar());\n"
            ),
        })
        engine = ImpactEngine(context)
        assert _names(engine.run([Seed("foo", "src/a.ts")])) == ["useBar"]
        assert engine.state(Seed("bar", "src/b.ts")) is State.DONE
        assert engine.state(Seed("foo", "src/b.ts")) is State.UNVISITED

    def test_named_and_star_barrels_side_by_side(self, make_context) -> None:
        project = dict(BARREL_PROJECT)
        project["src/c.ts"] = "export * from './a';\n"
        context = make_context(project)

        foo = ImpactEngine(context)
        foo.run([Seed("foo", "src/a.ts")])
        assert foo.state(Seed("foo", "src/b.ts")) is State.DONE
        assert foo.state(Seed("foo", "src/c.ts")) is State.DONE

        baz = ImpactEngine(context)
        baz.run([Seed("baz", "src/a.ts")])
        assert baz.state(Seed("baz", "src/c.ts")) is State.DONE
        assert baz.state(Seed("baz", "src/b.ts")) is State.UNVISITED
        assert baz.state(Seed("foo", "src/b.ts")) is State.UNVISITED


class TestEngineProperties:
    def test_cycle_terminates(self, make_context) -> None:
        context = make_context({
            "src/a.ts": "import { b } from './b';\nexport function a() { return b(); }\n",
            "src/b.ts": "import { a } from './a';\nexport function b() { return a(); }\n",
        })
        engine = ImpactEngine(context)
        assert engine.run([Seed("a", "src/a.ts")]) == []
        assert {s.key for s in engine.affected()} == {("src/a.ts", "a"), ("src/b.ts", "b")}
        assert all(r.state is State.DONE for r in engine.records.values())

    def test_same_file_cycle_terminates(self, make_context) -> None:
        context = make_context({
            "src/m.ts": "export function A() { return B(); }\nexport function B() { return A(); }\n",
        })
        for start in ("A", "B"):
            engine = ImpactEngine(context)
            assert engine.run([Seed(start, "src/m.ts")]) == []
            assert {s.key for s in engine.affected()} == {("src/m.ts", "A"), ("src/m.ts", "B")}
            assert all(r.state is State.DONE for r in engine.records.values())

    def test_idempotent(self, make_context) -> None:
        context = make_context(KEYS_PROJECT)
        seeds = [Seed("KEYS", "src/keys.ts")]
        first = ImpactEngine(context).run(seeds)
        second = ImpactEngine(context).run(seeds)
        assert first == second

    def test_rerun_on_same_engine_adds_nothing(self, make_context) -> None:
        context = make_context(KEYS_PROJECT)
        engine = ImpactEngine(context)
        first = engine.run([Seed("KEYS.A", "src/keys.ts")])
        assert engine.run([Seed("KEYS.A", "src/keys.ts")]) == first

    def test_monotonic(self, make_context) -> None:
        context = make_context(KEYS_PROJECT)
        small = ImpactEngine(context).run([Seed("KEYS.A", "src/keys.ts")])
        large = ImpactEngine(context).run(
            [Seed("KEYS.A", "src/keys.ts"), Seed("KEYS.B", "src/keys.ts")]
        )
        assert {e.key for e in small} <= {e.key for e in large}
        assert _names(large) == ["one", "two"]

    def test_endpoints_are_unique(self, make_context) -> None:
        context = make_context({
            "src/util.ts": "export const x = 1;\nexport const y = 2;\n",
            "src/index.ts": (
                "import { x, y } from './util';\n"
                "export const api = onCall(() => x + y);\n"
            ),
        })
        endpoints = ImpactEngine(context).run([Seed("x", "src/util.ts"), Seed("y", "src/util.ts")])
        assert _names(endpoints) == ["api"]

    def test_unvisited_state(self, make_context) -> None:
        context = make_context(KEYS_PROJECT)
        assert ImpactEngine(context).state(Seed("KEYS", "src/keys.ts")) is State.UNVISITED

    def test_direct_dependents_exclude_seed(self, make_context) -> None:
        context = make_context({"src/a.ts": "export function a() { return a(); }\n"})
        assert ImpactEngine(context).direct_dependents(Seed("a", "src/a.ts")) == []
