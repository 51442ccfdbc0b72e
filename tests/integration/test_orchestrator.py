"""Integration tests for full generation passes.

Covers: database loading and reset, discovery, validation, emission,
compilation through a fake compiler script, and atomic persistence.
"""

from __future__ import annotations

import hashlib
import json
import os
from pathlib import Path

import pytest

from schemagen.core.database import RootClassSchema, SchemaDatabase, SchemaDatabaseStore
from schemagen.core.discovery import DiscoveryListener
from schemagen.core.orchestrator import GenerationOrchestrator, PassState
from schemagen.core.types import ComponentCategory

needs_non_root = pytest.mark.skipif(
    hasattr(os, "geteuid") and os.geteuid() == 0,
    reason="file permissions are not enforced for root",
)


def _schema_files(config) -> dict[str, str]:
    root = Path(config.schema_output_dir)
    return {
        str(path.relative_to(root)): path.read_text(encoding="utf-8")
        for path in sorted(root.rglob("*.schema"))
    }


def _load(config) -> SchemaDatabase:
    return SchemaDatabaseStore(config.database_path).load()


def _assignment_tuples(database: SchemaDatabase) -> list[tuple[str, str, int]]:
    return [(a.path, a.category.value, a.component_id) for a in database.assignments()]


@pytest.fixture
def graph(build_node, hero_node):
    return [
        hero_node,
        build_node("/Game/Props/Door.Door_C", data=["Open"], net_cull_distance=10000.0),
        build_node("/Game/Items/Gun.Gun_C", kind="subobject", data=["Ammo"], owner_only=["Owner"]),
    ]


class TestSuccessfulPass:
    def test_first_run(self, config, graph, reflector_factory) -> None:
        reflector = reflector_factory(graph, levels=["/Game/Maps/Arena"])
        result = GenerationOrchestrator(config, reflector).run()

        assert result.success, result.errors
        assert result.state == PassState.DONE
        assert result.metadata["class_count"] == 3
        assert result.metadata["files_written"] == 5

        files = _schema_files(config)
        assert sorted(files) == [
            "DoorC.schema",
            "HeroC.schema",
            os.path.join("NetCullDistance", "ncdcomponents.schema"),
            os.path.join("Sublevels", "sublevels.schema"),
            os.path.join("Subobjects", "GunC.schema"),
        ]

        database = _load(config)
        assert database.schema_descriptor_hash == hashlib.sha256(b"compiled descriptor").hexdigest()
        ids = database.all_component_ids()
        assert len(ids) == len(set(ids))
        assert database.next_available_component_id == 10000 + len(ids)

    def test_classes_are_processed_in_path_order(self, config, graph, reflector_factory) -> None:
        GenerationOrchestrator(config, reflector_factory(list(reversed(graph)))).run()
        database = _load(config)

        # /Game/Characters < /Game/Items < /Game/Props
        assert database.root_classes["/Game/Characters/Hero.Hero_C"].components[
            ComponentCategory.STATE
        ] == 10000
        assert database.subobject_classes["/Game/Items/Gun.Gun_C"].dynamic_slots[0] == {
            ComponentCategory.STATE: 10004,
            ComponentCategory.OWNER_RESTRICTED: 10005,
        }
        assert database.root_classes["/Game/Props/Door.Door_C"].components == {
            ComponentCategory.STATE: 10010
        }

    def test_rerun_is_byte_identical(self, config, graph, reflector_factory) -> None:
        reflector = reflector_factory(graph, levels=["/Game/Maps/Arena"])
        assert GenerationOrchestrator(config, reflector).run().success
        files = _schema_files(config)
        database_bytes = Path(config.database_path).read_bytes()

        assert GenerationOrchestrator(config, reflector).run().success
        assert _schema_files(config) == files
        assert Path(config.database_path).read_bytes() == database_bytes

    def test_state_sequence(self, config, graph, reflector_factory) -> None:
        states: list[PassState] = []
        GenerationOrchestrator(
            config, reflector_factory(graph), on_state_change=states.append
        ).run()
        assert states == [
            PassState.LOADING,
            PassState.DISCOVERING,
            PassState.VALIDATING,
            PassState.EMITTING,
            PassState.COMPILING,
            PassState.PERSISTING,
            PassState.DONE,
        ]

    def test_skip_compile_keeps_previous_hash(self, make_config, graph, reflector_factory) -> None:
        config = make_config()
        reflector = reflector_factory(graph)
        GenerationOrchestrator(config, reflector).run()
        previous = _load(config).schema_descriptor_hash

        result = GenerationOrchestrator(make_config(skip_compile=True), reflector).run()

        assert result.success
        assert _load(config).schema_descriptor_hash == previous

    def test_unsupported_classes_are_skipped(self, config, build_node, reflector_factory) -> None:
        graph = [
            build_node("/Game/A.A", data=["X"]),
            build_node("/Game/B.B", data=["X"], editor_only=True),
            build_node("/Game/C.REINST_C", name="REINST_C", data=["X"]),
        ]
        result = GenerationOrchestrator(config, reflector_factory(graph)).run()
        assert result.metadata["class_count"] == 1
        assert [i.class_path for i in _load(config).identities()] == ["/Game/A.A"]


class TestBatching:
    def test_batch_size_does_not_change_assignments(
        self, make_config, build_node, reflector_factory, tmp_path: Path
    ) -> None:
        graph = [
            build_node(
                f"/Game/Gen/C{i:03d}.Thing_{i % 7}",
                name=f"Thing_{i % 7}",
                data=["Value"],
                handover=["Extra"] if i % 3 == 0 else None,
                net_cull_distance=float(1000 * (i % 4)),
            )
            for i in range(250)
        ]
        outcomes = []
        for batch_size in (1, 100, 1000):
            config = make_config(
                root=tmp_path / f"batch{batch_size}", batch_size=batch_size, skip_compile=True
            )
            result = GenerationOrchestrator(config, reflector_factory(graph)).run()
            assert result.success, result.errors
            database = _load(config)
            outcomes.append(
                (
                    _assignment_tuples(database),
                    database.identity_map(),
                    database.net_cull_distance_to_component_id,
                    _schema_files(config),
                )
            )

        assert outcomes[0] == outcomes[1] == outcomes[2]


class TestIdStability:
    def test_no_reuse_after_remove_and_re_add(self, config, build_node, reflector_factory) -> None:
        a = build_node("/Game/A.A", data=["X"])
        b = build_node("/Game/B.B", data=["X"], owner_only=["Y"])
        c = build_node("/Game/C.C", data=["X"])

        GenerationOrchestrator(config, reflector_factory([a, b])).run()
        b_ids = set(_load(config).root_classes["/Game/B.B"].components.values())

        GenerationOrchestrator(config, reflector_factory([a, c])).run()
        database = _load(config)
        c_ids = set(database.root_classes["/Game/C.C"].components.values())
        assert not b_ids & c_ids
        assert "/Game/B.B" in database.root_classes

        GenerationOrchestrator(config, reflector_factory([a, b, c])).run()
        database = _load(config)
        assert set(database.root_classes["/Game/B.B"].components.values()) == b_ids
        ids = database.all_component_ids()
        assert len(ids) == len(set(ids))

    def test_new_class_colliding_with_persisted_name(
        self, config, build_node, reflector_factory
    ) -> None:
        GenerationOrchestrator(
            config, reflector_factory([build_node("/Game/B.FooBar", data=["X"])])
        ).run()

        result = GenerationOrchestrator(
            config,
            reflector_factory(
                [
                    build_node("/Game/A.Foo_Bar", data=["X"]),
                    build_node("/Game/B.FooBar", data=["X"]),
                ]
            ),
        ).run()

        assert result.success
        assert _load(config).identity_map() == {
            "/Game/A.Foo_Bar": "FooBar1",
            "/Game/B.FooBar": "FooBar",
        }
        assert any("FooBar" in warning for warning in result.warnings)


class TestFailures:
    def test_validation_failure_writes_nothing(self, config, build_node, reflector_factory) -> None:
        graph = [build_node("/Game/A.A", data=["X"]), build_node("/Game/X.123Bad", data=["X"])]
        result = GenerationOrchestrator(config, reflector_factory(graph)).run()

        assert not result.success
        assert result.state == PassState.FAILED
        assert result.metadata["failed_state"] == "validating"
        assert any("123Bad" in error for error in result.errors)
        assert not Path(config.schema_output_dir).exists()
        assert not Path(config.database_path).exists()

    def test_validation_failure_keeps_database(
        self, config, build_node, reflector_factory
    ) -> None:
        GenerationOrchestrator(config, reflector_factory([build_node("/Game/A.A", data=["X"])])).run()
        before = Path(config.database_path).read_bytes()

        result = GenerationOrchestrator(
            config, reflector_factory([build_node("/Game/A.A", data=["my_x", "myX"])])
        ).run()

        assert not result.success
        assert Path(config.database_path).read_bytes() == before

    def test_compiler_failure_leaves_database_unchanged(
        self, make_config, failing_compiler, build_node, reflector_factory
    ) -> None:
        config = make_config()
        GenerationOrchestrator(config, reflector_factory([build_node("/Game/A.A", data=["X"])])).run()
        before = Path(config.database_path).read_bytes()

        failing = make_config(compiler_executable=str(failing_compiler))
        graph = [build_node("/Game/A.A", data=["X"]), build_node("/Game/B.B", data=["X"])]
        result = GenerationOrchestrator(failing, reflector_factory(graph)).run()

        assert not result.success
        assert result.metadata["failed_state"] == "compiling"
        assert "code 2" in result.errors[0]
        assert Path(config.database_path).read_bytes() == before
        # Emitted text stays on disk for inspection.
        assert "B.schema" in _schema_files(config)

    @needs_non_root
    def test_read_only_database_is_fatal(self, config, build_node, reflector_factory) -> None:
        reflector = reflector_factory([build_node("/Game/A.A", data=["X"])])
        GenerationOrchestrator(config, reflector).run()
        path = Path(config.database_path)
        path.chmod(0o444)
        try:
            result = GenerationOrchestrator(config, reflector).run()
        finally:
            path.chmod(0o644)

        assert not result.success
        assert result.metadata["failed_state"] == "loading"
        assert "read only" in result.errors[0]


class TestDatabaseRecovery:
    def _write(self, config, payload: str) -> None:
        path = Path(config.database_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(payload, encoding="utf-8")

    def test_corrupt_database_is_reset(self, config, build_node, reflector_factory) -> None:
        self._write(config, "{ this is not json")
        result = GenerationOrchestrator(
            config, reflector_factory([build_node("/Game/A.A", data=["X"])])
        ).run()

        assert result.success
        assert any("Unusable schema database" in w for w in result.warnings)
        assert _load(config).root_classes["/Game/A.A"].components == {
            ComponentCategory.STATE: 10000
        }

    def test_stale_database_is_reset(self, config, build_node, reflector_factory) -> None:
        stale = SchemaDatabase(
            root_classes={"/Game/Old.Old": RootClassSchema("Old", {ComponentCategory.STATE: 10000})}
        )
        self._write(config, json.dumps(stale.to_dict()))

        result = GenerationOrchestrator(
            config, reflector_factory([build_node("/Game/A.A", data=["X"])])
        ).run()

        assert result.success
        assert any("Outdated schema database" in w for w in result.warnings)
        assert "/Game/Old.Old" not in _load(config).root_classes

    def test_explicit_reset(self, config, build_node, reflector_factory) -> None:
        a = build_node("/Game/A.A", data=["X"])
        b = build_node("/Game/B.B", data=["X"])
        GenerationOrchestrator(config, reflector_factory([a, b])).run()

        result = GenerationOrchestrator(config, reflector_factory([b])).run(reset=True)

        assert result.success
        database = _load(config)
        assert list(database.root_classes) == ["/Game/B.B"]
        assert database.root_classes["/Game/B.B"].components[ComponentCategory.STATE] == 10000

    def test_failed_reset_keeps_database(
        self, make_config, failing_compiler, build_node, reflector_factory
    ) -> None:
        config = make_config()
        a = build_node("/Game/A.A", data=["X"])
        GenerationOrchestrator(config, reflector_factory([a])).run()
        before = Path(config.database_path).read_bytes()

        invalid = reflector_factory([build_node("/Game/X.123Bad", data=["X"])])
        result = GenerationOrchestrator(config, invalid).run(reset=True)
        assert result.metadata["failed_state"] == "validating"
        assert Path(config.database_path).read_bytes() == before

        failing = make_config(compiler_executable=str(failing_compiler))
        result = GenerationOrchestrator(failing, reflector_factory([a])).run(reset=True)
        assert result.metadata["failed_state"] == "compiling"
        assert Path(config.database_path).read_bytes() == before


class TestDiscovery:
    def test_listener_candidates_are_resolved(self, config, build_node, reflector_factory) -> None:
        late = build_node("/Game/Late.Late", data=["X"])
        listener = DiscoveryListener()
        listener.on_candidate_created("/Game/Late.Late")
        listener.on_candidate_created("/Game/Ghost.Ghost")

        result = GenerationOrchestrator(
            config, reflector_factory([], discoverable=[late]), listener=listener
        ).run()

        assert result.success
        assert result.metadata["class_count"] == 1
        assert any("/Game/Ghost.Ghost" in w for w in result.warnings)
        assert "/Game/Late.Late" in _load(config).root_classes

    def test_listener_is_stopped_after_discovery(
        self, config, build_node, reflector_factory
    ) -> None:
        listener = DiscoveryListener()
        GenerationOrchestrator(
            config, reflector_factory([build_node("/Game/A.A", data=["X"])]), listener=listener
        ).run()

        listener.on_candidate_created("/Game/Late.Late")
        assert len(listener) == 0


class TestSubobjectOwnership:
    def test_attached_subobject_ids_map_to_subobject_class(
        self, config, hero_node, reflector_factory
    ) -> None:
        GenerationOrchestrator(config, reflector_factory([hero_node])).run()

        database = _load(config)
        mesh = database.root_classes["/Game/Characters/Hero.Hero_C"].subobjects[
            "/Game/Characters/Hero.Hero_C:Mesh"
        ]
        owners = database.component_id_to_class_path()
        assert mesh.class_path == "/Script/Engine.StaticMeshComponent"
        assert owners[mesh.components[ComponentCategory.STATE]] == mesh.class_path
        assert owners[10000] == "/Game/Characters/Hero.Hero_C"
