"""Unit tests for the type graph model."""

from __future__ import annotations

import pytest

from schemagen.core.types import (
    ComponentCategory,
    NodeKind,
    asset_name_from_path,
    convert_reflector_output,
)


class TestAssetNameFromPath:
    @pytest.mark.parametrize(
        ("path", "expected"),
        [
            ("/Game/Characters/Hero.Hero_C", "Hero_C"),
            ("/Game/Maps/Arena", "Arena"),
            ("/Game/Characters/Hero.Hero_C:Mesh", "Mesh"),
            ("/Script/Engine.Actor", "Actor"),
        ],
    )
    def test_asset_name(self, path: str, expected: str) -> None:
        assert asset_name_from_path(path) == expected


class TestComponentCategory:
    def test_suffixes(self) -> None:
        assert ComponentCategory.STATE.suffix == ""
        assert ComponentCategory.OWNER_RESTRICTED.suffix == "OwnerOnly"
        assert ComponentCategory.TRANSFERABLE.suffix == "Handover"


class TestConvertReflectorOutput:
    def test_root_class(self, hero_node) -> None:
        assert hero_node.kind == NodeKind.CLASS
        assert hero_node.is_root
        assert hero_node.name == "Hero_C"
        assert hero_node.net_cull_distance == 22500.0
        assert [g.category for g in hero_node.field_groups()] == [
            ComponentCategory.STATE,
            ComponentCategory.OWNER_RESTRICTED,
            ComponentCategory.TRANSFERABLE,
        ]
        assert [s.name for s in hero_node.subobjects()] == ["Mesh"]

    def test_field_paths(self, hero_node) -> None:
        paths = [f.path for f in hero_node.fields_by_category()[ComponentCategory.STATE]]
        assert "/Game/Characters/Hero.Hero_C#data.Health" in paths
        mesh = hero_node.subobjects()[0]
        assert [f.path for f in mesh.fields_by_category()[ComponentCategory.STATE]] == [
            "/Game/Characters/Hero.Hero_C:Mesh#data.Scale"
        ]

    def test_subobject_class_path(self, hero_node, build_node, build_entry) -> None:
        assert hero_node.class_path is None
        assert hero_node.subobjects()[0].class_path == "/Script/Engine.StaticMeshComponent"
        node = build_node("/Game/T.T", subobjects=[build_entry("/Game/T.T:Arm", kind="subobject")])
        assert node.subobjects()[0].class_path == "/Game/T.T:Arm"

    def test_nested_fields_are_flattened(self, build_node) -> None:
        node = build_node(
            "/Game/Thing.Thing",
            data=[
                {
                    "name": "Stats",
                    "fields": [
                        {"name": "Max", "type": "float"},
                        {"name": "Inner", "fields": [{"name": "Value", "type": "int32"}]},
                    ],
                },
                "Count",
            ],
        )
        flat = node.fields_by_category()[ComponentCategory.STATE]
        assert [f.chain for f in flat] == [["Stats", "Max"], ["Stats", "Inner", "Value"], ["Count"]]
        assert [f.field_type for f in flat] == ["float", "int32", "uint32"]

    def test_categories_with_fields_skips_empty_groups(self, build_node) -> None:
        node = build_node("/Game/Thing.Thing", handover=["A"], data=["B"])
        assert node.categories_with_fields() == [
            ComponentCategory.STATE,
            ComponentCategory.TRANSFERABLE,
        ]

    def test_defaults(self) -> None:
        node = convert_reflector_output({"path": "/Game/Thing.Thing_C"})
        assert node.name == "Thing_C"
        assert node.kind == NodeKind.CLASS
        assert node.spatial_type is True
        assert node.editor_only is False
        assert node.children == []

    def test_subobject_class(self, build_node) -> None:
        node = build_node("/Game/Gun.Gun_C", kind="subobject", data=["Ammo"])
        assert node.kind == NodeKind.SUBOBJECT
        assert not node.is_root

    def test_rejects_field_kind(self) -> None:
        with pytest.raises(ValueError):
            convert_reflector_output({"path": "/Game/X.X", "kind": "field"})
