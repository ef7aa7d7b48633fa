"""
Tests for view code normalization, extraction and deduplication.

The extractor works on foreign JSON, so besides the happy paths these tests
pin down which shapes are ignored.
"""
import pytest

from academico.auth.json_value import JsonArray, JsonNull, JsonObject, parse_json_value
from academico.auth.views import (
    ViewDescriptor,
    collect_views,
    dedupe_views,
    extract_views,
    has_any_view,
    normalize_view_code,
)


class TestNormalizeViewCode:
    def test_trims_and_uppercases(self):
        assert normalize_view_code("  cursos ") == "CURSOS"

    def test_empty_is_none(self):
        assert normalize_view_code("") is None
        assert normalize_view_code("   ") is None
        assert normalize_view_code(None) is None

    def test_numbers_print_like_json(self):
        assert normalize_view_code(5) == "5"
        assert normalize_view_code(5.0) == "5"
        assert normalize_view_code(parse_json_value(7.0)) == "7"


class TestParseJsonValue:
    def test_bool_is_not_a_number(self):
        parsed = parse_json_value([True, 1])
        assert isinstance(parsed, JsonArray)
        assert type(parsed.items[0]).__name__ == "JsonBool"
        assert type(parsed.items[1]).__name__ == "JsonNumber"

    def test_objects_keep_key_order(self):
        parsed = parse_json_value({"b": 1, "a": 2})
        assert isinstance(parsed, JsonObject)
        assert [key for key, _ in parsed] == ["b", "a"]

    def test_non_json_values_become_null(self):
        assert parse_json_value({1, 2}) == JsonNull()
        assert parse_json_value(float("nan")) == JsonNull()


def codes(views):
    return [view.code for view in views]


class TestExtractViews:
    def test_mixed_array_gets_sequential_ids(self):
        views = dedupe_views(extract_views(["CURSOS", {"codigo": "notas"}, {"code": "ROLES"}]))

        assert codes(views) == ["CURSOS", "NOTAS", "ROLES"]
        assert [view.id for view in views] == [1, 2, 3]
        assert [view.name for view in views] == ["CURSOS", "NOTAS", "ROLES"]

    def test_code_keys_are_tried_in_order(self):
        views = extract_views([
            {"code": "second", "codigo": "first"},
            {"permission": "fourth", "permiso": "third"},
            {"permission": "fifth"},
        ])
        assert codes(views) == ["FIRST", "THIRD", "FIFTH"]

    def test_record_without_code_is_dropped(self):
        views = extract_views([{"nombre": "Cursos"}, {"codigo": None}, {"codigo": "  "}, "NOTAS"])
        assert codes(views) == ["NOTAS"]
        assert views[0].id == 4

    def test_record_code_must_be_scalar(self):
        assert extract_views([{"codigo": {"nested": "X"}}, {"code": ["Y"]}, {"code": True}]) == []

    def test_record_fields(self):
        [view] = extract_views([
            {"vista_id": 42, "codigo": "auditoria", "label": "Auditoría", "descripcion": "Log"}
        ])
        assert view == ViewDescriptor(id=42, name="Auditoría", code="AUDITORIA", description="Log")

    def test_id_prefers_id_over_vista_id(self):
        [view] = extract_views([{"id": 3, "vista_id": 9, "codigo": "A"}])
        assert view.id == 3

    def test_non_integer_id_falls_back_to_index(self):
        [view] = extract_views([{"id": "7", "codigo": "A"}])
        assert view.id == 1

    def test_blank_name_and_description_fall_back(self):
        [view] = extract_views([{"codigo": "a", "nombre": "  ", "descripcion": ""}])
        assert view.name == "A"
        assert view.description is None

    @pytest.mark.parametrize("envelope", ["items", "data"])
    def test_envelopes_are_unwrapped(self, envelope):
        views = extract_views({envelope: ["cursos", {"codigo": "notas"}], "total": 2})
        assert codes(views) == ["CURSOS", "NOTAS"]

    def test_items_wins_over_data(self):
        views = extract_views({"data": ["DATA"], "items": ["ITEMS"]})
        assert codes(views) == ["ITEMS"]

    def test_map_values_are_bare_codes_with_position_ids(self):
        views = extract_views({"a": "cursos", "b": 12, "c": True, "d": None})
        assert codes(views) == ["CURSOS", "12"]
        assert [view.id for view in views] == [1, 2]

    def test_map_skips_role_keys(self):
        views = extract_views({"role": "ADMIN", "roles": ["DOCENTE"], "permisos": ["NOTAS"]})
        assert codes(views) == ["NOTAS"]

    def test_role_key_mentioning_permissions_is_kept(self):
        views = extract_views({"role_permissions": ["CURSOS"], "role_vistas": ["NOTAS"]})
        assert codes(views) == ["CURSOS", "NOTAS"]

    def test_map_recurses_only_into_view_like_objects(self):
        views = extract_views({
            "vistas_extra": {"items": [{"codigo": "alertas"}]},
            "permissions": {"reportes": "REPORTES"},
            "profile": {"codigo": "NOPE"},
        })
        assert codes(views) == ["ALERTAS", "REPORTES"]

    def test_role_context_shape(self):
        views = extract_views({
            "role": "admin",
            "role_id": 1,
            "permissions": [{"codigo": "CURSOS"}, {"codigo": "USUARIOS"}],
        })
        assert codes(views) == ["CURSOS", "USUARIOS"]

    @pytest.mark.parametrize("value", [None, True, False, "CURSOS", 5, {}, []])
    def test_scalars_and_empties_yield_nothing(self, value):
        assert extract_views(value) == []

    def test_extraction_keeps_duplicates(self):
        assert codes(extract_views(["a", "A"])) == ["A", "A"]


class TestDedupeViews:
    def test_later_duplicate_wins_but_keeps_first_position(self):
        views = dedupe_views(extract_views([
            {"codigo": "cursos", "descripcion": "old"},
            "NOTAS",
            {"code": "CURSOS", "descripcion": "new"},
        ]))

        assert codes(views) == ["CURSOS", "NOTAS"]
        assert views[0].description == "new"
        assert views[0].id == 3

    def test_missing_fields_are_filled(self):
        views = dedupe_views([
            ViewDescriptor(code=" notas "),
            ViewDescriptor(code="cursos", id=10, name="Cursos", description="  "),
        ])
        assert views == [
            ViewDescriptor(id=1, name="NOTAS", code="NOTAS"),
            ViewDescriptor(id=10, name="Cursos", code="CURSOS", description=None),
        ]

    def test_blank_codes_are_skipped(self):
        assert dedupe_views([ViewDescriptor(code=" ")]) == []

    def test_collect_views_merges_sources_in_order(self):
        views = collect_views([None, ["notas"], {"permisos": ["cursos", "NOTAS"]}])
        assert codes(views) == ["NOTAS", "CURSOS"]


def test_has_any_view_normalizes_requested_codes():
    views = dedupe_views(extract_views(["CURSOS_LEGACY"]))
    assert has_any_view(views, ["cursos", " cursos_legacy "])
    assert not has_any_view(views, ["CURSOS", None])
