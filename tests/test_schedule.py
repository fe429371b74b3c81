import json

from app.documents.schedule import canonicalize_schedule, parse_schedule


def test_all_month_shapes_produce_the_same_list() -> None:
    entries = [
        {"descripcion": "a", "meses": [1, 2]},
        {"descripcion": "b", "meses": ["enero", "feb"]},
        {"descripcion": "c", "meses": "1,2"},
        {"descripcion": "d", "meses": "Febrero; Enero; enero"},
    ]
    result = canonicalize_schedule(entries)
    assert [item["meses"] for item in result] == [["Enero", "Febrero"]] * 4


def test_markers_are_regenerated() -> None:
    [entry] = canonicalize_schedule([{"descripcion": "Fase 1", "meses": [2, 1]}])
    assert entry["EneroImg"] == "X"
    assert entry["FebreroImg"] == "X"
    assert entry["MarzoImg"] == " "
    assert entry["meses_texto"] == "Enero, Febrero"
    assert entry["index"] == 1
    assert entry["actividad"] == "Fase 1"


def test_months_reconstructed_from_markers() -> None:
    [entry] = canonicalize_schedule([{"descripcion": "Pruebas", "MarzoImg": "X", "AbrilImg": " ", "junx": "x"}])
    assert entry["meses"] == ["Marzo", "Junio"]
    assert entry["junx"] == "X"
    assert "enex" not in entry


def test_empty_entries_are_dropped_and_indexed() -> None:
    result = canonicalize_schedule([
        {"descripcion": "", "meses": []},
        {"descripcion": "undefined", "meses": "null"},
        {"descripcion": "Documentación", "meses": [12, 13, 0]},
    ])
    assert len(result) == 1
    assert result[0]["meses"] == ["Diciembre"]
    assert result[0]["index"] == 1


def test_non_list_input_yields_empty_schedule() -> None:
    assert canonicalize_schedule(None) == []
    assert canonicalize_schedule("texto") == []


def test_parse_schedule_prefers_json_field() -> None:
    data = {
        "cronograma_json": json.dumps([{"descripcion": "A", "meses": [3]}]),
        "cronograma": [{"descripcion": "B"}],
    }
    assert parse_schedule(data) == [{"descripcion": "A", "meses": [3]}]
    assert parse_schedule({"cronograma": [{"descripcion": "B"}]}) == [{"descripcion": "B"}]
    assert parse_schedule({"cronograma_json": "{not json"}) == []
