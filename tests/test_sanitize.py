from app.documents.sanitize import (
    collapse_whitespace,
    normalize_placeholder,
    sanitize_data,
    scrub_tokens,
    scrub_tokens_deep,
)


def test_sanitize_data_blanks_placeholder_fields_at_any_depth() -> None:
    raw = {
        "nombre": "  Juan   Pérez ",
        "empresa": {"telefono": "undefined", "ciudad": "NULL"},
        "lista": [None, " null ", "ok"],
        "numero": 3,
    }
    assert sanitize_data(raw) == {
        "nombre": "Juan Pérez",
        "empresa": {"telefono": "", "ciudad": ""},
        "lista": ["", "", "ok"],
        "numero": 3,
    }


def test_sanitize_data_keeps_line_breaks() -> None:
    assert sanitize_data("uno   dos\r\n  tres\tcuatro  ") == "uno dos\ntres cuatro"
    assert collapse_whitespace("a\r\nb") == "a\nb"


def test_normalize_placeholder_strips_leading_tokens() -> None:
    assert normalize_placeholder("undefined: Desarrollar un sistema") == "Desarrollar un sistema"
    assert normalize_placeholder("null - undefined, texto") == "texto"
    assert normalize_placeholder("Undefined") == ""
    assert normalize_placeholder(None) == ""
    assert normalize_placeholder(5) == 5


def test_scrub_tokens_removes_embedded_tokens() -> None:
    assert scrub_tokens("Calle 5 undefined, Col. Centro") == "Calle 5 Col. Centro"
    assert scrub_tokens(None) == ""


def test_scrub_tokens_deep_leaves_clean_strings_untouched() -> None:
    payload = {"EneroImg": " ", "texto": "Tel: null", "items": ["a", "undefined b"]}
    result = scrub_tokens_deep(payload)
    assert result["EneroImg"] == " "
    assert result["texto"] == "Tel:"
    assert result["items"] == ["a", "b"]
