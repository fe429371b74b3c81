"""
Turns raw form data into the canonical payload handed to the template renderer.

Order matters: whole-field sanitation first, then the domain lookups and schedule,
then date formatting, and the embedded-token scrub last. Never raises: on unexpected
input the payload degrades to empty values instead of aborting generation.
"""

import json
import logging
from datetime import datetime
from typing import Any, Dict, Mapping, Optional

from app.documents.catalogs import (
    compute_option_flags,
    compute_sector_flags,
    normalize_option,
    normalize_period,
)
from app.documents.dates import format_dates_deep
from app.documents.sanitize import normalize_placeholder, sanitize_data, scrub_tokens, scrub_tokens_deep
from app.documents.schedule import canonicalize_schedule, parse_schedule

logger = logging.getLogger(__name__)

TEXT_KEYS = (
    "delimitacion",
    "justificacion",
    "descripcion_actividades",
    "actividades_empresa",
    "objetivos",
    "nombre_proyecto",
    "giro",
    "domicilio_telefono",
    "nombre_firmante",
    "puesto_firmante",
)


def _nested(data: Mapping[str, Any], key: str) -> Dict[str, Any]:
    value = data.get(key)
    return value if isinstance(value, dict) else {}


def _first(*values: Any) -> Any:
    for value in values:
        if value:
            return value
    return ""


def _clean_text(value: Any) -> str:
    return scrub_tokens(normalize_placeholder(value))


def ensure_signer_defaults(data: Dict[str, Any]) -> Dict[str, Any]:
    """Fill the company signer from whichever source field the form or company row provided."""
    empresa = _nested(data, "empresa")
    nombre = _clean_text(_first(
        data.get("nombre_firmante"),
        empresa.get("firmante_nombre"),
        empresa.get("firmante"),
        data.get("empresa_firmante_nombre"),
        data.get("empresa_titular_nombre"),
    ))
    puesto = _clean_text(_first(
        data.get("puesto_firmante"),
        data.get("cargo_firmante"),
        empresa.get("firmante_puesto"),
        data.get("empresa_firmante_puesto"),
        data.get("empresa_titular_puesto"),
    ))
    data["nombre_firmante"] = nombre
    data["puesto_firmante"] = puesto
    data["cargo_firmante"] = puesto
    return data


def _apply_aliases(data: Dict[str, Any]) -> None:
    if not data.get("asesor_empresa") and data.get("nombre_asesor_externo"):
        data["asesor_empresa"] = data["nombre_asesor_externo"]
    if not data.get("puesto_asesor_empresa") and data.get("puesto_asesor_externo"):
        data["puesto_asesor_empresa"] = data["puesto_asesor_externo"]
    if not data.get("nombre_estudiante") and data.get("nombre"):
        data["nombre_estudiante"] = data["nombre"]


def _apply_period(data: Dict[str, Any]) -> None:
    base = data.get("periodo") or data.get("periodo_residencias") or ""
    data["periodo"] = base
    if base:
        year = data.get("anio")
        data["periodo_residencias"] = f"{base} {year}".strip() if year else base
    else:
        data["periodo_residencias"] = data.get("periodo_residencias") or ""


def _apply_coordinator(data: Dict[str, Any]) -> None:
    coordinador = _nested(data, "coordinador")
    data["coordinador_persona_encargada"] = normalize_placeholder(_first(
        data.get("coordinador_persona_encargada"),
        data.get("nombre_coordinador"),
        coordinador.get("nombre"),
    ))
    data["coord_carrera"] = normalize_placeholder(_first(
        data.get("coord_carrera"),
        data.get("coordinador_carrera"),
        coordinador.get("carrera"),
        data.get("carrera"),
    ))


def _prepare(raw: Mapping[str, Any], now: datetime) -> Dict[str, Any]:
    data: Dict[str, Any] = sanitize_data(dict(raw))

    data["opcion_elegida"] = normalize_option(data.get("opcion_elegida"))
    data["periodo"] = normalize_period(data.get("periodo"))
    data.update(compute_option_flags(data["opcion_elegida"]))
    _apply_aliases(data)

    data.update(compute_sector_flags(data.get("empresa_sector"), data.get("giro")))

    for key in TEXT_KEYS:
        data[key] = normalize_placeholder(data.get(key))
    if not data["actividades_empresa"]:
        data["actividades_empresa"] = normalize_placeholder(
            data.get("empresa_mision") or _nested(data, "empresa").get("actividad") or ""
        )

    _apply_period(data)
    _apply_coordinator(data)
    ensure_signer_defaults(data)

    schedule = canonicalize_schedule(parse_schedule(data))
    data["cronograma"] = schedule
    data["cronograma_json"] = json.dumps(schedule, ensure_ascii=False)

    data["fecha_actual"] = now
    data["fecha_generacion"] = now
    return data


def build_template_payload(raw: Any, now: Optional[datetime] = None) -> Dict[str, Any]:
    now = now or datetime.now()
    if not isinstance(raw, Mapping):
        raw = {}
    try:
        data = _prepare(raw, now)
    except Exception:
        logger.exception("Normalization failed; rendering with sanitized data only")
        data = sanitize_data(dict(raw))
        if not isinstance(data, dict):
            data = {}
    return scrub_tokens_deep(format_dates_deep(data))
