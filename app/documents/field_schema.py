"""
Declarative description of the application form fields.
"""

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, Tuple

from app.documents.catalogs import OPTION_BANK, OPTION_OWN, OPTION_WORKER


@dataclass(frozen=True)
class FieldSpec:
    type: str
    required: bool = False
    options: Tuple[str, ...] = field(default_factory=tuple)
    max_length: int = 0


FIELD_SCHEMA: Dict[str, FieldSpec] = {
    "nombre_proyecto": FieldSpec("text", required=True, max_length=255),
    "nombre_estudiante": FieldSpec("text", required=True, max_length=255),
    "num_control": FieldSpec("text", required=True, max_length=50),
    "carrera": FieldSpec("text", max_length=255),
    "opcion_elegida": FieldSpec("select", required=True, options=(OPTION_BANK, OPTION_OWN, OPTION_WORKER)),
    "periodo": FieldSpec("select", required=True, options=("Enero-Junio", "Agosto-Diciembre")),
    "anio": FieldSpec("number", required=True),
    "fecha_solicitud": FieldSpec("date"),
    "numero_residentes": FieldSpec("number"),
    "empresa_id": FieldSpec("number"),
    "empresa_nombre": FieldSpec("text", max_length=255),
    "empresa_sector": FieldSpec("text", max_length=100),
    "giro": FieldSpec("text", max_length=100),
    "nombre_asesor_externo": FieldSpec("text", max_length=255),
    "puesto_asesor_externo": FieldSpec("text", max_length=255),
    "nombre_firmante": FieldSpec("text", max_length=255),
    "puesto_firmante": FieldSpec("text", max_length=255),
    "domicilio": FieldSpec("text", max_length=255),
    "email": FieldSpec("email", max_length=255),
    "ciudad": FieldSpec("text", max_length=120),
    "telefono_fijo": FieldSpec("text", max_length=50),
    "coord_carrera": FieldSpec("text", max_length=255),
    "objetivos": FieldSpec("textarea"),
    "justificacion": FieldSpec("textarea"),
    "delimitacion": FieldSpec("textarea"),
    "descripcion_actividades": FieldSpec("textarea"),
    "actividades_empresa": FieldSpec("textarea"),
    "cronograma": FieldSpec("schedule"),
}


def schema_as_dict() -> Dict[str, Dict[str, Any]]:
    return {name: {**asdict(spec), "options": list(spec.options)} for name, spec in FIELD_SCHEMA.items()}
