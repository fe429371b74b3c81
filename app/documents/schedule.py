"""
Activity schedule ("cronograma") canonicalization.

Each entry's months may arrive as integers 1-12, month names or abbreviations, a delimited
string, or only as the per-month marker fields of a previously rendered entry. The output is
a sorted, deduplicated list of full month names plus regenerated marker fields.
"""

import json
import logging
import re
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Set, Tuple

from app.documents.catalogs import MARK, lookup, strip_accents
from app.documents.sanitize import normalize_placeholder, scrub_tokens

logger = logging.getLogger(__name__)

MONTH_NAMES = (
    "Enero", "Febrero", "Marzo", "Abril", "Mayo", "Junio",
    "Julio", "Agosto", "Septiembre", "Octubre", "Noviembre", "Diciembre",
)

MONTH_ALIASES: Sequence[Tuple[str, str]] = (
    ("ene", "Enero"), ("enero", "Enero"),
    ("feb", "Febrero"), ("febrero", "Febrero"),
    ("mar", "Marzo"), ("marzo", "Marzo"),
    ("abr", "Abril"), ("abril", "Abril"),
    ("may", "Mayo"), ("mayo", "Mayo"),
    ("jun", "Junio"), ("junio", "Junio"),
    ("jul", "Julio"), ("julio", "Julio"),
    ("ago", "Agosto"), ("agosto", "Agosto"),
    ("sep", "Septiembre"), ("sept", "Septiembre"), ("set", "Septiembre"), ("septiembre", "Septiembre"),
    ("oct", "Octubre"), ("octubre", "Octubre"),
    ("nov", "Noviembre"), ("noviembre", "Noviembre"),
    ("dic", "Diciembre"), ("diciembre", "Diciembre"),
)

# Older report template: first semester only, short tag names
LEGACY_MONTH_TAGS: Sequence[Tuple[str, str]] = (
    ("Enero", "enex"),
    ("Febrero", "febx"),
    ("Marzo", "marx"),
    ("Abril", "abrx"),
    ("Mayo", "mayx"),
    ("Junio", "junx"),
)

# Blank cells still need content so the table border renders
BLANK_CELL = " "

_MONTH_SPLIT_RE = re.compile(r"[;,|/]+")


def marker_key(month_name: str) -> str:
    return f"{month_name}Img"


def normalize_month_token(value: Any) -> Optional[str]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return MONTH_NAMES[value - 1] if 1 <= value <= len(MONTH_NAMES) else None
    raw = str(normalize_placeholder(value)).strip()
    if not raw:
        return None
    if raw.isdigit():
        number = int(raw)
        return MONTH_NAMES[number - 1] if 1 <= number <= len(MONTH_NAMES) else None
    normalized = strip_accents(raw)
    alias = lookup(MONTH_ALIASES, normalized)
    if alias:
        return alias
    for name in MONTH_NAMES:
        key = strip_accents(name)
        if key.startswith(normalized) or normalized.startswith(key):
            return name
    return None


def _month_tokens(raw: Any) -> Iterable[Any]:
    if raw is None:
        return []
    if isinstance(raw, (list, tuple, set)):
        return list(raw)
    if isinstance(raw, int) and not isinstance(raw, bool):
        return [raw]
    return _MONTH_SPLIT_RE.split(str(raw))


def _is_marked(value: Any) -> bool:
    cleaned = normalize_placeholder(value)
    return bool(cleaned) and str(cleaned).strip().upper().startswith(MARK)


def canonicalize_entry(entry: Any) -> Dict[str, Any]:
    safe: Dict[str, Any] = dict(entry) if isinstance(entry, Mapping) else {"descripcion": entry}
    descripcion = scrub_tokens(normalize_placeholder(safe.get("descripcion") or safe.get("actividad") or ""))

    selected: Set[str] = set()
    for token in _month_tokens(safe.get("meses")):
        canonical = normalize_month_token(token)
        if canonical:
            selected.add(canonical)
    for name in MONTH_NAMES:
        if _is_marked(safe.get(marker_key(name))):
            selected.add(name)
    for name, tag in LEGACY_MONTH_TAGS:
        if _is_marked(safe.get(tag)):
            selected.add(name)

    ordered = sorted(selected, key=MONTH_NAMES.index)
    result = dict(safe)
    result["descripcion"] = descripcion
    result["actividad"] = scrub_tokens(normalize_placeholder(safe.get("actividad") or "")) or descripcion
    result["meses"] = ordered
    result["meses_texto"] = ", ".join(ordered)
    for name in MONTH_NAMES:
        result[marker_key(name)] = MARK if name in selected else BLANK_CELL
    for name, tag in LEGACY_MONTH_TAGS:
        if tag in safe:
            result[tag] = MARK if name in selected else BLANK_CELL
    return result


def canonicalize_schedule(entries: Any) -> List[Dict[str, Any]]:
    """Entries with neither a description nor any month are dropped."""
    if not isinstance(entries, (list, tuple)):
        return []
    canonical = [canonicalize_entry(entry) for entry in entries]
    kept = [item for item in canonical if item["descripcion"] or item["meses"]]
    for position, item in enumerate(kept, start=1):
        item["index"] = position
    return kept


def parse_schedule(data: Mapping[str, Any]) -> List[Any]:
    """Raw schedule from 'cronograma_json' (JSON text or list) or 'cronograma'."""
    raw = data.get("cronograma_json")
    if raw:
        if isinstance(raw, str):
            try:
                raw = json.loads(raw)
            except ValueError:
                logger.warning("Discarding unparseable cronograma_json")
                return []
        return list(raw) if isinstance(raw, (list, tuple)) else []
    raw = data.get("cronograma")
    return list(raw) if isinstance(raw, (list, tuple)) else []
