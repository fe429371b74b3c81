"""
Free-text to canonical value lookups: company sector ("giro"), project origin option and period.
Every table is an ordered sequence of (pattern, canonical) pairs; the first match wins.
"""

import re
import unicodedata
from typing import Any, Dict, Optional, Sequence, Tuple

MARK = "X"

SECTOR_FLAG_KEYS = (
    "giro_industrial_x",
    "giro_servicios_x",
    "giro_publico_x",
    "giro_privado_x",
)
SECTOR_OTHER_KEY = "giro_otro_x"

# Exact token matches
SECTOR_ALIASES: Sequence[Tuple[str, str]] = (
    ("industrial", "giro_industrial_x"),
    ("industria", "giro_industrial_x"),
    ("manufactura", "giro_industrial_x"),
    ("servicios", "giro_servicios_x"),
    ("servicio", "giro_servicios_x"),
    ("terciario", "giro_servicios_x"),
    ("publico", "giro_publico_x"),
    ("publica", "giro_publico_x"),
    ("gobierno", "giro_publico_x"),
    ("privado", "giro_privado_x"),
    ("privada", "giro_privado_x"),
)

# Substring fallback, in priority order
SECTOR_NEEDLES: Sequence[Tuple[str, str]] = (
    ("industrial", "giro_industrial_x"),
    ("industria", "giro_industrial_x"),
    ("manufactur", "giro_industrial_x"),
    ("servicio", "giro_servicios_x"),
    ("terciario", "giro_servicios_x"),
    ("publico", "giro_publico_x"),
    ("publica", "giro_publico_x"),
    ("privado", "giro_privado_x"),
    ("privada", "giro_privado_x"),
)

OPTION_BANK = "banco de proyectos"
OPTION_OWN = "propuesta propia"
OPTION_WORKER = "trabajador"

OPTION_ALIASES: Sequence[Tuple[str, str]] = (
    ("opcion1", OPTION_BANK),
    ("opcion2", OPTION_OWN),
    ("opcion3", OPTION_WORKER),
    ("banco de proyectos", OPTION_BANK),
    ("banco de proyecto", OPTION_BANK),
    ("propuesta propia", OPTION_OWN),
    ("trabajador", OPTION_WORKER),
)

OPTION_FLAGS: Sequence[Tuple[str, str]] = (
    (OPTION_BANK, "bx"),
    (OPTION_OWN, "px"),
    (OPTION_WORKER, "tx"),
)

PERIOD_ALIASES: Sequence[Tuple[str, str]] = (
    ("ene", "Enero-Junio"),
    ("enero-junio", "Enero-Junio"),
    ("ene-jun", "Enero-Junio"),
    ("enero junio", "Enero-Junio"),
    ("ago", "Agosto-Diciembre"),
    ("agosto-diciembre", "Agosto-Diciembre"),
    ("ago-dic", "Agosto-Diciembre"),
    ("agosto diciembre", "Agosto-Diciembre"),
)

_TOKEN_SPLIT_RE = re.compile(r"[\s,;|/\-]+")


def strip_accents(text: Any) -> str:
    """Accent-fold and lower-case."""
    decomposed = unicodedata.normalize("NFD", str(text or ""))
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch)).lower()


def _normalize_key(value: Any) -> str:
    return re.sub(r"\s+", " ", strip_accents(value)).strip()


def lookup(table: Sequence[Tuple[str, str]], key: str) -> Optional[str]:
    for pattern, canonical in table:
        if pattern == key:
            return canonical
    return None


def compute_sector_flags(*sources: Any) -> Dict[str, str]:
    """Exactly one flag is set when any text is supplied, none otherwise."""
    flags = {key: "" for key in SECTOR_FLAG_KEYS}
    flags[SECTOR_OTHER_KEY] = ""

    normalized = [strip_accents(source) for source in sources if source is not None]

    for source in normalized:
        for token in _TOKEN_SPLIT_RE.split(source):
            flag_key = lookup(SECTOR_ALIASES, token.strip())
            if flag_key:
                flags[flag_key] = MARK
                return flags

    combined = " ".join(normalized)
    for needle, flag_key in SECTOR_NEEDLES:
        if needle in combined:
            flags[flag_key] = MARK
            return flags

    if combined.strip():
        flags[SECTOR_OTHER_KEY] = MARK
    return flags


def normalize_option(value: Any) -> str:
    """Accepts short codes ('opcion1') or the full label; unknown values pass through."""
    canonical = lookup(OPTION_ALIASES, _normalize_key(value))
    if canonical:
        return canonical
    return value if isinstance(value, str) else ""


def compute_option_flags(value: Any) -> Dict[str, str]:
    flags = {flag: "" for _, flag in OPTION_FLAGS}
    canonical = lookup(OPTION_ALIASES, _normalize_key(value))
    if canonical:
        flag = lookup(OPTION_FLAGS, canonical)
        if flag:
            flags[flag] = MARK
    return flags


def normalize_period(value: Any) -> str:
    canonical = lookup(PERIOD_ALIASES, _normalize_key(value))
    if canonical:
        return canonical
    return value if isinstance(value, str) else ""
