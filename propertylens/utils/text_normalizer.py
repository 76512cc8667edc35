"""Display-safe character repair for property payloads.

Property listings arrive from XML feeds and portal scrapers that were
decoded with the wrong charset somewhere upstream, so Spanish place names
show up as ``Mï¿½laga`` (UTF-8 replacement bytes read as Latin-1) or
``M?laga`` (lossy transcoding).  The Analysis Engine passes these through
untouched; the session read path repairs them before caching so every
poller sees the same corrected text.

Only a known list of text fields inside ``property`` is rewritten.  The
rest of the snapshot is treated as opaque.
"""

import re
from typing import Any

_MOJIBAKE_MARKER = "ï¿½"

# Known words first, then the generic fallback.  Each tuple is
# (compiled_regex, replacement).
_REPLACEMENT_CHAR_FIXES: list[tuple[re.Pattern[str], str]] = [
    (re.compile(r"Mï¿½laga"), "Málaga"),
    (re.compile(r"histï¿½rico"), "histórico"),
    (re.compile(r"balcï¿½n"), "balcón"),
    (re.compile(r"Urbanizaciï¿½n"), "Urbanización"),
    (re.compile(r"Jardï¿½n"), "Jardín"),
    (re.compile(r"Pequeï¿½a"), "Pequeña"),
    (re.compile(r"Espaï¿½a"), "España"),
    (re.compile(r"Alcalï¿½"), "Alcalá"),
    (re.compile(r"Cï¿½diz"), "Cádiz"),
    (re.compile(r"Cï¿½rdoba"), "Córdoba"),
    (re.compile(r"Sevillaï¿½a"), "Sevillana"),
    (re.compile(r"Valï¿½ncia"), "València"),
    (re.compile(r"Cataluï¿½a"), "Cataluña"),
    (re.compile(r"Andalucï¿½a"), "Andalucía"),
    (re.compile(r"ï¿½"), "á"),
]

# "?" is a legitimate character, so there is no generic fallback here.
_QUESTION_MARK_FIXES: list[tuple[re.Pattern[str], str]] = [
    (re.compile(r"M\?laga"), "Málaga"),
    (re.compile(r"Urbanizaci\?n"), "Urbanización"),
    (re.compile(r"Jard\?n"), "Jardín"),
    (re.compile(r"Peque\?a"), "Pequeña"),
    (re.compile(r"Espa\?a"), "España"),
    (re.compile(r"Alcal\?"), "Alcalá"),
    (re.compile(r"C\?diz"), "Cádiz"),
    (re.compile(r"C\?rdoba"), "Córdoba"),
    (re.compile(r"Sevilla\?a"), "Sevillana"),
    (re.compile(r"Val\?ncia"), "València"),
    (re.compile(r"Catalu\?a"), "Cataluña"),
    (re.compile(r"Andaluc\?a"), "Andalucía"),
]

PROPERTY_TEXT_FIELDS: tuple[str, ...] = (
    "description",
    "title",
    "address",
    "city",
    "province",
    "urbanization",
    "suburb",
    "features",
    "amenities",
)


def fix_spanish_characters(text: Any) -> Any:
    """Repair common Spanish mojibake in *text*.

    Non-string values are returned unchanged.

    Args:
        text: Possibly corrupted string.

    Returns:
        The repaired string.
    """
    if not isinstance(text, str) or not text:
        return text

    fixed = text
    if _MOJIBAKE_MARKER in fixed:
        for pattern, replacement in _REPLACEMENT_CHAR_FIXES:
            fixed = pattern.sub(replacement, fixed)
    if "?" in fixed:
        for pattern, replacement in _QUESTION_MARK_FIXES:
            fixed = pattern.sub(replacement, fixed)
    return fixed


def fix_property_characters(prop: Any) -> Any:
    """Return a copy of a property payload with its text fields repaired.

    Lists (``features``, ``amenities``) are repaired item by item.  The
    input dict is never mutated.
    """
    if not isinstance(prop, dict):
        return prop

    fixed = dict(prop)
    for field in PROPERTY_TEXT_FIELDS:
        value = fixed.get(field)
        if not value:
            continue
        if isinstance(value, list):
            fixed[field] = [fix_spanish_characters(item) for item in value]
        else:
            fixed[field] = fix_spanish_characters(value)
    return fixed
