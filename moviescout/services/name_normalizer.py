"""Query expansion for personal names.

The catalog treats diacritics as significant, so "Jose Padilha" and
"José Padilha" are different searches. ``expand`` produces the spellings worth
querying for a term; ``normalize`` gives the accent and case free form used to
compare names after the fact.
"""

import re
import unicodedata
from collections.abc import Iterable, Mapping

# plain spelling -> spellings that should be searched alongside it
NAME_VARIANTS: Mapping[str, tuple[str, ...]] = {
    "jose": ("josé",),
    "joao": ("joão",),
    "antonio": ("antônio", "antónio"),
    "sebastiao": ("sebastião",),
    "simao": ("simão",),
    "estevao": ("estevão",),
    "fabio": ("fábio",),
    "marcio": ("márcio",),
    "claudio": ("cláudio",),
    "sergio": ("sérgio",),
    "rogerio": ("rogério",),
    "helio": ("hélio",),
    "julio": ("júlio",),
    "vinicius": ("vinícius",),
    "andre": ("andré",),
    "cesar": ("césar",),
    "angel": ("ángel",),
    "ines": ("inês", "inés"),
    "monica": ("mônica", "mónica"),
    "lucia": ("lúcia", "lucía"),
    "patricia": ("patrícia",),
    "barbara": ("bárbara",),
    "veronica": ("verônica", "verónica"),
    "francois": ("françois",),
    "rene": ("rené",),
    "almodovar": ("almodóvar",),
    "inarritu": ("iñárritu",),
    "cuaron": ("cuarón",),
}

_WHITESPACE_RE = re.compile(r"\s+")


def strip_accents(text: str) -> str:
    decomposed = unicodedata.normalize("NFD", text)
    stripped = "".join(char for char in decomposed if not unicodedata.combining(char))
    return unicodedata.normalize("NFC", stripped)


def normalize(text: str) -> str:
    # strip before collapsing: a lone mark between spaces leaves two spaces behind
    stripped = strip_accents(text.casefold())
    return _WHITESPACE_RE.sub(" ", stripped).strip()


def _word_pattern(word: str) -> re.Pattern[str]:
    return re.compile(rf"(?<!\w){re.escape(word)}(?!\w)")


def _variant_groups(variants: Mapping[str, Iterable[str]]) -> list[tuple[str, ...]]:
    return [(plain, *spellings) for plain, spellings in variants.items()]


def expand(term: str, variants: Mapping[str, Iterable[str]] = NAME_VARIANTS) -> set[str]:
    expanded = {term}
    cleaned = _WHITESPACE_RE.sub(" ", term).strip()
    if not cleaned:
        return expanded

    stripped = strip_accents(cleaned)
    if stripped != term:
        expanded.add(stripped)

    lowered = cleaned.lower()
    for group in _variant_groups(variants):
        for spelling in group:
            pattern = _word_pattern(spelling)
            if not pattern.search(lowered):
                continue
            for replacement in group:
                if replacement == spelling:
                    continue
                substituted = pattern.sub(replacement, lowered)
                expanded.add(substituted)
                expanded.add(substituted.title())
    return expanded


def expand_ordered(term: str, variants: Mapping[str, Iterable[str]] = NAME_VARIANTS) -> list[str]:
    """Same as ``expand``, original term first and the rest in a stable order."""
    rest = sorted(expanded for expanded in expand(term, variants) if expanded != term)
    return [term, *rest]


def name_matches(candidate: str, searched: str) -> bool:
    """True when ``candidate`` contains the searched name, or at least its first token."""
    normalized_candidate = normalize(candidate)
    normalized_searched = normalize(searched)
    if not normalized_candidate or not normalized_searched:
        return False
    if normalized_searched in normalized_candidate:
        return True
    first_token = normalized_searched.split(" ", 1)[0]
    return _word_pattern(first_token).search(normalized_candidate) is not None
