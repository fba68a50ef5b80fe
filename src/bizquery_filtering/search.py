"""Search compiler — free-text term -> OR'ed predicate fragment."""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable
from enum import Enum

from .compiled import Clause, QueryOperator

logger = logging.getLogger("bizquery.search")

TEXT_INDEX_FIELD = "*"


class SearchStrategy(str, Enum):
    TEXT = "text"
    SUBSTRING = "substring"
    PREFIX = "prefix"
    # Extension point: accepted in configuration but produces no predicate.
    PHONETIC = "phonetic"


_STRATEGY_ALIASES: dict[str, SearchStrategy] = {
    "regex": SearchStrategy.SUBSTRING,
    "autocomplete": SearchStrategy.PREFIX,
}

DEFAULT_STRATEGIES: tuple[SearchStrategy, ...] = (
    SearchStrategy.TEXT,
    SearchStrategy.SUBSTRING,
    SearchStrategy.PREFIX,
)


def resolve_strategy(name: SearchStrategy | str) -> SearchStrategy:
    if isinstance(name, SearchStrategy):
        return name
    key = name.strip().lower()
    if key in _STRATEGY_ALIASES:
        return _STRATEGY_ALIASES[key]
    return SearchStrategy(key)


def compile_search(
    term: str | None,
    strategies: Iterable[SearchStrategy | str] = DEFAULT_STRATEGIES,
    candidate_fields: Iterable[str] = (),
    *,
    text_index: bool = False,
) -> tuple[Clause, ...]:
    """Build alternatives for ``term``; the caller ORs them together.

    Returns an empty tuple (no-op) when the term is blank, or when no
    candidate fields are configured and the entity has no text index.
    String fields are never scanned implicitly.
    """
    if term is None or not term.strip():
        return ()
    term = term.strip()
    fields = tuple(dict.fromkeys(candidate_fields))
    selected = tuple(dict.fromkeys(resolve_strategy(s) for s in strategies))
    escaped = re.escape(term)

    out: list[Clause] = []
    for strategy in selected:
        if strategy is SearchStrategy.TEXT:
            if text_index:
                out.append(Clause(TEXT_INDEX_FIELD, QueryOperator.TEXT, term))
        elif strategy is SearchStrategy.SUBSTRING:
            out.extend(Clause(f, QueryOperator.IREGEX, escaped) for f in fields)
        elif strategy is SearchStrategy.PREFIX:
            out.extend(Clause(f, QueryOperator.IREGEX, f"^{escaped}") for f in fields)
        else:
            logger.debug("Search strategy %s is not implemented; skipped", strategy.value)
    return tuple(dict.fromkeys(out))
