"""
Autocomplete composer: blends globally popular terms with the requester's
own search history into one deduplicated, count-weighted suggestion list.
"""

from typing import Dict, Iterable, List, Optional

from storefront_search.errors import ValidationError
from storefront_search.models.search import AutocompleteSuggestion, PopularSearchTerm
from storefront_search.services.popular_terms import PopularTermAggregator
from storefront_search.services.search_history import SearchHistoryRecorder

MIN_PREFIX_LENGTH = 2
DEFAULT_SUGGESTION_LIMIT = 5


def merge_suggestions(
    popular: Iterable[PopularSearchTerm],
    history: Iterable[str]
) -> List[AutocompleteSuggestion]:
    """
    Merge popular terms and historical queries by exact term.

    A popular term contributes its count, each history entry contributes 1.
    The result is ordered by merged count (highest first), ties by term, and
    does not depend on the order of the inputs.
    """
    counts: Dict[str, int] = {}
    for item in popular:
        counts[item.term] = counts.get(item.term, 0) + item.count
    for term in history:
        counts[term] = counts.get(term, 0) + 1

    ranked = sorted(counts.items(), key=lambda entry: (-entry[1], entry[0]))
    return [AutocompleteSuggestion(term=term, count=count) for term, count in ranked]


class AutocompleteComposer:
    def __init__(self, popular_terms: PopularTermAggregator, history: SearchHistoryRecorder):
        self.popular_terms = popular_terms
        self.history = history

    async def suggest(
        self,
        prefix: str,
        limit: int = DEFAULT_SUGGESTION_LIMIT,
        requester_id: Optional[str] = None
    ) -> List[AutocompleteSuggestion]:
        """
        Get autocomplete suggestions for a prefix.

        Prefixes shorter than two characters return an empty list without
        touching the datastore. History is only consulted when popular terms
        do not fill the limit, and only for identified requesters.
        """
        if limit is None or limit < 1:
            raise ValidationError(f"limit must be >= 1, got {limit}")

        prefix = (prefix or "").strip()
        if len(prefix) < MIN_PREFIX_LENGTH:
            return []

        popular = await self.popular_terms.top_terms(prefix, limit)

        history: List[str] = []
        remaining = limit - len(popular)
        if remaining > 0 and requester_id is not None:
            history = await self.history.matching_prefix(requester_id, prefix, remaining)

        return merge_suggestions(popular, history)[:limit]
