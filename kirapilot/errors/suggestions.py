"""
Alternative tool suggestions for unknown tool names.

Two signals are combined per catalog tool and the stronger one wins:
approximate name similarity (Levenshtein ratio, substring containment) and
keyword overlap between the query tokens and the tool's name, description
and keyword tokens.
"""

import re
from typing import Dict, Iterable, List, Set

from ..tools.models import AlternativeToolSuggestion, ToolDefinition

MAX_SUGGESTIONS = 3
SIMILARITY_THRESHOLD = 0.75
MIN_CONTAINMENT_LENGTH = 3
KEYWORD_WEIGHT = 0.5

_TOKEN_SPLIT = re.compile(r"[^a-z0-9]+")
_STOPWORDS = frozenset({
    "the", "and", "for", "with", "from", "into", "this", "that", "all", "get",
    "set", "can", "you", "your", "are", "use", "tool", "tools", "one",
})


def levenshtein_distance(a: str, b: str) -> int:
    """Classic edit distance (insert, delete, substitute all cost 1)."""
    if a == b:
        return 0
    if not a:
        return len(b)
    if not b:
        return len(a)
    previous = list(range(len(b) + 1))
    for i, char_a in enumerate(a, start=1):
        current = [i]
        for j, char_b in enumerate(b, start=1):
            cost = 0 if char_a == char_b else 1
            current.append(min(previous[j] + 1, current[j - 1] + 1, previous[j - 1] + cost))
        previous = current
    return previous[-1]


def similarity_ratio(a: str, b: str) -> float:
    """``1 - distance / max_len``; 1.0 for identical strings."""
    longest = max(len(a), len(b))
    if longest == 0:
        return 1.0
    return 1.0 - levenshtein_distance(a, b) / longest


def tokenize(text: str) -> Set[str]:
    """Lower-cased word tokens of at least three characters, minus stopwords."""
    return {
        token for token in _TOKEN_SPLIT.split((text or "").lower())
        if len(token) >= 3 and token not in _STOPWORDS
    }


def _name_score(query: str, name: str) -> float:
    score = similarity_ratio(query, name)
    if score < SIMILARITY_THRESHOLD:
        score = 0.0
    if len(query) >= MIN_CONTAINMENT_LENGTH and (query in name or name in query):
        shorter, longer = sorted((len(query), len(name)))
        score = max(score, 0.6 + 0.4 * shorter / longer)
    return score


def _keyword_score(query_tokens: Set[str], definition: ToolDefinition) -> float:
    if not query_tokens:
        return 0.0
    tool_tokens = tokenize(definition.name) | tokenize(definition.description)
    for keyword in definition.keywords:
        tool_tokens |= tokenize(keyword)
    overlap = query_tokens & tool_tokens
    return KEYWORD_WEIGHT * len(overlap) / len(query_tokens)


def suggest_alternatives(
    requested_name: str,
    tools: Iterable[ToolDefinition],
    limit: int = MAX_SUGGESTIONS,
) -> List[AlternativeToolSuggestion]:
    """
    Rank catalog tools that could stand in for ``requested_name``

    Args:
        requested_name: The unknown tool name the model asked for
        tools: Catalog definitions to rank
        limit: Maximum number of suggestions

    Returns:
        Up to ``limit`` suggestions with confidence in (0, 1], best first.
        Empty when nothing qualifies.
    """
    query = (requested_name or "").strip().lower()
    if not query:
        return []
    query_tokens = tokenize(query)

    scores: Dict[str, float] = {}
    by_name: Dict[str, ToolDefinition] = {}
    for definition in tools:
        score = max(_name_score(query, definition.name), _keyword_score(query_tokens, definition))
        if score > 0:
            scores[definition.name] = min(round(score, 3), 1.0)
            by_name[definition.name] = definition

    ranked = sorted(scores.items(), key=lambda item: (-item[1], item[0]))[:limit]
    return [
        AlternativeToolSuggestion(
            tool_name=name,
            confidence=confidence,
            description=by_name[name].description,
            required_permission=by_name[name].required_permission,
        )
        for name, confidence in ranked
    ]
