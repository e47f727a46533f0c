"""Term-level fuzzy matching with Elasticsearch ``AUTO`` fuzziness, used by the in-memory content store."""

import re
from typing import Dict, Iterable, List

_TOKEN_RE = re.compile(r"\w+", re.UNICODE)


def tokenize(text: str) -> List[str]:
    return _TOKEN_RE.findall((text or "").lower())


def auto_fuzziness(term: str) -> int:
    """Allowed edits for a term: 0 up to 2 chars, 1 up to 5, 2 beyond."""
    n = len(term)
    if n <= 2:
        return 0
    if n <= 5:
        return 1
    return 2


def edit_distance(a: str, b: str, limit: int) -> int:
    """Optimal string alignment distance (adjacent transposition = 1 edit); returns limit + 1 when exceeded."""
    if abs(len(a) - len(b)) > limit:
        return limit + 1
    prev2: List[int] = []
    prev = list(range(len(b) + 1))
    for i in range(1, len(a) + 1):
        cur = [i] + [0] * len(b)
        for j in range(1, len(b) + 1):
            cost = 0 if a[i - 1] == b[j - 1] else 1
            cur[j] = min(prev[j] + 1, cur[j - 1] + 1, prev[j - 1] + cost)
            if i > 1 and j > 1 and a[i - 1] == b[j - 2] and a[i - 2] == b[j - 1]:
                cur[j] = min(cur[j], prev2[j - 2] + 1)
        prev2, prev = prev, cur
    return prev[-1] if prev[-1] <= limit else limit + 1


def term_score(term: str, tokens: Iterable[str]) -> float:
    """Best match of one query term against a field's tokens: 1.0 exact, lower per edit, 0 on miss."""
    limit = auto_fuzziness(term)
    best = 0.0
    for token in tokens:
        if token == term:
            return 1.0
        if limit:
            d = edit_distance(term, token, limit)
            if d <= limit:
                best = max(best, 1.0 - d / (len(term) + 1))
    return best


def score_document(query: str, fields: Dict[str, str]) -> float:
    """multi_match style score: per term, the best field score, summed over terms."""
    terms = tokenize(query)
    field_tokens = {name: tokenize(value) for name, value in fields.items()}
    total = 0.0
    for term in terms:
        total += max((term_score(term, toks) for toks in field_tokens.values()), default=0.0)
    return total
