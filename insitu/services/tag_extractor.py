"""
Keyword tags derived from a generation prompt, used for search metadata
"""
import re
from typing import List

STOP_WORDS = frozenset(["the", "a", "an", "and", "or", "but", "in", "on", "at", "to", "for", "of", "with", "by"])
MAX_TAGS = 5

_PUNCTUATION = re.compile(r"[^\w\s]")


def extract_tags(prompt: str) -> List[str]:
    """
    Lower-case, strip punctuation, drop stop words and short tokens, keep the
    first five survivors and de-duplicate them (first occurrence wins).
    """
    words = _PUNCTUATION.sub("", prompt.lower()).split()
    kept = [word for word in words if len(word) > 2 and word not in STOP_WORDS][:MAX_TAGS]
    return list(dict.fromkeys(kept))
