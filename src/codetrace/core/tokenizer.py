"""Text normalisation shared by the index and query paths.

Both sides reduce text to case-folded Porter stems so a provision that says
"parked" is found by a query for "parking". Index rows and MATCH expressions
are built from the same ``analyze`` output.
"""

import re
from functools import lru_cache

from nltk.stem import PorterStemmer

# Query terms this short are noise ("of", "to", "a")
MIN_TERM_LENGTH = 3

# unicode61 only splits the pre-stemmed stream; stemming happens here
FTS_TOKENIZER = "unicode61"

_WORD_PATTERN = re.compile(r"\w+")
_stemmer = PorterStemmer()


def words(text: str | None) -> list[str]:
    """Split text into case-folded word tokens."""
    if not text:
        return []
    return _WORD_PATTERN.findall(text.lower())


@lru_cache(maxsize=65536)
def stem(word: str) -> str:
    """Reduce a word to its Porter stem ("parking" → "park")."""
    return _stemmer.stem(word.lower())


def query_terms(text: str | None) -> list[str]:
    """Distinct non-trivial words of a query, in first-seen order."""
    return list(dict.fromkeys(w for w in words(text) if len(w) >= MIN_TERM_LENGTH))


def analyze(text: str | None) -> str:
    """Stem every word of ``text`` and join them for the term index."""
    return " ".join(stem(w) for w in words(text))
