"""Topical tags for provisions.

Coarse recall boost, not classification: a provision gets every tag whose
rule matches anywhere in its text, so a story about "the streetcar" can reach
a provision that only ever says "transit". Tags are a pure function of the
text and come out in vocabulary order.
"""

import re

KEYWORD_RULES: tuple[tuple[str, re.Pattern], ...] = tuple(
    (tag, re.compile(pattern, re.IGNORECASE))
    for tag, pattern in (
        ("parking", r"parking|garage|vehicle storage"),
        ("noise", r"noise|sound|decibel|quiet"),
        ("height", r"height|storey|angular plane|setback"),
        ("density", r"density|floor area|FSI|units per"),
        ("transit", r"transit|TTC|streetcar|bus|subway|LRT"),
        ("cycling", r"bicycle|cycling|bike lane|bike parking"),
        ("pedestrian", r"pedestrian|sidewalk|crosswalk|walkway"),
        ("snow", r"snow|ice|winter|plow|windrow"),
        ("fence", r"fence|enclosure|barrier"),
        ("tree", r"tree|canopy|urban forest"),
        ("heritage", r"heritage|conservation|historic"),
        ("sign", r"sign|billboard|advertising"),
        ("waste", r"waste|garbage|recycling|bin"),
        ("water", r"water|sewer|drainage|stormwater"),
        ("housing", r"housing|dwelling|residential|apartment|multiplex"),
        ("commercial", r"commercial|retail|restaurant|business"),
        ("property", r"property|land|lot|zoning"),
        ("permit", r"permit|licence|license|application"),
        ("construction", r"construction|demolition|building"),
        ("accessibility", r"accessibility|accessible|barrier-free"),
        ("fire", r"fire|safety|emergency|smoke"),
        ("boulevard", r"boulevard|right-of-way|road allowance"),
        ("animal", r"animal|dog|pet|cat"),
        ("food", r"food|restaurant|patio|cafe"),
        ("rental", r"rental|tenant|landlord|eviction"),
        ("development", r"development|site plan|subdivision"),
        ("setback", r"setback|yard|front yard|rear yard|side yard"),
        ("laneway", r"laneway|lane|alley|rear lane"),
    )
)


def extract_keywords(text: str) -> list[str]:
    """Return the tags whose rules match ``text``, in vocabulary order."""
    return [tag for tag, pattern in KEYWORD_RULES if pattern.search(text)]
