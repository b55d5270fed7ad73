"""Citizen language → legal vocabulary.

People write "the streetcar never came"; the code says "transit service".
Each rule pairs a trigger pattern with the legal terms it stands for. Triggers
match anywhere in the text, so "rebuild" fires the building rule and
"carport" the parking rule. Rules are evaluated in order and their terms
unioned, so the expansion string is deterministic for a given input.
"""

import re

EXPANSION_RULES: tuple[tuple[re.Pattern, tuple[str, ...]], ...] = tuple(
    (re.compile(triggers, re.IGNORECASE), tuple(terms.split()))
    for triggers, terms in (
        # Transit
        ("late|commute|bus|streetcar|subway|ttc|train|transit|shuttle", "transit TTC service streetcar bus"),
        ("traffic|congestion|gridlock|slow|stuck", "traffic right-of-way road"),
        # Housing
        ("rent|apartment|condo|housing|afford|expensive|lease", "housing residential dwelling density"),
        ("basement|suite|secondary|laneway|garden suite", "laneway secondary suite dwelling additional"),
        ("build|construct|renovate|addition|permit", "building permit construction site plan"),
        # Parking
        ("parking|park|car|drive|garage", "parking minimum vehicle spaces"),
        # Noise
        ("noise|loud|music|construction noise|barking", "noise sound prohibited"),
        # Property
        ("fence|yard|garden|tree|property line", "fence property boundary setback"),
        ("snow|plow|ice|winter|shovel|salt", "snow ice removal clearing windrow"),
        ("garbage|waste|recycling|bin|collection", "waste collection recycling"),
        # Commercial
        ("restaurant|bar|cafe|patio|food|shop|store|business", "commercial retail restaurant licence patio"),
        ("sign|billboard|awning", "sign advertising display"),
        # Streets
        ("sidewalk|road|pothole|crosswalk|intersection", "street sidewalk road maintenance"),
        ("bike|bicycle|cycling|cycle track", "bicycle cycling lane"),
        ("pedestrian|walk|crossing", "pedestrian crosswalk sidewalk"),
        # Development
        ("development|tower|highrise|condo|new building", "development height density setback angular"),
        ("heritage|old building|historic", "heritage conservation designation"),
        # Safety
        ("safety|dangerous|hazard", "safety property standard"),
        ("fire|smoke|alarm", "fire safety building code"),
        # Animals
        ("dog|pet|animal|leash", "animal dog pet"),
        # Licensing
        ("licence|license|permit|application|wait", "licence permit application"),
    )
)

# Streets and neighbourhoods give zoning context; kept verbatim
LOCATION_PATTERN = re.compile(
    r"\b(queen|king|bloor|dundas|yonge|spadina|bathurst|ossington|college|st\.?\s*clair|danforth"
    r"|eglinton|lawrence|sheppard|finch|scarborough|etobicoke|north york|east york|leslieville"
    r"|parkdale|junction|kensington|annex|beaches|liberty|distillery|corktown|regent|moss park"
    r"|cabbage ?town|river ?dale)\b",
    re.IGNORECASE,
)


def expansion_terms(text: str) -> list[str]:
    """Ordered, de-duplicated legal terms and place names for ``text``."""
    terms: dict[str, None] = {}
    for pattern, expansion in EXPANSION_RULES:
        if pattern.search(text):
            terms.update(dict.fromkeys(expansion))

    for match in LOCATION_PATTERN.finditer(text):
        terms[match.group(0).lower()] = None

    return list(terms)


def expand(text: str) -> str:
    """Space-joined expansion of informal text; empty when nothing matched."""
    return " ".join(expansion_terms(text or ""))
