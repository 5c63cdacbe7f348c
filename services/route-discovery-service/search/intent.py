"""Keyword scoring of free-text travel queries into ranked intents."""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Tuple

logger = logging.getLogger(__name__)

# Keywords longer than this count double.
SPECIFIC_KEYWORD_LEN = 5
NORMALIZING_SCORE = 5.0
GENERAL_INTENT = "general"

INTENT_KEYWORDS: Dict[str, Tuple[str, ...]] = {
    "foodie": (
        "food", "foodie", "culinary", "gastronom", "restaurant", "michelin", "cuisine",
        "eat", "wine", "vineyard", "market", "chef", "bistro", "gastronomic", "gourmet",
        "delicious", "taste", "flavor",
    ),
    "hidden_gem": (
        "hidden", "gem", "secret", "undiscovered", "off-beat", "offbeat", "unusual", "quirky",
        "unique", "authentic", "local", "unknown", "lesser-known", "underrated", "overlooked",
        "untouristy",
    ),
    "coastal": (
        "coast", "coastal", "beach", "sea", "ocean", "port", "harbor", "harbour", "seaside",
        "mediterranean", "atlantic", "water", "maritime", "fishing", "island", "bay", "cove",
    ),
    "historic": (
        "historic", "history", "medieval", "ancient", "roman", "castle", "cathedral", "unesco",
        "heritage", "old", "monument", "ruins", "archaeological", "fortress", "palace",
        "renaissance",
    ),
    "artistic": (
        "art", "artistic", "museum", "gallery", "artist", "creative", "culture", "cultural",
        "music", "theater", "theatre", "design", "architecture", "picasso", "matisse",
        "van gogh", "impressionist",
    ),
    "nature": (
        "nature", "natural", "hiking", "mountain", "park", "forest", "lake", "river", "outdoor",
        "scenic", "landscape", "wildlife", "gorge", "canyon", "waterfall", "trail", "green",
        "countryside",
    ),
    "nightlife": (
        "nightlife", "night", "party", "bar", "club", "dancing", "entertainment", "lively",
        "vibrant", "young", "student", "festival", "music venue", "pub", "cocktail",
    ),
    "relaxation": (
        "relax", "relaxation", "peaceful", "quiet", "calm", "spa", "wellness", "tranquil",
        "serene", "slow", "retreat", "escape", "unwind", "rest", "lazy", "chill",
    ),
    "romantic": (
        "romantic", "romance", "couple", "honeymoon", "charming", "picturesque", "beautiful",
        "sunset", "intimate", "cozy", "lovely", "enchanting", "fairy-tale", "dreamy",
    ),
    "adventure": (
        "adventure", "adventurous", "thrill", "extreme", "sport", "climbing", "kayak", "surf",
        "dive", "cycling", "active", "adrenaline", "exciting", "challenge",
    ),
}


@dataclass(frozen=True)
class Intent:
    name: str
    score: float
    confidence: float
    matched_signals: Tuple[str, ...] = field(default_factory=tuple)

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "score": self.score,
            "confidence": round(self.confidence, 3),
            "matched_signals": list(self.matched_signals),
        }


GENERAL = Intent(name=GENERAL_INTENT, score=1.0, confidence=0.5)


def keyword_weight(keyword: str) -> int:
    return 2 if len(keyword) > SPECIFIC_KEYWORD_LEN else 1


def classify_intent(query: str) -> List[Intent]:
    """
    Score every intent by summing the weights of its keywords found in the query.
    Returns intents by descending score, ties in table order; [GENERAL] on no match.
    """
    text = (query or "").lower()
    intents: List[Intent] = []
    for name, keywords in INTENT_KEYWORDS.items():
        matched = tuple(k for k in keywords if k in text)
        if not matched:
            continue
        score = float(sum(keyword_weight(k) for k in matched))
        intents.append(
            Intent(
                name=name,
                score=score,
                confidence=min(score / NORMALIZING_SCORE, 1.0),
                matched_signals=matched,
            )
        )
    if not intents:
        logger.debug("No intent signals in query, using general", extra={"context": {"query": query[:100] if query else ""}})
        return [GENERAL]
    intents.sort(key=lambda i: -i.score)
    return intents


def primary_intent(query: str) -> Intent:
    return classify_intent(query)[0]
