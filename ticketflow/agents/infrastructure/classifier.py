"""
Keyword Classifier
==================

Default category classifier: scores each category by the keywords found in
the ticket text and picks the best one. Good enough to route tickets when no
external classifier is plugged in.
"""

import re
from typing import Dict, Tuple

from ticketflow.agents.application import IClassifier
from ticketflow.config import DEFAULT_CATEGORY, TicketCategory

# Earlier categories win ties
CATEGORY_KEYWORDS: Dict[str, Tuple[str, ...]] = {
    TicketCategory.ACCOUNT: (
        "password", "login", "account", "profile", "username",
        "2fa", "authentication", "banned", "suspended",
    ),
    TicketCategory.BILLING: (
        "payment", "refund", "charge", "invoice", "subscription",
        "plan", "price", "money", "credit", "purchase",
    ),
    TicketCategory.TECHNICAL: (
        "crash", "bug", "error", "lag", "performance",
        "install", "update", "driver", "connection",
    ),
    TicketCategory.GAMEPLAY: (
        "game", "level", "character", "item", "quest",
        "match", "rank", "progress", "save",
    ),
    TicketCategory.SECURITY: (
        "hack", "stolen", "compromised", "suspicious",
        "fraud", "scam", "phishing",
    ),
}

_WORD = re.compile(r"[a-z0-9]+")


class KeywordClassifier(IClassifier):
    """Highest keyword score wins; no match means ``general``."""

    def __init__(self, keywords: Dict[str, Tuple[str, ...]] = CATEGORY_KEYWORDS):
        self._keywords = keywords

    def classify(self, text: str) -> str:
        words = _WORD.findall((text or "").lower())
        if not words:
            return DEFAULT_CATEGORY

        best_category, best_score = DEFAULT_CATEGORY, 0
        for category, keywords in self._keywords.items():
            # Prefix match so "payments" and "crashed" still count
            score = sum(1 for word in words if word.startswith(keywords))
            if score > best_score:
                best_category, best_score = category, score
        return best_category
