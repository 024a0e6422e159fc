"""
Categorization module for suggesting a category from a description.

A small rules-based classifier: regex keyword rules map descriptions to
category names, and only categories that actually exist can be suggested.
"""

import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional

# Configure logging
logger = logging.getLogger(__name__)


@dataclass
class CategorizationRule:
    """
    A rule mapping a description pattern to a category name.

    Attributes:
        pattern: Regex pattern to search for in the description
        category: Category name suggested when the pattern matches
        priority: Rule priority (higher = checked first)
        case_sensitive: Whether pattern matching is case-sensitive
    """
    pattern: str
    category: str
    priority: int = 0
    case_sensitive: bool = False

    def matches(self, description: str) -> bool:
        """
        Check if this rule matches a description.

        Invalid regex patterns fall back to a plain substring match.
        """
        flags = 0 if self.case_sensitive else re.IGNORECASE
        try:
            return re.search(self.pattern, description, flags) is not None
        except re.error as e:
            logger.warning(f"Invalid regex pattern '{self.pattern}': {e}")
            if self.case_sensitive:
                return self.pattern in description
            return self.pattern.lower() in description.lower()


DEFAULT_RULES = [
    CategorizationRule(r"GROCERY|SUPERMARKET|MARKET|WALMART|COSTCO|ALDI", "Groceries", priority=10),
    CategorizationRule(r"RESTAURANT|CAFE|COFFEE|STARBUCKS|PIZZA|BURGER|LUNCH|DINNER", "Dining", priority=10),
    CategorizationRule(r"RENT|MORTGAGE|LANDLORD", "Housing", priority=10),
    CategorizationRule(r"ELECTRIC|WATER|GAS BILL|UTILITY|INTERNET|PHONE", "Utilities", priority=10),
    CategorizationRule(r"UBER|LYFT|TAXI|BUS|TRAIN|FUEL|PARKING", "Transportation", priority=9),
    CategorizationRule(r"NETFLIX|SPOTIFY|CINEMA|MOVIE|CONCERT|GAME", "Entertainment", priority=8),
    CategorizationRule(r"PHARMACY|DOCTOR|DENTIST|HOSPITAL|CLINIC", "Health", priority=8),
    CategorizationRule(r"PAYCHECK|PAYROLL|SALARY|WAGES", "Salary", priority=15),
    CategorizationRule(r"AMAZON|EBAY|ETSY|STORE|SHOP", "Shopping", priority=5),
]


class CategorizationEngine:
    """
    Rules-based engine for suggesting transaction categories.
    """

    def __init__(self, rules: Optional[List[CategorizationRule]] = None):
        """
        Initialize the categorization engine.

        Args:
            rules: Optional list of rules (DEFAULT_RULES when omitted)
        """
        self.rules: List[CategorizationRule] = list(rules) if rules is not None else list(DEFAULT_RULES)
        self.rules.sort(key=lambda r: r.priority, reverse=True)
        logger.info(f"Categorization engine initialized with {len(self.rules)} rules")

    @classmethod
    def from_config(cls, rules_data: Optional[List[Dict[str, Any]]]) -> "CategorizationEngine":
        """
        Build an engine from configuration rule dictionaries.

        Each dictionary needs ``pattern`` and ``category`` and may carry
        ``priority`` and ``case_sensitive``. An empty or missing list selects
        the default rules.
        """
        if not rules_data:
            return cls()
        rules = [
            CategorizationRule(
                pattern=str(rule_data.get("pattern", "")),
                category=str(rule_data.get("category", "")),
                priority=int(rule_data.get("priority", 0)),
                case_sensitive=bool(rule_data.get("case_sensitive", False))
            )
            for rule_data in rules_data
            if rule_data.get("pattern") and rule_data.get("category")
        ]
        return cls(rules)

    def suggest(self, description: str, categories: Iterable[str]) -> Optional[str]:
        """
        Suggest one of ``categories`` for a description.

        Rules are tried in priority order and only count when their category
        exists. Failing that, a category whose name appears as a word in the
        description is suggested.

        Args:
            description: Transaction description
            categories: Existing category names

        Returns:
            Matching category name as stored, or None
        """
        by_key = {name.strip().lower(): name for name in categories if name and name.strip()}
        if not description or not by_key:
            return None

        for rule in self.rules:
            name = by_key.get(rule.category.strip().lower())
            if name is not None and rule.matches(description):
                logger.debug(f"Matched rule '{rule.pattern}' -> '{name}' for '{description}'")
                return name

        words = set(re.findall(r"[\w&']+", description.lower()))
        for key in sorted(by_key):
            if key in words or (" " in key and key in description.lower()):
                return by_key[key]
        return None
