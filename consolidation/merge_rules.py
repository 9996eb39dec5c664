"""
Name-pattern rules for detecting clusters of the same document type.

Rules are evaluated in list order and the first match wins, so a cluster is
never claimed by two categories.
"""
import re
import unicodedata
from dataclasses import dataclass
from typing import Iterator, List, Optional, Pattern, Sequence, Tuple, Union


def fold_diacritics(text: str) -> str:
    """Strip combining marks, so "asistență" and "asistenta" compare equal."""
    decomposed = unicodedata.normalize("NFD", text)
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


@dataclass(frozen=True)
class MergeRule:
    """A category label and the name pattern that selects it."""
    category: str
    pattern: Pattern

    def matches(self, name: str) -> bool:
        return bool(self.pattern.search(fold_diacritics(name or "")))


# Romanian legal document categories
ROMANIAN_LEGAL_RULES: List[Tuple[str, str]] = [
    ("Facturi", r"^factur"),
    ("Contracte de Asistență Juridică", r"^contract.*asistență juridică"),
    ("Opinii Juridice", r"^opini[ei].*juridic"),
    ("Declarații de Renunțare", r"^declarați.*renunțare"),
    ("Neclasificate", r"^neclasificate$"),
    ("Împuterniciri", r"^împuternicir"),
    ("Documente Academice", r"documente academice|reflecție juridică|teorie.*juridic"),
    ("Confirmări", r"^confirmar"),
    ("Cereri de Executare", r"^cereri.*executare"),
    ("Studii Juridice", r"^studii"),
]


class MergeRuleSet:
    """Ordered, first-match-wins list of merge rules."""

    def __init__(self, rules: Sequence[Union[MergeRule, Tuple[str, str]]]):
        """
        Initialize rule set.

        Args:
            rules: MergeRule objects or (category, regex) pairs; regexes are
                compiled case-insensitively after diacritic folding;
                prebuilt MergeRule patterns must already be folded
        """
        self.rules: List[MergeRule] = [
            rule if isinstance(rule, MergeRule)
            else MergeRule(rule[0], re.compile(fold_diacritics(rule[1]), re.IGNORECASE))
            for rule in rules
        ]

    @classmethod
    def romanian_legal(cls) -> "MergeRuleSet":
        """Default rule set for Romanian legal archives."""
        return cls(ROMANIAN_LEGAL_RULES)

    def match(self, name: str) -> Optional[str]:
        """Category of the first rule matching the name, or None."""
        for rule in self.rules:
            if rule.matches(name):
                return rule.category
        return None

    def __iter__(self) -> Iterator[MergeRule]:
        return iter(self.rules)

    def __len__(self) -> int:
        return len(self.rules)
