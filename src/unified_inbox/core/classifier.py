"""Table-driven work item classification."""

import re
from dataclasses import dataclass, field
from typing import Any, Iterable, Optional

from unified_inbox.core.entities import ClassificationResult, WorkItemKind

TYPE_NAME_SCORE = 100
LABEL_BASE_SCORE = 85
TITLE_BASE_SCORE = 60
DEFAULT_CONFIDENCE = 0.3

METHOD_TYPE_NAME = "typeNameMap"
METHOD_LABEL = "labelPattern"
METHOD_TITLE = "titlePattern"
METHOD_DEFAULT = "default"


@dataclass(frozen=True)
class PatternRule:
    """Regex rule mapping a label or title to a kind."""

    pattern: re.Pattern
    kind: WorkItemKind
    priority: int = 0

    @classmethod
    def of(cls, pattern: str, kind: WorkItemKind, priority: int = 0) -> "PatternRule":
        """Build a rule from a pattern string, compiled case-insensitively."""
        return cls(re.compile(pattern, re.IGNORECASE), kind, priority)


@dataclass(frozen=True)
class ClassificationMapping:
    """Provider-specific classification tables."""

    type_name_map: dict[str, WorkItemKind] = field(default_factory=dict)
    label_patterns: tuple[PatternRule, ...] = ()
    title_patterns: tuple[PatternRule, ...] = ()
    default_kind: WorkItemKind = WorkItemKind.OTHER


@dataclass
class _Candidate:
    kind: WorkItemKind
    score: int
    method: str
    details: str


def normalize_labels(labels: Any) -> list[str]:
    """Reduce label strings or label objects to a list of non-empty names."""
    if not isinstance(labels, (list, tuple)):
        return []

    names = []
    for label in labels:
        if isinstance(label, str):
            name = label
        elif isinstance(label, dict):
            name = label.get("name") or label.get("label") or ""
        else:
            name = ""
        if name:
            names.append(name)
    return names


class WorkItemClassifier:
    """Score type name, label and title signals and pick the best kind."""

    def __init__(self, mapping: ClassificationMapping) -> None:
        self.mapping = mapping

    def classify(
        self,
        type_name: Optional[str] = None,
        labels: Optional[Iterable[str]] = None,
        title: Optional[str] = None,
    ) -> ClassificationResult:
        """Classify a work item from whatever signals are available."""
        candidates: list[_Candidate] = []

        if type_name:
            kind = self._classify_by_type_name(type_name)
            if kind is not None:
                candidates.append(_Candidate(
                    kind, TYPE_NAME_SCORE, METHOD_TYPE_NAME, f'Matched type name: "{type_name}"'
                ))

        labels = list(labels or [])
        if labels:
            match = self._best_match(labels, self.mapping.label_patterns)
            if match is not None:
                rule, label = match
                candidates.append(_Candidate(
                    rule.kind, LABEL_BASE_SCORE + rule.priority, METHOD_LABEL, f'Matched label: "{label}"'
                ))

        if title:
            match = self._best_match([title], self.mapping.title_patterns)
            if match is not None:
                rule, _ = match
                candidates.append(_Candidate(
                    rule.kind, TITLE_BASE_SCORE + rule.priority, METHOD_TITLE, "Matched title pattern"
                ))

        if not candidates:
            return ClassificationResult(
                kind=self.mapping.default_kind,
                confidence=DEFAULT_CONFIDENCE,
                method=METHOD_DEFAULT,
                details="No specific pattern matched, using default",
            )

        # Strictly greater wins, so earlier signals keep ties
        best = candidates[0]
        for candidate in candidates[1:]:
            if candidate.score > best.score:
                best = candidate

        return ClassificationResult(
            kind=best.kind,
            confidence=min(best.score / 100, 1.0),
            method=best.method,
            details=best.details,
        )

    def _classify_by_type_name(self, type_name: str) -> Optional[WorkItemKind]:
        normalized = type_name.lower().strip()
        type_map = self.mapping.type_name_map
        if not normalized:
            return None

        if normalized in type_map:
            return type_map[normalized]

        for key, kind in type_map.items():
            if key in normalized or normalized in key:
                return kind

        return None

    @staticmethod
    def _best_match(
        texts: list[str], rules: Iterable[PatternRule]
    ) -> Optional[tuple[PatternRule, str]]:
        best: Optional[tuple[PatternRule, str]] = None
        for text in texts:
            for rule in rules:
                if rule.pattern.search(text) and (best is None or rule.priority > best[0].priority):
                    best = (rule, text)
        return best


def create_classifier(mapping: ClassificationMapping) -> WorkItemClassifier:
    return WorkItemClassifier(mapping)
