"""GitHub label and title classification."""

from unified_inbox.core.classifier import ClassificationMapping, PatternRule
from unified_inbox.core.entities import WorkItemKind as K

GITHUB_MAPPING = ClassificationMapping(
    label_patterns=(
        # Bugs and defects
        PatternRule.of(r"^bug$", K.BUG, 10),
        PatternRule.of(r"^defect$", K.DEFECT, 10),
        PatternRule.of(r"^regression$", K.BUG, 9),
        PatternRule.of(r"bug:", K.BUG, 8),
        # Features and enhancements
        PatternRule.of(r"^feature$", K.FEATURE, 10),
        PatternRule.of(r"^enhancement$", K.ENHANCEMENT, 10),
        PatternRule.of(r"^epic$", K.EPIC, 10),
        PatternRule.of(r"feature:", K.FEATURE, 8),
        PatternRule.of(r"enhancement:", K.ENHANCEMENT, 8),
        # User stories
        PatternRule.of(r"^user[- ]story$", K.USER_STORY, 10),
        PatternRule.of(r"^story$", K.USER_STORY, 9),
        # Documentation
        PatternRule.of(r"^documentation$", K.DOCUMENTATION, 10),
        PatternRule.of(r"^docs$", K.DOCUMENTATION, 10),
        PatternRule.of(r"documentation:", K.DOCUMENTATION, 8),
        # Improvement and refactor
        PatternRule.of(r"^improvement$", K.IMPROVEMENT, 10),
        PatternRule.of(r"^refactor$", K.REFACTOR, 10),
        PatternRule.of(r"^tech[- ]debt$", K.TECH_DEBT, 10),
        PatternRule.of(r"^technical[- ]debt$", K.TECH_DEBT, 10),
        # Questions and research
        PatternRule.of(r"^question$", K.QUESTION, 10),
        PatternRule.of(r"^research$", K.RESEARCH, 10),
        PatternRule.of(r"^spike$", K.SPIKE, 10),
        # Tasks
        PatternRule.of(r"^task$", K.TASK, 10),
        PatternRule.of(r"^chore$", K.TASK, 9),
        # Tests
        PatternRule.of(r"^test$", K.TEST, 10),
        PatternRule.of(r"^testing$", K.TEST, 10),
    ),
    title_patterns=(
        PatternRule.of(r"^\[bug\]", K.BUG, 5),
        PatternRule.of(r"^\[feature\]", K.FEATURE, 5),
        PatternRule.of(r"^\[enhancement\]", K.ENHANCEMENT, 5),
        PatternRule.of(r"^\[docs\]", K.DOCUMENTATION, 5),
        PatternRule.of(r"^\[refactor\]", K.REFACTOR, 5),
        PatternRule.of(r"^\[task\]", K.TASK, 5),
        PatternRule.of(r"^bug:", K.BUG, 5),
        PatternRule.of(r"^feature:", K.FEATURE, 5),
        PatternRule.of(r"^fix:", K.BUG, 5),
        PatternRule.of(r"^feat:", K.FEATURE, 5),
    ),
    default_kind=K.OTHER,
)
