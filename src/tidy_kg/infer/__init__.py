"""Relationship inference between entity sets, and schema migration."""

from tidy_kg.infer.engine import ContentRelationshipInference, RelationshipProposal
from tidy_kg.infer.migration import MigrationResult, MigrationUtility
from tidy_kg.infer.rules import DOMAIN_RULES, UNIVERSAL_RULES, InferenceRule

__all__ = [
    "DOMAIN_RULES",
    "UNIVERSAL_RULES",
    "ContentRelationshipInference",
    "InferenceRule",
    "MigrationResult",
    "MigrationUtility",
    "RelationshipProposal",
]
