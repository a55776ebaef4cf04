"""Relationship status lifecycle: pending -> confirmed -> rejected, rejected is final."""

from ..core.errors import InvalidStatusTransitionError
from ..db.models import EntityRelationship, RelationshipStatus

ALLOWED_TRANSITIONS = {
    RelationshipStatus.PENDING: frozenset({RelationshipStatus.CONFIRMED, RelationshipStatus.REJECTED}),
    RelationshipStatus.CONFIRMED: frozenset({RelationshipStatus.REJECTED}),
    RelationshipStatus.REJECTED: frozenset(),
}


def can_transition(current: RelationshipStatus, target: RelationshipStatus) -> bool:
    return target in ALLOWED_TRANSITIONS[current]


def transition(rel: EntityRelationship, target: RelationshipStatus) -> EntityRelationship:
    """Move a relationship to `target` or raise InvalidStatusTransitionError."""
    if not can_transition(rel.status, target):
        raise InvalidStatusTransitionError(rel.status, target)
    rel.status = target
    return rel
