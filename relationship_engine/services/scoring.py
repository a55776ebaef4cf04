"""Confidence, initial status and cardinality of discovered candidates."""

from typing import Optional

from ..core.errors import InternalError
from ..db.models import Cardinality, DetectionMethod, RelationshipStatus
from ..schemas.discovery import JoinStats, RawCandidate, SamplingStats, ScoredCandidate

INITIAL_STATUS = {
    DetectionMethod.FOREIGN_KEY: RelationshipStatus.CONFIRMED,
    DetectionMethod.MANUAL: RelationshipStatus.CONFIRMED,
    DetectionMethod.PK_MATCH: RelationshipStatus.PENDING,
}

# Average partners per row above 1 + tolerance count as "many"
CARDINALITY_TOLERANCE = 0.05


def score_candidate(candidate: RawCandidate, stats: Optional[SamplingStats] = None) -> ScoredCandidate:
    """
    Attach confidence and initial status to a candidate.

    foreign_key and manual candidates are certain (1.0, confirmed). pk_match
    confidence is the sampled match fraction, clamped to [0, 1], and the
    relationship waits for review (pending). `stats` defaults to the
    statistics carried by the candidate.
    """
    stats = stats if stats is not None else candidate.stats

    if candidate.method == DetectionMethod.PK_MATCH:
        if stats is None:
            raise InternalError(
                f"pk_match candidate {candidate.source_table}.{candidate.source_column} has no sampling stats"
            )
        confidence = min(1.0, max(0.0, stats.match_fraction))
    else:
        confidence = 1.0

    return ScoredCandidate(
        source_table=candidate.source_table,
        source_column=candidate.source_column,
        target_table=candidate.target_table,
        target_column=candidate.target_column,
        method=candidate.method,
        confidence=confidence,
        status=INITIAL_STATUS[candidate.method],
        cardinality=candidate.cardinality,
    )


def infer_cardinality(join: JoinStats) -> Cardinality:
    """
    Classify a join as 1:1, N:1, 1:N or N:M (source:target).

    A side is "many" when the rows on the other side join, on average, more
    than one of its rows. A join without matches tells nothing about the
    shape and falls back to N:1.
    """
    if join.join_count == 0 or join.source_rows == 0 or join.target_rows == 0:
        return Cardinality.MANY_TO_ONE

    many_sources = join.join_count / join.target_rows > 1 + CARDINALITY_TOLERANCE
    many_targets = join.join_count / join.source_rows > 1 + CARDINALITY_TOLERANCE

    if many_sources and many_targets:
        return Cardinality.MANY_TO_MANY
    if many_sources:
        return Cardinality.MANY_TO_ONE
    if many_targets:
        return Cardinality.ONE_TO_MANY
    return Cardinality.ONE_TO_ONE
