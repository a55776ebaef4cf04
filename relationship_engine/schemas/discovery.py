"""DTOs for relationship discovery: candidates, scoring, reconciliation and results"""
from pydantic import BaseModel, ConfigDict, Field
from typing import List, Literal, Optional, Tuple

from ..db.models import Cardinality, DetectionMethod, RelationshipStatus


class SamplingStats(BaseModel):
    """Outcome of sampling a source column against a target key"""
    model_config = ConfigDict(frozen=True)

    sampled: int = Field(..., ge=0, description="Distinct non-null values sampled from the source column")
    matched: int = Field(..., ge=0, description="Sampled values present in the target key")

    @property
    def match_fraction(self) -> float:
        if self.sampled == 0:
            return 0.0
        return self.matched / self.sampled


class JoinStats(BaseModel):
    """
    Shape of the equality join between a source column and a target column.

    source_rows and target_rows count the rows on each side that have at
    least one partner; join_count is the number of joined row pairs.
    """
    model_config = ConfigDict(frozen=True)

    join_count: int = Field(..., ge=0)
    source_rows: int = Field(..., ge=0)
    target_rows: int = Field(..., ge=0)


class RawCandidate(BaseModel):
    """A relationship proposed by a discovery strategy, before scoring"""
    model_config = ConfigDict(frozen=True)

    source_table: str
    source_column: str
    target_table: str
    target_column: str
    method: DetectionMethod
    stats: Optional[SamplingStats] = None
    constraint_name: Optional[str] = None
    cardinality: Cardinality = Cardinality.MANY_TO_ONE

    @property
    def column_pair(self) -> Tuple[str, str, str, str]:
        return (self.source_table, self.source_column, self.target_table, self.target_column)


class ScoredCandidate(BaseModel):
    """A candidate with its confidence and initial status attached"""
    model_config = ConfigDict(frozen=True)

    source_table: str
    source_column: str
    target_table: str
    target_column: str
    method: DetectionMethod
    confidence: float = Field(..., ge=0.0, le=1.0)
    status: RelationshipStatus
    cardinality: Cardinality = Cardinality.MANY_TO_ONE

    @property
    def column_pair(self) -> Tuple[str, str, str, str]:
        return (self.source_table, self.source_column, self.target_table, self.target_column)


class ReconciliationStats(BaseModel):
    """Counters produced by merging one batch of candidates into the store"""
    fk_created: int = 0
    pk_match_created: int = 0
    upgraded: int = 0
    refreshed: int = 0
    discarded: int = 0
    skipped_rejected: int = 0

    @property
    def total_created(self) -> int:
        return self.fk_created + self.pk_match_created


class Diagnostics(BaseModel):
    """Advisory table lists computed after a run"""
    empty_tables: List[str] = Field(default_factory=list)
    orphan_tables: List[str] = Field(default_factory=list)


class FKDiscoveryResult(BaseModel):
    """Result of a foreign-key-only discovery run"""
    created: int = 0
    upgraded: int = 0


class PKMatchDiscoveryResult(BaseModel):
    """Result of a pk_match-only discovery run"""
    created: int = 0


class DiscoveryResults(BaseModel):
    """
    Result of a full discovery run.

    fk_relationships counts foreign_key rows created or upgraded in this run,
    inferred_relationships counts pk_match rows created. errors lists the
    strategies that failed while the other one still produced results.
    """
    fk_relationships: int = 0
    inferred_relationships: int = 0
    total_relationships: int = 0
    upgraded: int = 0
    refreshed: int = 0
    discarded: int = 0
    skipped_rejected: int = 0
    empty_tables: List[str] = Field(default_factory=list)
    orphan_tables: List[str] = Field(default_factory=list)
    errors: List[str] = Field(default_factory=list)


class DiscoverRequestDTO(BaseModel):
    """DTO for triggering discovery on a datasource"""
    strategy: Literal["all", "foreign_key", "pk_match"] = Field(
        default="all",
        description="Which strategies to run"
    )
