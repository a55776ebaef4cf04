"""
Relationship discovery strategies.

Both strategies read from the same SchemaSnapshot and return RawCandidate
objects; they never write to the relationship store. The set of strategies
is closed: the RelationshipService picks them explicitly.

- FKDiscoveryStrategy: one candidate per column pair of every declared
  foreign key between selected tables.
- PKMatchDiscoveryStrategy: identifier-named columns whose sampled values are
  (almost) all present in another table's single-column primary key.

When a catalog is available, each candidate also carries the cardinality of
its join, measured with one bounded query.
"""

from abc import ABC, abstractmethod
from typing import AbstractSet, Callable, List, Optional, Tuple

from ..core.cancellation import CancelToken
from ..core.config import settings
from ..core.errors import CatalogUnavailableError, SamplingFailedError
from ..core.logging import get_logger
from ..db.models import Cardinality, DetectionMethod
from ..schemas.catalog import ColumnInfo, SchemaSnapshot, TableInfo
from ..schemas.discovery import RawCandidate, SamplingStats
from .naming import identifier_stem, is_attribute_stem, matching_tables, type_family
from .schema_catalog import SchemaCatalog
from .scoring import infer_cardinality

logger = get_logger("services.discovery_strategies")

# (processed, total, message)
ProgressCallback = Callable[[int, int, str], None]


def measure_cardinality(
    catalog: SchemaCatalog, source_table: str, source_column: str, target_table: str, target_column: str
) -> Cardinality:
    """Cardinality of the join between two columns; N:1 when the join cannot be measured."""
    try:
        join = catalog.analyze_join(source_table, source_column, target_table, target_column)
    except SamplingFailedError as e:
        logger.warning(
            f"Assuming N:1 for {source_table}.{source_column} -> {target_table}.{target_column}: {e}"
        )
        return Cardinality.MANY_TO_ONE
    return infer_cardinality(join)


class DiscoveryStrategy(ABC):
    """Common interface of the discovery strategies."""

    method: DetectionMethod

    @abstractmethod
    def run(
        self,
        snapshot: SchemaSnapshot,
        exclude_sources: AbstractSet[Tuple[str, str]] = frozenset(),
        progress: Optional[ProgressCallback] = None,
        cancel: Optional[CancelToken] = None,
    ) -> List[RawCandidate]:
        """Return the candidates found in the snapshot."""


class FKDiscoveryStrategy(DiscoveryStrategy):
    method = DetectionMethod.FOREIGN_KEY

    def __init__(self, catalog: Optional[SchemaCatalog] = None):
        self.catalog = catalog

    def run(self, snapshot, exclude_sources=frozenset(), progress=None, cancel=None):
        if snapshot.foreign_keys is None:
            raise CatalogUnavailableError(snapshot.fk_error or "Foreign key constraints are unavailable")

        candidates: List[RawCandidate] = []
        seen = set()
        total = len(snapshot.foreign_keys)

        for index, fk in enumerate(snapshot.foreign_keys, start=1):
            if cancel is not None:
                cancel.raise_if_cancelled()
            if not (snapshot.is_selected(fk.source_table) and snapshot.is_selected(fk.target_table)):
                continue
            if len(fk.source_columns) != len(fk.target_columns):
                logger.warning(
                    f"Skipping malformed foreign key {fk.name or fk.source_table}: "
                    f"{len(fk.source_columns)} source columns, {len(fk.target_columns)} target columns"
                )
                continue

            # Composite constraints become one candidate per column pair
            for source_column, target_column in zip(fk.source_columns, fk.target_columns):
                candidate = RawCandidate(
                    source_table=fk.source_table,
                    source_column=source_column,
                    target_table=fk.target_table,
                    target_column=target_column,
                    method=DetectionMethod.FOREIGN_KEY,
                    constraint_name=fk.name,
                )
                if candidate.column_pair in seen:
                    continue
                seen.add(candidate.column_pair)
                if self.catalog is not None:
                    if cancel is not None:
                        cancel.raise_if_cancelled()
                    candidate = candidate.model_copy(
                        update={"cardinality": measure_cardinality(self.catalog, *candidate.column_pair)}
                    )
                candidates.append(candidate)

            if progress is not None:
                progress(index, total, f"Processed foreign key {fk.source_table} -> {fk.target_table}")

        logger.info(f"FK discovery found {len(candidates)} candidates in datasource {snapshot.datasource_id}")
        return candidates


class PKMatchDiscoveryStrategy(DiscoveryStrategy):
    """
    Infer relationships by sampling values.

    For each eligible source column, up to `sample_limit` distinct non-null
    values are sampled and checked against the primary key of each target
    table. The best target whose match fraction is strictly greater than
    `min_match_rate` becomes the candidate (ties go to the table name that
    sorts first). Columns whose sampling fails are logged and skipped.
    """

    method = DetectionMethod.PK_MATCH

    def __init__(
        self,
        catalog: SchemaCatalog,
        sample_limit: Optional[int] = None,
        min_match_rate: Optional[float] = None,
    ):
        self.catalog = catalog
        self.sample_limit = sample_limit if sample_limit is not None else settings.pk_match_sample_limit
        self.min_match_rate = min_match_rate if min_match_rate is not None else settings.pk_match_min_match_rate

    def candidate_columns(
        self,
        snapshot: SchemaSnapshot,
        exclude_sources: AbstractSet[Tuple[str, str]] = frozenset(),
    ) -> List[Tuple[TableInfo, ColumnInfo, str, str]]:
        """(table, column, stem, type family) of every column worth sampling."""
        columns = []
        for tbl in snapshot.selected_tables():
            if tbl.is_empty:
                continue
            for col in tbl.columns:
                if col.is_primary_key or (tbl.name, col.name) in exclude_sources:
                    continue
                stem = identifier_stem(col.name)
                if stem is None or is_attribute_stem(stem):
                    continue
                family = type_family(col.data_type)
                if family is None:
                    continue
                columns.append((tbl, col, stem, family))
        return columns

    def target_keys(
        self,
        snapshot: SchemaSnapshot,
        source_table: str,
        stem: str,
        family: str,
    ) -> List[Tuple[TableInfo, ColumnInfo]]:
        """
        Target tables for a column, sorted by name.

        Only selected, non-empty tables other than the source with a
        single-column primary key of the same type family qualify. When the
        stem names one of them, only the named tables are returned.
        """
        eligible = {}
        for tbl in snapshot.selected_tables():
            if tbl.name == source_table or tbl.is_empty:
                continue
            pk_columns = tbl.primary_key_columns
            if len(pk_columns) != 1 or type_family(pk_columns[0].data_type) != family:
                continue
            eligible[tbl.name] = (tbl, pk_columns[0])

        named = matching_tables(stem, eligible)
        names = sorted(named) if named else sorted(eligible)
        return [eligible[name] for name in names]

    def _best_match(
        self,
        tbl: TableInfo,
        col: ColumnInfo,
        values: list,
        targets: List[Tuple[TableInfo, ColumnInfo]],
        cancel: Optional[CancelToken],
    ) -> Optional[Tuple[TableInfo, ColumnInfo, SamplingStats]]:
        best = None
        for target, pk in targets:
            if cancel is not None:
                cancel.raise_if_cancelled()
            try:
                matched = self.catalog.check_value_membership(target.name, pk.name, values)
            except SamplingFailedError as e:
                logger.warning(f"Skipping target {target.name}.{pk.name} for {tbl.name}.{col.name}: {e}")
                continue
            stats = SamplingStats(sampled=len(values), matched=min(matched, len(values)))
            if stats.match_fraction <= self.min_match_rate:
                continue
            if best is None or stats.match_fraction > best[2].match_fraction:
                best = (target, pk, stats)
        return best

    def run(self, snapshot, exclude_sources=frozenset(), progress=None, cancel=None):
        columns = self.candidate_columns(snapshot, exclude_sources)
        total = len(columns)
        candidates: List[RawCandidate] = []

        for index, (tbl, col, stem, family) in enumerate(columns, start=1):
            targets = self.target_keys(snapshot, tbl.name, stem, family)
            if targets:
                if cancel is not None:
                    cancel.raise_if_cancelled()
                try:
                    values = self.catalog.sample_column_values(tbl.name, col.name, self.sample_limit)
                except SamplingFailedError as e:
                    logger.warning(f"Skipping column {tbl.name}.{col.name}: {e}")
                    values = []

                if values:
                    best = self._best_match(tbl, col, values, targets, cancel)
                    if best is not None:
                        target, pk, stats = best
                        if cancel is not None:
                            cancel.raise_if_cancelled()
                        cardinality = measure_cardinality(self.catalog, tbl.name, col.name, target.name, pk.name)
                        candidates.append(RawCandidate(
                            source_table=tbl.name,
                            source_column=col.name,
                            target_table=target.name,
                            target_column=pk.name,
                            method=DetectionMethod.PK_MATCH,
                            stats=stats,
                            cardinality=cardinality,
                        ))
                        logger.debug(
                            f"pk_match {tbl.name}.{col.name} -> {target.name}.{pk.name} "
                            f"matched {stats.matched}/{stats.sampled}, {cardinality.value}"
                        )

            if progress is not None:
                progress(index, total, f"Examined {tbl.name}.{col.name}")

        logger.info(
            f"pk_match discovery examined {total} columns and found {len(candidates)} candidates "
            f"in datasource {snapshot.datasource_id}"
        )
        return candidates
