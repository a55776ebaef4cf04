"""
Read access to a datasource's catalog and values.

SchemaCatalog is the seam the discovery services use to look at a customer
database. The default implementation reflects the schema with SQLAlchemy's
inspector and samples values with bounded SQLAlchemy Core statements, so it
works against any dialect SQLAlchemy can connect to.

Every query is read-only. Sampling is capped by LIMIT and, on PostgreSQL, by
a per-transaction statement_timeout.
"""

from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Any, Callable, Iterator, List, Optional, Sequence

from sqlalchemy import column, create_engine, distinct, exc, func, inspect, select, table, text
from sqlalchemy.engine import Connection, Engine

from ..core.cancellation import CancelToken
from ..core.config import settings
from ..core.errors import CatalogUnavailableError, SamplingFailedError
from ..core.logging import get_logger
from ..db.models import Datasource
from ..schemas.catalog import ColumnInfo, ForeignKeyInfo, TableInfo
from ..schemas.discovery import JoinStats

logger = get_logger("services.schema_catalog")


class SchemaCatalog(ABC):
    """Catalog and sampling queries for one datasource."""

    @abstractmethod
    def get_tables(self, cancel: Optional[CancelToken] = None) -> List[TableInfo]:
        """Tables with columns, primary key flags and row counts; `cancel` is checked per table."""

    @abstractmethod
    def get_foreign_keys(self) -> List[ForeignKeyInfo]:
        """Declared foreign key constraints between the datasource's tables."""

    @abstractmethod
    def get_row_count(self, table_name: str) -> int:
        """Exact row count of a table."""

    @abstractmethod
    def sample_column_values(self, table_name: str, column_name: str, limit: int) -> List[Any]:
        """Up to `limit` distinct non-null values of a column."""

    @abstractmethod
    def check_value_membership(self, table_name: str, column_name: str, values: Sequence[Any]) -> int:
        """Number of distinct `values` present in table_name.column_name."""

    @abstractmethod
    def analyze_join(
        self, source_table: str, source_column: str, target_table: str, target_column: str
    ) -> JoinStats:
        """Row counts of the equality join source_column = target_column."""

    def close(self) -> None:
        """Release connections held by the catalog."""


def type_name(sql_type: Any, engine: Engine) -> str:
    """Render a reflected column type as the dialect's type name, e.g. INTEGER or VARCHAR(36)."""
    try:
        return sql_type.compile(dialect=engine.dialect)
    except exc.CompileError:
        return type(sql_type).__name__.upper()


class SQLAlchemySchemaCatalog(SchemaCatalog):
    """
    SchemaCatalog backed by a SQLAlchemy engine.

    Args:
        engine: Engine connected to the customer database
        schema_name: Schema to reflect; None for the connection's default schema
        statement_timeout_ms: statement_timeout for sampling queries on PostgreSQL
        membership_batch_size: Values per IN (...) membership query
        join_sample_rows: Source rows examined when measuring join cardinality
        owns_engine: Dispose the engine on close()
    """

    def __init__(
        self,
        engine: Engine,
        schema_name: Optional[str] = None,
        statement_timeout_ms: int = 0,
        membership_batch_size: int = 500,
        join_sample_rows: int = 10000,
        owns_engine: bool = False,
    ):
        self.engine = engine
        self.schema_name = schema_name
        self.statement_timeout_ms = statement_timeout_ms
        self.membership_batch_size = membership_batch_size
        self.join_sample_rows = join_sample_rows
        self.owns_engine = owns_engine

    @classmethod
    def from_url(cls, connection_url: str, schema_name: Optional[str] = None) -> "SQLAlchemySchemaCatalog":
        engine = create_engine(connection_url, pool_pre_ping=True)
        return cls(
            engine,
            schema_name=schema_name,
            statement_timeout_ms=settings.sampling_statement_timeout_ms,
            membership_batch_size=settings.pk_match_membership_batch_size,
            join_sample_rows=settings.cardinality_sample_rows,
            owns_engine=True,
        )

    def _table(self, table_name: str, *column_names: str):
        return table(table_name, *[column(name) for name in column_names], schema=self.schema_name)

    @contextmanager
    def _sampling_connection(self) -> Iterator[Connection]:
        with self.engine.connect() as conn:
            if self.statement_timeout_ms and self.engine.dialect.name == "postgresql":
                # SET LOCAL only lasts for the current transaction
                conn.execute(text(f"SET LOCAL statement_timeout = {int(self.statement_timeout_ms)}"))
            yield conn
            conn.rollback()

    def get_tables(self, cancel: Optional[CancelToken] = None) -> List[TableInfo]:
        try:
            inspector = inspect(self.engine)
            tables = []
            for table_name in sorted(inspector.get_table_names(schema=self.schema_name)):
                if cancel is not None:
                    cancel.raise_if_cancelled()
                pk = inspector.get_pk_constraint(table_name, schema=self.schema_name) or {}
                pk_columns = set(pk.get("constrained_columns") or [])
                columns = tuple(
                    ColumnInfo(
                        name=col["name"],
                        data_type=type_name(col["type"], self.engine),
                        is_primary_key=col["name"] in pk_columns,
                        is_nullable=bool(col.get("nullable", True)),
                        ordinal_position=position,
                    )
                    for position, col in enumerate(
                        inspector.get_columns(table_name, schema=self.schema_name), start=1
                    )
                )
                tables.append(TableInfo(
                    name=table_name,
                    row_count=self.get_row_count(table_name),
                    columns=columns,
                ))
            return tables
        except exc.SQLAlchemyError as e:
            raise CatalogUnavailableError(f"Failed to read tables: {e}") from e

    def get_foreign_keys(self) -> List[ForeignKeyInfo]:
        try:
            inspector = inspect(self.engine)
            foreign_keys = []
            for table_name in sorted(inspector.get_table_names(schema=self.schema_name)):
                for fk in inspector.get_foreign_keys(table_name, schema=self.schema_name):
                    # Constraints pointing into another schema are cross-datasource
                    if fk.get("referred_schema") not in (None, self.schema_name):
                        continue
                    foreign_keys.append(ForeignKeyInfo(
                        name=fk.get("name"),
                        source_table=table_name,
                        source_columns=tuple(fk["constrained_columns"]),
                        target_table=fk["referred_table"],
                        target_columns=tuple(fk["referred_columns"]),
                    ))
            return foreign_keys
        except exc.SQLAlchemyError as e:
            raise CatalogUnavailableError(f"Failed to read foreign keys: {e}") from e

    def get_row_count(self, table_name: str) -> int:
        stmt = select(func.count()).select_from(self._table(table_name))
        try:
            with self.engine.connect() as conn:
                return int(conn.execute(stmt).scalar() or 0)
        except exc.SQLAlchemyError as e:
            raise CatalogUnavailableError(f"Failed to count rows of {table_name}: {e}") from e

    def sample_column_values(self, table_name: str, column_name: str, limit: int) -> List[Any]:
        tbl = self._table(table_name, column_name)
        col = tbl.c[column_name]
        stmt = select(col).distinct().where(col.is_not(None)).limit(limit)
        try:
            with self._sampling_connection() as conn:
                return [row[0] for row in conn.execute(stmt)]
        except exc.SQLAlchemyError as e:
            raise SamplingFailedError(f"Failed to sample {table_name}.{column_name}: {e}") from e

    def check_value_membership(self, table_name: str, column_name: str, values: Sequence[Any]) -> int:
        if not values:
            return 0
        tbl = self._table(table_name, column_name)
        col = tbl.c[column_name]
        unique_values = list(dict.fromkeys(values))
        matched = 0
        try:
            with self._sampling_connection() as conn:
                for start in range(0, len(unique_values), self.membership_batch_size):
                    batch = unique_values[start:start + self.membership_batch_size]
                    stmt = select(func.count(distinct(col))).where(col.in_(batch))
                    matched += int(conn.execute(stmt).scalar() or 0)
        except exc.SQLAlchemyError as e:
            raise SamplingFailedError(f"Failed to check values in {table_name}.{column_name}: {e}") from e
        return matched

    def analyze_join(self, source_table, source_column, target_table, target_column) -> JoinStats:
        source = self._table(source_table, source_column)
        source_col = source.c[source_column]
        # Only the first join_sample_rows non-null source rows take part
        sample = (
            select(source_col.label("value"))
            .where(source_col.is_not(None))
            .limit(self.join_sample_rows)
            .subquery("s")
        )
        target = self._table(target_table, target_column).alias("t")
        target_col = target.c[target_column]

        statements = (
            select(func.count()).select_from(sample.join(target, sample.c.value == target_col)),
            select(func.count()).select_from(sample).where(sample.c.value.in_(select(target_col))),
            select(func.count()).select_from(target).where(target_col.in_(select(sample.c.value))),
        )
        try:
            with self._sampling_connection() as conn:
                counts = [int(conn.execute(stmt).scalar() or 0) for stmt in statements]
        except exc.SQLAlchemyError as e:
            raise SamplingFailedError(
                f"Failed to join {source_table}.{source_column} to {target_table}.{target_column}: {e}"
            ) from e
        return JoinStats(join_count=counts[0], source_rows=counts[1], target_rows=counts[2])

    def close(self) -> None:
        if self.owns_engine:
            self.engine.dispose()


CatalogFactory = Callable[[Datasource], SchemaCatalog]


def default_catalog_factory(datasource: Datasource) -> SchemaCatalog:
    """Open a SQLAlchemy-backed catalog on the datasource's connection URL."""
    try:
        return SQLAlchemySchemaCatalog.from_url(datasource.connection_url, datasource.schema_name)
    except (exc.ArgumentError, exc.NoSuchModuleError) as e:
        raise CatalogUnavailableError(f"Invalid connection URL for datasource {datasource.name}: {e}") from e


def get_catalog_factory() -> CatalogFactory:
    """FastAPI dependency returning the catalog factory (overridable in tests)."""
    return default_catalog_factory
