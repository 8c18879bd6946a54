"""
SQL Storage Implementation

DESIGN DECISION: SQLAlchemy is the persistent backend because:
1. The ledger is relational (categories own budgets and rules)
2. Uniqueness rules map straight onto database constraints
3. SQLite needs no setup for a single user, and the URL swaps to
   PostgreSQL without touching business logic

TRADEOFFS:
- Calls are synchronous underneath the async interface. A personal
  ledger never has enough traffic for that to matter.
- Decimal columns round-trip through SQLite as strings-with-scale,
  so amounts are stored with two decimal places.

The implementation follows the abstract interface, so services never
import anything from this module.
"""

import json
from contextlib import contextmanager
from datetime import date as date_type, datetime
from decimal import Decimal
from typing import Iterator, Optional
from uuid import UUID

import structlog
from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    create_engine,
    delete,
    event,
    extract,
    func,
    or_,
    select,
)
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column, sessionmaker
from sqlalchemy.pool import StaticPool
from tenacity import (
    Retrying,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from budget_manager.config import DatabaseSettings, get_settings
from budget_manager.models.audit import AuditAction, AuditEntity, AuditEvent, AuditSeverity
from budget_manager.models.ledger import (
    Account,
    CategorizationRule,
    Category,
    LockedMonth,
    MonthlyBudget,
    Transaction,
    TransactionFilter,
)
from budget_manager.services.storage.interface import (
    AuditStorageInterface,
    ConnectionError,
    DuplicateError,
    LedgerStorageInterface,
    NotFoundError,
    StorageError,
)


logger = structlog.get_logger(__name__)


# =============================================================================
# TABLES
# =============================================================================

class Base(DeclarativeBase):
    pass


class AccountRow(Base):
    __tablename__ = "accounts"

    __table_args__ = (
        UniqueConstraint("name", name="uq_account_name"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    type: Mapped[str] = mapped_column(String(50), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class CategoryRow(Base):
    __tablename__ = "categories"

    __table_args__ = (
        UniqueConstraint("name", name="uq_category_name"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(String(500))
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class TransactionRow(Base):
    __tablename__ = "transactions"

    __table_args__ = (
        Index("ix_transactions_date", "date"),
        Index("ix_transactions_duplicate_lookup", "date", "amount", "account_id"),
        Index("ix_transactions_category_date", "category_id", "date"),
        Index("ix_transactions_account_date", "account_id", "date"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    date: Mapped[date_type] = mapped_column(Date, nullable=False)
    description: Mapped[str] = mapped_column(String(500), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(precision=18, scale=2), nullable=False)
    notes: Mapped[Optional[str]] = mapped_column(String(1000))
    is_adjustment: Mapped[bool] = mapped_column(Boolean, default=False)
    category_id: Mapped[int] = mapped_column(ForeignKey("categories.id"), nullable=False)
    account_id: Mapped[int] = mapped_column(ForeignKey("accounts.id"), nullable=False)
    user_id: Mapped[Optional[str]] = mapped_column(String(450))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))


class MonthlyBudgetRow(Base):
    __tablename__ = "monthly_budgets"

    __table_args__ = (
        UniqueConstraint("year", "month", "category_id", name="uq_budget_month_category"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    month: Mapped[int] = mapped_column(Integer, nullable=False)
    category_id: Mapped[int] = mapped_column(ForeignKey("categories.id"), nullable=False)
    budget_amount: Mapped[Decimal] = mapped_column(
        Numeric(precision=18, scale=2), nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))


class CategorizationRuleRow(Base):
    __tablename__ = "categorization_rules"

    __table_args__ = (
        Index("ix_rules_priority", "priority"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    priority: Mapped[int] = mapped_column(Integer, nullable=False, default=100)
    contains_text: Mapped[str] = mapped_column(String(200), nullable=False)
    category_id: Mapped[int] = mapped_column(ForeignKey("categories.id"), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class LockedMonthRow(Base):
    __tablename__ = "locked_months"

    __table_args__ = (
        UniqueConstraint("year", "month", name="uq_locked_month"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    month: Mapped[int] = mapped_column(Integer, nullable=False)
    locked_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    locked_by_user: Mapped[Optional[str]] = mapped_column(String(450))


class AuditEventRow(Base):
    __tablename__ = "audit_log"

    __table_args__ = (
        Index("ix_audit_entity", "entity_type", "entity_id"),
        Index("ix_audit_timestamp", "timestamp"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    event_id: Mapped[str] = mapped_column(String(36), nullable=False, unique=True)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    action: Mapped[str] = mapped_column(String(50), nullable=False)
    severity: Mapped[str] = mapped_column(String(20), nullable=False)
    entity_type: Mapped[str] = mapped_column(String(100), nullable=False)
    entity_id: Mapped[Optional[int]] = mapped_column(Integer)
    description: Mapped[Optional[str]] = mapped_column(String(500))
    old_values: Mapped[Optional[str]] = mapped_column(Text)
    new_values: Mapped[Optional[str]] = mapped_column(Text)
    actor: Mapped[Optional[str]] = mapped_column(String(450))


# =============================================================================
# CLIENT
# =============================================================================

def _is_memory_url(url: str) -> bool:
    return url in ("sqlite://", "sqlite:///:memory:") or "mode=memory" in url


def _enforce_sqlite_foreign_keys(engine: Engine) -> None:
    """SQLite ignores FOREIGN KEY clauses unless each connection opts in."""

    @event.listens_for(engine, "connect")
    def _enable_foreign_keys(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


class SqlClient:
    """
    Low-level database wrapper.

    Owns the engine and session factory and retries the first connection.
    """

    def __init__(self, settings: Optional[DatabaseSettings] = None):
        self._settings = settings or get_settings().database
        self._engine: Optional[Engine] = None
        self._session_factory: Optional[sessionmaker] = None

    def _build_engine(self) -> Engine:
        url = self._settings.url
        if _is_memory_url(url):
            # One shared connection, otherwise every session sees an empty database
            engine = create_engine(
                url,
                echo=self._settings.echo,
                connect_args={"check_same_thread": False},
                poolclass=StaticPool,
            )
        else:
            engine = create_engine(url, echo=self._settings.echo)

        if engine.dialect.name == "sqlite":
            _enforce_sqlite_foreign_keys(engine)
        return engine

    def connect(self) -> Engine:
        """
        Open the engine and verify the database answers.

        Raises:
            ConnectionError: If the database is unreachable after all retries
        """
        if self._engine is not None:
            return self._engine

        engine = self._build_engine()
        try:
            for attempt in Retrying(
                stop=stop_after_attempt(self._settings.connect_retries),
                wait=wait_exponential(multiplier=1, min=2, max=10),
                retry=retry_if_exception_type(OperationalError),
                reraise=True,
            ):
                with attempt:
                    with engine.connect():
                        pass
        except SQLAlchemyError as e:
            engine.dispose()
            raise ConnectionError(f"Failed to connect to database: {e}")

        self._engine = engine
        self._session_factory = sessionmaker(bind=engine, expire_on_commit=False)
        logger.info("database_connected", dialect=engine.dialect.name)
        return engine

    def create_schema(self) -> None:
        """Create any missing tables."""
        Base.metadata.create_all(self.connect())

    def dispose(self) -> None:
        if self._engine is not None:
            self._engine.dispose()
            self._engine = None
            self._session_factory = None

    @contextmanager
    def session(self) -> Iterator[Session]:
        """
        One unit of work: commit on success, roll back on failure.

        Foreign key violations surface as NotFoundError, other integrity
        violations as DuplicateError, every other database failure as
        StorageError.
        """
        self.connect()
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except IntegrityError as e:
            session.rollback()
            if "foreign key" in str(e.orig).lower():
                raise NotFoundError(f"Referenced row not found: {e.orig}")
            raise DuplicateError(f"Constraint violated: {e.orig}")
        except SQLAlchemyError as e:
            session.rollback()
            raise StorageError(f"Database operation failed: {e}")
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()


# =============================================================================
# LEDGER STORAGE
# =============================================================================

def _apply_filters(stmt, filters: Optional[TransactionFilter]):
    if filters is None:
        return stmt

    if filters.start_date:
        stmt = stmt.where(TransactionRow.date >= filters.start_date)
    if filters.end_date:
        stmt = stmt.where(TransactionRow.date <= filters.end_date)
    if filters.category_id is not None:
        stmt = stmt.where(TransactionRow.category_id == filters.category_id)
    if filters.account_id is not None:
        stmt = stmt.where(TransactionRow.account_id == filters.account_id)
    if filters.search_term and filters.search_term.strip():
        term = filters.search_term.lower()
        stmt = stmt.where(
            or_(
                func.lower(TransactionRow.description, type_=String).contains(term, autoescape=True),
                func.lower(TransactionRow.notes, type_=String).contains(term, autoescape=True),
            )
        )
    if filters.min_amount is not None:
        stmt = stmt.where(func.abs(TransactionRow.amount) >= filters.min_amount)
    if filters.max_amount is not None:
        stmt = stmt.where(func.abs(TransactionRow.amount) <= filters.max_amount)
    if filters.is_adjustment is not None:
        stmt = stmt.where(TransactionRow.is_adjustment == filters.is_adjustment)

    return stmt


def _newest_first(stmt):
    return stmt.order_by(
        TransactionRow.date.desc(),
        TransactionRow.created_at.desc(),
        TransactionRow.id.desc(),
    )


def _copy_onto(row: Base, model, exclude: set[str]) -> None:
    for field, value in model.model_dump(exclude=exclude).items():
        setattr(row, field, value)


class SqlLedgerStorage(LedgerStorageInterface):
    """SQLAlchemy implementation of ledger storage."""

    def __init__(self, client: Optional[SqlClient] = None):
        self._client = client or SqlClient()

    # -------------------------------------------------------------------------
    # Accounts
    # -------------------------------------------------------------------------

    def _find_account_by_name(self, session: Session, name: str) -> Optional[AccountRow]:
        stmt = select(AccountRow).where(func.lower(AccountRow.name) == name.strip().lower())
        return session.scalars(stmt).first()

    async def list_accounts(self, active_only: bool = False) -> list[Account]:
        with self._client.session() as session:
            stmt = select(AccountRow).order_by(AccountRow.name)
            if active_only:
                stmt = stmt.where(AccountRow.is_active.is_(True))
            return [Account.model_validate(r) for r in session.scalars(stmt)]

    async def get_account(self, account_id: int) -> Optional[Account]:
        with self._client.session() as session:
            row = session.get(AccountRow, account_id)
            return Account.model_validate(row) if row else None

    async def get_account_by_name(self, name: str) -> Optional[Account]:
        with self._client.session() as session:
            row = self._find_account_by_name(session, name)
            return Account.model_validate(row) if row else None

    async def add_account(self, account: Account) -> Account:
        with self._client.session() as session:
            if self._find_account_by_name(session, account.name):
                raise DuplicateError(f"Account name already exists: {account.name}")
            row = AccountRow(**account.model_dump(exclude={"id"}))
            session.add(row)
            session.flush()
            return Account.model_validate(row)

    async def update_account(self, account: Account) -> Account:
        with self._client.session() as session:
            row = session.get(AccountRow, account.id)
            if row is None:
                raise NotFoundError(f"Account not found: {account.id}")
            clash = self._find_account_by_name(session, account.name)
            if clash is not None and clash.id != account.id:
                raise DuplicateError(f"Account name already exists: {account.name}")
            _copy_onto(row, account, exclude={"id", "created_at"})
            session.flush()
            return Account.model_validate(row)

    async def delete_account(self, account_id: int) -> bool:
        with self._client.session() as session:
            row = session.get(AccountRow, account_id)
            if row is None:
                return False
            session.delete(row)
            return True

    async def account_has_transactions(self, account_id: int) -> bool:
        with self._client.session() as session:
            stmt = select(TransactionRow.id).where(TransactionRow.account_id == account_id).limit(1)
            return session.scalars(stmt).first() is not None

    # -------------------------------------------------------------------------
    # Categories
    # -------------------------------------------------------------------------

    def _find_category_by_name(self, session: Session, name: str) -> Optional[CategoryRow]:
        stmt = select(CategoryRow).where(func.lower(CategoryRow.name) == name.strip().lower())
        return session.scalars(stmt).first()

    async def list_categories(self, active_only: bool = False) -> list[Category]:
        with self._client.session() as session:
            stmt = select(CategoryRow).order_by(CategoryRow.name)
            if active_only:
                stmt = stmt.where(CategoryRow.is_active.is_(True))
            return [Category.model_validate(r) for r in session.scalars(stmt)]

    async def get_category(self, category_id: int) -> Optional[Category]:
        with self._client.session() as session:
            row = session.get(CategoryRow, category_id)
            return Category.model_validate(row) if row else None

    async def get_category_by_name(self, name: str) -> Optional[Category]:
        with self._client.session() as session:
            row = self._find_category_by_name(session, name)
            return Category.model_validate(row) if row else None

    async def add_category(self, category: Category) -> Category:
        with self._client.session() as session:
            if self._find_category_by_name(session, category.name):
                raise DuplicateError(f"Category name already exists: {category.name}")
            row = CategoryRow(**category.model_dump(exclude={"id"}))
            session.add(row)
            session.flush()
            return Category.model_validate(row)

    async def update_category(self, category: Category) -> Category:
        with self._client.session() as session:
            row = session.get(CategoryRow, category.id)
            if row is None:
                raise NotFoundError(f"Category not found: {category.id}")
            clash = self._find_category_by_name(session, category.name)
            if clash is not None and clash.id != category.id:
                raise DuplicateError(f"Category name already exists: {category.name}")
            _copy_onto(row, category, exclude={"id", "created_at"})
            session.flush()
            return Category.model_validate(row)

    async def delete_category(self, category_id: int) -> bool:
        with self._client.session() as session:
            row = session.get(CategoryRow, category_id)
            if row is None:
                return False
            session.execute(
                delete(MonthlyBudgetRow).where(MonthlyBudgetRow.category_id == category_id)
            )
            session.execute(
                delete(CategorizationRuleRow).where(
                    CategorizationRuleRow.category_id == category_id
                )
            )
            session.delete(row)
            return True

    async def category_has_transactions(self, category_id: int) -> bool:
        with self._client.session() as session:
            stmt = select(TransactionRow.id).where(TransactionRow.category_id == category_id).limit(1)
            return session.scalars(stmt).first() is not None

    # -------------------------------------------------------------------------
    # Transactions
    # -------------------------------------------------------------------------

    async def list_transactions(
        self,
        filters: Optional[TransactionFilter] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> list[Transaction]:
        with self._client.session() as session:
            stmt = _newest_first(_apply_filters(select(TransactionRow), filters))
            if offset:
                stmt = stmt.offset(offset)
            if limit is not None:
                stmt = stmt.limit(limit)
            return [Transaction.model_validate(r) for r in session.scalars(stmt)]

    async def count_transactions(self, filters: Optional[TransactionFilter] = None) -> int:
        with self._client.session() as session:
            stmt = _apply_filters(select(func.count(TransactionRow.id)), filters)
            return session.scalar(stmt) or 0

    async def get_transaction(self, transaction_id: int) -> Optional[Transaction]:
        with self._client.session() as session:
            row = session.get(TransactionRow, transaction_id)
            return Transaction.model_validate(row) if row else None

    async def add_transaction(self, transaction: Transaction) -> Transaction:
        return (await self.add_transactions([transaction]))[0]

    async def add_transactions(self, transactions: list[Transaction]) -> list[Transaction]:
        with self._client.session() as session:
            rows = [TransactionRow(**t.model_dump(exclude={"id"})) for t in transactions]
            session.add_all(rows)
            session.flush()
            return [Transaction.model_validate(r) for r in rows]

    async def update_transaction(self, transaction: Transaction) -> Transaction:
        with self._client.session() as session:
            row = session.get(TransactionRow, transaction.id)
            if row is None:
                raise NotFoundError(f"Transaction not found: {transaction.id}")
            _copy_onto(row, transaction, exclude={"id", "created_at"})
            session.flush()
            return Transaction.model_validate(row)

    async def update_transactions(self, transactions: list[Transaction]) -> int:
        with self._client.session() as session:
            for transaction in transactions:
                row = session.get(TransactionRow, transaction.id)
                if row is None:
                    raise NotFoundError(f"Transaction not found: {transaction.id}")
                _copy_onto(row, transaction, exclude={"id", "created_at"})
            return len(transactions)

    async def delete_transaction(self, transaction_id: int) -> bool:
        with self._client.session() as session:
            row = session.get(TransactionRow, transaction_id)
            if row is None:
                return False
            session.delete(row)
            return True

    async def transactions_on(self, day: date_type, account_id: int) -> list[Transaction]:
        with self._client.session() as session:
            stmt = select(TransactionRow).where(
                TransactionRow.date == day,
                TransactionRow.account_id == account_id,
            )
            return [Transaction.model_validate(r) for r in session.scalars(stmt)]

    async def transactions_in_month(self, year: int, month: int) -> list[Transaction]:
        with self._client.session() as session:
            stmt = _newest_first(
                select(TransactionRow).where(
                    extract("year", TransactionRow.date) == year,
                    extract("month", TransactionRow.date) == month,
                )
            )
            return [Transaction.model_validate(r) for r in session.scalars(stmt)]

    # -------------------------------------------------------------------------
    # Monthly budgets
    # -------------------------------------------------------------------------

    async def list_budgets(self, year: int, month: int) -> list[MonthlyBudget]:
        with self._client.session() as session:
            stmt = select(MonthlyBudgetRow).where(
                MonthlyBudgetRow.year == year,
                MonthlyBudgetRow.month == month,
            )
            return [MonthlyBudget.model_validate(r) for r in session.scalars(stmt)]

    async def get_budget(self, budget_id: int) -> Optional[MonthlyBudget]:
        with self._client.session() as session:
            row = session.get(MonthlyBudgetRow, budget_id)
            return MonthlyBudget.model_validate(row) if row else None

    async def find_budget(
        self,
        year: int,
        month: int,
        category_id: int,
    ) -> Optional[MonthlyBudget]:
        with self._client.session() as session:
            stmt = select(MonthlyBudgetRow).where(
                MonthlyBudgetRow.year == year,
                MonthlyBudgetRow.month == month,
                MonthlyBudgetRow.category_id == category_id,
            )
            row = session.scalars(stmt).first()
            return MonthlyBudget.model_validate(row) if row else None

    async def add_budget(self, budget: MonthlyBudget) -> MonthlyBudget:
        with self._client.session() as session:
            row = MonthlyBudgetRow(**budget.model_dump(exclude={"id"}))
            session.add(row)
            session.flush()
            return MonthlyBudget.model_validate(row)

    async def update_budget(self, budget: MonthlyBudget) -> MonthlyBudget:
        with self._client.session() as session:
            row = session.get(MonthlyBudgetRow, budget.id)
            if row is None:
                raise NotFoundError(f"Budget not found: {budget.id}")
            _copy_onto(row, budget, exclude={"id", "created_at"})
            session.flush()
            return MonthlyBudget.model_validate(row)

    async def delete_budget(self, budget_id: int) -> bool:
        with self._client.session() as session:
            row = session.get(MonthlyBudgetRow, budget_id)
            if row is None:
                return False
            session.delete(row)
            return True

    # -------------------------------------------------------------------------
    # Categorisation rules
    # -------------------------------------------------------------------------

    async def list_rules(self, active_only: bool = False) -> list[CategorizationRule]:
        with self._client.session() as session:
            stmt = select(CategorizationRuleRow).order_by(
                CategorizationRuleRow.priority,
                CategorizationRuleRow.id,
            )
            if active_only:
                stmt = stmt.where(CategorizationRuleRow.is_active.is_(True))
            return [CategorizationRule.model_validate(r) for r in session.scalars(stmt)]

    async def get_rule(self, rule_id: int) -> Optional[CategorizationRule]:
        with self._client.session() as session:
            row = session.get(CategorizationRuleRow, rule_id)
            return CategorizationRule.model_validate(row) if row else None

    async def add_rule(self, rule: CategorizationRule) -> CategorizationRule:
        with self._client.session() as session:
            row = CategorizationRuleRow(**rule.model_dump(exclude={"id"}))
            session.add(row)
            session.flush()
            return CategorizationRule.model_validate(row)

    async def update_rule(self, rule: CategorizationRule) -> CategorizationRule:
        with self._client.session() as session:
            row = session.get(CategorizationRuleRow, rule.id)
            if row is None:
                raise NotFoundError(f"Rule not found: {rule.id}")
            _copy_onto(row, rule, exclude={"id", "created_at"})
            session.flush()
            return CategorizationRule.model_validate(row)

    async def delete_rule(self, rule_id: int) -> bool:
        with self._client.session() as session:
            row = session.get(CategorizationRuleRow, rule_id)
            if row is None:
                return False
            session.delete(row)
            return True

    async def set_rule_priorities(self, priorities: dict[int, int]) -> int:
        with self._client.session() as session:
            changed = 0
            for rule_id, priority in priorities.items():
                row = session.get(CategorizationRuleRow, rule_id)
                if row is None:
                    continue
                row.priority = priority
                changed += 1
            return changed

    # -------------------------------------------------------------------------
    # Locked months
    # -------------------------------------------------------------------------

    async def get_locked_month(self, year: int, month: int) -> Optional[LockedMonth]:
        with self._client.session() as session:
            stmt = select(LockedMonthRow).where(
                LockedMonthRow.year == year,
                LockedMonthRow.month == month,
            )
            row = session.scalars(stmt).first()
            return LockedMonth.model_validate(row) if row else None

    async def list_locked_months(self) -> list[LockedMonth]:
        with self._client.session() as session:
            stmt = select(LockedMonthRow).order_by(
                LockedMonthRow.year.desc(),
                LockedMonthRow.month.desc(),
            )
            return [LockedMonth.model_validate(r) for r in session.scalars(stmt)]

    async def add_locked_month(self, locked_month: LockedMonth) -> LockedMonth:
        with self._client.session() as session:
            row = LockedMonthRow(**locked_month.model_dump(exclude={"id"}))
            session.add(row)
            session.flush()
            return LockedMonth.model_validate(row)

    async def delete_locked_month(self, year: int, month: int) -> bool:
        with self._client.session() as session:
            result = session.execute(
                delete(LockedMonthRow).where(
                    LockedMonthRow.year == year,
                    LockedMonthRow.month == month,
                )
            )
            return result.rowcount > 0


# =============================================================================
# AUDIT STORAGE
# =============================================================================

class SqlAuditStorage(AuditStorageInterface):
    """
    SQLAlchemy implementation of audit storage.

    Snapshots are stored as JSON text.
    """

    def __init__(self, client: Optional[SqlClient] = None):
        self._client = client or SqlClient()

    def _event_to_row(self, event: AuditEvent) -> AuditEventRow:
        return AuditEventRow(
            event_id=str(event.event_id),
            timestamp=event.timestamp,
            action=event.action.value,
            severity=event.severity.value,
            entity_type=event.entity_type.value,
            entity_id=event.entity_id,
            description=event.description,
            old_values=event.old_values_json(),
            new_values=event.new_values_json(),
            actor=event.actor,
        )

    def _row_to_event(self, row: AuditEventRow) -> AuditEvent:
        return AuditEvent(
            event_id=UUID(row.event_id),
            timestamp=row.timestamp,
            action=AuditAction(row.action),
            severity=AuditSeverity(row.severity),
            entity_type=AuditEntity(row.entity_type),
            entity_id=row.entity_id,
            description=row.description,
            old_values=json.loads(row.old_values) if row.old_values else None,
            new_values=json.loads(row.new_values) if row.new_values else None,
            actor=row.actor,
        )

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def append_event(self, event: AuditEvent) -> bool:
        with self._client.session() as session:
            session.add(self._event_to_row(event))
        return True

    async def get_events_by_entity(
        self,
        entity_type: AuditEntity,
        entity_id: int,
    ) -> list[AuditEvent]:
        with self._client.session() as session:
            stmt = (
                select(AuditEventRow)
                .where(
                    AuditEventRow.entity_type == entity_type.value,
                    AuditEventRow.entity_id == entity_id,
                )
                .order_by(AuditEventRow.id.desc())
            )
            return [self._row_to_event(r) for r in session.scalars(stmt)]

    async def get_recent_events(
        self,
        limit: int = 50,
        offset: int = 0,
    ) -> list[AuditEvent]:
        with self._client.session() as session:
            stmt = (
                select(AuditEventRow)
                .order_by(AuditEventRow.id.desc())
                .offset(offset)
                .limit(limit)
            )
            return [self._row_to_event(r) for r in session.scalars(stmt)]

    async def count_events(self) -> int:
        with self._client.session() as session:
            return session.scalar(select(func.count(AuditEventRow.id))) or 0
