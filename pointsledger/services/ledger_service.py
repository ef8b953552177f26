"""
Ledger Service for the loyalty points system.

Owns the two pieces of shared mutable state:
- the append-only transaction ledger (LoyaltyTransaction), and
- the cached balance projection (LoyaltyAccount).

ARCHITECTURE:
- append() posts one transaction and projects it onto the cached account in
  the same database transaction. Either both land or neither does.
- The projection is a single guarded relative UPDATE
  (`balance = balance + :points WHERE balance + :points >= 0`), so
  concurrent writers on the same account serialize on the row and can never
  lose an update or overdraw the balance.
- Accounts are created lazily. When two writers race to create the same
  account row, the loser's INSERT hits the unique constraint, its whole unit
  is rolled back and retried; the retry finds the row and takes the UPDATE
  path.
- Order accrual is idempotent through the unique ledger key
  (role, account_id, source_order_id).

Account ids are owned by the external customer/representative registry;
this service never checks that an id exists there.
"""
import logging
from typing import Any, Dict, List, Optional

from flask import current_app
from sqlalchemy import case, func, select, update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import (
    AccountRole,
    LoyaltyAccount,
    LoyaltyTransaction,
    PERMITTED_KINDS,
    TransactionKind,
    utc_now,
)
from ..utils.exceptions import (
    AccountNotFoundError,
    DuplicateAccrualError,
    InsufficientPointsError,
    LedgerConflictError,
    ValidationError,
)

logger = logging.getLogger(__name__)

MAX_ACCOUNT_ID_LENGTH = 64
MAX_DESCRIPTION_LENGTH = 500
MAX_SOURCE_ORDER_ID_LENGTH = 100

# Bounds of the 32-bit INTEGER points column
MIN_POINTS = -2**31
MAX_POINTS = 2**31 - 1


class _AccountCreateRace(Exception):
    """Another writer created the account row between our UPDATE and INSERT."""


def normalize_role(role) -> AccountRole:
    try:
        return AccountRole.parse(role)
    except ValueError as e:
        raise ValidationError(str(e), field='role')


def normalize_account_id(account_id) -> str:
    if account_id is None or isinstance(account_id, bool):
        raise ValidationError("account_id is required", field='account_id')
    value = str(account_id).strip()
    if not value:
        raise ValidationError("account_id is required", field='account_id')
    if len(value) > MAX_ACCOUNT_ID_LENGTH:
        raise ValidationError(
            f"account_id must be at most {MAX_ACCOUNT_ID_LENGTH} characters",
            field='account_id'
        )
    return value


def normalize_points(points) -> int:
    """Accept ints and integral strings; reject bools, floats, zero and out-of-range values."""
    if isinstance(points, bool):
        raise ValidationError("points must be an integer", field='points')
    if isinstance(points, str):
        try:
            points = int(points.strip())
        except ValueError:
            raise ValidationError("points must be an integer", field='points')
    if not isinstance(points, int):
        raise ValidationError("points must be an integer", field='points')
    if points == 0:
        raise ValidationError("points cannot be zero", field='points')
    if not MIN_POINTS <= points <= MAX_POINTS:
        raise ValidationError(
            f"points must be between {MIN_POINTS} and {MAX_POINTS}",
            field='points'
        )
    return points


def normalize_description(description) -> Optional[str]:
    """Stripped description truncated to the column size; None when blank."""
    if description is None:
        return None
    if not isinstance(description, str):
        raise ValidationError("description must be a string", field='description')
    return description.strip()[:MAX_DESCRIPTION_LENGTH] or None


class LedgerService:
    """
    Append-only points ledger with an atomically maintained balance cache.

    Usage:
        ledger = LedgerService()

        # Order accrual (idempotent per account and order)
        ledger.append('C1', 'customer', 'earned', 10, source_order_id='O1')

        # Manual correction
        ledger.append('R7', 'representative', 'admin_adjustment', -5,
                      description='Duplicate visit')
    """

    def __init__(self, max_retries: int = None):
        """
        Args:
            max_retries: Attempts per append when account creation races.
                Defaults to the LEDGER_MAX_RETRIES config value.
        """
        if max_retries is None:
            max_retries = current_app.config.get('LEDGER_MAX_RETRIES', 3)
        self.max_retries = max(1, int(max_retries))

    # ==================== Writes ====================

    def append(
        self,
        account_id: str,
        role,
        kind,
        points: int,
        source_order_id: str = None,
        description: str = None,
        display_name: str = None,
    ) -> int:
        """
        Append a transaction and project it onto the account balance.

        Args:
            account_id: External customer/representative id
            role: AccountRole or its value
            kind: TransactionKind or its value
            points: Signed, non-zero point delta
            source_order_id: Order id for earned accruals (required there,
                forbidden for every other kind)
            description: Human-readable reason
            display_name: Optional name snapshot stored on the account

        Returns:
            The new transaction id

        Raises:
            ValidationError: Malformed input, nothing written
            DuplicateAccrualError: The order was already credited to this account
            InsufficientPointsError: A debit larger than the current balance
            LedgerConflictError: Account creation kept racing other writers
        """
        role = normalize_role(role)
        account_id = normalize_account_id(account_id)
        kind = self._validate_kind(role, kind)
        points = normalize_points(points)
        source_order_id = self._validate_source(kind, points, source_order_id)
        description = normalize_description(description) or self._default_description(kind, points, source_order_id)
        if display_name is not None:
            display_name = str(display_name).strip()[:255] or None

        for attempt in range(1, self.max_retries + 1):
            try:
                transaction = self._append_once(
                    account_id, role, kind, points, source_order_id, description, display_name
                )
                db.session.commit()
            except _AccountCreateRace:
                db.session.rollback()
                logger.info(
                    f"Account {role.value}:{account_id} created concurrently, "
                    f"retrying (attempt {attempt}/{self.max_retries})"
                )
                continue
            except Exception:
                db.session.rollback()
                raise

            current_app.logger.info(
                f"Ledger: {role.value}:{account_id} {points:+d} pts ({kind.value})"
                + (f" order={source_order_id}" if source_order_id else "")
            )
            return transaction.id

        raise LedgerConflictError(account_id, self.max_retries)

    def _append_once(
        self,
        account_id: str,
        role: AccountRole,
        kind: TransactionKind,
        points: int,
        source_order_id: Optional[str],
        description: str,
        display_name: Optional[str],
    ) -> LoyaltyTransaction:
        now = utc_now()

        # Account row first so every writer locks in the same order
        # (account row, then ledger index).
        self._project(account_id, role, kind, points, now, display_name)

        transaction = LoyaltyTransaction(
            role=role.value,
            account_id=account_id,
            kind=kind.value,
            points=points,
            source_order_id=source_order_id,
            description=description,
            created_at=now,
        )
        db.session.add(transaction)
        try:
            db.session.flush()
        except IntegrityError:
            if kind == TransactionKind.EARNED and source_order_id:
                raise DuplicateAccrualError(account_id, source_order_id)
            raise
        return transaction

    def _project(
        self,
        account_id: str,
        role: AccountRole,
        kind: TransactionKind,
        points: int,
        now,
        display_name: Optional[str] = None,
    ) -> None:
        """
        Apply a relative adjustment to the cached account.

        One conditional UPDATE; a zero rowcount means either the account does
        not exist yet or the debit would overdraw it.
        """
        earned = points if points > 0 else 0
        redeemed = -points if kind == TransactionKind.REDEEMED else 0

        values = {
            'balance': LoyaltyAccount.balance + points,
            'total_earned': LoyaltyAccount.total_earned + earned,
            'total_redeemed': LoyaltyAccount.total_redeemed + redeemed,
            'last_activity_at': now,
            'updated_at': now,
        }
        if display_name:
            values['display_name'] = display_name

        stmt = (
            update(LoyaltyAccount)
            .where(
                LoyaltyAccount.role == role.value,
                LoyaltyAccount.account_id == account_id,
                LoyaltyAccount.balance + points >= 0,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        result = db.session.execute(stmt)
        if result.rowcount == 1:
            return

        current = db.session.execute(
            select(LoyaltyAccount.balance).where(
                LoyaltyAccount.role == role.value,
                LoyaltyAccount.account_id == account_id,
            )
        ).scalar_one_or_none()

        if current is not None:
            raise InsufficientPointsError(current=current, required=-points)
        if points < 0:
            raise InsufficientPointsError(current=0, required=-points)

        db.session.add(LoyaltyAccount(
            role=role.value,
            account_id=account_id,
            display_name=display_name,
            balance=points,
            total_earned=earned,
            total_redeemed=redeemed,
            last_activity_at=now,
            created_at=now,
            updated_at=now,
        ))
        try:
            db.session.flush()
        except IntegrityError:
            raise _AccountCreateRace()

    # ==================== Validation ====================

    @staticmethod
    def _validate_kind(role: AccountRole, kind) -> TransactionKind:
        try:
            kind = TransactionKind(kind.value if isinstance(kind, TransactionKind) else str(kind))
        except ValueError:
            raise ValidationError(f"Unknown transaction kind: {kind!r}", field='kind')
        if kind not in PERMITTED_KINDS[role]:
            raise ValidationError(
                f"{role.value.capitalize()} accounts cannot post '{kind.value}' transactions",
                field='kind'
            )
        return kind

    @staticmethod
    def _validate_source(kind: TransactionKind, points: int, source_order_id) -> Optional[str]:
        if source_order_id is not None:
            source_order_id = str(source_order_id).strip() or None
        if source_order_id and len(source_order_id) > MAX_SOURCE_ORDER_ID_LENGTH:
            raise ValidationError(
                f"source_order_id must be at most {MAX_SOURCE_ORDER_ID_LENGTH} characters",
                field='source_order_id'
            )

        if kind == TransactionKind.EARNED:
            if not source_order_id:
                raise ValidationError(
                    "source_order_id is required for earned transactions",
                    field='source_order_id'
                )
            if points < 0:
                raise ValidationError("earned points must be positive", field='points')
            return source_order_id

        if source_order_id:
            raise ValidationError(
                f"source_order_id is not allowed for {kind.value} transactions",
                field='source_order_id'
            )
        if kind == TransactionKind.REDEEMED and points > 0:
            raise ValidationError("redeemed points must be negative", field='points')
        return None

    @staticmethod
    def _default_description(kind: TransactionKind, points: int, source_order_id: Optional[str]) -> str:
        if kind == TransactionKind.EARNED:
            return f'Earned {points} points for order {source_order_id}'
        if kind == TransactionKind.REDEEMED:
            return f'Redeemed {-points} points'
        action = 'added' if points > 0 else 'removed'
        return f'Admin {action} {abs(points)} points'

    # ==================== Reads ====================

    def get_account(self, account_id: str, role) -> LoyaltyAccount:
        """
        Cached account record.

        Raises:
            AccountNotFoundError: No transaction has ever been posted for it
        """
        role = normalize_role(role)
        account_id = normalize_account_id(account_id)
        account = LoyaltyAccount.query.filter_by(role=role.value, account_id=account_id).first()
        if account is None:
            raise AccountNotFoundError(account_id, role.value)
        return account

    def history(self, account_id: str, role, limit: int = 50, offset: int = 0) -> List[LoyaltyTransaction]:
        """Transactions for one account, newest first."""
        role = normalize_role(role)
        account_id = normalize_account_id(account_id)
        return (
            LoyaltyTransaction.query
            .filter_by(role=role.value, account_id=account_id)
            .order_by(LoyaltyTransaction.created_at.desc(), LoyaltyTransaction.id.desc())
            .offset(max(offset, 0))
            .limit(max(limit, 0))
            .all()
        )

    def find_accrual(self, account_id: str, role, source_order_id: str) -> Optional[LoyaltyTransaction]:
        """The earned transaction recorded for an order, if any."""
        return LoyaltyTransaction.query.filter_by(
            role=normalize_role(role).value,
            account_id=normalize_account_id(account_id),
            source_order_id=str(source_order_id),
            kind=TransactionKind.EARNED.value,
        ).first()

    # ==================== Reconciliation ====================

    @staticmethod
    def _ledger_totals_query(role: AccountRole = None):
        query = db.session.query(
            LoyaltyTransaction.role,
            LoyaltyTransaction.account_id,
            func.coalesce(func.sum(LoyaltyTransaction.points), 0).label('balance'),
            func.coalesce(func.sum(
                case((LoyaltyTransaction.points > 0, LoyaltyTransaction.points), else_=0)
            ), 0).label('total_earned'),
            func.coalesce(func.sum(
                case(
                    (LoyaltyTransaction.kind == TransactionKind.REDEEMED.value, -LoyaltyTransaction.points),
                    else_=0
                )
            ), 0).label('total_redeemed'),
        ).group_by(LoyaltyTransaction.role, LoyaltyTransaction.account_id)
        if role is not None:
            query = query.filter(LoyaltyTransaction.role == role.value)
        return query

    def reconcile(self, role=None) -> List[Dict[str, Any]]:
        """
        Compare every cached account with its ledger aggregates.

        Returns:
            One entry per account whose cache disagrees with the ledger
            (empty when the ledger invariant holds everywhere)
        """
        role = normalize_role(role) if role is not None else None

        ledger = {
            (row.role, row.account_id): row
            for row in self._ledger_totals_query(role).all()
        }
        accounts_query = LoyaltyAccount.query
        if role is not None:
            accounts_query = accounts_query.filter_by(role=role.value)
        accounts = {(a.role, a.account_id): a for a in accounts_query.all()}

        drift = []
        for key in sorted(set(ledger) | set(accounts)):
            row = ledger.get(key)
            account = accounts.get(key)
            expected = {
                'balance': int(row.balance) if row else 0,
                'total_earned': int(row.total_earned) if row else 0,
                'total_redeemed': int(row.total_redeemed) if row else 0,
            }
            cached = {
                'balance': account.balance if account else None,
                'total_earned': account.total_earned if account else None,
                'total_redeemed': account.total_redeemed if account else None,
            }
            if expected != cached:
                drift.append({
                    'role': key[0],
                    'account_id': key[1],
                    'expected': expected,
                    'cached': cached,
                })

        if drift:
            logger.warning(f"Ledger reconciliation found {len(drift)} drifted account(s)")
        return drift

    def rebuild_account(self, account_id: str, role) -> LoyaltyAccount:
        """
        Recompute one account's cache from the ledger.

        Done as a single UPDATE with correlated subqueries so no concurrent
        append can slip between the aggregate read and the write.

        Raises:
            AccountNotFoundError: No cached account exists for the id
        """
        role = normalize_role(role)
        account_id = normalize_account_id(account_id)

        ledger_rows = (
            LoyaltyTransaction.role == role.value,
            LoyaltyTransaction.account_id == account_id,
        )
        balance_sq = (
            select(func.coalesce(func.sum(LoyaltyTransaction.points), 0))
            .where(*ledger_rows).scalar_subquery()
        )
        earned_sq = (
            select(func.coalesce(func.sum(LoyaltyTransaction.points), 0))
            .where(*ledger_rows, LoyaltyTransaction.points > 0).scalar_subquery()
        )
        redeemed_sq = (
            select(func.coalesce(func.sum(-LoyaltyTransaction.points), 0))
            .where(*ledger_rows, LoyaltyTransaction.kind == TransactionKind.REDEEMED.value)
            .scalar_subquery()
        )
        last_sq = select(func.max(LoyaltyTransaction.created_at)).where(*ledger_rows).scalar_subquery()

        try:
            result = db.session.execute(
                update(LoyaltyAccount)
                .where(LoyaltyAccount.role == role.value, LoyaltyAccount.account_id == account_id)
                .values(
                    balance=balance_sq,
                    total_earned=earned_sq,
                    total_redeemed=redeemed_sq,
                    last_activity_at=last_sq,
                    updated_at=utc_now(),
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                raise AccountNotFoundError(account_id, role.value)
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise

        current_app.logger.info(f"Rebuilt cached balance for {role.value}:{account_id}")
        return self.get_account(account_id, role)
