"""
Tests for LedgerService.

Tests cover:
- Appending transactions and projecting them onto the cached account
- Lazy account creation and lifetime totals
- Idempotent order accrual
- Overdraw protection with no partial writes
- Per-role permitted transaction kinds
- Input validation
- Reconciliation and cache rebuild
"""
import pytest
from sqlalchemy import func, update

from pointsledger.extensions import db
from pointsledger.models import AccountRole, LoyaltyAccount, LoyaltyTransaction, TransactionKind
from pointsledger.utils.exceptions import (
    AccountNotFoundError,
    DuplicateAccrualError,
    InsufficientPointsError,
    ValidationError,
)


def ledger_sum(account_id, role='customer'):
    return db.session.query(func.coalesce(func.sum(LoyaltyTransaction.points), 0)).filter_by(
        role=role, account_id=account_id
    ).scalar()


class TestAppend:
    """Tests for posting transactions."""

    def test_first_transaction_creates_account(self, app, ledger):
        """Test the first accrual creates the cached account."""
        transaction_id = ledger.append('C1', 'customer', 'earned', 10, source_order_id='O1')

        account = ledger.get_account('C1', 'customer')
        assert transaction_id is not None
        assert account.balance == 10
        assert account.total_earned == 10
        assert account.total_redeemed == 0
        assert account.last_activity_at is not None

    def test_balance_matches_ledger_after_mixed_operations(self, app, ledger):
        """Test the cached balance equals the sum of ledger points."""
        ledger.append('C1', 'customer', 'earned', 10, source_order_id='O1')
        ledger.append('C1', 'customer', 'earned', 10, source_order_id='O2')
        ledger.append('C1', 'customer', 'redeemed', -15)
        ledger.append('C1', 'customer', 'admin_adjustment', 7, description='Goodwill')
        ledger.append('C1', 'customer', 'admin_adjustment', -2, description='Correction')

        account = ledger.get_account('C1', 'customer')
        assert account.balance == 10
        assert account.balance == ledger_sum('C1')
        assert account.total_earned == 27
        assert account.total_redeemed == 15

    def test_roles_are_separate_accounts(self, app, ledger):
        """Test the same id under two roles holds two balances."""
        ledger.append('X1', 'customer', 'earned', 10, source_order_id='O1')
        ledger.append('X1', 'representative', 'earned', 25, source_order_id='O1')

        assert ledger.get_account('X1', 'customer').balance == 10
        assert ledger.get_account('X1', 'representative').balance == 25

    def test_display_name_snapshot_is_stored(self, app, ledger):
        """Test a display name passed with a transaction lands on the account."""
        ledger.append('R1', 'representative', 'earned', 10, source_order_id='O1', display_name='Ana')
        ledger.append('R1', 'representative', 'earned', 10, source_order_id='O2')

        assert ledger.get_account('R1', 'representative').display_name == 'Ana'

    def test_default_description(self, app, ledger):
        """Test earned rows get a readable default description."""
        ledger.append('C1', 'customer', 'earned', 10, source_order_id='O9')

        row = ledger.history('C1', 'customer')[0]
        assert row.description == 'Earned 10 points for order O9'


class TestIdempotentAccrual:
    """Tests for the unique (role, account_id, source_order_id) key on earned rows."""

    def test_duplicate_order_raises_and_changes_nothing(self, app, ledger):
        """Test re-posting an order leaves one row and one increment."""
        ledger.append('C1', 'customer', 'earned', 10, source_order_id='O1')

        with pytest.raises(DuplicateAccrualError):
            ledger.append('C1', 'customer', 'earned', 10, source_order_id='O1')

        account = ledger.get_account('C1', 'customer')
        assert account.balance == 10
        assert account.total_earned == 10
        assert LoyaltyTransaction.query.filter_by(source_order_id='O1').count() == 1

    def test_same_order_for_customer_and_representative(self, app, ledger):
        """Test one order credits each role once."""
        ledger.append('C1', 'customer', 'earned', 10, source_order_id='O1')
        ledger.append('R1', 'representative', 'earned', 10, source_order_id='O1')

        assert LoyaltyTransaction.query.filter_by(source_order_id='O1').count() == 2

    def test_find_accrual(self, app, ledger):
        """Test looking up the earned row for an order."""
        ledger.append('C1', 'customer', 'earned', 10, source_order_id='O1')

        assert ledger.find_accrual('C1', 'customer', 'O1').points == 10
        assert ledger.find_accrual('C1', 'customer', 'O2') is None

    def test_accrual_key_is_partial_unique_index(self, app):
        """Test the order key is a unique index limited to earned rows."""
        index = next(
            i for i in LoyaltyTransaction.__table__.indexes
            if i.name == 'uq_loyalty_transaction_order_accrual'
        )

        assert index.unique is True
        assert [c.name for c in index.columns] == ['role', 'account_id', 'source_order_id']
        assert str(index.dialect_options['sqlite']['where']) == "kind = 'earned'"
        assert str(index.dialect_options['postgresql']['where']) == "kind = 'earned'"

    def test_order_id_on_other_kinds_does_not_block_accrual(self, app, ledger):
        """Test a non-earned row naming an order does not occupy the accrual key."""
        db.session.add(LoyaltyTransaction(
            role='customer', account_id='C1', kind='admin_adjustment',
            points=1, source_order_id='O1', description='Imported correction',
        ))
        db.session.commit()

        ledger.append('C1', 'customer', 'earned', 10, source_order_id='O1')

        assert LoyaltyTransaction.query.filter_by(source_order_id='O1').count() == 2
        with pytest.raises(DuplicateAccrualError):
            ledger.append('C1', 'customer', 'earned', 10, source_order_id='O1')


class TestOverdraw:
    """Tests for debits that would take a balance negative."""

    def test_debit_larger_than_balance_is_rejected(self, app, ledger, funded_customer):
        """Test an overdraw leaves balance, totals and ledger unchanged."""
        with pytest.raises(InsufficientPointsError) as exc_info:
            ledger.append(funded_customer, 'customer', 'redeemed', -15)

        assert exc_info.value.code == 'INSUFFICIENT_POINTS'
        account = ledger.get_account(funded_customer, 'customer')
        assert account.balance == 10
        assert account.total_redeemed == 0
        assert LoyaltyTransaction.query.count() == 1

    def test_debit_on_unknown_account_is_rejected(self, app, ledger):
        """Test a debit never creates an account."""
        with pytest.raises(InsufficientPointsError):
            ledger.append('GHOST', 'customer', 'admin_adjustment', -5, description='Oops')

        assert LoyaltyAccount.query.count() == 0
        assert LoyaltyTransaction.query.count() == 0

    def test_debit_to_exactly_zero_is_allowed(self, app, ledger, funded_customer):
        """Test draining the balance to zero succeeds."""
        ledger.append(funded_customer, 'customer', 'redeemed', -10)

        assert ledger.get_account(funded_customer, 'customer').balance == 0


class TestKindsAndValidation:
    """Tests for per-role kinds and malformed input."""

    def test_representative_cannot_redeem(self, app, ledger):
        """Test representatives may not post redeemed rows."""
        ledger.append('R1', 'representative', 'earned', 10, source_order_id='O1')

        with pytest.raises(ValidationError) as exc_info:
            ledger.append('R1', 'representative', 'redeemed', -5)
        assert exc_info.value.field == 'kind'

    def test_representative_admin_debit_allowed(self, app, ledger):
        """Test representatives accept negative admin adjustments."""
        ledger.append('R1', 'representative', 'earned', 10, source_order_id='O1')
        ledger.append('R1', 'representative', 'admin_adjustment', -4, description='Fix')

        assert ledger.get_account('R1', 'representative').balance == 6

    @pytest.mark.parametrize('points', [0, 1.5, True, 'ten', None])
    def test_bad_points_rejected(self, app, ledger, points):
        """Test zero and non-integer deltas are rejected."""
        with pytest.raises(ValidationError):
            ledger.append('C1', 'customer', 'admin_adjustment', points, description='x')

    def test_integral_string_points_accepted(self, app, ledger):
        """Test '5' is accepted as 5."""
        ledger.append('C1', 'customer', 'admin_adjustment', '5', description='x')
        assert ledger.get_account('C1', 'customer').balance == 5

    def test_earned_requires_order(self, app, ledger):
        """Test earned rows need a source order."""
        with pytest.raises(ValidationError) as exc_info:
            ledger.append('C1', 'customer', 'earned', 10)
        assert exc_info.value.field == 'source_order_id'

    def test_earned_must_be_positive(self, app, ledger):
        """Test earned rows cannot debit."""
        with pytest.raises(ValidationError):
            ledger.append('C1', 'customer', 'earned', -10, source_order_id='O1')

    def test_redeemed_must_be_negative(self, app, ledger):
        """Test redeemed rows cannot credit."""
        with pytest.raises(ValidationError):
            ledger.append('C1', 'customer', 'redeemed', 10)

    def test_order_id_forbidden_on_adjustments(self, app, ledger):
        """Test only earned rows carry an order id."""
        with pytest.raises(ValidationError):
            ledger.append('C1', 'customer', 'admin_adjustment', 5, source_order_id='O1')

    def test_unknown_role_and_kind(self, app, ledger):
        """Test unknown role or kind is a validation error."""
        with pytest.raises(ValidationError):
            ledger.append('C1', 'driver', 'earned', 10, source_order_id='O1')
        with pytest.raises(ValidationError):
            ledger.append('C1', 'customer', 'bonus', 10)

    def test_blank_account_id(self, app, ledger):
        """Test blank ids are rejected."""
        with pytest.raises(ValidationError):
            ledger.append('  ', 'customer', 'earned', 10, source_order_id='O1')

    @pytest.mark.parametrize('points', [2**31, -2**31 - 1, 2**63, str(2**40)])
    def test_points_outside_column_range_rejected(self, app, ledger, points):
        """Test deltas that do not fit the 32-bit points column are rejected."""
        with pytest.raises(ValidationError) as exc_info:
            ledger.append('C1', 'customer', 'admin_adjustment', points, description='x')
        assert exc_info.value.field == 'points'
        assert LoyaltyTransaction.query.count() == 0

    def test_largest_column_value_accepted(self, app, ledger):
        """Test the upper bound of the points column is still a valid delta."""
        ledger.append('C1', 'customer', 'admin_adjustment', 2**31 - 1, description='x')
        assert ledger.get_account('C1', 'customer').balance == 2**31 - 1

    @pytest.mark.parametrize('description', [123, ['a'], {'text': 'a'}])
    def test_non_string_description_rejected(self, app, ledger, description):
        """Test a description that is not text is a validation error."""
        with pytest.raises(ValidationError) as exc_info:
            ledger.append('C1', 'customer', 'admin_adjustment', 5, description=description)
        assert exc_info.value.code == 'INVALID_DESCRIPTION'

    def test_blank_description_gets_default(self, app, ledger):
        """Test a whitespace description falls back to the generated one."""
        ledger.append('C1', 'customer', 'earned', 10, source_order_id='O1', description='   ')
        assert LoyaltyTransaction.query.one().description == 'Earned 10 points for order O1'

    def test_long_order_id_rejected(self, app, ledger):
        """Test an order id longer than its column is rejected before writing."""
        with pytest.raises(ValidationError) as exc_info:
            ledger.append('C1', 'customer', 'earned', 10, source_order_id='O' * 101)
        assert exc_info.value.field == 'source_order_id'
        assert LoyaltyAccount.query.count() == 0

    def test_order_id_at_column_size_accepted(self, app, ledger):
        """Test a 100-character order id is stored."""
        ledger.append('C1', 'customer', 'earned', 10, source_order_id='O' * 100)
        assert LoyaltyTransaction.query.one().source_order_id == 'O' * 100


class TestReads:
    """Tests for account lookups and history."""

    def test_unknown_account_raises(self, app, ledger):
        """Test an account with no history raises AccountNotFoundError."""
        with pytest.raises(AccountNotFoundError):
            ledger.get_account('NOPE', 'customer')

    def test_history_newest_first_with_paging(self, app, ledger):
        """Test history ordering and offset/limit."""
        for i in range(1, 4):
            ledger.append('C1', 'customer', 'earned', i, source_order_id=f'O{i}')

        rows = ledger.history('C1', 'customer')
        assert [r.source_order_id for r in rows] == ['O3', 'O2', 'O1']

        page = ledger.history('C1', 'customer', limit=1, offset=1)
        assert [r.source_order_id for r in page] == ['O2']


class TestReconcile:
    """Tests for cache verification and rebuild."""

    def test_reconcile_clean(self, app, ledger, funded_customer):
        """Test no drift after normal operations."""
        ledger.append(funded_customer, 'customer', 'redeemed', -3)
        assert ledger.reconcile() == []

    def test_reconcile_detects_and_rebuild_fixes_drift(self, app, ledger, funded_customer):
        """Test a tampered cache is reported and then repaired."""
        db.session.execute(
            update(LoyaltyAccount)
            .where(LoyaltyAccount.account_id == funded_customer)
            .values(balance=999)
        )
        db.session.commit()

        drift = ledger.reconcile('customer')
        assert len(drift) == 1
        assert drift[0]['cached']['balance'] == 999
        assert drift[0]['expected']['balance'] == 10

        account = ledger.rebuild_account(funded_customer, 'customer')
        assert account.balance == 10
        assert account.total_earned == 10
        assert ledger.reconcile() == []

    def test_rebuild_unknown_account(self, app, ledger):
        """Test rebuilding an account with no cache row."""
        with pytest.raises(AccountNotFoundError):
            ledger.rebuild_account('NOPE', 'customer')
