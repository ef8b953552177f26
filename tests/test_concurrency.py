"""
Concurrency tests for the ledger.

Each worker thread pushes its own application context and so gets its own
database session and connection against a shared SQLite file.
"""
import threading

import pytest

from pointsledger.extensions import db
from pointsledger.models import AccountRole, LoyaltyTransaction, TransactionKind
from pointsledger.services import LedgerService, RedemptionService
from pointsledger.utils.exceptions import InsufficientPointsError


def run_in_threads(app, count, work):
    """Run work(i) in `count` threads released together; return outcomes by index."""
    barrier = threading.Barrier(count)
    outcomes = [None] * count

    def worker(i):
        with app.app_context():
            barrier.wait()
            try:
                outcomes[i] = ('ok', work(i))
            except Exception as e:
                outcomes[i] = ('error', e)
            finally:
                db.session.remove()

    threads = [threading.Thread(target=worker, args=(i,)) for i in range(count)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=60)
    return outcomes


class TestConcurrentWrites:
    """N concurrent writers on one account serialize without lost updates."""

    def test_concurrent_accruals_first_touch(self, file_app):
        """Test 8 accruals racing to create and credit one account."""
        outcomes = run_in_threads(
            file_app, 8,
            lambda i: LedgerService(max_retries=5).append(
                'C1', AccountRole.CUSTOMER, TransactionKind.EARNED, 10, source_order_id=f'O{i}'
            )
        )

        assert all(status == 'ok' for status, _ in outcomes), outcomes
        with file_app.app_context():
            account = LedgerService().get_account('C1', 'customer')
            assert account.balance == 80
            assert account.total_earned == 80
            assert LoyaltyTransaction.query.count() == 8
            assert LedgerService().reconcile() == []

    def test_concurrent_duplicate_deliveries(self, file_app):
        """Test the same order delivered 6 times at once credits once."""
        outcomes = run_in_threads(
            file_app, 6,
            lambda i: LedgerService(max_retries=5).append(
                'C1', AccountRole.CUSTOMER, TransactionKind.EARNED, 10, source_order_id='O1'
            )
        )

        assert sum(1 for status, _ in outcomes if status == 'ok') == 1
        with file_app.app_context():
            assert LedgerService().get_account('C1', 'customer').balance == 10
            assert LoyaltyTransaction.query.count() == 1

    def test_concurrent_redemptions_never_overdraw(self, file_app):
        """Test 10 redemptions of 10 against a balance of 50."""
        with file_app.app_context():
            LedgerService().append(
                'C1', AccountRole.CUSTOMER, TransactionKind.ADMIN_ADJUSTMENT, 50, description='seed'
            )

        outcomes = run_in_threads(
            file_app, 10,
            lambda i: RedemptionService().redeem('C1', 10, f'reward {i}')
        )

        successes = [o for status, o in outcomes if status == 'ok']
        failures = [o for status, o in outcomes if status == 'error']
        assert len(successes) == 5
        assert len(failures) == 5
        assert all(isinstance(e, InsufficientPointsError) for e in failures), failures

        with file_app.app_context():
            account = LedgerService().get_account('C1', 'customer')
            assert account.balance == 0
            assert account.total_redeemed == 50
            assert LedgerService().reconcile() == []


@pytest.mark.parametrize('workers', [4])
def test_mixed_accrual_and_redemption(file_app, workers):
    """Test interleaved credits and debits end on a serial-order balance."""
    with file_app.app_context():
        LedgerService().append(
            'C1', AccountRole.CUSTOMER, TransactionKind.ADMIN_ADJUSTMENT, 20, description='seed'
        )

    def work(i):
        if i % 2:
            return RedemptionService().redeem('C1', 5)
        return LedgerService().append(
            'C1', AccountRole.CUSTOMER, TransactionKind.EARNED, 10, source_order_id=f'O{i}'
        )

    outcomes = run_in_threads(file_app, workers, work)

    assert all(status == 'ok' for status, _ in outcomes), outcomes
    with file_app.app_context():
        assert LedgerService().get_account('C1', 'customer').balance == 20 + 2 * 10 - 2 * 5
