"""
Tests for AccrualService and OrderCompletedEvent.

Tests cover:
- Order completion credits customer and representative
- Re-delivered events are absorbed as duplicates
- Per-account failure isolation
- Points-per-order rule lookup with default fallback
- Event payload validation
"""
import pytest
from decimal import Decimal
from unittest.mock import MagicMock

from pointsledger.models import LoyaltyTransaction
from pointsledger.services import AccrualService, LedgerService, OrderCompletedEvent, SettingsService
from pointsledger.utils.exceptions import LedgerConflictError, ValidationError


class TestOrderCompleted:
    """Tests for process_order_completed."""

    def test_customer_only_order(self, app, default_settings):
        """Test an order with no representative credits only the customer."""
        event = OrderCompletedEvent(order_id='O1', customer_account_id='C1')

        result = AccrualService().process_order_completed(event)

        assert result['success'] is True
        assert result['customer']['status'] == 'posted'
        assert result['customer']['points'] == 10
        assert result['representative']['status'] == 'skipped'

        account = LedgerService().get_account('C1', 'customer')
        assert account.balance == 10
        assert account.total_earned == 10
        rows = LoyaltyTransaction.query.filter_by(account_id='C1').all()
        assert len(rows) == 1
        assert rows[0].kind == 'earned'
        assert rows[0].source_order_id == 'O1'

    def test_reprocessing_is_a_no_op(self, app, default_settings):
        """Test the same event twice leaves one earned row per account."""
        event = OrderCompletedEvent(order_id='O1', customer_account_id='C1', representative_account_id='R1')
        accrual = AccrualService()

        accrual.process_order_completed(event)
        result = accrual.process_order_completed(event)

        assert result['success'] is True
        assert result['customer']['status'] == 'duplicate'
        assert result['representative']['status'] == 'duplicate'
        assert LedgerService().get_account('C1', 'customer').balance == 10
        assert LedgerService().get_account('R1', 'representative').balance == 10
        assert LoyaltyTransaction.query.count() == 2

    def test_representative_uses_its_own_rule(self, app):
        """Test each role reads its own points-per-order setting."""
        settings = SettingsService()
        settings.upsert('customer_points_per_order', '10')
        settings.upsert('representative_points_per_order', '25')
        event = OrderCompletedEvent(
            order_id='O1', customer_account_id='C1', representative_account_id='R1',
            customer_name='Carla', representative_name='Rui'
        )

        result = AccrualService().process_order_completed(event)

        assert result['representative']['points'] == 25
        rep = LedgerService().get_account('R1', 'representative')
        assert rep.balance == 25
        assert rep.display_name == 'Rui'

    def test_representative_failure_does_not_block_customer(self, app, default_settings):
        """Test a failing representative post leaves the customer credited."""
        real_ledger = LedgerService()
        ledger = MagicMock(wraps=real_ledger)

        def append(**kwargs):
            if kwargs['role'].value == 'representative':
                raise LedgerConflictError(kwargs['account_id'], 3)
            return real_ledger.append(**kwargs)

        ledger.append.side_effect = append
        event = OrderCompletedEvent(order_id='O1', customer_account_id='C1', representative_account_id='R1')

        result = AccrualService(SettingsService(), ledger).process_order_completed(event)

        assert result['success'] is False
        assert result['customer']['status'] == 'posted'
        assert result['representative']['status'] == 'failed'
        assert result['representative']['code'] == 'LEDGER_CONFLICT'
        assert real_ledger.get_account('C1', 'customer').balance == 10

    def test_customer_failure_does_not_block_representative(self, app, default_settings):
        """Test a failing customer post leaves the representative credited."""
        real_ledger = LedgerService()
        ledger = MagicMock(wraps=real_ledger)

        def append(**kwargs):
            if kwargs['role'].value == 'customer':
                raise LedgerConflictError(kwargs['account_id'], 3)
            return real_ledger.append(**kwargs)

        ledger.append.side_effect = append
        event = OrderCompletedEvent(order_id='O1', customer_account_id='C1', representative_account_id='R1')

        result = AccrualService(SettingsService(), ledger).process_order_completed(event)

        assert result['success'] is False
        assert result['customer']['status'] == 'failed'
        assert result['customer']['retryable'] is True
        assert result['representative']['status'] == 'posted'
        assert real_ledger.get_account('R1', 'representative').balance == 10
        assert LoyaltyTransaction.query.filter_by(account_id='C1').count() == 0

    def test_rejected_account_id_is_not_retryable(self, app, default_settings):
        """Test an account id the ledger rejects is reported as a permanent failure."""
        event = OrderCompletedEvent(order_id='O1', customer_account_id='C' * 65)

        result = AccrualService().process_order_completed(event)

        assert result['customer']['status'] == 'failed'
        assert result['customer']['code'] == 'INVALID_ACCOUNT_ID'
        assert result['customer']['retryable'] is False
        assert LoyaltyTransaction.query.count() == 0

    def test_unusable_points_rule_is_retryable(self, app):
        """Test a non-integer points setting fails as a retryable configuration fault."""
        SettingsService().upsert('customer_points_per_order', 'ten')

        result = AccrualService().process_order_completed(
            OrderCompletedEvent(order_id='O1', customer_account_id='C1')
        )

        assert result['customer']['status'] == 'failed'
        assert result['customer']['retryable'] is True
        assert LoyaltyTransaction.query.count() == 0

    def test_zero_rule_skips_posting(self, app):
        """Test a points-per-order of 0 posts nothing."""
        SettingsService().upsert('customer_points_per_order', '0')

        result = AccrualService().process_order_completed(
            OrderCompletedEvent(order_id='O1', customer_account_id='C1')
        )

        assert result['customer']['status'] == 'skipped'
        assert LoyaltyTransaction.query.count() == 0


class TestPointsRule:
    """Tests for points_for_order."""

    def test_missing_setting_falls_back_to_default(self, app):
        """Test the built-in default applies when nothing is stored."""
        assert AccrualService().points_for_order('customer') == 10
        assert AccrualService().points_for_order('representative') == 10

    def test_order_value_does_not_change_points(self, app, default_settings):
        """Test the rule is flat per order."""
        accrual = AccrualService()
        assert accrual.points_for_order('customer', Decimal('5.00')) == 10
        assert accrual.points_for_order('customer', Decimal('500.00')) == 10

    def test_injected_settings_store(self, app):
        """Test the settings store can be swapped."""
        settings = MagicMock()
        settings.get_int.return_value = 3

        assert AccrualService(settings=settings).points_for_order('customer') == 3
        settings.get_int.assert_called_once_with('customer_points_per_order', default=10)


class TestOrderCompletedEvent:
    """Tests for payload parsing."""

    def test_from_payload(self):
        """Test a full payload parses."""
        event = OrderCompletedEvent.from_payload({
            'order_id': 1001,
            'customer_account_id': ' C1 ',
            'representative_account_id': '',
            'order_value': '49.90',
            'completed_at': '2026-01-20T12:00:00Z',
        })

        assert event.order_id == '1001'
        assert event.customer_account_id == 'C1'
        assert event.representative_account_id is None
        assert event.order_value == Decimal('49.90')
        assert event.completed_at.year == 2026

    @pytest.mark.parametrize('payload,field', [
        ({'customer_account_id': 'C1'}, 'order_id'),
        ({'order_id': 'O1'}, 'customer_account_id'),
        ({'order_id': 'O1', 'customer_account_id': 'C1', 'order_value': 'lots'}, 'order_value'),
        ({'order_id': 'O1', 'customer_account_id': 'C1', 'completed_at': 'yesterday'}, 'completed_at'),
    ])
    def test_invalid_payload(self, payload, field):
        """Test missing or malformed fields raise ValidationError."""
        with pytest.raises(ValidationError) as exc_info:
            OrderCompletedEvent.from_payload(payload)
        assert exc_info.value.field == field

    def test_non_object_payload(self):
        """Test a non-dict body is rejected."""
        with pytest.raises(ValidationError):
            OrderCompletedEvent.from_payload(None)
