"""Tests for the change logger and its listeners."""

import asyncio

import pytest
from uuid import uuid4

from finledger.audit import ChangeLogger, create_correlation_id
from finledger.models import ChangeType, DerivedView


OWNER = "user-1"


class TestChangeLogger:
    """Tests for fan-out to invalidation listeners."""

    def setup_method(self):
        self.logger = ChangeLogger()

    def test_unfiltered_listener_hears_everything(self):
        """Test a listener without views gets every change."""
        heard = []
        self.logger.subscribe(heard.append)

        asyncio.run(self.logger.log_alerts_dispatched(OWNER, ["low-balance"]))
        asyncio.run(self.logger.log_invoice_paid(OWNER, uuid4(), "100.00", True))

        assert [c.change_type for c in heard] == [
            ChangeType.ALERTS_DISPATCHED,
            ChangeType.INVOICE_PAID,
        ]

    def test_views_filter(self):
        """Test a listener only hears changes that invalidate its views."""
        heard = []
        self.logger.subscribe(heard.append, views={DerivedView.SAVINGS_GOALS})

        asyncio.run(self.logger.log_invoice_paid(OWNER, uuid4(), "100.00", False))
        asyncio.run(self.logger.log_savings_movement(OWNER, uuid4(), "25.00", deposit=False))

        [change] = heard
        assert change.change_type == ChangeType.SAVINGS_WITHDRAWAL
        assert change.details == {"amount": "25.00"}

    def test_failing_listener_does_not_break_write(self):
        """Test a raising listener is skipped and later listeners still run."""
        heard = []

        def broken(change):
            raise RuntimeError("cache offline")

        self.logger.subscribe(broken)
        self.logger.subscribe(heard.append)

        asyncio.run(self.logger.log_transactions_confirmed(OWNER, [uuid4()]))
        assert len(heard) == 1

    def test_correlation_id_carried(self):
        """Test the writes of one operation share a correlation id."""
        heard = []
        self.logger.subscribe(heard.append)
        correlation_id = create_correlation_id()
        card_id = uuid4()

        asyncio.run(self.logger.log_invoices_reconciled(
            OWNER, card_id, invoices_created=1, transactions_attached=3,
            correlation_id=correlation_id,
        ))

        [change] = heard
        assert change.correlation_id == correlation_id
        assert change.entity_id == card_id
        log_dict = change.to_log_dict()
        assert log_dict["correlation_id"] == str(correlation_id)
        assert log_dict["invalidates"] == ["alerts", "card_exposure", "invoices"]

    def test_dispatch_invalidates_nothing(self):
        """Test pushing alerts does not make any view stale."""
        heard = []
        self.logger.subscribe(heard.append, views=set(DerivedView))
        asyncio.run(self.logger.log_alerts_dispatched(OWNER, ["a", "b"]))
        assert heard == []


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
