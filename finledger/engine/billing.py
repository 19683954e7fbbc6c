"""
Credit card billing cycles.

A card's closing day partitions the calendar into billing months: a
purchase made after the closing day lands on the next month's invoice,
anything on or before it lands on the current month's invoice.

"Orphans" are confirmed card purchases not yet attached to an invoice
record. Each one belongs to exactly one billing month (via billing_month),
so it is never counted on two invoices. For limit usage, however, every
orphan counts regardless of month: the money is committed either way.
"""

from collections import defaultdict
from datetime import date
from decimal import Decimal
from typing import Iterable
from uuid import UUID

from finledger.engine.dates import add_months, clamp_day, days_in_month, month_start
from finledger.models.ledger import (
    CreditCard,
    ExpenseTransaction,
    Invoice,
    InvoiceStatus,
)
from finledger.models.projection import CardExposure


ZERO = Decimal("0")


def billing_month(txn_date: date, closing_day: int) -> date:
    """
    First day of the billing month a purchase belongs to.

    Closing day 10: the 10th maps to the current month, the 11th to the
    next. A closing day past the month's length closes on the last day.
    """
    effective_closing = min(closing_day, days_in_month(txn_date.year, txn_date.month))
    if txn_date.day > effective_closing:
        return add_months(month_start(txn_date), 1)
    return month_start(txn_date)


def closing_date_for(reference_month: date, closing_day: int) -> date:
    return clamp_day(reference_month.year, reference_month.month, closing_day)


def due_date_for(reference_month: date, closing_day: int, due_day: int) -> date:
    """
    Due date of the invoice for `reference_month`.

    When the due day comes on or before the closing day, the invoice is due
    in the month after it closes.
    """
    target = reference_month
    if due_day <= closing_day:
        target = add_months(reference_month, 1)
    return clamp_day(target.year, target.month, due_day)


def orphans(card: CreditCard, transactions: Iterable) -> list[ExpenseTransaction]:
    """Confirmed purchases on `card` that no invoice has claimed yet."""
    return [
        t for t in transactions
        if isinstance(t, ExpenseTransaction)
        and t.credit_card_id == card.id
        and t.invoice_id is None
        and t.is_confirmed
    ]


def card_exposure(
    card: CreditCard,
    invoices: Iterable[Invoice],
    orphan_transactions: Iterable[ExpenseTransaction],
    today: date,
) -> CardExposure:
    """
    Limit usage for one card.

    total_committed = every non-paid invoice + every orphan.
    current_invoice_amount = open invoices of the billing month containing
    today + orphans that billing_month assigns to that month.
    """
    current_month = billing_month(today, card.closing_day)
    card_invoices = [i for i in invoices if i.credit_card_id == card.id]
    card_orphans = list(orphan_transactions)

    unpaid_total = sum(
        (i.remaining_amount for i in card_invoices if not i.is_paid),
        ZERO,
    )
    orphan_total = sum((t.amount for t in card_orphans), ZERO)

    current_invoices = sum(
        (
            i.total_amount for i in card_invoices
            if i.status == InvoiceStatus.OPEN and i.reference_month == current_month
        ),
        ZERO,
    )
    current_orphans = sum(
        (
            t.amount for t in card_orphans
            if billing_month(t.date, card.closing_day) == current_month
        ),
        ZERO,
    )

    total_committed = unpaid_total + orphan_total
    return CardExposure(
        credit_card_id=card.id,
        reference_month=current_month,
        current_invoice_amount=current_invoices + current_orphans,
        total_committed=total_committed,
        credit_limit=card.credit_limit,
        available_limit=card.credit_limit - total_committed,
        orphan_count=len(card_orphans),
    )


def group_by_billing_month(
    card: CreditCard,
    orphan_transactions: Iterable[ExpenseTransaction],
) -> dict[date, list[ExpenseTransaction]]:
    """Bucket orphans by the billing month they belong to."""
    buckets: dict[date, list[ExpenseTransaction]] = defaultdict(list)
    for txn in orphan_transactions:
        buckets[billing_month(txn.date, card.closing_day)].append(txn)
    return dict(buckets)


def plan_reconciliation(
    card: CreditCard,
    invoices: Iterable[Invoice],
    orphan_transactions: Iterable[ExpenseTransaction],
) -> tuple[list[Invoice], dict[UUID, UUID]]:
    """
    Attach orphans to invoices.

    Reuses the card's existing invoice for a billing month when there is
    one and creates exactly one new open invoice otherwise.

    Returns (new_invoices, {transaction_id: invoice_id}). Invoice totals on
    the returned new invoices already include their orphans; existing
    invoices are left for the caller to re-total.
    """
    by_month = {
        i.reference_month: i for i in invoices
        if i.credit_card_id == card.id
    }
    new_invoices: list[Invoice] = []
    assignments: dict[UUID, UUID] = {}

    for month, txns in sorted(group_by_billing_month(card, orphan_transactions).items()):
        invoice = by_month.get(month)
        if invoice is None:
            invoice = Invoice(
                owner_id=card.owner_id,
                credit_card_id=card.id,
                reference_month=month,
                closing_date=closing_date_for(month, card.closing_day),
                due_date=due_date_for(month, card.closing_day, card.due_day),
                total_amount=sum((t.amount for t in txns), ZERO),
            )
            by_month[month] = invoice
            new_invoices.append(invoice)
        for txn in txns:
            assignments[txn.id] = invoice.id

    return new_invoices, assignments
