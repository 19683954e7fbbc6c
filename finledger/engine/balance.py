"""
Balance calculation.

DESIGN DECISION: An account balance is a pure fold over the transaction
history. It is never stored and never read back from a stored procedure.
The store's own balance function is only used as an optional cross-check
(see LedgerEngine.cross_check_balance), so the two definitions cannot
drift silently.

Rules:
- start from the account's opening balance
- only transactions dated on or before `as_of` count
- income adds, expense subtracts
- transfer subtracts from the source and adds to the destination
- adjustment moves the balance in its declared direction
- card-linked transactions are skipped (they belong to invoices)
- savings-goal movements are skipped (the goal is ring-fenced, see below)
- pending transactions count only when asked for

The fold is a plain sum, so input order never matters.

Savings goals are ring-fenced sub-balances of their linked account: the
money stays in the account balance but is not *available*. Liquid balance
is therefore the sum of available balances, and total assets is liquid
balance plus every goal's current amount.
"""

from datetime import date
from decimal import Decimal
from typing import Iterable, Optional
from uuid import UUID

from finledger.errors import ValidationError
from finledger.models.ledger import (
    Account,
    AdjustmentDirection,
    AdjustmentTransaction,
    ExpenseTransaction,
    IncomeTransaction,
    SavingsGoal,
    TransactionStatus,
    TransferTransaction,
    ValidationIssue,
)
from finledger.models.projection import BalanceResult


ZERO = Decimal("0")


def _reject_unknown(txn) -> None:
    issue = ValidationIssue(
        field="type",
        issue_type="invalid_value",
        message=f"Unknown transaction type: {getattr(txn, 'type', type(txn).__name__)!r}",
    )
    raise ValidationError(issue.message, [issue])


def counts_toward_balances(txn) -> bool:
    """Card purchases and savings-goal movements never touch account math."""
    return not txn.is_card_linked and not txn.is_goal_movement


def transaction_delta(txn, account_id: UUID) -> Decimal:
    """
    Signed effect of one transaction on one account.

    Raises ValidationError for anything that is not one of the four
    transaction variants.
    """
    if isinstance(txn, IncomeTransaction):
        if not counts_toward_balances(txn):
            return ZERO
        return txn.amount if txn.account_id == account_id else ZERO

    if isinstance(txn, ExpenseTransaction):
        if not counts_toward_balances(txn):
            return ZERO
        return -txn.amount if txn.account_id == account_id else ZERO

    if isinstance(txn, TransferTransaction):
        if not counts_toward_balances(txn):
            return ZERO
        delta = ZERO
        if txn.account_id == account_id:
            delta -= txn.amount
        if txn.destination_account_id == account_id:
            delta += txn.amount
        return delta

    if isinstance(txn, AdjustmentTransaction):
        if not counts_toward_balances(txn) or txn.account_id != account_id:
            return ZERO
        if txn.direction == AdjustmentDirection.INCREASE:
            return txn.amount
        return -txn.amount

    _reject_unknown(txn)


def _status_counts(txn, include_pending: bool) -> bool:
    return txn.status == TransactionStatus.CONFIRMED or include_pending


def balance(
    account: Account,
    transactions: Iterable,
    as_of: date,
    include_pending: bool = False,
) -> Decimal:
    """Balance of `account` at the end of `as_of`."""
    total = account.opening_balance
    for txn in transactions:
        delta = transaction_delta(txn, account.id)
        if txn.date > as_of or not _status_counts(txn, include_pending):
            continue
        total += delta
    return total


def net_effect(
    transactions: Iterable,
    account_ids: set[UUID],
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    include_pending: bool = False,
    pending_only: bool = False,
) -> Decimal:
    """
    Combined effect of transactions on a set of accounts.

    Deltas are summed per account, so a transfer between two accounts of
    the set cancels out while a transfer leaving the set counts once.
    Both date bounds are inclusive.
    """
    total = ZERO
    for txn in transactions:
        if date_from is not None and txn.date < date_from:
            continue
        if date_to is not None and txn.date > date_to:
            continue
        if pending_only:
            if txn.status != TransactionStatus.PENDING:
                continue
        elif not _status_counts(txn, include_pending):
            continue
        for account_id in account_ids:
            total += transaction_delta(txn, account_id)
    return total


def reserved_by_goals(goals: Iterable[SavingsGoal]) -> dict[UUID, Decimal]:
    """Amount ring-fenced per linked account."""
    reserved: dict[UUID, Decimal] = {}
    for goal in goals:
        if goal.account_id is None:
            continue
        reserved[goal.account_id] = reserved.get(goal.account_id, ZERO) + goal.current_amount
    return reserved


def compute_balances(
    accounts: Iterable[Account],
    transactions: list,
    goals: Iterable[SavingsGoal],
    as_of: date,
) -> list[BalanceResult]:
    """BalanceResult for every non-archived account."""
    reserved = reserved_by_goals(goals)
    results = []
    for account in accounts:
        if account.is_archived:
            continue
        results.append(BalanceResult(
            account_id=account.id,
            name=account.name,
            include_in_total=account.include_in_total,
            balance=balance(account, transactions, as_of, include_pending=False),
            balance_with_pending=balance(account, transactions, as_of, include_pending=True),
            reserved=reserved.get(account.id, ZERO),
        ))
    return results


def liquid_balance(results: Iterable[BalanceResult]) -> Decimal:
    """Available money across accounts that count toward the total."""
    return sum(
        (r.available for r in results if r.include_in_total),
        ZERO,
    )


def savings_total(goals: Iterable[SavingsGoal]) -> Decimal:
    return sum((g.current_amount for g in goals), ZERO)


def total_assets(liquid: Decimal, goals: Iterable[SavingsGoal]) -> Decimal:
    return liquid + savings_total(goals)
