"""
Month projections and scenario simulation.

DESIGN DECISION: A month view is derived from three numbers that each
answer a different question:

- initial_balance: what the included accounts held when the month began
  (opening balances + confirmed movement dated before the month)
- current_balance: what they hold now, as far as this month is concerned
  (future month: initial; past month: initial + the whole month;
  current month: initial + movement up to today only)
- projected_balance: where they end up once the month's pending items
  settle (liquid balance today + pending income - pending expenses)

Card purchases and savings-goal movements are left out of all three:
card purchases reach accounts through invoice payments, and goal
movements never change the liquid total.

Scenario simulation repeats hypothetical items every month from a base
month to a target month and chains each month's simulated final balance
into the next month's simulated initial balance, so an item's effect
compounds. The unsimulated chain is carried alongside for comparison.
"""

from datetime import date, timedelta
from decimal import Decimal
from typing import Iterable, Optional

from finledger.engine.balance import (
    ZERO,
    compute_balances,
    counts_toward_balances,
    liquid_balance,
    net_effect,
)
from finledger.engine.dates import add_months, iter_months, month_bucket, month_end, month_start
from finledger.engine.recurrence import occurrences_between
from finledger.models.inputs import ScenarioItem
from finledger.models.ledger import (
    Account,
    ExpenseTransaction,
    IncomeTransaction,
    Recurrence,
    RecurrenceType,
    SavingsGoal,
)
from finledger.models.projection import (
    MonthBucket,
    MonthProjection,
    ProjectedOccurrence,
    SimulatedMonth,
    SimulatedProjection,
)


def _included(accounts: Iterable[Account]) -> list[Account]:
    return [a for a in accounts if a.counts_toward_total]


def _opening_total(accounts: Iterable[Account]) -> Decimal:
    return sum((a.opening_balance for a in accounts), ZERO)


def _in_month(txn, first: date, last: date) -> bool:
    return first <= txn.date <= last


def _cashflow(transactions: Iterable, account_ids: set) -> tuple[list, list]:
    """Split account-based income and expenses on the given accounts."""
    income, expenses = [], []
    for txn in transactions:
        if not counts_toward_balances(txn) or txn.account_id not in account_ids:
            continue
        if isinstance(txn, IncomeTransaction):
            income.append(txn)
        elif isinstance(txn, ExpenseTransaction):
            expenses.append(txn)
    return income, expenses


def pending_occurrences(
    recurrences: Iterable[Recurrence],
    transactions: Iterable,
    first: date,
    last: date,
    account_ids: set,
) -> list[ProjectedOccurrence]:
    """
    Recurrence dates in [first, last] that have no transaction yet.

    An occurrence counts as materialized when a transaction with the same
    recurrence_id and date exists. Card recurrences are skipped.
    """
    materialized = {
        (txn.recurrence_id, txn.date)
        for txn in transactions
        if getattr(txn, "recurrence_id", None) is not None
    }
    occurrences = []
    for rec in recurrences:
        if rec.credit_card_id is not None or rec.account_id not in account_ids:
            continue
        for day in occurrences_between(rec, first, last):
            if (rec.id, day) in materialized:
                continue
            occurrences.append(ProjectedOccurrence(
                recurrence_id=rec.id,
                type=rec.type,
                description=rec.description,
                amount=rec.amount,
                date=day,
            ))
    return sorted(occurrences, key=lambda o: o.date)


def initial_balance(
    month: date,
    accounts: Iterable[Account],
    transactions: list,
    include_pending: bool = False,
) -> Decimal:
    """Included accounts' balance at the end of the day before `month`."""
    included = _included(accounts)
    ids = {a.id for a in included}
    return _opening_total(included) + net_effect(
        transactions,
        ids,
        date_to=month_start(month) - timedelta(days=1),
        include_pending=include_pending,
    )


def month_view(
    month: date,
    accounts: list[Account],
    transactions: list,
    goals: list[SavingsGoal],
    recurrences: list[Recurrence],
    today: date,
) -> MonthProjection:
    """
    Project one month.

    INVARIANT: projected_balance == liquid_balance + pending_income
    - pending_expenses, for any month.
    """
    first = month_start(month)
    last = month_end(month)
    bucket = month_bucket(first, today)

    included = _included(accounts)
    ids = {a.id for a in included}

    initial = initial_balance(first, accounts, transactions)

    if bucket == MonthBucket.FUTURE:
        current = initial
    elif bucket == MonthBucket.PAST:
        current = initial + net_effect(transactions, ids, date_from=first, date_to=last)
    else:
        current = initial + net_effect(transactions, ids, date_from=first, date_to=today)

    liquid = liquid_balance(compute_balances(included, transactions, goals, today))

    month_txns = [t for t in transactions if _in_month(t, first, last)]
    income, expenses = _cashflow(month_txns, ids)

    pending_income = sum((t.amount for t in income if t.is_pending), ZERO)
    pending_expenses = sum((t.amount for t in expenses if t.is_pending), ZERO)

    recurring: list[ProjectedOccurrence] = []
    if bucket != MonthBucket.PAST:
        recurring = pending_occurrences(recurrences, transactions, first, last, ids)

    projected_income = sum((t.amount for t in income), ZERO) + sum(
        (o.amount for o in recurring if o.type == RecurrenceType.INCOME), ZERO
    )
    projected_expenses = sum((t.amount for t in expenses), ZERO) + sum(
        (o.amount for o in recurring if o.type == RecurrenceType.EXPENSE), ZERO
    )

    before_income, before_expenses = _cashflow(
        (t for t in transactions if t.date < first and t.is_pending),
        ids,
    )

    return MonthProjection(
        month=first,
        bucket=bucket,
        initial_balance=initial,
        current_balance=current,
        projected_balance=liquid + pending_income - pending_expenses,
        liquid_balance=liquid,
        pending_income=pending_income,
        pending_expenses=pending_expenses,
        projected_income=projected_income,
        projected_expenses=projected_expenses,
        income=sorted(income, key=lambda t: t.date),
        expenses=sorted(expenses, key=lambda t: t.date),
        recurring=recurring,
        pending_before_count=len(before_income) + len(before_expenses),
    )


def scenario_impact(items: Iterable[ScenarioItem]) -> Decimal:
    """Net monthly effect of hypothetical items (income +, expense -)."""
    return sum((item.signed_amount for item in items), ZERO)


def simulate(
    base_month: date,
    target_month: date,
    items: list[ScenarioItem],
    accounts: list[Account],
    transactions: list,
    goals: list[SavingsGoal],
    recurrences: list[Recurrence],
    today: date,
    max_months: Optional[int] = None,
) -> SimulatedProjection:
    """
    Simulate recurring hypothetical items from base_month to target_month.

    A target before the base is pulled up to the base. The base month
    starts from its forecast initial balance (confirmed and pending
    movement before it); every later month starts from the previous
    month's final balance, in both the original and the simulated chain.
    """
    base = month_start(base_month)
    target = max(month_start(target_month), base)
    if max_months is not None:
        target = min(target, add_months(base, max_months - 1))

    impact = scenario_impact(items)
    start = initial_balance(base, accounts, transactions, include_pending=True)

    months = []
    original_initial = simulated_initial = start
    for month in iter_months(base, target):
        view = month_view(month, accounts, transactions, goals, recurrences, today)
        flow = view.projected_income - view.projected_expenses

        original_final = original_initial + flow
        simulated_final = simulated_initial + flow + impact

        months.append(SimulatedMonth(
            month=month,
            projected_income=view.projected_income,
            projected_expenses=view.projected_expenses,
            scenario_impact=impact,
            original_initial=original_initial,
            original_final=original_final,
            simulated_initial=simulated_initial,
            simulated_final=simulated_final,
        ))
        original_initial, simulated_initial = original_final, simulated_final

    return SimulatedProjection(
        base_month=base,
        target_month=target,
        items=list(items),
        is_simulating=bool(items),
        scenario_impact=impact,
        months=months,
    )
