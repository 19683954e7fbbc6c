"""
Financial health score.

A single 0-100 figure built from five signals, starting at 50:

    positive balance        +20 / -20
    months of coverage      >=6: +20, >=3: +15, >=1: +5, else -10
    savings rate            >=20%: +15, >=10%: +10, >=0%: +5, else -10
    credit utilization      <=30%: +10, <=50%: 0, <=70%: -5, else -15
    balance trend           up: +5, down: -5

Coverage uses the average monthly account spending over the current
month and the three before it, counting only months that had spending.
"""

from datetime import date
from decimal import Decimal
from typing import Iterable

from finledger.engine.balance import ZERO
from finledger.engine.dates import add_months, month_end, month_start
from finledger.models.ledger import ExpenseTransaction, IncomeTransaction
from finledger.models.projection import BalanceTrend, CardExposure, FinancialHealth, HealthStatus


HUNDRED = Decimal("100")


def _confirmed_net(transactions: list, first: date, last: date) -> tuple[Decimal, Decimal]:
    income = expenses = ZERO
    for txn in transactions:
        if not txn.is_confirmed or txn.is_goal_movement or not first <= txn.date <= last:
            continue
        if isinstance(txn, IncomeTransaction):
            income += txn.amount
        elif isinstance(txn, ExpenseTransaction):
            expenses += txn.amount
    return income, expenses


def average_monthly_expenses(transactions: list, today: date, months: int = 4) -> Decimal:
    """Average account spending per month that had any, over the last `months` months."""
    first = month_start(add_months(today, -(months - 1)))
    last = month_end(today)
    totals: dict[date, Decimal] = {}
    for txn in transactions:
        if (
            isinstance(txn, ExpenseTransaction)
            and not txn.is_card_linked
            and not txn.is_goal_movement
            and first <= txn.date <= last
        ):
            key = month_start(txn.date)
            totals[key] = totals.get(key, ZERO) + txn.amount
    if not totals:
        return ZERO
    return sum(totals.values(), ZERO) / len(totals)


def balance_trend(current_net: Decimal, last_net: Decimal) -> BalanceTrend:
    if current_net > last_net * Decimal("1.1"):
        return BalanceTrend.UP
    if current_net < last_net * Decimal("0.9"):
        return BalanceTrend.DOWN
    return BalanceTrend.STABLE


def health_status(score: int) -> HealthStatus:
    if score >= 80:
        return HealthStatus.EXCELLENT
    if score >= 60:
        return HealthStatus.GOOD
    if score >= 40:
        return HealthStatus.FAIR
    return HealthStatus.POOR


def health_score(
    total_balance: Decimal,
    transactions: list,
    exposures: Iterable[CardExposure],
    today: date,
) -> FinancialHealth:
    exposures = list(exposures)
    credit_used = sum((e.current_invoice_amount for e in exposures), ZERO)
    credit_limit = sum((e.credit_limit for e in exposures), ZERO)
    utilization = credit_used / credit_limit * HUNDRED if credit_limit > 0 else ZERO

    average = average_monthly_expenses(transactions, today)
    coverage = total_balance / average if total_balance > 0 and average > 0 else ZERO

    this_month = month_start(today)
    income, expenses = _confirmed_net(transactions, this_month, month_end(today))
    savings_rate = (income - expenses) / income * HUNDRED if income > 0 else ZERO

    last_month = add_months(this_month, -1)
    last_income, last_expenses = _confirmed_net(transactions, last_month, month_end(last_month))
    trend = balance_trend(income - expenses, last_income - last_expenses)

    score = 50
    score += 20 if total_balance > 0 else -20

    if coverage >= 6:
        score += 20
    elif coverage >= 3:
        score += 15
    elif coverage >= 1:
        score += 5
    else:
        score -= 10

    if savings_rate >= 20:
        score += 15
    elif savings_rate >= 10:
        score += 10
    elif savings_rate >= 0:
        score += 5
    else:
        score -= 10

    if utilization <= 30:
        score += 10
    elif utilization <= 50:
        pass
    elif utilization <= 70:
        score -= 5
    else:
        score -= 15

    if trend == BalanceTrend.UP:
        score += 5
    elif trend == BalanceTrend.DOWN:
        score -= 5

    score = max(0, min(100, score))
    return FinancialHealth(
        score=score,
        status=health_status(score),
        months_of_coverage=coverage,
        savings_rate=savings_rate,
        credit_utilization=utilization,
        trend=trend,
        total_balance=total_balance,
        average_monthly_expenses=average,
        total_credit_used=credit_used,
        total_credit_limit=credit_limit,
    )
