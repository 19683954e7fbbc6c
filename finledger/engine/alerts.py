"""
Alert Evaluator

DESIGN DECISION: Alerts are a pure function of a LedgerSnapshot. The
snapshot is fully fetched before evaluation starts, so no rule ever reads
storage and two evaluations of the same snapshot return the same alerts
with the same ids.

Each rule is a plain function returning a list of alerts. Rules run
isolated:
- a rule whose input is missing from the snapshot (None) is skipped
- a rule that raises is logged as alert_rule_failed
In both cases the remaining rules still run.

The two positive insights run last because they only fire when the
earlier rules produced no critical or warning alert.

The output is stably sorted critical -> warning -> info, so alerts of the
same severity keep rule order.
"""

from collections import defaultdict
from datetime import date
from decimal import Decimal
from typing import Callable, Optional

import structlog

from finledger.config import AlertSettings, get_settings
from finledger.engine.balance import ZERO
from finledger.engine.dates import days_between, days_in_month
from finledger.models.alerts import (
    Alert,
    AlertAction,
    AlertActionKind,
    AlertSeverity,
    AlertType,
    LedgerSnapshot,
)
from finledger.models.ledger import ExpenseTransaction, IncomeTransaction


logger = structlog.get_logger(__name__)

HUNDRED = Decimal("100")

Rule = Callable[["_Context"], list[Alert]]


class MissingInput(Exception):
    """A snapshot field a rule depends on was not provided."""

    def __init__(self, field: str):
        super().__init__(f"snapshot.{field} is not available")
        self.field = field


class _Context:
    """Snapshot plus settings, with the derived figures several rules share."""

    def __init__(
        self,
        snapshot: LedgerSnapshot,
        today: date,
        settings: AlertSettings,
        currency: str,
    ):
        self.snapshot = snapshot
        self.today = today
        self.settings = settings
        self.currency = currency
        self.alerts: list[Alert] = []

    def require(self, field: str):
        value = getattr(self.snapshot, field)
        if value is None:
            raise MissingInput(field)
        return value

    def money(self, amount: Decimal) -> str:
        return f"{self.currency} {amount:,.2f}"

    @staticmethod
    def when(days: int) -> str:
        if days == 0:
            return "today"
        if days == 1:
            return "tomorrow"
        return f"in {days} days"

    # --- shared figures -------------------------------------------------

    @property
    def liquid(self) -> Decimal:
        return self.require("liquid_balance")

    @property
    def savings(self) -> Decimal:
        return self.require("savings_total")

    @property
    def assets(self) -> Decimal:
        return self.liquid + self.savings

    @property
    def upcoming_obligations(self) -> Decimal:
        """Pending account expenses in the window plus invoices due in it."""
        expenses = sum(
            (
                t.amount for t in self.require("upcoming_transactions")
                if isinstance(t, ExpenseTransaction)
                and t.is_pending
                and not t.is_card_linked
                and not t.is_goal_movement
            ),
            ZERO,
        )
        invoices = sum(
            (i.remaining_amount for i in self.require("due_invoices")),
            ZERO,
        )
        return expenses + invoices

    def month_expenses(self) -> list[ExpenseTransaction]:
        return [
            t for t in self.require("month_transactions")
            if isinstance(t, ExpenseTransaction) and not t.is_goal_movement
        ]

    def month_income(self) -> list[IncomeTransaction]:
        return [
            t for t in self.require("month_transactions")
            if isinstance(t, IncomeTransaction) and not t.is_goal_movement
        ]

    def has_urgent(self) -> bool:
        return any(a.is_important for a in self.alerts)


# =============================================================================
# RULES
# =============================================================================

def low_balance(ctx: _Context) -> list[Alert]:
    """Liquid balance under the threshold, graded by whether savings cover what is due."""
    s = ctx.settings
    liquid, savings = ctx.liquid, ctx.savings
    if liquid >= s.low_balance_threshold:
        return []

    if savings >= ctx.upcoming_obligations:
        return [Alert(
            id="low-balance-covered",
            type=AlertType.BALANCE,
            severity=AlertSeverity.INFO,
            title="Low balance, but your reserves cover it",
            message=(
                f"Account balance: {ctx.money(liquid)}. Your savings goals "
                f"({ctx.money(savings)}) cover the upcoming expenses."
            ),
            action=AlertAction(label="View reserves"),
        )]

    critical = liquid < s.critical_balance_floor and ctx.assets < s.critical_assets_floor
    hint = (
        f"You have {ctx.money(savings)} in savings goals you could use."
        if savings > 0 else "Consider reviewing your spending."
    )
    return [Alert(
        id="low-balance",
        type=AlertType.BALANCE,
        severity=AlertSeverity.CRITICAL if critical else AlertSeverity.WARNING,
        title="Low available balance",
        message=f"Account balance: {ctx.money(liquid)}. {hint}",
        action=AlertAction(label="View accounts"),
    )]


def upcoming_obligations(ctx: _Context) -> list[Alert]:
    s = ctx.settings
    upcoming = ctx.upcoming_obligations
    if upcoming <= 0:
        return []

    liquid, assets = ctx.liquid, ctx.assets
    window = s.upcoming_window_days

    if upcoming > assets:
        return [Alert(
            id="upcoming-exceed-critical",
            type=AlertType.BALANCE,
            severity=AlertSeverity.CRITICAL,
            title="Upcoming expenses exceed your total assets",
            message=(
                f"{ctx.money(upcoming)} due in the next {window} days. "
                f"Your total assets are {ctx.money(assets)}."
            ),
            action=AlertAction(label="Review expenses"),
        )]
    if upcoming > liquid:
        return [Alert(
            id="upcoming-exceed-warning",
            type=AlertType.BALANCE,
            severity=AlertSeverity.WARNING,
            title="Upcoming expenses exceed your balance",
            message=(
                f"{ctx.money(upcoming)} due in the next {window} days is more than "
                f"your balance ({ctx.money(liquid)}). Your savings goals "
                f"({ctx.money(ctx.savings)}) can cover the difference."
            ),
            action=AlertAction(label="Review planning"),
        )]
    if upcoming > liquid * s.upcoming_high_ratio:
        percent = (upcoming / liquid * HUNDRED).quantize(Decimal("1"))
        return [Alert(
            id="upcoming-high",
            type=AlertType.BALANCE,
            severity=AlertSeverity.INFO,
            title="Keep an eye on your planning",
            message=(
                f"{ctx.money(upcoming)} due in the next {window} days "
                f"({percent}% of your available balance)."
            ),
        )]
    return []


def budgets(ctx: _Context) -> list[Alert]:
    """
    Per-budget usage.

    Pace compares usage against the share of the budget window elapsed
    up to today.
    """
    s = ctx.settings
    today = ctx.today
    expenses = ctx.month_expenses()
    alerts = []

    for budget in ctx.require("budgets"):
        if not budget.is_active or not budget.covers(today):
            continue

        spent = sum(
            (
                t.amount for t in expenses
                if t.category == budget.category and budget.covers(t.date)
            ),
            ZERO,
        )
        used = spent / budget.amount * HUNDRED
        window_days = days_between(budget.period_start, budget.period_end) + 1
        elapsed_days = days_between(budget.period_start, today) + 1
        elapsed = Decimal(elapsed_days) / Decimal(window_days) * HUNDRED
        metadata = {"budget_id": str(budget.id), "category": budget.category}

        if used >= s.budget_exceeded_percent:
            alerts.append(Alert(
                id=f"budget-exceeded-{budget.id}",
                type=AlertType.BUDGET,
                severity=AlertSeverity.CRITICAL,
                title=f"Budget exceeded: {budget.category}",
                message=(
                    f"You spent {ctx.money(spent)} of {ctx.money(budget.amount)} "
                    f"({used:.0f}%)."
                ),
                action=AlertAction(label="Review budget", kind=AlertActionKind.REVIEW_BUDGET),
                metadata=metadata,
            ))
        elif used >= s.budget_warning_percent:
            alerts.append(Alert(
                id=f"budget-warning-{budget.id}",
                type=AlertType.BUDGET,
                severity=AlertSeverity.WARNING,
                title=f"Budget almost used up: {budget.category}",
                message=(
                    f"You have used {used:.0f}% of this budget. "
                    f"{ctx.money(budget.amount - spent)} left."
                ),
                action=AlertAction(label="Reduce spending", kind=AlertActionKind.REDUCE_SPENDING),
                metadata=metadata,
            ))
        elif used > elapsed + s.budget_pace_margin_percent:
            projected = spent / elapsed_days * window_days
            alerts.append(Alert(
                id=f"budget-pace-{budget.id}",
                type=AlertType.BUDGET,
                severity=AlertSeverity.INFO,
                title=f"Spending fast: {budget.category}",
                message=(
                    f"You are spending faster than planned. At this pace you will "
                    f"reach {ctx.money(projected)} by {budget.period_end.isoformat()}."
                ),
                action=AlertAction(label="View details"),
                metadata=metadata,
            ))
    return alerts


def invoices_due(ctx: _Context) -> list[Alert]:
    s = ctx.settings
    alerts = []
    for invoice in ctx.require("due_invoices"):
        days = days_between(ctx.today, invoice.due_date)
        amount = invoice.remaining_amount
        if days < 0 or days > s.invoice_due_window_days or amount <= 0:
            continue
        card = ctx.snapshot.card_names.get(invoice.credit_card_id, "Card")
        alerts.append(Alert(
            id=f"invoice-due-{invoice.id}",
            type=AlertType.INVOICE,
            severity=(
                AlertSeverity.CRITICAL if days <= s.invoice_critical_days
                else AlertSeverity.WARNING
            ),
            title=f"Invoice due: {card}",
            message=f"Invoice of {ctx.money(amount)} is due {ctx.when(days)}.",
            action=AlertAction(label="View invoice"),
            metadata={"invoice_id": str(invoice.id)},
        ))
    return alerts


def spending_pattern(ctx: _Context) -> list[Alert]:
    """First category holding more than the dominant share of this month's spending."""
    s = ctx.settings
    if len(ctx.require("month_transactions")) < s.pattern_min_transactions:
        return []

    by_category: dict[str, Decimal] = defaultdict(lambda: ZERO)
    for txn in ctx.month_expenses():
        by_category[txn.category or "Uncategorized"] += txn.amount

    total = sum(by_category.values(), ZERO)
    if total <= 0:
        return []

    for category, amount in by_category.items():
        percent = amount / total * HUNDRED
        if percent > s.pattern_dominant_percent:
            return [Alert(
                id=f"pattern-dominant-{category}",
                type=AlertType.PATTERN,
                severity=AlertSeverity.INFO,
                title="Spending pattern detected",
                message=(
                    f'{percent:.0f}% of your spending this month went to "{category}". '
                    "Consider reviewing this category."
                ),
                action=AlertAction(label="Analyze"),
            )]
    return []


def savings_goals(ctx: _Context) -> list[Alert]:
    s = ctx.settings
    alerts = []
    for goal in ctx.require("savings_goals"):
        if goal.is_completed or not goal.target_amount:
            continue
        progress = goal.progress_percent
        metadata = {"goal_id": str(goal.id)}

        if s.savings_almost_percent <= progress < HUNDRED:
            alerts.append(Alert(
                id=f"savings-almost-{goal.id}",
                type=AlertType.SAVINGS,
                severity=AlertSeverity.INFO,
                title=f"Almost there: {goal.name}!",
                message=(
                    f"Only {ctx.money(goal.remaining_amount)} left to reach your goal "
                    f"({HUNDRED - progress:.0f}% to go)."
                ),
                action=AlertAction(label="Complete goal"),
                metadata=metadata,
            ))

        if goal.deadline is not None:
            days = days_between(ctx.today, goal.deadline)
            if 0 < days <= s.savings_deadline_days and progress < s.savings_deadline_progress_percent:
                alerts.append(Alert(
                    id=f"savings-deadline-{goal.id}",
                    type=AlertType.SAVINGS,
                    severity=AlertSeverity.WARNING,
                    title=f'Goal "{goal.name}" is due soon',
                    message=(
                        f"Deadline in {days} day(s) and you are at {progress:.0f}%. "
                        f"{ctx.money(goal.remaining_amount)} to go."
                    ),
                    action=AlertAction(label="View plan"),
                    metadata=metadata,
                ))
    return alerts


def upcoming_recurrences(ctx: _Context) -> list[Alert]:
    s = ctx.settings
    alerts = []
    for rec in ctx.require("recurrences"):
        if not rec.is_active or rec.type.value != "expense" or rec.next_occurrence is None:
            continue
        days = days_between(ctx.today, rec.next_occurrence)
        if 0 <= days <= s.recurrence_window_days:
            alerts.append(Alert(
                id=f"recurrence-upcoming-{rec.id}",
                type=AlertType.RECURRENCE,
                severity=AlertSeverity.INFO,
                title=f"Recurring expense: {rec.description}",
                message=f"{ctx.money(rec.amount)} will be charged {ctx.when(days)}.",
                action=AlertAction(label="View details"),
                metadata={"recurrence_id": str(rec.id)},
            ))
    return alerts


def installments_finishing(ctx: _Context) -> list[Alert]:
    """Groups with exactly one or two installments still pending."""
    alerts = []
    for item in ctx.require("installment_groups"):
        group = item.group
        remaining = len(item.pending)
        amount = ctx.money(group.installment_amount)
        if remaining == 1:
            alerts.append(Alert(
                id=f"installment-final-{group.id}",
                type=AlertType.INSTALLMENT,
                severity=AlertSeverity.INFO,
                title=f"Last installment: {group.description}",
                message=f"This is the last installment of {amount}!",
                action=AlertAction(label="View installments"),
                metadata={"group_id": str(group.id)},
            ))
        elif remaining == 2:
            alerts.append(Alert(
                id=f"installment-ending-{group.id}",
                type=AlertType.INSTALLMENT,
                severity=AlertSeverity.INFO,
                title=f"Installments ending: {group.description}",
                message=f"Only 2 installments of {amount} left.",
                action=AlertAction(label="View details"),
                metadata={"group_id": str(group.id)},
            ))
    return alerts


def installments_due(ctx: _Context) -> list[Alert]:
    s = ctx.settings
    alerts = []
    for item in ctx.require("installment_groups"):
        group = item.group
        for txn in item.pending:
            days = days_between(ctx.today, txn.date)
            if days < 0 or days > s.installment_window_days:
                continue
            label = f"{txn.installment_number}/{group.total_installments}"
            alerts.append(Alert(
                id=f"installment-due-{txn.id}",
                type=AlertType.INSTALLMENT,
                severity=(
                    AlertSeverity.WARNING if days <= s.installment_warning_days
                    else AlertSeverity.INFO
                ),
                title=f"Installment {label} due",
                message=f"{group.description}: {ctx.money(txn.amount)} due {ctx.when(days)}.",
                action=AlertAction(label="View installment"),
                metadata={
                    "group_id": str(group.id),
                    "transaction_id": str(txn.id),
                    "installment_number": txn.installment_number,
                },
            ))
    return alerts


def coverage_months(ctx: _Context) -> Optional[Decimal]:
    """
    Months the total assets would last at this month's spending pace.

    None means nothing was spent yet, i.e. unbounded coverage.
    """
    spent = sum((t.amount for t in ctx.month_expenses()), ZERO)
    if spent <= 0:
        return None
    day = ctx.today.day
    projected = spent / day * days_in_month(ctx.today.year, ctx.today.month)
    return ctx.assets / projected


def healthy_reserves(ctx: _Context) -> list[Alert]:
    if ctx.has_urgent() or ctx.assets <= 0:
        return []
    months = coverage_months(ctx)
    if months is not None and months < ctx.settings.healthy_coverage_months:
        return []
    covers = "all" if months is None else f"{months:.1f} months"
    return [Alert(
        id="healthy-reserves",
        type=AlertType.INSIGHT,
        severity=AlertSeverity.INFO,
        title="Healthy financial reserves",
        message=f"Your assets cover {covers} of expenses. Keep it up!",
    )]


def positive_balance(ctx: _Context) -> list[Alert]:
    if ctx.has_urgent() or len(ctx.alerts) >= ctx.settings.positive_max_alerts:
        return []
    income = sum((t.amount for t in ctx.month_income()), ZERO)
    expenses = sum((t.amount for t in ctx.month_expenses()), ZERO)
    if not (income > expenses > 0):
        return []
    return [Alert(
        id="positive-balance",
        type=AlertType.INSIGHT,
        severity=AlertSeverity.INFO,
        title="Healthy finances!",
        message=f"You are saving {ctx.money(income - expenses)} this month. Keep it up!",
    )]


RULES: list[tuple[str, Rule]] = [
    ("low_balance", low_balance),
    ("upcoming_obligations", upcoming_obligations),
    ("budgets", budgets),
    ("invoices_due", invoices_due),
    ("spending_pattern", spending_pattern),
    ("savings_goals", savings_goals),
    ("upcoming_recurrences", upcoming_recurrences),
    ("installments_finishing", installments_finishing),
    ("installments_due", installments_due),
    # positive insights look at the alerts above
    ("healthy_reserves", healthy_reserves),
    ("positive_balance", positive_balance),
]


def _run_rule(name: str, rule: Rule, ctx: _Context) -> None:
    try:
        ctx.alerts.extend(rule(ctx))
    except MissingInput as e:
        logger.info("alert_rule_skipped", rule=name, owner_id=ctx.snapshot.owner_id, missing=e.field)
    except Exception as e:
        logger.error(
            "alert_rule_failed",
            rule=name,
            owner_id=ctx.snapshot.owner_id,
            error=str(e),
            exc_info=True,
        )


def evaluate(
    snapshot: LedgerSnapshot,
    today: Optional[date] = None,
    settings: Optional[AlertSettings] = None,
    currency: Optional[str] = None,
    rules: Optional[list[tuple[str, Rule]]] = None,
) -> list[Alert]:
    """
    Evaluate every rule against a snapshot.

    Args:
        snapshot: Fully fetched inputs
        today: Evaluation date; defaults to snapshot.today
        settings: Thresholds; defaults to the configured AlertSettings
        currency: Symbol used in messages; defaults to AppSettings
        rules: Override the rule list (used by tests)

    Returns:
        Alerts sorted critical -> warning -> info, rule order kept within
        a severity
    """
    if settings is None:
        settings = get_settings().alerts
    if currency is None:
        currency = get_settings().app.currency_symbol

    ctx = _Context(snapshot, today or snapshot.today, settings, currency)
    for name, rule in (rules if rules is not None else RULES):
        _run_rule(name, rule, ctx)

    return sorted(ctx.alerts, key=lambda a: a.severity.rank)
