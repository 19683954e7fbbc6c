"""
Main Orchestrator for finledger

This module ties together all the components and defines the public
entry points for:
1. Reads (balances, card exposure, projections, alerts, health)
2. Writes (installments, recurrences, savings goals, invoices)
3. The batch alert dispatch job

DESIGN DECISION: The orchestrator enforces the boundaries:
- Only the façade reads the clock; every engine function gets `today`
- Every computation runs on fully fetched records (reads are gathered
  concurrently and any storage error propagates)
- Every write is validated first and logged to the change log after

This is the "glue" that keeps the pure engine modules pure.
"""

import asyncio
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Any, Callable, Optional
from uuid import UUID

import structlog
from pydantic import BaseModel, Field

from finledger.audit import ChangeLogger, configure_log_level, create_correlation_id
from finledger.config import AlertSettings, AppSettings, ProjectionSettings, get_settings
from finledger.engine.alerts import evaluate
from finledger.engine.balance import (
    balance,
    compute_balances,
    liquid_balance,
    savings_total,
    total_assets,
)
from finledger.engine.billing import card_exposure, orphans, plan_reconciliation
from finledger.engine.dates import month_end, month_start
from finledger.engine.health import health_score
from finledger.engine.installments import InstallmentEditResult, InstallmentScheduler
from finledger.engine.projection import month_view, simulate
from finledger.engine.recurrence import materialize
from finledger.errors import (
    ConflictError,
    LedgerError,
    NotFoundError,
    PartialBatchFailure,
    ValidationError,
)
from finledger.models.alerts import (
    Alert,
    BatchReport,
    DeliveryLog,
    InstallmentGroupWithChildren,
    LedgerSnapshot,
)
from finledger.models.inputs import InstallmentEdit, InstallmentInput, ScenarioItem
from finledger.models.ledger import (
    Account,
    CreditCard,
    ExpenseTransaction,
    Invoice,
    InvoiceStatus,
    SavingsGoal,
    TransactionStatus,
    TransferTransaction,
    quantize,
)
from finledger.models.projection import (
    BalanceResult,
    CardExposure,
    FinancialHealth,
    MonthProjection,
    SimulatedProjection,
)
from finledger.services.insights import (
    GeminiInsightGenerator,
    Insight,
    InsightGenerator,
    InsightKind,
    InsightUnavailableError,
)
from finledger.services.notifications import PushDispatcherInterface, notification_for
from finledger.services.storage import (
    INVOICE_CONFLICT_KEY,
    ConstraintUnavailableError,
    DeliveryLogInterface,
    GoogleSheetsClient,
    GoogleSheetsDeliveryLog,
    GoogleSheetsLedgerStorage,
    InMemoryDeliveryLog,
    InMemoryLedgerStorage,
    LedgerStorageInterface,
    Table,
)
from finledger.validation import LedgerValidator


logger = structlog.get_logger(__name__)


class RecurrenceRunResult(BaseModel):
    """Outcome of process_recurrences for one user."""

    recurrences_processed: int = 0
    transactions_created: int = 0
    failures: list[dict] = Field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.failures


class BalanceCheck(BaseModel):
    """Engine balance next to the store's own balance function."""

    account_id: UUID
    as_of: date
    computed: Decimal
    stored: Decimal

    @property
    def matches(self) -> bool:
        return self.computed == self.stored


class LedgerEngine:
    """
    Public façade over the engine.

    Reads:
    1. Fetch every record the computation needs (concurrently)
    2. Hand them, plus today's date, to a pure engine function
    3. Return the derived model; nothing derived is stored

    Writes:
    1. Validate → ValidationError before anything is written
    2. Write in an order that is safe to re-run
    3. Log the change with the views it invalidates
    """

    def __init__(
        self,
        storage: LedgerStorageInterface,
        change_logger: Optional[ChangeLogger] = None,
        validator: Optional[LedgerValidator] = None,
        insight_generator: Optional[InsightGenerator] = None,
        alert_settings: Optional[AlertSettings] = None,
        projection_settings: Optional[ProjectionSettings] = None,
        currency: Optional[str] = None,
        clock: Callable[[], date] = date.today,
    ):
        settings = get_settings()
        self._storage = storage
        self._change_logger = change_logger or ChangeLogger()
        self._validator = validator or LedgerValidator()
        self._insight_generator = insight_generator
        self._alert_settings = alert_settings or settings.alerts
        self._projection_settings = projection_settings or settings.projection
        self._currency = currency or settings.app.currency_symbol
        self._clock = clock
        self._installments = InstallmentScheduler(
            storage,
            change_logger=self._change_logger,
            validator=self._validator,
        )

    @property
    def change_logger(self) -> ChangeLogger:
        return self._change_logger

    def today(self) -> date:
        return self._clock()

    # =========================================================================
    # READ HELPERS
    # =========================================================================

    async def _query_all(self, owner_id: str, *tables: Table) -> list[list[Any]]:
        return list(await asyncio.gather(
            *(self._storage.query(table, owner_id) for table in tables)
        ))

    async def _get_owned(self, table: Table, record_id: UUID, owner_id: str, entity: str):
        record = await self._storage.get(table, record_id)
        if record is None or record.owner_id != owner_id:
            raise NotFoundError(entity, record_id)
        return record

    # =========================================================================
    # BALANCES AND CARDS
    # =========================================================================

    async def compute_account_balances(
        self,
        owner_id: str,
        as_of: Optional[date] = None,
    ) -> list[BalanceResult]:
        """Balance of every non-archived account as of `as_of` (default today)."""
        accounts, transactions, goals = await self._query_all(
            owner_id, Table.ACCOUNTS, Table.TRANSACTIONS, Table.SAVINGS_GOALS
        )
        return compute_balances(accounts, transactions, goals, as_of or self.today())

    async def resolve_card_exposure(self, owner_id: str, card_id: UUID) -> CardExposure:
        """
        Limit usage of one card.

        Raises:
            NotFoundError: No such card for this owner
        """
        card: CreditCard = await self._get_owned(
            Table.CREDIT_CARDS, card_id, owner_id, "credit_card"
        )
        invoices, candidates = await asyncio.gather(
            self._storage.query(Table.INVOICES, owner_id, filters={"credit_card_id": card.id}),
            self._storage.query(
                Table.TRANSACTIONS,
                owner_id,
                filters={"credit_card_id": card.id, "invoice_id": None},
            ),
        )
        return card_exposure(card, invoices, orphans(card, candidates), self.today())

    async def card_exposures(self, owner_id: str) -> list[CardExposure]:
        """Limit usage of every non-archived card."""
        cards, invoices, transactions = await self._query_all(
            owner_id, Table.CREDIT_CARDS, Table.INVOICES, Table.TRANSACTIONS
        )
        return self._exposures(cards, invoices, transactions, self.today())

    @staticmethod
    def _exposures(cards, invoices, transactions, today: date) -> list[CardExposure]:
        return [
            card_exposure(card, invoices, orphans(card, transactions), today)
            for card in cards
            if not card.is_archived
        ]

    async def cross_check_balance(
        self,
        owner_id: str,
        account_id: UUID,
        as_of: Optional[date] = None,
    ) -> BalanceCheck:
        """
        Compare the engine's balance with the store's balance function.

        A mismatch is logged, never corrected: the engine's figure is the
        one every other computation uses.
        """
        as_of = as_of or self.today()
        account: Account = await self._get_owned(Table.ACCOUNTS, account_id, owner_id, "account")
        transactions, stored = await asyncio.gather(
            self._storage.query(Table.TRANSACTIONS, owner_id),
            self._storage.account_balance(account_id, as_of),
        )
        check = BalanceCheck(
            account_id=account_id,
            as_of=as_of,
            computed=balance(account, transactions, as_of),
            stored=stored,
        )
        if not check.matches:
            logger.warning(
                "balance_cross_check_mismatch",
                account_id=str(account_id),
                computed=str(check.computed),
                stored=str(check.stored),
            )
        return check

    async def pay_invoice(
        self,
        owner_id: str,
        invoice_id: UUID,
        account_id: UUID,
        amount: Optional[Decimal] = None,
        correlation_id: Optional[UUID] = None,
    ) -> Invoice:
        """
        Pay an invoice (in full by default) from an account.

        Creates a confirmed expense on the account and adds the amount to
        the invoice's paid_amount; the invoice becomes PAID once nothing
        remains. If the invoice update fails the payment is removed again.

        Raises:
            NotFoundError: Unknown invoice or account
            ValidationError: Amount not positive or above what is due
        """
        correlation_id = correlation_id or create_correlation_id()
        invoice, account = await asyncio.gather(
            self._get_owned(Table.INVOICES, invoice_id, owner_id, "invoice"),
            self._get_owned(Table.ACCOUNTS, account_id, owner_id, "account"),
        )

        remaining = invoice.remaining_amount
        amount = quantize(amount) if amount is not None else remaining
        self._validator.ensure_valid(
            self._validator.validate_payment(amount, remaining),
            "invoice payment",
        )

        payment = ExpenseTransaction(
            owner_id=owner_id,
            status=TransactionStatus.CONFIRMED,
            amount=amount,
            date=self.today(),
            description=f"Credit card invoice {invoice.reference_month:%m/%Y}",
            category="credit_card_payment",
            account_id=account.id,
        )
        await self._storage.insert(Table.TRANSACTIONS, payment)

        paid_amount = invoice.paid_amount + amount
        fully_paid = paid_amount >= invoice.total_amount
        updated = invoice.model_copy(update={
            "paid_amount": paid_amount,
            "status": InvoiceStatus.PAID if fully_paid else invoice.status,
        })
        try:
            await self._storage.update(Table.INVOICES, updated)
        except LedgerError:
            await self._storage.delete(Table.TRANSACTIONS, payment.id)
            logger.error("invoice_payment_rolled_back", invoice_id=str(invoice_id))
            raise

        await self._change_logger.log_invoice_paid(
            owner_id=owner_id,
            invoice_id=invoice_id,
            amount=str(amount),
            fully_paid=fully_paid,
            correlation_id=correlation_id,
        )
        return updated

    async def reconcile_card(
        self,
        owner_id: str,
        card_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> int:
        """
        Attach a card's orphan purchases to invoices.

        Existing invoices of a billing month are reused; otherwise one new
        open invoice per month is upserted on (owner, card, month). When
        another writer created that invoice first, the orphans are attached
        to the stored one instead.

        Returns the number of transactions attached.
        """
        correlation_id = correlation_id or create_correlation_id()
        card: CreditCard = await self._get_owned(
            Table.CREDIT_CARDS, card_id, owner_id, "credit_card"
        )
        invoices, candidates = await asyncio.gather(
            self._storage.query(Table.INVOICES, owner_id, filters={"credit_card_id": card.id}),
            self._storage.query(
                Table.TRANSACTIONS,
                owner_id,
                filters={"credit_card_id": card.id, "invoice_id": None},
            ),
        )
        pending_orphans = orphans(card, candidates)
        if not pending_orphans:
            return 0

        new_invoices, assignments = plan_reconciliation(card, invoices, pending_orphans)

        # invoice id -> amount still to add to its stored total
        additions: dict[UUID, Decimal] = {}
        remap: dict[UUID, UUID] = {}
        created = 0
        for invoice in new_invoices:
            if await self._insert_invoice(invoice):
                created += 1
                continue
            stored = await self._storage.query(
                Table.INVOICES,
                owner_id,
                filters={"credit_card_id": card.id, "reference_month": invoice.reference_month},
            )
            if not stored:
                raise ConflictError(
                    f"Invoice for {invoice.reference_month} was rejected but not found",
                    key=(owner_id, str(card.id), invoice.reference_month.isoformat()),
                )
            remap[invoice.id] = stored[0].id

        attached = 0
        for txn in pending_orphans:
            invoice_id = assignments[txn.id]
            invoice_id = remap.get(invoice_id, invoice_id)
            await self._storage.update(
                Table.TRANSACTIONS,
                txn.model_copy(update={"invoice_id": invoice_id}),
            )
            attached += 1
            if invoice_id not in {i.id for i in new_invoices}:
                additions[invoice_id] = additions.get(invoice_id, Decimal("0")) + txn.amount

        for invoice_id, extra in additions.items():
            invoice = await self._storage.get(Table.INVOICES, invoice_id)
            await self._storage.update(
                Table.INVOICES,
                invoice.model_copy(update={"total_amount": invoice.total_amount + extra}),
            )

        await self._change_logger.log_invoices_reconciled(
            owner_id=owner_id,
            credit_card_id=card.id,
            invoices_created=created,
            transactions_attached=attached,
            correlation_id=correlation_id,
        )
        return attached

    async def _insert_invoice(self, invoice: Invoice) -> bool:
        try:
            return await self._storage.upsert(Table.INVOICES, invoice, INVOICE_CONFLICT_KEY)
        except ConstraintUnavailableError:
            logger.warning("invoice_upsert_unavailable", fallback="insert")
        try:
            await self._storage.insert(Table.INVOICES, invoice)
            return True
        except ConflictError as e:
            logger.warning("invoice_duplicate_recovered", invoice_id=str(invoice.id), error=str(e))
            return False

    # =========================================================================
    # INSTALLMENTS
    # =========================================================================

    async def create_installment_group(
        self,
        data: InstallmentInput,
        correlation_id: Optional[UUID] = None,
    ):
        return await self._installments.create(data, correlation_id)

    async def edit_installment_group(
        self,
        owner_id: str,
        group_id: UUID,
        edit: InstallmentEdit,
        correlation_id: Optional[UUID] = None,
    ) -> InstallmentEditResult:
        return await self._installments.edit(
            owner_id, group_id, edit, self.today(), correlation_id
        )

    async def delete_installment_group(
        self,
        owner_id: str,
        group_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> int:
        return await self._installments.delete(owner_id, group_id, correlation_id)

    async def confirm_installments(
        self,
        owner_id: str,
        transaction_ids: list[UUID],
        correlation_id: Optional[UUID] = None,
    ) -> int:
        return await self._installments.confirm(owner_id, transaction_ids, correlation_id)

    # =========================================================================
    # RECURRENCES
    # =========================================================================

    async def process_recurrences(
        self,
        owner_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> RecurrenceRunResult:
        """
        Materialize every active recurrence up to the configured horizon.

        Dates that already have a transaction are skipped, so running this
        twice creates nothing the second time. A recurrence without a valid
        account or card link is skipped and recorded on the result, as is a
        failed insert; a recurrence with a failed insert keeps its old
        next_occurrence so the next run retries it.
        """
        correlation_id = correlation_id or create_correlation_id()
        today = self.today()
        recurrences, transactions = await asyncio.gather(
            self._storage.query(Table.RECURRENCES, owner_id, filters={"is_active": True}),
            self._storage.query(Table.TRANSACTIONS, owner_id),
        )

        existing: dict[UUID, set[date]] = {}
        for txn in transactions:
            recurrence_id = getattr(txn, "recurrence_id", None)
            if recurrence_id is not None:
                existing.setdefault(recurrence_id, set()).add(txn.date)

        result = RecurrenceRunResult()
        for recurrence in recurrences:
            result.recurrences_processed += 1
            try:
                self._validator.ensure_valid(
                    self._validator.validate_recurrence(recurrence),
                    "recurrence",
                )
            except ValidationError as e:
                logger.warning(
                    "recurrence_skipped_invalid",
                    recurrence_id=str(recurrence.id),
                    fields=e.fields,
                )
                result.failures.append(PartialBatchFailure(recurrence.id, "validate", e).to_dict())
                continue

            created, following = materialize(
                recurrence,
                existing.get(recurrence.id, set()),
                today,
                self._projection_settings.recurrence_months_ahead,
            )

            inserted = 0
            failed = False
            for txn in created:
                try:
                    await self._storage.insert(Table.TRANSACTIONS, txn)
                    inserted += 1
                except LedgerError as e:
                    failed = True
                    result.failures.append(PartialBatchFailure(txn.id, "insert", e).to_dict())
            result.transactions_created += inserted

            if not failed and following != recurrence.next_occurrence:
                try:
                    await self._storage.update(
                        Table.RECURRENCES,
                        recurrence.model_copy(update={"next_occurrence": following}),
                    )
                except LedgerError as e:
                    result.failures.append(
                        PartialBatchFailure(recurrence.id, "update", e).to_dict()
                    )

            if inserted:
                await self._change_logger.log_recurrence_materialized(
                    owner_id=owner_id,
                    recurrence_id=recurrence.id,
                    created=inserted,
                    next_occurrence=following.isoformat() if following else None,
                    correlation_id=correlation_id,
                )

        if result.failures:
            logger.warning(
                "recurrence_run_partial",
                owner_id=owner_id,
                failures=len(result.failures),
            )
        return result

    # =========================================================================
    # SAVINGS GOALS
    # =========================================================================

    async def deposit_to_goal(
        self,
        owner_id: str,
        goal_id: UUID,
        amount: Decimal,
        correlation_id: Optional[UUID] = None,
    ) -> SavingsGoal:
        return await self._move_goal(owner_id, goal_id, amount, True, correlation_id)

    async def withdraw_from_goal(
        self,
        owner_id: str,
        goal_id: UUID,
        amount: Decimal,
        correlation_id: Optional[UUID] = None,
    ) -> SavingsGoal:
        return await self._move_goal(owner_id, goal_id, amount, False, correlation_id)

    async def _move_goal(
        self,
        owner_id: str,
        goal_id: UUID,
        amount: Decimal,
        deposit: bool,
        correlation_id: Optional[UUID],
    ) -> SavingsGoal:
        """
        Move money into or out of a goal.

        A goal linked to an account also gets a confirmed transfer carrying
        savings_goal_id, so the movement shows up in the account's history
        without changing its balance. The transfer is removed again if the
        goal update fails.
        """
        correlation_id = correlation_id or create_correlation_id()
        goal: SavingsGoal = await self._get_owned(
            Table.SAVINGS_GOALS, goal_id, owner_id, "savings_goal"
        )
        amount = quantize(amount)
        self._validator.ensure_valid(
            self._validator.validate_goal_movement(goal, amount, deposit),
            "savings deposit" if deposit else "savings withdrawal",
        )

        transfer = None
        if goal.account_id is not None:
            transfer = TransferTransaction(
                owner_id=owner_id,
                status=TransactionStatus.CONFIRMED,
                amount=amount,
                date=self.today(),
                description=(
                    f"Deposit into {goal.name}" if deposit else f"Withdrawal from {goal.name}"
                ),
                category="savings_deposit" if deposit else "savings_withdrawal",
                account_id=goal.account_id,
                savings_goal_id=goal.id,
            )
            await self._storage.insert(Table.TRANSACTIONS, transfer)

        new_amount = goal.current_amount + amount if deposit else goal.current_amount - amount
        updated = goal.model_copy(update={
            "current_amount": new_amount,
            "is_completed": bool(goal.target_amount and new_amount >= goal.target_amount),
        })
        try:
            await self._storage.update(Table.SAVINGS_GOALS, updated)
        except LedgerError:
            if transfer is not None:
                await self._storage.delete(Table.TRANSACTIONS, transfer.id)
                logger.error("savings_movement_rolled_back", goal_id=str(goal_id))
            raise

        await self._change_logger.log_savings_movement(
            owner_id=owner_id,
            goal_id=goal_id,
            amount=str(amount),
            deposit=deposit,
            correlation_id=correlation_id,
        )
        return updated

    # =========================================================================
    # PROJECTIONS AND HEALTH
    # =========================================================================

    async def month_projection(
        self,
        owner_id: str,
        month: Optional[date] = None,
    ) -> MonthProjection:
        """Month view for `month` (default: the current month)."""
        accounts, transactions, goals, recurrences = await self._query_all(
            owner_id,
            Table.ACCOUNTS,
            Table.TRANSACTIONS,
            Table.SAVINGS_GOALS,
            Table.RECURRENCES,
        )
        today = self.today()
        return month_view(month or today, accounts, transactions, goals, recurrences, today)

    async def simulate_scenario(
        self,
        owner_id: str,
        base_month: date,
        target_month: date,
        items: list[ScenarioItem],
    ) -> SimulatedProjection:
        """
        What-if projection of recurring hypothetical items. Nothing is written.

        Raises:
            ValidationError: The same scenario item appears twice
        """
        self._validator.ensure_valid(self._validator.validate_scenario(items), "scenario")
        accounts, transactions, goals, recurrences = await self._query_all(
            owner_id,
            Table.ACCOUNTS,
            Table.TRANSACTIONS,
            Table.SAVINGS_GOALS,
            Table.RECURRENCES,
        )
        return simulate(
            base_month,
            target_month,
            items,
            accounts,
            transactions,
            goals,
            recurrences,
            self.today(),
            max_months=self._projection_settings.max_simulation_months,
        )

    async def financial_health(self, owner_id: str) -> FinancialHealth:
        accounts, transactions, goals, cards, invoices = await self._query_all(
            owner_id,
            Table.ACCOUNTS,
            Table.TRANSACTIONS,
            Table.SAVINGS_GOALS,
            Table.CREDIT_CARDS,
            Table.INVOICES,
        )
        today = self.today()
        liquid = liquid_balance(compute_balances(accounts, transactions, goals, today))
        return health_score(
            total_assets(liquid, goals),
            transactions,
            self._exposures(cards, invoices, transactions, today),
            today,
        )

    # =========================================================================
    # ALERTS
    # =========================================================================

    async def build_snapshot(self, owner_id: str) -> LedgerSnapshot:
        """
        Fetch everything the alert rules read, in one round of reads.

        The upcoming window (pending transactions, open invoices) runs from
        today through upcoming_window_days ahead.
        """
        today = self.today()
        window_end = today + timedelta(days=self._alert_settings.upcoming_window_days)

        (
            accounts,
            transactions,
            goals,
            cards,
            due_invoices,
            budgets,
            recurrences,
            groups,
        ) = await asyncio.gather(
            self._storage.query(Table.ACCOUNTS, owner_id),
            self._storage.query(Table.TRANSACTIONS, owner_id),
            self._storage.query(Table.SAVINGS_GOALS, owner_id),
            self._storage.query(Table.CREDIT_CARDS, owner_id),
            self._storage.query(
                Table.INVOICES,
                owner_id,
                filters={"status": InvoiceStatus.OPEN},
                date_from=today,
                date_to=window_end,
            ),
            self._storage.query(Table.BUDGETS, owner_id, filters={"is_active": True}),
            self._storage.query(Table.RECURRENCES, owner_id),
            self._storage.query(Table.INSTALLMENT_GROUPS, owner_id),
        )

        first, last = month_start(today), month_end(today)
        children: dict[UUID, list] = {}
        for txn in transactions:
            group_id = getattr(txn, "installment_group_id", None)
            if group_id is not None:
                children.setdefault(group_id, []).append(txn)

        return LedgerSnapshot(
            owner_id=owner_id,
            today=today,
            liquid_balance=liquid_balance(compute_balances(accounts, transactions, goals, today)),
            savings_total=savings_total(goals),
            month_transactions=[t for t in transactions if first <= t.date <= last],
            upcoming_transactions=[
                t for t in transactions
                if t.is_pending and today <= t.date <= window_end
            ],
            due_invoices=due_invoices,
            card_names={card.id: card.name for card in cards},
            budgets=budgets,
            savings_goals=goals,
            recurrences=recurrences,
            installment_groups=[
                InstallmentGroupWithChildren(
                    group=group,
                    transactions=sorted(
                        children.get(group.id, []),
                        key=lambda t: t.installment_number,
                    ),
                )
                for group in groups
            ],
        )

    async def evaluate_alerts(self, owner_id: str) -> list[Alert]:
        """Current alerts for one user, most urgent first."""
        snapshot = await self.build_snapshot(owner_id)
        return evaluate(
            snapshot,
            today=snapshot.today,
            settings=self._alert_settings,
            currency=self._currency,
        )

    # =========================================================================
    # INSIGHTS
    # =========================================================================

    async def generate_insight(self, kind: InsightKind, context: dict[str, Any]) -> Insight:
        """
        Ask the AI collaborator for advisory text on precomputed figures.

        Raises:
            InsightUnavailableError: No generator configured, or the call failed
            InsightFormatError: The answer did not match the schema
        """
        if self._insight_generator is None:
            raise InsightUnavailableError("No insight generator configured")
        return await self._insight_generator.generate(kind, context)


class AlertDispatchJob:
    """
    Pushes important alerts to every subscribed user.

    Per user:
    1. Evaluate alerts
    2. Keep critical and warning ones not pushed in the dedupe window
    3. Push each and record the delivery

    Users run concurrently, bounded by a semaphore. One user's failure is
    logged and recorded on the BatchReport; the others still run. Old
    delivery logs are purged once all users are done.
    """

    def __init__(
        self,
        engine: LedgerEngine,
        dispatcher: PushDispatcherInterface,
        delivery_log: DeliveryLogInterface,
        change_logger: Optional[ChangeLogger] = None,
        app_settings: Optional[AppSettings] = None,
        clock: Callable[[], datetime] = datetime.utcnow,
    ):
        self._engine = engine
        self._dispatcher = dispatcher
        self._delivery_log = delivery_log
        self._change_logger = change_logger or engine.change_logger
        self._settings = app_settings or get_settings().app
        self._clock = clock

    async def run(self, owner_ids: Optional[list[str]] = None) -> BatchReport:
        if owner_ids is None:
            owner_ids = await self._dispatcher.active_subscribers()

        now = self._clock()
        report = BatchReport(users_checked=len(owner_ids))
        semaphore = asyncio.Semaphore(self._settings.batch_concurrency)

        async def guarded(owner_id: str) -> None:
            async with semaphore:
                try:
                    sent = await self._dispatch_user(owner_id, now)
                except Exception as e:
                    logger.error(
                        "alert_dispatch_user_failed",
                        owner_id=owner_id,
                        error=str(e),
                        exc_info=True,
                    )
                    report.failures.append(PartialBatchFailure(owner_id, "dispatch", e).to_dict())
                    return
                if sent:
                    report.users_with_alerts += 1
                    report.alerts_sent += sent

        await asyncio.gather(*(guarded(owner_id) for owner_id in owner_ids))

        cutoff = now - timedelta(days=self._settings.delivery_retention_days)
        try:
            report.logs_purged = await self._delivery_log.purge_before(cutoff)
        except LedgerError as e:
            logger.error("delivery_log_purge_failed", error=str(e))
            report.failures.append(PartialBatchFailure("delivery_logs", "purge", e).to_dict())

        logger.info(
            "alert_dispatch_completed",
            users_checked=report.users_checked,
            users_with_alerts=report.users_with_alerts,
            alerts_sent=report.alerts_sent,
            logs_purged=report.logs_purged,
            failures=len(report.failures),
        )
        return report

    async def _dispatch_user(self, owner_id: str, now: datetime) -> int:
        alerts = [a for a in await self._engine.evaluate_alerts(owner_id) if a.is_important]
        if not alerts:
            return 0

        since = now - timedelta(hours=self._settings.delivery_dedupe_hours)
        recent = await self._delivery_log.recent_alert_ids(owner_id, since)

        sent: list[str] = []
        for alert in alerts:
            if alert.id in recent:
                continue
            if not await self._dispatcher.send(owner_id, notification_for(alert)):
                logger.info("push_not_delivered", owner_id=owner_id, alert_id=alert.id)
                continue
            await self._delivery_log.record(DeliveryLog(
                owner_id=owner_id,
                alert_id=alert.id,
                alert_type=alert.type,
                sent_at=now,
            ))
            sent.append(alert.id)

        if sent:
            await self._change_logger.log_alerts_dispatched(
                owner_id=owner_id,
                alert_ids=sent,
            )
        return len(sent)


def create_app_components(
    use_storage: bool = True,
    dispatcher: Optional[PushDispatcherInterface] = None,
) -> tuple[LedgerEngine, Optional[AlertDispatchJob], Optional[GoogleSheetsClient]]:
    """
    Factory function to create all application components.

    Args:
        use_storage: Whether to initialize Google Sheets storage.
                     Set to False to run on in-memory storage.
        dispatcher: Push transport; without one no dispatch job is built

    Returns:
        (engine, dispatch_job, sheets_client)
    """
    settings = get_settings()
    configure_log_level(settings.app.log_level)

    sheets_client = None
    storage: LedgerStorageInterface = InMemoryLedgerStorage()
    delivery_log: DeliveryLogInterface = InMemoryDeliveryLog()

    if use_storage:
        try:
            sheets_client = GoogleSheetsClient()
            storage = GoogleSheetsLedgerStorage(sheets_client)
            delivery_log = GoogleSheetsDeliveryLog(sheets_client)
        except Exception as e:
            # Storage not configured - continue in memory
            logger.warning("storage_not_configured", error=str(e), fallback="in_memory")
            sheets_client = None

    insight_generator = None
    if validate_gemini_configured():
        insight_generator = GeminiInsightGenerator()

    change_logger = ChangeLogger()
    engine = LedgerEngine(
        storage,
        change_logger=change_logger,
        insight_generator=insight_generator,
    )

    job = None
    if dispatcher is not None:
        job = AlertDispatchJob(engine, dispatcher, delivery_log, change_logger=change_logger)

    return engine, job, sheets_client


def validate_gemini_configured() -> bool:
    try:
        get_settings().gemini
    except ValueError as e:
        logger.info("insights_disabled", reason=str(e))
        return False
    return True
