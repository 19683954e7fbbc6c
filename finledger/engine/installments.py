"""
Installment Scheduler

DESIGN DECISION: Planning is separated from writing.

- plan_group / plan_edit are pure: they turn an input plus the current
  records into the exact rows to insert, update and delete.
- InstallmentScheduler performs those writes through the storage
  collaborator, in an order that makes an interrupted operation safe to
  re-run (deletes, then updates, then idempotent inserts, then the group).

Idempotency rests on the conflict key (owner_id, installment_group_id,
installment_number). A retrying caller passes the same group_id, so every
installment it re-sends hits the same key and becomes a no-op.

When the store cannot enforce the key (ConstraintUnavailableError), the
scheduler reads the numbers already present and inserts only the missing
ones. A duplicate that slips through anyway surfaces as ConflictError and
is logged as recovered; it never fails the operation.
"""

from datetime import date
from decimal import Decimal
from typing import Optional
from uuid import UUID

import structlog
from pydantic import BaseModel, Field

from finledger.audit.logger import ChangeLogger, create_correlation_id
from finledger.engine.dates import add_interval
from finledger.errors import ConflictError, LedgerError, NotFoundError, PartialBatchFailure
from finledger.models.inputs import AmountMode, InstallmentEdit, InstallmentInput
from finledger.models.ledger import (
    ExpenseTransaction,
    Frequency,
    InstallmentGroup,
    TransactionStatus,
    quantize,
)
from finledger.services.storage.interface import (
    INSTALLMENT_CONFLICT_KEY,
    ConstraintUnavailableError,
    LedgerStorageInterface,
    Table,
)
from finledger.validation import LedgerValidator


logger = structlog.get_logger(__name__)


class InstallmentEditPlan(BaseModel):
    """Rows an edit will touch, computed before any write."""

    group: InstallmentGroup
    delete_ids: list[UUID] = Field(default_factory=list)
    updates: list[ExpenseTransaction] = Field(default_factory=list)
    inserts: list[ExpenseTransaction] = Field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not (self.delete_ids or self.updates or self.inserts)


class InstallmentEditResult(BaseModel):
    """Outcome of an applied edit."""

    group: InstallmentGroup
    deleted: int = 0
    updated: int = 0
    inserted: int = 0
    failures: list[dict] = Field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.failures


# =============================================================================
# PURE PLANNING
# =============================================================================

def installment_description(description: str, number: int, total: int) -> str:
    return f"{description} ({number}/{total})"


def installment_date(first_date: date, frequency: Frequency, offset: int) -> date:
    """Date of the installment `offset` steps after the first tracked one."""
    return add_interval(first_date, frequency, offset)


def per_installment_amount(data: InstallmentInput) -> Decimal:
    if data.amount_mode == AmountMode.PER_INSTALLMENT:
        return quantize(data.amount)
    count = data.total_installments - data.starting_installment + 1
    return quantize(data.amount / count)


def build_installment(group: InstallmentGroup, number: int, first_number: int) -> ExpenseTransaction:
    """
    One pending installment of `group`.

    `first_number` is the installment dated on first_installment_date.
    """
    return ExpenseTransaction(
        owner_id=group.owner_id,
        status=TransactionStatus.PENDING,
        amount=group.installment_amount,
        date=installment_date(
            group.first_installment_date,
            group.frequency,
            number - first_number,
        ),
        description=installment_description(group.description, number, group.total_installments),
        category=group.category,
        account_id=group.account_id,
        credit_card_id=group.credit_card_id,
        installment_group_id=group.id,
        installment_number=number,
    )


def plan_group(data: InstallmentInput) -> tuple[InstallmentGroup, list[ExpenseTransaction]]:
    """
    Build a group and its installments.

    Numbers run from starting_installment to total_installments; earlier
    numbers were paid before the purchase was recorded and get no row.
    """
    amount = per_installment_amount(data)
    count = data.total_installments - data.starting_installment + 1

    group = InstallmentGroup(
        id=data.group_id,
        owner_id=data.owner_id,
        description=data.description.strip(),
        installment_amount=amount,
        total_amount=amount * count,
        total_installments=data.total_installments,
        starting_installment=data.starting_installment,
        first_installment_date=data.first_date,
        frequency=data.frequency,
        account_id=data.account_id,
        credit_card_id=data.credit_card_id,
        category=data.category,
    )
    transactions = [
        build_installment(group, number, data.starting_installment)
        for number in range(data.starting_installment, data.total_installments + 1)
    ]
    return group, transactions


def _link_changes(edit: InstallmentEdit) -> dict:
    # switching between account and card clears the other side
    if edit.account_id is not None:
        return {"account_id": edit.account_id, "credit_card_id": None}
    if edit.credit_card_id is not None:
        return {"account_id": None, "credit_card_id": edit.credit_card_id}
    return {}


def _relink(txn: ExpenseTransaction, links: dict) -> dict:
    """
    Link changes for one installment.

    Only a pending installment whose account or card actually changes is
    moved, and it leaves its invoice behind. Confirmed installments stay on
    the account or invoice that already holds them.
    """
    if not links or not txn.is_pending:
        return {}
    if (txn.account_id, txn.credit_card_id) == (links["account_id"], links["credit_card_id"]):
        return {}
    return {**links, "invoice_id": None}


def _apply(txn: ExpenseTransaction, changes: dict) -> ExpenseTransaction:
    data = txn.model_dump()
    data.update(changes)
    return ExpenseTransaction.model_validate(data)


def plan_edit(
    group: InstallmentGroup,
    existing: list[ExpenseTransaction],
    edit: InstallmentEdit,
    today: date,
) -> InstallmentEditPlan:
    """
    Work out the rows an edit touches.

    Range change (new_starting / new_total differ from the current ones):
    - installments outside [new_starting, new_total] are deleted
    - installments inside it are updated in place; date and status are kept
    - missing numbers are created, dated first_installment_date plus
      (n - new_starting) frequency steps

    Range unchanged with update_future_transactions: only pending
    installments dated today or later take the new values.
    """
    numbers = [t.installment_number for t in existing]
    current_starting = min(numbers) if numbers else group.starting_installment
    new_starting = edit.new_starting if edit.new_starting is not None else current_starting
    new_total = edit.new_total if edit.new_total is not None else group.total_installments

    description = edit.description.strip() if edit.description is not None else group.description
    amount = quantize(edit.installment_amount) if edit.installment_amount is not None else group.installment_amount
    category = edit.category if edit.category is not None else group.category
    links = _link_changes(edit)

    group_changes = {
        "description": description,
        "installment_amount": amount,
        "category": category,
        "total_installments": new_total,
        "starting_installment": new_starting,
    }
    group_changes.update(links)
    new_group = InstallmentGroup.model_validate({**group.model_dump(), **group_changes})

    shared = {"category": category}
    if edit.installment_amount is not None:
        shared["amount"] = amount

    delete_ids: list[UUID] = []
    updates: list[ExpenseTransaction] = []
    inserts: list[ExpenseTransaction] = []

    range_changed = (new_starting, new_total) != (current_starting, group.total_installments)
    if range_changed:
        for txn in existing:
            number = txn.installment_number
            if number < new_starting or number > new_total:
                delete_ids.append(txn.id)
                continue
            updates.append(_apply(txn, {
                **shared,
                **_relink(txn, links),
                "description": installment_description(description, number, new_total),
            }))
        present = set(numbers)
        for number in range(new_starting, new_total + 1):
            if number not in present:
                inserts.append(build_installment(new_group, number, new_starting))
    elif edit.update_future_transactions:
        for txn in existing:
            if not txn.is_pending or txn.date < today:
                continue
            updates.append(_apply(txn, {
                **shared,
                **_relink(txn, links),
                "description": installment_description(description, txn.installment_number, new_total),
            }))

    deleted = set(delete_ids)
    updated = {t.id: t for t in updates}
    survivors = [updated.get(t.id, t) for t in existing if t.id not in deleted]
    total = sum((t.amount for t in survivors + inserts), Decimal("0"))
    new_group = new_group.model_copy(update={"total_amount": total})

    return InstallmentEditPlan(
        group=new_group,
        delete_ids=delete_ids,
        updates=updates,
        inserts=inserts,
    )


# =============================================================================
# WRITES
# =============================================================================

class InstallmentScheduler:
    """
    Creates, edits and deletes installment groups through storage.

    Every successful write is logged to the change logger with the views
    it invalidates.
    """

    def __init__(
        self,
        storage: LedgerStorageInterface,
        change_logger: Optional[ChangeLogger] = None,
        validator: Optional[LedgerValidator] = None,
    ):
        self._storage = storage
        self._change_logger = change_logger or ChangeLogger()
        self._validator = validator or LedgerValidator()

    async def _get_group(self, owner_id: str, group_id: UUID) -> InstallmentGroup:
        group = await self._storage.get(Table.INSTALLMENT_GROUPS, group_id)
        if group is None or group.owner_id != owner_id:
            raise NotFoundError("installment_group", group_id)
        return group

    async def children(self, group: InstallmentGroup) -> list[ExpenseTransaction]:
        """The group's installments, ordered by number."""
        rows = await self._storage.query(
            Table.TRANSACTIONS,
            group.owner_id,
            filters={"installment_group_id": group.id},
        )
        return sorted(rows, key=lambda t: t.installment_number)

    async def _recover_duplicate(
        self,
        group: InstallmentGroup,
        txn: ExpenseTransaction,
        error: ConflictError,
        correlation_id: UUID,
    ) -> None:
        logger.warning(
            "installment_duplicate_recovered",
            group_id=str(group.id),
            installment_number=txn.installment_number,
            error=str(error),
        )
        await self._change_logger.log_installment_duplicate(
            owner_id=group.owner_id,
            group_id=group.id,
            installment_number=txn.installment_number,
            error_message=str(error),
            correlation_id=correlation_id,
        )

    async def _insert_installments(
        self,
        group: InstallmentGroup,
        transactions: list[ExpenseTransaction],
        correlation_id: UUID,
        failures: Optional[list[dict]] = None,
    ) -> int:
        """
        Insert-if-absent every installment.

        With `failures` given, a failed row is recorded there and the rest
        continue; otherwise the first failure propagates.
        """
        inserted = 0
        present: Optional[set[int]] = None

        for txn in transactions:
            try:
                if present is None:
                    try:
                        if await self._storage.upsert(Table.TRANSACTIONS, txn, INSTALLMENT_CONFLICT_KEY):
                            inserted += 1
                        continue
                    except ConstraintUnavailableError:
                        logger.warning(
                            "installment_upsert_unavailable",
                            group_id=str(group.id),
                            fallback="insert_missing",
                        )
                        present = {t.installment_number for t in await self.children(group)}

                if txn.installment_number in present:
                    continue
                try:
                    await self._storage.insert(Table.TRANSACTIONS, txn)
                except ConflictError as e:
                    await self._recover_duplicate(group, txn, e, correlation_id)
                    continue
                present.add(txn.installment_number)
                inserted += 1
            except LedgerError as e:
                if failures is None:
                    raise
                failures.append(PartialBatchFailure(txn.id, "insert", e).to_dict())
        return inserted

    async def create(
        self,
        data: InstallmentInput,
        correlation_id: Optional[UUID] = None,
    ) -> InstallmentGroup:
        """
        Create an installment group and its installments.

        Re-sending the same input (same group_id) converges on one group
        with one row per installment number.

        Raises:
            ValidationError: Input rejected; nothing was written
            UpstreamError: Storage failed; a group created by this call
                           is deleted again before the error propagates
        """
        correlation_id = correlation_id or create_correlation_id()
        self._validator.ensure_valid(
            self._validator.validate_installment_input(data),
            "installment purchase",
        )

        group, transactions = plan_group(data)

        created_group = True
        try:
            await self._storage.insert(Table.INSTALLMENT_GROUPS, group)
        except ConflictError:
            stored = await self._storage.get(Table.INSTALLMENT_GROUPS, group.id)
            if stored is None:
                raise
            logger.info("installment_group_retry", group_id=str(group.id))
            group = stored
            created_group = False

        try:
            inserted = await self._insert_installments(group, transactions, correlation_id)
        except Exception:
            if created_group:
                await self._storage.delete(Table.INSTALLMENT_GROUPS, group.id)
                logger.error("installment_group_rolled_back", group_id=str(group.id))
            raise

        await self._change_logger.log_installment_group_created(
            owner_id=group.owner_id,
            group_id=group.id,
            description=group.description,
            transactions_created=inserted,
            correlation_id=correlation_id,
        )
        return group

    async def edit(
        self,
        owner_id: str,
        group_id: UUID,
        edit: InstallmentEdit,
        today: date,
        correlation_id: Optional[UUID] = None,
    ) -> InstallmentEditResult:
        """
        Apply an edit to a group and its installments.

        Row failures are recorded on the result instead of raised; the
        group's total is recomputed from whatever rows exist afterwards.

        Raises:
            NotFoundError: No such group for this owner
            ValidationError: Edit rejected; nothing was written
        """
        correlation_id = correlation_id or create_correlation_id()
        group = await self._get_group(owner_id, group_id)
        existing = await self.children(group)

        current_starting = existing[0].installment_number if existing else None
        self._validator.ensure_valid(
            self._validator.validate_installment_edit(group, edit, current_starting),
            "installment edit",
        )

        plan = plan_edit(group, existing, edit, today)
        failures: list[dict] = []

        deleted = 0
        for txn_id in plan.delete_ids:
            try:
                if await self._storage.delete(Table.TRANSACTIONS, txn_id):
                    deleted += 1
            except LedgerError as e:
                failures.append(PartialBatchFailure(txn_id, "delete", e).to_dict())

        updated = 0
        for txn in plan.updates:
            try:
                await self._storage.update(Table.TRANSACTIONS, txn)
                updated += 1
            except LedgerError as e:
                failures.append(PartialBatchFailure(txn.id, "update", e).to_dict())

        inserted = await self._insert_installments(
            plan.group, plan.inserts, correlation_id, failures=failures
        )

        remaining = await self.children(group)
        total = sum((t.amount for t in remaining), Decimal("0"))
        new_group = plan.group.model_copy(update={"total_amount": total})
        await self._storage.update(Table.INSTALLMENT_GROUPS, new_group)

        if failures:
            logger.warning(
                "installment_edit_partial",
                group_id=str(group_id),
                failures=len(failures),
            )

        await self._change_logger.log_installment_group_edited(
            owner_id=owner_id,
            group_id=group_id,
            deleted=deleted,
            updated=updated,
            inserted=inserted,
            correlation_id=correlation_id,
        )
        return InstallmentEditResult(
            group=new_group,
            deleted=deleted,
            updated=updated,
            inserted=inserted,
            failures=failures,
        )

    async def delete(
        self,
        owner_id: str,
        group_id: UUID,
        correlation_id: Optional[UUID] = None,
    ) -> int:
        """
        Delete a group: installments first, then the group.

        A failed installment delete propagates and the group is kept.
        Returns the number of installments deleted.
        """
        correlation_id = correlation_id or create_correlation_id()
        group = await self._get_group(owner_id, group_id)
        transactions = await self.children(group)

        for txn in transactions:
            await self._storage.delete(Table.TRANSACTIONS, txn.id)
        await self._storage.delete(Table.INSTALLMENT_GROUPS, group.id)

        await self._change_logger.log_installment_group_deleted(
            owner_id=owner_id,
            group_id=group_id,
            transactions_deleted=len(transactions),
            correlation_id=correlation_id,
        )
        return len(transactions)

    async def confirm(
        self,
        owner_id: str,
        transaction_ids: list[UUID],
        correlation_id: Optional[UUID] = None,
    ) -> int:
        """Mark installments as paid. Already-confirmed ones are skipped."""
        correlation_id = correlation_id or create_correlation_id()
        confirmed: list[UUID] = []
        for txn_id in transaction_ids:
            txn = await self._storage.get(Table.TRANSACTIONS, txn_id)
            if txn is None or txn.owner_id != owner_id:
                raise NotFoundError("transaction", txn_id)
            if txn.is_confirmed:
                continue
            await self._storage.update(
                Table.TRANSACTIONS,
                txn.model_copy(update={"status": TransactionStatus.CONFIRMED}),
            )
            confirmed.append(txn_id)

        if confirmed:
            await self._change_logger.log_transactions_confirmed(
                owner_id=owner_id,
                transaction_ids=confirmed,
                correlation_id=correlation_id,
            )
        return len(confirmed)
