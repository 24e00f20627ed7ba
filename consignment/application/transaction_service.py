"""
Deposit transactions and their line items.

A transaction is recorded together with all of its line items in a single
database transaction. Afterwards only the status fields move, driven by the
payment processor's webhooks, which may deliver the same event more than once
and out of order. Every update is therefore idempotent: re-applying the
current value is a no-op.
"""
from sqlalchemy import select
from sqlalchemy.orm import Session
from datetime import datetime, timedelta, timezone
from typing import Any, List, Mapping, NamedTuple, Optional, Union
from consignment.core import get_logger, log_operation
from consignment.core_settings import get_settings
from consignment.domain.errors import RecordNotFound, ValidationViolation, InvalidStatusTransition
from consignment.domain.models import (
    DepositTransaction, DepositTransactionBook, TransactionStatus, PaymentStatus,
    LineItemStatus, ClosureReason, utcnow,
)
from consignment.domain.status import (
    Transition, classify_transition, check_forward,
    TRANSACTION_STATUS_RANK, PAYMENT_STATUS_RANK, LINE_ITEM_STATUS_RANK,
)
from consignment.infrastructure.integrity import guarded_write
from .schemas import DepositTransactionCreate, validate_payload

logger = get_logger(__name__)

class TransactionKey(NamedTuple):
    supplier_id: int
    seller_id: int
    created_at: datetime

class LineItemKey(NamedTuple):
    supplier_id: int
    seller_id: int
    created_at: datetime
    book_id: int
    supplier_deposit_id: str
    seller_deposit_id: str

    @property
    def transaction(self) -> TransactionKey:
        return TransactionKey(self.supplier_id, self.seller_id, self.created_at)

def as_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)

def _coerce(enum_cls, value):
    try:
        return enum_cls(value)
    except ValueError as exc:
        raise ValidationViolation(
            f"{value!r} is not a valid {enum_cls.__name__}",
            {"allowed": [m.value for m in enum_cls]},
        ) from exc

def transaction_key(transaction: DepositTransaction) -> TransactionKey:
    return TransactionKey(transaction.supplier_id, transaction.seller_id, transaction.created_at)

def line_item_key(item: DepositTransactionBook) -> LineItemKey:
    return LineItemKey(item.supplier_id, item.seller_id, item.created_at, item.book_id,
                       item.supplier_deposit_id, item.seller_deposit_id)

class TransactionService:
    def __init__(self, db: Session):
        self.db = db

    # Reads

    def get_transaction(self, key: TransactionKey) -> Optional[DepositTransaction]:
        stmt = select(DepositTransaction).where(
            DepositTransaction.supplier_id == key.supplier_id,
            DepositTransaction.seller_id == key.seller_id,
            DepositTransaction.created_at == as_naive_utc(key.created_at),
        )
        return self.db.scalars(stmt).first()

    def get_transaction_by_payment_intent(self, payment_intent_id: str) -> List[DepositTransaction]:
        stmt = select(DepositTransaction) \
            .where(DepositTransaction.payment_intent_id == payment_intent_id) \
            .order_by(DepositTransaction.created_at)
        return list(self.db.scalars(stmt).all())

    def get_line_item(self, key: LineItemKey) -> Optional[DepositTransactionBook]:
        return self.db.scalars(self._line_item_query(key)).first()

    def list_seller_line_items(self, seller_id: int, seller_deposit_id: Optional[str] = None,
                               status: Optional[Union[LineItemStatus, str]] = None):
        stmt = select(DepositTransactionBook).where(DepositTransactionBook.seller_id == seller_id)
        if seller_deposit_id is not None:
            stmt = stmt.where(DepositTransactionBook.seller_deposit_id == seller_deposit_id)
        if status is not None:
            stmt = stmt.where(DepositTransactionBook.status == _coerce(LineItemStatus, status))
        stmt = stmt.order_by(DepositTransactionBook.created_at, DepositTransactionBook.book_id)
        return self.db.scalars(stmt).all()

    def list_overdue_unpaid(self, seller_id: int, now: Optional[datetime] = None):
        """Line items of ``seller_id`` still pending payment whose due date has passed."""
        now = as_naive_utc(now) or utcnow()
        stmt = (
            select(DepositTransactionBook)
            .where(DepositTransactionBook.seller_id == seller_id)
            .where(DepositTransactionBook.payment_status == PaymentStatus.PENDING)
            .where(DepositTransactionBook.due_at < now)
            .order_by(DepositTransactionBook.due_at)
        )
        return self.db.scalars(stmt).all()

    # Writes

    def record_transaction(self, data: Union[DepositTransactionCreate, Mapping[str, Any]]) -> DepositTransaction:
        """Insert the transaction and all its line items atomically.

        Either every row becomes visible or, on any failure, none does.
        """
        data = validate_payload(DepositTransactionCreate, data)
        created_at = as_naive_utc(data.created_at) or utcnow()
        default_due_at = created_at + timedelta(days=get_settings().PAYMENT_TERM_DAYS)

        transaction = DepositTransaction(
            supplier_id=data.supplier_id,
            seller_id=data.seller_id,
            created_at=created_at,
            payment_intent_id=data.payment_intent_id,
            transfers=dict(data.transfers),
            status=data.status,
        )
        for item in data.items:
            transaction.books.append(DepositTransactionBook(
                supplier_id=data.supplier_id,
                seller_id=data.seller_id,
                created_at=created_at,
                book_id=item.book_id,
                supplier_deposit_id=item.supplier_deposit_id,
                seller_deposit_id=item.seller_deposit_id,
                quantity=item.quantity,
                payment_status=PaymentStatus.PENDING,
                status=LineItemStatus.TRANSIT,
                due_at=as_naive_utc(item.due_at) or default_due_at,
            ))

        with log_operation(logger, "record_transaction", supplier_id=data.supplier_id,
                           seller_id=data.seller_id, payment_intent_id=data.payment_intent_id,
                           items=len(data.items)), \
                guarded_write(self.db, table="deposits_transactions", supplier_id=data.supplier_id,
                              seller_id=data.seller_id):
            self.db.add(transaction)
            self.db.commit()
        return transaction

    def advance_status(self, key: TransactionKey, status: Union[TransactionStatus, str],
                       event_id: Optional[str] = None) -> DepositTransaction:
        """Move the transaction status forward.

        Re-delivered events are no-ops and events older than the current
        status are ignored; succeeded and failed exclude each other.
        """
        status = _coerce(TransactionStatus, status)
        with log_operation(logger, "advance_status", correlation_id=event_id,
                           supplier_id=key.supplier_id, seller_id=key.seller_id, status=status.value), \
                guarded_write(self.db, table="deposits_transactions"):
            transaction = self._lock_transaction(key)
            transition = classify_transition(transaction.status, status, TRANSACTION_STATUS_RANK)
            self._apply_status(transaction, status, transition)
            self.db.commit()
        return transaction

    def advance_status_by_payment_intent(self, payment_intent_id: str, status: Union[TransactionStatus, str],
                                         event_id: Optional[str] = None) -> List[DepositTransaction]:
        """Advance every transaction paid by ``payment_intent_id`` as one unit.

        All rows are checked before any is changed, so a conflict on one of
        them leaves the whole group as it was.
        """
        status = _coerce(TransactionStatus, status)
        with log_operation(logger, "advance_status_by_payment_intent", correlation_id=event_id,
                           payment_intent_id=payment_intent_id, status=status.value), \
                guarded_write(self.db, table="deposits_transactions", payment_intent_id=payment_intent_id):
            stmt = select(DepositTransaction) \
                .where(DepositTransaction.payment_intent_id == payment_intent_id) \
                .order_by(DepositTransaction.created_at) \
                .with_for_update() \
                .execution_options(populate_existing=True)
            transactions = list(self.db.scalars(stmt).all())
            if not transactions:
                raise RecordNotFound("No transaction for payment intent", {"payment_intent_id": payment_intent_id})
            transitions = [classify_transition(t.status, status, TRANSACTION_STATUS_RANK) for t in transactions]
            for transaction, transition in zip(transactions, transitions):
                self._apply_status(transaction, status, transition)
            self.db.commit()
        return transactions

    def record_transfer(self, key: TransactionKey, seller_id: int, transfer_id: str,
                        event_id: Optional[str] = None) -> DepositTransaction:
        """Remember the processor transfer paying ``seller_id``; repeating it is a no-op."""
        with log_operation(logger, "record_transfer", correlation_id=event_id,
                           supplier_id=key.supplier_id, seller_id=seller_id), \
                guarded_write(self.db, table="deposits_transactions"):
            transaction = self._lock_transaction(key)
            transfers = dict(transaction.transfers or {})
            existing = transfers.get(str(seller_id))
            if existing is not None and existing != transfer_id:
                raise ValidationViolation(
                    "A different transfer is already recorded for this seller",
                    {"seller_id": seller_id, "recorded": existing, "received": transfer_id},
                )
            if existing is None:
                transfers[str(seller_id)] = transfer_id
                # Reassign so the JSON column is flagged as modified
                transaction.transfers = transfers
            self.db.commit()
        return transaction

    def advance_line_item_status(self, key: LineItemKey, status: Union[LineItemStatus, str],
                                 closure_reason: Optional[Union[ClosureReason, str]] = None,
                                 event_id: Optional[str] = None) -> DepositTransactionBook:
        status = _coerce(LineItemStatus, status)
        reason = _coerce(ClosureReason, closure_reason) if closure_reason is not None else None
        if (status is LineItemStatus.CLOSED) != (reason is not None):
            raise ValidationViolation("A closure reason is required for, and only for, closed line items",
                                      {"status": status.value})
        with log_operation(logger, "advance_line_item_status", correlation_id=event_id,
                           book_id=key.book_id, seller_id=key.seller_id, status=status.value), \
                guarded_write(self.db, table="deposits_transactions_books"):
            item = self._lock_line_item(key)
            if item.status is LineItemStatus.CLOSED and status is LineItemStatus.CLOSED \
                    and item.closure_reason is not reason:
                raise InvalidStatusTransition(
                    "Line item is already closed for another reason",
                    {"current": item.closure_reason.value, "target": reason.value},
                )
            if check_forward(item.status, status, LINE_ITEM_STATUS_RANK):
                item.status = status
                item.closure_reason = reason
                logger.info("Line item status advanced",
                            extra={'extra_fields': {'book_id': key.book_id, 'status': status.value}})
            self.db.commit()
        return item

    def mark_line_item_paid(self, key: LineItemKey, event_id: Optional[str] = None) -> DepositTransactionBook:
        with log_operation(logger, "mark_line_item_paid", correlation_id=event_id, book_id=key.book_id), \
                guarded_write(self.db, table="deposits_transactions_books"):
            item = self._lock_line_item(key)
            if check_forward(item.payment_status, PaymentStatus.PAID, PAYMENT_STATUS_RANK):
                item.payment_status = PaymentStatus.PAID
            self.db.commit()
        return item

    def mark_transaction_paid(self, key: TransactionKey, event_id: Optional[str] = None) -> int:
        """Mark every pending line item of the transaction paid; returns how many changed."""
        with log_operation(logger, "mark_transaction_paid", correlation_id=event_id,
                           supplier_id=key.supplier_id, seller_id=key.seller_id), \
                guarded_write(self.db, table="deposits_transactions_books"):
            self._lock_transaction(key)
            stmt = (
                select(DepositTransactionBook)
                .where(DepositTransactionBook.supplier_id == key.supplier_id)
                .where(DepositTransactionBook.seller_id == key.seller_id)
                .where(DepositTransactionBook.created_at == as_naive_utc(key.created_at))
                .where(DepositTransactionBook.payment_status == PaymentStatus.PENDING)
                .with_for_update()
                .execution_options(populate_existing=True)
            )
            pending = self.db.scalars(stmt).all()
            for item in pending:
                item.payment_status = PaymentStatus.PAID
            self.db.commit()
        return len(pending)

    # Helpers

    def _apply_status(self, transaction: DepositTransaction, status: TransactionStatus,
                      transition: Transition) -> None:
        if transition is Transition.APPLY:
            transaction.status = status
        elif transition is Transition.STALE:
            logger.warning(
                "Ignoring out-of-order status update",
                extra={'extra_fields': {'current': transaction.status.value, 'received': status.value}}
            )

    def _lock_transaction(self, key: TransactionKey) -> DepositTransaction:
        stmt = select(DepositTransaction).where(
            DepositTransaction.supplier_id == key.supplier_id,
            DepositTransaction.seller_id == key.seller_id,
            DepositTransaction.created_at == as_naive_utc(key.created_at),
        ).with_for_update().execution_options(populate_existing=True)
        transaction = self.db.scalars(stmt).first()
        if transaction is None:
            raise RecordNotFound("Deposit transaction not found", key._asdict())
        return transaction

    def _line_item_query(self, key: LineItemKey):
        return select(DepositTransactionBook).where(
            DepositTransactionBook.supplier_id == key.supplier_id,
            DepositTransactionBook.seller_id == key.seller_id,
            DepositTransactionBook.created_at == as_naive_utc(key.created_at),
            DepositTransactionBook.book_id == key.book_id,
            DepositTransactionBook.supplier_deposit_id == key.supplier_deposit_id,
            DepositTransactionBook.seller_deposit_id == key.seller_deposit_id,
        )

    def _lock_line_item(self, key: LineItemKey) -> DepositTransactionBook:
        stmt = self._line_item_query(key).with_for_update().execution_options(populate_existing=True)
        item = self.db.scalars(stmt).first()
        if item is None:
            raise RecordNotFound("Line item not found", key._asdict())
        return item
