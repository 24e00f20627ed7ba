"""
Deposit management for both sides of the marketplace.

Supplier deposits hold inventory, so every relationship they take part in is
restrictive: a deposit is removed only once empty and a book only once no
deposit holds it. Seller deposits are grouping labels owned by the seller and
disappear with it.
"""
from sqlalchemy import select
from sqlalchemy.orm import Session
from typing import Any, Mapping, Optional, Union
from consignment.core import get_logger, log_operation
from consignment.domain.errors import RecordNotFound, ValidationViolation
from consignment.domain.models import (
    SupplierDeposit, SupplierDepositBook, SellerDeposit, UNASSIGNED_DEPOSIT,
)
from consignment.infrastructure.integrity import guarded_write
from .schemas import SupplierDepositCreate, SellerDepositCreate, DepositBookPut, validate_payload

logger = get_logger(__name__)

class DepositService:
    def __init__(self, db: Session):
        self.db = db

    # Supplier deposits

    def list_supplier_deposits(self, supplier_id: int):
        stmt = select(SupplierDeposit).where(SupplierDeposit.supplier_id == supplier_id) \
            .order_by(SupplierDeposit.name)
        return self.db.scalars(stmt).all()

    def get_supplier_deposit(self, supplier_id: int, name: str) -> Optional[SupplierDeposit]:
        return self.db.get(SupplierDeposit, (supplier_id, name))

    def create_supplier_deposit(self, data: Union[SupplierDepositCreate, Mapping[str, Any]]) -> SupplierDeposit:
        data = validate_payload(SupplierDepositCreate, data)
        obj = SupplierDeposit(supplier_id=data.supplier_id, name=data.name)
        with guarded_write(self.db, table="suppliers_deposits", supplier_id=data.supplier_id, name=data.name):
            self.db.add(obj)
            self.db.commit()
        self.db.refresh(obj)
        logger.info("Supplier deposit created",
                    extra={'extra_fields': {'supplier_id': obj.supplier_id, 'deposit': obj.name}})
        return obj

    def delete_supplier_deposit(self, supplier_id: int, name: str) -> None:
        """Fails with RestrictedDeleteViolation while the deposit still has content rows."""
        deposit = self.get_supplier_deposit(supplier_id, name)
        if not deposit:
            raise RecordNotFound("Supplier deposit not found", {"supplier_id": supplier_id, "name": name})
        with guarded_write(self.db, deleting=True, table="suppliers_deposits",
                           supplier_id=supplier_id, name=name):
            self.db.delete(deposit)
            self.db.commit()
        logger.info("Supplier deposit deleted",
                    extra={'extra_fields': {'supplier_id': supplier_id, 'deposit': name}})

    def _ensure_unassigned_deposit(self, supplier_id: int) -> None:
        # The "" deposit exists only once a supplier holds books outside named deposits
        if self.get_supplier_deposit(supplier_id, UNASSIGNED_DEPOSIT) is None:
            self.db.add(SupplierDeposit(supplier_id=supplier_id, name=UNASSIGNED_DEPOSIT))
            self.db.flush()

    # Deposit content

    def get_deposit_book(self, supplier_id: int, deposit_name: str, book_id: int) -> Optional[SupplierDepositBook]:
        return self.db.get(SupplierDepositBook, (supplier_id, deposit_name, book_id))

    def list_deposit_books(self, supplier_id: int, deposit_name: str = UNASSIGNED_DEPOSIT):
        stmt = (
            select(SupplierDepositBook)
            .where(SupplierDepositBook.deposit_supplier_id == supplier_id)
            .where(SupplierDepositBook.deposit_name == deposit_name)
            .order_by(SupplierDepositBook.book_id)
        )
        return self.db.scalars(stmt).all()

    def put_deposit_book(self, data: Union[DepositBookPut, Mapping[str, Any]]) -> SupplierDepositBook:
        """Insert the content row or overwrite its quantity and description."""
        data = validate_payload(DepositBookPut, data)
        with guarded_write(self.db, table="suppliers_deposits_books", supplier_id=data.supplier_id,
                           deposit=data.deposit_name, book_id=data.book_id):
            if data.deposit_name == UNASSIGNED_DEPOSIT:
                self._ensure_unassigned_deposit(data.supplier_id)
            row = self.get_deposit_book(data.supplier_id, data.deposit_name, data.book_id)
            if row is None:
                row = SupplierDepositBook(
                    deposit_supplier_id=data.supplier_id,
                    deposit_name=data.deposit_name,
                    book_id=data.book_id,
                )
                self.db.add(row)
            row.quantity = data.quantity
            if "description" in data.model_fields_set:
                row.description = data.description
            self.db.commit()
        self.db.refresh(row)
        return row

    def adjust_deposit_book(self, supplier_id: int, deposit_name: str, book_id: int, delta: int) -> SupplierDepositBook:
        """Add ``delta`` (possibly negative) copies; the quantity never drops below zero."""
        with guarded_write(self.db, table="suppliers_deposits_books", supplier_id=supplier_id,
                           deposit=deposit_name, book_id=book_id):
            row = self._lock_deposit_book(supplier_id, deposit_name, book_id)
            if row is not None:
                if row.quantity + delta < 0:
                    raise ValidationViolation("Deposit quantity cannot become negative",
                                              {"quantity": row.quantity, "delta": delta})
                row.quantity = row.quantity + delta
                self.db.commit()
            elif delta < 0:
                raise RecordNotFound("Book is not in this deposit",
                                     {"supplier_id": supplier_id, "deposit": deposit_name, "book_id": book_id})
        if row is None:
            return self.put_deposit_book(DepositBookPut(supplier_id=supplier_id, deposit_name=deposit_name,
                                                        book_id=book_id, quantity=delta))
        self.db.refresh(row)
        return row

    def move_deposit_books(self, supplier_id: int, source: str, target: str, book_id: int,
                           quantity: Optional[int] = None) -> SupplierDepositBook:
        """Move copies of a book between two deposits of the same supplier in one unit.

        ``quantity`` defaults to everything in the source. The source row is
        removed once empty so the source deposit can be deleted.
        """
        if source == target:
            raise ValidationViolation("Source and target deposits are the same", {"deposit": source})

        with log_operation(logger, "move_deposit_books", supplier_id=supplier_id,
                           source=source, target=target, book_id=book_id, quantity=quantity), \
                guarded_write(self.db, table="suppliers_deposits_books", supplier_id=supplier_id,
                              source=source, target=target, book_id=book_id):
            row = self._lock_deposit_book(supplier_id, source, book_id)
            if row is None:
                raise RecordNotFound("Book is not in the source deposit",
                                     {"supplier_id": supplier_id, "deposit": source, "book_id": book_id})
            moved = row.quantity if quantity is None else quantity
            if moved < 0 or moved > row.quantity:
                raise ValidationViolation("Cannot move more copies than the source holds",
                                          {"quantity": row.quantity, "requested": moved})
            if target == UNASSIGNED_DEPOSIT:
                self._ensure_unassigned_deposit(supplier_id)
            destination = self._lock_deposit_book(supplier_id, target, book_id)
            if destination is None:
                destination = SupplierDepositBook(
                    deposit_supplier_id=supplier_id,
                    deposit_name=target,
                    book_id=book_id,
                    description=row.description,
                    quantity=0,
                )
                self.db.add(destination)
            destination.quantity = destination.quantity + moved
            if row.quantity == moved:
                self.db.delete(row)
            else:
                row.quantity = row.quantity - moved
            self.db.commit()
        self.db.refresh(destination)
        return destination

    def _lock_deposit_book(self, supplier_id: int, deposit_name: str,
                           book_id: int) -> Optional[SupplierDepositBook]:
        # Re-read under a row lock so concurrent adjustments serialize on the row
        stmt = (
            select(SupplierDepositBook)
            .where(SupplierDepositBook.deposit_supplier_id == supplier_id)
            .where(SupplierDepositBook.deposit_name == deposit_name)
            .where(SupplierDepositBook.book_id == book_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return self.db.scalars(stmt).first()

    def remove_deposit_book(self, supplier_id: int, deposit_name: str, book_id: int) -> None:
        row = self.get_deposit_book(supplier_id, deposit_name, book_id)
        if row is None:
            raise RecordNotFound("Book is not in this deposit",
                                 {"supplier_id": supplier_id, "deposit": deposit_name, "book_id": book_id})
        with guarded_write(self.db, deleting=True, table="suppliers_deposits_books",
                           supplier_id=supplier_id, deposit=deposit_name, book_id=book_id):
            self.db.delete(row)
            self.db.commit()

    # Seller deposits

    def list_seller_deposits(self, seller_id: int):
        stmt = select(SellerDeposit).where(SellerDeposit.seller_id == seller_id).order_by(SellerDeposit.name)
        return self.db.scalars(stmt).all()

    def get_seller_deposit(self, seller_id: int, name: str) -> Optional[SellerDeposit]:
        return self.db.get(SellerDeposit, (seller_id, name))

    def create_seller_deposit(self, data: Union[SellerDepositCreate, Mapping[str, Any]]) -> SellerDeposit:
        data = validate_payload(SellerDepositCreate, data)
        obj = SellerDeposit(seller_id=data.seller_id, name=data.name)
        with guarded_write(self.db, table="sellers_deposits", seller_id=data.seller_id, name=data.name):
            self.db.add(obj)
            self.db.commit()
        self.db.refresh(obj)
        logger.info("Seller deposit created",
                    extra={'extra_fields': {'seller_id': obj.seller_id, 'deposit': obj.name}})
        return obj

    def delete_seller_deposit(self, seller_id: int, name: str) -> None:
        deposit = self.get_seller_deposit(seller_id, name)
        if not deposit:
            raise RecordNotFound("Seller deposit not found", {"seller_id": seller_id, "name": name})
        with guarded_write(self.db, deleting=True, table="sellers_deposits", seller_id=seller_id, name=name):
            self.db.delete(deposit)
            self.db.commit()
