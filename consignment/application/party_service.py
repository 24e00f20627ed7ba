from sqlalchemy import select, func, literal
from sqlalchemy.orm import Session
from typing import Any, Mapping, Optional, Union
from consignment.core import get_logger
from consignment.domain.errors import RecordNotFound
from consignment.domain.models import Supplier, Seller
from consignment.infrastructure.integrity import guarded_write
from .schemas import SupplierCreate, SupplierUpdate, SellerCreate, SellerUpdate, validate_payload

logger = get_logger(__name__)

# ISBN-13 starts with the 978/979 EAN prefix; editor prefixes follow it
EAN_PREFIX_LENGTH = 3

class PartyService:
    """Suppliers and sellers, the two parties of every transaction."""

    def __init__(self, db: Session):
        self.db = db

    # Suppliers

    def list_suppliers(self):
        return self.db.scalars(select(Supplier).order_by(Supplier.id)).all()

    def get_supplier(self, supplier_id: int) -> Optional[Supplier]:
        return self.db.get(Supplier, supplier_id)

    def get_supplier_by_name(self, name: str) -> Optional[Supplier]:
        return self.db.scalars(select(Supplier).where(Supplier.name == name)).first()

    def create_supplier(self, data: Union[SupplierCreate, Mapping[str, Any]]) -> Supplier:
        data = validate_payload(SupplierCreate, data)
        obj = Supplier(**data.model_dump())
        with guarded_write(self.db, table="suppliers", name=data.name):
            self.db.add(obj)
            self.db.commit()
        self.db.refresh(obj)
        logger.info("Supplier created", extra={'extra_fields': {'supplier_id': obj.id, 'name': obj.name}})
        return obj

    def update_supplier(self, supplier_id: int, data: Union[SupplierUpdate, Mapping[str, Any]]) -> Supplier:
        data = validate_payload(SupplierUpdate, data)
        supplier = self.get_supplier(supplier_id)
        if not supplier:
            raise RecordNotFound("Supplier not found", {"supplier_id": supplier_id})
        # Update only provided fields
        for field, value in data.model_dump(exclude_unset=True).items():
            setattr(supplier, field, value)
        with guarded_write(self.db, table="suppliers", supplier_id=supplier_id):
            self.db.commit()
        self.db.refresh(supplier)
        return supplier

    def delete_supplier(self, supplier_id: int) -> None:
        """Fails with RestrictedDeleteViolation while the supplier owns any deposit."""
        supplier = self.get_supplier(supplier_id)
        if not supplier:
            raise RecordNotFound("Supplier not found", {"supplier_id": supplier_id})
        with guarded_write(self.db, deleting=True, table="suppliers", supplier_id=supplier_id):
            self.db.delete(supplier)
            self.db.commit()
        logger.info("Supplier deleted", extra={'extra_fields': {'supplier_id': supplier_id}})

    def find_editor_for_isbn(self, isbn: str) -> Optional[Supplier]:
        """Return the supplier publishing ``isbn``, matched on the digits after the EAN prefix."""
        prefix = Supplier.editor_isbn_prefix
        stmt = (
            select(Supplier)
            .where(prefix.is_not(None))
            .where(func.substr(literal(isbn), EAN_PREFIX_LENGTH + 1, func.length(prefix)) == prefix)
            .order_by(func.length(prefix).desc())
        )
        return self.db.scalars(stmt).first()

    # Sellers

    def list_sellers(self):
        return self.db.scalars(select(Seller).order_by(Seller.id)).all()

    def get_seller(self, seller_id: int) -> Optional[Seller]:
        return self.db.get(Seller, seller_id)

    def create_seller(self, data: Union[SellerCreate, Mapping[str, Any]]) -> Seller:
        data = validate_payload(SellerCreate, data)
        obj = Seller(**data.model_dump())
        with guarded_write(self.db, table="sellers", name=data.name):
            self.db.add(obj)
            self.db.commit()
        self.db.refresh(obj)
        logger.info("Seller created", extra={'extra_fields': {'seller_id': obj.id, 'name': obj.name}})
        return obj

    def update_seller(self, seller_id: int, data: Union[SellerUpdate, Mapping[str, Any]]) -> Seller:
        data = validate_payload(SellerUpdate, data)
        seller = self.get_seller(seller_id)
        if not seller:
            raise RecordNotFound("Seller not found", {"seller_id": seller_id})
        for field, value in data.model_dump(exclude_unset=True).items():
            setattr(seller, field, value)
        with guarded_write(self.db, table="sellers", seller_id=seller_id):
            self.db.commit()
        self.db.refresh(seller)
        return seller

    def delete_seller(self, seller_id: int) -> None:
        """Deletes the seller and, by cascade, every one of its deposits."""
        seller = self.get_seller(seller_id)
        if not seller:
            raise RecordNotFound("Seller not found", {"seller_id": seller_id})
        with guarded_write(self.db, deleting=True, table="sellers", seller_id=seller_id):
            self.db.delete(seller)
            self.db.commit()
        logger.info("Seller deleted", extra={'extra_fields': {'seller_id': seller_id}})
