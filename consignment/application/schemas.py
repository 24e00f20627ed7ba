from pydantic import BaseModel, Field, ValidationError
from datetime import datetime
from typing import Any, Mapping, Optional, Type, TypeVar, Union
from consignment.domain.errors import ValidationViolation
from consignment.domain.models import (
    NAME_MAX_LENGTH, TEXT_MAX_LENGTH, ISBN_LENGTH, EDITOR_PREFIX_MAX_LENGTH,
    TransactionStatus, PaymentStatus, LineItemStatus, ClosureReason,
)

SchemaT = TypeVar("SchemaT", bound=BaseModel)

def validate_payload(schema: Type[SchemaT], payload: Union[SchemaT, Mapping[str, Any]]) -> SchemaT:
    """Accept a schema instance or a plain mapping; surface bad input as ValidationViolation."""
    if isinstance(payload, schema):
        return payload
    try:
        return schema.model_validate(payload)
    except ValidationError as exc:
        raise ValidationViolation(
            f"Invalid {schema.__name__} payload",
            {"errors": exc.errors(include_url=False)},
        ) from exc

class UserCreate(BaseModel):
    email: str = Field(min_length=3, max_length=NAME_MAX_LENGTH)
    # Plain text; hashed before it is persisted
    password: str = Field(min_length=1, max_length=72)

class UserRead(BaseModel):
    id: int
    email: str
    created_at: datetime
    class Config:
        from_attributes = True

class BookCreate(BaseModel):
    isbn: str = Field(min_length=ISBN_LENGTH, max_length=ISBN_LENGTH, pattern=r"^[0-9]+$")

class BookRead(BaseModel):
    id: int
    isbn: str
    class Config:
        from_attributes = True

class SupplierCreate(BaseModel):
    name: str = Field(min_length=1, max_length=NAME_MAX_LENGTH)
    editor_isbn_prefix: Optional[str] = Field(default=None, min_length=1, max_length=EDITOR_PREFIX_MAX_LENGTH,
                                              pattern=r"^[0-9]+$")
    stripe_account_id: str = Field(min_length=1, max_length=TEXT_MAX_LENGTH)

class SupplierUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=NAME_MAX_LENGTH)
    editor_isbn_prefix: Optional[str] = Field(default=None, min_length=1, max_length=EDITOR_PREFIX_MAX_LENGTH,
                                              pattern=r"^[0-9]+$")
    stripe_account_id: Optional[str] = Field(default=None, min_length=1, max_length=TEXT_MAX_LENGTH)

class SupplierRead(BaseModel):
    id: int
    name: str
    editor_isbn_prefix: Optional[str] = None
    created_at: datetime
    stripe_account_id: str
    class Config:
        from_attributes = True

class SellerCreate(BaseModel):
    name: str = Field(min_length=1, max_length=NAME_MAX_LENGTH)
    stripe_account_id: str = Field(min_length=1, max_length=TEXT_MAX_LENGTH)

class SellerUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=NAME_MAX_LENGTH)
    stripe_account_id: Optional[str] = Field(default=None, min_length=1, max_length=TEXT_MAX_LENGTH)

class SellerRead(BaseModel):
    id: int
    name: str
    created_at: datetime
    stripe_account_id: str
    class Config:
        from_attributes = True

class SupplierDepositCreate(BaseModel):
    supplier_id: int
    # The empty name is reserved for books outside any named deposit
    name: str = Field(min_length=1, max_length=NAME_MAX_LENGTH)

class SellerDepositCreate(BaseModel):
    seller_id: int
    name: str = Field(min_length=1, max_length=TEXT_MAX_LENGTH)

class DepositBookPut(BaseModel):
    supplier_id: int
    deposit_name: str = Field(default="", max_length=NAME_MAX_LENGTH)
    book_id: int
    quantity: int = Field(ge=0)
    description: Optional[str] = Field(default=None, max_length=TEXT_MAX_LENGTH)

class DepositBookRead(BaseModel):
    deposit_supplier_id: int
    deposit_name: str
    book_id: int
    description: Optional[str] = None
    quantity: int
    class Config:
        from_attributes = True

class LineItemCreate(BaseModel):
    book_id: int
    supplier_deposit_id: str = Field(default="", max_length=NAME_MAX_LENGTH)
    seller_deposit_id: str = Field(min_length=1, max_length=TEXT_MAX_LENGTH)
    quantity: int = Field(gt=0)
    due_at: Optional[datetime] = None

class DepositTransactionCreate(BaseModel):
    supplier_id: int
    seller_id: int
    payment_intent_id: str = Field(min_length=1, max_length=TEXT_MAX_LENGTH)
    transfers: dict[str, str] = Field(default_factory=dict)
    status: TransactionStatus = TransactionStatus.PENDING
    # Assigned at record time when omitted
    created_at: Optional[datetime] = None
    items: list[LineItemCreate] = Field(min_length=1)

class LineItemRead(BaseModel):
    supplier_id: int
    supplier_deposit_id: str
    seller_id: int
    seller_deposit_id: str
    created_at: datetime
    book_id: int
    quantity: int
    payment_status: PaymentStatus
    status: LineItemStatus
    closure_reason: Optional[ClosureReason] = None
    due_at: Optional[datetime] = None
    class Config:
        from_attributes = True

class DepositTransactionRead(BaseModel):
    supplier_id: int
    seller_id: int
    created_at: datetime
    payment_intent_id: str
    transfers: dict[str, str]
    status: TransactionStatus
    books: list[LineItemRead]
    class Config:
        from_attributes = True
