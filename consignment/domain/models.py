from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from sqlalchemy import (
    String, Integer, DateTime, ForeignKey, ForeignKeyConstraint, CheckConstraint,
    Index, JSON, Enum, func, text,
)
from datetime import datetime, timezone
from typing import Optional
import enum

NAME_MAX_LENGTH = 50
TEXT_MAX_LENGTH = 255
ISBN_LENGTH = 13
EDITOR_PREFIX_MAX_LENGTH = 6

# Name of the supplier deposit holding books that are not in any named deposit
UNASSIGNED_DEPOSIT = ""


def utcnow() -> datetime:
    """Naive UTC timestamp assigned explicitly at insert time."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class TransactionStatus(str, enum.Enum):
    # https://docs.stripe.com/connect/separate-charges-and-transfers#handle-post-payment-events
    PENDING = "pending"
    COMPLETED = "completed"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class PaymentStatus(str, enum.Enum):
    PENDING = "pending"
    PAID = "paid"


class LineItemStatus(str, enum.Enum):
    TRANSIT = "transit"
    USABLE = "usable"
    CLOSED = "closed"


class ClosureReason(str, enum.Enum):
    SOLD_OUT = "sold_out"
    RETURNED = "returned"


def _enum_column(enum_cls, name: str) -> Enum:
    # Stored as VARCHAR + CHECK so both Postgres and SQLite reject unknown values
    return Enum(
        enum_cls,
        name=name,
        native_enum=False,
        create_constraint=True,
        values_callable=lambda members: [m.value for m in members],
    )


class Base(DeclarativeBase):
    pass


class User(Base):
    __tablename__ = "users"
    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    email: Mapped[str] = mapped_column(String(NAME_MAX_LENGTH), unique=True)
    # bcrypt hash, never the raw password
    password: Mapped[str] = mapped_column(String(TEXT_MAX_LENGTH))
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, server_default=func.now())


class Book(Base):
    __tablename__ = "books"
    # Surrogate integer key; the ISBN is unique but a poor clustering key
    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    isbn: Mapped[str] = mapped_column(String(ISBN_LENGTH), unique=True)


class Supplier(Base):
    __tablename__ = "suppliers"
    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(NAME_MAX_LENGTH), unique=True)
    # Set only for suppliers that are also publishers; NULLs never collide
    editor_isbn_prefix: Mapped[Optional[str]] = mapped_column(
        String(EDITOR_PREFIX_MAX_LENGTH), unique=True, nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, server_default=func.now())
    stripe_account_id: Mapped[str] = mapped_column(String(TEXT_MAX_LENGTH))

    deposits: Mapped[list["SupplierDeposit"]] = relationship(
        "SupplierDeposit", back_populates="supplier", passive_deletes="all"
    )


class SupplierDeposit(Base):
    __tablename__ = "suppliers_deposits"
    supplier_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("suppliers.id", ondelete="RESTRICT", onupdate="RESTRICT",
                   name="fk_suppliers_deposits_supplier_id_suppliers"),
        primary_key=True,
    )
    name: Mapped[str] = mapped_column(String(NAME_MAX_LENGTH), primary_key=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, server_default=func.now())

    supplier: Mapped[Supplier] = relationship("Supplier", back_populates="deposits")
    # A deposit must be emptied (books moved elsewhere) before it can go
    books: Mapped[list["SupplierDepositBook"]] = relationship(
        "SupplierDepositBook", back_populates="deposit", passive_deletes="all"
    )


class SupplierDepositBook(Base):
    __tablename__ = "suppliers_deposits_books"
    deposit_supplier_id: Mapped[int] = mapped_column(Integer, primary_key=True)
    deposit_name: Mapped[str] = mapped_column(String(NAME_MAX_LENGTH), primary_key=True)
    book_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("books.id", ondelete="RESTRICT", onupdate="RESTRICT",
                   name="fk_suppliers_deposits_books_book_id_books"),
        primary_key=True,
    )
    description: Mapped[Optional[str]] = mapped_column(String(TEXT_MAX_LENGTH), nullable=True)
    quantity: Mapped[int] = mapped_column(Integer)

    deposit: Mapped[SupplierDeposit] = relationship("SupplierDeposit", back_populates="books")
    book: Mapped[Book] = relationship("Book")

    __table_args__ = (
        ForeignKeyConstraint(
            ["deposit_supplier_id", "deposit_name"],
            ["suppliers_deposits.supplier_id", "suppliers_deposits.name"],
            ondelete="RESTRICT",
            onupdate="RESTRICT",
            name="fk_suppliers_deposits_books_deposit",
        ),
        CheckConstraint("quantity >= 0", name="ck_suppliers_deposits_books_quantity"),
    )


class Seller(Base):
    __tablename__ = "sellers"
    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(NAME_MAX_LENGTH), unique=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, server_default=func.now())
    stripe_account_id: Mapped[str] = mapped_column(String(TEXT_MAX_LENGTH))

    deposits: Mapped[list["SellerDeposit"]] = relationship(
        "SellerDeposit", back_populates="seller", cascade="all, delete-orphan", passive_deletes=True
    )


class SellerDeposit(Base):
    __tablename__ = "sellers_deposits"
    seller_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("sellers.id", ondelete="CASCADE", onupdate="CASCADE",
                   name="fk_sellers_deposits_seller_id_sellers"),
        primary_key=True,
    )
    name: Mapped[str] = mapped_column(String(TEXT_MAX_LENGTH), primary_key=True, unique=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, server_default=func.now())

    seller: Mapped[Seller] = relationship("Seller", back_populates="deposits")


class DepositTransaction(Base):
    __tablename__ = "deposits_transactions"
    supplier_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("suppliers.id", ondelete="RESTRICT", onupdate="RESTRICT",
                   name="fk_deposits_transactions_supplier_id_suppliers"),
        primary_key=True,
    )
    seller_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("sellers.id", ondelete="RESTRICT", onupdate="RESTRICT",
                   name="fk_deposits_transactions_seller_id_sellers"),
        primary_key=True,
    )
    created_at: Mapped[datetime] = mapped_column(DateTime, primary_key=True, default=utcnow)

    payment_intent_id: Mapped[str] = mapped_column(String(TEXT_MAX_LENGTH))
    # seller id (as string) -> Stripe transfer id
    transfers: Mapped[dict] = mapped_column(JSON, default=dict)
    status: Mapped[TransactionStatus] = mapped_column(
        _enum_column(TransactionStatus, "transaction_status"), default=TransactionStatus.PENDING
    )

    books: Mapped[list["DepositTransactionBook"]] = relationship(
        "DepositTransactionBook", back_populates="transaction", passive_deletes="all"
    )

    __table_args__ = (
        Index("ix_deposits_transactions_payment_intent", "payment_intent_id"),
    )


class DepositTransactionBook(Base):
    __tablename__ = "deposits_transactions_books"
    # Key starts with the parent transaction's key so the PK index serves that FK
    supplier_id: Mapped[int] = mapped_column(Integer, primary_key=True)
    seller_id: Mapped[int] = mapped_column(Integer, primary_key=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, primary_key=True)
    book_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("books.id", ondelete="RESTRICT", onupdate="RESTRICT",
                   name="fk_deposits_transactions_books_book_id_books"),
        primary_key=True,
    )
    supplier_deposit_id: Mapped[str] = mapped_column(String(NAME_MAX_LENGTH), primary_key=True)
    seller_deposit_id: Mapped[str] = mapped_column(String(TEXT_MAX_LENGTH), primary_key=True)
    quantity: Mapped[int] = mapped_column(Integer)

    payment_status: Mapped[PaymentStatus] = mapped_column(
        "paymentStatus", _enum_column(PaymentStatus, "payment_status"),
        default=PaymentStatus.PENDING, server_default=PaymentStatus.PENDING.value,
    )
    status: Mapped[LineItemStatus] = mapped_column(
        _enum_column(LineItemStatus, "line_item_status"),
        default=LineItemStatus.TRANSIT, server_default=LineItemStatus.TRANSIT.value,
    )
    closure_reason: Mapped[Optional[ClosureReason]] = mapped_column(
        _enum_column(ClosureReason, "closure_reason"), nullable=True
    )
    due_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    transaction: Mapped[DepositTransaction] = relationship("DepositTransaction", back_populates="books")

    __table_args__ = (
        ForeignKeyConstraint(
            ["supplier_id", "seller_id", "created_at"],
            ["deposits_transactions.supplier_id", "deposits_transactions.seller_id",
             "deposits_transactions.created_at"],
            ondelete="RESTRICT",
            onupdate="RESTRICT",
            name="fk_deposits_transactions_books_transaction",
        ),
        ForeignKeyConstraint(
            ["supplier_id", "supplier_deposit_id"],
            ["suppliers_deposits.supplier_id", "suppliers_deposits.name"],
            ondelete="RESTRICT",
            onupdate="RESTRICT",
            name="fk_deposits_transactions_books_supplier_deposit",
        ),
        ForeignKeyConstraint(
            ["seller_id", "seller_deposit_id"],
            ["sellers_deposits.seller_id", "sellers_deposits.name"],
            ondelete="RESTRICT",
            onupdate="RESTRICT",
            name="fk_deposits_transactions_books_seller_deposit",
        ),
        CheckConstraint("quantity > 0", name="ck_deposits_transactions_books_quantity"),
        CheckConstraint(
            "(status = 'closed' AND closure_reason IS NOT NULL) "
            "OR (status != 'closed' AND closure_reason IS NULL)",
            name="ck_deposits_transactions_books_closure_reason",
        ),
        Index("ix_deposits_transactions_books_seller_status",
              "seller_id", "seller_deposit_id", "status", "created_at"),
        # Overdue is decided at query time: due_at < now
        Index("ix_deposits_transactions_books_unpaid", "seller_id", "due_at",
              postgresql_where=text("\"paymentStatus\" = 'pending'"),
              sqlite_where=text("\"paymentStatus\" = 'pending'")),
    )
