import os

os.environ.setdefault("BCRYPT_ROUNDS", "4")

import pytest

from consignment.application.catalog_service import CatalogService
from consignment.application.deposit_service import DepositService
from consignment.application.party_service import PartyService
from consignment.application.transaction_service import TransactionService
from consignment.infrastructure.db import SessionLocal, create_db_engine, init_models


@pytest.fixture
def engine(tmp_path):
    engine = create_db_engine(f"sqlite:///{tmp_path / 'consignment.db'}")
    init_models(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db(engine):
    session = SessionLocal(bind=engine)
    yield session
    session.close()


@pytest.fixture
def other_db(engine):
    """A second, independent session, standing in for a concurrent reader."""
    session = SessionLocal(bind=engine)
    yield session
    session.close()


@pytest.fixture
def catalog(db):
    return CatalogService(db)


@pytest.fixture
def parties(db):
    return PartyService(db)


@pytest.fixture
def deposits(db):
    return DepositService(db)


@pytest.fixture
def transactions(db):
    return TransactionService(db)


@pytest.fixture
def supplier(parties):
    return parties.create_supplier({"name": "Acme Books", "stripe_account_id": "acct_supplier"})


@pytest.fixture
def seller(parties):
    return parties.create_seller({"name": "Corner Shop", "stripe_account_id": "acct_seller"})


@pytest.fixture
def book(catalog):
    return catalog.create_book({"isbn": "9780000000001"})


@pytest.fixture
def stocked(supplier, seller, book, deposits):
    """Supplier deposit holding the book and a seller deposit ready to receive it."""
    deposits.create_supplier_deposit({"supplier_id": supplier.id, "name": "Spring2024"})
    deposits.put_deposit_book({"supplier_id": supplier.id, "deposit_name": "Spring2024",
                               "book_id": book.id, "quantity": 10})
    deposits.create_seller_deposit({"seller_id": seller.id, "name": "Shelf A"})
    return supplier, seller, book
