import pytest
from sqlalchemy import inspect

from consignment.application.catalog_service import CatalogService
from consignment.application.deposit_service import DepositService
from consignment.application.party_service import PartyService
from consignment.core_settings import Settings
from consignment.domain.errors import RestrictedDeleteViolation
from consignment.infrastructure.db import SessionLocal, create_db_engine
from consignment.migrations import alembic_config, rollback_migrations, run_migrations, wait_for_db

TABLES = {
    "users", "books", "suppliers", "sellers", "suppliers_deposits", "suppliers_deposits_books",
    "sellers_deposits", "deposits_transactions", "deposits_transactions_books",
}


@pytest.fixture
def database_url(tmp_path):
    return f"sqlite:///{tmp_path / 'migrated.db'}"


def test_upgrade_creates_schema(database_url):
    run_migrations(database_url)
    engine = create_db_engine(database_url)
    try:
        inspector = inspect(engine)
        assert set(inspector.get_table_names()) == TABLES | {"alembic_version"}

        line_item_indexes = {ix["name"] for ix in inspector.get_indexes("deposits_transactions_books")}
        assert {"ix_deposits_transactions_books_seller_status",
                "ix_deposits_transactions_books_unpaid"} <= line_item_indexes
        assert "ix_deposits_transactions_payment_intent" in {
            ix["name"] for ix in inspector.get_indexes("deposits_transactions")
        }
        columns = {c["name"] for c in inspector.get_columns("deposits_transactions_books")}
        assert "paymentStatus" in columns
        assert inspector.get_pk_constraint("deposits_transactions_books")["constrained_columns"] == [
            "supplier_id", "seller_id", "created_at", "book_id", "supplier_deposit_id", "seller_deposit_id",
        ]
    finally:
        engine.dispose()


def test_migrated_schema_enforces_restrict(database_url):
    run_migrations(database_url)
    engine = create_db_engine(database_url)
    session = SessionLocal(bind=engine)
    try:
        supplier = PartyService(session).create_supplier({"name": "Acme Books", "stripe_account_id": "acct_1"})
        book = CatalogService(session).create_book({"isbn": "9780000000001"})
        DepositService(session).put_deposit_book({"supplier_id": supplier.id, "book_id": book.id, "quantity": 1})
        with pytest.raises(RestrictedDeleteViolation):
            CatalogService(session).delete_book(book.id)
    finally:
        session.close()
        engine.dispose()


def test_downgrade_removes_schema(database_url):
    run_migrations(database_url)
    rollback_migrations(database_url)
    engine = create_db_engine(database_url)
    try:
        assert set(inspect(engine).get_table_names()) == {"alembic_version"}
    finally:
        engine.dispose()


def test_wait_for_db_returns_first_successful_attempt(database_url):
    assert wait_for_db(database_url, max_attempts=3, delay=0) == 1


def test_alembic_config_escapes_percent():
    config = alembic_config("postgresql+psycopg2://user:p%40ss@db/consignment")
    assert config.get_main_option("sqlalchemy.url") == "postgresql+psycopg2://user:p%40ss@db/consignment"


def test_database_url_from_postgres_settings():
    settings = Settings(_env_file=None, DATABASE_URL=None, POSTGRES_HOST="db", POSTGRES_PORT=5433,
                        POSTGRES_DB="books", POSTGRES_USER="app", POSTGRES_PASSWORD="pw")
    assert settings.database_url == "postgresql+psycopg2://app:pw@db:5433/books"


def test_database_url_override():
    settings = Settings(_env_file=None, DATABASE_URL="sqlite:///./local.db")
    assert settings.database_url == "sqlite:///./local.db"
