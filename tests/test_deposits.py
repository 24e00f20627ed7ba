import pytest

from consignment.application.catalog_service import CatalogService
from consignment.application.deposit_service import DepositService
from consignment.domain.errors import (
    ForeignKeyViolation, RestrictedDeleteViolation, UniqueConstraintViolation,
    ValidationViolation, RecordNotFound,
)
from consignment.domain.models import UNASSIGNED_DEPOSIT


def test_book_deletion_waits_for_deposit_to_release_it(catalog, deposits, parties, supplier, book):
    deposits.create_supplier_deposit({"supplier_id": supplier.id, "name": "Spring2024"})
    deposits.put_deposit_book({"supplier_id": supplier.id, "deposit_name": "Spring2024",
                               "book_id": book.id, "quantity": 10})

    with pytest.raises(RestrictedDeleteViolation):
        catalog.delete_book(book.id)

    row = deposits.put_deposit_book({"supplier_id": supplier.id, "deposit_name": "Spring2024",
                                     "book_id": book.id, "quantity": 0})
    assert row.quantity == 0
    deposits.remove_deposit_book(supplier.id, "Spring2024", book.id)
    catalog.delete_book(book.id)
    assert catalog.get_book_by_isbn("9780000000001") is None

    deposits.delete_supplier_deposit(supplier.id, "Spring2024")
    parties.delete_supplier(supplier.id)


def test_non_empty_deposit_cannot_be_deleted(deposits, stocked, other_db):
    supplier, _, book = stocked
    with pytest.raises(RestrictedDeleteViolation):
        deposits.delete_supplier_deposit(supplier.id, "Spring2024")
    assert DepositService(other_db).get_supplier_deposit(supplier.id, "Spring2024") is not None

    deposits.remove_deposit_book(supplier.id, "Spring2024", book.id)
    deposits.delete_supplier_deposit(supplier.id, "Spring2024")
    assert deposits.list_supplier_deposits(supplier.id) == []


def test_deposit_names_are_scoped_to_supplier(deposits, parties, supplier):
    other = parties.create_supplier({"name": "Other Books", "stripe_account_id": "acct_2"})
    deposits.create_supplier_deposit({"supplier_id": supplier.id, "name": "Spring2024"})
    deposits.create_supplier_deposit({"supplier_id": other.id, "name": "Spring2024"})
    with pytest.raises(UniqueConstraintViolation):
        deposits.create_supplier_deposit({"supplier_id": supplier.id, "name": "Spring2024"})


def test_deposit_requires_existing_supplier(deposits):
    with pytest.raises(ForeignKeyViolation):
        deposits.create_supplier_deposit({"supplier_id": 404, "name": "Spring2024"})


def test_named_deposit_cannot_use_reserved_empty_name(deposits, supplier):
    with pytest.raises(ValidationViolation):
        deposits.create_supplier_deposit({"supplier_id": supplier.id, "name": ""})


def test_content_requires_existing_deposit_and_book(deposits, supplier, book):
    with pytest.raises(ForeignKeyViolation):
        deposits.put_deposit_book({"supplier_id": supplier.id, "deposit_name": "Nowhere",
                                   "book_id": book.id, "quantity": 1})
    deposits.create_supplier_deposit({"supplier_id": supplier.id, "name": "Spring2024"})
    with pytest.raises(ForeignKeyViolation):
        deposits.put_deposit_book({"supplier_id": supplier.id, "deposit_name": "Spring2024",
                                   "book_id": 404, "quantity": 1})
    assert deposits.list_deposit_books(supplier.id, "Spring2024") == []


def test_unassigned_books_create_the_sentinel_deposit(deposits, supplier, book):
    row = deposits.put_deposit_book({"supplier_id": supplier.id, "book_id": book.id, "quantity": 3,
                                     "description": "back room"})
    assert row.deposit_name == UNASSIGNED_DEPOSIT
    assert [d.name for d in deposits.list_supplier_deposits(supplier.id)] == [UNASSIGNED_DEPOSIT]
    assert [r.quantity for r in deposits.list_deposit_books(supplier.id)] == [3]

    again = deposits.put_deposit_book({"supplier_id": supplier.id, "book_id": book.id, "quantity": 5})
    assert again.quantity == 5
    assert again.description == "back room"


def test_unassigned_books_require_existing_supplier(deposits, book):
    with pytest.raises(ForeignKeyViolation):
        deposits.put_deposit_book({"supplier_id": 404, "book_id": book.id, "quantity": 1})


def test_negative_quantity_is_rejected(deposits, stocked):
    supplier, _, book = stocked
    with pytest.raises(ValidationViolation):
        deposits.put_deposit_book({"supplier_id": supplier.id, "deposit_name": "Spring2024",
                                   "book_id": book.id, "quantity": -1})
    with pytest.raises(ValidationViolation):
        deposits.adjust_deposit_book(supplier.id, "Spring2024", book.id, -11)
    assert deposits.get_deposit_book(supplier.id, "Spring2024", book.id).quantity == 10


def test_adjust_deposit_book(deposits, stocked, catalog):
    supplier, _, book = stocked
    assert deposits.adjust_deposit_book(supplier.id, "Spring2024", book.id, 5).quantity == 15
    assert deposits.adjust_deposit_book(supplier.id, "Spring2024", book.id, -15).quantity == 0

    other = catalog.create_book({"isbn": "9780000000002"})
    with pytest.raises(RecordNotFound):
        deposits.adjust_deposit_book(supplier.id, "Spring2024", other.id, -1)
    assert deposits.adjust_deposit_book(supplier.id, "Spring2024", other.id, 2).quantity == 2


def test_move_books_between_deposits(deposits, stocked):
    supplier, _, book = stocked
    moved = deposits.move_deposit_books(supplier.id, "Spring2024", UNASSIGNED_DEPOSIT, book.id, 4)
    assert moved.quantity == 4
    assert deposits.get_deposit_book(supplier.id, "Spring2024", book.id).quantity == 6

    moved = deposits.move_deposit_books(supplier.id, "Spring2024", UNASSIGNED_DEPOSIT, book.id)
    assert moved.quantity == 10
    assert deposits.get_deposit_book(supplier.id, "Spring2024", book.id) is None

    deposits.delete_supplier_deposit(supplier.id, "Spring2024")
    assert [d.name for d in deposits.list_supplier_deposits(supplier.id)] == [UNASSIGNED_DEPOSIT]


def test_failed_move_leaves_both_sides_untouched(deposits, stocked, other_db):
    supplier, _, book = stocked
    with pytest.raises(ForeignKeyViolation):
        deposits.move_deposit_books(supplier.id, "Spring2024", "Ghost", book.id, 4)
    reader = DepositService(other_db)
    assert reader.get_deposit_book(supplier.id, "Spring2024", book.id).quantity == 10
    assert reader.get_deposit_book(supplier.id, "Ghost", book.id) is None


def test_move_more_than_available(deposits, stocked):
    supplier, _, book = stocked
    with pytest.raises(ValidationViolation):
        deposits.move_deposit_books(supplier.id, "Spring2024", UNASSIGNED_DEPOSIT, book.id, 11)
    with pytest.raises(ValidationViolation):
        deposits.move_deposit_books(supplier.id, "Spring2024", "Spring2024", book.id, 1)


def test_seller_deposit_names_are_globally_unique(deposits, parties, seller):
    other = parties.create_seller({"name": "Kiosk", "stripe_account_id": "acct_k"})
    deposits.create_seller_deposit({"seller_id": seller.id, "name": "Shelf A"})
    with pytest.raises(UniqueConstraintViolation):
        deposits.create_seller_deposit({"seller_id": other.id, "name": "Shelf A"})


def test_seller_deposit_requires_existing_seller(deposits):
    with pytest.raises(ForeignKeyViolation):
        deposits.create_seller_deposit({"seller_id": 404, "name": "Shelf A"})


def test_delete_seller_deposit(deposits, seller):
    deposits.create_seller_deposit({"seller_id": seller.id, "name": "Shelf A"})
    deposits.delete_seller_deposit(seller.id, "Shelf A")
    assert deposits.list_seller_deposits(seller.id) == []
    with pytest.raises(RecordNotFound):
        deposits.delete_seller_deposit(seller.id, "Shelf A")


def test_catalog_sees_deposit_rows_from_another_session(stocked, other_db):
    _, _, book = stocked
    with pytest.raises(RestrictedDeleteViolation):
        CatalogService(other_db).delete_book(book.id)


def test_adjustments_from_two_sessions_accumulate(deposits, stocked, other_db):
    supplier, _, book = stocked
    concurrent = DepositService(other_db)
    # The second session has already read the row before the first one writes
    assert concurrent.get_deposit_book(supplier.id, "Spring2024", book.id).quantity == 10

    assert deposits.adjust_deposit_book(supplier.id, "Spring2024", book.id, -3).quantity == 7
    assert concurrent.adjust_deposit_book(supplier.id, "Spring2024", book.id, -3).quantity == 4
    deposits.db.expire_all()
    assert deposits.get_deposit_book(supplier.id, "Spring2024", book.id).quantity == 4

    with pytest.raises(ValidationViolation):
        deposits.adjust_deposit_book(supplier.id, "Spring2024", book.id, -5)


def test_move_uses_current_quantity_from_another_session(deposits, stocked, other_db):
    supplier, _, book = stocked
    concurrent = DepositService(other_db)
    assert concurrent.get_deposit_book(supplier.id, "Spring2024", book.id).quantity == 10

    deposits.move_deposit_books(supplier.id, "Spring2024", UNASSIGNED_DEPOSIT, book.id, 4)
    moved = concurrent.move_deposit_books(supplier.id, "Spring2024", UNASSIGNED_DEPOSIT, book.id)
    assert moved.quantity == 10
    assert concurrent.get_deposit_book(supplier.id, "Spring2024", book.id) is None
