import pytest

from consignment.application.deposit_service import DepositService
from consignment.domain.errors import (
    UniqueConstraintViolation, ValidationViolation, RecordNotFound, RestrictedDeleteViolation,
)


def test_supplier_name_is_unique(parties, supplier):
    with pytest.raises(UniqueConstraintViolation):
        parties.create_supplier({"name": "Acme Books", "stripe_account_id": "acct_other"})


def test_editor_prefix_is_unique(parties):
    parties.create_supplier({"name": "Press One", "editor_isbn_prefix": "123456", "stripe_account_id": "acct_1"})
    with pytest.raises(UniqueConstraintViolation):
        parties.create_supplier({"name": "Press Two", "editor_isbn_prefix": "123456", "stripe_account_id": "acct_2"})


def test_suppliers_without_editor_prefix_do_not_collide(parties):
    parties.create_supplier({"name": "Reseller One", "stripe_account_id": "acct_1"})
    parties.create_supplier({"name": "Reseller Two", "stripe_account_id": "acct_2"})
    assert [s.name for s in parties.list_suppliers()] == ["Reseller One", "Reseller Two"]


def test_supplier_name_length_is_validated(parties):
    with pytest.raises(ValidationViolation):
        parties.create_supplier({"name": "x" * 51, "stripe_account_id": "acct_1"})
    with pytest.raises(ValidationViolation):
        parties.create_supplier({"name": "Press", "editor_isbn_prefix": "1234567", "stripe_account_id": "acct_1"})


def test_update_supplier(parties, supplier):
    updated = parties.update_supplier(supplier.id, {"editor_isbn_prefix": "42"})
    assert updated.editor_isbn_prefix == "42"
    assert updated.name == "Acme Books"


def test_update_supplier_to_taken_name(parties, supplier):
    other = parties.create_supplier({"name": "Other Books", "stripe_account_id": "acct_2"})
    with pytest.raises(UniqueConstraintViolation):
        parties.update_supplier(other.id, {"name": "Acme Books"})
    assert parties.get_supplier(other.id).name == "Other Books"


def test_update_missing_supplier(parties):
    with pytest.raises(RecordNotFound):
        parties.update_supplier(404, {"name": "Ghost"})


def test_find_editor_for_isbn(parties):
    press = parties.create_supplier({"name": "Press", "editor_isbn_prefix": "123456", "stripe_account_id": "acct_1"})
    parties.create_supplier({"name": "Reseller", "stripe_account_id": "acct_2"})
    assert parties.find_editor_for_isbn("9781234567897").id == press.id
    assert parties.find_editor_for_isbn("9789999999999") is None


def test_supplier_without_deposits_can_be_deleted(parties, supplier):
    parties.delete_supplier(supplier.id)
    assert parties.get_supplier_by_name("Acme Books") is None


def test_supplier_with_deposit_cannot_be_deleted(parties, deposits, supplier):
    deposits.create_supplier_deposit({"supplier_id": supplier.id, "name": "Spring2024"})
    with pytest.raises(RestrictedDeleteViolation):
        parties.delete_supplier(supplier.id)
    assert parties.get_supplier(supplier.id) is not None

    deposits.delete_supplier_deposit(supplier.id, "Spring2024")
    parties.delete_supplier(supplier.id)
    assert parties.get_supplier(supplier.id) is None


def test_seller_name_is_unique(parties, seller):
    with pytest.raises(UniqueConstraintViolation):
        parties.create_seller({"name": "Corner Shop", "stripe_account_id": "acct_x"})


def test_update_seller(parties, seller):
    updated = parties.update_seller(seller.id, {"stripe_account_id": "acct_new"})
    assert updated.stripe_account_id == "acct_new"


def test_deleting_seller_cascades_to_its_deposits(parties, deposits, seller, other_db):
    deposits.create_seller_deposit({"seller_id": seller.id, "name": "Shelf A"})
    deposits.create_seller_deposit({"seller_id": seller.id, "name": "Shelf B"})
    other = parties.create_seller({"name": "Kiosk", "stripe_account_id": "acct_k"})
    deposits.create_seller_deposit({"seller_id": other.id, "name": "Window"})

    parties.delete_seller(seller.id)

    assert parties.get_seller(seller.id) is None
    assert deposits.list_seller_deposits(seller.id) == []
    assert [d.name for d in deposits.list_seller_deposits(other.id)] == ["Window"]
    assert DepositService(other_db).list_seller_deposits(seller.id) == []
