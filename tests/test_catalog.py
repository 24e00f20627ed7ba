import bcrypt
import pytest

from consignment.domain.errors import (
    UniqueConstraintViolation, ValidationViolation, RecordNotFound, RestrictedDeleteViolation,
)


def test_create_user_stores_password_hash(catalog):
    user = catalog.create_user({"email": "ada@example.com", "password": "s3cret"})
    assert user.id is not None
    assert user.created_at is not None
    assert user.password != "s3cret"
    assert bcrypt.checkpw(b"s3cret", user.password.encode("utf-8"))
    assert catalog.get_user_by_email("ada@example.com").id == user.id


def test_duplicate_email_is_rejected(catalog):
    catalog.create_user({"email": "ada@example.com", "password": "one"})
    with pytest.raises(UniqueConstraintViolation):
        catalog.create_user({"email": "ada@example.com", "password": "two"})
    assert len(catalog.list_users()) == 1


def test_delete_user(catalog):
    user = catalog.create_user({"email": "ada@example.com", "password": "one"})
    catalog.delete_user(user.id)
    assert catalog.get_user(user.id) is None
    with pytest.raises(RecordNotFound):
        catalog.delete_user(user.id)


def test_duplicate_isbn_is_rejected(catalog):
    catalog.create_book({"isbn": "9780000000001"})
    with pytest.raises(UniqueConstraintViolation) as excinfo:
        catalog.create_book({"isbn": "9780000000001"})
    assert excinfo.value.code == "UNIQUE_CONSTRAINT_VIOLATION"
    assert excinfo.value.context["table"] == "books"


@pytest.mark.parametrize("isbn", ["978000000000", "97800000000012", "978000000000X"])
def test_isbn_must_be_thirteen_digits(catalog, isbn):
    with pytest.raises(ValidationViolation):
        catalog.create_book({"isbn": isbn})
    assert catalog.list_books() == []


def test_unreferenced_book_can_be_deleted(catalog, book):
    catalog.delete_book(book.id)
    assert catalog.get_book_by_isbn("9780000000001") is None


def test_book_in_deposit_cannot_be_deleted(catalog, stocked):
    _, _, book = stocked
    with pytest.raises(RestrictedDeleteViolation):
        catalog.delete_book(book.id)
    assert catalog.get_book(book.id) is not None
