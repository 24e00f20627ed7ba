from sqlalchemy import select
from sqlalchemy.orm import Session
from typing import Any, Mapping, Optional, Union
import bcrypt
from consignment.core import get_logger
from consignment.core_settings import get_settings
from consignment.domain.errors import RecordNotFound
from consignment.domain.models import User, Book
from consignment.infrastructure.integrity import guarded_write
from .schemas import UserCreate, BookCreate, validate_payload

logger = get_logger(__name__)

def hash_password(password: str, rounds: Optional[int] = None) -> str:
    salt = bcrypt.gensalt(rounds=rounds or get_settings().BCRYPT_ROUNDS)
    return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")

class CatalogService:
    """Users and the canonical book catalog."""

    def __init__(self, db: Session):
        self.db = db

    # Users

    def list_users(self):
        return self.db.scalars(select(User).order_by(User.id)).all()

    def get_user(self, user_id: int) -> Optional[User]:
        return self.db.get(User, user_id)

    def get_user_by_email(self, email: str) -> Optional[User]:
        return self.db.scalars(select(User).where(User.email == email)).first()

    def create_user(self, data: Union[UserCreate, Mapping[str, Any]]) -> User:
        data = validate_payload(UserCreate, data)
        obj = User(email=data.email, password=hash_password(data.password))
        with guarded_write(self.db, table="users", email=data.email):
            self.db.add(obj)
            self.db.commit()
        self.db.refresh(obj)
        logger.info("User created", extra={'extra_fields': {'user_id': obj.id}})
        return obj

    def delete_user(self, user_id: int) -> None:
        user = self.get_user(user_id)
        if not user:
            raise RecordNotFound("User not found", {"user_id": user_id})
        with guarded_write(self.db, deleting=True, table="users", user_id=user_id):
            self.db.delete(user)
            self.db.commit()

    # Books

    def list_books(self):
        return self.db.scalars(select(Book).order_by(Book.id)).all()

    def get_book(self, book_id: int) -> Optional[Book]:
        return self.db.get(Book, book_id)

    def get_book_by_isbn(self, isbn: str) -> Optional[Book]:
        return self.db.scalars(select(Book).where(Book.isbn == isbn)).first()

    def create_book(self, data: Union[BookCreate, Mapping[str, Any]]) -> Book:
        data = validate_payload(BookCreate, data)
        obj = Book(isbn=data.isbn)
        with guarded_write(self.db, table="books", isbn=data.isbn):
            self.db.add(obj)
            self.db.commit()
        self.db.refresh(obj)
        logger.info("Book created", extra={'extra_fields': {'book_id': obj.id, 'isbn': obj.isbn}})
        return obj

    def delete_book(self, book_id: int) -> None:
        """Fails with RestrictedDeleteViolation while a deposit or transaction line holds the book."""
        book = self.get_book(book_id)
        if not book:
            raise RecordNotFound("Book not found", {"book_id": book_id})
        with guarded_write(self.db, deleting=True, table="books", book_id=book_id):
            self.db.delete(book)
            self.db.commit()
        logger.info("Book deleted", extra={'extra_fields': {'book_id': book_id}})
