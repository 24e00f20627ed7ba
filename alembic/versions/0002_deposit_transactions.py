"""add deposit transactions and their line items

Revision ID: 0002_deposit_transactions
Revises: 0001_init
Create Date: 2024-06-03

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '0002_deposit_transactions'
down_revision = '0001_init'
branch_labels = None
depends_on = None


def _enum(name, *values):
    return sa.Enum(*values, name=name, native_enum=False, create_constraint=True)


def upgrade() -> None:
    op.create_table(
        'deposits_transactions',
        sa.Column('supplier_id', sa.Integer, nullable=False),
        sa.Column('seller_id', sa.Integer, nullable=False),
        sa.Column('created_at', sa.DateTime, nullable=False),
        sa.Column('payment_intent_id', sa.String(255), nullable=False),
        sa.Column('transfers', sa.JSON, nullable=False),
        sa.Column('status', _enum('transaction_status', 'pending', 'completed', 'succeeded', 'failed'),
                  nullable=False),
        sa.PrimaryKeyConstraint('supplier_id', 'seller_id', 'created_at'),
        sa.ForeignKeyConstraint(
            ['supplier_id'], ['suppliers.id'],
            name='fk_deposits_transactions_supplier_id_suppliers',
            ondelete='RESTRICT', onupdate='RESTRICT'
        ),
        sa.ForeignKeyConstraint(
            ['seller_id'], ['sellers.id'],
            name='fk_deposits_transactions_seller_id_sellers',
            ondelete='RESTRICT', onupdate='RESTRICT'
        )
    )
    op.create_index('ix_deposits_transactions_payment_intent', 'deposits_transactions', ['payment_intent_id'])

    op.create_table(
        'deposits_transactions_books',
        sa.Column('supplier_id', sa.Integer, nullable=False),
        sa.Column('seller_id', sa.Integer, nullable=False),
        sa.Column('created_at', sa.DateTime, nullable=False),
        sa.Column('book_id', sa.Integer, nullable=False),
        sa.Column('supplier_deposit_id', sa.String(50), nullable=False),
        sa.Column('seller_deposit_id', sa.String(255), nullable=False),
        sa.Column('quantity', sa.Integer, nullable=False),
        sa.Column('paymentStatus', _enum('payment_status', 'pending', 'paid'),
                  nullable=False, server_default='pending'),
        sa.Column('status', _enum('line_item_status', 'transit', 'usable', 'closed'),
                  nullable=False, server_default='transit'),
        sa.Column('closure_reason', _enum('closure_reason', 'sold_out', 'returned'), nullable=True),
        sa.Column('due_at', sa.DateTime, nullable=True),
        sa.PrimaryKeyConstraint('supplier_id', 'seller_id', 'created_at', 'book_id',
                                'supplier_deposit_id', 'seller_deposit_id'),
        sa.ForeignKeyConstraint(
            ['supplier_id', 'seller_id', 'created_at'],
            ['deposits_transactions.supplier_id', 'deposits_transactions.seller_id',
             'deposits_transactions.created_at'],
            name='fk_deposits_transactions_books_transaction',
            ondelete='RESTRICT', onupdate='RESTRICT'
        ),
        sa.ForeignKeyConstraint(
            ['supplier_id', 'supplier_deposit_id'],
            ['suppliers_deposits.supplier_id', 'suppliers_deposits.name'],
            name='fk_deposits_transactions_books_supplier_deposit',
            ondelete='RESTRICT', onupdate='RESTRICT'
        ),
        sa.ForeignKeyConstraint(
            ['seller_id', 'seller_deposit_id'],
            ['sellers_deposits.seller_id', 'sellers_deposits.name'],
            name='fk_deposits_transactions_books_seller_deposit',
            ondelete='RESTRICT', onupdate='RESTRICT'
        ),
        sa.ForeignKeyConstraint(
            ['book_id'], ['books.id'],
            name='fk_deposits_transactions_books_book_id_books',
            ondelete='RESTRICT', onupdate='RESTRICT'
        ),
        sa.CheckConstraint('quantity > 0', name='ck_deposits_transactions_books_quantity'),
        sa.CheckConstraint(
            "(status = 'closed' AND closure_reason IS NOT NULL) "
            "OR (status != 'closed' AND closure_reason IS NULL)",
            name='ck_deposits_transactions_books_closure_reason'
        )
    )
    op.create_index(
        'ix_deposits_transactions_books_seller_status', 'deposits_transactions_books',
        ['seller_id', 'seller_deposit_id', 'status', 'created_at']
    )
    # Pending payments per seller; "overdue" is due_at < now, evaluated when queried
    op.create_index(
        'ix_deposits_transactions_books_unpaid', 'deposits_transactions_books',
        ['seller_id', 'due_at'],
        postgresql_where=sa.text("\"paymentStatus\" = 'pending'"),
        sqlite_where=sa.text("\"paymentStatus\" = 'pending'")
    )


def downgrade() -> None:
    op.drop_index('ix_deposits_transactions_books_unpaid', table_name='deposits_transactions_books')
    op.drop_index('ix_deposits_transactions_books_seller_status', table_name='deposits_transactions_books')
    op.drop_table('deposits_transactions_books')
    op.drop_index('ix_deposits_transactions_payment_intent', table_name='deposits_transactions')
    op.drop_table('deposits_transactions')
