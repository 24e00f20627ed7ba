from alembic import op
import sqlalchemy as sa

revision = '0001_init'
down_revision = None
branch_labels = None
depends_on = None

def upgrade():
    op.create_table(
        'users',
        sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('email', sa.String(50), nullable=False, unique=True),
        sa.Column('password', sa.String(255), nullable=False),
        sa.Column('created_at', sa.DateTime, nullable=False, server_default=sa.func.now())
    )
    op.create_table(
        'books',
        sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('isbn', sa.String(13), nullable=False, unique=True)
    )
    op.create_table(
        'suppliers',
        sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('name', sa.String(50), nullable=False, unique=True),
        sa.Column('editor_isbn_prefix', sa.String(6), nullable=True, unique=True),
        sa.Column('created_at', sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.Column('stripe_account_id', sa.String(255), nullable=False)
    )
    op.create_table(
        'sellers',
        sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('name', sa.String(50), nullable=False, unique=True),
        sa.Column('created_at', sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.Column('stripe_account_id', sa.String(255), nullable=False)
    )
    op.create_table(
        'suppliers_deposits',
        sa.Column('supplier_id', sa.Integer, nullable=False),
        sa.Column('name', sa.String(50), nullable=False),
        sa.Column('created_at', sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('supplier_id', 'name'),
        sa.ForeignKeyConstraint(
            ['supplier_id'], ['suppliers.id'],
            name='fk_suppliers_deposits_supplier_id_suppliers',
            ondelete='RESTRICT', onupdate='RESTRICT'
        )
    )
    op.create_table(
        'suppliers_deposits_books',
        sa.Column('deposit_supplier_id', sa.Integer, nullable=False),
        sa.Column('deposit_name', sa.String(50), nullable=False),
        sa.Column('book_id', sa.Integer, nullable=False),
        sa.Column('description', sa.String(255), nullable=True),
        sa.Column('quantity', sa.Integer, nullable=False),
        sa.PrimaryKeyConstraint('deposit_supplier_id', 'deposit_name', 'book_id'),
        # A deposit must be emptied before it can be deleted
        sa.ForeignKeyConstraint(
            ['deposit_supplier_id', 'deposit_name'],
            ['suppliers_deposits.supplier_id', 'suppliers_deposits.name'],
            name='fk_suppliers_deposits_books_deposit',
            ondelete='RESTRICT', onupdate='RESTRICT'
        ),
        sa.ForeignKeyConstraint(
            ['book_id'], ['books.id'],
            name='fk_suppliers_deposits_books_book_id_books',
            ondelete='RESTRICT', onupdate='RESTRICT'
        ),
        sa.CheckConstraint('quantity >= 0', name='ck_suppliers_deposits_books_quantity')
    )
    op.create_table(
        'sellers_deposits',
        sa.Column('seller_id', sa.Integer, nullable=False),
        sa.Column('name', sa.String(255), nullable=False, unique=True),
        sa.Column('created_at', sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint('seller_id', 'name'),
        sa.ForeignKeyConstraint(
            ['seller_id'], ['sellers.id'],
            name='fk_sellers_deposits_seller_id_sellers',
            ondelete='CASCADE', onupdate='CASCADE'
        )
    )

def downgrade():
    op.drop_table('sellers_deposits')
    op.drop_table('suppliers_deposits_books')
    op.drop_table('suppliers_deposits')
    op.drop_table('sellers')
    op.drop_table('suppliers')
    op.drop_table('books')
    op.drop_table('users')
