"""initial schema: kelas, riwayat naik kelas, tagihan, notifikasi

Revision ID: 5a1c3e7f9b20
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '5a1c3e7f9b20'
down_revision = None
branch_labels = None
depends_on = None


userrole = sa.Enum('ADMIN', 'SANTRI', 'WALI_SANTRI', 'TU', name='userrole')
paymentstatus = sa.Enum('UNPAID', 'PENDING', 'PARTIAL', 'PAID', name='paymentstatus')
transactionstatus = sa.Enum('PENDING', 'APPROVED', 'REJECTED', name='transactionstatus')
notificationtype = sa.Enum(
    'NAIK_KELAS', 'TAGIHAN_DIPINDAH', 'PEMBAYARAN_DITERIMA', 'PEMBAYARAN_DITOLAK', 'SISTEM',
    name='notificationtype',
)


def upgrade():
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('username', sa.String(length=64), nullable=False),
        sa.Column('email', sa.String(length=120), nullable=False),
        sa.Column('password_hash', sa.String(length=256), nullable=True),
        sa.Column('role', userrole, nullable=False),
        sa.Column('last_login', sa.DateTime(), nullable=True),
        sa.Column('receive_app_notifications', sa.Boolean(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('email'),
        sa.UniqueConstraint('username')
    )

    op.create_table(
        'academic_years',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=20), nullable=False),
        sa.Column('semester', sa.String(length=10), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    # Satu tahun ajaran aktif dijaga juga di level database
    op.create_index(
        'uq_academic_years_single_active', 'academic_years', ['is_active'], unique=True,
        postgresql_where=sa.text('is_active'), sqlite_where=sa.text('is_active'),
    )

    op.create_table(
        'class_rooms',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=50), nullable=False),
        sa.Column('grade_level', sa.Integer(), nullable=True),
        sa.Column('academic_year_id', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['academic_year_id'], ['academic_years.id']),
        sa.PrimaryKeyConstraint('id')
    )

    op.create_table(
        'students',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=True),
        sa.Column('current_class_id', sa.Integer(), nullable=False),
        sa.Column('nis', sa.String(length=20), nullable=False),
        sa.Column('full_name', sa.String(length=100), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['current_class_id'], ['class_rooms.id']),
        sa.ForeignKeyConstraint(['user_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('nis')
    )
    op.create_index(op.f('ix_students_current_class_id'), 'students', ['current_class_id'], unique=False)

    op.create_table(
        'student_class_history',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('student_id', sa.Integer(), nullable=False),
        sa.Column('previous_class_id', sa.Integer(), nullable=False),
        sa.Column('new_class_id', sa.Integer(), nullable=False),
        sa.Column('promoted_at', sa.DateTime(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['new_class_id'], ['class_rooms.id']),
        sa.ForeignKeyConstraint(['previous_class_id'], ['class_rooms.id']),
        sa.ForeignKeyConstraint(['student_id'], ['students.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_student_class_history_student_id'), 'student_class_history', ['student_id'], unique=False)

    op.create_table(
        'fee_types',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=50), nullable=True),
        sa.Column('amount', sa.Float(), nullable=True),
        sa.Column('academic_year_id', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['academic_year_id'], ['academic_years.id']),
        sa.PrimaryKeyConstraint('id')
    )

    op.create_table(
        'invoices',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('invoice_number', sa.String(length=80), nullable=True),
        sa.Column('student_id', sa.Integer(), nullable=False),
        sa.Column('fee_type_id', sa.Integer(), nullable=True),
        sa.Column('academic_year_id', sa.Integer(), nullable=True),
        sa.Column('total_amount', sa.Float(), nullable=False),
        sa.Column('paid_amount', sa.Float(), nullable=True),
        sa.Column('status', paymentstatus, nullable=False),
        sa.Column('due_date', sa.Date(), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['academic_year_id'], ['academic_years.id']),
        sa.ForeignKeyConstraint(['fee_type_id'], ['fee_types.id']),
        sa.ForeignKeyConstraint(['student_id'], ['students.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('invoice_number')
    )
    op.create_index(op.f('ix_invoices_student_id'), 'invoices', ['student_id'], unique=False)

    op.create_table(
        'transactions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('invoice_id', sa.Integer(), nullable=True),
        sa.Column('student_id', sa.Integer(), nullable=True),
        sa.Column('amount', sa.Float(), nullable=True),
        sa.Column('method', sa.String(length=30), nullable=True),
        sa.Column('status', transactionstatus, nullable=False),
        sa.Column('order_id', sa.String(length=80), nullable=True),
        sa.Column('payment_date', sa.DateTime(), nullable=True),
        sa.Column('note', sa.String(length=255), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['invoice_id'], ['invoices.id']),
        sa.ForeignKeyConstraint(['student_id'], ['students.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_transactions_invoice_id'), 'transactions', ['invoice_id'], unique=False)
    op.create_index(op.f('ix_transactions_order_id'), 'transactions', ['order_id'], unique=False)

    op.create_table(
        'notifications',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('title', sa.String(length=120), nullable=False),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('type', notificationtype, nullable=False),
        sa.Column('is_read', sa.Boolean(), nullable=False),
        sa.Column('invoice_id', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['invoice_id'], ['invoices.id'], ondelete='SET NULL'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_notifications_user_id'), 'notifications', ['user_id'], unique=False)


def downgrade():
    op.drop_index(op.f('ix_notifications_user_id'), table_name='notifications')
    op.drop_table('notifications')
    op.drop_index(op.f('ix_transactions_order_id'), table_name='transactions')
    op.drop_index(op.f('ix_transactions_invoice_id'), table_name='transactions')
    op.drop_table('transactions')
    op.drop_index(op.f('ix_invoices_student_id'), table_name='invoices')
    op.drop_table('invoices')
    op.drop_table('fee_types')
    op.drop_index(op.f('ix_student_class_history_student_id'), table_name='student_class_history')
    op.drop_table('student_class_history')
    op.drop_index(op.f('ix_students_current_class_id'), table_name='students')
    op.drop_table('students')
    op.drop_table('class_rooms')
    op.drop_index('uq_academic_years_single_active', table_name='academic_years')
    op.drop_table('academic_years')
    op.drop_table('users')

    # Hapus enum jika tidak dipakai lagi (hanya Postgres yang punya TYPE).
    if op.get_bind().dialect.name == "postgresql":
        for enum_name in ("notificationtype", "transactionstatus", "paymentstatus", "userrole"):
            op.execute(f"DROP TYPE IF EXISTS {enum_name}")
