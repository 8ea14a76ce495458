"""init students, university cards, reclamations and activity logs

Revision ID: 3a91c0d4e2b7
Revises:
Create Date: 2026-10-19 09:12:44.518302
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = '3a91c0d4e2b7'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

RECLAMATION_STATUSES = ('pending', 'approved', 'rejected', 'processed', 'error')
ACTIVITY_ACTIONS = (
    'add_funds', 'subtract_funds', 'create_card', 'update_card', 'create_student',
    'update_student', 'delete_student', 'delete_card', 'deduct_funds_admin', 'mark_used', 'view',
)


def upgrade() -> None:
    op.create_table(
        'students',
        sa.Column('student_id', sa.String(length=5), nullable=False),
        sa.Column('cn', sa.String(length=8), nullable=True),
        sa.Column('full_name', sa.String(length=150), nullable=False),
        sa.Column('profile_image', sa.Text(), nullable=True),
        sa.Column('university_id', sa.Integer(), nullable=True),
        sa.Column('card_id', sa.Integer(), nullable=True),
        sa.Column('qr_payload', postgresql.JSONB(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.Column('created_by', sa.Integer(), nullable=True),
        sa.Column('updated_by', sa.Integer(), nullable=True),
        sa.PrimaryKeyConstraint('student_id', name='pk_students'),
        sa.UniqueConstraint('cn', name='uq_students_cn'),
        sa.CheckConstraint("student_id ~ '^[0-9]{5}$'", name='ck_students_student_id_format'),
        sa.CheckConstraint("cn IS NULL OR cn ~ '^[0-9]{8}$'", name='ck_students_cn_format'),
    )

    op.create_table(
        'university_cards',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('student_id', sa.String(length=5), nullable=False),
        sa.Column('card_number', sa.String(length=9), nullable=False),
        sa.Column('balance', sa.Numeric(precision=12, scale=2), server_default='0', nullable=False),
        sa.Column('used', sa.Boolean(), server_default=sa.text('false'), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.Column('created_by', sa.Integer(), nullable=True),
        sa.Column('updated_by', sa.Integer(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['student_id'], ['students.student_id'], ondelete='CASCADE'),
        sa.UniqueConstraint('student_id', name='uq_university_cards_student_id'),
        sa.UniqueConstraint('card_number', name='uq_university_cards_card_number'),
        sa.CheckConstraint('balance >= 0', name='ck_university_cards_balance_non_negative'),
        sa.CheckConstraint("card_number ~ '^[A-Z]{4}[0-9]{5}$'", name='ck_university_cards_card_number_format'),
    )
    op.create_index(op.f('ix_university_cards_id'), 'university_cards', ['id'], unique=False)
    op.create_foreign_key(
        'fk_students_card_id', 'students', 'university_cards',
        ['card_id'], ['id'], ondelete='SET NULL',
    )

    reclamation_status = postgresql.ENUM(*RECLAMATION_STATUSES, name='reclamationstatus')
    reclamation_status.create(op.get_bind(), checkfirst=True)
    op.create_table(
        'reclamations',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('staff_id', sa.Integer(), nullable=False),
        sa.Column('student_id', sa.String(length=5), nullable=False),
        sa.Column('amount', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('reason', sa.Text(), nullable=False),
        sa.Column('evidence', sa.Text(), nullable=True),
        sa.Column(
            'status',
            postgresql.ENUM(*RECLAMATION_STATUSES, name='reclamationstatus', create_type=False),
            server_default='pending',
            nullable=False,
        ),
        sa.Column('admin_id', sa.Integer(), nullable=True),
        sa.Column('admin_notes', sa.Text(), nullable=True),
        sa.Column('processed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['student_id'], ['students.student_id'], ondelete='CASCADE'),
        sa.CheckConstraint('amount > 0', name='ck_reclamations_amount_positive'),
    )
    op.create_index(op.f('ix_reclamations_id'), 'reclamations', ['id'], unique=False)
    op.create_index(op.f('ix_reclamations_student_id'), 'reclamations', ['student_id'], unique=False)
    op.create_index(op.f('ix_reclamations_status'), 'reclamations', ['status'], unique=False)

    activity_action = postgresql.ENUM(*ACTIVITY_ACTIONS, name='activityaction')
    activity_action.create(op.get_bind(), checkfirst=True)
    op.create_table(
        'activity_logs',
        sa.Column('id', sa.BigInteger(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column(
            'action',
            postgresql.ENUM(*ACTIVITY_ACTIONS, name='activityaction', create_type=False),
            nullable=False,
        ),
        sa.Column('entity_type', sa.String(length=50), nullable=False),
        sa.Column('entity_id', sa.String(length=64), nullable=True),
        sa.Column('details', postgresql.JSONB(), nullable=True),
        sa.Column('ip_address', sa.String(length=45), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_activity_logs_user_id'), 'activity_logs', ['user_id'], unique=False)
    op.create_index('ix_activity_logs_entity', 'activity_logs', ['entity_type', 'entity_id', 'created_at'], unique=False)


def downgrade() -> None:
    op.drop_index('ix_activity_logs_entity', table_name='activity_logs')
    op.drop_index(op.f('ix_activity_logs_user_id'), table_name='activity_logs')
    op.drop_table('activity_logs')
    sa.Enum(name='activityaction').drop(op.get_bind(), checkfirst=True)

    op.drop_index(op.f('ix_reclamations_status'), table_name='reclamations')
    op.drop_index(op.f('ix_reclamations_student_id'), table_name='reclamations')
    op.drop_index(op.f('ix_reclamations_id'), table_name='reclamations')
    op.drop_table('reclamations')
    sa.Enum(name='reclamationstatus').drop(op.get_bind(), checkfirst=True)

    op.drop_constraint('fk_students_card_id', 'students', type_='foreignkey')
    op.drop_index(op.f('ix_university_cards_id'), table_name='university_cards')
    op.drop_table('university_cards')
    op.drop_table('students')
