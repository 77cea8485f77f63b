from alembic import op
import sqlalchemy as sa

revision = '0001'
down_revision = None
branch_labels = None
depends_on = None

def upgrade():
    op.create_table(
        'favorites',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column('user_id', sa.String, nullable=False, index=True),
        sa.Column('neo_id', sa.String, nullable=False),
        sa.Column('neo_name', sa.String),
        sa.Column('approach_date', sa.Date),
        sa.Column('is_hazardous', sa.Boolean),
        sa.Column('estimated_diameter', sa.Float),
        sa.Column('created_at', sa.DateTime, nullable=False),
        sa.UniqueConstraint('user_id', 'neo_id', name='uq_favorite_user_neo'),
    )

def downgrade():
    op.drop_table('favorites')
