"""Initial schema

Revision ID: 7c3e1a9d52b4
Revises: 
Create Date: 2026-10-18 10:12:31.480215

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '7c3e1a9d52b4'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    from pathlib import Path

    base_dir = Path(__file__).parent.parent.parent
    models_dir = base_dir / "contactdb" / "db" / "models"

    for sql_file in sorted(models_dir.glob("*.sql")):
        with open(sql_file, "r") as f:
            op.execute(f.read())


def downgrade() -> None:
    """Downgrade schema."""
    op.execute("DROP TABLE IF EXISTS user_databases CASCADE")
    op.execute("DROP TABLE IF EXISTS user_contact_credits CASCADE")
