"""create aois

Revision ID: 0001
Revises:
Create Date: 2026-10-01 00:00:00.000000

"""
from __future__ import annotations

from typing import Sequence, Union

import geoalchemy2
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("CREATE EXTENSION IF NOT EXISTS postgis")

    op.create_table(
        "aois",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.String(64), nullable=False,
                  comment="Owning user, or 'public' for samples"),
        sa.Column("name", sa.Text(), nullable=False, server_default=""),
        sa.Column("description", sa.Text(), nullable=False, server_default=""),
        sa.Column("geom",
                  geoalchemy2.types.Geometry(
                      geometry_type="GEOMETRY", srid=4326,
                      from_text="ST_GeomFromEWKT",
                      name="geometry",
                      spatial_index=False,
                  ),
                  nullable=False,
                  comment="Normalized Point/Polygon/MultiPolygon"),
        sa.Column("created_at", sa.DateTime(timezone=True),
                  server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True),
                  server_default=sa.func.now()),
    )

    op.create_index("ix_aois_user_id", "aois", ["user_id"])
    op.create_index("ix_aois_geom", "aois", ["geom"], postgresql_using="gist")


def downgrade() -> None:
    op.drop_index("ix_aois_geom", table_name="aois", postgresql_using="gist")
    op.drop_index("ix_aois_user_id", table_name="aois")
    op.drop_table("aois")
