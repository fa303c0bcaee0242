from geoalchemy2 import Geometry
from sqlalchemy import Column, DateTime, Index, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.sql import func


class Base(DeclarativeBase):
    pass


class Aoi(Base):
    __tablename__ = "aois"
    __table_args__ = (
        Index("ix_aois_geom", "geom", postgresql_using="gist"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(64), nullable=False, index=True, comment="Owning user, or 'public' for samples")
    name = Column(Text, nullable=False, default="", server_default="")
    description = Column(Text, nullable=False, default="", server_default="")
    geom = Column(Geometry("GEOMETRY", srid=4326, spatial_index=False), nullable=False,
                  comment="Normalized Point/Polygon/MultiPolygon")
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    def __repr__(self) -> str:
        return f"<Aoi id={self.id} user_id={self.user_id}>"
