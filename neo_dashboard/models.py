from datetime import datetime

from sqlalchemy import Column, Integer, String, Float, Boolean, Date, DateTime, UniqueConstraint
from .database import Base


class Favorite(Base):
    __tablename__ = "favorites"
    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String, index=True, nullable=False)
    neo_id = Column(String, nullable=False)
    neo_name = Column(String)
    approach_date = Column(Date)
    is_hazardous = Column(Boolean)
    estimated_diameter = Column(Float)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint("user_id", "neo_id", name="uq_favorite_user_neo"),
    )

    def __repr__(self) -> str:
        return f"<Favorite {self.user_id} {self.neo_id}>"
