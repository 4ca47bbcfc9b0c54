from sqlalchemy import Column, Integer, String, DateTime, ForeignKey
from app.database import Base, utcnow


class GreenPointTransaction(Base):
    __tablename__ = "green_point_transactions"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String, ForeignKey("profiles.id"), index=True, nullable=False)
    points = Column(Integer, nullable=False)  # signed: awards > 0, spends < 0
    source = Column(String, index=True, nullable=False)  # referral|welcome_bonus|marketplace_purchase|marketplace_sale
    description = Column(String, nullable=True)
    reference_id = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)
