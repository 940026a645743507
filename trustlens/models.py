# trustlens/models.py
import datetime as dt

from sqlalchemy import Column, DateTime, Float, Integer, String

from trustlens.db import Base


def _utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc).replace(tzinfo=None)


class PredictionRecord(Base):
    """A prediction the client chose to keep, reviewed later by an admin."""

    __tablename__ = "predictions"
    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String, nullable=False, index=True)
    user_email = Column(String, nullable=True)
    file_name = Column(String, nullable=False)
    label = Column(String, nullable=False)        # Fake|Real
    confidence = Column(Float, nullable=False, index=True)
    created_at = Column(DateTime, default=_utcnow, nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "userId": self.user_id,
            "userEmail": self.user_email,
            "fileName": self.file_name,
            "label": self.label,
            "confidence": self.confidence,
            "timestamp": self.created_at.isoformat() + "Z",
        }


def init_db(engine):
    Base.metadata.create_all(bind=engine)
