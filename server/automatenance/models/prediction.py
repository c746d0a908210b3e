"""Maintenance prediction model."""

import enum

from automatenance.models.base import Base, new_id
from sqlalchemy import JSON, Column, Date, DateTime, ForeignKey, Index, Integer, String, Text, func
from sqlalchemy.orm import relationship


class Urgency(str, enum.Enum):
    """Prediction urgency enum."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class PredictionSource(str, enum.Enum):
    """Where a persisted prediction came from."""

    AI = "ai"
    LOCAL = "local"


class MaintenancePrediction(Base):
    """Predicted upcoming maintenance for a vehicle.

    The full set for a (user_id, vehicle_id) pair is replaced on every
    successful refresh; rows are never patched in place.

    basis structure:
        {
            "source": "ai" | "local",
            "features": {...},  # FeatureSet snapshot used for the forecast
            "rag_refs": [str]
        }
    """

    __tablename__ = "maintenance_predictions"

    __table_args__ = (
        Index("ix_maintenance_predictions_user_vehicle", "user_id", "vehicle_id"),
    )

    # Primary Identity
    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), nullable=False, index=True)
    vehicle_id = Column(String(36), ForeignKey("vehicles.id"), nullable=False)

    # Forecast
    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=False)
    predicted_date = Column(Date)
    predicted_mileage = Column(Integer)
    confidence = Column(Integer, nullable=False)  # 1-99
    urgency = Column(String(10), nullable=False)

    # Provenance
    basis = Column(JSON, nullable=False)
    inputs_hash = Column(String(64), nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    # Relationships
    vehicle = relationship("Vehicle", back_populates="predictions")

    def __repr__(self):
        return (
            f"<MaintenancePrediction(id={self.id}, vehicle_id={self.vehicle_id}, "
            f"title='{self.title}', predicted_date='{self.predicted_date}')>"
        )
