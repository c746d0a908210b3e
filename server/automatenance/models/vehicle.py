"""Vehicle model."""

from automatenance.models.base import Base, TimestampMixin, new_id
from sqlalchemy import Column, Integer, String
from sqlalchemy.orm import relationship


class Vehicle(Base, TimestampMixin):
    """Vehicle owned by a user.

    Rows are created and edited by the vehicle CRUD layer; the prediction
    engine only reads the identity and current mileage.
    """

    __tablename__ = "vehicles"

    # Primary Identity
    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), nullable=False, index=True)

    # Vehicle Details
    make = Column(String(100), nullable=False)
    model = Column(String(100), nullable=False)
    year = Column(Integer)
    mileage = Column(Integer)

    # Relationships
    maintenance_records = relationship(
        "MaintenanceRecord", back_populates="vehicle", cascade="all, delete-orphan"
    )
    predictions = relationship(
        "MaintenancePrediction", back_populates="vehicle", cascade="all, delete-orphan"
    )

    def snapshot(self) -> dict:
        """Identity fields that feed the inputs hash."""
        return {
            "id": self.id,
            "make": self.make,
            "model": self.model,
            "year": self.year,
            "mileage": self.mileage,
        }

    def __repr__(self):
        return f"<Vehicle(id={self.id}, {self.year} {self.make} {self.model})>"
