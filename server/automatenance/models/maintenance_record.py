"""Maintenance record model."""

from automatenance.models.base import Base, TimestampMixin, new_id
from sqlalchemy import Column, Date, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship


class MaintenanceRecord(Base, TimestampMixin):
    """Maintenance event logged against a vehicle.

    Stores one performed service:
    - Free-text service type ("Oil Change", "brake pads", ...)
    - Service date and odometer reading at the time, when known
    - Optional notes and description
    """

    __tablename__ = "maintenance_records"

    # Primary Identity
    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), nullable=False, index=True)
    vehicle_id = Column(String(36), ForeignKey("vehicles.id"), nullable=False, index=True)

    # Service Performed
    type = Column(String(100), nullable=False)
    date = Column(Date, nullable=False, index=True)
    mileage = Column(Integer)
    notes = Column(Text)
    description = Column(Text)

    # Relationships
    vehicle = relationship("Vehicle", back_populates="maintenance_records")

    def __repr__(self):
        return (
            f"<MaintenanceRecord(id={self.id}, vehicle_id={self.vehicle_id}, "
            f"type='{self.type}', date='{self.date}')>"
        )
