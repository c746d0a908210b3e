"""Database models for the application."""

from automatenance.models.base import Base
from automatenance.models.knowledge_doc import KnowledgeDoc
from automatenance.models.maintenance_record import MaintenanceRecord
from automatenance.models.prediction import MaintenancePrediction, PredictionSource, Urgency
from automatenance.models.subscription import Subscription
from automatenance.models.vehicle import Vehicle

__all__ = [
    "Base",
    "Vehicle",
    "MaintenanceRecord",
    "MaintenancePrediction",
    "PredictionSource",
    "Urgency",
    "Subscription",
    "KnowledgeDoc",
]
