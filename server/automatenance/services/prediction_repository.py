"""Relational reads and prediction replacement for the refresh engine."""

import logging
from typing import Any, Dict, List, Optional

from automatenance.exceptions import PersistenceError
from automatenance.models.maintenance_record import MaintenanceRecord
from automatenance.models.prediction import MaintenancePrediction
from automatenance.models.vehicle import Vehicle
from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)


class VehicleRepository:
    """Read-only access to a user's vehicles and maintenance history."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def list_for_user(self, user_id: str, vehicle_id: str = None) -> List[Vehicle]:
        stmt = select(Vehicle).where(Vehicle.user_id == user_id).order_by(Vehicle.id)
        if vehicle_id:
            stmt = stmt.where(Vehicle.id == vehicle_id)
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def records_by_vehicle(
        self, user_id: str, vehicle_ids: List[str]
    ) -> Dict[str, List[MaintenanceRecord]]:
        """Maintenance records for the given vehicles, grouped by vehicle id."""
        grouped: Dict[str, List[MaintenanceRecord]] = {vid: [] for vid in vehicle_ids}
        if not vehicle_ids:
            return grouped

        stmt = select(MaintenanceRecord).where(
            MaintenanceRecord.user_id == user_id,
            MaintenanceRecord.vehicle_id.in_(vehicle_ids),
        )
        result = await self.db.execute(stmt)
        for record in result.scalars().all():
            grouped[record.vehicle_id].append(record)
        return grouped


class PredictionRepository:
    """Owns the maintenance_predictions table."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def replace_all(
        self, user_id: str, vehicle_id: str, rows: List[Dict[str, Any]]
    ) -> int:
        """
        Replace every prediction for (user_id, vehicle_id) in one transaction.

        Args:
            user_id: Owner
            vehicle_id: Vehicle whose set is replaced
            rows: Column dicts for the new set

        Returns:
            Number of predictions inserted

        Raises:
            PersistenceError: If the delete or insert fails (nothing is changed)
        """
        try:
            await self.db.execute(
                delete(MaintenancePrediction).where(
                    MaintenancePrediction.user_id == user_id,
                    MaintenancePrediction.vehicle_id == vehicle_id,
                )
            )
            self.db.add_all([MaintenancePrediction(**row) for row in rows])
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Failed to replace predictions for vehicle {vehicle_id}: {e}")
            raise PersistenceError(f"replace_all failed for vehicle {vehicle_id}") from e

        logger.info(f"Replaced predictions for vehicle {vehicle_id}: {len(rows)} row(s)")
        return len(rows)

    async def list_for_user(
        self, user_id: str, vehicle_id: Optional[str] = None
    ) -> List[MaintenancePrediction]:
        stmt = select(MaintenancePrediction).where(MaintenancePrediction.user_id == user_id)
        if vehicle_id:
            stmt = stmt.where(MaintenancePrediction.vehicle_id == vehicle_id)
        stmt = stmt.order_by(
            MaintenancePrediction.predicted_date.is_(None),
            MaintenancePrediction.predicted_date,
            MaintenancePrediction.title,
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())
