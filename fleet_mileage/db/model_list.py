from sqlalchemy import Column, String, DateTime, Boolean, Float, ForeignKey
from sqlalchemy.orm import declarative_base, relationship
import datetime

Base = declarative_base()


def _utcnow():
    return datetime.datetime.now(datetime.timezone.utc)


class Trip(Base):
    __tablename__ = "trips"

    id = Column(String, primary_key=True, index=True)
    vehicle_id = Column(String, nullable=False, index=True)
    driver_id = Column(String, nullable=True)
    trip_serial_number = Column(String, nullable=True)
    trip_end_date = Column(DateTime(timezone=True), nullable=True, index=True)
    start_km = Column(Float, nullable=True)
    end_km = Column(Float, nullable=True)
    refueling_done = Column(Boolean, nullable=False, default=False)
    fuel_quantity = Column(Float, nullable=True)
    calculated_kmpl = Column(Float, nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    refuelings = relationship(
        "Refueling",
        back_populates="trip",
        order_by="Refueling.created_at",
        cascade="all, delete-orphan",
    )


class Refueling(Base):
    __tablename__ = "refuelings"

    id = Column(String, primary_key=True, index=True)
    trip_id = Column(String, ForeignKey("trips.id", ondelete="CASCADE"), nullable=False, index=True)
    fuel_quantity = Column(Float, nullable=True)
    fuel_rate_per_liter = Column(Float, nullable=True)
    total_fuel_cost = Column(Float, nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow)

    trip = relationship("Trip", back_populates="refuelings")
