# meterdata/models.py
import enum
from dataclasses import dataclass

from sqlalchemy import Column, Float, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import declarative_base

Base = declarative_base()


class Reading(Base):
    __tablename__ = "smart_meter_data"
    __table_args__ = (
        UniqueConstraint("device_id", "timestamp", name="unique_smart_meter_data"),
        Index("idx_smart_meter_data_device_id", "device_id"),
        Index("idx_smart_meter_data_timestamp", "timestamp"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    site_id = Column(String, nullable=False)           # solar manager id
    device_id = Column(String, nullable=False)         # smart meter (sensor) id
    timestamp = Column(Integer, nullable=False)        # unix seconds, UTC
    energy_exported_wh = Column(Float, nullable=False)
    energy_imported_wh = Column(Float, nullable=False)


class DeviceKind(enum.Enum):
    PRIMARY_METER = "primary-meter"
    SUB_METER = "sub-meter"
    OTHER = "other"

    @classmethod
    def parse(cls, raw) -> "DeviceKind":
        try:
            return cls(raw)
        except ValueError:
            return cls.OTHER


@dataclass(frozen=True)
class Device:
    """A sensor as listed by the upstream catalog. Never persisted."""

    device_id: str
    site_id: str
    display_name: str
    kind: DeviceKind


@dataclass(frozen=True)
class FetchedReading:
    site_id: str
    device_id: str
    timestamp: int
    energy_exported_wh: float
    energy_imported_wh: float

    def as_row(self) -> dict:
        return {
            "site_id": self.site_id,
            "device_id": self.device_id,
            "timestamp": self.timestamp,
            "energy_exported_wh": self.energy_exported_wh,
            "energy_imported_wh": self.energy_imported_wh,
        }
