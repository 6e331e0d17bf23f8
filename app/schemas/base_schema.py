from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict


class BaseSchema(BaseModel):
    """Base schema shared by request bodies"""

    model_config = ConfigDict(
        str_strip_whitespace=True,
        extra="forbid",
        from_attributes=True,
    )


class BloodType(str, Enum):
    """Enum for valid blood types"""

    A_POSITIVE = "A+"
    A_NEGATIVE = "A-"
    B_POSITIVE = "B+"
    B_NEGATIVE = "B-"
    AB_POSITIVE = "AB+"
    AB_NEGATIVE = "AB-"
    O_POSITIVE = "O+"
    O_NEGATIVE = "O-"

    @classmethod
    def get_values(cls) -> List[str]:
        """Get all valid blood type values"""
        return [item.value for item in cls]

    @classmethod
    def normalize(cls, value: str) -> Optional[str]:
        """Upper-case and strip a blood type; None if it is not a known type"""
        if value is None:
            return None
        candidate = value.strip().upper()
        return candidate if candidate in cls.get_values() else None


class BloodComponent(str, Enum):
    """Processed form of a donation. Shelf life lives in COMPONENT_CATALOG."""

    WHOLE_BLOOD = "WHOLE_BLOOD"
    PRBC = "PRBC"
    PRBC_SAGM = "PRBC_SAGM"
    FFP = "FFP"
    PLATELETS_RDP = "PLATELETS_RDP"
    SDP = "SDP"
    CRYO = "CRYO"

    @property
    def display_name(self) -> str:
        return COMPONENT_CATALOG[self].display_name

    @property
    def shelf_life_days(self) -> int:
        return COMPONENT_CATALOG[self].shelf_life_days

    @classmethod
    def parse(cls, value) -> Optional["BloodComponent"]:
        """Case-insensitive lookup by code; None for unknown codes"""
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            return None
        try:
            return cls(value.strip().upper())
        except ValueError:
            return None


@dataclass(frozen=True)
class ComponentInfo:
    display_name: str
    shelf_life_days: int


COMPONENT_CATALOG: Dict[BloodComponent, ComponentInfo] = {
    BloodComponent.WHOLE_BLOOD: ComponentInfo("Whole Blood", 35),
    BloodComponent.PRBC: ComponentInfo("Packed RBC (Non-SAGM)", 35),
    BloodComponent.PRBC_SAGM: ComponentInfo("Packed RBC (SAGM)", 42),
    BloodComponent.FFP: ComponentInfo("Fresh Frozen Plasma", 365),
    BloodComponent.PLATELETS_RDP: ComponentInfo("Platelets (RDP)", 5),
    BloodComponent.SDP: ComponentInfo("Single Donor Platelets", 5),
    BloodComponent.CRYO: ComponentInfo("Cryoprecipitate", 365),
}

PLATELET_COMPONENTS = frozenset({BloodComponent.PLATELETS_RDP, BloodComponent.SDP})


def list_components() -> List[dict]:
    return [
        {
            "code": component.value,
            "name": info.display_name,
            "shelf_life_days": info.shelf_life_days,
        }
        for component, info in COMPONENT_CATALOG.items()
    ]


class UnitStatus(str, Enum):
    AVAILABLE = "AVAILABLE"
    RESERVED = "RESERVED"
    USED = "USED"
    EXPIRED = "EXPIRED"
    DISCARDED = "DISCARDED"

    @classmethod
    def parse(cls, value) -> Optional["UnitStatus"]:
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            return None
        try:
            return cls(value.strip().upper())
        except ValueError:
            return None


# Statuses an expired unit may no longer move into
USABLE_STATUSES = frozenset({UnitStatus.AVAILABLE, UnitStatus.RESERVED, UnitStatus.USED})


class ExpiryBucket(str, Enum):
    EXPIRED = "expired"
    CRITICAL = "critical"
    WARNING = "warning"
    GOOD = "good"


class RequestStatus(str, Enum):

    PENDING = "PENDING"
    ACCEPTED = "ACCEPTED"
    DECLINED = "DECLINED"
    DONATED = "DONATED"
    EXPIRED = "EXPIRED"


class ReservationStatus(str, Enum):

    PENDING = "pending"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class ResponseSchema(BaseModel):
    """Base schema for serialising ORM objects"""

    model_config = ConfigDict(from_attributes=True)
