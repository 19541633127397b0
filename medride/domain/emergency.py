"""
Emergency types and the ambulance classes that can serve them.

An unknown (or unselected) emergency allows every vehicle and suggests BLS.
"""

from typing import Optional

from .enums import VehicleType

ALS, BLS, CCS = VehicleType.ALS, VehicleType.BLS, VehicleType.CCS

REQUIRED_VEHICLES: dict[str, tuple[VehicleType, ...]] = {
    # heart & circulation
    "heart_attack": (ALS, CCS),
    "cardiac_arrest": (ALS, CCS),
    "chest_pain": (BLS, ALS),
    # trauma
    "major_trauma": (ALS, CCS),
    "motor_accident": (ALS, CCS),
    "burns": (ALS, CCS),
    # respiratory
    "breathing_difficulty": (BLS, ALS),
    "choking": (BLS, ALS),
    # neurological
    "stroke": (ALS, CCS),
    "seizure": (BLS, ALS),
    "head_injury": (ALS, CCS),
    # pediatric / obstetric
    "pediatric_emergency": (BLS, ALS),
    "newborn_emergency": (ALS, CCS),
    "pregnancy_emergency": (BLS, ALS),
    "labor_delivery": (ALS,),
    # other
    "mental_health_crisis": (BLS, ALS),
    "poisoning": (ALS, CCS),
    "general_emergency": (BLS, ALS),
    "diabetic_emergency": (BLS, ALS),
    "allergic_reaction": (BLS, ALS),
}

# Most capable first.
_CAPABILITY = [
    VehicleType.CCS,
    VehicleType.ALS,
    VehicleType.BLS,
    VehicleType.AUTO,
    VehicleType.BIKE,
]


def available_vehicles(emergency_id: Optional[str]) -> list[VehicleType]:
    """Vehicle classes that may be booked for *emergency_id*."""
    required = REQUIRED_VEHICLES.get(emergency_id or "")
    if required is None:
        return list(VehicleType)
    return list(required)


def suggest_vehicle(emergency_id: Optional[str]) -> VehicleType:
    """The most capable vehicle class the emergency calls for."""
    required = REQUIRED_VEHICLES.get(emergency_id or "")
    if not required:
        return VehicleType.BLS
    return next(v for v in _CAPABILITY if v in required)
