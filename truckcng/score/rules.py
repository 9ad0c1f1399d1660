"""Classification and scoring rules and constants."""
from typing import Dict, Tuple

# Operational status reported by ANP inspections for a confirmed, active station
ACTIVE_STATUS = "200"

# Product labels
CNG_PRODUCT = "GÁS NATURAL VEICULAR"
DIESEL_GRADES: Tuple[str, ...] = ("S10", "S500")

# Address fragments that place a station on a highway (matched after normalization)
ROAD_HINTS: Tuple[str, ...] = ("RODOVIA", "DUTRA", "KM")

# Minimum combined S10/S500 tankage, in whatever unit ANP reports
DIESEL_MIN_CAPACITY = 30.0

# Points per satisfied signal
SCORING_RULES: Dict[str, int] = {
    "CNG": 20,
    "DIESEL_CAP": 20,
    "ROAD": 20,
    "ACTIVE": 20,
}

# GPS precision bonus: 10 - min(estimate, 10)
GPS_BONUS_MAX = 10.0

# Trusted operators always score the maximum
TRUSTED_SCORE = 100.0

# Score ceiling
MAX_SCORE = 100.0
