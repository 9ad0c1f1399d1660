"""Shared fixtures."""
import pytest

from truckcng.ingest.models import StationRecord

CNG = "GÁS NATURAL VEICULAR"
DIESEL_S10 = "ÓLEO DIESEL B S10 - COMUM"
DIESEL_S500 = "ÓLEO DIESEL B S500 - COMUM"


def build_station(**overrides) -> StationRecord:
    """A station that passes every predicate unless overridden."""
    fields = {
        "station_id": "1001",
        "legal_name": "Auto Posto Via Dutra Ltda",
        "tax_id": "11111111000111",
        "street": "Rodovia Presidente Dutra",
        "complement": "Km 225",
        "city": "Guarulhos",
        "state": "SP",
        "zip_code": "07034000",
        "status_code": "200",
        "distributor": "Ipiranga",
        "products": [
            {"name": CNG, "tank_capacity": None, "capacity_unit": "m3", "dispenser_count": 2},
            {"name": DIESEL_S10, "tank_capacity": 30, "capacity_unit": "m3", "dispenser_count": 4},
        ],
        "accuracy_estimate": None,
    }
    fields.update(overrides)
    return StationRecord(**fields)


@pytest.fixture
def make_station():
    return build_station
