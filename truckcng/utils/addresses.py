"""Address string utilities."""
from typing import Optional


def build_full_address(
    street: Optional[str],
    number: Optional[str] = None,
    city: Optional[str] = None,
    state: Optional[str] = None,
    zip_code: Optional[str] = None,
    country: Optional[str] = "Brazil"
) -> str:
    """
    Build a single-line address for geocoding.

    Blank parts are skipped; the house number is joined to the street.

    Args:
        street: Street line ("Rodovia Presidente Dutra, km 225")
        number: House number, if kept in a separate column
        city: Municipality
        state: State code (UF)
        zip_code: CEP
        country: Country name (default: Brazil)

    Returns:
        Comma-separated address, or "" when no street, city or CEP is known
    """
    def clean(value: Optional[str]) -> str:
        return str(value).strip() if value is not None else ""

    street_line = " ".join(p for p in (clean(street), clean(number)) if p)
    if not (street_line or clean(city) or clean(zip_code)):
        return ""

    parts = [street_line, clean(city), clean(state), clean(zip_code), clean(country)]
    return ", ".join(p for p in parts if p)
