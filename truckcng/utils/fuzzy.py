"""Fuzzy header matching for uploaded address files."""
from typing import Dict, List, Optional

from rapidfuzz import fuzz

from truckcng.entity.normalize import normalize_text

# Canonical address field -> header spellings seen in ANP exports and user uploads
ADDRESS_HEADERS: Dict[str, List[str]] = {
    "address": ["address", "full_address", "endereco_completo"],
    "street": ["street", "endereco", "logradouro", "rua"],
    "number": ["number", "numero", "nro"],
    "city": ["city", "municipio", "cidade"],
    "state": ["state", "uf", "estado"],
    "zip_code": ["zip_code", "zip", "cep", "postal_code"],
    "country": ["country", "pais"],
}


def _key(header: str) -> str:
    return normalize_text(header).replace(" ", "_").replace("-", "_")


def find_header_match(
    candidates: List[str],
    actual_headers: List[str],
    threshold: float = 85.0
) -> Optional[str]:
    """
    Find the actual header that best matches any of the candidate spellings.

    Args:
        candidates: Accepted spellings for one field
        actual_headers: Header names from the file
        threshold: Minimum similarity score (0-100)

    Returns:
        Best matching header name or None if below threshold
    """
    best_match = None
    best_score = 0.0

    for header in actual_headers:
        for candidate in candidates:
            score = fuzz.ratio(_key(candidate), _key(header))
            if score > best_score:
                best_score = score
                best_match = header

    if best_score >= threshold:
        return best_match
    return None


def map_headers(
    actual_headers: List[str],
    expected_headers: Optional[Dict[str, List[str]]] = None,
    threshold: float = 85.0
) -> Dict[str, Optional[str]]:
    """
    Map canonical field names to the file's headers.

    Exact (accent- and case-insensitive) matches are taken first, then
    fuzzy matches among the headers still unused.

    Args:
        actual_headers: Header names from the file
        expected_headers: Canonical name -> accepted spellings (ADDRESS_HEADERS by default)
        threshold: Minimum similarity score for fuzzy matching

    Returns:
        Dict mapping canonical names to actual header names (or None if not found)
    """
    expected_headers = expected_headers or ADDRESS_HEADERS
    mapping: Dict[str, Optional[str]] = {}
    used_headers = set()

    # First pass: exact matches
    for canonical, candidates in expected_headers.items():
        wanted = {_key(c) for c in candidates}
        for actual in actual_headers:
            if actual not in used_headers and _key(actual) in wanted:
                mapping[canonical] = actual
                used_headers.add(actual)
                break

    # Second pass: fuzzy matches for the rest
    for canonical, candidates in expected_headers.items():
        if canonical in mapping:
            continue
        remaining = [h for h in actual_headers if h not in used_headers]
        match = find_header_match(candidates, remaining, threshold)
        mapping[canonical] = match
        if match:
            used_headers.add(match)

    return mapping
