"""Payload models for the ANP reseller API."""
from typing import Any, Dict, List, Optional, Tuple
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


def _lower_keys(data: Any) -> Any:
    # The API is not consistent about key casing (codigoSIMP vs codigoSimp)
    if isinstance(data, dict):
        return {str(k).lower(): v for k, v in data.items()}
    return data


class _AnpModel(BaseModel):
    model_config = ConfigDict(
        frozen=True,
        populate_by_name=True,
        coerce_numbers_to_str=True,
        extra="ignore",
    )

    @model_validator(mode="before")
    @classmethod
    def _case_insensitive_keys(cls, data: Any) -> Any:
        return _lower_keys(data)


class ProductEntry(_AnpModel):
    """One fuel product offered at a station."""

    name: Optional[str] = Field(default=None, alias="produto")
    tank_capacity: Optional[float] = Field(default=None, alias="tancagem")
    capacity_unit: Optional[str] = Field(default=None, alias="unidmedidatancagem")
    dispenser_count: Optional[int] = Field(default=None, alias="qtdebicos")

    @field_validator("tank_capacity", "dispenser_count", mode="before")
    @classmethod
    def _blank_as_none(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value


class StationRecord(_AnpModel):
    """
    One fuel-retail establishment as reported by ANP.

    ``trusted`` and ``accuracy_score`` are filled in by the enrichers.
    """

    station_id: Optional[str] = Field(default=None, alias="codigosimp")
    legal_name: Optional[str] = Field(default=None, alias="razaosocial")
    tax_id: Optional[str] = Field(default=None, alias="cnpj")
    street: Optional[str] = Field(default=None, alias="endereco")
    complement: Optional[str] = Field(default=None, alias="complemento")
    city: Optional[str] = Field(default=None, alias="municipio")
    state: Optional[str] = Field(default=None, alias="uf")
    zip_code: Optional[str] = Field(default=None, alias="cep")
    status_code: Optional[str] = Field(default=None, alias="situacaoconstatada")
    distributor: Optional[str] = Field(default=None, alias="distribuidora")
    products: Tuple[ProductEntry, ...] = Field(default=(), alias="produtos")
    latitude: Optional[str] = None
    longitude: Optional[str] = None
    accuracy_estimate: Optional[str] = Field(default=None, alias="estimativaacuracia")

    trusted: bool = False
    accuracy_score: float = 0.0

    @field_validator("products", mode="before")
    @classmethod
    def _null_products(cls, value: Any) -> Any:
        return () if value is None else value


class SearchPageFilter(_AnpModel):
    page_number: Optional[int] = Field(default=None, alias="numeropagina")
    page_size: Optional[int] = Field(default=None, alias="tamanhopagina")
    total_records: Optional[int] = Field(default=None, alias="totalregistro")
    total_pages: Optional[int] = Field(default=None, alias="totalpagina")


class AnpPage(_AnpModel):
    """Envelope returned by ``/v1/combustivel?numeropagina=N``."""

    status: Optional[int] = None
    title: Optional[str] = None
    succeeded: Optional[bool] = None
    data: Optional[List[StationRecord]] = None
    search_page_filter: Optional[SearchPageFilter] = Field(default=None, alias="searchpagefilter")


def parse_page(payload: Dict[str, Any]) -> AnpPage:
    """Validate a decoded JSON payload into an ``AnpPage``."""
    return AnpPage.model_validate(payload)
