"""Configuration management using Pydantic BaseSettings."""
from pathlib import Path
from typing import List
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


# CNPJs of the Naturgy distribution network, vetted as reliable truck CNG operators
NATURGY_CNPJS = [
    "01797812000172",
    "30243299000176",
    "29178001000102",
    "00624710000192",
    "07187563000180",
    "31465255000153",
    "08064380000130",
    "06012414000117",
]


class Settings(BaseSettings):
    """Application settings with environment variable overrides."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # ANP reseller API
    anp_api_base: str = Field(
        default="https://revendedoresapi.anp.gov.br/v1/combustivel",
        alias="ANP_API_BASE"
    )
    anp_user_agent: str = Field(default="AnpCnGStation/1.0", alias="ANP_USER_AGENT")
    anp_request_timeout: int = Field(default=300, alias="ANP_REQUEST_TIMEOUT")

    # Pagination and back-off
    page_delay_seconds: float = Field(default=5.0, alias="PAGE_DELAY_SECONDS")
    max_rate_limit_retries: int = Field(default=5, alias="MAX_RATE_LIMIT_RETRIES")
    backoff_base_seconds: float = Field(default=1.0, alias="BACKOFF_BASE_SECONDS")

    # Classification
    diesel_min_capacity: float = Field(default=30.0, alias="DIESEL_MIN_CAPACITY")
    trusted_tax_ids: List[str] = Field(
        default_factory=lambda: list(NATURGY_CNPJS),
        alias="TRUSTED_TAX_IDS"
    )
    source_tag: str = Field(default="ANP API v1", alias="SOURCE_TAG")

    # Data paths
    data_dir: Path = Field(default_factory=lambda: Path("./data"), alias="DATA_DIR")
    cache_dir: Path = Field(default_factory=lambda: Path("./cache"), alias="CACHE_DIR")
    out_dir: Path = Field(default_factory=lambda: Path("./out"), alias="OUT_DIR")

    # Database
    db_path: Path = Field(default_factory=lambda: Path("./data/truckcng.duckdb"), alias="DB_PATH")

    # Checkpointing for resumable runs
    checkpoint_backend: str = Field(default="json", alias="CHECKPOINT_BACKEND")
    checkpoint_path: Path = Field(
        default_factory=lambda: Path("./data/anp_progress.json"),
        alias="CHECKPOINT_PATH"
    )

    # Output files
    batch_csv_name: str = Field(default="truck_cng_stations_by_anp.csv", alias="BATCH_CSV_NAME")
    stream_csv_name: str = Field(default="truck_cng_stations_stream.csv", alias="STREAM_CSV_NAME")

    # Geocoding
    google_maps_api_key: str = Field(default="", alias="GOOGLE_MAPS_API_KEY")
    nominatim_url: str = Field(
        default="https://nominatim.openstreetmap.org/search",
        alias="NOMINATIM_URL"
    )
    nominatim_user_agent: str = Field(default="AnpCnGStation/1.0 (geocoder)", alias="NOMINATIM_USER_AGENT")
    geocode_providers: List[str] = Field(
        default_factory=lambda: ["google", "nominatim"],
        alias="GEOCODE_PROVIDERS"
    )
    geocode_qps: float = Field(default=1.0, alias="GEOCODE_QPS")
    cache_geocode_db: Path = Field(
        default_factory=lambda: Path("./cache/geocode_cache.duckdb"),
        alias="CACHE_GEOCODE_DB"
    )

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        # Ensure directories exist
        self.data_dir.mkdir(parents=True, exist_ok=True)
        self.cache_dir.mkdir(parents=True, exist_ok=True)
        self.out_dir.mkdir(parents=True, exist_ok=True)

    @property
    def duckdb_path(self) -> str:
        """Return DuckDB path as string."""
        return str(self.db_path)

    @property
    def batch_csv_path(self) -> Path:
        return self.out_dir / self.batch_csv_name

    @property
    def stream_csv_path(self) -> Path:
        return self.out_dir / self.stream_csv_name


# Global settings instance
settings = Settings()
