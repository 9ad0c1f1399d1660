"""Unit tests for ANP payload decoding and the page source."""
import pytest
import requests
from pydantic import ValidationError

from truckcng.ingest.anp import (
    AnpClient,
    PageResult,
    RateLimitedError,
    UpstreamError,
    parse_retry_after,
)
from truckcng.ingest.models import StationRecord, parse_page

SAMPLE_PAYLOAD = {
    "status": 200,
    "title": "OK",
    "succeeded": True,
    "data": [
        {
            "codigoSIMP": "1052553",
            "razaoSocial": "AUTO POSTO KM 225 LTDA",
            "cnpj": "01797812000172",
            "endereco": "RODOVIA PRESIDENTE DUTRA",
            "complemento": "KM 225",
            "municipio": "GUARULHOS",
            "uf": "SP",
            "cep": 7034000,
            "situacaoConstatada": "200",
            "distribuidora": "NATURGY",
            "produtos": [
                {"produto": "GÁS NATURAL VEICULAR", "tancagem": "", "unidMedidaTancagem": "m3", "qtdeBicos": "4"},
                {"produto": "ÓLEO DIESEL B S10 - COMUM", "tancagem": "30", "unidMedidaTancagem": "m3", "qtdeBicos": 6},
            ],
            "latitude": "-23.4425",
            "longitude": "-46.4877",
            "estimativaAcuracia": 3,
        },
        {
            "CodigoSimp": "2",
            "RazaoSocial": "POSTO SEM PRODUTOS",
            "Produtos": None,
        },
    ],
    "searchPageFilter": {"numeroPagina": 1, "tamanhoPagina": 2, "totalRegistro": 40, "totalPagina": "20"},
}


class TestPayloadDecoding:
    """Test pydantic models against ANP JSON."""

    def test_parse_page(self):
        page = parse_page(SAMPLE_PAYLOAD)
        assert page.succeeded is True
        assert page.search_page_filter.total_pages == 20
        assert len(page.data) == 2

    def test_station_fields(self):
        station = parse_page(SAMPLE_PAYLOAD).data[0]
        assert station.station_id == "1052553"
        assert station.tax_id == "01797812000172"
        assert station.zip_code == "7034000"
        assert station.status_code == "200"
        assert station.accuracy_estimate == "3"
        assert station.trusted is False
        assert station.accuracy_score == 0

    def test_products_coerced(self):
        cng, diesel = parse_page(SAMPLE_PAYLOAD).data[0].products
        assert cng.tank_capacity is None
        assert cng.dispenser_count == 4
        assert diesel.tank_capacity == 30.0
        assert diesel.capacity_unit == "m3"

    def test_keys_case_insensitive_and_null_products(self):
        station = parse_page(SAMPLE_PAYLOAD).data[1]
        assert station.station_id == "2"
        assert station.legal_name == "POSTO SEM PRODUTOS"
        assert station.products == ()

    def test_records_are_frozen(self):
        station = StationRecord(legal_name="X")
        with pytest.raises(ValidationError):
            station.legal_name = "Y"


class FakeResponse:
    def __init__(self, status_code=200, payload=None, headers=None, json_error=False):
        self.status_code = status_code
        self.ok = status_code < 400
        self.reason = "Error" if status_code >= 400 else "OK"
        self.headers = headers or {}
        self._payload = payload
        self._json_error = json_error

    def json(self):
        if self._json_error:
            raise ValueError("Expecting value: line 1 column 1 (char 0)")
        return self._payload


class FakeSession:
    def __init__(self, response=None, error=None):
        self.headers = {}
        self.response = response
        self.error = error
        self.calls = []

    def get(self, url, params=None, timeout=None):
        self.calls.append((url, params, timeout))
        if self.error:
            raise self.error
        return self.response


def client_for(session):
    return AnpClient(base_url="https://anp.test/v1/combustivel", timeout=5, session=session)


class TestAnpClient:
    """Test HTTP outcomes of fetch_page."""

    def test_success(self):
        session = FakeSession(FakeResponse(200, SAMPLE_PAYLOAD))
        result = client_for(session).fetch_page(3)

        assert isinstance(result, PageResult)
        assert result.page == 3
        assert len(result.stations) == 2
        assert result.total_pages == 20
        assert session.calls == [("https://anp.test/v1/combustivel", {"numeropagina": 3}, 5)]

    def test_user_agent_header(self):
        session = FakeSession(FakeResponse(200, SAMPLE_PAYLOAD))
        AnpClient(user_agent="tests/1.0", session=session)
        assert session.headers["User-Agent"] == "tests/1.0"

    def test_rate_limited_with_retry_after(self):
        session = FakeSession(FakeResponse(429, headers={"Retry-After": "7"}))
        with pytest.raises(RateLimitedError) as exc_info:
            client_for(session).fetch_page(2)
        assert exc_info.value.retry_after == 7.0
        assert exc_info.value.page == 2

    def test_rate_limited_without_retry_after(self):
        session = FakeSession(FakeResponse(429))
        with pytest.raises(RateLimitedError) as exc_info:
            client_for(session).fetch_page(2)
        assert exc_info.value.retry_after is None

    def test_server_error(self):
        session = FakeSession(FakeResponse(503))
        with pytest.raises(UpstreamError) as exc_info:
            client_for(session).fetch_page(1)
        assert exc_info.value.status_code == 503

    def test_transport_error(self):
        session = FakeSession(error=requests.ConnectionError("connection reset"))
        with pytest.raises(UpstreamError) as exc_info:
            client_for(session).fetch_page(1)
        assert exc_info.value.status_code is None

    def test_malformed_json_is_empty_page(self):
        session = FakeSession(FakeResponse(200, json_error=True))
        result = client_for(session).fetch_page(4)
        assert result.is_empty
        assert result.total_pages is None

    def test_schema_mismatch_is_empty_page(self):
        session = FakeSession(FakeResponse(200, payload=["not", "an", "object"]))
        assert client_for(session).fetch_page(4).is_empty

    def test_missing_data_is_empty_page(self):
        session = FakeSession(FakeResponse(200, payload={"status": 200, "data": None}))
        assert client_for(session).fetch_page(9).is_empty


class TestRetryAfter:
    """Test Retry-After parsing."""

    def test_seconds(self):
        assert parse_retry_after("30") == 30.0
        assert parse_retry_after(" 1.5 ") == 1.5

    def test_unsupported_values(self):
        assert parse_retry_after(None) is None
        assert parse_retry_after("Wed, 21 Oct 2015 07:28:00 GMT") is None
        assert parse_retry_after("-1") is None
