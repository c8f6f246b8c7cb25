import pytest
from httpx import ASGITransport, AsyncClient

from country_trivia.fakes import (
    ATLANTIS,
    GERMANY,
    GHANA,
    NIGERIA,
    BrokenRenderer,
    FakeSources,
    unavailable,
)
from country_trivia.main import app


async def refresh(client: AsyncClient):
    response = await client.post("/countries/refresh")
    assert response.status_code == 200, response.text
    return response.json()


@pytest.mark.asyncio
async def test_index(client: AsyncClient):
    response = await client.get("/")
    assert response.status_code == 200
    assert response.json()["endpoints"]["refresh"] == "POST /countries/refresh"


@pytest.mark.asyncio
async def test_refresh_persists_countries(client: AsyncClient):
    data = await refresh(client)
    assert data["message"] == "Countries data refreshed successfully"
    assert data["countries_processed"] == 5
    assert data["last_refreshed_at"]
    assert "warning" not in data

    response = await client.get("/countries/nigeria")
    assert response.status_code == 200
    nigeria = response.json()
    assert nigeria["name"] == "Nigeria"
    assert nigeria["currency_code"] == "NGN"
    assert nigeria["exchange_rate"] == 1600.23
    assert nigeria["estimated_gdp"] == round(206139589 * 1500 / 1600.23, 2)
    assert isinstance(nigeria["population"], int)
    assert nigeria["flag_url"] == "https://flagcdn.com/ng.svg"

    atlantis = (await client.get("/countries/Atlantis")).json()
    assert atlantis["currency_code"] is None
    assert atlantis["exchange_rate"] is None
    assert atlantis["estimated_gdp"] == 0

    sealand = (await client.get("/countries/SEALAND")).json()
    assert sealand["currency_code"] == "SPD"
    assert sealand["exchange_rate"] is None
    assert sealand["estimated_gdp"] is None


@pytest.mark.asyncio
async def test_status_before_and_after_refresh(client: AsyncClient):
    response = await client.get("/status")
    assert response.status_code == 200
    assert response.json() == {"total_countries": 0, "last_refreshed_at": None}

    data = await refresh(client)
    status = (await client.get("/status")).json()
    assert status["total_countries"] == 5
    assert status["last_refreshed_at"] == data["last_refreshed_at"]


@pytest.mark.asyncio
async def test_refresh_keeps_countries_missing_from_latest_fetch(client: AsyncClient):
    await refresh(client)
    app.state.sources = FakeSources(countries=[NIGERIA, GERMANY])

    data = await refresh(client)
    assert data["countries_processed"] == 2

    status = (await client.get("/status")).json()
    assert status["total_countries"] == 5
    assert (await client.get("/countries/Atlantis")).status_code == 200


@pytest.mark.asyncio
async def test_refresh_twice_gives_same_names_and_null_pattern(client: AsyncClient):
    await refresh(client)
    first = (await client.get("/countries")).json()
    await refresh(client)
    second = (await client.get("/countries")).json()

    assert [c["name"] for c in first] == [c["name"] for c in second]
    assert [c["estimated_gdp"] is None for c in first] == [c["estimated_gdp"] is None for c in second]
    assert [c["created_at"] for c in first] == [c["created_at"] for c in second]


@pytest.mark.asyncio
async def test_refresh_fetch_failure_writes_nothing(client: AsyncClient):
    app.state.sources = FakeSources(rates_error=unavailable("Exchange Rate API"))

    response = await client.post("/countries/refresh")
    assert response.status_code == 503
    body = response.json()
    assert body["error"] == "External data source unavailable"
    assert "Exchange Rate API" in body["details"]

    assert (await client.get("/countries")).json() == []
    assert (await client.get("/status")).json()["last_refreshed_at"] is None


@pytest.mark.asyncio
async def test_refresh_countries_failure_is_503(client: AsyncClient):
    await refresh(client)
    before = (await client.get("/countries")).json()
    app.state.sources = FakeSources(countries_error=unavailable())

    response = await client.post("/countries/refresh")
    assert response.status_code == 503
    assert (await client.get("/countries")).json() == before


@pytest.mark.asyncio
async def test_render_failure_is_a_warning(client: AsyncClient, tmp_path):
    app.state.renderer = BrokenRenderer(str(tmp_path / "broken"))

    data = await refresh(client)
    assert data["countries_processed"] == 5
    assert "disk full" in data["warning"]
    assert (await client.get("/status")).json()["total_countries"] == 5


@pytest.mark.asyncio
async def test_nameless_records_are_skipped(client: AsyncClient):
    app.state.sources = FakeSources(countries=[{"population": 5, "currencies": []}, ATLANTIS])

    data = await refresh(client)
    assert data["countries_processed"] == 1
    assert [c["name"] for c in (await client.get("/countries")).json()] == ["Atlantis"]


@pytest.mark.asyncio
async def test_list_filters_and_sorting(client: AsyncClient):
    await refresh(client)

    africa = (await client.get("/countries", params={"region": " africa "})).json()
    assert [c["name"] for c in africa] == ["Ghana", "Nigeria"]

    euro = (await client.get("/countries", params={"currency": "eur"})).json()
    assert [c["name"] for c in euro] == ["Germany"]

    by_gdp = (await client.get("/countries", params={"sort": "gdp_desc"})).json()
    gdps = [c["estimated_gdp"] for c in by_gdp]
    assert gdps[-1] is None
    assert all(g is not None for g in gdps[:-1])
    assert gdps[:-1] == sorted(gdps[:-1], reverse=True)

    by_population = (await client.get("/countries", params={"sort": "population_asc"})).json()
    assert [c["name"] for c in by_population][:2] == ["Sealand", "Atlantis"]


@pytest.mark.asyncio
async def test_unknown_sort_falls_back_to_name(client: AsyncClient):
    await refresh(client)
    response = await client.get("/countries", params={"sort": "sideways"})
    assert response.status_code == 200
    assert [c["name"] for c in response.json()] == ["Atlantis", "Germany", "Ghana", "Nigeria", "Sealand"]


@pytest.mark.asyncio
async def test_get_country_not_found(client: AsyncClient):
    response = await client.get("/countries/Narnia")
    assert response.status_code == 404
    assert response.json() == {"error": "Country not found"}


@pytest.mark.asyncio
async def test_blank_name_is_bad_request(client: AsyncClient):
    response = await client.get("/countries/%20")
    assert response.status_code == 400
    assert response.json()["error"] == "Country name is required"


@pytest.mark.asyncio
async def test_delete_country(client: AsyncClient):
    await refresh(client)

    response = await client.delete("/countries/GERMANY")
    assert response.status_code == 204
    assert response.content == b""

    assert (await client.get("/countries/Germany")).status_code == 404

    response = await client.delete("/countries/Germany")
    assert response.status_code == 404
    assert response.json() == {"error": "Country not found"}


@pytest.mark.asyncio
async def test_image_missing_before_refresh(client: AsyncClient):
    response = await client.get("/countries/image")
    assert response.status_code == 404
    assert response.json() == {"error": "Summary image not found"}


@pytest.mark.asyncio
async def test_image_served_after_refresh(client: AsyncClient):
    await refresh(client)
    response = await client.get("/countries/image")
    assert response.status_code == 200
    assert response.headers["content-type"] == "image/png"
    assert response.content.startswith(b"\x89PNG")


@pytest.mark.asyncio
async def test_unknown_route(client: AsyncClient):
    response = await client.get("/nowhere")
    assert response.status_code == 404
    assert response.json() == {"error": "Route not found"}


@pytest.mark.asyncio
async def test_unexpected_error_is_500(client: AsyncClient):
    app.state.sources = FakeSources(countries_error=RuntimeError("surprise"))
    async with AsyncClient(
        transport=ASGITransport(app=app, raise_app_exceptions=False),
        base_url="http://test",
    ) as quiet_client:
        response = await quiet_client.post("/countries/refresh")
    assert response.status_code == 500
    assert response.json() == {"error": "Internal server error"}


@pytest.mark.asyncio
async def test_persistence_failure_mid_batch_is_500_and_rolled_back(client: AsyncClient, monkeypatch):
    await refresh(client)
    before = (await client.get("/countries")).json()
    status_before = (await client.get("/status")).json()

    # Ghana sits between Nigeria and Germany, so the batch fails part way through
    app.state.sources = FakeSources(countries=[{**NIGERIA, "population": 1}, GHANA, GERMANY])
    monkeypatch.setattr(
        "country_trivia.store.normalize_name",
        lambda name: None if name == "Ghana" else name.strip().lower(),
    )
    response = await client.post("/countries/refresh")
    assert response.status_code == 500
    body = response.json()
    assert body["error"] == "Internal server error"
    assert body["details"]

    monkeypatch.undo()
    assert (await client.get("/countries")).json() == before
    assert (await client.get("/status")).json() == status_before
