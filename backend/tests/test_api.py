import httpx

URL = "https://springfield.gov/permits"


def test_root(client):
    response = client.get("/")
    assert response.status_code == 200
    assert response.json() == {"message": "Permit Agent"}


def test_health_check(client):
    response = client.get("/api/v1/health/")
    assert response.status_code == 200
    assert response.json() == {"status": "healthy", "service": "Permit Agent"}


def test_detailed_health_check(client):
    response = client.get("/api/v1/health/detailed")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"
    assert "web_scraping" in data["network"]["breakers"]


def test_extract_permits(client, mock_handler, permit_page):
    mock_handler.routes[URL] = [httpx.Response(200, text=permit_page)]

    response = client.post("/api/v1/permits/extract", json={"url": URL})

    assert response.status_code == 200
    data = response.json()
    assert data["is_fallback"] is False
    assert data["source"] == "structured"
    assert [fee["amount"] for fee in data["fees"]] == [75.0, 65.0]
    assert data["contact"]["phone"] == "(555) 123-4567"


def test_extract_invalid_url(client):
    response = client.post("/api/v1/permits/extract", json={"url": "springfield"})
    assert response.status_code == 400
    assert response.json()["detail"]["error_code"] == "INVALID_URL"


def test_extract_requires_url(client):
    response = client.post("/api/v1/permits/extract", json={})
    assert response.status_code == 422


def test_lookup_without_resolver_returns_demo(client):
    response = client.post("/api/v1/permits/lookup", json={"address": "100 Main St"})
    assert response.status_code == 200
    data = response.json()
    assert data["jurisdiction"] is None
    assert data["data"]["is_fallback"] is True


def test_unreadable_pdf_is_unavailable(client, mock_handler):
    pdf_url = "https://springfield.gov/docs/application.pdf"
    mock_handler.routes[pdf_url] = [httpx.Response(200, content=b"not a pdf")]

    response = client.post("/api/v1/permits/pdf", json={"url": pdf_url})

    assert response.status_code == 503
    assert response.json()["detail"]["error_code"] == "DATA_UNAVAILABLE"


def test_list_systems(client):
    response = client.get("/api/v1/integrations/")
    assert response.status_code == 200
    assert response.json() == {"systems": ["accela", "energov", "tyler"]}


def test_unknown_system(client):
    response = client.post("/api/v1/integrations/permitpro/search", json={})
    assert response.status_code == 404
    assert response.json()["detail"]["error_code"] == "RESOURCE_NOT_FOUND"


def test_search_permits(client, mock_handler):
    mock_handler.routes["https://webapi.tylertech.com/v1/search"] = [
        httpx.Response(200, json=[{"PermitId": "P-1", "PermitTypeName": "Deck Permit"}]),
    ]

    response = client.post("/api/v1/integrations/tyler/search", json={"address": "100 Main St"})

    assert response.status_code == 200
    assert response.json()[0]["name"] == "Deck Permit"


def test_application_status(client, mock_handler):
    mock_handler.routes["https://webapi.tylertech.com/v1/applications/A-1/status"] = [
        httpx.Response(200, json={"ApplicationId": "A-1", "Status": "Approved"}),
    ]

    response = client.get("/api/v1/integrations/tyler/applications/A-1")

    assert response.status_code == 200
    assert response.json()["status"] == "Approved"


def test_integration_outage_is_503(client, mock_handler):
    mock_handler.routes["https://webapi.tylertech.com/v1/search"] = [httpx.Response(503)]

    response = client.post("/api/v1/integrations/tyler/search", json={})

    assert response.status_code == 503
    assert response.json()["detail"]["error_code"] == "DATA_UNAVAILABLE"
