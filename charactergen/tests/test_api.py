import pytest
from fastapi.testclient import TestClient

from charactergen.adapters.mock_adapter import MockAdapter
from charactergen.config import ImageProviderConfig
from charactergen.dependencies import get_llm_service
from charactergen.imaging.base import ImageProvider, ImageResult
from charactergen.main import app
from charactergen.service import LLMService


class StaticImageProvider(ImageProvider):
    name = "static"

    def __init__(self):
        super().__init__(ImageProviderConfig(api_key="img-key"))

    def _generate(self, prompt):
        return ImageResult(url="https://images.example/p.png", model="static", provider=self.name, prompt=prompt)


class OfflineAdapter(MockAdapter):
    def test_connection(self):
        return False


@pytest.fixture
def client(templates, sleeps):
    service = LLMService(MockAdapter(sleep=sleeps.append), "mock", templates, image_provider=StaticImageProvider())
    app.dependency_overrides[get_llm_service] = lambda: service
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def thalia():
    return {"name": "Thalia Stormwind", "class": "Bard", "race": "Half-Elf", "alignment": "Chaotic Good", "level": 3}


def test_healthz(client):
    response = client.get("/healthz")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_readyz(client):
    response = client.get("/readyz")
    assert response.status_code == 200
    assert response.json() == {"ready": True, "provider": "mock"}


def test_readyz_reports_unreachable_provider(client, templates):
    app.dependency_overrides[get_llm_service] = lambda: LLMService(OfflineAdapter(), "mock", templates)
    response = client.get("/readyz")
    assert response.status_code == 503
    assert response.json()["ready"] is False


def test_chat(client):
    response = client.post("/v1/chat", json={"messages": [{"role": "user", "content": "Suggest equipment"}]})
    assert response.status_code == 200, response.text
    data = response.json()
    assert data["provider"] == "mock"
    assert isinstance(data["response"]["weapons"], list)


def test_chat_with_schema_mismatch_is_a_bad_gateway(client):
    schema = {"type": "object", "required": ["background"], "properties": {"background": {"type": "string"}}}
    response = client.post("/v1/chat", json={"messages": [{"role": "user", "content": "hello"}], "schema": schema})
    assert response.status_code == 502
    assert "response failed schema validation" in response.json()["detail"]


def test_chat_with_malformed_schema(client):
    response = client.post("/v1/chat", json={"messages": [{"role": "user", "content": "hi"}], "schema": {"type": "array"}})
    assert response.status_code == 500
    assert response.json()["detail"] == "invalid schema: missing items"


def test_chat_rejects_bad_messages(client):
    response = client.post("/v1/chat", json={"messages": []})
    assert response.status_code == 502
    assert response.json()["detail"].startswith("invalid message format")


def test_chat_rejects_oversized_input(client):
    huge = "x" * 20001
    response = client.post("/v1/chat", json={"messages": [{"role": "user", "content": huge}]})
    assert response.status_code == 422


def test_generate_background(client, thalia):
    response = client.post("/v1/generate/character_background", json={"context": thalia})
    assert response.status_code == 200, response.text
    data = response.json()
    assert data["background"]
    assert 2 <= len(data["personality_traits"]) <= 4


def test_generate_unknown_template(client):
    response = client.post("/v1/generate/character_horoscope", json={"context": {}})
    assert response.status_code == 404
    assert "character_horoscope" in response.json()["detail"]


@pytest.mark.parametrize("aspect, key", [
    ("background", "background"),
    ("traits", "traits"),
    ("values", "ideals"),
    ("personality-details", "bonds"),
    ("equipment", "armor"),
    ("spells", "cantrips"),
])
def test_character_aspects(client, thalia, aspect, key):
    response = client.post(f"/v1/characters/{aspect}", json=thalia)
    assert response.status_code == 200, response.text
    assert key in response.json()


def test_spells_for_non_caster_are_empty(client, thalia):
    response = client.post("/v1/characters/spells", json=dict(thalia, **{"class": "Fighter"}))
    assert response.status_code == 200
    assert response.json() == {}


def test_unknown_aspect(client, thalia):
    assert client.post("/v1/characters/horoscope", json=thalia).status_code == 404


def test_character_requires_name_and_class(client):
    assert client.post("/v1/characters/background", json={"race": "Elf"}).status_code == 422


def test_portrait(client, thalia):
    response = client.post("/v1/characters/portrait", json=thalia)
    assert response.status_code == 200, response.text
    data = response.json()
    assert data["url"] == "https://images.example/p.png"
    assert data["provider"] == "static"


def test_portrait_without_race_is_unprocessable(client, thalia):
    thalia.pop("race")
    response = client.post("/v1/characters/portrait", json=thalia)
    assert response.status_code == 422


def test_metrics(client):
    client.get("/healthz")
    response = client.get("/metrics")
    assert response.status_code == 200
    assert "http_requests_total" in response.text


def test_responses_carry_a_request_id(client):
    response = client.get("/healthz")
    assert response.headers.get("x-request-id")


def test_generation_metrics_are_labelled_by_provider_and_request_type(client, thalia):
    client.post("/v1/generate/character_background", json={"context": thalia})
    client.post("/v1/generate/character_horoscope", json={"context": {}})
    text = client.get("/metrics").text
    assert 'charactergen_generations_total{provider="mock",request_type="character_background",outcome="ok"}' in text
    assert 'charactergen_generations_total{provider="mock",request_type="unknown",outcome="TemplateNotFoundError"}' in text
    assert 'endpoint="/v1/generate/{request_type}"' in text


def test_access_log_names_provider_and_error(client, caplog):
    with caplog.at_level("INFO", logger="charactergen.access"):
        client.post("/v1/generate/character_horoscope", json={"context": {}})
    record = next(r for r in caplog.records if r.name == "charactergen.access")
    assert record.levelname == "WARNING"
    assert record.provider == "mock"
    assert record.request_type == "character_horoscope"
    assert record.error == "TemplateNotFoundError"
    assert record.status == 404


def test_access_log_for_successful_chat(client, caplog):
    with caplog.at_level("INFO", logger="charactergen.access"):
        client.post("/v1/chat", json={"messages": [{"role": "user", "content": "Suggest equipment"}]})
    record = next(r for r in caplog.records if r.name == "charactergen.access")
    assert (record.provider, record.request_type, record.error) == ("mock", "chat", None)
    assert record.request_id
