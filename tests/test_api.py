"""HTTP surface via FastAPI TestClient with the content service overridden."""

import json

import pytest
from fastapi.testclient import TestClient

from core.container import get_content_service, get_settings
from main import app
from tests.conftest import text_of, vocab_json


@pytest.fixture
def client(service, settings):
    app.dependency_overrides[get_content_service] = lambda: service
    app.dependency_overrides[get_settings] = lambda: settings
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_speech_roundtrip(client, speech_provider):
    body = {"text": "hello", "voice": "alloy", "rate": 0.85}

    first = client.post("/api/speech", json=body)
    second = client.post("/api/speech", json=body)

    assert first.status_code == 200
    assert first.json()["cached"] is False
    assert second.json()["cached"] is True
    assert second.json()["payload"]["storage_path"] == first.json()["payload"]["storage_path"]
    assert len(speech_provider.calls) == 1


def test_missing_field_is_a_400(client):
    response = client.post("/api/speech", json={"voice": "alloy"})
    assert response.status_code == 400
    assert response.json() == {"success": False, "error": "text is required"}


def test_malformed_body_is_a_400(client):
    response = client.post("/api/vocabulary/extract", json={"text": "words", "limit": 99})
    assert response.status_code == 400
    assert response.json()["success"] is False


def test_missing_credentials_are_a_500(client, text_provider):
    text_provider.configured = False
    response = client.post("/api/vocabulary/extract", json={"text": text_of(80)})
    assert response.status_code == 500
    assert response.json() == {"success": False, "error": "Missing credentials for: openai"}


def test_vocabulary_extract(client, text_provider):
    text_provider.queue(vocab_json("coalition", "legislation"))
    response = client.post("/api/vocabulary/extract", json={"text": text_of(80), "limit": 2})
    data = response.json()
    assert data["generation_status"] == "ai_generated"
    assert [item["word"] for item in data["vocabulary"]] == ["coalition", "legislation"]
    assert data["generated_at"].endswith("+00:00")


def test_news_article_and_feed(client, text_provider, news_source):
    # No article body, so only the summary reaches the provider
    text_provider.queue(text_of(150))
    article = {"url": "https://news.example.com/a", "title": "Harbor reopens",
               "publishedAt": "2024-05-01T10:00:00Z", "urlToImage": "https://img.example.com/a.jpg"}

    summarized = client.post("/api/news/article", json=article)
    assert summarized.status_code == 200
    assert summarized.json()["payload"]["image"] == "https://img.example.com/a.jpg"

    feed = client.get("/api/news", params={"limit": 5})
    assert feed.json()["status"] == "ok"
    assert feed.json()["articles"][0]["title"] == "Harbor reopens"
    assert news_source.calls == 0
    assert len(text_provider.calls) == 1


def test_news_refresh_flag(client, news_source, text_provider):
    news_source.articles = [{"url": "https://news.example.com/b", "title": "Bridge opens"}]
    text_provider.queue(text_of(150))

    response = client.get("/api/news", params={"limit": 3, "refresh": "1"})
    assert response.json()["source"] == "generated"
    assert news_source.calls == 1


def test_images_get_and_post_share_the_cache(client, image_provider):
    params = {"phrase": "look up", "sense": "to search for information", "style": "flat"}

    by_query = client.get("/api/images", params=params)
    by_body = client.post("/api/images", json=params)

    assert by_query.status_code == 200
    assert by_query.json()["url"].startswith("https://storage.test/story-images/flat/")
    assert by_body.json()["cache_hit"] is True
    assert len(image_provider.calls) == 1


def test_health_reports_cache_backend(client):
    response = client.get("/health")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] in ("healthy", "degraded")
    assert "cache_backend" in data
    assert set(data["checks"]) == {"database", "cache"}


def test_daily_topic_articles(client, text_provider):
    article = {
        "title": "Small wins add up",
        "summary": text_of(260),
        "vocab": [{"word": "momentum", "definition": "the force that keeps progress going"}],
        "quiz": [],
        "keyTakeaways": ["Start small"],
        "dailyChallenge": "Write down one goal.",
    }
    text_provider.queue(json.dumps(article))

    response = client.get("/api/topics/articles", params={"date": "2024-05-01", "count": 1})
    data = response.json()

    assert response.status_code == 200
    assert data["status"] == "ok"
    assert data["date"] == "2024-05-01"
    assert data["articles"][0]["title"] == "Small wins add up"


def test_daily_topic_articles_rejects_bad_date(client):
    response = client.get("/api/topics/articles", params={"date": "yesterday"})
    assert response.status_code == 400
    assert response.json()["success"] is False
