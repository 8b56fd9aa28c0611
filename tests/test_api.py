"""HTTP surface through fastapi.testclient."""
import pytest
from fastapi.testclient import TestClient

from ftgi.compute.pipeline import get_pipeline
from ftgi.config import get_settings
from ftgi.main import app

ADMIN = {"X-Admin-Key": "test_admin_key"}

REVIEW = {
    "rating_overall": 5,
    "rating_communication": 5,
    "rating_quality": 5,
    "rating_lead_time": 5,
    "rating_service": 5,
    "is_verified_purchase": True,
}

EXPERT = {
    "score_innovation": 80,
    "score_management": 80,
    "score_potential": 80,
    "summary": "Modern CNC line, documented QA, strong export history.",
}


@pytest.fixture
def client(pipeline, monkeypatch):
    monkeypatch.setenv("FTGI_ADMIN_KEY", "test_admin_key")
    get_settings.cache_clear()
    app.dependency_overrides[get_pipeline] = lambda: pipeline
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


def test_health(client):
    resp = client.get("/v1/ftgi/health")
    assert resp.status_code == 200
    body = resp.json()
    assert body["status"] == "healthy"
    assert body["ai_coefficient"] == 0.6


def test_unscored_factory_is_404(client):
    resp = client.get("/v1/ftgi/factories/77/score")
    assert resp.status_code == 404
    assert resp.json()["detail"]["error"] == "not_yet_scored"


def test_review_write_recomputes_inline(client):
    resp = client.post("/v1/ftgi/factories/77/reviews", json=REVIEW)
    assert resp.status_code == 201
    body = resp.json()
    assert body["recompute"] == "completed"
    assert body["signal"]["review_id"].startswith("rev_")
    assert body["score"]["reviewCount"] == 1

    score = client.get("/v1/ftgi/factories/77/score")
    assert score.status_code == 200
    assert score.json()["scoreFromReviews"] == 100.0
    assert score.json()["scoreDetails"]["reviews"]["leadTime"] == 100.0
    assert "X-Request-Id" in score.headers


def test_review_validation(client):
    bad = dict(REVIEW, rating_quality=6)
    assert client.post("/v1/ftgi/factories/77/reviews", json=bad).status_code == 422
    long_comment = dict(REVIEW, comment="x" * 2001)
    assert client.post("/v1/ftgi/factories/77/reviews", json=long_comment).status_code == 422


def test_webinar_vote(client):
    resp = client.post("/v1/ftgi/factories/77/webinar-votes", json={"value": 84})
    assert resp.status_code == 201
    assert resp.json()["score"]["scoreFromWebinars"] == 84.0
    assert client.post("/v1/ftgi/factories/77/webinar-votes", json={"value": 101}).status_code == 422


def test_expert_review_summary_length(client):
    short = dict(EXPERT, summary="too short")
    assert client.post("/v1/ftgi/factories/77/expert-reviews", json=short).status_code == 422


def test_draft_expert_review_then_publish(client):
    draft = client.post("/v1/ftgi/factories/77/expert-reviews", json=dict(EXPERT, is_published=False))
    assert draft.status_code == 201
    assert draft.json()["recompute"] == "skipped"
    review_id = draft.json()["signal"]["review_id"]

    url = f"/v1/ftgi/factories/77/expert-reviews/{review_id}/publish"
    assert client.post(url).status_code == 403
    assert client.post(url, headers={"X-Admin-Key": "wrong"}).status_code == 403

    published = client.post(url, headers=ADMIN)
    assert published.status_code == 200
    assert published.json()["recompute"] == "completed"
    assert published.json()["score"]["scoreFromExperts"] == 80.0


def test_publish_unknown_review_is_404(client):
    resp = client.post("/v1/ftgi/factories/77/expert-reviews/exp_nope/publish", headers=ADMIN)
    assert resp.status_code == 404


def test_ai_verification_requires_admin(client):
    body = {"verification_score": 90, "certification_count": 10, "response_rate": 80,
            "sample_conversion_rate": 50, "dispute_rate": 2, "content_asset_count": 5}
    assert client.put("/v1/ftgi/factories/77/ai-verification", json=body).status_code == 403

    resp = client.put("/v1/ftgi/factories/77/ai-verification", json=body, headers=ADMIN)
    assert resp.status_code == 200
    dims = resp.json()["score"]["dimensions"]
    assert dims["d1Trust"] == 81.0
    assert dims["d2Fulfillment"] == 71.0
    assert dims["d3Market"] == 70.0


def test_admin_recompute(client):
    assert client.post("/v1/ftgi/factories/77/recompute").status_code == 403
    resp = client.post("/v1/ftgi/factories/77/recompute", headers=ADMIN)
    assert resp.status_code == 200
    assert resp.json()["humanRawScore"] == 50.0


def test_store_failure_is_503_and_signal_survives(client, pipeline, score_store):
    score_store.fail = True
    resp = client.post("/v1/ftgi/factories/77/reviews", json=REVIEW)
    assert resp.status_code == 201
    assert resp.json()["recompute"] == "failed"
    assert len(pipeline.signals.list_reviews(77)) == 1

    assert client.post("/v1/ftgi/factories/77/recompute", headers=ADMIN).status_code == 503


def test_queue_mode_enqueues(client, monkeypatch):
    queued = []

    async def fake_queue(factory_id):
        queued.append(factory_id)
        return "job_1"

    monkeypatch.setenv("FTGI_RECOMPUTE_MODE", "queue")
    monkeypatch.setenv("FTGI_STORE_BACKEND", "neo4j")
    get_settings.cache_clear()
    monkeypatch.setattr("ftgi.api.scores.queue_recompute", fake_queue)

    resp = client.post("/v1/ftgi/factories/12/reviews", json=REVIEW)
    assert resp.json()["recompute"] == "queued"
    assert queued == [12]
    assert client.get("/v1/ftgi/factories/12/score").status_code == 404


def test_leaderboard(client):
    client.post("/v1/ftgi/factories/1/reviews", json=REVIEW)
    client.post("/v1/ftgi/factories/2/reviews", json=dict(REVIEW, rating_overall=1, rating_service=1))

    resp = client.get("/v1/ftgi/leaderboard", params={"limit": 10})
    assert resp.status_code == 200
    factories = resp.json()["factories"]
    assert [f["factoryId"] for f in factories] == [1, 2]
    assert factories[0]["rank"] == 1

    assert client.get("/v1/ftgi/leaderboard", params={"cert_level": "diamond"}).status_code == 422
    assert client.get("/v1/ftgi/leaderboard", params={"limit": 0}).status_code == 422
