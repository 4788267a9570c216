"""Tests for the HTTP API: wire contract of /api/generate-story and health."""

import json
from unittest.mock import AsyncMock, patch

import pytest
from fastapi.testclient import TestClient

from storyweaver.app import create_app
from storyweaver.config import Settings
from storyweaver.llm import LLMError
from storyweaver.models import PATH_KEYS, SEGMENT_IDS

BODY = {"favoriteBooks": "Harry Potter, Dog Man", "whyLoveBooks": "magic and friendship"}


@pytest.fixture
def client_for():
    def _make(llm) -> TestClient:
        return TestClient(create_app(settings=Settings(), llm=llm))
    return _make


def test_health(client_for, make_llm):
    resp = client_for(make_llm()).get("/api/health")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok"}


def test_generate_story_success(client_for, make_llm, foundation_json, tree_json):
    llm = make_llm(foundation_json, tree_json)
    resp = client_for(llm).post("/api/generate-story", json=BODY)

    assert resp.status_code == 200
    data = resp.json()
    assert data["success"] is True
    story = data["story"]
    assert [s["id"] for s in story["segments"]] == list(SEGMENT_IDS)
    assert set(story["allPossiblePaths"]) == set(PATH_KEYS)
    assert story["segments"][0]["choices"][0]["leadTo"] == "segment_2a"
    assert story["segments"][3]["isEnding"] is True
    assert llm.stages == ["foundation", "tree"]


def test_answers_passed_to_prompt(client_for, make_llm, foundation_json, tree_json):
    llm = make_llm(foundation_json, tree_json)
    client_for(llm).post("/api/generate-story", json=BODY)
    assert "Harry Potter, Dog Man" in llm.calls[0]["prompt"]
    assert "magic and friendship" in llm.calls[0]["prompt"]


@pytest.mark.parametrize("body", [
    {"favoriteBooks": "Harry Potter"},
    {"whyLoveBooks": "magic"},
    {"favoriteBooks": "  ", "whyLoveBooks": "magic"},
    {"favoriteBooks": None, "whyLoveBooks": "magic"},
    {},
])
def test_missing_fields_400(client_for, make_llm, body):
    llm = make_llm()
    resp = client_for(llm).post("/api/generate-story", json=body)
    assert resp.status_code == 400
    assert resp.json() == {"success": False, "error": "Missing required fields"}
    assert llm.calls == []


def test_non_json_body_400(client_for, make_llm):
    resp = client_for(make_llm()).post(
        "/api/generate-story", content=b"not json",
        headers={"Content-Type": "application/json"},
    )
    assert resp.status_code == 400
    assert resp.json()["success"] is False


def test_prose_wrapped_reply_500(client_for, make_llm, foundation_json):
    llm = make_llm(f"Sure! Here's your story: {foundation_json}")
    resp = client_for(llm).post("/api/generate-story", json=BODY)
    assert resp.status_code == 500
    data = resp.json()
    assert data["success"] is False
    assert "story foundation" in data["error"]


def test_llm_failure_500(client_for, make_llm, foundation_json):
    llm = make_llm(foundation_json, LLMError("LLM backend timed out after 120.0s"))
    resp = client_for(llm).post("/api/generate-story", json=BODY)
    assert resp.status_code == 500
    assert resp.json()["success"] is False


def test_invalid_shape_500(client_for, make_llm, foundation_json, tree_data):
    tree_data["segments"] = tree_data["segments"][:5]
    llm = make_llm(foundation_json, json.dumps(tree_data))
    resp = client_for(llm).post("/api/generate-story", json=BODY)
    assert resp.status_code == 500
    assert "Missing segments" in resp.json()["error"]


def test_unexpected_llm_exception_500(client_for):
    async def broken(stage, prompt, *, temperature, max_tokens):
        raise KeyError("boom")

    resp = client_for(broken).post("/api/generate-story", json=BODY)
    assert resp.status_code == 500
    assert resp.json() == {"success": False, "error": "Failed to generate story foundation"}


def test_unexpected_error_generic_500(client_for, make_llm):
    with patch("storyweaver.routes.stories.build_story", AsyncMock(side_effect=KeyError("boom"))):
        resp = client_for(make_llm()).post("/api/generate-story", json=BODY)
    assert resp.status_code == 500
    assert resp.json() == {"success": False, "error": "Failed to generate story"}
