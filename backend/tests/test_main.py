import asyncio
import json

import pytest
from fastapi import HTTPException

import backend.main as main_module
from backend.app.services.cache import TTLCache
from backend.app.services.errors import NotFoundError, QuotaExceededError
from backend.app.services.history import HistoryStore
from backend.app.services.pipeline import IdeaPipeline
from backend.tests.helpers import make_channel, make_outlier, make_request, make_video

SOURCE = make_channel("UC_SOURCE", "Kitchen Lab", subscribers=12_345)
PEER = make_channel("UC_PEER", "Peer", subscribers=60_000)
PEER_VIDEOS = [make_video("p1", 100), make_video("p2", 100), make_video("p3", 100), make_video("p4", 1_000)]


def fake_generate(prompt):
    if "niche keywords" in prompt:
        return '["cooking"]'
    return json.dumps([{"title": "Pro kitchen hacks", "insight": "Works", "evidence": [0]}])


@pytest.fixture(autouse=True)
def isolated_app(monkeypatch):
    history = HistoryStore()
    pipeline = IdeaPipeline(
        cache=TTLCache(),
        history=history,
        resolve=lambda query: SOURCE,
        fetch_videos=lambda channel_id, max_count: PEER_VIDEOS if channel_id == "UC_PEER" else [],
        search=lambda keywords, max_results: [PEER],
        generate=fake_generate,
    )
    monkeypatch.setattr(main_module, "HISTORY", history)
    monkeypatch.setattr(main_module, "PIPELINE", pipeline)
    main_module.API_RATE_LIMIT_BUCKETS.clear()
    yield history
    main_module.API_RATE_LIMIT_BUCKETS.clear()


def test_health():
    assert main_module.health() == {"ok": True}


def test_analyze_channel_requires_input():
    with pytest.raises(HTTPException) as excinfo:
        main_module.analyze_channel(main_module.AnalyzeChannelRequest(input="   "), make_request())
    assert excinfo.value.status_code == 400


def test_analyze_channel():
    payload = main_module.analyze_channel(main_module.AnalyzeChannelRequest(input="@kitchenlab"), make_request())
    assert payload["channel"]["channel_id"] == "UC_SOURCE"
    assert payload["niche"] == ["cooking"]
    assert payload["subscribers_display"] == "12.3K"


def test_find_peers_requires_fields():
    with pytest.raises(HTTPException) as excinfo:
        main_module.find_peers(main_module.FindPeersRequest(channel_id="UC_SOURCE"), make_request())
    assert excinfo.value.status_code == 400


def test_find_peers_returns_outliers():
    payload = main_module.find_peers(
        main_module.FindPeersRequest(channel_id="UC_SOURCE", subscriber_count=12_345, niche=["cooking"]),
        make_request(),
    )
    assert payload["peer_range"] == {"min": 50_000, "max": 200_000}
    assert [p["channel_id"] for p in payload["peers"]] == ["UC_PEER"]
    assert payload["outliers"][0]["video_id"] == "p4"
    assert payload["outliers"][0]["multiplier"] == 10.0


def test_find_peers_free_tier_gate(isolated_app, monkeypatch):
    monkeypatch.setattr(main_module.settings, "FREE_TIER_LIMIT", 1)
    isolated_app.save(identity="session:s1", channel_id="UC_SOURCE", channel_title="Kitchen Lab")
    request_body = main_module.FindPeersRequest(
        channel_id="UC_SOURCE", subscriber_count=12_345, niche=["cooking"], session_id="s1"
    )
    with pytest.raises(QuotaExceededError) as excinfo:
        main_module.find_peers(request_body, make_request())

    response = asyncio.run(main_module.pipeline_error_handler(make_request(), excinfo.value))
    body = json.loads(response.body)
    assert response.status_code == 403
    assert body["error_code"] == "quota_exceeded"
    assert body["paywall"] is True
    assert (body["count"], body["limit"]) == (1, 1)


def test_pro_token_bypasses_gate(isolated_app, monkeypatch):
    monkeypatch.setattr(main_module.settings, "FREE_TIER_LIMIT", 0)
    monkeypatch.setattr(main_module.settings, "PRO_ACCESS_TOKENS", {"pro-token"})
    payload = main_module.find_peers(
        main_module.FindPeersRequest(channel_id="UC_SOURCE", subscriber_count=12_345, niche=["cooking"]),
        make_request(headers={"Authorization": "Bearer pro-token"}),
    )
    assert payload["peers"]


def test_resolve_identity(monkeypatch):
    monkeypatch.setattr(main_module.settings, "USER_ACCESS_TOKENS", {"t0k"})
    identity, entitled = main_module.resolve_identity(make_request(), "abc")
    assert (identity, entitled) == ("session:abc", False)
    identity, entitled = main_module.resolve_identity(make_request(headers={"Authorization": "Bearer t0k"}), "abc")
    assert identity.startswith("user:") and "t0k" not in identity
    assert entitled is False
    assert main_module.resolve_identity(make_request(), None) == (None, False)


def test_unknown_bearer_falls_back_to_session(monkeypatch):
    monkeypatch.setattr(main_module.settings, "PRO_ACCESS_TOKENS", set())
    monkeypatch.setattr(main_module.settings, "USER_ACCESS_TOKENS", set())
    identity, entitled = main_module.resolve_identity(make_request(headers={"Authorization": "Bearer made-up"}), "abc")
    assert (identity, entitled) == ("session:abc", False)


def test_unknown_bearer_does_not_reset_free_tier(isolated_app, monkeypatch):
    monkeypatch.setattr(main_module.settings, "FREE_TIER_LIMIT", 1)
    isolated_app.save(identity="session:s1", channel_id="UC_SOURCE", channel_title="Kitchen Lab")
    request_body = main_module.FindPeersRequest(
        channel_id="UC_SOURCE", subscriber_count=12_345, niche=["cooking"], session_id="s1"
    )
    with pytest.raises(QuotaExceededError):
        main_module.find_peers(request_body, make_request(headers={"Authorization": "Bearer anything"}))


def test_find_peers_accepts_zero_subscribers():
    # A zero count is valid input and maps to the smallest band, where no peer fits.
    with pytest.raises(NotFoundError):
        main_module.find_peers(
            main_module.FindPeersRequest(channel_id="UC_SOURCE", subscriber_count=0, niche=["cooking"]),
            make_request(),
        )


def test_generate_ideas_and_history(isolated_app):
    outlier = make_outlier("p4", "UC_PEER", multiplier=10.0)
    payload = main_module.generate_ideas(
        main_module.GenerateIdeasRequest(
            channel=SOURCE,
            niche=["cooking"],
            outliers=[outlier],
            session_id="s1",
        ),
        make_request(),
    )
    assert payload["ideas"][0]["title"] == "Pro kitchen hacks"
    assert payload["ideas"][0]["evidence"][0]["video_id"] == "p4"

    listed = main_module.list_history(make_request(), session_id="s1")
    assert [item["id"] for item in listed["items"]] == [payload["generation_id"]]
    shared = main_module.get_history_item(payload["generation_id"], make_request())
    assert shared["channel_id"] == "UC_SOURCE"


def test_generate_ideas_requires_outliers():
    with pytest.raises(HTTPException) as excinfo:
        main_module.generate_ideas(
            main_module.GenerateIdeasRequest(channel=SOURCE, niche=["cooking"]),
            make_request(),
        )
    assert excinfo.value.status_code == 400


def test_history_item_not_found():
    with pytest.raises(HTTPException) as excinfo:
        main_module.get_history_item("missing", make_request())
    assert excinfo.value.status_code == 404


def test_run_pipeline_end_to_end():
    payload = main_module.run_pipeline(main_module.RunRequest(input="Kitchen Lab", session_id="s9"), make_request())
    assert payload["analysis"]["niche"] == ["cooking"]
    assert payload["peers"]["outliers"][0]["video_id"] == "p4"
    assert payload["ideas"]["ideas"][0]["evidence"][0]["channel_id"] == "UC_PEER"


def test_feedback(monkeypatch):
    sent = {}
    monkeypatch.setattr(
        main_module,
        "send_feedback",
        lambda kind, message, email: sent.update(kind=kind, message=message, email=email),
    )
    with pytest.raises(HTTPException):
        main_module.feedback(main_module.FeedbackRequest(message=" "), make_request())
    result = main_module.feedback(
        main_module.FeedbackRequest(type="bug", message="Broken button", email="me@example.com"),
        make_request(),
    )
    assert result == {"ok": True}
    assert sent == {"kind": "bug", "message": "Broken button", "email": "me@example.com"}


def test_rate_limit(monkeypatch):
    monkeypatch.setattr(main_module.settings, "API_RATE_LIMIT_MAX_REQUESTS", 2)
    request = make_request(ip="10.0.0.9")
    main_module.enforce_api_rate_limit(request, scope="test")
    main_module.enforce_api_rate_limit(request, scope="test")
    with pytest.raises(HTTPException) as excinfo:
        main_module.enforce_api_rate_limit(request, scope="test")
    assert excinfo.value.status_code == 429
