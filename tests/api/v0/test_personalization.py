from datetime import datetime, timedelta, timezone

from app.core.security import create_access_token

BASE_URL = "/api/v0/personalization"


def test_requires_authentication(client):
    response = client.get(f"{BASE_URL}/feed")
    assert response.status_code == 401


def test_rejects_invalid_token(client):
    response = client.get(f"{BASE_URL}/feed", headers={"Authorization": "Bearer not-a-jwt"})
    assert response.status_code == 401


def test_cookie_token_is_accepted(client, auth_headers):
    token = auth_headers["Authorization"].split(" ", 1)[1]
    client.cookies.set("access_token", token)

    response = client.get(f"{BASE_URL}/interests")

    assert response.status_code == 200


def test_log_behavior(client, auth_headers, supabase_mock, test_user):
    response = client.post(
        f"{BASE_URL}/behavior",
        headers=auth_headers,
        json={"behavior_type": "like", "content_id": "p1", "content_type": "post", "duration": 2.4},
    )

    assert response.status_code == 201
    assert response.json() == {"success": True}
    [row] = supabase_mock.tables["user_behavior_logs"]
    assert row["user_id"] == test_user["id"]
    assert row["duration"] == 2


def test_log_behavior_validates_payload(client, auth_headers):
    response = client.post(
        f"{BASE_URL}/behavior",
        headers=auth_headers,
        json={"behavior_type": "poke", "content_id": "p1", "content_type": "post"},
    )
    assert response.status_code == 422


def test_log_behavior_store_failure(client, auth_headers, supabase_mock):
    supabase_mock.failing.add("user_behavior_logs")

    response = client.post(
        f"{BASE_URL}/behavior",
        headers=auth_headers,
        json={"behavior_type": "view", "content_id": "p1", "content_type": "post"},
    )

    assert response.status_code == 500


def test_interests_default_profile(client, auth_headers):
    response = client.get(f"{BASE_URL}/interests", headers=auth_headers)

    assert response.status_code == 200
    data = response.json()
    assert data["topics"] == []
    assert data["content_types"]["post"] == 0.5
    assert data["engagement_patterns"]["view"] == 0.7


def test_feed_serves_trending_posts(client, auth_headers, supabase_mock):
    recent = (datetime.now(timezone.utc) - timedelta(hours=1)).isoformat()
    supabase_mock.seed("user_behavior_logs", [
        {"user_id": "u2", "behavior_type": "view", "content_id": "p1", "content_type": "post", "timestamp": recent},
        {"user_id": "u3", "behavior_type": "like", "content_id": "p1", "content_type": "post", "timestamp": recent},
    ])

    response = client.get(f"{BASE_URL}/feed", headers=auth_headers, params={"limit": 5})

    assert response.status_code == 200
    [entry] = response.json()
    assert entry["id"] == "p1"
    assert entry["source"] == "trending"
    assert entry["metadata"] == {"source": "trending", "timeframe": "day"}


def test_feed_limit_is_bounded(client, auth_headers):
    response = client.get(f"{BASE_URL}/feed", headers=auth_headers, params={"limit": 51})
    assert response.status_code == 422


def test_interest_based_source_needs_user_content(client, auth_headers):
    response = client.get(
        f"{BASE_URL}/sources/interest_based", headers=auth_headers, params={"content_type": "post"}
    )
    assert response.status_code == 400


def test_interest_based_source_for_users(client, auth_headers, supabase_mock, test_user):
    joined = datetime.now(timezone.utc).isoformat()
    supabase_mock.seed("user_interests", [
        {"user_id": test_user["id"], "topic_id": "t1", "created_at": joined, "topic": {"name": "fitness"}},
        {"user_id": "u2", "topic_id": "t1", "created_at": joined,
         "user": {"id": "u2", "username": "two", "name": "Two", "created_at": joined}},
    ])

    response = client.get(
        f"{BASE_URL}/sources/interest_based", headers=auth_headers, params={"content_type": "user"}
    )

    assert response.status_code == 200
    [entry] = response.json()
    assert entry["id"] == "u2"
    assert entry["reason"] == "similar_users"


def test_unknown_source_is_rejected(client, auth_headers):
    response = client.get(f"{BASE_URL}/sources/astrology", headers=auth_headers)
    assert response.status_code == 422


def test_similar_users(client, auth_headers):
    response = client.get(f"{BASE_URL}/similar-users", headers=auth_headers)

    assert response.status_code == 200
    assert response.json() == []


def test_expired_token_is_rejected(client, test_user):
    token = create_access_token(subject=test_user["id"], expires_delta=timedelta(minutes=-1))

    response = client.get(f"{BASE_URL}/interests", headers={"Authorization": f"Bearer {token}"})

    assert response.status_code == 401
    assert response.json()["detail"] == "Token expired"
