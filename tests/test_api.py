"""
Tests for the HTTP surface of the Vote Ledger.

Walks the end-to-end scenario: fresh chain, cast votes, rejected
votes, malformed bodies, and the system endpoints.
"""

from datetime import datetime

import pytest
from fastapi.testclient import TestClient

from voteledger.api.routes import respond_with_json
from voteledger.core import Hasher, create_vote
from voteledger.db import ChainStore
from voteledger.main import create_app
from voteledger.observability import get_metrics


def _parse_timestamp(raw: str) -> datetime:
    return datetime.fromisoformat(raw.replace("Z", "+00:00"))


def _recompute(vote: dict) -> str:
    return Hasher.derive_hash(
        vote["index"], _parse_timestamp(vote["timestamp"]), vote["value"], vote["prev_hash"]
    )


@pytest.fixture(autouse=True)
def reset_metrics():
    get_metrics().reset()
    yield
    get_metrics().reset()


@pytest.fixture
def client():
    """Fresh application with its own chain for every test."""
    with TestClient(create_app()) as c:
        yield c


class TestGetVotes:

    def test_fresh_chain_has_only_genesis(self, client):
        response = client.get("/vote")

        assert response.status_code == 200
        votes = response.json()
        assert len(votes) == 1
        genesis = votes[0]
        assert set(genesis) == {"index", "timestamp", "value", "hash", "prev_hash"}
        assert genesis["index"] == 0
        assert genesis["value"] == ""
        assert genesis["prev_hash"] == ""
        assert genesis["hash"] == _recompute(genesis)

    def test_timestamp_uses_canonical_format(self, client):
        timestamp = client.get("/vote").json()[0]["timestamp"]
        assert timestamp.endswith("Z")
        assert len(timestamp.split(".")[1]) == 7  # six digits + Z

    def test_repeated_reads_identical(self, client):
        client.post("/vote", json={"value": "yes"})
        assert client.get("/vote").json() == client.get("/vote").json()


class TestPostVote:

    def test_vote_appended(self, client):
        genesis_hash = client.get("/vote").json()[0]["hash"]

        response = client.post("/vote", json={"value": "yes"})

        assert response.status_code == 200
        votes = response.json()
        assert len(votes) == 2
        assert votes[1]["index"] == 1
        assert votes[1]["value"] == "yes"
        assert votes[1]["prev_hash"] == genesis_hash
        assert votes[1]["hash"] == _recompute(votes[1])

    def test_chain_grows_in_order(self, client):
        for value in ("yes", "no", "abstain"):
            assert client.post("/vote", json={"value": value}).status_code == 200

        votes = client.get("/vote").json()
        assert [v["index"] for v in votes] == [0, 1, 2, 3]
        assert [v["value"] for v in votes] == ["", "yes", "no", "abstain"]
        for prev, curr in zip(votes, votes[1:]):
            assert curr["prev_hash"] == prev["hash"]

    def test_missing_value_is_empty_vote(self, client):
        response = client.post("/vote", json={})

        assert response.status_code == 200
        assert response.json()[-1]["value"] == ""

    def test_undecodable_body_is_400(self, client):
        response = client.post(
            "/vote",
            content=b"{not json",
            headers={"Content-Type": "application/json"},
        )
        assert response.status_code == 400
        assert len(client.get("/vote").json()) == 1

    def test_non_string_value_is_400(self, client):
        response = client.post("/vote", json={"value": 42})
        assert response.status_code == 400
        assert len(client.get("/vote").json()) == 1

    def test_rejected_vote_is_422(self):
        def forge(tail, value):
            return create_vote(tail, value).model_copy(update={"index": 5})

        with TestClient(create_app(store=ChainStore(entry_factory=forge))) as client:
            response = client.post("/vote", json={"value": "no"})

            assert response.status_code == 422
            assert response.json() == {"message": "invalid vote"}
            assert len(client.get("/vote").json()) == 1

    def test_request_id_echoed(self, client):
        response = client.get("/vote", headers={"X-Request-ID": "abc12345"})
        assert response.headers["X-Request-ID"] == "abc12345"


class TestAppOwnsStore:

    def test_existing_store_is_served(self):
        store = ChainStore()
        store.initialize()
        store.append("before-start")

        with TestClient(create_app(store=store)) as client:
            votes = client.get("/vote").json()

        assert [v["value"] for v in votes] == ["", "before-start"]

    def test_each_app_has_its_own_chain(self):
        with TestClient(create_app()) as first, TestClient(create_app()) as second:
            first.post("/vote", json={"value": "yes"})

            assert len(first.get("/vote").json()) == 2
            assert len(second.get("/vote").json()) == 1


class TestEncodingFailure:

    def test_unencodable_payload_is_plain_text_500(self):
        response = respond_with_json(lambda: {"value": float("nan")})

        assert response.status_code == 500
        assert response.media_type == "text/plain"
        assert response.body.startswith(b"unable to marshal")

    def test_render_error_is_plain_text_500(self):
        def render():
            raise TypeError("cannot encode vote")

        response = respond_with_json(render)

        assert response.status_code == 500
        assert b"cannot encode vote" in response.body


class TestSystemEndpoints:

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "healthy", "service": "voteledger"}

    def test_chain_health(self, client):
        client.post("/vote", json={"value": "yes"})

        response = client.get("/health/chain")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["chain_valid"] is True
        assert body["vote_count"] == 2

    def test_metrics(self, client):
        client.post("/vote", json={"value": "yes"})

        summary = client.get("/metrics").json()

        assert summary["votes_appended"] == 1
        assert summary["votes_rejected"] == 0
        assert summary["requests_total"] >= 1
