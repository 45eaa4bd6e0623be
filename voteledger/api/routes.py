"""
API Routes for the Vote Ledger

Command endpoint (append-only, no PATCH, no PUT, no DELETE):
- POST /vote   - Cast a vote; accepted only if it chains from the tail

Query endpoint:
- GET /vote    - The full chain, genesis first

Status codes:
- 200: chain returned (after a successful append for POST)
- 400: body is not JSON or not {"value": string}
- 422: vote rejected by chain validation
- 500: response could not be encoded
"""

from typing import Any

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, PlainTextResponse, Response

from ..db.store import ChainStore
from ..observability import get_logger
from ..schemas import RejectionResponse, Vote, VoteRequest

router = APIRouter(tags=["Votes"])

logger = get_logger(__name__)


# ============================================================
# Dependency Injection
# ============================================================

def get_store(request: Request) -> ChainStore:
    """Get the chain store owned by the application."""
    return request.app.state.chain_store


# ============================================================
# Helper Functions
# ============================================================

def serialize_chain(votes: list[Vote]) -> list[dict[str, Any]]:
    """Render votes as wire dicts, in index order."""
    return [vote.model_dump(mode="json") for vote in votes]


def respond_with_json(render, status_code: int = 200) -> Response:
    """
    Encode a payload as JSON.

    `render` is called here so that serialization failures anywhere in
    building the body become a plain-text 500 instead of an unhandled error.
    """
    try:
        return JSONResponse(content=render(), status_code=status_code)
    except (TypeError, ValueError) as e:
        logger.error("Failed to encode response", error=str(e))
        return PlainTextResponse(
            f"unable to marshal: {e}",
            status_code=500,
        )


# ============================================================
# Endpoints
# ============================================================

@router.get("/vote", summary="Get the full vote chain")
async def get_votes(store: ChainStore = Depends(get_store)) -> Response:
    """
    Get every vote, genesis first.

    Each vote carries index, timestamp, value, hash and prev_hash.
    """
    votes = store.get_all()
    return respond_with_json(lambda: serialize_chain(votes))


@router.post("/vote", summary="Cast a vote")
async def post_vote(
    payload: VoteRequest,
    store: ChainStore = Depends(get_store),
) -> Response:
    """
    Append a vote to the chain.

    The vote is built from the current tail and validated against it
    while the store lock is held. On rejection the chain is unchanged.
    """
    result = store.append(payload.value)

    if not result.accepted:
        return respond_with_json(
            lambda: RejectionResponse().model_dump(),
            status_code=422,
        )

    logger.info("Vote accepted", index=result.vote.index)
    return respond_with_json(lambda: serialize_chain(store.get_all()))
