# src/ytrewards/api/app.py
from __future__ import annotations

import os
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, FastAPI, HTTPException, Request
from fastapi.responses import PlainTextResponse
from pydantic import BaseModel, Field

from ytrewards import metrics
from ytrewards.artifact import DistributionArtifact, load_artifact
from ytrewards.ledger.types import normalize_address
from ytrewards.merkle import verify_proof
from ytrewards.structured_logging import RequestLogMiddleware

Json = Dict[str, Any]

router = APIRouter(prefix="/v1")


class VerifyRequest(BaseModel):
    address: str = Field(..., description="Holder address")
    amount: str = Field(..., pattern=r"^[0-9]+$", description="Claim amount, decimal string")
    proof: List[str] = Field(default_factory=list, description="Sibling hashes, bottom-up")


def _artifact(request: Request) -> DistributionArtifact:
    art = getattr(request.app.state, "artifact", None)
    if art is None:
        raise HTTPException(status_code=503, detail="artifact_not_loaded")
    return art


def _address_or_400(raw: str) -> str:
    try:
        return normalize_address(raw)
    except ValueError:
        raise HTTPException(status_code=400, detail="invalid_address")


@router.get("/health")
def health(request: Request) -> Json:
    art = getattr(request.app.state, "artifact", None)
    return {"ok": art is not None, "leaves": len(art.proofs) if art is not None else 0}


@router.get("/root")
def root(request: Request) -> Json:
    art = _artifact(request)
    return {"ok": True, "root": art.root, "leaves": len(art.proofs)}


@router.get("/proofs/{address}")
def proof(address: str, request: Request) -> Json:
    art = _artifact(request)
    addr = _address_or_400(address)
    entry = art.get(addr)
    metrics.record_proof_lookup(entry is not None)
    if entry is None:
        raise HTTPException(status_code=404, detail="address_not_in_distribution")
    return {"ok": True, "address": addr, "root": art.root, "amount": entry.amount, "proof": list(entry.proof)}


@router.post("/verify")
def verify(body: VerifyRequest, request: Request) -> Json:
    art = _artifact(request)
    addr = _address_or_400(body.address)
    valid = verify_proof(art.root, addr, int(body.amount), body.proof)
    return {"ok": True, "address": addr, "valid": bool(valid)}


@router.get("/metrics")
def metrics_text() -> PlainTextResponse:
    if not metrics.metrics_enabled():
        raise HTTPException(status_code=404, detail="metrics_disabled")
    return PlainTextResponse(metrics.format_prometheus(), media_type="text/plain; version=0.0.4")


def create_app(*, artifact_path: Optional[str] = None) -> FastAPI:
    """Create the claim lookup app over one published artifact.

    The artifact path comes from the argument or YTR_ARTIFACT_PATH and is
    loaded once at startup; a broken artifact fails app creation.
    """
    app = FastAPI(title="yt-rewards claims", version="0.1.0")
    app.add_middleware(RequestLogMiddleware)

    path = artifact_path or os.environ.get("YTR_ARTIFACT_PATH")
    app.state.artifact = load_artifact(path) if path else None

    app.include_router(router)
    return app
