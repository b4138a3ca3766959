from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import APIRouter, Request

from volumedrip.api.errors import api_error_from_rejection
from volumedrip.api.routes_public_parts.common import _executor
from volumedrip.api.schemas import TxSubmitRequest

router = APIRouter()

Json = Dict[str, Any]


@router.post("/tx/submit")
def tx_submit(body: TxSubmitRequest, request: Request) -> Json:
    """Submit a signed tx envelope.

    The tx is admitted and executed immediately (single-writer node).
    Rejections come back as {ok: false, error: {code, message, details}}
    with nothing changed on chain.
    """
    res = _executor(request).submit_tx(body.model_dump())
    if not res.get("ok"):
        raise api_error_from_rejection(res)
    return res


@router.get("/tx/recent")
def tx_recent(request: Request, limit: int = 50, signer: Optional[str] = None) -> Json:
    receipts = _executor(request).recent_receipts(limit=limit, signer=signer)
    return {"ok": True, "receipts": receipts}
