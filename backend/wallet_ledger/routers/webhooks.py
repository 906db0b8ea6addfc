import json
import logging
from typing import Optional
from fastapi import APIRouter, Depends, Header, Request, Response
from fastapi.responses import JSONResponse
from wallet_ledger.core.deps import get_reconciler, get_signature_verifier
from wallet_ledger.services.reconciler import TransactionReconciler
from wallet_ledger.services.signature_verifier import SignatureVerifier

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/webhooks", tags=["webhooks"])


@router.post("/circle")
async def circle_webhook(
    request: Request,
    x_circle_signature: Optional[str] = Header(default=None),
    x_circle_key_id: Optional[str] = Header(default=None),
    verifier: SignatureVerifier = Depends(get_signature_verifier),
    reconciler: TransactionReconciler = Depends(get_reconciler),
):
    """Receive a Circle notification.

    Once the signature checks out the delivery is always acknowledged with
    200, even if reconciling it fails, so Circle does not keep redelivering.
    """
    if not x_circle_signature or not x_circle_key_id:
        return JSONResponse({"error": "Missing signature or keyId"}, status_code=400)

    try:
        # Signature covers the bytes as sent, never a re-serialized copy
        raw_body = await request.body()
        if not await verifier.verify(raw_body, x_circle_signature, x_circle_key_id):
            return JSONResponse({"error": "Invalid signature"}, status_code=403)

        payload = json.loads(raw_body)
        result = await reconciler.handle(payload)
        logger.info(
            "Circle %s notification finished as %s",
            result.notification_type, result.state.value,
        )
        return {"received": True}
    except Exception as exc:
        logger.exception("Failed to process webhook: %s", exc)
        return JSONResponse({"error": "Failed to process notification"}, status_code=500)


@router.head("/circle")
async def circle_webhook_head():
    return Response(status_code=200)
