import json
from typing import Optional

from fastapi import APIRouter, Header, HTTPException, Request
from pydantic import ValidationError as SchemaValidationError

from errors import VerificationError, VerificationReason
from logging_config import get_logger
from schemas.verification import NativeVerificationRequest, NativeVerificationResponse, WebVerificationResponse
from verification import origin_verifier

logger = get_logger(__name__)

verification_router = APIRouter(tags=["verification"])

NATIVE_FIELDS = {"deviceId", "device_id", "nonce", "verificationHash", "verification_hash"}


def _http_error(error: VerificationError) -> HTTPException:
    status_code = 400 if error.reason is VerificationReason.MISSING_HEADERS else 401
    return HTTPException(status_code=status_code, detail=error.to_dict())


@verification_router.post("/verify-origin")
async def verify_origin(
    request: Request,
    x_timestamp: Optional[str] = Header(None),
    x_signature: Optional[str] = Header(None),
    origin: Optional[str] = Header(None),
):
    """
    Verify a native app (JSON body) or a cross-origin web page (headers).

    Native body: {deviceId, timestamp, nonce, bundleId, verificationHash}
        -> {appKey, serverChallenge, serverVerification}
    Web headers: X-Timestamp (epoch ms), X-Signature (hex HMAC-SHA256 of
        "timestamp:origin"), Origin
        -> {verified: true, origin}
    """
    body = await request.body()
    payload = None
    if body:
        try:
            payload = json.loads(body)
        except json.JSONDecodeError:
            logger.debug("verify-origin body is not JSON, using web headers")

    if isinstance(payload, dict) and NATIVE_FIELDS & payload.keys():
        try:
            native = NativeVerificationRequest.model_validate(payload)
        except SchemaValidationError as e:
            logger.warning(f"Native verification rejected: malformed payload ({e.error_count()} errors)")
            raise HTTPException(status_code=422, detail={"code": "invalid_payload", "message": "Malformed verification payload"})
        try:
            result = origin_verifier.verify_native(
                device_id=native.device_id,
                timestamp=str(native.timestamp),
                nonce=native.nonce,
                bundle_id=native.bundle_id,
                verification_hash=native.verification_hash,
            )
        except VerificationError as e:
            raise _http_error(e)
        return NativeVerificationResponse(**result).model_dump(by_alias=True)

    try:
        verified = origin_verifier.verify_web(x_timestamp, x_signature, origin)
    except VerificationError as e:
        raise _http_error(e)
    return WebVerificationResponse(origin=verified).model_dump(by_alias=True)
