from typing import Union

from pydantic import Field

from schemas.rooms import CamelModel


class NativeVerificationRequest(CamelModel):
    device_id: str = Field(min_length=1)
    timestamp: Union[int, str]
    nonce: str = Field(min_length=1)
    bundle_id: str = Field(min_length=1)
    verification_hash: str = Field(min_length=1)


class NativeVerificationResponse(CamelModel):
    app_key: str
    server_challenge: str
    server_verification: str


class WebVerificationResponse(CamelModel):
    verified: bool = True
    origin: str
