from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import AliasChoices, BaseModel, Field

from store import get_store
from utils.otp_store import OtpStore


router = APIRouter(prefix="/otp", tags=["otp"])


class GenerateIn(BaseModel):
    email: Optional[str] = None
    purpose: Optional[str] = None


class VerifyIn(BaseModel):
    email: Optional[str] = None
    otp: Optional[str] = Field(default=None, validation_alias=AliasChoices("otp", "code"))


@router.post("/generate")
def generate_otp(payload: GenerateIn, store: OtpStore = Depends(get_store)):
    return store.generate(payload.email, payload.purpose).to_dict()


@router.post("/verify")
def verify_otp(payload: VerifyIn, store: OtpStore = Depends(get_store)):
    # Domain failures (expired, wrong code...) are 200s with success=false.
    return store.verify(payload.email, payload.otp).to_dict()


@router.get("/status/{email}")
def otp_status(email: str, store: OtpStore = Depends(get_store)):
    return store.status(email).to_dict()
