from __future__ import annotations

import base64
import binascii
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field, model_validator

from src.medscribe.config import settings
from src.medscribe.domain.models.analysis import ClinicalEntity, ImageFinding, SessionAnalysis
from src.medscribe.domain.models.user import User, UserRole
from src.medscribe.security import ensure_can_access_session, require_role
from src.medscribe.services.audit.service import audit_service
from src.medscribe.services.inference.huggingface import InferenceFailure
from src.medscribe.services.nlp import service as nlp
from src.medscribe.services.sessions.service import session_service

router = APIRouter(prefix="/ai", tags=["ai"])

require_doctor = require_role(UserRole.DOCTOR)


class TextRequest(BaseModel):
    text: str = Field(min_length=1)


class SummarizeRequest(TextRequest):
    max_length: int = Field(default=150, ge=1, le=1024)
    min_length: int = Field(default=50, ge=0, le=1024)


class ImageRequest(BaseModel):
    # Base64-encoded image.
    image_data: str = Field(min_length=1)


class AnalyzeSessionRequest(BaseModel):
    session_id: Optional[str] = None
    transcript: Optional[str] = None
    image_data: Optional[str] = None

    @model_validator(mode="after")
    def _needs_input(self) -> "AnalyzeSessionRequest":
        if not (self.session_id or self.transcript or self.image_data):
            raise ValueError("Provide a session_id, a transcript or image_data")
        return self


class EntitiesResponse(BaseModel):
    entities: List[ClinicalEntity]


class SummaryResponse(BaseModel):
    summary: str


class ImageAnalysisResponse(BaseModel):
    analysis: List[ImageFinding]


def _decode_image(image_data: str) -> bytes:
    try:
        image = base64.b64decode(image_data, validate=True)
    except binascii.Error:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="image_data is not valid base64")
    if len(image) > settings.max_image_bytes:
        raise HTTPException(status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE, detail="Image payload too large.")
    return image


def _unavailable(exc: InferenceFailure) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_502_BAD_GATEWAY,
        detail=f"AI service temporarily unavailable: {exc.message}",
    )


@router.post("/extract-entities", response_model=EntitiesResponse)
async def extract_entities(payload: TextRequest, user: User = Depends(require_doctor)) -> EntitiesResponse:
    try:
        entities = await nlp.analysis_service.extract_entities(payload.text)
    except InferenceFailure as exc:
        raise _unavailable(exc)
    return EntitiesResponse(entities=entities)


@router.post("/summarize", response_model=SummaryResponse)
async def summarize(payload: SummarizeRequest, user: User = Depends(require_doctor)) -> SummaryResponse:
    if payload.min_length > payload.max_length:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="min_length exceeds max_length")
    try:
        summary = await nlp.analysis_service.summarize(
            payload.text,
            max_length=payload.max_length,
            min_length=payload.min_length,
        )
    except InferenceFailure as exc:
        raise _unavailable(exc)
    return SummaryResponse(summary=summary)


@router.post("/analyze-image", response_model=ImageAnalysisResponse)
async def analyze_image(payload: ImageRequest, user: User = Depends(require_doctor)) -> ImageAnalysisResponse:
    image = _decode_image(payload.image_data)
    try:
        findings = await nlp.analysis_service.analyze_image(image)
    except InferenceFailure as exc:
        raise _unavailable(exc)

    audit_service.log_event(
        action="analyze_image",
        resource_type="image",
        extra={"size_bytes": len(image)},
    )
    return ImageAnalysisResponse(analysis=findings)


@router.post("/analyze-session", response_model=SessionAnalysis, response_model_exclude_none=True)
async def analyze_session(payload: AnalyzeSessionRequest, user: User = Depends(require_doctor)) -> SessionAnalysis:
    """Run every applicable analysis in one call.

    With a ``session_id`` the caller must own the session; its stored
    transcript is analysed unless one is supplied, and the results are saved
    onto the session record.
    """

    transcript = payload.transcript
    if payload.session_id is not None:
        record = session_service.get_session(payload.session_id)
        if record is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Session not found")
        ensure_can_access_session(user, record)
        if transcript is None:
            transcript = record.transcript

    image = _decode_image(payload.image_data) if payload.image_data else None
    analysis = await nlp.analysis_service.analyze_session(transcript=transcript, image=image)

    if payload.session_id is not None:
        updates = analysis.model_dump(mode="json", exclude_none=True)
        if updates and session_service.update_session(payload.session_id, updates) is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Session not found")

    audit_service.log_event(
        action="analyze_session",
        resource_type="session",
        resource_id=payload.session_id,
        extra={"parts": sorted(analysis.model_dump(exclude_none=True))},
    )
    return analysis
