from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel


class ClinicalEntity(BaseModel):
    """A medical term recognised in consultation text."""

    text: str
    label: str
    confidence: float
    # Character offsets into the analysed text, when the model reports them.
    start: Optional[int] = None
    end: Optional[int] = None


class ImageFinding(BaseModel):
    label: str
    confidence: float
    description: str


class SessionAnalysis(BaseModel):
    """Combined analysis of a consultation.

    A part that was not requested stays ``None``; a part whose model call
    failed comes back empty.
    """

    entities: Optional[List[ClinicalEntity]] = None
    summary: Optional[str] = None
    image_analysis: Optional[List[ImageFinding]] = None
