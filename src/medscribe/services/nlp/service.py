from __future__ import annotations

import logging
from typing import List, Optional

from src.medscribe.config import settings
from src.medscribe.domain.models.analysis import ClinicalEntity, ImageFinding, SessionAnalysis
from src.medscribe.services.inference.huggingface import InferenceFailure
from src.medscribe.services.nlp.backends import (
    EntityExtractionBackend,
    ImageClassificationBackend,
    SummarizationBackend,
    get_entity_backend_from_env,
    get_image_backend_from_env,
    get_summarization_backend_from_env,
)

logger = logging.getLogger("medscribe.nlp")

FINDING_DESCRIPTIONS = {
    "normal": "No abnormalities detected in the image.",
    "abnormal": "Potential abnormalities detected. Further examination recommended.",
    "fracture": "Possible bone fracture detected. Immediate medical attention required.",
    "pneumonia": "Signs consistent with pneumonia. Antibiotic treatment may be necessary.",
    "tumor": "Suspicious mass detected. Biopsy and further testing recommended.",
}
DEFAULT_FINDING_DESCRIPTION = "Analysis result requires professional medical interpretation."


def describe_finding(label: str) -> str:
    return FINDING_DESCRIPTIONS.get(label.lower(), DEFAULT_FINDING_DESCRIPTION)


class ClinicalAnalysisService:
    """Entity extraction, summarization and image classification for consultations.

    Each capability runs on a pluggable backend selected from NLP_BACKEND, so
    tests and local development use deterministic demo backends while
    deployments call the hosted models. Single-capability calls raise
    ``InferenceFailure``; ``analyze_session`` degrades each failed part to an
    empty result instead.
    """

    def __init__(
        self,
        *,
        entity_backend: Optional[EntityExtractionBackend] = None,
        summarization_backend: Optional[SummarizationBackend] = None,
        image_backend: Optional[ImageClassificationBackend] = None,
        min_entity_confidence: Optional[float] = None,
    ) -> None:
        self._entities = entity_backend or get_entity_backend_from_env()
        self._summaries = summarization_backend or get_summarization_backend_from_env()
        self._images = image_backend or get_image_backend_from_env()
        self.min_entity_confidence = (
            min_entity_confidence if min_entity_confidence is not None else settings.entity_min_confidence
        )

    async def extract_entities(self, text: str) -> List[ClinicalEntity]:
        entities = await self._entities.extract(text)
        return [e for e in entities if e.confidence > self.min_entity_confidence]

    async def summarize(self, text: str, *, max_length: int = 150, min_length: int = 50) -> str:
        return await self._summaries.summarize(text, max_length=max_length, min_length=min_length)

    async def analyze_image(self, image: bytes, *, top_k: int = 5) -> List[ImageFinding]:
        """Return the ``top_k`` most confident labels, best first."""

        scored = sorted(await self._images.classify(image), key=lambda pair: pair[1], reverse=True)
        return [
            ImageFinding(label=label, confidence=score, description=describe_finding(label))
            for label, score in scored[:top_k]
        ]

    async def analyze_session(
        self,
        *,
        transcript: Optional[str] = None,
        image: Optional[bytes] = None,
        image_top_k: int = 3,
    ) -> SessionAnalysis:
        analysis = SessionAnalysis()

        if transcript:
            try:
                analysis.entities = await self.extract_entities(transcript)
            except InferenceFailure as exc:
                logger.error("Entity extraction failed during session analysis: %s", exc.message)
                analysis.entities = []
            try:
                analysis.summary = await self.summarize(transcript)
            except InferenceFailure as exc:
                logger.error("Summarization failed during session analysis: %s", exc.message)
                analysis.summary = ""

        if image:
            try:
                analysis.image_analysis = await self.analyze_image(image, top_k=image_top_k)
            except InferenceFailure as exc:
                logger.error("Image analysis failed during session analysis: %s", exc.message)
                analysis.image_analysis = []

        return analysis


# Default singleton instance used by API routes.
analysis_service = ClinicalAnalysisService()
