from __future__ import annotations

import logging
from typing import Any, List, Optional, Protocol, Tuple

import httpx

from src.medscribe.config import settings
from src.medscribe.domain.models.analysis import ClinicalEntity
from src.medscribe.services.inference.huggingface import HuggingFaceInferenceClient

logger = logging.getLogger("medscribe.nlp.backend")


class EntityExtractionBackend(Protocol):
    """Protocol for medical named entity recognition backends."""

    async def extract(self, text: str) -> List[ClinicalEntity]:  # pragma: no cover - interface
        ...


class SummarizationBackend(Protocol):
    async def summarize(self, text: str, *, max_length: int, min_length: int) -> str:  # pragma: no cover - interface
        ...


class ImageClassificationBackend(Protocol):
    """Protocol for image classifiers.

    Returns ``(label, score)`` pairs in whatever order the model produces.
    """

    async def classify(self, image: bytes) -> List[Tuple[str, float]]:  # pragma: no cover - interface
        ...


class DemoEntityExtractionBackend:
    """Keyword matcher standing in for a medical NER model in tests and development."""

    KEYWORDS = {
        "diabetes": "DISEASE",
        "hypertension": "DISEASE",
        "headache": "SYMPTOM",
        "cough": "SYMPTOM",
        "fever": "SYMPTOM",
        "metformin": "DRUG",
        "ibuprofen": "DRUG",
    }

    async def extract(self, text: str) -> List[ClinicalEntity]:
        lower = text.lower()
        entities: List[ClinicalEntity] = []
        for keyword, label in self.KEYWORDS.items():
            start = lower.find(keyword)
            if start == -1:
                continue
            entities.append(
                ClinicalEntity(
                    text=text[start : start + len(keyword)],
                    label=label,
                    confidence=1.0,
                    start=start,
                    end=start + len(keyword),
                )
            )
        entities.sort(key=lambda e: e.start or 0)
        return entities


class DemoSummarizationBackend:
    """Returns the leading words of the text, capped at ``max_length`` words."""

    async def summarize(self, text: str, *, max_length: int, min_length: int) -> str:
        return " ".join(text.split()[:max_length])


class DemoImageClassificationBackend:
    async def classify(self, image: bytes) -> List[Tuple[str, float]]:
        if not image:
            return []
        return [("normal", 0.9), ("abnormal", 0.1)]


class HuggingFaceEntityExtractionBackend:
    """Token classification through a hosted BioBERT NER model."""

    def __init__(
        self,
        *,
        model: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        **client_kwargs: Any,
    ) -> None:
        self._client = HuggingFaceInferenceClient(transport=transport, **client_kwargs)
        self._model = model or settings.hf_ner_model

    async def extract(self, text: str) -> List[ClinicalEntity]:
        payload = await self._client.post_json(self._model, {"inputs": text})
        if not isinstance(payload, list):
            raise self._client.fail("malformed_response", f"{self._model} did not return a list of entities")

        entities: List[ClinicalEntity] = []
        for item in payload:
            if not isinstance(item, dict):
                continue
            word = item.get("word")
            label = item.get("entity_group") or item.get("entity")
            score = item.get("score")
            if not word or not label or not isinstance(score, (int, float)):
                logger.debug("Skipping incomplete entity from %s", self._model)
                continue
            entities.append(
                ClinicalEntity(
                    text=str(word),
                    label=str(label),
                    confidence=float(score),
                    start=item.get("start"),
                    end=item.get("end"),
                )
            )
        return entities


class HuggingFaceSummarizationBackend:
    """Abstractive summary through a hosted BART model."""

    def __init__(
        self,
        *,
        model: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        **client_kwargs: Any,
    ) -> None:
        self._client = HuggingFaceInferenceClient(transport=transport, **client_kwargs)
        self._model = model or settings.hf_summarization_model

    async def summarize(self, text: str, *, max_length: int, min_length: int) -> str:
        payload = await self._client.post_json(
            self._model,
            {
                "inputs": text,
                "parameters": {"max_length": max_length, "min_length": min_length, "do_sample": False},
            },
        )
        # The API answers with either a one-element list or a bare object.
        if isinstance(payload, list):
            payload = payload[0] if payload else {}
        summary = payload.get("summary_text") if isinstance(payload, dict) else None
        if summary is None:
            return ""
        if not isinstance(summary, str):
            raise self._client.fail("malformed_response", f"{self._model} returned a non-text summary")
        return summary.strip()


class HuggingFaceImageClassificationBackend:
    def __init__(
        self,
        *,
        model: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        **client_kwargs: Any,
    ) -> None:
        self._client = HuggingFaceInferenceClient(transport=transport, **client_kwargs)
        self._model = model or settings.hf_image_model

    async def classify(self, image: bytes) -> List[Tuple[str, float]]:
        payload = await self._client.post_bytes(self._model, image, "application/octet-stream")
        if not isinstance(payload, list):
            raise self._client.fail("malformed_response", f"{self._model} did not return a list of labels")
        return [
            (str(item["label"]), float(item["score"]))
            for item in payload
            if isinstance(item, dict) and "label" in item and isinstance(item.get("score"), (int, float))
        ]


def _use_hosted_models() -> bool:
    return settings.nlp_backend.lower() == "huggingface"


def get_entity_backend_from_env() -> EntityExtractionBackend:
    """Select an entity extraction backend based on NLP_BACKEND.

    - "huggingface" → hosted BioBERT NER
    - anything else → DemoEntityExtractionBackend
    """

    if _use_hosted_models():
        return HuggingFaceEntityExtractionBackend()
    return DemoEntityExtractionBackend()


def get_summarization_backend_from_env() -> SummarizationBackend:
    if _use_hosted_models():
        return HuggingFaceSummarizationBackend()
    return DemoSummarizationBackend()


def get_image_backend_from_env() -> ImageClassificationBackend:
    if _use_hosted_models():
        return HuggingFaceImageClassificationBackend()
    return DemoImageClassificationBackend()
