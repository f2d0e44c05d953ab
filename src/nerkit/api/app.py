"""FastAPI application exposing named-entity extraction."""
from __future__ import annotations
import logging

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, Field

from nerkit.ner.config import load_config
from nerkit.ner.errors import ModelLoadError, NERError
from nerkit.ner.extractor import EntityExtractor
from nerkit.ner.models import Entity

log = logging.getLogger(__name__)

app = FastAPI(
    title="NER API",
    description="Named entity extraction over a token-classification model.",
    version="1.0.0",
)

# ---------------------------------------------------------------------------
# Lazy-loaded global resources
# ---------------------------------------------------------------------------
_extractor: EntityExtractor | None = None


def _get_extractor() -> EntityExtractor:
    global _extractor
    if _extractor is None:
        _extractor = EntityExtractor(load_config())
    return _extractor


# ---------------------------------------------------------------------------
# Request / response models
# ---------------------------------------------------------------------------
class ExtractRequest(BaseModel):
    texts: list[str] = Field(..., description="Texts to extract entities from")


class ExtractResponse(BaseModel):
    entities: list[Entity]
    entity_labels: list[str]


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------
@app.post("/api/entities/extract", response_model=ExtractResponse)
def extract_entities(req: ExtractRequest):
    """Extract named entities from the given texts, in input order."""
    try:
        extractor = _get_extractor()
    except ModelLoadError as e:
        log.error("Model unavailable: %s", e)
        raise HTTPException(status_code=503, detail=str(e))

    try:
        entities = extractor.predict(req.texts)
    except NERError as e:
        log.error("Extraction failed: %s", e)
        raise HTTPException(status_code=500, detail=str(e))

    return ExtractResponse(
        entities=entities,
        entity_labels=sorted(set(e.label for e in entities)),
    )


@app.get("/api/health")
def health_check():
    """Health check endpoint."""
    return {"status": "ok"}
