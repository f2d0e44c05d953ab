"""Pydantic models for NER entities and token-level results."""
from __future__ import annotations
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict

# Label the tagging scheme uses for tokens outside any entity
NON_ENTITY_LABEL = "O"


class TokenMask(str, Enum):
    NORMAL = "normal"
    SPECIAL = "special"
    CONTINUATION = "continuation"


class Offset(BaseModel):
    """Character span [begin, end) in the source text."""
    model_config = ConfigDict(frozen=True)

    begin: int
    end: int


class Token(BaseModel):
    """A single token-classification result, before filtering."""
    model_config = ConfigDict(frozen=True)

    text: str
    score: float
    label: str
    label_index: int = 0
    sentence: int = 0
    index: int = 0
    word_index: int = 0
    offset: Optional[Offset] = None
    mask: TokenMask = TokenMask.NORMAL

    @property
    def is_entity(self) -> bool:
        return self.label != NON_ENTITY_LABEL


class Entity(BaseModel):
    """A recognized named entity."""
    model_config = ConfigDict(frozen=True)

    word: str
    score: float
    label: str
