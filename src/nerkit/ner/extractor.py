"""Entity extraction on top of a token-classification backend.

Build an EntityExtractor from a TokenClassificationConfig and pass it a batch
of texts; it returns the entities of every text in input order. With the
default CoNLL-03 model, "My name is Amy. I live in Paris." and "Paris is a
city in France." give Amy (I-PER), Paris (I-LOC), Paris (I-LOC) and France
(I-LOC).

Tokens are mapped 1:1 to entities: a multi-token name such as "New York"
tagged I-LOC, I-LOC comes back as two entities.
"""
from __future__ import annotations
import logging
import threading
from typing import Iterable, Optional

from .classifier import TokenClassifier, build_classifier
from .config import TokenClassificationConfig
from .errors import NERError
from .models import Entity, Token

log = logging.getLogger(__name__)


def _to_entity(token: Token) -> Entity:
    return Entity(word=token.text, score=token.score, label=token.label)


class EntityExtractor:
    """Named-entity extractor owning exactly one TokenClassifier."""

    def __init__(self, config: Optional[TokenClassificationConfig] = None):
        self.config = config or TokenClassificationConfig()
        log.info("Building entity extractor (backend=%s, model=%s)",
                 self.config.backend, self.config.model_name)
        self._classifier: Optional[TokenClassifier] = build_classifier(self.config)
        self._lock = threading.Lock()

    def _classify(self, texts: list[str]) -> list[Token]:
        with self._lock:
            if self._classifier is None:
                raise NERError("EntityExtractor has been closed")
            return self._classifier.predict(texts, consolidate=True, sentence_split=False)

    def predict(self, texts: Iterable[str]) -> list[Entity]:
        """Extract entities from a batch of texts.

        Entities come back in token order: everything found in texts[0]
        precedes everything found in texts[1]. Empty texts yield nothing.
        """
        tokens = self._classify(list(texts))
        return [_to_entity(t) for t in tokens if t.is_entity]

    def predict_batch(self, texts: Iterable[str]) -> list[list[Entity]]:
        """Like predict(), but grouped per input text."""
        texts = list(texts)
        grouped: list[list[Entity]] = [[] for _ in texts]
        for token in self._classify(texts):
            if token.is_entity:
                grouped[token.sentence].append(_to_entity(token))
        return grouped

    def close(self) -> None:
        with self._lock:
            if self._classifier is not None:
                self._classifier.close()
                self._classifier = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
