# tests/conftest.py
import re
import threading
import time

import pytest

from nerkit.ner import classifier
from nerkit.ner.config import TokenClassificationConfig
from nerkit.ner.errors import InferenceError, ModelLoadError
from nerkit.ner.models import Offset, Token

SAMPLE_TEXTS = [
    "My name is Amy. I live in Paris.",
    "Paris is a city in France.",
]

# Fixed token streams for the sample sentences: (text, score, label)
SAMPLE_TAGS = {
    SAMPLE_TEXTS[0]: [
        ("My", 0.9995, "O"), ("name", 0.9994, "O"), ("is", 0.9996, "O"),
        ("Amy", 0.9986, "I-PER"), (".", 0.9997, "O"), ("I", 0.9995, "O"),
        ("live", 0.9996, "O"), ("in", 0.9997, "O"), ("Paris", 0.9985, "I-LOC"),
        (".", 0.9998, "O"),
    ],
    SAMPLE_TEXTS[1]: [
        ("Paris", 0.9988, "I-LOC"), ("is", 0.9996, "O"), ("a", 0.9997, "O"),
        ("city", 0.9995, "O"), ("in", 0.9996, "O"), ("France", 0.9993, "I-LOC"),
        (".", 0.9998, "O"),
    ],
}

# Labels for any other text, word by word
KNOWN_WORDS = {
    "New": "I-LOC", "York": "I-LOC", "Amy": "I-PER", "Bob": "I-PER",
    "Google": "I-ORG", "Berlin": "I-LOC",
}


class StubClassifier(classifier.TokenClassifier):
    """Deterministic classifier: fixed streams for the samples, a word lookup otherwise."""

    instances: list = []

    def __init__(self, config):
        super().__init__(config)
        self.calls = []
        self.closed = False
        StubClassifier.instances.append(self)

    def _tag(self, text):
        if text in SAMPLE_TAGS:
            return SAMPLE_TAGS[text]
        return [(w, 0.99, KNOWN_WORDS.get(w, "O")) for w in re.findall(r"\w+|[^\w\s]", text)]

    def predict(self, texts, consolidate=True, sentence_split=False):
        self.calls.append((list(texts), consolidate, sentence_split))
        tokens = []
        for sentence, text in enumerate(texts):
            pos = 0
            for index, (word, score, label) in enumerate(self._tag(text)):
                begin = text.index(word, pos)
                pos = begin + len(word)
                tokens.append(Token(
                    text=word, score=score, label=label, sentence=sentence,
                    index=index, word_index=index,
                    offset=Offset(begin=begin, end=pos),
                ))
        return tokens

    def close(self):
        self.closed = True


class FailingLoadClassifier(classifier.TokenClassifier):
    def __init__(self, config):
        raise ModelLoadError("model weights not found")

    def predict(self, texts, consolidate=True, sentence_split=False):
        raise AssertionError("never constructed")


class FailingInferenceClassifier(classifier.TokenClassifier):
    def predict(self, texts, consolidate=True, sentence_split=False):
        raise InferenceError("device lost")


class SlowClassifier(classifier.TokenClassifier):
    """Records how many predict calls overlap."""

    last = None

    def __init__(self, config):
        super().__init__(config)
        self._guard = threading.Lock()
        self.in_flight = 0
        self.max_in_flight = 0
        SlowClassifier.last = self

    def predict(self, texts, consolidate=True, sentence_split=False):
        with self._guard:
            self.in_flight += 1
            self.max_in_flight = max(self.max_in_flight, self.in_flight)
        time.sleep(0.02)
        with self._guard:
            self.in_flight -= 1
        return []


@pytest.fixture
def stub_backends(monkeypatch):
    monkeypatch.setitem(classifier.BACKENDS, "stub", StubClassifier)
    monkeypatch.setitem(classifier.BACKENDS, "failing_load", FailingLoadClassifier)
    monkeypatch.setitem(classifier.BACKENDS, "failing_inference", FailingInferenceClassifier)
    monkeypatch.setitem(classifier.BACKENDS, "slow", SlowClassifier)
    StubClassifier.instances = []
    yield StubClassifier


@pytest.fixture
def stub_config(stub_backends):
    return TokenClassificationConfig(backend="stub", model_name="stub-model")
