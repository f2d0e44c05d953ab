"""Token-classification backends: the abstract capability, a registry, and a
HuggingFace transformers implementation.

Backends are selected by the `backend` field of TokenClassificationConfig:
    - "transformers" (default) -> HuggingFaceTokenClassifier
    - anything added with register_backend()
"""
from __future__ import annotations
import itertools
import logging
import re
from abc import ABC, abstractmethod
from collections import Counter
from typing import Optional, Sequence

from .config import LabelAggregation, TokenClassificationConfig
from .errors import ConfigError, InferenceError, ModelLoadError
from .models import Offset, Token, TokenMask

log = logging.getLogger(__name__)

RE_SENTENCE = re.compile(r"\S[^.!?]*(?:[.!?]+|$)")


class TokenClassifier(ABC):
    """Abstract token classifier: built once from a config, then queried."""

    def __init__(self, config: TokenClassificationConfig):
        self.config = config

    @abstractmethod
    def predict(self, texts: Sequence[str], consolidate: bool = True,
                sentence_split: bool = False) -> list[Token]:
        """Classify every token of every text.

        Returns one flat list: all tokens of texts[0], then texts[1], etc.
        Each token's `sentence` field is the index of the text it came from.
        """
        ...

    def close(self) -> None:
        """Release model resources. Safe to call more than once."""

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()


BACKENDS: dict[str, type[TokenClassifier]] = {}


def register_backend(name: str, cls: Optional[type[TokenClassifier]] = None):
    """Register a TokenClassifier under `name`. Usable as a class decorator."""
    def decorator(klass: type[TokenClassifier]) -> type[TokenClassifier]:
        BACKENDS[name] = klass
        return klass

    if cls is not None:
        return decorator(cls)
    return decorator


def build_classifier(config: TokenClassificationConfig) -> TokenClassifier:
    try:
        cls = BACKENDS[config.backend]
    except KeyError:
        raise ConfigError(
            f"Unknown token-classification backend {config.backend!r} "
            f"(available: {', '.join(sorted(BACKENDS))})"
        ) from None
    return cls(config)


# ---------------------------------------------------------------------------
# Pure helpers
# ---------------------------------------------------------------------------
def split_sentences(text: str) -> list[tuple[int, int]]:
    """Character spans of the sentences in `text`, split on . ! and ?"""
    return [(m.start(), m.end()) for m in RE_SENTENCE.finditer(text)]


def aggregate_label(pieces: Sequence[Token],
                    aggregation: LabelAggregation = LabelAggregation.FIRST) -> tuple[str, int]:
    """Pick one (label, label_index) for the pieces of a single word.

    MODE ties go to the label seen first.
    """
    if not pieces:
        raise ValueError("cannot aggregate an empty word")
    if aggregation is LabelAggregation.LAST:
        chosen = pieces[-1]
    elif aggregation is LabelAggregation.MODE:
        label = Counter(p.label for p in pieces).most_common(1)[0][0]
        chosen = next(p for p in pieces if p.label == label)
    else:
        chosen = pieces[0]
    return chosen.label, chosen.label_index


def consolidate_tokens(tokens: Sequence[Token], text: Optional[str] = None,
                       aggregation: LabelAggregation = LabelAggregation.FIRST) -> list[Token]:
    """Merge sub-word pieces into one token per word.

    Special tokens are dropped. The merged text is the original substring
    covered by the pieces when offsets and `text` are available. The score is
    the mean score of the pieces that carry the chosen label. Distinct words
    are never merged, even when they share a label.
    """
    out: list[Token] = []
    kept = (t for t in tokens if t.mask != TokenMask.SPECIAL)
    for _, group in itertools.groupby(kept, key=lambda t: (t.sentence, t.word_index)):
        pieces = list(group)
        label, label_index = aggregate_label(pieces, aggregation)
        votes = [p.score for p in pieces if p.label == label]
        first, last = pieces[0], pieces[-1]

        offset = None
        if text is not None and first.offset is not None and last.offset is not None:
            offset = Offset(begin=first.offset.begin, end=last.offset.end)
            word = text[offset.begin:offset.end]
        else:
            word = "".join(p.text for p in pieces)

        out.append(Token(
            text=word,
            score=sum(votes) / len(votes),
            label=label,
            label_index=label_index,
            sentence=first.sentence,
            index=len(out),
            word_index=first.word_index,
            offset=offset,
            mask=TokenMask.NORMAL,
        ))
    return out


# ---------------------------------------------------------------------------
# HuggingFace backend
# ---------------------------------------------------------------------------
@register_backend("transformers")
class HuggingFaceTokenClassifier(TokenClassifier):
    """Token classification with AutoModelForTokenClassification (e.g. a CoNLL-03 BERT)."""

    def __init__(self, config: TokenClassificationConfig):
        super().__init__(config)
        import torch
        from transformers import AutoModelForTokenClassification, AutoTokenizer

        tokenizer_name = config.tokenizer_name or config.model_name
        tokenizer_kwargs = {"do_lower_case": True} if config.lower_case else {}
        log.info("Loading token-classification model: %s (device=%d)",
                 config.model_name, config.device)
        try:
            self.tokenizer = AutoTokenizer.from_pretrained(
                tokenizer_name, cache_dir=config.cache_dir, use_fast=True, **tokenizer_kwargs,
            )
            self.model = AutoModelForTokenClassification.from_pretrained(
                config.model_name, cache_dir=config.cache_dir,
            )
            self.device = torch.device("cpu" if config.device < 0 else f"cuda:{config.device}")
            self.model.to(self.device)
            self.model.eval()
        except (OSError, ValueError, RuntimeError, AssertionError) as e:
            raise ModelLoadError(
                f"Cannot load model {config.model_name!r} on device {config.device}: {e}"
            ) from e

        if not self.tokenizer.is_fast:
            raise ModelLoadError(
                f"Tokenizer {tokenizer_name!r} has no fast implementation; offsets are required"
            )

        room = config.max_length - self.tokenizer.num_special_tokens_to_add()
        if room < 2:
            raise ModelLoadError(f"max_length={config.max_length} leaves no room for text")
        # Overlap between consecutive windows, bounded so every window advances
        self.stride = min(config.stride, room // 2)
        self.id2label = {int(k): v for k, v in self.model.config.id2label.items()}

    def _classify_segment(self, segment: str, begin: int, sentence: int,
                          word_base: int, index_base: int) -> list[Token]:
        """Tag one contiguous piece of a text; offsets are shifted by `begin`.

        Segments longer than max_length are cut into overlapping windows.
        A token already covered by an earlier window is not emitted again.
        """
        import torch

        if self.model is None:
            raise InferenceError("Classifier has been closed")

        enc = self.tokenizer(
            segment,
            return_tensors="pt",
            truncation=True,
            max_length=self.config.max_length,
            stride=self.stride,
            return_overflowing_tokens=True,
            padding=True,
            return_offsets_mapping=True,
            return_special_tokens_mask=True,
        )
        n_windows = len(enc["input_ids"])
        word_ids = [enc.word_ids(w) for w in range(n_windows)]
        offsets = enc.pop("offset_mapping").tolist()
        special = enc.pop("special_tokens_mask").tolist()
        enc.pop("overflow_to_sample_mapping", None)
        input_ids = enc["input_ids"].tolist()
        attention = enc["attention_mask"].tolist()
        inputs = {k: v.to(self.device) for k, v in enc.items()}
        if n_windows > 1:
            log.debug("Segment of %d chars split into %d windows", len(segment), n_windows)

        try:
            with torch.no_grad():
                logits = self.model(**inputs).logits
        except RuntimeError as e:
            raise InferenceError(f"Token classification failed: {e}") from e

        probs = torch.softmax(logits, dim=-1)
        scores, label_ids = probs.max(dim=-1)
        scores = scores.cpu().tolist()
        label_ids = label_ids.cpu().tolist()

        tokens: list[Token] = []
        covered = 0
        prev_word = None
        for w in range(n_windows):
            for i, (start, end) in enumerate(offsets[w]):
                if not attention[w][i]:
                    continue
                label_index = int(label_ids[w][i])
                label = self.id2label.get(label_index, str(label_index))
                if special[w][i] or word_ids[w][i] is None:
                    tokens.append(Token(
                        text=self.tokenizer.convert_ids_to_tokens(input_ids[w][i]),
                        score=float(scores[w][i]),
                        label=label,
                        label_index=label_index,
                        sentence=sentence,
                        index=index_base + len(tokens),
                        word_index=-1,
                        mask=TokenMask.SPECIAL,
                    ))
                    continue
                if start < covered:
                    continue
                covered = end
                word = word_ids[w][i]
                tokens.append(Token(
                    text=segment[start:end],
                    score=float(scores[w][i]),
                    label=label,
                    label_index=label_index,
                    sentence=sentence,
                    index=index_base + len(tokens),
                    word_index=word_base + word,
                    offset=Offset(begin=begin + start, end=begin + end),
                    mask=TokenMask.CONTINUATION if word == prev_word else TokenMask.NORMAL,
                ))
                prev_word = word
        return tokens

    def predict(self, texts: Sequence[str], consolidate: bool = True,
                sentence_split: bool = False) -> list[Token]:
        results: list[Token] = []
        for sentence, text in enumerate(texts):
            if not text or not text.strip():
                continue
            spans = split_sentences(text) if sentence_split else [(0, len(text))]

            pieces: list[Token] = []
            for begin, end in spans:
                word_base = max((p.word_index for p in pieces), default=-1) + 1
                pieces.extend(self._classify_segment(
                    text[begin:end], begin, sentence, word_base, len(pieces),
                ))

            if consolidate:
                pieces = consolidate_tokens(pieces, text, self.config.label_aggregation)
            else:
                pieces = [p for p in pieces if p.mask != TokenMask.SPECIAL]
            results.extend(pieces)
        return results

    def close(self) -> None:
        if self.model is None:
            return
        on_gpu = self.device.type == "cuda"
        self.model = None
        if on_gpu:
            import torch
            torch.cuda.empty_cache()
        log.debug("Released model %s", self.config.model_name)


