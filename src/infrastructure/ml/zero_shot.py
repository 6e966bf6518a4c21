"""
infrastructure.ml.zero_shot - NLI zero-shot classification with transformers.

Each candidate label is turned into a hypothesis ("This example is {}.")
and scored against the text by an MNLI model. Inference runs locally on
torch; scoring is plain numpy so it can be tested without a model.
"""

from __future__ import annotations

import logging
from typing import Optional, Sequence

import numpy as np

from domain.exceptions import ClassificationError
from domain.models import ClassificationResult

logger = logging.getLogger(__name__)

DEFAULT_TEMPLATE = "This example is {}."


def apply_template(template: str, label: str) -> str:
    """Fill the first {} with the label, or append it when there is none."""
    pos = template.find("{}")
    if pos == -1:
        return template + label
    return template[:pos] + label + template[pos + 2:]


def _softmax(x: np.ndarray, axis: int = -1) -> np.ndarray:
    shifted = x - np.max(x, axis=axis, keepdims=True)
    exp = np.exp(shifted)
    return exp / np.sum(exp, axis=axis, keepdims=True)


def score_candidates(
    logits: np.ndarray,
    multi_label: bool,
    entailment_id: int,
    contradiction_id: int,
) -> np.ndarray:
    """Turn per-candidate NLI logits (shape [n_candidates, n_classes]) into scores.

    multi_label: each candidate is independent; softmax over
    [contradiction, entailment] and keep the entailment probability.
    Otherwise the entailment logits compete with each other and sum to 1.
    """
    logits = np.asarray(logits, dtype=np.float64)
    if logits.ndim != 2:
        raise ValueError(f"Expected 2-D logits, got shape {logits.shape}")
    if multi_label:
        pair = logits[:, [contradiction_id, entailment_id]]
        return _softmax(pair, axis=1)[:, 1]
    return _softmax(logits[:, entailment_id], axis=0)


def rank(text: str, labels: Sequence[str], scores: np.ndarray) -> ClassificationResult:
    order = np.argsort(-scores, kind="stable")
    return ClassificationResult(
        text=text,
        labels=[labels[i] for i in order],
        scores=[float(scores[i]) for i in order],
    )


def _label_id(label2id: dict, name: str, fallback: int) -> int:
    for key, value in label2id.items():
        if str(key).lower().startswith(name):
            return int(value)
    return fallback


class ZeroShotClassifier:
    """ZeroShotPort backed by a Hugging Face sequence-classification model."""

    def __init__(
        self,
        model_name: str,
        hypothesis_template: str = DEFAULT_TEMPLATE,
        device: Optional[str] = None,
    ):
        import torch
        from transformers import AutoModelForSequenceClassification, AutoTokenizer

        self._torch = torch
        self.template = hypothesis_template
        self.device = device or ("cuda" if torch.cuda.is_available() else "cpu")

        logger.info("Loading zero-shot model %s on %s", model_name, self.device)
        self.tokenizer = AutoTokenizer.from_pretrained(model_name)
        self.model = AutoModelForSequenceClassification.from_pretrained(model_name)
        self.model.to(self.device)
        self.model.eval()

        label2id = getattr(self.model.config, "label2id", None) or {}
        self.entailment_id = _label_id(label2id, "entail", 0)
        self.contradiction_id = _label_id(label2id, "contra", 2)
        logger.info(
            "Zero-shot model ready (entailment=%d, contradiction=%d)",
            self.entailment_id, self.contradiction_id,
        )

    def classify(
        self, text: str, labels: list[str], multi_label: bool = True,
    ) -> ClassificationResult:
        if not labels:
            raise ValueError("At least one candidate label is required")
        hypotheses = [apply_template(self.template, label) for label in labels]
        try:
            encoded = self.tokenizer(
                [text] * len(hypotheses),
                hypotheses,
                return_tensors="pt",
                padding=True,
                truncation="only_first",
            )
            encoded = {k: v.to(self.device) for k, v in encoded.items()}
            with self._torch.no_grad():
                logits = self.model(**encoded).logits.cpu().numpy()
        except (RuntimeError, ValueError) as e:
            raise ClassificationError(f"Zero-shot inference failed: {e}") from e

        scores = score_candidates(
            logits, multi_label, self.entailment_id, self.contradiction_id,
        )
        return rank(text, labels, scores)
