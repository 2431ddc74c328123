from __future__ import annotations  # Re-export question_source public API

from .question_source import (  # noqa: F401
    REGISTRY_KEY,
    apply_bands,
    GeneratedQuestion,
    GenerationFailure,
    LlmQuestionSource,
    QuestionBatch,
    QuestionRequest,
    QuestionSource,
    band_for_index,
    default_questions,
    generate_batch,
    normalize_batch,
    source_from_config,
)

__all__ = [
    "REGISTRY_KEY",
    "apply_bands",
    "GeneratedQuestion",
    "GenerationFailure",
    "LlmQuestionSource",
    "QuestionBatch",
    "QuestionRequest",
    "QuestionSource",
    "band_for_index",
    "default_questions",
    "generate_batch",
    "normalize_batch",
    "source_from_config",
]
