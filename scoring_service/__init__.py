from .scoring_service import (
    EVALUATE_KEY,
    SUMMARY_KEY,
    Evaluation,
    EvaluationFailure,
    EvaluationRequest,
    LlmScoringService,
    ScoringService,
    SummaryFailure,
    SummaryRequest,
    evaluate_answer,
    generate_summary,
    service_from_config,
)

__all__ = [
    "EVALUATE_KEY",
    "SUMMARY_KEY",
    "Evaluation",
    "EvaluationFailure",
    "EvaluationRequest",
    "LlmScoringService",
    "ScoringService",
    "SummaryFailure",
    "SummaryRequest",
    "evaluate_answer",
    "generate_summary",
    "service_from_config",
]
