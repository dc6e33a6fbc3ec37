"""
Content generation module.

Wraps the AI content-generation service: bounded retry for transient
errors, typed payloads, and model selection from the app config.
"""

from .exceptions import GenerationError, TransientServiceError
from .interfaces import GenerationResult, IGenerationService
from .models import (
    Fact,
    FactList,
    GenerationRequest,
    Language,
    LessonActivity,
    LessonPlan,
    PayloadKind,
    Presentation,
    PresentationSlide,
    Quiz,
    QuizQuestion,
)
from .retry import is_transient, with_retry
from .service import GeminiGenerationService

__all__ = [
    # Interfaces
    "IGenerationService",
    "GenerationResult",
    # Models
    "GenerationRequest",
    "PayloadKind",
    "Language",
    "LessonPlan",
    "LessonActivity",
    "Quiz",
    "QuizQuestion",
    "Presentation",
    "PresentationSlide",
    "Fact",
    "FactList",
    # Retry
    "with_retry",
    "is_transient",
    # Service
    "GeminiGenerationService",
    # Exceptions
    "GenerationError",
    "TransientServiceError",
]
