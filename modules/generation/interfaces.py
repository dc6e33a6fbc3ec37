"""
Content generation interfaces.
"""

from typing import Optional, Protocol, Union, runtime_checkable

from pydantic import BaseModel

from modules.entitlements.models import AppConfig

from .models import GenerationRequest


GenerationResult = Union[str, BaseModel]


@runtime_checkable
class IGenerationService(Protocol):
    """
    Interface for the AI content-generation service.

    Callers gate the call with the usage policy first and record the
    consumption only after generate() returns.
    """

    async def generate(
        self,
        request: GenerationRequest,
        config: Optional[AppConfig] = None,
    ) -> GenerationResult:
        """
        Produce content for ``request``.

        Args:
            request: What to generate and in which language
            config: App config whose ai_model_selection picks the model

        Returns:
            Plain text for PayloadKind.TEXT, otherwise the typed payload
            (LessonPlan, Quiz, Presentation or FactList)

        Raises:
            TransientServiceError: Service still overloaded after retries
            GenerationError: Any other failure, including unparseable output
        """
        ...
