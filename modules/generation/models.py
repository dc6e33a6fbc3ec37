"""
Content generation data models.

Typed payloads returned by the generation service, plus the request that
selects which payload to produce.
"""

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field


class Language(str, Enum):
    """Output languages offered in the app."""

    EN = "en"
    HI = "hi"
    ES = "es"
    FR = "fr"


# How each language is named in prompts.
LANGUAGE_PROMPT_NAMES: dict[Language, str] = {
    Language.EN: "English",
    Language.HI: 'Hindi, using the Devanagari script (for example: "नमस्ते")',
    Language.ES: "Spanish",
    Language.FR: "French",
}


class PayloadKind(str, Enum):
    """Shape of the content a request produces."""

    TEXT = "text"
    LESSON_PLAN = "lesson_plan"
    QUIZ = "quiz"
    PRESENTATION = "presentation"
    FACTS = "facts"


class LessonActivity(BaseModel):
    title: str
    description: str
    duration: int = Field(..., description="Minutes")


class LessonPlan(BaseModel):
    """Lesson plan for one class."""

    title: str
    grade_level: str = Field(..., alias="gradeLevel")
    duration: str
    learning_objectives: list[str] = Field(..., alias="learningObjectives")
    materials: list[str]
    activities: list[LessonActivity]
    assessment: str

    model_config = {"populate_by_name": True}


class QuizQuestion(BaseModel):
    question: str
    options: list[str]
    correct_answer: str = Field(..., alias="correctAnswer")

    model_config = {"populate_by_name": True}


class Quiz(BaseModel):
    topic: str
    questions: list[QuizQuestion]


class PresentationSlide(BaseModel):
    title: str
    content: list[str]
    speaker_notes: Optional[str] = Field(None, alias="speakerNotes")

    model_config = {"populate_by_name": True}


class Presentation(BaseModel):
    topic: str
    slides: list[PresentationSlide]


class Fact(BaseModel):
    fact: str
    detail: str


class FactList(BaseModel):
    topic: str
    facts: list[Fact]


PAYLOAD_MODELS: dict[PayloadKind, Optional[type[BaseModel]]] = {
    PayloadKind.TEXT: None,
    PayloadKind.LESSON_PLAN: LessonPlan,
    PayloadKind.QUIZ: Quiz,
    PayloadKind.PRESENTATION: Presentation,
    PayloadKind.FACTS: FactList,
}


class GenerationRequest(BaseModel):
    """
    One content-generation call.

    ``model_key`` names the logical model (usually the tool) that
    AppConfig.ai_model_selection maps to a concrete model id.
    """

    model_key: str
    prompt: str
    kind: PayloadKind = PayloadKind.TEXT
    language: Language = Language.EN
    system_prompt: Optional[str] = None

    model_config = {"frozen": True}

    def cache_key(self) -> tuple[Any, ...]:
        return (self.model_key, self.kind, self.language, self.system_prompt, self.prompt)
