"""
Feature registry.

Maps every user-facing tool to the role that sees it and the feature key
it meters. Tables are keyed by enums so a missing entry is caught by the
registry tests instead of surfacing as a silent string lookup miss.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from .models import FeatureKey, UserRole


class Tool(str, Enum):
    """Screens a user can open from the sidebar."""

    # Student tools
    HOMEWORK_HELPER = "homeworkHelper"
    TOPIC_EXPLORER = "topicExplorer"
    VISUAL_ASSISTANT = "visualAssistant"
    QUIZ_GENERATOR = "quizGenerator"
    SUMMARIZER = "summarizer"
    FACT_FINDER = "factFinder"
    MY_LIBRARY = "myLibrary"
    MY_REPORTS = "myReports"

    # Teacher tools
    LESSON_PLANNER = "lessonPlanner"
    ACTIVITY_GENERATOR = "activityGenerator"
    PRESENTATION_GENERATOR = "presentationGenerator"
    REPORT_CARD_HELPER = "reportCardHelper"
    QUIZ_GENERATOR_TEACHER = "quizGeneratorTeacher"
    VISUAL_ASSISTANT_TEACHER = "visualAssistantTeacher"

    # Common
    SETTINGS = "settings"

    # Admin
    ADMIN_PANEL = "adminPanel"


@dataclass(frozen=True)
class ToolSpec:
    """Static description of a tool.

    Attributes:
        roles: Roles whose sidebar lists the tool. Empty means every role.
        feature: Feature the tool consumes, or None for unmetered screens.
        admin_only: Only visible from the admin dashboard.
    """

    roles: frozenset[UserRole]
    feature: Optional[FeatureKey] = None
    admin_only: bool = False


_STUDENT = frozenset({UserRole.STUDENT})
_TEACHER = frozenset({UserRole.TEACHER})
_EVERYONE: frozenset[UserRole] = frozenset()

TOOL_REGISTRY: dict[Tool, ToolSpec] = {
    Tool.HOMEWORK_HELPER: ToolSpec(_STUDENT, FeatureKey.HOMEWORK_HELPS),
    Tool.TOPIC_EXPLORER: ToolSpec(_STUDENT, FeatureKey.TOPIC_SEARCHES),
    Tool.VISUAL_ASSISTANT: ToolSpec(_STUDENT, FeatureKey.VISUAL_ASSISTANT),
    Tool.QUIZ_GENERATOR: ToolSpec(_STUDENT, FeatureKey.QUIZ_QUESTIONS),
    Tool.SUMMARIZER: ToolSpec(_STUDENT, FeatureKey.SUMMARIES),
    Tool.FACT_FINDER: ToolSpec(_STUDENT, FeatureKey.FACT_FINDER),
    Tool.MY_LIBRARY: ToolSpec(_STUDENT),
    Tool.MY_REPORTS: ToolSpec(_STUDENT),
    Tool.LESSON_PLANNER: ToolSpec(_TEACHER, FeatureKey.LESSON_PLANS),
    Tool.ACTIVITY_GENERATOR: ToolSpec(_TEACHER, FeatureKey.ACTIVITIES),
    Tool.PRESENTATION_GENERATOR: ToolSpec(_TEACHER, FeatureKey.PRESENTATIONS),
    Tool.REPORT_CARD_HELPER: ToolSpec(_TEACHER, FeatureKey.REPORT_CARDS),
    Tool.QUIZ_GENERATOR_TEACHER: ToolSpec(_TEACHER, FeatureKey.QUIZ_QUESTIONS),
    Tool.VISUAL_ASSISTANT_TEACHER: ToolSpec(_TEACHER, FeatureKey.VISUAL_ASSISTANT),
    Tool.SETTINGS: ToolSpec(_EVERYONE),
    Tool.ADMIN_PANEL: ToolSpec(_EVERYONE, FeatureKey.ADMIN_PANEL, admin_only=True),
}

# Features that only admins may use, regardless of tier or config.
ADMIN_ONLY_FEATURES: frozenset[FeatureKey] = frozenset(
    spec.feature
    for spec in TOOL_REGISTRY.values()
    if spec.admin_only and spec.feature is not None
)

DEFAULT_TOOL: dict[UserRole, Tool] = {
    UserRole.STUDENT: Tool.HOMEWORK_HELPER,
    UserRole.TEACHER: Tool.LESSON_PLANNER,
}


def feature_for_tool(tool: Tool) -> Optional[FeatureKey]:
    """Feature metered by a tool, if any."""
    return TOOL_REGISTRY[tool].feature


def tools_for_role(role: Optional[UserRole]) -> list[Tool]:
    """Tools listed for a role, in registry order. No role means no tools."""
    if role is None:
        return []
    return [
        tool
        for tool, spec in TOOL_REGISTRY.items()
        if not spec.admin_only and (not spec.roles or role in spec.roles)
    ]


def admin_tools() -> list[Tool]:
    """Tools listed on the admin dashboard."""
    return [
        tool
        for tool, spec in TOOL_REGISTRY.items()
        if spec.admin_only or not spec.roles
    ]
