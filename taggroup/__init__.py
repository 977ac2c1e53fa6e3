"""Taggroup: step-by-step execution of grouped prompt templates."""

from .carryover import extract_carry_over_variables
from .contracts import (
    EmptyGroupError,
    ExecutionResult,
    PromptTemplate,
    StepInProgressError,
    TagGroupError,
    TemplateNotFoundError,
    VariableDefinition,
)
from .execution import (
    Progress,
    Step,
    TagGroupExecution,
    calculate_progress,
    create_execution,
)
from .executors import AgentBackend, StepExecutor, TemplateStepExecutor
from .persistence import get_repository
from .resolver import interpolate, resolve
from .session import TagGroupSession
from .summary import build_export, generate_execution_summary
from .tags import extract_tag_groups, load_templates

__version__ = "0.1.0"
__all__ = [
    "AgentBackend",
    "EmptyGroupError",
    "ExecutionResult",
    "Progress",
    "PromptTemplate",
    "Step",
    "StepExecutor",
    "StepInProgressError",
    "TagGroupError",
    "TagGroupExecution",
    "TagGroupSession",
    "TemplateNotFoundError",
    "TemplateStepExecutor",
    "VariableDefinition",
    "build_export",
    "calculate_progress",
    "create_execution",
    "extract_carry_over_variables",
    "extract_tag_groups",
    "generate_execution_summary",
    "get_repository",
    "interpolate",
    "load_templates",
    "resolve",
]
