"""Core data contracts shared by the tag-group engine."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field


VariableType = Literal[
    "string", "number", "boolean", "array", "object", "text", "json", "url"
]


class TagGroupError(Exception):
    """Base class for misuse of the tag-group engine."""


class EmptyGroupError(TagGroupError):
    """Raised when no template belongs to the requested group."""

    def __init__(self, group_name: str) -> None:
        super().__init__(f"No templates found for tag group '{group_name}'")
        self.group_name = group_name


class StepInProgressError(TagGroupError):
    """Raised when a step is started while another one is still running."""


class TemplateNotFoundError(TagGroupError):
    """Raised when a template id is not known to an executor."""


class VariableDefinition(BaseModel):
    """Describes one input a prompt template accepts."""

    name: str
    type: VariableType = "string"
    required: bool = False
    description: Optional[str] = None
    default_value: Any = None
    options: Optional[List[str]] = None


class PromptTemplate(BaseModel):
    """A versioned prompt definition. Never mutated by the engine."""

    id: str
    name: str
    tags: List[str] = Field(default_factory=list)
    template_text: str = ""
    variable_defs: List[VariableDefinition] = Field(default_factory=list)
    model: str = ""
    app: Optional[str] = None
    stage: Optional[str] = None
    feature: Optional[str] = None
    notes: Optional[str] = None
    version: int = 1

    def tag_for(self, group_name: str) -> Optional[str]:
        """Return the first tag that places this template in ``group_name``."""
        for tag in self.tags:
            if tag == group_name or tag.startswith(f"{group_name}-"):
                return tag
        return None

    def variable_names(self) -> List[str]:
        return [definition.name for definition in self.variable_defs]


class ExecutionResult(BaseModel):
    """Outcome of running one step's prompt through a backend."""

    status: Literal["completed", "failed"] = "completed"
    output_raw: str = ""
    output_parsed: Optional[Dict[str, Any]] = None
    error_message: Optional[str] = None
    execution_time_ms: int = 0
    resolved_prompt: str = ""
    model: Optional[str] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @property
    def succeeded(self) -> bool:
        return self.status == "completed"
