"""
Pydantic models and error type for YAML deck files.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Annotated, List, Optional, Union

from pydantic import (
    BaseModel as PydanticBaseModel,
    ConfigDict,
    Field,
    StringConstraints,
    field_validator,
)

from .models import CardType, Difficulty

KEBAB_CASE_REGEX_PATTERN = r"^[a-z0-9]+(?:-[a-z0-9]+)*$"

KebabCaseStr = Annotated[str, StringConstraints(pattern=KEBAB_CASE_REGEX_PATTERN)]


# --- Internal Pydantic Models for Raw YAML Validation ---


class _RawYAMLCardEntry(PydanticBaseModel):
    id: Optional[str] = Field(default=None)
    q: str = Field(..., min_length=1)
    a: str = Field(default="")
    hint: Optional[str] = Field(default=None)
    context: Optional[str] = Field(default=None)
    type: CardType = Field(default=CardType.STANDARD)
    options: List[str] = Field(default_factory=list)
    correct: Optional[Union[int, List[int]]] = Field(default=None)

    model_config = ConfigDict(extra="forbid")

    @field_validator("q", "a", "hint", "context", mode="before")
    @classmethod
    def strip_text(cls, v):
        return v.strip() if isinstance(v, str) else v

    @field_validator("type", mode="before")
    @classmethod
    def normalize_type(cls, v):
        """Accept `multiple-answer` and `Quiz` style spellings."""
        if isinstance(v, str):
            return v.strip().lower().replace("-", "_")
        return v

    @property
    def correct_indices(self) -> List[int]:
        if self.correct is None:
            return []
        if isinstance(self.correct, int):
            return [self.correct]
        return list(self.correct)


class _RawYAMLDeckFile(PydanticBaseModel):
    deck: KebabCaseStr
    title: Optional[str] = Field(default=None)
    difficulty: Difficulty = Field(default=Difficulty.A2)
    description: Optional[str] = Field(default=None)
    cards: List[dict] = Field(..., min_length=1)

    model_config = ConfigDict(extra="forbid")

    @field_validator("difficulty", mode="before")
    @classmethod
    def normalize_difficulty(cls, v):
        return v.strip().upper() if isinstance(v, str) else v


# --- Custom Error Reporting Dataclass ---
@dataclass
class YAMLProcessingError(Exception):
    file_path: Path
    message: str
    card_index: Optional[int] = None
    card_question_snippet: Optional[str] = None

    def __str__(self) -> str:
        context_parts = [f"File: {self.file_path.name}"]
        if self.card_index is not None:
            context_parts.append(f"Card Index: {self.card_index}")
        if self.card_question_snippet:
            snippet = self.card_question_snippet
            if len(snippet) > 50:
                snippet = snippet[:47] + "..."
            context_parts.append(f"Q: '{snippet}'")
        return f"{' | '.join(context_parts)} | Error: {self.message}"
