"""Extraction and advisory analysis data models."""
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


@dataclass
class RfpContext:
    """Summary of the RFP a proposal responds to."""
    title: str
    short_description: str = ""
    long_description: str = ""
    budget: Optional[float] = None
    timeline_start: Optional[str] = None
    timeline_end: Optional[str] = None

    def describe(self) -> str:
        """Render the RFP details block used in prompts."""
        lines = [
            f"- Title: {self.title}",
            f"- Short Description: {self.short_description or 'Not specified'}",
        ]
        if self.long_description:
            lines.append(f"- Long Description: {self.long_description}")
        budget = f"${self.budget:,.2f}" if self.budget is not None else "Not specified"
        lines.append(f"- Budget: {budget}")
        lines.append(
            f"- Timeline: {self.timeline_start or 'Not specified'} to "
            f"{self.timeline_end or 'Not specified'}"
        )
        return "\n".join(lines)


@dataclass
class ExtractedField:
    """One extracted value; absent fields stay present with value None."""
    name: str
    value: Any = None
    present: bool = False


def empty_grouping() -> Dict[str, Any]:
    return {"categories": {}, "uncategorized": []}


@dataclass
class ExtractedFields:
    """Structured fields extracted from an RFP document."""
    title: ExtractedField = field(default_factory=lambda: ExtractedField("title"))
    short_description: ExtractedField = field(
        default_factory=lambda: ExtractedField("short_description"))
    timeline_start: ExtractedField = field(
        default_factory=lambda: ExtractedField("timeline_start"))
    timeline_end: ExtractedField = field(
        default_factory=lambda: ExtractedField("timeline_end"))
    budget: ExtractedField = field(default_factory=lambda: ExtractedField("budget"))
    submission_deadline: ExtractedField = field(
        default_factory=lambda: ExtractedField("submission_deadline"))
    requirements: ExtractedField = field(
        default_factory=lambda: ExtractedField("requirements", empty_grouping()))
    evaluation_metrics: ExtractedField = field(
        default_factory=lambda: ExtractedField("evaluation_metrics", empty_grouping()))
    special_instructions: ExtractedField = field(
        default_factory=lambda: ExtractedField("special_instructions"))
    failed_aspects: List[str] = field(default_factory=list)
    job_id: Optional[str] = None

    FIELD_NAMES = (
        "title",
        "short_description",
        "timeline_start",
        "timeline_end",
        "budget",
        "submission_deadline",
        "requirements",
        "evaluation_metrics",
        "special_instructions",
    )

    def set(self, name: str, value: Any) -> None:
        """Record a value; empty values leave the field absent."""
        present = value not in (None, "", [], {})
        if name in ("requirements", "evaluation_metrics"):
            present = bool(value and (value["categories"] or value["uncategorized"]))
            if value is None:
                value = empty_grouping()
        elif not present:
            value = None
        setattr(self, name, ExtractedField(name, value, present))

    def fields(self) -> List[ExtractedField]:
        return [getattr(self, name) for name in self.FIELD_NAMES]

    def to_dict(self) -> Dict[str, Any]:
        """Flatten to the response shape, keeping absent fields as null."""
        return {
            "title": self.title.value,
            "shortDescription": self.short_description.value,
            "timeline": {
                "startDate": self.timeline_start.value,
                "endDate": self.timeline_end.value,
            },
            "budget": self.budget.value,
            "submissionDeadline": self.submission_deadline.value,
            "requirements": self.requirements.value,
            "evaluationMetrics": self.evaluation_metrics.value,
            "specialInstructions": self.special_instructions.value,
        }


@dataclass
class AspectSuggestions:
    """Advisory feedback for one proposal aspect."""
    aspect: str
    suggestions: List[str] = field(default_factory=list)
    is_complete: bool = False


@dataclass
class SuggestionReport:
    """Non-scoring improvement suggestions grouped by aspect."""
    aspects: Dict[str, AspectSuggestions] = field(default_factory=dict)
    failed_aspects: List[str] = field(default_factory=list)
    job_id: Optional[str] = None

    @property
    def is_complete(self) -> bool:
        return bool(self.aspects) and not self.failed_aspects and all(
            aspect.is_complete for aspect in self.aspects.values()
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "suggestions": {
                name: list(aspect.suggestions) for name, aspect in self.aspects.items()
            },
            "isComplete": self.is_complete,
            "failedAspects": list(self.failed_aspects),
        }
