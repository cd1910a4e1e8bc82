"""Evaluation data models."""
from dataclasses import dataclass, field
from typing import Dict, List, Any, Optional


@dataclass
class EvaluationCriterion:
    """A named, weighted evaluation dimension supplied by the caller."""
    key: str
    display_name: str
    weight: float  # (0, 1]; weights of one job sum to 1.0
    retrieval_query: str
    description: str = ""


@dataclass
class CriterionResult:
    """Score and feedback for one criterion."""
    key: str
    score: int  # 0 to 100
    comments: List[str] = field(default_factory=list)
    narrative: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "key": self.key,
            "score": self.score,
            "comments": list(self.comments),
            "narrative": self.narrative,
        }


@dataclass
class PenaltyBreakdown:
    """Deductions applied after weighted aggregation."""
    compliance_deduction: int = 0
    risk_deduction: int = 0
    compliance_gaps: List[str] = field(default_factory=list)
    risk_level: str = "none"

    @property
    def total(self) -> int:
        return self.compliance_deduction + self.risk_deduction


@dataclass
class EvaluationResult:
    """Final weighted score of a proposal with per-criterion detail."""
    overall_score: int  # 0 to 100, after penalties
    per_criterion: Dict[str, CriterionResult]
    short_summary: str
    penalties_applied: PenaltyBreakdown
    weighted_score: int = 0  # before penalties
    job_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the camelCase shape callers persist."""
        return {
            "overallScore": self.overall_score,
            "weightedScore": self.weighted_score,
            "perCriterion": {
                key: result.to_dict() for key, result in self.per_criterion.items()
            },
            "shortSummary": self.short_summary,
            "penaltiesApplied": {
                "complianceDeduction": self.penalties_applied.compliance_deduction,
                "riskDeduction": self.penalties_applied.risk_deduction,
                "complianceGaps": list(self.penalties_applied.compliance_gaps),
                "riskLevel": self.penalties_applied.risk_level,
            },
        }
