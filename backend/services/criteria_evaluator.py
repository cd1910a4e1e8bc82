"""Weighted multi-criteria proposal scoring with deterministic penalties."""
import math
import logging
from concurrent.futures import ThreadPoolExecutor
from fractions import Fraction
from typing import Any, Dict, List, Optional, Sequence, Tuple

from models.evaluation import (
    CriterionResult,
    EvaluationCriterion,
    EvaluationResult,
    PenaltyBreakdown,
)
from models.extraction import RfpContext
from config import (
    COMPLIANCE_GAP_DEDUCTION,
    GENERATION_CONCURRENCY,
    MAX_COMPLIANCE_DEDUCTION,
    RETRIEVAL_TOP_K,
    RISK_DEDUCTIONS,
    WEIGHT_EPSILON,
)
from services.errors import EngineError, MalformedResponseError
from services.inference_gateway import GenerationOptions, GenerativeInferenceGateway, JSON_OBJECT
from services.retrieval_engine import RetrievalEngine
from services.retry import CancellationToken

logger = logging.getLogger(__name__)

EVALUATOR_SYSTEM_PROMPT = (
    "You are an expert procurement bid evaluator with extensive experience in "
    "government contracts. Focus on providing detailed, objective evaluations "
    "with specific evidence from the proposal. Respond only with JSON."
)

SUMMARY_QUERY = (
    "Find sections discussing compliance with requirements, certifications, "
    "legal or regulatory obligations, and project risks"
)


def round_half_up(value) -> int:
    return int(math.floor(value + Fraction(1, 2)))


def validate_criteria(criteria: Sequence[EvaluationCriterion]) -> None:
    """
    Check that criteria are usable for one evaluation.

    Raises:
        ValueError: If the list is empty, a key repeats, a weight is outside
            (0, 1], or the weights do not sum to 1.0
    """
    if not criteria:
        raise ValueError("At least one evaluation criterion is required")

    keys = [c.key for c in criteria]
    if len(set(keys)) != len(keys):
        raise ValueError("Criterion keys must be unique")

    for criterion in criteria:
        if not 0 < criterion.weight <= 1:
            raise ValueError(f"Weight for '{criterion.key}' must be in (0, 1]")

    total = sum(c.weight for c in criteria)
    if abs(total - 1.0) > WEIGHT_EPSILON:
        raise ValueError(f"Criterion weights must sum to 1.0 (got {total:.4f})")


def weighted_score(scores: Dict[str, int], criteria: Sequence[EvaluationCriterion]) -> int:
    """
    ``round(sum(score_i * weight_i))`` over all criteria.

    Weights are read as the decimals they are written as, so 0.7 * 1 + 0.3 * 36
    is exactly 11.5 and rounds up to 12.
    """
    total = sum(Fraction(str(c.weight)) * scores[c.key] for c in criteria)
    return round_half_up(total)


def compliance_deduction(
    gap_count: int,
    per_gap: int = COMPLIANCE_GAP_DEDUCTION,
    cap: int = MAX_COMPLIANCE_DEDUCTION
) -> int:
    return min(gap_count * per_gap, cap)


def normalize_risk_level(level: Any) -> str:
    if level is None or (isinstance(level, str) and not level.strip()):
        return "none"
    level = str(level).strip().lower()
    # Anything unrecognized is treated as a medium risk
    return level if level in RISK_DEDUCTIONS else "medium"


def apply_penalties(
    score: int,
    compliance_gaps: Sequence[str],
    risk_level: Any
) -> Tuple[int, PenaltyBreakdown]:
    """Deduct compliance and risk penalties and clamp the result to [0, 100]."""
    level = normalize_risk_level(risk_level)
    penalties = PenaltyBreakdown(
        compliance_deduction=compliance_deduction(len(compliance_gaps)),
        risk_deduction=RISK_DEDUCTIONS[level],
        compliance_gaps=list(compliance_gaps),
        risk_level=level
    )
    return max(0, min(100, score - penalties.total)), penalties


def parse_score(value: Any, key: str) -> int:
    """
    Coerce a model-provided score to an int in [0, 100].

    Raises:
        MalformedResponseError: If the value is not numeric
    """
    if isinstance(value, bool) or value is None:
        raise MalformedResponseError(f"Missing numeric score for '{key}'", details={"key": key})
    try:
        number = float(str(value).strip().rstrip("%"))
    except ValueError as e:
        raise MalformedResponseError(
            f"Score for '{key}' is not numeric: {value!r}", details={"key": key}
        ) from e
    if not math.isfinite(number):
        raise MalformedResponseError(f"Score for '{key}' is not a finite number", details={"key": key})
    return max(0, min(100, round_half_up(number)))


def as_string_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value] if value.strip() else []
    if isinstance(value, (list, tuple)):
        return [str(item).strip() for item in value if str(item).strip()]
    return [str(value)]


class CriteriaEvaluator:
    """
    Scores a proposal against weighted criteria, one retrieval and one
    generation round per criterion, followed by a summary round.

    Evaluation is all-or-nothing: if any round fails terminally, the error
    propagates and no partial result is produced.
    """

    def __init__(
        self,
        gateway: GenerativeInferenceGateway,
        retrieval_engine: RetrievalEngine,
        job_id: Optional[str] = None,
        cancel_token: Optional[CancellationToken] = None,
        top_k: int = RETRIEVAL_TOP_K,
        concurrency: int = GENERATION_CONCURRENCY
    ):
        self.gateway = gateway
        self.retrieval_engine = retrieval_engine
        self.job_id = job_id
        self.cancel_token = cancel_token
        self.top_k = top_k
        self.concurrency = max(1, concurrency)

    def evaluate(
        self,
        criteria: Sequence[EvaluationCriterion],
        rfp_context: Optional[RfpContext] = None,
        compliance_gaps: Optional[Sequence[str]] = None
    ) -> EvaluationResult:
        """
        Evaluate the indexed proposal.

        Args:
            criteria: Weighted criteria; weights must sum to 1.0
            rfp_context: RFP summary included in every prompt
            compliance_gaps: Gaps already known to the caller, merged with detected ones

        Returns:
            EvaluationResult with per-criterion detail and applied penalties

        Raises:
            ValueError: If the criteria are invalid
            TerminalProviderError, MalformedResponseError, JobCancelledError:
                If any criterion or the summary cannot be produced
        """
        validate_criteria(criteria)

        results = self._evaluate_all(criteria, rfp_context)
        scores = {key: result.score for key, result in results.items()}
        aggregate = weighted_score(scores, criteria)

        summary = self._summarize(criteria, results, aggregate, rfp_context)
        gaps = self._merge_gaps(compliance_gaps or [], as_string_list(summary.get("complianceGaps")))
        overall, penalties = apply_penalties(aggregate, gaps, summary.get("riskLevel"))

        logger.info(
            f"Evaluation complete: weighted={aggregate}, overall={overall}, "
            f"gaps={len(gaps)}, risk={penalties.risk_level}",
            extra={"job_id": self.job_id}
        )

        return EvaluationResult(
            overall_score=overall,
            per_criterion=results,
            short_summary=str(summary.get("summary") or "").strip(),
            penalties_applied=penalties,
            weighted_score=aggregate,
            job_id=self.job_id
        )

    def _evaluate_all(
        self,
        criteria: Sequence[EvaluationCriterion],
        rfp_context: Optional[RfpContext]
    ) -> Dict[str, CriterionResult]:
        if self.concurrency == 1 or len(criteria) == 1:
            return {c.key: self.evaluate_criterion(c, rfp_context) for c in criteria}

        executor = ThreadPoolExecutor(max_workers=self.concurrency)
        try:
            futures = [(c.key, executor.submit(self.evaluate_criterion, c, rfp_context))
                       for c in criteria]
            return {key: future.result() for key, future in futures}
        finally:
            # On failure, queued criteria are dropped rather than run
            executor.shutdown(wait=True, cancel_futures=True)

    def evaluate_criterion(
        self,
        criterion: EvaluationCriterion,
        rfp_context: Optional[RfpContext] = None
    ) -> CriterionResult:
        """Retrieve evidence for one criterion and score it."""
        if self.cancel_token is not None:
            self.cancel_token.raise_if_cancelled(job_id=self.job_id, key=criterion.key)

        scored_chunks = self.retrieval_engine.retrieve(criterion.retrieval_query, top_k=self.top_k)
        prompt = self.build_criterion_prompt(
            criterion, RetrievalEngine.format_context(scored_chunks), rfp_context
        )

        attempts = None
        try:
            response = self.gateway.generate(
                prompt,
                EVALUATOR_SYSTEM_PROMPT,
                GenerationOptions(response_format=JSON_OBJECT),
                job_id=self.job_id,
                key=criterion.key,
                cancel_token=self.cancel_token
            )
            attempts = response.attempts
            data = response.data or {}
            result = CriterionResult(
                key=criterion.key,
                score=parse_score(data.get("score"), criterion.key),
                comments=as_string_list(data.get("comments")),
                narrative=str(data.get("evaluation") or data.get("narrative") or "").strip()
            )
        except EngineError as e:
            e.with_context(job_id=self.job_id, key=criterion.key, attempts=attempts)
            logger.error(
                f"Criterion '{criterion.key}' failed, aborting evaluation: {e.message}",
                extra={"job_id": self.job_id, "key": criterion.key, "error_code": e.code,
                       "error_details": e.details}
            )
            raise

        logger.info(
            f"Criterion '{criterion.key}' scored {result.score}",
            extra={"job_id": self.job_id, "key": criterion.key}
        )
        return result

    def _summarize(
        self,
        criteria: Sequence[EvaluationCriterion],
        results: Dict[str, CriterionResult],
        aggregate: int,
        rfp_context: Optional[RfpContext]
    ) -> Dict[str, Any]:
        scored_chunks = self.retrieval_engine.retrieve(SUMMARY_QUERY, top_k=self.top_k)
        prompt = self.build_summary_prompt(
            criteria, results, aggregate, RetrievalEngine.format_context(scored_chunks), rfp_context
        )
        try:
            response = self.gateway.generate(
                prompt,
                EVALUATOR_SYSTEM_PROMPT,
                GenerationOptions(response_format=JSON_OBJECT),
                job_id=self.job_id,
                key="summary",
                cancel_token=self.cancel_token
            )
        except EngineError as e:
            logger.error(
                f"Summary generation failed, aborting evaluation: {e.message}",
                extra={"job_id": self.job_id, "key": "summary", "error_code": e.code}
            )
            raise
        return response.data or {}

    @staticmethod
    def _merge_gaps(known: Sequence[str], detected: Sequence[str]) -> List[str]:
        merged: List[str] = []
        seen = set()
        for gap in list(known) + list(detected):
            normalized = gap.strip().lower()
            if normalized and normalized not in seen:
                seen.add(normalized)
                merged.append(gap.strip())
        return merged

    @staticmethod
    def build_criterion_prompt(
        criterion: EvaluationCriterion,
        context: str,
        rfp_context: Optional[RfpContext] = None
    ) -> str:
        """
        Build the scoring prompt for one criterion.

        Args:
            criterion: The criterion being scored
            context: Retrieved proposal text
            rfp_context: Optional RFP summary

        Returns:
            Complete prompt string
        """
        rfp_section = f"RFP Details:\n{rfp_context.describe()}\n\n" if rfp_context else ""
        description = f"\nWhat to assess: {criterion.description}" if criterion.description else ""
        evidence = context or "No relevant sections were found in the proposal."

        return f"""As an expert evaluator for government procurement bids, evaluate this proposal on a single criterion.

{rfp_section}Criterion: {criterion.display_name} (weight {criterion.weight:.0%}){description}

Relevant sections from the proposal:
{evidence}

Score the proposal on this criterion from 0 to 100 and explain the score with specific evidence.

Format your response as a JSON object with this structure:
{{
    "score": number,
    "comments": ["string"],
    "evaluation": "string"
}}"""

    @staticmethod
    def build_summary_prompt(
        criteria: Sequence[EvaluationCriterion],
        results: Dict[str, CriterionResult],
        aggregate: int,
        context: str,
        rfp_context: Optional[RfpContext] = None
    ) -> str:
        rfp_section = f"RFP Details:\n{rfp_context.describe()}\n\n" if rfp_context else ""
        lines = []
        for criterion in criteria:
            result = results[criterion.key]
            comments = "; ".join(result.comments) or "no comments"
            lines.append(f"- {criterion.display_name}: {result.score}/100 ({comments})")
        scores = "\n".join(lines)

        return f"""Summarize the evaluation of this procurement proposal.

{rfp_section}Criterion scores:
{scores}

Weighted score: {aggregate}/100

Proposal sections on compliance and risk:
{context or "No relevant sections were found in the proposal."}

Provide:
1. A short evaluation summary (max 100 words)
2. Any requirements the proposal fails to address (compliance gaps)
3. The overall delivery risk: none, low, medium or high

Format your response as JSON:
{{
    "summary": "string",
    "complianceGaps": ["string"],
    "riskLevel": "none" | "low" | "medium" | "high"
}}"""
