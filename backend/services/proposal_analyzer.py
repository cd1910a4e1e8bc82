"""Advisory, non-scoring improvement suggestions for a draft proposal."""
import logging
from typing import Dict, Optional

from models.extraction import AspectSuggestions, RfpContext, SuggestionReport
from config import RETRIEVAL_TOP_K
from services.criteria_evaluator import as_string_list
from services.errors import MalformedResponseError, TerminalProviderError
from services.inference_gateway import GenerationOptions, GenerativeInferenceGateway, JSON_OBJECT
from services.retrieval_engine import RetrievalEngine
from services.retry import CancellationToken

logger = logging.getLogger(__name__)

ANALYZER_SYSTEM_PROMPT = (
    "You are an expert in analyzing government procurement proposals. Focus on "
    "providing clear, actionable suggestions for improvement. Respond only with JSON."
)

ASPECT_QUERIES: Dict[str, str] = {
    "budget": "Find sections discussing budget, costs, pricing, financial details, or monetary aspects",
    "technical": "Find sections discussing technical specifications, requirements, implementation details, or technical approach",
    "timeline": "Find sections discussing project timeline, schedule, milestones, or delivery dates",
    "team": "Find sections discussing team composition, roles, expertise, or staffing",
    "documentation": "Find sections discussing documentation, deliverables, or required documents",
}


class ProposalAnalyzer:
    """Per-aspect suggestions for a vendor's proposal before submission."""

    def __init__(
        self,
        gateway: GenerativeInferenceGateway,
        retrieval_engine: RetrievalEngine,
        job_id: Optional[str] = None,
        cancel_token: Optional[CancellationToken] = None,
        top_k: int = RETRIEVAL_TOP_K,
        aspect_queries: Optional[Dict[str, str]] = None
    ):
        self.gateway = gateway
        self.retrieval_engine = retrieval_engine
        self.job_id = job_id
        self.cancel_token = cancel_token
        self.top_k = top_k
        self.aspect_queries = dict(aspect_queries or ASPECT_QUERIES)

    def analyze(self, rfp_context: RfpContext) -> SuggestionReport:
        """
        Produce suggestions for every aspect.

        Aspects whose generation fails are reported in ``failed_aspects``
        with no suggestions; the report is still returned.

        Raises:
            JobCancelledError: If the job is cancelled
        """
        report = SuggestionReport(job_id=self.job_id)

        for aspect, query in self.aspect_queries.items():
            if self.cancel_token is not None:
                self.cancel_token.raise_if_cancelled(job_id=self.job_id, key=aspect)

            logger.info(f"Processing aspect: {aspect}", extra={"job_id": self.job_id, "key": aspect})
            scored_chunks = self.retrieval_engine.retrieve(query, top_k=self.top_k)
            prompt = self.build_prompt(
                aspect, RetrievalEngine.format_context(scored_chunks), rfp_context
            )

            try:
                response = self.gateway.generate(
                    prompt,
                    ANALYZER_SYSTEM_PROMPT,
                    GenerationOptions(response_format=JSON_OBJECT),
                    job_id=self.job_id,
                    key=aspect,
                    cancel_token=self.cancel_token
                )
            except (TerminalProviderError, MalformedResponseError) as e:
                logger.warning(
                    f"Aspect '{aspect}' failed: {e.message}",
                    extra={"job_id": self.job_id, "key": aspect, "error_code": e.code}
                )
                report.failed_aspects.append(aspect)
                report.aspects[aspect] = AspectSuggestions(aspect=aspect)
                continue

            data = response.data or {}
            report.aspects[aspect] = AspectSuggestions(
                aspect=aspect,
                suggestions=as_string_list(data.get("suggestions")),
                is_complete=data.get("isComplete") is True
            )

        return report

    @staticmethod
    def build_prompt(aspect: str, context: str, rfp_context: RfpContext) -> str:
        """Build the analysis prompt for one aspect."""
        return f"""Analyze these sections of a bid proposal specifically focusing on {aspect} aspects:

RFP Details:
{rfp_context.describe()}

Relevant sections from the proposal:
{context or "No relevant sections were found in the proposal."}

Please analyze these sections and provide:
1. Specific suggestions for improvement related to {aspect}
2. Whether the {aspect} information appears complete

Format response as JSON:
{{
    "suggestions": string[],
    "isComplete": boolean
}}"""
