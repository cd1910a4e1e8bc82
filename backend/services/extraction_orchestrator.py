"""Retrieval-per-aspect extraction of structured RFP fields."""
import re
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence

from models.extraction import ExtractedFields
from config import GENERATION_CONCURRENCY, RETRIEVAL_TOP_K
from services.embedding_classifier import EmbeddingClassifier
from services.errors import MalformedResponseError, TerminalProviderError
from services.inference_gateway import GenerationOptions, GenerativeInferenceGateway, JSON_OBJECT
from services.retrieval_engine import RetrievalEngine
from services.retry import CancellationToken

logger = logging.getLogger(__name__)

EXTRACTOR_SYSTEM_PROMPT = (
    "You are an expert in government procurement documents. Extract only "
    "information that is explicitly stated in the provided sections and use "
    "null when it is missing. Respond only with JSON."
)

REQUIREMENT_CATEGORIES = ["technical", "management", "pricing", "legal and compliance"]
METRIC_CATEGORIES = ["cost", "technical approach", "experience", "timeline", "management"]


@dataclass
class ExtractionAspect:
    """One retrieval+generation round and the fields it fills."""
    name: str
    query: str
    instructions: str
    response_format: str
    default: Dict[str, Any]
    # response key -> ExtractedFields attribute
    fields: Dict[str, str]


ASPECTS = [
    ExtractionAspect(
        name="overview",
        query="Find sections describing the project title, purpose, scope and objectives",
        instructions="the project title and a short description (max 50 words) of the project",
        response_format='{"title": string | null, "shortDescription": string | null}',
        default={"title": None, "shortDescription": None},
        fields={"title": "title", "shortDescription": "short_description"}
    ),
    ExtractionAspect(
        name="timeline",
        query="Find sections discussing project timeline, start and end dates, schedule or milestones",
        instructions="the project start date and end date in YYYY-MM-DD format",
        response_format='{"startDate": string | null, "endDate": string | null}',
        default={"startDate": None, "endDate": None},
        fields={"startDate": "timeline_start", "endDate": "timeline_end"}
    ),
    ExtractionAspect(
        name="budget",
        query="Find sections discussing budget, costs, pricing, financial details, or monetary aspects",
        instructions="the total project budget as a plain number without currency symbols",
        response_format='{"budget": number | null}',
        default={"budget": None},
        fields={"budget": "budget"}
    ),
    ExtractionAspect(
        name="submission",
        query="Find sections discussing proposal submission deadlines and due dates",
        instructions="the proposal submission deadline in YYYY-MM-DD format",
        response_format='{"submissionDeadline": string | null}',
        default={"submissionDeadline": None},
        fields={"submissionDeadline": "submission_deadline"}
    ),
    ExtractionAspect(
        name="requirements",
        query="Find sections discussing technical specifications, management requirements, or mandatory deliverables",
        instructions="every distinct requirement the vendor must satisfy, one short sentence each",
        response_format='{"requirements": [string]}',
        default={"requirements": []},
        fields={"requirements": "requirements"}
    ),
    ExtractionAspect(
        name="evaluation_metrics",
        query="Find sections discussing evaluation criteria, scoring methodology, or criteria weights",
        instructions="each evaluation criterion with its weight as a percentage (null if not stated)",
        response_format='{"metrics": [{"name": string, "weight": number | null}]}',
        default={"metrics": []},
        fields={"metrics": "evaluation_metrics"}
    ),
    ExtractionAspect(
        name="special_instructions",
        query="Find sections with special instructions, formatting rules, or conditions for bidders",
        instructions="any special instructions for bidders, summarized in one paragraph",
        response_format='{"specialInstructions": string | null}',
        default={"specialInstructions": None},
        fields={"specialInstructions": "special_instructions"}
    ),
]


def parse_amount(value: Any) -> Optional[float]:
    """Coerce "$1,200,000" or 1200000 to a float; None if not a number."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    cleaned = re.sub(r"[^\d.\-]", "", str(value))
    try:
        return float(cleaned) if cleaned else None
    except ValueError:
        return None


def clean_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    if not text or text.lower() in ("null", "none", "n/a", "not specified"):
        return None
    return text


def parse_metric(item: Any) -> Optional[Dict[str, Any]]:
    if isinstance(item, str):
        return {"name": item.strip(), "weight": None} if item.strip() else None
    if isinstance(item, dict) and clean_text(item.get("name")):
        return {"name": clean_text(item.get("name")), "weight": parse_amount(item.get("weight"))}
    return None


class ExtractionOrchestrator:
    """
    Extracts RFP fields with one retrieval and generation round per aspect.

    Extraction is best-effort: an aspect whose generation fails terminally
    or returns unusable output leaves its fields empty and is reported in
    ``failed_aspects``; the other aspects are still returned.
    """

    def __init__(
        self,
        gateway: GenerativeInferenceGateway,
        retrieval_engine: RetrievalEngine,
        classifier: EmbeddingClassifier,
        job_id: Optional[str] = None,
        cancel_token: Optional[CancellationToken] = None,
        top_k: int = RETRIEVAL_TOP_K,
        concurrency: int = GENERATION_CONCURRENCY,
        aspects: Sequence[ExtractionAspect] = ASPECTS
    ):
        self.gateway = gateway
        self.retrieval_engine = retrieval_engine
        self.classifier = classifier
        self.job_id = job_id
        self.cancel_token = cancel_token
        self.top_k = top_k
        self.concurrency = max(1, concurrency)
        self.aspects = list(aspects)

    def extract(self) -> ExtractedFields:
        """
        Run every aspect against the indexed document.

        Returns:
            ExtractedFields with absent values as None and failed aspects listed

        Raises:
            JobCancelledError: If the job is cancelled
        """
        extracted = ExtractedFields(job_id=self.job_id)

        for aspect, data in zip(self.aspects, self._run_all()):
            if data is None:
                extracted.failed_aspects.append(aspect.name)
                continue
            for response_key, field_name in aspect.fields.items():
                extracted.set(field_name, self._convert(field_name, data.get(response_key)))

        present = sum(1 for f in extracted.fields() if f.present)
        logger.info(
            f"Extracted {present}/{len(extracted.fields())} fields "
            f"({len(extracted.failed_aspects)} aspects failed)",
            extra={"job_id": self.job_id}
        )
        return extracted

    def _run_all(self) -> List[Optional[Dict[str, Any]]]:
        if self.concurrency == 1:
            return [self.extract_aspect(aspect) for aspect in self.aspects]

        with ThreadPoolExecutor(max_workers=self.concurrency) as executor:
            futures = [executor.submit(self.extract_aspect, aspect) for aspect in self.aspects]
            return [future.result() for future in futures]

    def extract_aspect(self, aspect: ExtractionAspect) -> Optional[Dict[str, Any]]:
        """
        Run one aspect; returns None if it failed and should be defaulted.
        """
        if self.cancel_token is not None:
            self.cancel_token.raise_if_cancelled(job_id=self.job_id, key=aspect.name)

        scored_chunks = self.retrieval_engine.retrieve(aspect.query, top_k=self.top_k)
        prompt = self.build_prompt(aspect, RetrievalEngine.format_context(scored_chunks))

        try:
            response = self.gateway.generate(
                prompt,
                EXTRACTOR_SYSTEM_PROMPT,
                GenerationOptions(response_format=JSON_OBJECT, default=aspect.default),
                job_id=self.job_id,
                key=aspect.name,
                cancel_token=self.cancel_token
            )
        except (TerminalProviderError, MalformedResponseError) as e:
            logger.warning(
                f"Aspect '{aspect.name}' failed, defaulting its fields: {e.message}",
                extra={"job_id": self.job_id, "key": aspect.name, "error_code": e.code,
                       "error_details": e.details}
            )
            return None

        if response.used_default:
            return None
        return response.data or {}

    def _convert(self, field_name: str, value: Any) -> Any:
        if field_name == "budget":
            return parse_amount(value)
        if field_name == "requirements":
            items = [text for text in (clean_text(v) for v in self._as_list(value)) if text]
            return self.classifier.group_by_category(items, REQUIREMENT_CATEGORIES)
        if field_name == "evaluation_metrics":
            metrics = [m for m in (parse_metric(v) for v in self._as_list(value)) if m]
            return self.classifier.group_by_category(
                metrics, METRIC_CATEGORIES, text_of=lambda metric: metric["name"]
            )
        return clean_text(value)

    @staticmethod
    def _as_list(value: Any) -> List[Any]:
        if value is None:
            return []
        if isinstance(value, list):
            return value
        return [value]

    @staticmethod
    def build_prompt(aspect: ExtractionAspect, context: str) -> str:
        """Build the extraction prompt for one aspect."""
        return f"""Extract {aspect.instructions} from these sections of an RFP document.

Relevant sections from the document:
{context or "No relevant sections were found."}

If the information is not stated, use null (or an empty list).

Format response as JSON:
{aspect.response_format}"""
