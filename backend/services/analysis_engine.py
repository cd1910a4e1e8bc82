"""Entry points for document extraction, proposal analysis and proposal evaluation."""
import uuid
import logging
from typing import List, Optional, Sequence

from models.chunk import Chunk
from models.evaluation import EvaluationCriterion, EvaluationResult
from models.extraction import ExtractedFields, RfpContext, SuggestionReport
from config import (
    CHUNK_OVERLAP,
    CHUNK_SIZE,
    CLASSIFICATION_THRESHOLD,
    EMBEDDING_BATCH_SIZE,
    EMBEDDING_PROVIDER,
    GENERATION_CONCURRENCY,
    GENERATION_PROVIDER,
    RETRIEVAL_TOP_K,
    TOKENIZER,
)
from services.chunking_engine import TextSegmenter
from services.criteria_evaluator import CriteriaEvaluator, validate_criteria
from services.embedding_classifier import EmbeddingClassifier
from services.embedding_model import EmbeddingProvider, HuggingFaceEmbeddingModel
from services.errors import EmptyInputError, JobCancelledError
from services.extraction_orchestrator import ExtractionOrchestrator
from services.inference_gateway import GenerativeInferenceGateway
from services.llm_client import GroqTextGenerator, HuggingFaceTextGenerator, TextGenerator
from services.proposal_analyzer import ASPECT_QUERIES, ProposalAnalyzer
from services.retrieval_engine import RetrievalEngine
from services.retry import CancellationToken, RetryPolicy
from services.tokenizers import Tokenizer, create_tokenizer
from services.vector_store import VectorIndex

logger = logging.getLogger(__name__)

RFP_SECTION_CATEGORIES = [
    "project overview",
    "timeline and schedule",
    "budget and pricing",
    "requirements",
    "evaluation criteria",
    "submission instructions",
]


class AnalysisJob:
    """
    State owned by one extraction, analysis or evaluation request.

    Holds its own VectorIndex and EmbeddingClassifier (with its category
    embedding cache) so concurrent jobs never share retrieval state. Use as
    a context manager; the index is cleared on exit, including on errors
    and cancellation.
    """

    def __init__(
        self,
        embedding_provider: EmbeddingProvider,
        retry_policy: RetryPolicy,
        threshold: float = CLASSIFICATION_THRESHOLD,
        batch_size: int = EMBEDDING_BATCH_SIZE,
        cancel_token: Optional[CancellationToken] = None,
        job_id: Optional[str] = None
    ):
        self.job_id = job_id or uuid.uuid4().hex
        self.cancel_token = cancel_token or CancellationToken()
        self.vector_index = VectorIndex(embedding_provider.dimensions)
        self.classifier = EmbeddingClassifier(
            embedding_provider,
            threshold=threshold,
            batch_size=batch_size,
            retry_policy=retry_policy,
            cancel_token=self.cancel_token,
            job_id=self.job_id
        )
        self.retrieval_engine = RetrievalEngine(self.vector_index, self.classifier)

    def index(self, chunks: List[Chunk], categories: Sequence[str]) -> None:
        """Classify chunks and add them to the job's index."""
        self.classifier.classify_chunks(chunks, categories)
        self.vector_index.add_chunks(chunks)

    def cancel(self) -> None:
        self.cancel_token.cancel()

    def close(self) -> None:
        self.vector_index.clear()

    def __enter__(self) -> "AnalysisJob":
        logger.info("Job started", extra={"job_id": self.job_id})
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
        if exc_type is JobCancelledError:
            logger.warning("Job cancelled, resources released", extra={"job_id": self.job_id})
        elif exc_type is not None:
            logger.error(f"Job failed: {exc}", extra={"job_id": self.job_id})
        else:
            logger.info("Job finished", extra={"job_id": self.job_id})


class AnalysisEngine:
    """
    Exposes extract_fields, analyze_proposal and evaluate_proposal.

    The engine only holds stateless collaborators; every call runs in a
    fresh AnalysisJob.
    """

    def __init__(
        self,
        embedding_provider: EmbeddingProvider,
        generator: TextGenerator,
        tokenizer: Tokenizer,
        retry_policy: Optional[RetryPolicy] = None,
        chunk_size: int = CHUNK_SIZE,
        chunk_overlap: int = CHUNK_OVERLAP,
        top_k: int = RETRIEVAL_TOP_K,
        threshold: float = CLASSIFICATION_THRESHOLD,
        batch_size: int = EMBEDDING_BATCH_SIZE,
        concurrency: int = GENERATION_CONCURRENCY
    ):
        self.embedding_provider = embedding_provider
        self.retry_policy = retry_policy or RetryPolicy()
        self.segmenter = TextSegmenter(tokenizer, chunk_size, chunk_overlap)
        self.gateway = GenerativeInferenceGateway(generator, tokenizer, self.retry_policy)
        self.top_k = top_k
        self.threshold = threshold
        self.batch_size = batch_size
        self.concurrency = concurrency

    @classmethod
    def from_config(cls) -> "AnalysisEngine":
        """
        Build an engine with the providers selected in configuration.

        Raises:
            ConfigurationError: If credentials for the selected providers are missing
            ValueError: If a provider name is unknown
        """
        if EMBEDDING_PROVIDER != "huggingface":
            raise ValueError(f"Unknown embedding provider: {EMBEDDING_PROVIDER}")
        embedding_provider = HuggingFaceEmbeddingModel()

        if GENERATION_PROVIDER == "huggingface":
            generator = HuggingFaceTextGenerator()
        elif GENERATION_PROVIDER == "groq":
            generator = GroqTextGenerator()
        else:
            raise ValueError(f"Unknown generation provider: {GENERATION_PROVIDER}")

        return cls(embedding_provider, generator, create_tokenizer(TOKENIZER))

    def new_job(self, cancel_token: Optional[CancellationToken] = None) -> AnalysisJob:
        return AnalysisJob(
            self.embedding_provider,
            self.retry_policy,
            threshold=self.threshold,
            batch_size=self.batch_size,
            cancel_token=cancel_token
        )

    def extract_fields(
        self,
        raw_text: str,
        cancel_token: Optional[CancellationToken] = None
    ) -> ExtractedFields:
        """
        Extract structured RFP fields from document text (partial-tolerant).

        Raises:
            EmptyInputError: If the text is blank
            JobCancelledError: If cancelled
        """
        chunks = self._segment(raw_text)

        with self.new_job(cancel_token) as job:
            job.index(chunks, RFP_SECTION_CATEGORIES)
            orchestrator = ExtractionOrchestrator(
                self.gateway,
                job.retrieval_engine,
                job.classifier,
                job_id=job.job_id,
                cancel_token=job.cancel_token,
                top_k=self.top_k,
                concurrency=self.concurrency
            )
            return orchestrator.extract()

    def analyze_proposal(
        self,
        raw_text: str,
        rfp_context: RfpContext,
        cancel_token: Optional[CancellationToken] = None
    ) -> SuggestionReport:
        """
        Produce advisory suggestions per proposal aspect (partial-tolerant).

        Raises:
            EmptyInputError: If the text is blank
            JobCancelledError: If cancelled
        """
        chunks = self._segment(raw_text)

        with self.new_job(cancel_token) as job:
            job.index(chunks, list(ASPECT_QUERIES))
            analyzer = ProposalAnalyzer(
                self.gateway,
                job.retrieval_engine,
                job_id=job.job_id,
                cancel_token=job.cancel_token,
                top_k=self.top_k
            )
            return analyzer.analyze(rfp_context)

    def evaluate_proposal(
        self,
        raw_text: str,
        criteria: Sequence[EvaluationCriterion],
        rfp_context: Optional[RfpContext] = None,
        compliance_gaps: Optional[Sequence[str]] = None,
        cancel_token: Optional[CancellationToken] = None
    ) -> EvaluationResult:
        """
        Score a proposal against weighted criteria (all-or-nothing).

        Raises:
            EmptyInputError: If the text is blank
            ValueError: If the criteria are invalid
            TerminalProviderError, MalformedResponseError: If any criterion fails
            JobCancelledError: If cancelled
        """
        validate_criteria(criteria)
        chunks = self._segment(raw_text)

        with self.new_job(cancel_token) as job:
            job.index(chunks, [c.display_name for c in criteria])
            evaluator = CriteriaEvaluator(
                self.gateway,
                job.retrieval_engine,
                job_id=job.job_id,
                cancel_token=job.cancel_token,
                top_k=self.top_k,
                concurrency=self.concurrency
            )
            return evaluator.evaluate(criteria, rfp_context, compliance_gaps)

    def _segment(self, raw_text: str) -> List[Chunk]:
        if raw_text is None or not raw_text.strip():
            raise EmptyInputError("Document text is empty")

        chunks = self.segmenter.segment(raw_text)
        if not chunks:
            raise EmptyInputError("Document produced no chunks")
        return chunks
