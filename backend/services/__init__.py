"""Services for the procurement analysis engine."""
from .errors import (
    EngineError,
    ConfigurationError,
    EmptyInputError,
    ProviderError,
    TransientProviderError,
    TerminalProviderError,
    MalformedResponseError,
    DimensionMismatchError,
    JobCancelledError,
)
from .retry import RetryPolicy, CancellationToken
from .tokenizers import Tokenizer, TiktokenTokenizer, HuggingFaceTokenizer, create_tokenizer
from .chunking_engine import TextSegmenter
from .embedding_model import EmbeddingProvider, HuggingFaceEmbeddingModel
from .embedding_classifier import EmbeddingClassifier
from .vector_store import VectorIndex
from .retrieval_engine import RetrievalEngine
from .llm_client import TextGenerator, GroqTextGenerator, HuggingFaceTextGenerator
from .inference_gateway import GenerativeInferenceGateway, GenerationOptions, GatewayResponse
from .criteria_evaluator import CriteriaEvaluator
from .extraction_orchestrator import ExtractionOrchestrator
from .proposal_analyzer import ProposalAnalyzer
from .analysis_engine import AnalysisEngine, AnalysisJob

__all__ = [
    'EngineError', 'ConfigurationError', 'EmptyInputError', 'ProviderError',
    'TransientProviderError', 'TerminalProviderError', 'MalformedResponseError',
    'DimensionMismatchError', 'JobCancelledError', 'RetryPolicy', 'CancellationToken',
    'Tokenizer', 'TiktokenTokenizer', 'HuggingFaceTokenizer', 'create_tokenizer',
    'TextSegmenter', 'EmbeddingProvider', 'HuggingFaceEmbeddingModel', 'EmbeddingClassifier',
    'VectorIndex', 'RetrievalEngine', 'TextGenerator', 'GroqTextGenerator',
    'HuggingFaceTextGenerator', 'GenerativeInferenceGateway', 'GenerationOptions',
    'GatewayResponse', 'CriteriaEvaluator', 'ExtractionOrchestrator', 'ProposalAnalyzer',
    'AnalysisEngine', 'AnalysisJob',
]
