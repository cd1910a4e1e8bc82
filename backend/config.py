"""Configuration management for the procurement analysis engine."""
import os
import logging
from dotenv import load_dotenv

# Load environment variables
load_dotenv()

# API Keys
HUGGINGFACE_API_KEY = os.getenv("HUGGINGFACE_API_KEY")
GROQ_API_KEY = os.getenv("GROQ_API_KEY")
HUGGINGFACE_API_BASE_URL = os.getenv(
    "HUGGINGFACE_API_BASE_URL",
    "https://api-inference.huggingface.co/models"
)

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# Provider selection
EMBEDDING_PROVIDER = os.getenv("EMBEDDING_PROVIDER", "huggingface")
GENERATION_PROVIDER = os.getenv("GENERATION_PROVIDER", "huggingface")  # huggingface | groq
TOKENIZER = os.getenv("TOKENIZER", "tiktoken")  # tiktoken | huggingface

# Embedding Configuration
EMBEDDING_MODEL = os.getenv("EMBEDDING_MODEL", "ibm-granite/granite-embedding-30m-english")
EMBEDDING_DIMENSIONS = int(os.getenv("EMBEDDING_DIMENSIONS", "384"))
EMBEDDING_MAX_INPUT_CHARS = 512
EMBEDDING_BATCH_SIZE = int(os.getenv("EMBEDDING_BATCH_SIZE", "32"))
EMBEDDING_TIMEOUT = 120.0  # seconds

# Generation Configuration
GENERATION_MODEL = os.getenv("GENERATION_MODEL", "ibm-granite/granite-3.1-2b-instruct")
GROQ_MODEL = os.getenv("GROQ_MODEL", "llama-3.1-8b-instant")
LLM_MAX_INPUT_TOKENS = int(os.getenv("LLM_MAX_INPUT_TOKENS", "2048"))
LLM_MAX_OUTPUT_TOKENS = int(os.getenv("LLM_MAX_OUTPUT_TOKENS", "512"))
LLM_TEMPERATURE = 0.3
LLM_TOP_P = 0.9
LLM_TIMEOUT = 120.0  # seconds
GENERATION_CONCURRENCY = int(os.getenv("GENERATION_CONCURRENCY", "1"))

# Tokenizer Configuration
TIKTOKEN_ENCODING = "o200k_base"
HF_TOKENIZER_MODEL = os.getenv("HF_TOKENIZER_MODEL", GENERATION_MODEL)

# Chunking Configuration
CHUNK_SIZE = 300  # tokens
CHUNK_OVERLAP = 50  # tokens

# Retrieval Configuration
RETRIEVAL_TOP_K = 3
CLASSIFICATION_THRESHOLD = 0.3

# Retry Configuration
MAX_RETRIES = 3
INITIAL_RETRY_DELAY = 1.0  # seconds
MAX_RETRY_DELAY = 60.0  # seconds

# Scoring Configuration
WEIGHT_EPSILON = 1e-3
COMPLIANCE_GAP_DEDUCTION = 5
MAX_COMPLIANCE_DEDUCTION = 20
RISK_DEDUCTIONS = {
    "none": 0,
    "low": 2,
    "medium": 5,
    "high": 10,
}

# Logging Configuration
logging.basicConfig(
    level=getattr(logging, LOG_LEVEL),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
