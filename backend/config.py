"""Configuration management for RefDesk RAG service."""
import os
import logging
from dotenv import load_dotenv

# Load environment variables
load_dotenv()

# API Keys
GROQ_API_KEY = os.getenv("GROQ_API_KEY")
HUGGINGFACE_API_KEY = os.getenv("HUGGINGFACE_API_KEY")
SUPABASE_URL = os.getenv("SUPABASE_URL")
SUPABASE_KEY = os.getenv("SUPABASE_KEY")

# Server Configuration
PORT = int(os.getenv("PORT", "8000"))
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# CORS Configuration
CORS_ORIGINS = os.getenv(
    "CORS_ORIGINS",
    "http://localhost:3000,http://localhost:4200"
).split(",")

# Model Configuration
EMBEDDING_MODEL = os.getenv("EMBEDDING_MODEL", "BAAI/bge-m3")
GENERATION_MODEL = os.getenv("GENERATION_MODEL", "llama-3.3-70b-versatile")
AVAILABLE_MODELS = {
    "llama": "llama-3.3-70b-versatile",
    "llama-instant": "llama-3.1-8b-instant",
    "gemma": "gemma2-9b-it",
    "qwen": "qwen/qwen3-32b",
    "openai": "openai/gpt-oss-120b",
}

# Generation Configuration
GENERATION_MAX_TOKENS = int(os.getenv("GENERATION_MAX_TOKENS", "250"))
GENERATION_TEMPERATURE = float(os.getenv("GENERATION_TEMPERATURE", "0.65"))
GENERATION_TIMEOUT_SECONDS = float(os.getenv("GENERATION_TIMEOUT_SECONDS", "30"))

# Retrieval Configuration
RETRIEVAL_TOP_K = int(os.getenv("RETRIEVAL_TOP_K", "3"))
HIGH_THRESHOLD = float(os.getenv("HIGH_THRESHOLD", "0.90"))
LOW_THRESHOLD = float(os.getenv("LOW_THRESHOLD", "0.85"))
MIN_GAP_FOR_STRICT = float(os.getenv("MIN_GAP_FOR_STRICT", "0.05"))
FALLBACK_CONFIDENCE = float(os.getenv("FALLBACK_CONFIDENCE", "0.3"))

# Conversation Configuration
CONVERSATION_BACKEND = os.getenv("CONVERSATION_BACKEND", "supabase")  # "supabase" or "memory"
SESSION_TIMEOUT_SECONDS = int(os.getenv("SESSION_TIMEOUT_SECONDS", str(24 * 60 * 60)))
MAX_MESSAGES_PER_SESSION = int(os.getenv("MAX_MESSAGES_PER_SESSION", "50"))

# Audit Configuration
DECISION_LOG_PATH = os.getenv("DECISION_LOG_PATH", "logs/decisions.jsonl")

# Logging Configuration
logging.basicConfig(
    level=getattr(logging, LOG_LEVEL),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
