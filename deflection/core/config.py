from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import AliasChoices, Field
from typing import List, Optional


class Settings(BaseSettings):
    # ----------------------------------
    # App General Info
    # ----------------------------------
    PROJECT_NAME: str = "Ticket Deflection Engine"
    VERSION: str = "1.0.0"
    API_V1_STR: str = "/api/v1"
    ENVIRONMENT: str = Field(
        default="development",
        description="Current environment: development, testing, staging, or production"
    )
    LOG_LEVEL: str = Field(default="INFO")

    # ----------------------------------
    # Relational Database (tickets, knowledge base, responses, metrics)
    # ----------------------------------
    DATABASE_URL: str = Field(default="sqlite+aiosqlite:///./deflection.db")
    STORE_TIMEOUT_SECONDS: float = Field(
        default=10.0,
        description="Timeout (seconds) applied to each data-store stage of a deflection pass.",
    )

    # ----------------------------------
    # Text generation (Vertex primary, Groq fallback)
    # ----------------------------------
    GCP_PROJECT_ID: str = Field(default="your-project-id", description="Google Cloud Project ID")
    GCP_LOCATION: str = Field(default="us-central1", description="GCP region for Vertex AI")
    VERTEX_LLM_MODEL: str = Field(
        default="gemini-2.5-flash",
        description="Vertex AI chat model name (primary).",
    )
    GROQ_API_KEY: Optional[str] = Field(default=None, description="API Key for Groq Cloud (fallback)")
    GROQ_FALLBACK_MODEL: str = Field(
        default="llama-3.3-70b-versatile",
        validation_alias=AliasChoices("GROQ_FALLBACK_MODEL", "MAIN_LLM_MODEL"),
        description="Groq chat model name (fallback).",
    )
    LLM_REQUEST_TIMEOUT_SECONDS: float = Field(
        default=30.0,
        description="Timeout (seconds) for LLM requests (Vertex/Groq).",
    )
    LLM_MAX_OUTPUT_TOKENS: int = 1000
    LLM_TEMPERATURE: float = 0.3

    # ----------------------------------
    # Embeddings
    # ----------------------------------
    OPENAI_API_KEY: Optional[str] = Field(
        default=None,
        description="API Key for OpenAI embeddings. Without it a simulated provider is used.",
    )
    EMBEDDING_MODEL: str = "text-embedding-3-small"
    EMBEDDING_DIMENSIONS: int = 1536
    EMBEDDING_MAX_CHARS: int = 8000
    EMBEDDING_BATCH_SIZE: int = Field(default=100, le=100)
    EMBEDDING_BATCH_DELAY_SECONDS: float = 0.1
    EMBEDDING_TIMEOUT_SECONDS: float = 20.0

    # ----------------------------------
    # Retrieval
    # ----------------------------------
    SIMILARITY_THRESHOLD: float = Field(
        default=0.8,
        description="Minimum cosine similarity for a resolved ticket or entry to count as similar.",
    )
    MAX_SIMILAR_RESULTS: int = 5
    MAX_KNOWLEDGE_RESULTS: int = 5
    MAX_TEMPLATE_RESULTS: int = 3
    MAX_SIMILAR_TICKETS: int = 3
    MAX_CUSTOMER_HISTORY: int = 5
    MAX_KEYWORDS: int = 15

    # ----------------------------------
    # Delivery (helpdesk / messaging platform)
    # ----------------------------------
    DELIVERY_WEBHOOK_URL: Optional[str] = Field(
        default=None,
        description="If set, auto-resolved responses are POSTed here. Otherwise delivery is only logged.",
    )
    DELIVERY_TIMEOUT_SECONDS: float = 10.0

    # ----------------------------------
    # Economics & feedback
    # ----------------------------------
    FLAT_RATE_PER_TICKET: float = Field(default=25.0, description="Human handling cost saved per deflected ticket (USD)")
    MONTHLY_COST: float = Field(default=99.0, description="Monthly subscription cost used for ROI (USD)")
    AB_SIGNIFICANCE_POINTS: float = Field(
        default=5.0,
        description="Minimum gap (percentage points) between best and worst variant to declare a winner.",
    )
    SUCCESS_RATE_ALPHA: float = Field(
        default=0.2,
        description="EWMA weight given to the newest feedback outcome when updating success rates.",
    )

    # ----------------------------------
    # Default per-user deflection settings
    # ----------------------------------
    DEFAULT_CONFIDENCE_THRESHOLD: float = 0.75
    DEFAULT_ESCALATION_THRESHOLD: float = 0.50
    DEFAULT_RESPONSE_LANGUAGE: str = "en"
    DEFAULT_ESCALATION_KEYWORDS: List[str] = [
        "urgent", "emergency", "asap", "immediately",
        "critical", "escalate", "manager", "supervisor",
    ]

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore"
    )

settings = Settings()
