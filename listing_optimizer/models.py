"""
Pydantic models for structured listing generation input/output.
"""
from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import Optional
from enum import Enum
from datetime import datetime, timezone


class GenerationMode(str, Enum):
    """What the caller wants done with the product data."""
    OPTIMIZE = "optimize"
    CREATE = "create"
    ANALYZE = "analyze"


class Grade(str, Enum):
    """Letter grade bands for a quality score."""
    EXCELLENT = "Excellent"
    GOOD = "Good"
    FAIR = "Fair"
    POOR = "Poor"


class ProductSpec(BaseModel):
    """A single product specification line."""
    model_config = ConfigDict(frozen=True)

    name: str
    value: str
    unit: Optional[str] = None

    def __str__(self) -> str:
        unit = f" {self.unit}" if self.unit else ""
        return f"{self.name}: {self.value}{unit}"


class ProductData(BaseModel):
    """Structured product attributes supplied by the caller."""
    model_config = ConfigDict(frozen=True)

    title: Optional[str] = None
    description: Optional[str] = None
    category: Optional[str] = None
    price: Optional[float] = Field(None, ge=0)
    specifications: tuple[ProductSpec, ...] = ()
    keywords: tuple[str, ...] = ()

    @field_validator("keywords")
    @classmethod
    def keywords_stripped(cls, v: tuple[str, ...]) -> tuple[str, ...]:
        return tuple(k.strip() for k in v if k and k.strip())


class ImageAnalysis(BaseModel):
    """Attributes derived from product imagery."""
    model_config = ConfigDict(frozen=True)

    main_features: tuple[str, ...] = ()
    colors: tuple[str, ...] = ()
    style: str = ""
    quality: str = ""


class GenerationRequest(BaseModel):
    """Input schema for one listing generation. Immutable once built."""
    model_config = ConfigDict(frozen=True)

    platform: str = Field(..., min_length=1, description="Target marketplace, e.g. amazon")
    product: ProductData = Field(default_factory=ProductData)
    image_analysis: Optional[ImageAnalysis] = None
    mode: GenerationMode = GenerationMode.OPTIMIZE

    @field_validator("platform")
    @classmethod
    def platform_lower(cls, v: str) -> str:
        return v.strip().lower()


class GenerationResponse(BaseModel):
    """
    Raw listing produced by a provider.

    Deliberately lenient: emptiness and length rules belong to the
    ResponseValidator, not to the schema.
    """
    title: str = ""
    bullets: list[str] = Field(default_factory=list)
    description: str = ""
    keywords: list[str] = Field(default_factory=list)
    platform_notes: str = ""


class TitleRange(BaseModel):
    """Allowed title length in characters."""
    model_config = ConfigDict(frozen=True)

    min: int = Field(..., ge=0)
    max: int = Field(..., gt=0)


class RuleSet(BaseModel):
    """Platform copywriting rules consumed as opaque data."""
    model_config = ConfigDict(frozen=True)

    name: str = ""
    title_range: TitleRange
    min_description: int = Field(..., ge=0)
    max_tags: int = Field(..., gt=0)
    banned_words: tuple[str, ...] = ()
    guidelines: tuple[str, ...] = ()


class ProviderDescriptor(BaseModel):
    """Identity, priority and connection settings of one backend."""
    model_config = ConfigDict(frozen=True)

    backend_id: str = Field(..., min_length=1)
    provider_type: str = Field(..., min_length=1)
    priority: int = 0
    api_key: str = ""
    model: str = ""
    base_url: Optional[str] = None
    max_tokens: int = Field(4096, gt=0)
    temperature: float = Field(0.3, ge=0, le=2)
    timeout: float = Field(60.0, gt=0, description="Per-call timeout in seconds")

    @property
    def has_credentials(self) -> bool:
        """True if an API key is configured."""
        return bool(self.api_key.strip())


class GenerationOptions(BaseModel):
    """Per-call retry/fallback policy."""
    max_retries: int = Field(2, ge=0, description="Retries against the same backend")
    max_provider_switches: int = Field(
        3, ge=1, description="Different backends that may be tried in total"
    )
    cooldown_seconds: float = Field(60.0, ge=0)
    auto_training_threshold: int = Field(90, ge=0, le=100)
    sanitize_input: bool = True
    timeout: Optional[float] = Field(None, gt=0, description="Overrides the backend timeout")


class TitleScore(BaseModel):
    score: int
    max_score: int = 30
    character_utilization: float
    keyword_placement: bool
    readability: bool


class BulletsScore(BaseModel):
    score: int
    max_score: int = 30
    benefit_first: float
    specificity: float
    optimal_length: float


class DescriptionScore(BaseModel):
    score: int
    max_score: int = 30
    meets_min_length: bool
    has_structure: bool
    seo_optimized: bool


class ComplianceScore(BaseModel):
    score: int
    max_score: int = 10
    no_prohibited_words: bool
    follows_platform_rules: bool
    violations: list[str] = Field(default_factory=list)


class ScoreBreakdown(BaseModel):
    model_config = ConfigDict(frozen=True)

    title: TitleScore
    bullets: BulletsScore
    description: DescriptionScore
    compliance: ComplianceScore


class QualityScore(BaseModel):
    """Deterministic rubric score of a validated listing."""
    model_config = ConfigDict(frozen=True)

    total: int = Field(..., ge=0)
    max_score: int = Field(..., gt=0)
    percentage: int = Field(..., ge=0, le=100)
    grade: Grade
    breakdown: ScoreBreakdown
    recommendations: tuple[str, ...] = ()


class GenerationResult(BaseModel):
    """What a successful orchestration returns to the caller."""
    listing: GenerationResponse
    quality_score: Optional[QualityScore] = None
    warnings: list[str] = Field(default_factory=list)
    provider: str = ""
    attempts: int = 1
    switches: int = 0
    timestamp: str = Field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")
    )


class BatchInput(BaseModel):
    """Input schema for batch processing."""
    requests: list[GenerationRequest] = Field(..., min_length=1)
    options: Optional[GenerationOptions] = None
