"""Research phase entities: input classification, gathered evidence, synthesized plan."""

from enum import Enum

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator


class InputKind(str, Enum):
    """What the raw user input refers to."""

    SOURCE_REFERENCE = "source_reference"  # github.com/owner/repo
    WEBSITE_URL = "website_url"
    DOCUMENTATION_URL = "documentation_url"
    SERVICE_NAME = "service_name"
    NATURAL_LANGUAGE = "natural_language"


class InputClassification(BaseModel):
    """Classified input with confidence and the parts extracted from it."""

    kind: InputKind
    confidence: float = Field(ge=0.0, le=1.0)
    url: str | None = None
    owner: str | None = None
    repository: str | None = None
    service_name: str | None = None
    keywords: list[str] = []

    @property
    def cache_key(self) -> str:
        """Stable key for the research cache."""
        subject = self.url or self.service_name or " ".join(sorted(self.keywords))
        return f"{self.kind.value}:{subject.lower()}"


class SearchHit(BaseModel):
    """Single web search hit."""

    title: str
    url: str
    snippet: str = ""
    source: str = ""


class WebFindings(BaseModel):
    """Aggregated general web evidence."""

    queries: list[str] = []
    hits: list[SearchHit] = []
    patterns: list[str] = []
    best_practices: list[str] = []


class RepositoryInfo(BaseModel):
    """Basic repository metadata."""

    name: str
    full_name: str = ""
    description: str = ""
    language: str | None = None
    stars: int = 0
    url: str = ""
    default_branch: str = "main"


class SourceAnalysis(BaseModel):
    """Structural analysis of a discovered source repository."""

    repository: RepositoryInfo
    files: list[str] = []
    code_examples: list[str] = []
    test_frameworks: list[str] = []
    api_endpoints: list[str] = []  # "GET /users/{id}"
    dependencies: list[str] = []


class AuthenticationInfo(BaseModel):
    """Authentication scheme found in documentation."""

    type: str = "unknown"  # "bearer" | "api_key" | "oauth2" | "basic" | "none" | "unknown"
    details: str = ""


class DocumentationAnalysis(BaseModel):
    """Result of scraping an API documentation page."""

    url: str
    title: str = ""
    base_url: str | None = None
    endpoints: list[str] = []
    authentication: AuthenticationInfo = AuthenticationInfo()
    rate_limit: str | None = None
    code_examples: list[str] = []


class SynthesizedPlan(BaseModel):
    """Single plan synthesized from every gathered piece of evidence."""

    model_config = ConfigDict(populate_by_name=True)

    summary: str
    key_insights: list[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("key_insights", "keyInsights", "insights"),
    )
    recommended_approach: str = Field(
        "",
        validation_alias=AliasChoices("recommended_approach", "recommendedApproach", "approach"),
    )
    potential_challenges: list[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("potential_challenges", "potentialChallenges", "challenges"),
    )
    confidence: float = 0.5
    reasoning: str = ""

    @field_validator("key_insights")
    @classmethod
    def _clip_insights(cls, value: list[str]) -> list[str]:
        return [v for v in value if v][:5]

    @field_validator("confidence")
    @classmethod
    def _clamp_confidence(cls, value: float) -> float:
        return max(0.0, min(1.0, value))


class ResearchResult(BaseModel):
    """Output of one research pass.

    Absent evidence fields mean the sub-search was not attempted or failed.
    """

    classification: InputClassification
    web_findings: WebFindings | None = None
    source_analysis: SourceAnalysis | None = None
    documentation: DocumentationAnalysis | None = None
    synthesized_plan: SynthesizedPlan
    confidence: float = Field(ge=0.0, le=1.0)
    iterations: int = 1
    from_cache: bool = False
