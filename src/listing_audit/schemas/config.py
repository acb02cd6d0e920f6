"""Configuration schema for listing-audit.yml."""

from pydantic import BaseModel, Field, model_validator

from listing_audit.schemas.usage import EntitlementLimits, PlanTier


class ModelSettings(BaseModel):
    """Which models to call and how."""

    text_model: str = "gpt-4o"
    vision_model: str = "gpt-4o"
    max_tokens: int = Field(default=2000, gt=0)
    plan_max_tokens: int = Field(default=3000, gt=0)
    temperature: float = Field(default=0.7, ge=0, le=2)


class TimeoutSettings(BaseModel):
    """Per-call timeouts in seconds.  Vision must be the shortest."""

    vision: float = Field(default=20, gt=0)
    reasoning: float = Field(default=45, gt=0)
    summary: float = Field(default=30, gt=0)
    plan: float = Field(default=90, gt=0)

    @model_validator(mode="after")
    def check_vision_is_shortest(self) -> "TimeoutSettings":
        others = (self.reasoning, self.summary, self.plan)
        if self.vision >= min(others):
            raise ValueError(
                f"vision timeout ({self.vision}s) must be shorter than every other timeout"
            )
        return self


class ReasoningSettings(BaseModel):
    """Tuning for the reasoning score engine."""

    max_sub_images: int = Field(default=6, ge=1)
    max_rich_content_images: int = Field(default=6, ge=1)
    inline_images: bool = False  # fetch and send base64 instead of URLs
    summarize: bool = True


class UsageSettings(BaseModel):
    """Where usage events live and who is on which plan."""

    store_path: str = ""  # empty = in-process memory
    default_tier: PlanTier = PlanTier.FREE
    accounts: dict[str, PlanTier] = {}
    entitlements: dict[PlanTier, EntitlementLimits] = {}


class ServiceConfig(BaseModel):
    """Top-level configuration loaded from listing-audit.yml.

    Every section is optional; an empty file yields the defaults.
    """

    models: ModelSettings = ModelSettings()
    timeouts: TimeoutSettings = TimeoutSettings()
    reasoning: ReasoningSettings = ReasoningSettings()
    usage: UsageSettings = UsageSettings()

    # Output
    output_directory: str = "./output"
