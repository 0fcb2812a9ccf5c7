"""Request/Response schemas"""
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from typing import Any, Dict, Optional


def clamp_score(value: Any) -> int:
    """Coerce a model-asserted score to an int in 0..100."""
    if value is None or isinstance(value, bool):
        raise ValueError("score must be a number")
    try:
        if isinstance(value, str):
            value = float(value.strip().rstrip("%"))
        score = int(round(float(value)))
    except (TypeError, ValueError, OverflowError) as exc:
        raise ValueError(f"invalid score: {value!r}") from exc
    return max(0, min(100, score))


class ClarityResult(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    is_blurry: bool = Field(..., alias="isBlurry")
    clarity_score: int = Field(..., alias="clarityScore", description="0-100, model-asserted")
    recommendation: str = Field(..., description="Free-text advice from the model")

    @field_validator("clarity_score", mode="before")
    @classmethod
    def _clamp(cls, v):
        return clamp_score(v)


class EnhancementJudgment(BaseModel):
    """Parsed reply of the second enhancement call."""
    model_config = ConfigDict(populate_by_name=True)

    can_enhance: bool = Field(False, alias="canEnhance")
    suggested_text: str = Field("", alias="suggestedText")
    needs_retake: bool = Field(False, alias="needsRetake")
    confidence: int = Field(0, description="0-100, model-asserted")

    @field_validator("confidence", mode="before")
    @classmethod
    def _clamp(cls, v):
        return clamp_score(v)


class ClarityRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    image_data: Optional[str] = Field(
        None,
        validation_alias=AliasChoices("imageData", "imageBase64", "image_data", "image_bytes"),
        description="Bare base64 or a data: URL",
    )
    media_type: Optional[str] = Field(
        None,
        validation_alias=AliasChoices("mediaType", "mimeType", "media_type"),
    )
    check_only: bool = Field(False, validation_alias=AliasChoices("checkOnly", "check_only"))
    auto_enhance: bool = Field(False, validation_alias=AliasChoices("autoEnhance", "auto_enhance"))


class RunRequest(BaseModel):
    """Input schema matching Temporal workflow format."""
    data: Dict[str, Any] = Field(
        ...,
        description="Contains image as 'image_bytes' or 'image_data' (base64 or data URL)"
    )
    meta: Dict[str, Any] = Field(
        default_factory=dict,
        description="Metadata like trace_id, request_id, etc."
    )


class ImagePair(BaseModel):
    original: str = Field(..., description="Original image as a data URL")
    final: str = Field(..., description="Best available image as a data URL")


class EnhancementSummary(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool
    improvement_score: int = Field(..., alias="improvementScore")
    can_enhance: bool = Field(False, alias="canEnhance")
    needs_retake: bool = Field(False, alias="needsRetake")


class ProcessResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    clarity: ClarityResult
    clarity_label: str = Field(..., alias="clarityLabel", pattern="^(clear|fair|blurry)$")
    image: ImagePair
    enhancement: Optional[EnhancementSummary] = None
    suggested_text: Optional[str] = Field(None, alias="suggestedText")


class HealthResponse(BaseModel):
    status: str
    model: str
    assistant_ready: bool
