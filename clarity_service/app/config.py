from pydantic_settings import BaseSettings
from pydantic import Field


class Settings(BaseSettings):

    gemini_api_key: str = Field(
        default="",
        description="API key for the Gemini multimodal model"
    )
    gemini_model: str = Field(
        default="gemini-2.5-flash",
        description="Gemini model used for every clarity call"
    )
    response_language: str = Field(
        default="zh",
        description="Language the model is asked to answer in"
    )
    clarity_threshold: int = Field(
        default=70,
        ge=0,
        le=100,
        description="Scores below this trigger enhancement"
    )
    enhancement_success_threshold: int = Field(
        default=50,
        ge=0,
        le=100,
        description="Enhancement succeeds when confidence is above this"
    )
    default_clarity_score: int = Field(
        default=80,
        ge=0,
        le=100,
        description="Score assumed when detection cannot be parsed"
    )
    max_image_mb: int = Field(
        default=20,
        ge=1,
        description="Largest decoded image accepted, in megabytes"
    )
    service_port: int = Field(
        default=18020,
        description="Port used when running the module directly"
    )
    max_workers: int = Field(
        default=1,
        ge=1,
        le=16,
        description="Number of uvicorn workers"
    )
    log_level: str = Field(
        default="INFO",
        description="Log level for stdlib logging and structlog"
    )

    class Config:
        env_file = ".env"
        case_sensitive = False


settings = Settings()
