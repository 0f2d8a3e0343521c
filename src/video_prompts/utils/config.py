from pydantic import BaseModel, Field

from video_prompts.utils.retry import RetryPolicy

DEFAULT_ENDPOINT = "http://localhost:1234/v1/chat/completions"  # LM Studio


class EndpointSettings(BaseModel):
    """Connection settings for the OpenAI-compatible vision endpoint."""

    url: str = Field(DEFAULT_ENDPOINT, description="Chat completions URL")
    model: str = Field("local-model", description="Model name sent with every request")
    timeout: float = Field(120.0, gt=0, description="Per-request timeout in seconds")
    max_attempts: int = Field(1, ge=1, description="Attempts per request (1 disables retry)")
    backoff_factor: float = Field(2.0, ge=1, description="Exponential backoff base in seconds")
    strict: bool = Field(False, description="Range-check importance and confidence in responses")

    @property
    def models_url(self) -> str:
        return self.url.replace("/chat/completions", "/models")

    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(max_attempts=self.max_attempts, backoff_factor=self.backoff_factor)
