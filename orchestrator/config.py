"""Orchestrator configuration."""
from pydantic_settings import BaseSettings

class OrchestratorConfig(BaseSettings):
    """Reasoning loop configuration."""
    llm_model: str = "claude-sonnet-4"
    llm_temperature: float = 0.2
    # AWS Bedrock configuration (uses shared AWS credentials from AWS_REGION, AWS_ACCESS_KEY_ID, AWS_SECRET_ACCESS_KEY)
    aws_region: str = "us-east-1"

    quick_max_turns: int = 3
    visual_max_turns: int = 5
    deep_max_turns: int = 8
    quick_max_tokens: int = 2048
    max_tokens: int = 4096

    request_timeout_seconds: float = 90.0
    thinking_summary_chars: int = 500
    tool_result_summary_chars: int = 400
    parallel_tool_calls: bool = True

    system_prompt_setting_key: str = "investigator_system_prompt"
    system_prompt_cache_ttl_seconds: float = 300.0

    def max_turns_for(self, mode: str) -> int:
        return {
            "quick": self.quick_max_turns,
            "visual": self.visual_max_turns,
        }.get(mode, self.deep_max_turns)

    def max_tokens_for(self, mode: str) -> int:
        return self.quick_max_tokens if mode == "quick" else self.max_tokens

    class Config:
        env_file = ".env"
        env_prefix = "INVESTIGATOR_"
        extra = "ignore"
