"""Response synthesizer configuration."""
from pydantic_settings import BaseSettings
from typing import List

class SynthesizerConfig(BaseSettings):
    """Follow-up question extraction settings."""
    max_follow_ups: int = 3
    min_follow_up_length: int = 10
    fallback_follow_ups: List[str] = [
        "How does this compare to previous periods?",
        "What's driving these numbers?",
        "Are there any outliers I should know about?",
    ]

    class Config:
        env_file = ".env"
        env_prefix = "SYNTH_"
        extra = "ignore"
