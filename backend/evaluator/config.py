from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # secrets (set in .env)
    openai_api_key: str = ""
    anthropic_api_key: str = ""
    deepseek_api_key: str = ""
    perplexity_api_key: str = ""

    # upstreams
    openai_model: str = "gpt-4o"
    openai_max_tokens: int = 1500
    anthropic_model: str = "claude-sonnet-4-20250514"
    anthropic_max_tokens: int = 4000
    deepseek_base_url: str = "https://api.deepseek.com/v1"
    deepseek_model: str = "deepseek-chat"
    deepseek_max_tokens: int = 4000
    perplexity_base_url: str = "https://api.perplexity.ai"
    perplexity_model: str = "sonar"
    perplexity_max_tokens: int = 2000
    request_timeout_seconds: float = 120.0

    # tunable parameters
    chunk_size_words: int = 1000
    # providers whose upstream needs chunk-by-chunk pacing
    sequential_providers: list[str] = ["zhi1"]
    inter_chunk_delay_seconds: float = 10.0
    chat_provider: str = "zhi2"
    max_upload_bytes: int = 10 * 1024 * 1024
    recent_analyses_limit: int = 10
    cors_origins: list[str] = ["http://localhost:5173", "http://localhost:3000"]

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


settings = Settings()
