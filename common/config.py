from pydantic_settings import BaseSettings


class PipelineSettings(BaseSettings):
    chunk_size_bytes: int = 25 * 1024 * 1024
    chunk_duration_s: float = 30.0
    max_concurrent: int = 5
    inter_batch_delay_s: float = 2.0
    max_retries: int = 3
    backoff_base_s: float = 1.0
    silence_threshold_s: float = 2.0
    sample_rate: int = 16000
    channels: int = 1
    temp_dir: str = "temp"
    backend: str = "openai"  # openai / local

    model_config = {"env_prefix": "PIPELINE_"}


class WhisperSettings(BaseSettings):
    api_key: str = ""
    base_url: str = "https://api.openai.com/v1"
    model: str = "whisper-1"
    timeout_s: float = 300.0
    local_model_size: str = "large-v3"
    device: str = "auto"
    compute_type: str = "auto"

    model_config = {"env_prefix": "WHISPER_"}


class GatewaySettings(BaseSettings):
    host: str = "0.0.0.0"
    port: int = 3001
    job_attempts: int = 3
    job_backoff_s: float = 2.0
    max_listed_jobs: int = 50
    max_retained_jobs: int = 100
    upload_dir: str = "uploads"
    max_upload_bytes: int = 10 * 1024 * 1024 * 1024
    public_ws_url: str = "ws://localhost:3001/progress"

    model_config = {"env_prefix": "GATEWAY_"}
