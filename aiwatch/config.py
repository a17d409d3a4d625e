from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    base_url: str = "http://localhost:12434/engines/llama.cpp/v1"
    model: str = "ai/llama3.2:1B-Q8_0"
    api_key: str = ""
    log_level: str = "info"
    log_pretty: bool = True
    tracing_enabled: bool = False
    otlp_endpoint: str = "jaeger:4318"
    host: str = "0.0.0.0"
    port: int = 8080
    metrics_port: int = 9090
    read_timeout: float = 30.0
    write_timeout: float = 90.0
    shutdown_timeout: int = 10
    summary_average_from_histogram: bool = False
    docker_path: str = "docker"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


settings = Settings()
