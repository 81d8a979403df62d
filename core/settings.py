from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Process-level knobs: server, logging and browser access."""

    APP_NAME: str = "MotorMatch Support Chat"
    ENV: str = "development"

    HOST: str = "0.0.0.0"
    PORT: int = 8000
    LOG_LEVEL: str = "INFO"

    # Origens da loja que abrem o widget e o painel de suporte
    CORS_ORIGINS: list[str] = ["http://localhost:3000"]

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": True,
        "extra": "allow",
    }


settings = Settings()
