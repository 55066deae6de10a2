from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    DATABASE_URL: str = "sqlite:///./library_management.db"
    LOG_LEVEL: str = "INFO"
    SQL_ECHO: bool = False
    DEFAULT_LOAN_DAYS: int = 14  # usado si checkout_book no recibe due_days

    class Config:
        env_file = ".env"


settings = Settings()
