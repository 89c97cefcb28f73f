"""
Configuration management using pydantic-settings

Loads configuration from environment variables and .env file
"""

from pydantic_settings import BaseSettings
from pydantic import Field


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    # Database Configuration
    DB_HOST: str = Field(default="localhost", description="Database host")
    DB_PORT: int = Field(default=5432, description="Database port")
    DB_NAME: str = Field(default="cmms_db", description="Database name")
    DB_USER: str = Field(default="cmms_user", description="Database user")
    DB_PASSWORD: str = Field(default="cmms_password", description="Database password")
    DB_SCHEMA: str = Field(default="cmms", description="Schema holding the CMMS tables")
    DB_MIN_CONNECTIONS: int = Field(default=1, description="Pool minimum size")
    DB_MAX_CONNECTIONS: int = Field(default=10, description="Pool maximum size")

    # Application Settings
    LOG_LEVEL: str = Field(default="INFO", description="Logging level")

    # Contract Lifecycle
    CONTRACT_REMINDER_DAYS: int = Field(
        default=30,
        description="Days before end_date when a contract becomes Pending Renewal"
    )
    CONTRACT_RENEWAL_REMINDER_OFFSET_DAYS: int = Field(
        default=30,
        description="Default renewal_reminder_date offset before end_date"
    )

    # Preventive Maintenance
    PM_DEFAULT_PRIORITY: str = Field(
        default="Medium",
        description="Priority given to generated preventive work orders"
    )
    PM_SYSTEM_REPORTER: str = Field(
        default="System Scheduler",
        description="reported_by value on generated work orders"
    )

    # Reporting
    REPORT_DEFAULT_GENERATOR: str = Field(
        default="system",
        description="generated_by value when no user is supplied"
    )
    COMPLIANCE_DUE_WINDOW_DAYS: int = Field(
        default=30,
        description="Days ahead a compliance check counts as upcoming"
    )

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True


# Global settings instance
settings = Settings()


def get_settings() -> Settings:
    """Get the global settings instance"""
    return settings
