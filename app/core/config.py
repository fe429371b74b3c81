from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    database_url: str = Field(..., alias="DATABASE_URL")

    jwt_secret_key: str = Field(..., alias="JWT_SECRET_KEY")
    jwt_algorithm: str = Field("HS256", alias="JWT_ALGORITHM")
    access_token_expire_minutes: int = Field(60, alias="ACCESS_TOKEN_EXPIRE_MINUTES")

    # Office templates, consumed read-only
    templates_dir: str = Field(".", alias="TEMPLATES_DIR")
    solicitud_template: str = Field("SOLICITUD_RESIDENCIAS.docx", alias="SOLICITUD_TEMPLATE")
    preliminar_template: str = Field("REPORTE_PRELIMINAR.docx", alias="PRELIMINAR_TEMPLATE")
    asignacion_template: str = Field("ASIGNAR_ASESOR.docx", alias="ASIGNACION_TEMPLATE")

    # Generated files are served publicly; archived and uploaded ones are not
    public_pdf_dir: str = Field("public/pdfs", alias="PUBLIC_PDF_DIR")
    archive_dir: str = Field("public/pdfs/archive", alias="ARCHIVE_DIR")
    storage_dir: str = Field("storage/pdfs", alias="STORAGE_DIR")
    tmp_dir: str = Field("tmp", alias="TMP_DIR")

    libreoffice_path: Optional[str] = Field(None, alias="LIBREOFFICE_PATH")
    libreoffice_home: Optional[str] = Field(None, alias="LIBREOFFICE_HOME")
    converter_timeout_seconds: float = Field(30.0, alias="CONVERTER_TIMEOUT_SECONDS")
    cleanup_max_retries: int = Field(3, alias="CLEANUP_MAX_RETRIES")
    cleanup_backoff_seconds: float = Field(0.5, alias="CLEANUP_BACKOFF_SECONDS")
    temp_max_age_minutes: int = Field(5, alias="TEMP_MAX_AGE_MINUTES")

    notification_poll_interval_seconds: float = Field(4.0, alias="NOTIFICATION_POLL_INTERVAL_SECONDS")

    log_level: str = Field("INFO", alias="LOG_LEVEL")
    log_json: bool = Field(False, alias="LOG_JSON")
    slow_request_ms: int = Field(1000, alias="SLOW_REQUEST_MS")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )


settings = Settings()
