from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    app_env: str = "dev"
    log_level: str = "INFO"

    db_host: str = "host.docker.internal"
    db_port: int = 5432
    db_database: str = "docseal"
    db_username: str = "docseal"
    db_password: str = "secret"

    storage_backend: str = "local"
    storage_local_root: str = "/app/files"
    storage_timeout_seconds: int = 30
    storage_max_retries: int = 1
    supabase_url: str = ""
    supabase_service_key: str = ""
    supabase_bucket: str = "documents"
    signed_url_ttl_seconds: int = 60

    cert_file_path: str = "./config/certificates/signer_cert.p12"
    cert_base64: str = ""
    cert_password: str = ""
    pdf_owner_password: str = ""

    signature_reason: str = "Digitally signed"
    signature_location: str = ""
    signature_contact_info: str = ""
    signature_name: str = "docseal"
    signature_reserved_bytes: int = 32768

    verification_base_url: str = "http://localhost:5173"
    qr_anchor_x: float = 40.0
    qr_anchor_y: float = 40.0
    qr_size: float = 80.0

    pin_max_attempts: int = 3
    pin_lockout_minutes: int = 30

    audit_backend: str = "postgres"
