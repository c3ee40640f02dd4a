"""
Production configuration for the storefront backend.

All settings are read from the process environment once, at startup, and
collected into a typed ``Settings`` object that is passed explicitly to each
collaborator (mailer, cache store, storage service, web app). Nothing else in
the package reads ``os.environ`` directly.

Environment variables
---------------------
LOG_LEVEL                   Root log level (default: "info"); RAILS_LOG_LEVEL is also read.
HOST / PORT                 Bind address for storefront-api (default: 0.0.0.0:8000).
FORCE_SSL / ASSUME_SSL      Redirect to HTTPS + HSTS / treat every request as
                            HTTPS behind a TLS-terminating proxy (default: true).
SILENCE_HEALTHCHECK_PATH    Request path excluded from request logs (default: "/up").
MAILER_DEFAULT_HOST         Host used in links generated by mail (default: "localhost").
MAILER_DEFAULT_PROTOCOL     Protocol used in links generated by mail (default: "https").
MAIL_FROM                   Default sender address (default: "noreply@example.com");
                            SPREE_MAIL_FROM is also read.
AWS_ACCESS_KEY_ID           \
AWS_SECRET_ACCESS_KEY        } SES API delivery; both keys must be set.
AWS_REGION                  /  (default region: "ap-southeast-2")
SMTP_*                      SMTP fallback delivery, enabled by SMTP_ADDRESS.
REDIS_CACHE_URL             Comma-separated Redis URLs; unset -> in-process cache.
REDIS_*_TIMEOUT             Connect/read/write timeouts in seconds (30 / 0.2 / 0.2).
REDIS_RECONNECT_ATTEMPTS    Reconnect attempts per command (default: 2).
STORAGE_SERVICE             "local" (default) or "s3".
STORAGE_ROOT                Root folder for the local storage service (default: "storage").
S3_*                        S3-compatible object storage credentials.
TEST_EMAIL_TO               Recipient for storefront-email-check.
"""

import os
from typing import Mapping, Optional

from dotenv import load_dotenv
from pydantic import BaseModel


DEFAULT_SES_REGION = "ap-southeast-2"
DEFAULT_S3_REGION = "us-east-1"


class ConfigurationError(ValueError):
    """A required configuration value is missing or invalid."""


# ---------------------------------------------------------------------------
# Settings models
# ---------------------------------------------------------------------------

class WebSettings(BaseModel):
    host: str = "0.0.0.0"
    port: int = 8000
    force_ssl: bool = True
    assume_ssl: bool = True
    silence_healthcheck_path: Optional[str] = "/up"
    hsts_max_age: int = 63072000  # two years


class MailerSettings(BaseModel):
    """Defaults applied to every outgoing message and generated link."""

    default_host: str = "localhost"
    default_protocol: str = "https"
    default_from: str = "noreply@example.com"


class SesSettings(BaseModel):
    region: Optional[str] = DEFAULT_SES_REGION
    access_key_id: Optional[str] = None
    secret_access_key: Optional[str] = None


class SmtpSettings(BaseModel):
    address: str
    port: int = 587
    domain: str = "localhost"
    user_name: Optional[str] = None
    password: Optional[str] = None
    authentication: str = "plain"
    enable_starttls_auto: bool = True
    openssl_verify_mode: str = "peer"


class CacheSettings(BaseModel):
    """
    Cache backend selection.

    An empty ``urls`` list selects the in-process memory store. The timeout
    values below are the production tuning; the Redis store itself defaults
    to 1 second for each timeout and a single reconnect attempt.
    """

    urls: list[str] = []
    connect_timeout: float = 30
    read_timeout: float = 0.2
    write_timeout: float = 0.2
    reconnect_attempts: int = 2


class S3Settings(BaseModel):
    endpoint_url: Optional[str] = None
    access_key_id: Optional[str] = None
    secret_access_key: Optional[str] = None
    bucket_name: Optional[str] = None
    region: str = DEFAULT_S3_REGION

    def missing(self) -> list[str]:
        """Names of the environment variables that are required but unset."""
        required = {
            "S3_ENDPOINT_URL": self.endpoint_url,
            "S3_ACCESS_KEY_ID": self.access_key_id,
            "S3_SECRET_ACCESS_KEY": self.secret_access_key,
            "S3_BUCKET_NAME": self.bucket_name,
        }
        return [name for name, value in required.items() if not value]


class StorageSettings(BaseModel):
    service: str = "local"
    root: str = "storage"
    s3: S3Settings = S3Settings()


class Settings(BaseModel):
    """Typed view of the production environment."""

    log_level: str = "info"
    web: WebSettings = WebSettings()
    mailer: MailerSettings = MailerSettings()
    ses: Optional[SesSettings] = None
    smtp: Optional[SmtpSettings] = None
    cache: CacheSettings = CacheSettings()
    storage: StorageSettings = StorageSettings()
    test_email_to: Optional[str] = None


# ---------------------------------------------------------------------------
# Environment parsing
# ---------------------------------------------------------------------------

def _present(value: Optional[str]) -> bool:
    return value is not None and value.strip() != ""


def _get(env: Mapping[str, str], name: str) -> Optional[str]:
    """Return the stripped value of ``name``, or None when unset or blank."""
    value = env.get(name)
    return value.strip() if _present(value) else None


def _bool(value: Optional[str], default: bool) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _int(value: Optional[str], default: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _float(value: Optional[str], default: float) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def _ses_settings(env: Mapping[str, str]) -> Optional[SesSettings]:
    access_key_id = _get(env, "AWS_ACCESS_KEY_ID")
    secret_access_key = _get(env, "AWS_SECRET_ACCESS_KEY")
    if not (access_key_id and secret_access_key):
        return None
    return SesSettings(
        region=_get(env, "AWS_REGION") or DEFAULT_SES_REGION,
        access_key_id=access_key_id,
        secret_access_key=secret_access_key,
    )


def _smtp_settings(env: Mapping[str, str], mailer: MailerSettings) -> Optional[SmtpSettings]:
    address = _get(env, "SMTP_ADDRESS")
    if not address:
        return None
    return SmtpSettings(
        address=address,
        port=_int(_get(env, "SMTP_PORT"), 587),
        # SMTP_DOMAIN falls back to the mailer host used in generated links
        domain=_get(env, "SMTP_DOMAIN") or mailer.default_host,
        user_name=_get(env, "SMTP_USERNAME"),
        password=env.get("SMTP_PASSWORD") or None,
        authentication=(_get(env, "SMTP_AUTHENTICATION") or "plain").lower(),
        enable_starttls_auto=(_get(env, "SMTP_ENABLE_STARTTLS_AUTO") or "true") == "true",
        openssl_verify_mode=(_get(env, "SMTP_OPENSSL_VERIFY_MODE") or "peer").lower(),
    )


def _cache_settings(env: Mapping[str, str]) -> CacheSettings:
    raw = _get(env, "REDIS_CACHE_URL") or ""
    urls = [u.strip() for u in raw.split(",") if u.strip()]
    return CacheSettings(
        urls=urls,
        connect_timeout=_float(_get(env, "REDIS_CONNECT_TIMEOUT"), 30),
        read_timeout=_float(_get(env, "REDIS_READ_TIMEOUT"), 0.2),
        write_timeout=_float(_get(env, "REDIS_WRITE_TIMEOUT"), 0.2),
        reconnect_attempts=_int(_get(env, "REDIS_RECONNECT_ATTEMPTS"), 2),
    )


def _storage_settings(env: Mapping[str, str]) -> StorageSettings:
    return StorageSettings(
        service=(_get(env, "STORAGE_SERVICE") or "local").lower(),
        root=_get(env, "STORAGE_ROOT") or "storage",
        s3=S3Settings(
            endpoint_url=_get(env, "S3_ENDPOINT_URL"),
            access_key_id=_get(env, "S3_ACCESS_KEY_ID"),
            secret_access_key=_get(env, "S3_SECRET_ACCESS_KEY"),
            bucket_name=_get(env, "S3_BUCKET_NAME"),
            region=_get(env, "S3_REGION") or DEFAULT_S3_REGION,
        ),
    )


def load_settings(environ: Optional[Mapping[str, str]] = None) -> Settings:
    """
    Build a Settings instance from an environment mapping.

    When ``environ`` is omitted, a ``.env`` file in the working directory is
    loaded first (real environment variables win) and ``os.environ`` is used.
    Tests pass an explicit dict so the process environment is never consulted.
    """
    if environ is None:
        load_dotenv(override=False)
        environ = os.environ

    mailer = MailerSettings(
        default_host=_get(environ, "MAILER_DEFAULT_HOST") or "localhost",
        default_protocol=_get(environ, "MAILER_DEFAULT_PROTOCOL") or "https",
        default_from=_get(environ, "MAIL_FROM") or _get(environ, "SPREE_MAIL_FROM") or "noreply@example.com",
    )

    return Settings(
        log_level=(_get(environ, "LOG_LEVEL") or _get(environ, "RAILS_LOG_LEVEL") or "info").lower(),
        web=WebSettings(
            host=_get(environ, "HOST") or "0.0.0.0",
            port=_int(_get(environ, "PORT"), 8000),
            force_ssl=_bool(_get(environ, "FORCE_SSL"), True),
            assume_ssl=_bool(_get(environ, "ASSUME_SSL"), True),
            silence_healthcheck_path=environ.get("SILENCE_HEALTHCHECK_PATH", "/up") or None,
        ),
        mailer=mailer,
        ses=_ses_settings(environ),
        smtp=_smtp_settings(environ, mailer),
        cache=_cache_settings(environ),
        storage=_storage_settings(environ),
        test_email_to=_get(environ, "TEST_EMAIL_TO"),
    )
