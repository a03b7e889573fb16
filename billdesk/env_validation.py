import os
import logging
from django.core.exceptions import ImproperlyConfigured

logger = logging.getLogger(__name__)

# Mandatory environment variables for production
REQUIRED_PRODUCTION_ENV_VARS = [
    "SECRET_KEY",
    "DATABASE_URL",
    "ALLOWED_HOSTS",
]

VALID_CONFLICT_POLICIES = ("last_approval_wins", "reject_stale")


def validate_env():
    """
    Validate critical environment variables for Django settings.
    Runs once per process; subsequent calls are idempotent.
    """
    is_production = os.getenv("PRODUCTION", "false").lower() == "true"

    secret_key = os.getenv("SECRET_KEY")
    if not secret_key:
        if is_production:
            raise ImproperlyConfigured("CRITICAL: SECRET_KEY is required in production.")
        else:
            logger.warning("SECRET_KEY not set, using insecure default for development.")

    policy = os.getenv("BILLING_EDIT_REQUEST_CONFLICT_POLICY", "last_approval_wins")
    if policy not in VALID_CONFLICT_POLICIES:
        raise ImproperlyConfigured(
            f"BILLING_EDIT_REQUEST_CONFLICT_POLICY must be one of {', '.join(VALID_CONFLICT_POLICIES)}, got '{policy}'"
        )

    terms = os.getenv("BILLING_DEFAULT_PAYMENT_TERMS_DAYS")
    if terms is not None and (not terms.isdigit() or int(terms) <= 0):
        raise ImproperlyConfigured("BILLING_DEFAULT_PAYMENT_TERMS_DAYS must be a positive integer")

    if is_production:
        missing = [var for var in REQUIRED_PRODUCTION_ENV_VARS if not os.getenv(var)]
        if missing:
            error_msg = f"CRITICAL: Missing required environment variables in production: {', '.join(missing)}"
            logger.critical(error_msg)
            raise ImproperlyConfigured(error_msg)

        if secret_key and (secret_key.startswith("django-insecure") or len(secret_key) < 50):
            error_msg = "CRITICAL: SECRET_KEY must be a long, secure string in production"
            logger.critical(error_msg)
            raise ImproperlyConfigured(error_msg)

    logger.info("Environment validation passed successfully")
