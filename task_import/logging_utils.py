"""Logging setup and credential masking."""

import logging
import threading
from collections import Counter
from typing import Optional

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# Secret -> number of live holders (wizard sessions, runs, validations)
_secrets: Counter = Counter()
_secrets_lock = threading.Lock()


def mask_credential(secret: Optional[str], visible: int = 4) -> str:
    """
    Render a masked preview of a secret.

    Shows the first and last `visible` characters; short secrets are
    fully masked.

    Args:
        secret: The raw credential
        visible: Characters to keep at each end

    Returns:
        Masked preview such as "abcd********wxyz"
    """
    if not secret:
        return ""
    if len(secret) <= visible * 2:
        return "*" * len(secret)
    hidden = len(secret) - visible * 2
    return f"{secret[:visible]}{'*' * hidden}{secret[-visible:]}"


def register_secret(secret: Optional[str]) -> None:
    """
    Register a secret so CredentialMaskingFilter redacts it from log output.

    Registrations are counted; every call must be paired with forget_secret.
    """
    if secret and secret.strip():
        with _secrets_lock:
            _secrets[secret] += 1


def forget_secret(secret: Optional[str]) -> None:
    """Release one registration; the secret stays redacted while others hold it."""
    if not secret:
        return
    with _secrets_lock:
        if _secrets[secret] <= 1:
            del _secrets[secret]
        else:
            _secrets[secret] -= 1


def registered_secret_count() -> int:
    """Number of distinct secrets currently redacted."""
    with _secrets_lock:
        return len(_secrets)


class CredentialMaskingFilter(logging.Filter):
    """Replace registered secrets in log records with their masked preview."""

    def filter(self, record: logging.LogRecord) -> bool:
        with _secrets_lock:
            secrets = list(_secrets)
        if not secrets:
            return True

        message = record.getMessage()
        masked = message
        for secret in secrets:
            if secret in masked:
                masked = masked.replace(secret, mask_credential(secret))
        if masked != message:
            record.msg = masked
            record.args = None
        return True


def configure_logging(verbose: bool = False, log_file: Optional[str] = None) -> None:
    """
    Configure root logging for the CLI and API entry points.

    Args:
        verbose: Log at DEBUG instead of INFO
        log_file: Optional file to log to in addition to stderr
    """
    handlers = [logging.StreamHandler()]
    if log_file:
        handlers.append(logging.FileHandler(log_file))

    masking = CredentialMaskingFilter()
    for handler in handlers:
        handler.addFilter(masking)

    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format=LOG_FORMAT,
        handlers=handlers,
    )
