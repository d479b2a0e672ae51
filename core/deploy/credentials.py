# core/deploy/credentials.py
"""Local validation of GitHub credentials; never touches the network."""

import re
from typing import Tuple

from core.deploy.errors import CredentialValidationError

# Modern prefixed tokens (ghp_ personal, ghs_ server-to-server)
PREFIXED_TOKEN = re.compile(r"^gh[ps]_[A-Za-z0-9_]{36,255}$")
# Legacy 40 character tokens
LEGACY_TOKEN = re.compile(r"^[A-Za-z0-9]{40,255}$")
MIN_LEGACY_LENGTH = 40

OWNER_NAME = re.compile(r"^[A-Za-z0-9][-A-Za-z0-9]*$")
REPOSITORY_NAME = re.compile(r"^[A-Za-z0-9._-]+$")


def validate_token(token: str) -> None:
    """Raise :class:`CredentialValidationError` if ``token`` is malformed."""
    if not token or not isinstance(token, str):
        raise CredentialValidationError("API key is required and must be a string")

    if PREFIXED_TOKEN.match(token) or LEGACY_TOKEN.match(token):
        return

    if len(token) < MIN_LEGACY_LENGTH:
        raise CredentialValidationError(
            f"API key is too short ({len(token)} characters). "
            f"Expected a GitHub Personal Access Token of at least {MIN_LEGACY_LENGTH} characters"
        )
    raise CredentialValidationError(
        "API key appears to be in an invalid format. Expected a GitHub Personal Access Token"
    )


def parse_repository(repository: str) -> Tuple[str, str]:
    """Split ``owner/name`` after validating both segments."""
    if not repository or not isinstance(repository, str):
        raise CredentialValidationError("Repository is required and must be a string")

    if "/" not in repository:
        raise CredentialValidationError("Repository must be in format 'owner/repo'")

    parts = repository.split("/")
    if len(parts) != 2:
        raise CredentialValidationError("Repository must be in format 'owner/repo'")
    owner, name = parts

    if not owner.strip():
        raise CredentialValidationError("Repository owner name cannot be empty")
    if not OWNER_NAME.match(owner):
        raise CredentialValidationError(
            "Repository owner name contains invalid characters "
            "(letters, digits and hyphens only, not starting with a hyphen)"
        )

    if not name.strip():
        raise CredentialValidationError("Repository name cannot be empty")
    if not REPOSITORY_NAME.match(name):
        raise CredentialValidationError(
            "Repository name contains invalid characters "
            "(letters, digits, '.', '_' and '-' only)"
        )

    return owner, name


def validate_credentials(token: str, repository: str) -> Tuple[bool, str]:
    """Check token and repository shape.

    Returns ``(True, "")`` when both are well formed, otherwise ``(False, reason)``.
    """
    try:
        validate_token(token)
        parse_repository(repository)
    except CredentialValidationError as e:
        return False, e.reason
    return True, ""
