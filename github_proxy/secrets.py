"""Optional Google Cloud Secret Manager source for the GitHub token."""

from __future__ import annotations

import logging
import os
from typing import Optional

logger = logging.getLogger("github-proxy.secrets")

PROJECT_ENV_VARS = ("GCP_PROJECT", "GOOGLE_CLOUD_PROJECT")


def secret_version_name(secret_name: str, project_id: Optional[str] = None, version: str = "latest") -> str:
    project = project_id or next((os.environ[var] for var in PROJECT_ENV_VARS if os.environ.get(var)), None)
    if not project:
        raise ValueError(f"No GCP project for secret {secret_name!r}; set one of {', '.join(PROJECT_ENV_VARS)}")
    return f"projects/{project}/secrets/{secret_name}/versions/{version}"


def access_secret(secret_name: str, project_id: Optional[str] = None, version: str = "latest") -> str:
    """Return the payload of one secret version, stripped of surrounding whitespace.

    Requires the ``gcp`` extra (google-cloud-secret-manager).
    """
    from google.cloud import secretmanager

    name = secret_version_name(secret_name, project_id, version)
    client = secretmanager.SecretManagerServiceClient()
    response = client.access_secret_version(request={"name": name})
    logger.info("Loaded secret from Secret Manager", extra={"secret": secret_name, "version": version})
    return response.payload.data.decode("UTF-8").strip()


def should_use_secret_manager() -> bool:
    return os.environ.get("USE_SECRET_MANAGER", "").lower() in ("true", "1", "yes")
