"""Secret resolution for the relay's Spectro Cloud API key.

``SPECTRO_API_KEY`` may hold the key itself or a reference into a cloud
secret store:

  - ``aws-secret://spectro-relay``          whole SecretString
  - ``aws-secret://spectro-relay#apiKey``   one field of a JSON SecretString
  - ``gcp-secret://spectro-relay``          latest version, project from env/metadata
  - ``gcp-secret://projects/p/secrets/s/versions/3``

The cloud SDKs are optional extras, imported only when a reference of their
kind is resolved.
"""

from __future__ import annotations

import json
import logging
import os
from typing import Callable, Optional

import requests

from identity_console.exceptions import ConfigError

logger = logging.getLogger("console.secrets")

_AWS_SCHEME = "aws-secret"
_GCP_SCHEME = "gcp-secret"

_GCP_METADATA_PROJECT_URL = (
    "http://metadata.google.internal/computeMetadata/v1/project/project-id"
)


def parse_reference(value: str) -> Optional[tuple[str, str]]:
    """Split ``scheme://ref`` for a known secret scheme, else None."""
    scheme, sep, ref = value.partition("://")
    if sep and scheme in _RESOLVERS:
        return scheme, ref
    return None


def is_secret_reference(value: str) -> bool:
    return parse_reference(value) is not None


def resolve_secret(value: str) -> str:
    """Return the plaintext behind ``value``; literals come back unchanged."""
    parsed = parse_reference(value)
    if parsed is None:
        return value
    scheme, ref = parsed
    if not ref:
        raise ConfigError(f"Empty secret reference: {value!r}")
    logger.info("Resolving API key from %s", scheme)
    return _RESOLVERS[scheme](ref)


def _resolve_aws_secret(ref: str) -> str:
    import boto3

    secret_id, _, field_name = ref.partition("#")
    client = boto3.client(
        "secretsmanager", region_name=os.environ.get("AWS_REGION", "us-east-1")
    )
    secret_string = client.get_secret_value(SecretId=secret_id)["SecretString"]
    if not field_name:
        return secret_string

    try:
        return str(json.loads(secret_string)[field_name])
    except (ValueError, KeyError, TypeError) as exc:
        raise ConfigError(
            f"Secret {secret_id!r} has no JSON field {field_name!r}"
        ) from exc


def _resolve_gcp_secret(ref: str) -> str:
    from google.cloud import secretmanager

    if ref.startswith("projects/"):
        name = ref
    else:
        project = os.environ.get("GCP_PROJECT_ID", "") or _gcp_project_from_metadata()
        name = f"projects/{project}/secrets/{ref}/versions/latest"

    client = secretmanager.SecretManagerServiceClient()
    response = client.access_secret_version(request={"name": name})
    return response.payload.data.decode("UTF-8")


def _gcp_project_from_metadata() -> str:
    try:
        resp = requests.get(
            _GCP_METADATA_PROJECT_URL,
            headers={"Metadata-Flavor": "Google"},
            timeout=2,
        )
        resp.raise_for_status()
    except requests.RequestException as exc:
        raise ConfigError(
            "Cannot determine GCP project ID. Set GCP_PROJECT_ID env var."
        ) from exc
    return resp.text.strip()


_RESOLVERS: dict[str, Callable[[str], str]] = {
    _AWS_SCHEME: _resolve_aws_secret,
    _GCP_SCHEME: _resolve_gcp_secret,
}
