"""Credential secret routes: values go in and out only through the vault."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel

from deploywatch.credentials.store import CredentialSecretStore
from deploywatch.credentials.vault import DecryptionError
from deploywatch.deployments.models import Deployment
from deploywatch.deployments.store import DeploymentStore, NotFoundError

logger = logging.getLogger(__name__)

credential_router = APIRouter(tags=["credentials"])


class SecretBody(BaseModel):
    value: str


def _get_store(request: Request) -> CredentialSecretStore:
    return request.app.state.credential_secrets  # type: ignore[no-any-return]


def _require_deployment(request: Request, deployment_id: str) -> Deployment:
    deployments: DeploymentStore = request.app.state.deployments
    try:
        return deployments.require(deployment_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


@credential_router.get("/deployments/{deployment_id}/credentials")
def list_credentials(deployment_id: str, request: Request) -> dict[str, Any]:
    """Credential references plus which keys have a stored secret."""
    deployment = _require_deployment(request, deployment_id)
    return {
        "credentials": [c.to_dict() for c in deployment.credentials],
        "stored_keys": _get_store(request).keys(deployment_id),
    }


@credential_router.put("/deployments/{deployment_id}/credentials/{key}/secret")
def put_secret(deployment_id: str, key: str, body: SecretBody, request: Request) -> dict[str, Any]:
    _require_deployment(request, deployment_id)
    _get_store(request).put(deployment_id, key, body.value)
    return {"deployment_id": deployment_id, "key": key, "stored": True}


@credential_router.get("/deployments/{deployment_id}/credentials/{key}/secret")
def get_secret(deployment_id: str, key: str, request: Request) -> dict[str, Any]:
    _require_deployment(request, deployment_id)
    try:
        value = _get_store(request).get(deployment_id, key)
    except DecryptionError:
        logger.warning("Stored credential %s for %s failed to decrypt", key, deployment_id)
        raise HTTPException(status_code=422, detail="Stored credential could not be decrypted")
    if value is None:
        raise HTTPException(status_code=404, detail=f"No secret stored for {key}")
    return {"deployment_id": deployment_id, "key": key, "value": value}
