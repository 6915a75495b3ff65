"""
api/routes/providers.py -- AI provider configuration REST endpoints.

Routes (all require auth; every store call is scoped to the caller's user id):
  GET    /api/ai-providers                -- list the caller's providers
  POST   /api/ai-providers                -- add a provider
  GET    /api/ai-providers/models/all     -- models across active providers
  GET    /api/ai-providers/{provider_id}  -- one provider
  PUT    /api/ai-providers/{provider_id}  -- partial update
  DELETE /api/ai-providers/{provider_id}  -- remove
  POST   /api/ai-providers/{provider_id}/test -- connectivity check

Route registration order matters: GET /ai-providers/models/all must be
registered before GET /ai-providers/{provider_id} or FastAPI captures
"models" as a path parameter.

API keys never leave the server in clear text: ProviderOut masks them.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse

from api.models import (
    AvailableModel,
    MessageData,
    ModelsData,
    ProbeData,
    ProviderCreate,
    ProviderData,
    ProviderListData,
    ProviderOut,
    ProviderUpdate,
    SuccessResponse,
)
from auth.dependencies import get_current_identity
from auth.models import Identity
from providers.catalog import MODEL_CATEGORIES, default_models, get_vendor
from providers.models import AIProvider, ProviderModel
from providers.probe import ProviderProbeError, probe_provider
from providers.store import ProviderStore

logger = logging.getLogger("aiplatform.api.providers")

router = APIRouter()

_NOT_FOUND = {"error": "Provider not found", "message": "No AI provider with that id exists for this account."}


def _get_owned(store: ProviderStore, provider_id: str, identity: Identity) -> AIProvider:
    provider = store.get_provider(provider_id, identity.user_id)
    if provider is None:
        raise HTTPException(status_code=404, detail=_NOT_FOUND)
    return provider


@router.get("/ai-providers", response_model=SuccessResponse[ProviderListData])
def list_providers(
    request: Request,
    identity: Identity = Depends(get_current_identity),
) -> SuccessResponse[ProviderListData]:
    """List the caller's providers ordered by priority, then display name."""
    store: ProviderStore = request.app.state.provider_store
    providers = store.list_providers(identity.user_id)
    return SuccessResponse[ProviderListData](
        data=ProviderListData(providers=[ProviderOut.from_provider(p) for p in providers])
    )


@router.post("/ai-providers", response_model=SuccessResponse[ProviderData], status_code=201)
def create_provider(
    request: Request,
    body: ProviderCreate,
    identity: Identity = Depends(get_current_identity),
) -> SuccessResponse[ProviderData]:
    """Add a provider for the caller.

    Known vendor names get their default base URL and model list from the
    catalog. Any other name is a custom provider and needs an explicit baseUrl.
    """
    if get_vendor(body.name) is None and not body.base_url:
        raise HTTPException(
            status_code=400,
            detail={"error": "Base URL required", "message": f"Unknown provider type '{body.name}' needs a baseUrl."},
        )
    if body.models is None:
        models = default_models(body.name)
    else:
        models = [ProviderModel(name=m.name, category=m.category) for m in body.models]

    store: ProviderStore = request.app.state.provider_store
    provider_id = store.create_provider(
        AIProvider(
            owner_id=identity.user_id,
            name=body.name,
            display_name=body.display_name,
            api_key=body.api_key,
            base_url=body.base_url,
            priority=body.priority,
            models=models,
        )
    )
    logger.info("User %s added provider %s (%s)", identity.user_id, provider_id, body.name)
    created = _get_owned(store, provider_id, identity)
    return SuccessResponse[ProviderData](data=ProviderData(provider=ProviderOut.from_provider(created)))


@router.get("/ai-providers/models/all", response_model=SuccessResponse[ModelsData])
def list_models(
    request: Request,
    identity: Identity = Depends(get_current_identity),
) -> SuccessResponse[ModelsData]:
    """Every model offered by the caller's active providers, flat and by category."""
    store: ProviderStore = request.app.state.provider_store
    models: list[AvailableModel] = []
    for provider in store.list_providers(identity.user_id, active_only=True):
        models.extend(AvailableModel.from_model(m, provider) for m in provider.models)

    by_category: dict[str, list[AvailableModel]] = {c: [] for c in MODEL_CATEGORIES}
    for model in models:
        by_category.setdefault(model.category, []).append(model)
    return SuccessResponse[ModelsData](data=ModelsData(models=models, models_by_category=by_category))


@router.get("/ai-providers/{provider_id}", response_model=SuccessResponse[ProviderData])
def get_provider(
    request: Request,
    provider_id: str,
    identity: Identity = Depends(get_current_identity),
) -> SuccessResponse[ProviderData]:
    store: ProviderStore = request.app.state.provider_store
    provider = _get_owned(store, provider_id, identity)
    return SuccessResponse[ProviderData](data=ProviderData(provider=ProviderOut.from_provider(provider)))


@router.put("/ai-providers/{provider_id}", response_model=SuccessResponse[ProviderData])
def update_provider(
    request: Request,
    provider_id: str,
    body: ProviderUpdate,
    identity: Identity = Depends(get_current_identity),
) -> SuccessResponse[ProviderData]:
    """Apply the fields present in the body. An empty apiKey keeps the stored key."""
    updates = body.model_dump(exclude_unset=True)
    if not updates.get("api_key"):
        updates.pop("api_key", None)
    if "models" in updates:
        if body.models is None:
            updates.pop("models")
        else:
            updates["models"] = [ProviderModel(name=m.name, category=m.category) for m in body.models]
    for key in ("display_name", "priority", "is_active"):
        if key in updates and updates[key] is None:
            updates.pop(key)

    store: ProviderStore = request.app.state.provider_store
    if updates:
        if not store.update_provider(provider_id, identity.user_id, **updates):
            raise HTTPException(status_code=404, detail=_NOT_FOUND)
        logger.info("User %s updated provider %s (%s)", identity.user_id, provider_id, ", ".join(sorted(updates)))
    provider = _get_owned(store, provider_id, identity)
    return SuccessResponse[ProviderData](data=ProviderData(provider=ProviderOut.from_provider(provider)))


@router.delete("/ai-providers/{provider_id}", response_model=SuccessResponse[MessageData])
def delete_provider(
    request: Request,
    provider_id: str,
    identity: Identity = Depends(get_current_identity),
) -> SuccessResponse[MessageData]:
    store: ProviderStore = request.app.state.provider_store
    if not store.delete_provider(provider_id, identity.user_id):
        raise HTTPException(status_code=404, detail=_NOT_FOUND)
    logger.info("User %s deleted provider %s", identity.user_id, provider_id)
    return SuccessResponse[MessageData](data=MessageData(message="AI provider deleted successfully"))


@router.post("/ai-providers/{provider_id}/test", response_model=SuccessResponse[ProbeData])
def test_provider(
    request: Request,
    provider_id: str,
    identity: Identity = Depends(get_current_identity),
) -> JSONResponse:
    """Call the vendor's models endpoint with the stored key.

    Plain def: the probe does blocking HTTP, so FastAPI runs it in the
    threadpool. 502 when the vendor is unreachable or rejects the key.
    """
    store: ProviderStore = request.app.state.provider_store
    provider = _get_owned(store, provider_id, identity)
    try:
        result = probe_provider(provider)
    except ProviderProbeError as exc:
        return JSONResponse(status_code=502, content={"error": "Provider test failed", "message": str(exc)})
    data = ProbeData(success=True, response_time=result.response_time_ms, message="Connection successful")
    return JSONResponse(content=SuccessResponse[ProbeData](data=data).model_dump(by_alias=True))
