"""Hook generation, history and favorites API."""

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from pydantic import BaseModel

from backend.core.auth import get_current_user_id
from backend.core.logging import get_request_id
from backend.core.tracing import start_span
from backend.features.favorites import service as favorites
from backend.features.hooks import history
from backend.features.hooks.service import GenerationFailure, generate

router = APIRouter(prefix="/v1/hooks", tags=["hooks"])


class GenerateHooksRequest(BaseModel):
    # generate() validates these and reports {field, reason}
    platform: Optional[str] = None
    objective: Optional[str] = None
    topic: Optional[str] = None
    model_class: Optional[str] = None


class AddFavoriteRequest(BaseModel):
    hook_snapshot: Optional[Dict[str, Any]] = None
    framework: Optional[str] = None
    platform_notes: Optional[str] = None
    generation_id: Optional[str] = None
    topic: Optional[str] = None
    platform: Optional[str] = None


def _request_id(request: Request) -> Optional[str]:
    return getattr(request.state, "request_id", None) or get_request_id()


def _hook_backend(request: Request):
    backend = getattr(request.app.state, "hook_backend", None)
    if backend is None:
        raise HTTPException(status_code=503, detail="Generation backend is not configured")
    return backend


@router.post("/generate")
async def generate_hooks_endpoint(
    body: GenerateHooksRequest,
    request: Request,
    user_id: str = Depends(get_current_user_id),
):
    rid = _request_id(request)
    backend = _hook_backend(request)

    with start_span("api.hooks_generate", {"user_id": user_id, "platform": body.platform}):
        outcome = await generate(
            user_id,
            body.platform,
            body.objective,
            body.topic,
            body.model_class,
            backend=backend,
        )

    if isinstance(outcome, GenerationFailure):
        outcome.error.request_id = rid
        raise outcome.error

    return {
        "data": {
            "generation": outcome.record.model_dump(mode="json"),
            "model_selection": outcome.model_selection.model_dump(mode="json"),
            "ranking_summary": outcome.ranking_summary.to_dict(),
            "entitlement": outcome.entitlement.to_dict(),
        },
        "request_id": rid,
    }


@router.get("/history")
def list_history_endpoint(
    request: Request,
    page: int = Query(1),
    limit: int = Query(10),
    user_id: str = Depends(get_current_user_id),
):
    records, pagination = history.list_generations(user_id, page=page, limit=limit)
    return {
        "data": [record.model_dump(mode="json") for record in records],
        "pagination": pagination.model_dump(),
        "request_id": _request_id(request),
    }


@router.get("/history/{generation_id}")
def get_history_endpoint(generation_id: str, request: Request, user_id: str = Depends(get_current_user_id)):
    record = history.get_generation(user_id, generation_id)
    return {"data": record.model_dump(mode="json"), "request_id": _request_id(request)}


@router.delete("/history/{generation_id}")
def delete_history_endpoint(generation_id: str, request: Request, user_id: str = Depends(get_current_user_id)):
    history.delete_generation(user_id, generation_id)
    return {"data": {"deleted": True, "id": generation_id}, "request_id": _request_id(request)}


@router.get("/favorites")
def list_favorites_endpoint(
    request: Request,
    page: int = Query(1),
    limit: int = Query(10),
    user_id: str = Depends(get_current_user_id),
):
    items, pagination = favorites.list_favorites(user_id, page=page, limit=limit)
    return {
        "data": [item.model_dump(mode="json") for item in items],
        "pagination": pagination.model_dump(),
        "request_id": _request_id(request),
    }


@router.post("/favorites", status_code=201)
def add_favorite_endpoint(body: AddFavoriteRequest, request: Request, user_id: str = Depends(get_current_user_id)):
    favorite = favorites.add_favorite(
        user_id,
        hook_snapshot=body.hook_snapshot,
        framework=body.framework,
        platform_notes=body.platform_notes,
        generation_id=body.generation_id,
        topic=body.topic,
        platform=body.platform,
    )
    return {"data": favorite.model_dump(mode="json"), "request_id": _request_id(request)}


@router.delete("/favorites/{favorite_id}")
def delete_favorite_endpoint(favorite_id: str, request: Request, user_id: str = Depends(get_current_user_id)):
    favorites.remove_favorite(user_id, favorite_id)
    return {"data": {"deleted": True, "id": favorite_id}, "request_id": _request_id(request)}
