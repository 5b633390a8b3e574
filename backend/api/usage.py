"""Usage, plans and personalization profile API."""

from typing import List, Optional, Union

from fastapi import APIRouter, Depends, Query, Request
from pydantic import BaseModel

from backend.core.auth import get_current_user_id
from backend.core.logging import get_request_id
from backend.features.entitlements import service, store

router = APIRouter(prefix="/v1/usage", tags=["usage"])
profile_router = APIRouter(prefix="/v1/profile", tags=["profile"])


class PersonalizationUpdate(BaseModel):
    company: Optional[str] = None
    industry: Optional[str] = None
    voice: Optional[str] = None
    audience: Optional[str] = None
    banned_terms: Optional[Union[List[str], str]] = None
    safety: Optional[str] = None


@router.get("/status")
def usage_status_endpoint(request: Request, user_id: str = Depends(get_current_user_id)):
    rid = getattr(request.state, "request_id", None) or get_request_id()
    return {"data": service.get_subscription_status(user_id), "request_id": rid}


@router.get("/plans")
def pricing_plans_endpoint(request: Request, current_plan: Optional[str] = Query(None)):
    rid = getattr(request.state, "request_id", None) or get_request_id()
    return {"data": service.get_pricing_plans(current_plan), "request_id": rid}


@profile_router.get("/personalization")
def get_personalization_endpoint(request: Request, user_id: str = Depends(get_current_user_id)):
    rid = getattr(request.state, "request_id", None) or get_request_id()
    entitlement = store.get_or_create_user_entitlement(user_id)
    return {"data": entitlement.personalization.model_dump(mode="json"), "request_id": rid}


@profile_router.patch("/personalization")
def update_personalization_endpoint(
    body: PersonalizationUpdate,
    request: Request,
    user_id: str = Depends(get_current_user_id),
):
    rid = getattr(request.state, "request_id", None) or get_request_id()
    store.get_or_create_user_entitlement(user_id)
    entitlement = store.update_personalization(user_id, **body.model_dump(exclude_unset=True))
    return {"data": entitlement.personalization.model_dump(mode="json"), "request_id": rid}
