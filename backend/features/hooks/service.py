"""
backend/features/hooks/service.py

Hook generation orchestration.

generate() is the single entry point:
validate -> fresh entitlement read -> model selection -> entitlement check
on the class that will be served -> prompt -> backend -> parse -> rank ->
persist + atomic usage claim.

Store reads and the commit are blocking SQLAlchemy calls and run in the
threadpool, so the event loop only ever waits on the backend or a thread.

Expected failures (validation, quota, backend, empty parse) come back as a
GenerationFailure; only unexpected errors propagate. The backend client is
always passed in by the caller.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional, Union
import logging
import random
import uuid

from starlette.concurrency import run_in_threadpool

from backend.core.config import settings, Settings
from backend.core.errors import (
    AppError,
    BackendUnavailableError,
    NoHooksProducedError,
    QuotaExceededError,
    ValidationError,
)
from backend.core.logging import log_event
from backend.core.tracing import start_span
from backend.features.entitlements import model_selection, policy, store
from backend.features.entitlements.policy import EntitlementDecision, EntitlementPolicyConfig
from backend.features.hooks import parser, persistence, prompt_builder, ranking
from backend.features.hooks.backend_client import BackendRequest, GenerativeBackend
from backend.models.entitlement import ModelClass, UserEntitlement
from backend.models.generation import GenerationRequest, ModelSelectionResult, build_generation_request
from backend.models.hook import GenerationRecord


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GenerationSuccess:
    record: GenerationRecord
    model_selection: ModelSelectionResult
    ranking_summary: ranking.RankingSummary
    entitlement: EntitlementDecision
    counter_updated: bool
    parse_path: parser.ParsePath

    ok = True


@dataclass(frozen=True)
class GenerationFailure:
    error: AppError

    ok = False

    @property
    def kind(self) -> str:
        return self.error.code


GenerationOutcome = Union[GenerationSuccess, GenerationFailure]


def _new_generation_id() -> str:
    return f"gen_{uuid.uuid4().hex}"


def _class_to_evaluate(
    entitlement: UserEntitlement,
    request: GenerationRequest,
    selection: ModelSelectionResult,
    cfg: Settings,
) -> ModelClass:
    """The class the policy decides on. A downgrade is only honored when configured."""
    if selection.was_downgraded and not cfg.ALLOW_FREE_PREMIUM_DOWNGRADE:
        return ModelClass(request.requested_model_class)
    return selection.selected_model_class


def _quota_error(decision: EntitlementDecision, selection: ModelSelectionResult) -> QuotaExceededError:
    return QuotaExceededError(
        decision.reason,
        reason=decision.reason,
        upgrade_hint=decision.upgrade_hint.to_dict() if decision.upgrade_hint else None,
        model_selection=selection.model_dump(mode="json"),
    )


def _fail(error: AppError, request: Optional[GenerationRequest] = None, user_id: Optional[str] = None) -> GenerationFailure:
    log_event(
        "warning" if error.status_code < 500 else "error",
        f"[hooks] generation failed: {error.code}",
        user_id=request.user_id if request else user_id,
        event_type="hooks.generate.failed",
        error_code=error.code,
        extra={"error_message": error.message},
    )
    return GenerationFailure(error=error)


async def generate(
    user_id: str,
    platform: str,
    objective: str,
    topic: str,
    requested_model_class: Optional[str] = None,
    *,
    backend: GenerativeBackend,
    now: Optional[datetime] = None,
    cfg: Optional[Settings] = None,
    policy_config: Optional[EntitlementPolicyConfig] = None,
    rng: Optional[random.Random] = None,
) -> GenerationOutcome:
    """Run one hook generation for user_id."""
    cfg = cfg or settings
    policy_config = policy_config or EntitlementPolicyConfig.from_settings(cfg)

    try:
        request = build_generation_request(user_id, platform, objective, topic, requested_model_class)
    except ValidationError as exc:
        return _fail(exc, user_id=user_id)

    with start_span("hooks.generate", {"user_id": request.user_id, "platform": request.platform.value}):
        entitlement = await run_in_threadpool(store.get_or_create_user_entitlement, request.user_id, now=now)
        selection = model_selection.select(entitlement, request.requested_model_class)
        evaluated_class = _class_to_evaluate(entitlement, request, selection, cfg)
        decision = policy.evaluate(entitlement, evaluated_class, now=now, config=policy_config)

        logger.info(
            "[hooks] entitlement decision",
            extra={
                "user_id": request.user_id,
                "tier": entitlement.tier,
                "model_class": evaluated_class.value,
                "status": decision.status.value,
                "was_downgraded": selection.was_downgraded,
            },
        )
        if not decision.allowed:
            return _fail(_quota_error(decision, selection), request)

        served_class = selection.selected_model_class
        prompt = prompt_builder.build(request, entitlement.personalization, model_class=served_class, cfg=cfg)
        backend_request = BackendRequest(
            model_class=served_class,
            model_name=model_selection.model_name_for(served_class, cfg),
            system_prompt=prompt.system_prompt,
            user_prompt=prompt.user_prompt,
            temperature=prompt.temperature,
            max_tokens=prompt.max_tokens,
        )

        with start_span("hooks.backend", {"model_class": served_class.value, "model_name": backend_request.model_name}):
            try:
                raw_text = await backend.complete(backend_request)
            except BackendUnavailableError as exc:
                return _fail(exc, request)
            except Exception as exc:
                logger.error("[hooks] backend raised unexpectedly", exc_info=True, extra={"user_id": request.user_id})
                return _fail(BackendUnavailableError(f"Generation backend failed: {type(exc).__name__}"), request)

        created_at = now or datetime.now(timezone.utc)
        context = parser.context_for(request.platform.value, request.objective.value, request.topic, created_at)
        parsed = parser.parse(raw_text, context, rng=rng)
        if parsed.path == parser.ParsePath.NONE:
            return _fail(NoHooksProducedError("The generation backend returned no usable hooks"), request)

        summary = ranking.summarize(parsed.hooks)
        record = GenerationRecord(
            id=_new_generation_id(),
            user_id=request.user_id,
            platform=request.platform.value,
            objective=request.objective.value,
            topic=request.topic,
            model_class=served_class.value,
            model_name=backend_request.model_name,
            hooks=list(parsed.hooks),
            top_variants=list(summary.top_variants),
            strategy_summary=ranking.build_strategy_summary(request, entitlement.personalization, summary),
            created_at=created_at,
        )

        try:
            committed = await run_in_threadpool(
                persistence.commit,
                request.user_id,
                record,
                served_class,
                entitlement=entitlement,
                now=now,
                config=policy_config,
            )
        except QuotaExceededError as exc:
            exc.model_selection = selection.model_dump(mode="json")
            return _fail(exc, request)

    log_event(
        "info",
        "[hooks] generation complete",
        user_id=request.user_id,
        generation_id=record.id,
        event_type="hooks.generate.succeeded",
        extra={
            "model_class": served_class.value,
            "parse_path": parsed.path.value,
            "hooks": len(parsed.hooks),
            "counter_updated": committed.counter_updated,
        },
    )
    return GenerationSuccess(
        record=committed.record,
        model_selection=selection,
        ranking_summary=summary,
        entitlement=decision,
        counter_updated=committed.counter_updated,
        parse_path=parsed.path,
    )
