from fastapi import APIRouter, Request, Response
from fastapi.responses import JSONResponse

from apiguard.core.errors import NotFoundAppError
from apiguard.core.rate_limit import rate_limited
from apiguard.core.rate_limiters import RateLimiterRegistry, RateLimitPolicy
from apiguard.schemas.rate_limit import RateLimitPoliciesResponse, RateLimitPolicyInfo

router = APIRouter(tags=["Rate Limits"])


def _policy_info(policy: RateLimitPolicy) -> RateLimitPolicyInfo:
    return RateLimitPolicyInfo(
        name=policy.name,
        window_ms=policy.window_ms,
        max_requests=policy.max_requests,
    )


@router.get(
    "/rate-limits",
    response_model=RateLimitPoliciesResponse,
    responses={429: {"description": "Rate limit exceeded"}},
)
@rate_limited("api")
async def list_rate_limits(request: Request) -> Response:
    """List the configured rate limit policies.

    Counted against the caller's ``api`` budget; the response carries the
    ``X-RateLimit-*`` headers.
    """
    registry: RateLimiterRegistry = request.app.state.rate_limiters
    payload = RateLimitPoliciesResponse(
        enabled=registry.enabled,
        policies=[_policy_info(policy) for policy in registry.policies()],
    )
    return JSONResponse(content=payload.model_dump())


@router.get(
    "/rate-limits/{name}",
    response_model=RateLimitPolicyInfo,
    responses={404: {"description": "Unknown policy"}, 429: {"description": "Rate limit exceeded"}},
)
@rate_limited("api")
async def get_rate_limit(request: Request, name: str) -> Response:
    """Describe a single policy.

    Raises:
        NotFoundAppError: If no policy has that name (rendered as 404).
    """
    registry: RateLimiterRegistry = request.app.state.rate_limiters
    policy = next((p for p in registry.policies() if p.name == name), None)
    if policy is None:
        raise NotFoundAppError(
            code="rate_limit_policy_not_found",
            message=f"No rate limit policy named '{name}'",
        )
    return JSONResponse(content=_policy_info(policy).model_dump())
