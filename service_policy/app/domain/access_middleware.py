"""
Access-control middleware for FastAPI routes.
"""

from typing import Any, Awaitable, Callable, Dict, Optional

from fastapi import HTTPException, Request

from shared.logging import get_logger, set_user_context

from ..policy.engine import PolicyEngine
from ..policy.models import AccessContext, AccessRequest, AccessResult

ResourceIdGetter = Callable[[Request], Optional[str]]
ContextGetter = Callable[[Request], AccessContext]


class AccessControlMiddleware:
    """Turns authenticated HTTP requests into engine decisions.

    The upstream authentication layer is expected to have stored the
    caller identity in `request.state.user_info` (a dict with at least
    `user_id`; optionally `organization_id` and `tournament_id`).

    The default context carries no owner unless `owner_param` names the
    path parameter holding the owning user id. Routes relying on
    ownership grants must pass `owner_param` or their own `get_context`.
    """

    def __init__(self, engine: PolicyEngine):
        self.engine = engine
        self.logger = get_logger("policy.access_middleware")

    def get_user_info(self, request: Request) -> Dict[str, Any]:
        """Return the authenticated identity or raise 401."""
        user_info = getattr(request.state, "user_info", None)
        if not user_info or not user_info.get("user_id"):
            raise HTTPException(status_code=401, detail="Authentication required")
        return user_info

    def build_access_request(self, request: Request, user_info: Dict[str, Any], action: str,
                             resource_type: Optional[str] = None,
                             get_resource_id: Optional[ResourceIdGetter] = None,
                             get_context: Optional[ContextGetter] = None,
                             owner_param: Optional[str] = None) -> AccessRequest:
        """Derive the AccessRequest for an inbound HTTP request."""
        if resource_type is None:
            route = request.scope.get("route")
            segments = [part for part in getattr(route, "path", "").split("/") if part]
            resource_type = segments[0] if segments else "unknown"

        if get_resource_id is not None:
            resource_id = get_resource_id(request)
        else:
            resource_id = request.path_params.get("id")

        if get_context is not None:
            context = get_context(request)
        else:
            context = AccessContext(
                owner_id=request.path_params.get(owner_param) if owner_param else None,
                organization_id=user_info.get("organization_id"),
                tournament_id=user_info.get("tournament_id"),
                metadata={"requesting_user_id": user_info["user_id"]},
            )

        return AccessRequest(
            user_id=user_info["user_id"],
            action=action,
            resource_type=resource_type,
            resource_id=resource_id,
            context=context,
        )

    async def authorize(self, request: Request, action: str,
                        resource_type: Optional[str] = None,
                        get_resource_id: Optional[ResourceIdGetter] = None,
                        get_context: Optional[ContextGetter] = None,
                        owner_param: Optional[str] = None) -> AccessResult:
        """Authorize the request; raises 401/403, or 500 on internal faults."""
        user_info = self.get_user_info(request)
        set_user_context(user_info["user_id"])

        try:
            access_request = self.build_access_request(
                request, user_info, action, resource_type, get_resource_id, get_context, owner_param
            )
            result = await self.engine.check_access(access_request)
        except Exception as e:
            self.logger.error("Access control error", error=str(e), exc_info=True)
            raise HTTPException(status_code=500, detail="Access control error")

        if not result.allowed:
            self.logger.warning(
                "Request denied",
                user_id=access_request.user_id,
                action=action,
                resource_type=access_request.resource_type,
                reason=result.reason
            )
            raise HTTPException(
                status_code=403,
                detail={"error": "Access denied", "reason": result.reason}
            )

        request.state.access_result = result
        return result

    def require_permission(self, action: str,
                           resource_type: Optional[str] = None,
                           get_resource_id: Optional[ResourceIdGetter] = None,
                           get_context: Optional[ContextGetter] = None,
                           owner_param: Optional[str] = None
                           ) -> Callable[[Request], Awaitable[AccessResult]]:
        """FastAPI dependency factory: `Depends(middleware.require_permission("read"))`."""

        async def dependency(request: Request) -> AccessResult:
            return await self.authorize(
                request, action, resource_type, get_resource_id, get_context, owner_param
            )

        return dependency
