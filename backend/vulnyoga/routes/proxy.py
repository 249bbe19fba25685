# Overview: Flask API route for the outbound image proxy; SSRF-guarded fetch of caller-supplied URLs.

from flask import Blueprint, Response, request, current_app, g

from ..decorators import optional_auth
from ..extensions import get_audit_sink, get_policy
from ..services import outbound_service
from ..services.outbound_service import OutboundFetchError
from ..validation import ValidationError
from ..errors import error_response, internal_error


proxy_bp = Blueprint("proxy", __name__, url_prefix="/api/v1/image")


@proxy_bp.get("/proxy")
@optional_auth
def proxy_image_route():
    """
    GET /api/v1/image/proxy?url=<remote image>

    Error responses:
        400: url missing
        403: URL rejected by the outbound guard (strict SSRF policy)
        4xx/5xx: remote status, or 502 when the host is unreachable
    """
    try:
        policy = get_policy()
        url = request.args.get("url")

        decision = outbound_service.check_outbound_url(g.principal, url, policy)
        get_audit_sink().emit_all(decision.events)
        if not decision.allowed:
            return error_response(decision.reason, 403)

        resource = outbound_service.fetch_image(
            url,
            policy,
            timeout=current_app.config["OUTBOUND_TIMEOUT_SECONDS"],
        )
        return Response(
            resource.content,
            content_type=resource.content_type,
            headers={"Cache-Control": "public, max-age=3600"},
        )

    except ValidationError as e:
        return error_response(str(e), 400, e)
    except OutboundFetchError as e:
        return error_response(str(e), e.status_code)
    except Exception as e:
        return internal_error("Image proxy failed", e)
