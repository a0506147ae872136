"""
Quart application exposing the analysis API.
Accepts requests, reports their status and serves form suggestions.
"""
import logging
from typing import Optional

from quart import Quart, jsonify, request
from quart_cors import cors

from core.errors import QuotaExceeded, ValidationError
from services.config import load_config
from workflows.pipeline_factory import Services, create_services

logger = logging.getLogger(__name__)

_CLIENT_IP_HEADERS = ("x-forwarded-for", "x-real-ip", "cf-connecting-ip", "true-client-ip")


def client_address() -> str:
    """First available client IP, honouring common proxy headers."""
    for header in _CLIENT_IP_HEADERS:
        value = request.headers.get(header)
        if value:
            return value.split(",")[0].strip()
    return request.remote_addr or "unknown"


def create_app(services: Optional[Services] = None) -> Quart:
    app = Quart(__name__)
    app = cors(app)

    state = {"services": services}

    def get_services() -> Services:
        """Get or create the shared pipeline services."""
        if state["services"] is None:
            state["services"] = create_services(load_config())
        return state["services"]

    # ==================== Lifecycle ====================

    @app.before_serving
    async def startup():
        await get_services().tracker.initialize()
        logger.info("API started, database initialized")

    @app.after_serving
    async def shutdown():
        if state["services"] is not None:
            await state["services"].close()

    # ==================== Error handlers ====================

    @app.errorhandler(ValidationError)
    async def handle_validation_error(error: ValidationError):
        return jsonify({"error": str(error), "type": "validation_error"}), 400

    @app.errorhandler(QuotaExceeded)
    async def handle_quota_exceeded(error: QuotaExceeded):
        response = jsonify({"error": str(error), "type": "quota_exceeded"})
        headers = {"Retry-After": str(error.retry_after)} if error.retry_after else {}
        return response, 429, headers

    @app.errorhandler(500)
    async def handle_internal_error(error):
        logger.error(f"Unhandled error: {getattr(error, 'original_exception', error)}")
        return jsonify({"error": "Internal server error"}), 500

    # ==================== Routes ====================

    @app.route('/health')
    async def health():
        usage = await get_services().orchestrator.rate_limiter.usage()
        return jsonify({"status": "ok", "rate_limit": usage})

    @app.route('/analysis/analyze', methods=['POST'])
    async def analyze():
        """Accept a request and start the pipeline in the background."""
        body = await request.get_json(silent=True)
        if not isinstance(body, dict):
            raise ValidationError("Request body must be a JSON object")

        # "subreddits" is accepted for older clients
        targets = body.get("targets", body.get("subreddits"))
        keywords = body.get("keywords")
        if targets is None or keywords is None:
            raise ValidationError("targets and keywords are required")

        request_id = await get_services().orchestrator.submit(
            targets, keywords, source_meta=client_address()
        )
        return jsonify({"request_id": request_id}), 202

    @app.route('/status/<request_id>')
    async def get_status(request_id: str):
        status = await get_services().tracker.get_request_status(request_id)
        if status is None:
            return jsonify({"error": "Status not found"}), 404
        return jsonify(status.model_dump(mode="json"))

    @app.route('/status')
    async def list_status():
        services = get_services()
        recent = await services.tracker.list_recent(services.config.RECENT_STATUS_LIMIT)
        return jsonify([status.model_dump(mode="json") for status in recent])

    @app.route('/reddit/subreddits/search')
    async def search_subreddits():
        query = request.args.get('q', '')
        if len(query.strip()) < 2:
            return jsonify({"suggestions": []})
        suggestions = await get_services().source.search_communities(query)
        return jsonify({"suggestions": suggestions})

    @app.route('/keyword-suggestions')
    async def keyword_suggestions():
        query = request.args.get('q', '')
        suggestions = await get_services().keyword_suggestions.get_suggestions(query)
        return jsonify({"suggestions": suggestions})

    return app
