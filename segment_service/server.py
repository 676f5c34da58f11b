"""Flask server for Segment Service."""

import gzip
import logging

from flask import Flask, request, jsonify
from segment_service.api import SegmentService
from segment_service.config import CONNECTION_STRING, HOST, PORT, NO_DB, OTEL_SERVICE_NAME, OTEL_COLLECTOR_ENDPOINT, OTEL_ENABLE_TRACING
from segment_service.context import SessionContext
from segment_service.database.segment_store import SegmentStoreError
from segment_service.exceptions import (
    PermissionDeniedError, RuleEvaluationError, RuleValidationError, SegmentNotFoundError,
    WorkerNotFoundError,
)
from segment_service.telemetry import telemetry_init

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

# Initialize OpenTelemetry tracing (before Flask app creation)
telemetry_init(OTEL_SERVICE_NAME, OTEL_COLLECTOR_ENDPOINT or None, OTEL_ENABLE_TRACING)

app = Flask(__name__)

# Auto-instrument Flask routes (creates root span per request, extracts traceparent)
from opentelemetry.instrumentation.flask import FlaskInstrumentor
FlaskInstrumentor().instrument_app(app)

logger.info("Initializing SegmentService...")
service = SegmentService(connection_string=None if NO_DB else CONNECTION_STRING)
if NO_DB:
    logger.info("Running without segment database, stored segment endpoints are unavailable")
logger.info(f"Loaded {len(service.engine.catalog)} worker attributes")


@app.before_request
def decompress_gzip():
    """Decompress gzip-encoded request bodies (large worker sets)."""
    if request.content_encoding == "gzip":
        request._cached_data = gzip.decompress(request.get_data())


@app.after_request
def compress_gzip(response):
    """Gzip-compress response if the request was gzip-encoded."""
    if request.content_encoding == "gzip" and response.status_code == 200:
        response.data = gzip.compress(response.data)
        response.headers["Content-Encoding"] = "gzip"
        response.headers["Content-Length"] = len(response.data)
    return response


def _json_body() -> dict:
    input_json = request.get_json(silent=True)
    if not input_json or not isinstance(input_json, dict):
        raise ValueError("Request body must be a JSON object")
    return input_json


def _error_response(e: Exception):
    """Map service exceptions to HTTP responses."""
    if isinstance(e, PermissionDeniedError):
        logger.warning(f"Permission denied: {e}")
        return jsonify({"error": str(e)}), 403
    if isinstance(e, (SegmentNotFoundError, WorkerNotFoundError)):
        return jsonify({"error": str(e)}), 404
    if isinstance(e, RuleValidationError):
        return jsonify({"error": str(e), "errors": [issue.to_dict() for issue in e.issues]}), 400
    if isinstance(e, (ValueError, RuleEvaluationError)):
        logger.warning(f"Validation error: {e}")
        return jsonify({"error": str(e)}), 400
    if isinstance(e, SegmentStoreError):
        logger.error(f"Segment store unavailable: {e}")
        return jsonify({"error": str(e)}), 503
    logger.exception("Processing failed")
    return jsonify({"error": f"Processing failed: {str(e)}"}), 500


@app.route('/health', methods=['GET'])
def health():
    """Health check endpoint."""
    return jsonify({"status": "ok"}), 200


@app.route('/api/segments/attributes', methods=['GET'])
def get_attributes():
    """Worker attributes with their operators, default operator and options."""
    return jsonify(service.attributes()), 200


@app.route('/api/segments/rules/validate', methods=['POST'])
def validate_rule():
    """Validate a rule tree. Expects {"rule": {...}}."""
    try:
        return jsonify(service.validate(_json_body())), 200
    except Exception as e:
        return _error_response(e)


@app.route('/api/segments/rules/evaluate', methods=['POST'])
def evaluate_rule():
    """Evaluate a rule against one worker. Expects {"rule": {...}, "worker": {...}}."""
    try:
        return jsonify(service.evaluate(_json_body())), 200
    except Exception as e:
        return _error_response(e)


@app.route('/api/segments/rules/test', methods=['POST'])
def dry_run_rule():
    """Dry run of a rule against sample workers with match statistics."""
    try:
        context = SessionContext.from_headers(request.headers) if "X-Organization-Id" in request.headers else None
        return jsonify(service.test(_json_body(), context)), 200
    except Exception as e:
        return _error_response(e)


@app.route('/api/segments/rules/describe', methods=['POST'])
def describe_rule():
    """Plain English rendering of a rule."""
    try:
        return jsonify(service.describe(_json_body())), 200
    except Exception as e:
        return _error_response(e)


@app.route('/api/segments/membership', methods=['POST'])
def compute_membership():
    """Members of one rule ("rule") or of several segments ("rules") among the given workers."""
    try:
        return jsonify(service.membership(_json_body())), 200
    except Exception as e:
        return _error_response(e)


@app.route('/api/segments/<segment_id>/refresh', methods=['POST'])
def refresh_segment(segment_id):
    """Recompute the members of a stored segment from the organization's workers."""
    try:
        context = SessionContext.from_headers(request.headers)
        return jsonify(service.refresh(segment_id, context, request.get_json(silent=True))), 200
    except Exception as e:
        return _error_response(e)


@app.route('/api/segments/<segment_id>/rule', methods=['PUT'])
def save_segment_rule(segment_id):
    """Validate and store the rule of a segment."""
    try:
        context = SessionContext.from_headers(request.headers)
        return jsonify(service.save_rule(segment_id, context, _json_body())), 200
    except Exception as e:
        return _error_response(e)


@app.route('/api/segments/workers/<worker_id>/sync', methods=['POST'])
def sync_worker_segments(worker_id):
    """Re-evaluate a changed worker against the rule based segments. Optional {"changedFields": [...]}."""
    try:
        context = SessionContext.from_headers(request.headers)
        return jsonify(service.sync_worker(worker_id, context, request.get_json(silent=True))), 200
    except Exception as e:
        return _error_response(e)


if __name__ == '__main__':
    app.run(host=HOST, port=PORT, debug=True)
