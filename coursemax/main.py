import os
import re
import logging
from datetime import datetime

from flask import Flask, jsonify, request, make_response
from flask_cors import CORS
from flask_socketio import SocketIO, join_room

from .errors import CourseMaxError
from .logic.assignment_coordinator import AssignmentCoordinator
from .logic.expiry_sweeper import start_expiry_sweeper
from .providers.distance_provider import get_distance_provider
from .providers.notifier import driver_room, get_notifier
from .routes.commissions import commissions_bp
from .routes.delivery_calculator import delivery_calculator_bp
from .routes.driver_assignments import dispatch_bp
from .routes.receipt import receipt_bp
from .storage.assignment_store import get_assignment_store
from .storage.supabase_repository import SupabaseRepository
from .utils.helpers import create_supabase_client, make_connection_factory

logger = logging.getLogger(__name__)

socketio = SocketIO()

# ---------------- CORS ----------------
PROD_ORIGINS = [
    "https://coursemax.ca",
    "https://www.coursemax.ca",
    "https://livreurs.coursemax.ca",
    "https://marchands.coursemax.ca",
    "https://admin.coursemax.ca",
]

# Vercel preview deployments
VERCEL_BASE = ".vercel.app"

LOCAL_HOSTS = [
    "http://localhost:3000", "http://127.0.0.1:3000",
    "http://localhost:5173", "http://127.0.0.1:5173",
]


def allowed_origins():
    extra = [o.strip() for o in os.environ.get("EXTRA_ALLOWED_ORIGINS", "").split(",") if o.strip()]
    return set(PROD_ORIGINS + LOCAL_HOSTS + extra)


def is_allowed_origin(origin: str, allowed=None) -> bool:
    if not origin:
        return False
    if origin in (allowed if allowed is not None else allowed_origins()):
        return True
    if origin.endswith(VERCEL_BASE):
        return True
    if re.match(r"^http://localhost:\d+$", origin) or re.match(r"^http://127\.0\.0\.1:\d+$", origin):
        return True
    return False


def _install_cors(app):
    allowed = allowed_origins()

    CORS(
        app,
        resources={r"/api/*": {"origins": "*"}},
        supports_credentials=True,
        allow_headers=["Content-Type", "Authorization"],
        methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    )

    @app.before_request
    def handle_preflight():
        if request.method == "OPTIONS":
            origin = request.headers.get("Origin", "")
            resp = make_response()
            resp.headers["Access-Control-Allow-Origin"] = origin if is_allowed_origin(origin, allowed) else "null"
            resp.headers["Vary"] = "Origin"
            resp.headers["Access-Control-Allow-Credentials"] = "true"
            resp.headers["Access-Control-Allow-Headers"] = "Content-Type, Authorization"
            resp.headers["Access-Control-Allow-Methods"] = "GET, POST, PUT, PATCH, DELETE, OPTIONS"
            return resp, 204

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin", "")
        if is_allowed_origin(origin, allowed):
            response.headers.setdefault("Access-Control-Allow-Origin", origin)
            response.headers.setdefault("Vary", "Origin")
            response.headers.setdefault("Access-Control-Allow-Credentials", "true")
        return response


def _install_services(app, distance_provider, assignment_store, notifier, repository):
    config = app.config

    if repository is None:
        repository = SupabaseRepository(create_supabase_client(config.get("SUPABASE_URL"),
                                                               config.get("SUPABASE_SERVICE_KEY")))
    app.repository = repository

    if distance_provider is None:
        try:
            distance_provider = get_distance_provider(config)
        except RuntimeError as e:
            logger.warning(f"⚠️ Distance provider not configured: {e}")
    app.distance_provider = distance_provider

    if assignment_store is None:
        conn_factory = config.get("DB_CONN_FACTORY") or make_connection_factory(config.get("DATABASE_URL"))
        assignment_store = get_assignment_store(config, conn_factory)
    app.assignment_store = assignment_store

    if notifier is None:
        try:
            notifier = get_notifier(config, socketio=socketio, token_resolver=repository.get_driver_token)
        except RuntimeError as e:
            logger.warning(f"⚠️ {e} Falling back to Socket.IO notifications.")
            notifier = get_notifier({"NOTIFIER": "socketio"}, socketio=socketio)
    app.notifier = notifier

    app.assignment_coordinator = AssignmentCoordinator(
        assignment_store,
        notifier,
        default_ttl_seconds=config.get("ASSIGNMENT_TTL_SECONDS", 300),
    )


def _register_status_routes(app):
    @app.route('/')
    def index():
        return jsonify({"status": "online", "message": "CourseMax dispatch server running"})

    @app.route('/health')
    def health_check_simple():
        return jsonify({
            "status": "ok",
            "message": "Server is running",
            "timestamp": datetime.now().isoformat(),
            "service": "CourseMax Settlement & Dispatch API",
        }), 200

    @app.route('/api/health')
    def health_check():
        return jsonify({
            "status": "healthy",
            "supabase": "connected" if getattr(app.repository, "client", None) else "disconnected",
            "distance_provider": "configured" if app.distance_provider else "not_configured",
            "assignment_store": type(app.assignment_store).__name__,
            "cors_enabled": True,
        })

    @app.route('/api/debug/routes')
    def debug_routes():
        rules = []
        for rule in app.url_map.iter_rules():
            methods = sorted(m for m in rule.methods if m not in ('HEAD',))
            rules.append({"rule": str(rule), "methods": methods, "endpoint": rule.endpoint})
        return jsonify({"routes": rules})


def _register_error_handlers(app):
    @app.errorhandler(CourseMaxError)
    def handle_coursemax_error(error):
        if error.status_code >= 500:
            logger.error(f"{type(error).__name__}: {error.message} ({error.detail})")
        else:
            logger.info(f"{type(error).__name__}: {error.message}")
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(404)
    def not_found(error):
        return jsonify({"status": "error", "message": "Endpoint not found", "path": request.path}), 404

    @app.errorhandler(405)
    def method_not_allowed(error):
        return jsonify({"status": "error", "message": "Method not allowed", "method": request.method}), 405

    @app.errorhandler(500)
    def internal_error(error):
        logger.error(f"Internal error: {error}", exc_info=True)
        return jsonify({"status": "error", "message": "Internal server error"}), 500


def _register_socket_handlers():
    @socketio.on('connect')
    def handle_connect():
        logger.info(f'WebSocket client connected: {request.sid}')

    @socketio.on('disconnect')
    def handle_disconnect():
        logger.info(f'WebSocket client disconnected: {request.sid}')

    @socketio.on('join_driver')
    def handle_join_driver(data):
        driver_id = (data or {}).get('driver_id')
        if not driver_id:
            return {'status': 'error', 'message': 'driver_id is required'}
        join_room(driver_room(driver_id))
        logger.info(f'Driver {driver_id} listening for assignments on {request.sid}')
        return {'status': 'joined', 'room': driver_room(driver_id)}


_register_socket_handlers()


def create_app(config_overrides=None, *, distance_provider=None, assignment_store=None, notifier=None,
               repository=None):
    app = Flask(__name__)
    app.url_map.strict_slashes = False

    config_path = os.path.join(os.path.dirname(os.path.abspath(__file__)), 'config.py')
    app.config.from_pyfile(config_path)
    if config_overrides:
        app.config.update(config_overrides)

    _install_cors(app)
    socketio.init_app(
        app,
        cors_allowed_origins="*",
        async_mode=app.config.get("SOCKETIO_ASYNC_MODE", "eventlet"),
        logger=False,
        engineio_logger=False,
    )
    _install_services(app, distance_provider, assignment_store, notifier, repository)

    app.register_blueprint(delivery_calculator_bp, url_prefix='/api/delivery')
    app.register_blueprint(receipt_bp, url_prefix='/api/receipt')
    app.register_blueprint(dispatch_bp, url_prefix='/api/dispatch')
    app.register_blueprint(commissions_bp, url_prefix='/api/admin/commissions')

    _register_status_routes(app)
    _register_error_handlers(app)

    if app.config.get("EXPIRY_SWEEP_ENABLED") and not app.config.get("TESTING"):
        start_expiry_sweeper(socketio, app.assignment_coordinator, app.config.get("EXPIRY_SWEEP_INTERVAL_SECONDS", 300))

    return app


if __name__ == '__main__':
    logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')
    app = create_app()
    port = int(os.environ.get('PORT', 5000))
    debug = os.environ.get('FLASK_DEBUG', 'False').lower() == 'true'
    logger.info(f"Starting server on port {port} (debug: {debug})")
    socketio.run(app, host='0.0.0.0', port=port, debug=debug, use_reloader=debug)
