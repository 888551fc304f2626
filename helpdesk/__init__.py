import os
from flask import Flask, g, session, request, jsonify, redirect, url_for
from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate
from flask_login import LoginManager, login_required, current_user
from flask_bcrypt import Bcrypt
from flask_wtf.csrf import CSRFProtect
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_talisman import Talisman
from redis import Redis
from sqlalchemy import text
from config import config
import sentry_sdk
from sentry_sdk.integrations.flask import FlaskIntegration
from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration

db = SQLAlchemy()
migrate = Migrate()
login_manager = LoginManager()
bcrypt = Bcrypt()
csrf = CSRFProtect()

# Storage and defaults come from the RATELIMIT_* config keys
limiter = Limiter(key_func=get_remote_address)

# Blueprints that only speak JSON; they get a 401 instead of the sign-in redirect
JSON_BLUEPRINTS = {'support', 'crm', 'tasks', 'time_entries', 'portal', 'help_center', 'admin', 'ai_agent', 'api', 'tenant'}

ERROR_MESSAGES = {
    400: 'Bad request',
    401: 'Authentication required',
    403: 'Access denied',
    404: 'Not found',
    429: 'Too many requests. Please slow down.',
}


def init_sentry(app):
    """Error tracking; a no-op unless SENTRY_DSN is configured"""
    dsn = app.config.get('SENTRY_DSN')
    environment = app.config.get('FLASK_ENV') or os.environ.get('FLASK_ENV', 'development')

    if not dsn:
        app.logger.info("Sentry DSN not configured - error tracking disabled")
        return

    sentry_sdk.init(
        dsn=dsn,
        integrations=[FlaskIntegration(), SqlalchemyIntegration()],
        traces_sample_rate=app.config.get('SENTRY_TRACES_SAMPLE_RATE', 0.1),
        release=os.environ.get('HEROKU_SLUG_COMMIT', 'unknown'),
        environment=environment,
        send_default_pii=False,  # Ticket bodies and contact emails stay out of Sentry
    )
    app.logger.info(f"Sentry initialized for {environment}")


def register_extensions(app, config_name):
    db.init_app(app)
    migrate.init_app(app, db)
    login_manager.init_app(app)
    bcrypt.init_app(app)
    csrf.init_app(app)
    limiter.init_app(app)

    if config_name == 'production':
        Talisman(
            app,
            force_https=True,
            strict_transport_security=True,
            strict_transport_security_max_age=31536000,
            content_security_policy={
                'default-src': "'self'",
                'style-src': ["'self'", "'unsafe-inline'"],
                'img-src': ["'self'", "data:", "https:"],
            },
            frame_options='DENY',
        )

    login_manager.login_view = 'auth.login'
    login_manager.login_message = 'Please log in to access this page.'
    login_manager.login_message_category = 'info'

    @login_manager.unauthorized_handler
    def unauthorized():
        if request.blueprint in JSON_BLUEPRINTS or request.is_json:
            return jsonify({'error': ERROR_MESSAGES[401]}), 401
        return redirect(url_for('auth.login', next=request.path))


def register_blueprints(app):
    from helpdesk.blueprints.auth import auth_bp
    from helpdesk.blueprints.tenant import tenant_bp
    from helpdesk.blueprints.support import support_bp
    from helpdesk.blueprints.crm import crm_bp
    from helpdesk.blueprints.tasks import tasks_bp
    from helpdesk.blueprints.time_entries import time_entries_bp
    from helpdesk.blueprints.portal import portal_bp
    from helpdesk.blueprints.help_center import help_center_bp
    from helpdesk.blueprints.admin import admin_bp
    from helpdesk.blueprints.ai_agent import ai_agent_bp
    from helpdesk.blueprints.api import api_bp

    app.register_blueprint(auth_bp)
    for blueprint, prefix in (
        (tenant_bp, '/tenant'),
        (support_bp, '/support'),
        (crm_bp, '/crm'),
        (tasks_bp, '/tasks'),
        (time_entries_bp, '/time-entries'),
        (portal_bp, '/portal'),
        (help_center_bp, '/help'),
        (admin_bp, '/admin'),
        (ai_agent_bp, '/api/ai-agent'),
        (api_bp, '/api'),
    ):
        app.register_blueprint(blueprint, url_prefix=prefix)

    # Bearer-key API; there is no session cookie to forge
    csrf.exempt(ai_agent_bp)


def register_error_handlers(app):
    def _handler(code):
        def handle(error):
            # abort(code, description) messages pass through for client errors
            if code in (400, 401, 403):
                return jsonify({'error': getattr(error, 'description', None) or ERROR_MESSAGES[code]}), code
            return jsonify({'error': ERROR_MESSAGES[code]}), code
        return handle

    for code in ERROR_MESSAGES:
        app.register_error_handler(code, _handler(code))

    @app.errorhandler(500)
    def internal_error(error):
        db.session.rollback()
        app.logger.error(f"Unhandled error on {request.method} {request.path}: {error}")
        return jsonify({'error': 'Internal server error'}), 500


def _redis_status(app):
    """Returns (ok, label) for the health report"""
    if not app.config.get('HEALTH_CHECK_REDIS', True):
        return True, 'skipped'
    try:
        Redis.from_url(app.config['RATELIMIT_STORAGE_URI']).ping()
        return True, 'connected'
    except Exception as e:
        return False, f'error: {e}'


def register_core_routes(app):
    from helpdesk.utils.timezone_utils import format_datetime_for_user

    @app.template_filter('tenant_timezone')
    def tenant_timezone_filter(utc_datetime, format_str='%b %d, %I:%M %p %Z'):
        tenant = getattr(g, 'current_tenant', None)
        if tenant and tenant.timezone:
            return format_datetime_for_user(utc_datetime, tenant.timezone, format_str)
        return utc_datetime.strftime('%b %d, %I:%M %p UTC') if utc_datetime else ''

    @app.before_request
    def load_tenant_context():
        """Selected workspace, from the agent session"""
        from helpdesk.models.tenant import Tenant
        tenant_id = session.get('current_tenant_id')
        g.current_tenant = db.session.get(Tenant, tenant_id) if tenant_id else None

    @app.route('/')
    def index():
        if current_user.is_authenticated:
            return redirect(url_for('tenant.home'))
        return redirect(url_for('auth.login'))

    @app.route('/health')
    def health_check():
        """Used by the load balancer; 500 when the database or Redis is unreachable"""
        report = {
            'status': 'healthy',
            'version': os.environ.get('HEROKU_RELEASE_VERSION', 'unknown'),
            'environment': os.environ.get('FLASK_ENV', 'development'),
        }

        try:
            db.session.execute(text('SELECT 1'))
            report['database'] = 'connected'
        except Exception as e:
            report.update(status='unhealthy', database=f'error: {e}')
            return jsonify(report), 500

        redis_ok, report['redis'] = _redis_status(app)
        if not redis_ok:
            report['status'] = 'unhealthy'
            return jsonify(report), 500

        return jsonify(report), 200

    @app.route('/api/search')
    @login_required
    def api_search():
        """Search tickets, contacts, companies and KB articles in the current workspace"""
        query = request.args.get('q', '').strip()
        if len(query) < 2:
            return jsonify({'results': {}, 'total_count': 0})

        if not g.current_tenant or not current_user.has_tenant_access(g.current_tenant.id):
            return jsonify({'results': {}, 'total_count': 0, 'error': 'No tenant selected'}), 403

        from helpdesk.services.search_service import UnifiedSearchService

        try:
            return jsonify(UnifiedSearchService.search_all(
                tenant_id=g.current_tenant.id,
                query=query,
                limit=app.config.get('SEARCH_RESULTS_PER_TYPE', 5)
            ))
        except Exception as e:
            app.logger.error(f"Unified search failed for tenant {g.current_tenant.id}: {e}")
            return jsonify({'results': {}, 'total_count': 0, 'error': 'Search failed'}), 500


def create_app(config_name='default'):
    """Application factory"""
    app = Flask(__name__)
    app.config.from_object(config[config_name])

    # Before the extensions, so start-up failures are reported too
    init_sentry(app)

    register_extensions(app, config_name)

    # Models must be imported for Flask-Migrate autogenerate
    with app.app_context():
        from helpdesk import models  # noqa: F401

    register_blueprints(app)
    register_error_handlers(app)
    register_core_routes(app)

    return app
