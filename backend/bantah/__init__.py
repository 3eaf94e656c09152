import logging

import click
from flask import Flask, jsonify
from flask_cors import CORS
from flask_jwt_extended import JWTManager
from werkzeug.exceptions import HTTPException

from bantah.config import Config
from bantah.extensions import init_mongo

jwt = JWTManager()
logger = logging.getLogger(__name__)


def configure_logging(app):
    level = getattr(logging, str(app.config.get("LOG_LEVEL", "INFO")).upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s"
    )
    logging.getLogger("bantah").setLevel(level)


def register_error_handlers(app):
    @app.errorhandler(404)
    def not_found(error):
        return jsonify({"error": "Not found"}), 404

    @app.errorhandler(405)
    def method_not_allowed(error):
        return jsonify({"error": "Method not allowed"}), 405

    @app.errorhandler(Exception)
    def internal_error(error):
        if isinstance(error, HTTPException):
            return jsonify({"error": error.description}), error.code
        logger.exception("Unhandled error: %s", error)
        return jsonify({"error": "Internal server error"}), 500


def register_jwt_handlers():
    @jwt.unauthorized_loader
    def missing_token(reason):
        return jsonify({"error": "Authorization required", "detail": reason}), 401

    @jwt.invalid_token_loader
    def invalid_token(reason):
        return jsonify({"error": "Invalid token", "detail": reason}), 401

    @jwt.expired_token_loader
    def expired_token(jwt_header, jwt_payload):
        return jsonify({"error": "Token has expired"}), 401


def register_commands(app):
    @app.cli.command("init-db")
    def init_db():
        """Create MongoDB indexes."""
        from bantah.extensions import ensure_indexes, get_db
        ensure_indexes(get_db())
        click.echo("Indexes created.")

    @app.cli.command("expire-challenges")
    def expire_challenges():
        """Expire pending challenges past their deadline and refund challengers."""
        from bantah.core import ChallengeService
        count = ChallengeService.expire_stale()
        click.echo(f"Expired {count} challenges.")

    @app.cli.command("make-admin")
    @click.argument("email")
    def make_admin(email):
        """Grant admin rights to the user with EMAIL."""
        from bantah.extensions import db
        result = db.users.update_one({"email": email.lower()}, {"$set": {"is_admin": True}})
        if result.matched_count == 0:
            raise click.ClickException(f"No user with email {email}")
        click.echo(f"{email} is now an admin.")


def create_app(config_class=Config):
    app = Flask(__name__)
    app.config.from_object(config_class)

    # Disable strict slashes to prevent 308 redirects that break CORS preflight
    app.url_map.strict_slashes = False

    configure_logging(app)

    CORS(
        app,
        supports_credentials=True,
        resources={r"/api/*": {"origins": app.config["CORS_ORIGINS"]}}
    )

    # Init extensions
    init_mongo(app)
    jwt.init_app(app)
    register_jwt_handlers()
    register_error_handlers(app)
    register_commands(app)

    # Register blueprints
    from bantah.auth.routes import auth_bp
    from bantah.users.routes import users_bp
    from bantah.wallets.routes import wallets_bp
    from bantah.events.routes import events_bp
    from bantah.challenges.routes import challenges_bp
    from bantah.chats.routes import chats_bp
    from bantah.notifications.routes import bp as notifications_bp
    from bantah.leaderboard.routes import leaderboard_bp
    from bantah.referrals.routes import referrals_bp
    from bantah.admin.routes import admin_bp
    from bantah.reports.routes import reports_bp
    from bantah.support.routes import support_bp

    app.register_blueprint(auth_bp, url_prefix='/api/v1/auth')
    app.register_blueprint(users_bp, url_prefix='/api/v1/users')
    app.register_blueprint(wallets_bp, url_prefix='/api/v1/wallets')
    app.register_blueprint(events_bp, url_prefix='/api/v1/events')
    app.register_blueprint(challenges_bp, url_prefix='/api/v1/challenges')
    app.register_blueprint(chats_bp, url_prefix='/api/v1/chats')
    app.register_blueprint(notifications_bp, url_prefix='/api/v1/notifications')
    app.register_blueprint(leaderboard_bp, url_prefix='/api/v1/leaderboard')
    app.register_blueprint(referrals_bp, url_prefix='/api/v1/referrals')
    app.register_blueprint(admin_bp, url_prefix='/api/v1/admin')
    app.register_blueprint(reports_bp, url_prefix='/api/v1/reports')
    app.register_blueprint(support_bp, url_prefix='/api/v1/support')

    return app
