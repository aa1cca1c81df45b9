import logging
import os
from logging.handlers import RotatingFileHandler

from flask import Flask, jsonify
from sqlalchemy import event
from werkzeug.exceptions import HTTPException
from config import Config
from pesantren.extensions import db, migrate, login_manager, csrf


def _setup_logging(app):
    """Log ke file berputar (logs/pesantren.log) kecuali saat debug/testing."""
    if app.debug or app.testing or not app.config.get('LOG_TO_FILE', True):
        return

    log_dir = app.config.get('LOG_DIR', 'logs')
    os.makedirs(log_dir, exist_ok=True)

    file_handler = RotatingFileHandler(os.path.join(log_dir, 'pesantren.log'), maxBytes=10240, backupCount=10)
    file_handler.setFormatter(logging.Formatter(
        '%(asctime)s %(levelname)s: %(message)s [in %(pathname)s:%(lineno)d]'
    ))
    file_handler.setLevel(logging.INFO)
    app.logger.addHandler(file_handler)
    app.logger.setLevel(logging.INFO)
    app.logger.info('Pesantren admin startup')


def create_app(config_class=Config):
    app = Flask(__name__)
    app.config.from_object(config_class)

    # 1. Init Extensions
    db.init_app(app)
    migrate.init_app(app, db)
    login_manager.init_app(app)
    csrf.init_app(app)

    _setup_logging(app)

    # 2. Import Models (Penting agar db.create_all mendeteksi tabel)
    from pesantren import models
    from pesantren.utils.tokens import verify_auth_token
    from pesantren.decorators import unauthorized_response

    # 3. User Loader (session cookie) & Bearer token
    @login_manager.user_loader
    def load_user(user_id):
        return db.session.get(models.User, int(user_id))

    @login_manager.request_loader
    def load_user_from_request(req):
        header = req.headers.get('Authorization', '')
        if not header.startswith('Bearer '):
            return None
        user_id = verify_auth_token(header.split(' ', 1)[1].strip())
        if user_id is None:
            return None
        return db.session.get(models.User, int(user_id))

    @login_manager.unauthorized_handler
    def unauthorized():
        return unauthorized_response()

    # 4. Satu tahun ajaran aktif (dijaga di batas tulis ke DB)
    if not event.contains(db.session, "before_flush", models.guard_single_active_year):
        event.listen(db.session, "before_flush", models.guard_single_active_year)

    # 5. Registrasi Blueprint
    from pesantren.routes.auth import auth_bp
    from pesantren.routes.promotion import promotion_bp
    from pesantren.routes.academic import academic_bp
    from pesantren.routes.billing import billing_bp

    # API JSON: auth via session/Bearer, bukan form HTML
    for bp in (auth_bp, promotion_bp, academic_bp, billing_bp):
        csrf.exempt(bp)

    app.register_blueprint(auth_bp, url_prefix='/auth')
    app.register_blueprint(promotion_bp)
    app.register_blueprint(academic_bp)
    app.register_blueprint(billing_bp)

    # 6. Error handler JSON
    @app.errorhandler(models.ActiveAcademicYearConflict)
    def handle_active_year_conflict(exc):
        db.session.rollback()
        return jsonify({"message": str(exc)}), 409

    @app.errorhandler(HTTPException)
    def handle_http_error(exc):
        return jsonify({"message": exc.description}), exc.code

    @app.errorhandler(Exception)
    def handle_unexpected_error(exc):
        db.session.rollback()
        app.logger.exception("Unhandled error")
        return jsonify({"message": "Internal Server Error", "errorDetails": str(exc)}), 500

    return app
