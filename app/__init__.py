import os
import logging

from flask import Flask
from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate
from flask_cors import CORS
from flask_caching import Cache
from flask_jwt_extended import JWTManager
from config import config

# Initialize extensions
db = SQLAlchemy()
migrate = Migrate()
jwt = JWTManager()
cache = Cache()


def create_app(config_name='default', config_overrides=None):
    """Application factory function"""
    app = Flask(__name__)

    # Load configuration
    app.config.from_object(config[config_name])
    if config_overrides:
        app.config.update(config_overrides)

    base_level = getattr(logging, str(app.config['LOG_LEVEL']).upper(), logging.INFO)
    logging.basicConfig(level=base_level, format='%(asctime)s %(levelname)s [%(name)s] %(message)s')

    os.makedirs(app.config['STORAGE_PATH'], exist_ok=True)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)
    jwt.init_app(app)
    cache.init_app(app)
    CORS(app)

    from app.utils.runtime import RuntimeContext
    app.extensions['runtime'] = RuntimeContext(app.config['DEBUG_ENABLED'], base_level)

    # Register blueprints
    from app.routes.upload import upload_bp
    from app.routes.admin import admin_bp
    from app.routes.quota import quota_bp
    app.register_blueprint(upload_bp, url_prefix='/api/upload')
    app.register_blueprint(admin_bp, url_prefix='/api/admin')
    app.register_blueprint(quota_bp, url_prefix='/api')

    with app.app_context():
        from app.services import init_scheduler
        init_scheduler(app)
    return app
