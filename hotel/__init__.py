import logging

from flask import Flask
from flask_sqlalchemy import SQLAlchemy
from flask_jwt_extended import JWTManager
from flask_migrate import Migrate

db = SQLAlchemy()
migrate = Migrate()
jwt = JWTManager()


def configure_logging(app):
    logging.basicConfig(
        level=app.config.get('LOG_LEVEL', 'INFO'),
        format='%(asctime)s [%(levelname)s] %(name)s: %(message)s',
    )
    logging.getLogger('hotel').setLevel(app.config.get('LOG_LEVEL', 'INFO'))


def create_app(config_object='hotel.config.Config'):
    app = Flask(__name__)
    app.config.from_object(config_object)
    configure_logging(app)

    # Extensions
    db.init_app(app)
    migrate.init_app(app, db)
    jwt.init_app(app)

    with app.app_context():
        from hotel import auth, routes
        app.register_blueprint(routes.api)
        app.cli.add_command(auth.create_admin_command)

        db.create_all()

    return app
