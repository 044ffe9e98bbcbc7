import logging
from functools import wraps

import bcrypt
import click
from flask import jsonify
from flask.cli import with_appcontext
from flask_jwt_extended import get_jwt, verify_jwt_in_request

from hotel import db, jwt
from hotel.models import TokenBlocklist, User

logger = logging.getLogger(__name__)


def hash_password(password):
    return bcrypt.hashpw(password.encode('utf-8'), bcrypt.gensalt(rounds=8)).decode('utf-8')


def check_password(password, hashed):
    return bcrypt.checkpw(password.encode('utf-8'), hashed.encode('utf-8'))


def authenticate(email, password):
    """Return the user for valid credentials, otherwise None."""
    if not isinstance(email, str) or not isinstance(password, str):
        logger.warning('Rejected login with malformed credentials')
        return None
    user = User.query.filter_by(email=email.strip().lower()).first()
    if user is None or not password or not check_password(password, user.password):
        logger.warning('Rejected login for %s', email)
        return None
    return user


def revoke_token(jti):
    db.session.add(TokenBlocklist(jti=jti))
    db.session.commit()


def admin_required(fn):
    @wraps(fn)
    def wrapper(*args, **kwargs):
        verify_jwt_in_request()
        if get_jwt().get('role') != 'admin':
            return jsonify({'error': 'Admin access required'}), 403
        return fn(*args, **kwargs)
    return wrapper


@jwt.token_in_blocklist_loader
def is_token_revoked(jwt_header, jwt_payload):
    jti = jwt_payload['jti']
    return db.session.query(TokenBlocklist.id).filter_by(jti=jti).scalar() is not None


@jwt.unauthorized_loader
def missing_token(reason):
    return jsonify({'error': reason}), 401


@jwt.invalid_token_loader
def invalid_token(reason):
    return jsonify({'error': reason}), 401


@jwt.expired_token_loader
def expired_token(jwt_header, jwt_payload):
    return jsonify({'error': 'Session has expired'}), 401


@jwt.revoked_token_loader
def revoked_token(jwt_header, jwt_payload):
    return jsonify({'error': 'Session has been signed out'}), 401


@click.command('create-admin')
@click.argument('name')
@click.argument('email')
@click.password_option()
@with_appcontext
def create_admin_command(name, email, password):
    """Create an administrator account."""
    email = email.strip().lower()
    if User.query.filter_by(email=email).first():
        raise click.ClickException(f'User {email} already exists')
    db.session.add(User(name=name, email=email, password=hash_password(password), role='admin'))
    db.session.commit()
    click.echo(f'Admin {email} created')
