from flask import Blueprint, request, jsonify
from flask_jwt_extended import (
    create_access_token,
    jwt_required,
    current_user,
    JWTManager
)
from datetime import timedelta
from uuid import UUID
import os
import logging
from sqlalchemy.exc import IntegrityError
from models.users import User, Role
from db.db import db
from dotenv import load_dotenv
from services.action_log import record_action
from utils.errors import Conflict, NotFound, ValidationError, require_fields

load_dotenv()

logger = logging.getLogger(__name__)

auth_bp = Blueprint('auth', __name__, url_prefix='/api/v1/auth')

JWT_SECRET_KEY = os.getenv('JWT_SECRET_KEY', 'c2xvdC1hbGxvY2F0aW9u')

jwt = JWTManager()

def init_jwt(app):
    """Initialize JWT with the Flask app"""
    app.config.setdefault('JWT_SECRET_KEY', JWT_SECRET_KEY)
    app.config.setdefault('JWT_ACCESS_TOKEN_EXPIRES', timedelta(hours=int(os.getenv('JWT_ACCESS_TOKEN_HOURS', 1))))
    jwt.init_app(app)
    return jwt

@jwt.user_lookup_loader
def load_user(_jwt_header, jwt_data):
    try:
        return db.session.get(User, UUID(jwt_data['sub']))
    except ValueError:
        return None

def issue_token(user):
    return create_access_token(
        identity=str(user.id),
        additional_claims={'role': user.role.value, 'email': user.email}
    )

def _auth_payload(user):
    payload = user.to_dict()
    payload['token'] = issue_token(user)
    return payload

@auth_bp.route('/register', methods=['POST'])
def register():
    data = request.get_json(silent=True)
    require_fields(data, ['name', 'email', 'password'])

    if User.query.filter_by(email=data['email']).first():
        raise Conflict('User already exists')

    # Self-registration always yields a USER; admins come from the seed command
    user = User(name=data['name'], email=data['email'], role=Role.USER)
    user.set_password(data['password'])

    try:
        db.session.add(user)
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise Conflict('User already exists')

    logger.info(f"Registered user {user.email}")
    record_action('USER_REGISTERED', user.id, {'email': user.email})
    return jsonify(_auth_payload(user)), 201

@auth_bp.route('/login', methods=['POST'])
def login():
    data = request.get_json(silent=True)
    require_fields(data, ['email', 'password'])

    user = User.query.filter_by(email=data['email']).first()
    if not user or not user.check_password(data['password']):
        record_action('USER_LOGIN_FAILED', None, {'email': data['email']})
        return jsonify({'error': 'Invalid email or password', 'code': 'INVALID_CREDENTIALS'}), 401

    record_action('USER_LOGIN_SUCCESS', user.id, {'email': user.email})
    return jsonify(_auth_payload(user)), 200

@auth_bp.route('/me', methods=['GET'])
@jwt_required()
def get_me():
    return jsonify(current_user.to_dict()), 200

@auth_bp.route('/profile', methods=['PUT'])
@jwt_required()
def update_profile():
    data = request.get_json(silent=True) or {}
    user = current_user
    if not user:
        raise NotFound('User not found')

    for field in ('name', 'email', 'password'):
        if field in data and (not data[field] or not isinstance(data[field], str)):
            raise ValidationError(f'{field} must be a non-empty string.')

    if data.get('name'):
        user.name = data['name']
    if data.get('email') and data['email'] != user.email:
        if User.query.filter(User.email == data['email'], User.id != user.id).first():
            raise Conflict('Email already taken by another user')
        user.email = data['email']
    if data.get('password'):
        user.set_password(data['password'])

    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise Conflict('Email already taken by another user')

    record_action('USER_PROFILE_UPDATED', user.id)
    return jsonify(user.to_dict()), 200
