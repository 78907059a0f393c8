import re

from flask import Blueprint, request, jsonify
from sqlalchemy.exc import IntegrityError
from werkzeug.security import generate_password_hash, check_password_hash
from playerhoods.app import db
from playerhoods.models import User, UserSettings
from playerhoods.auth_utils import generate_token, login_required
from playerhoods.errors import ValidationError
from playerhoods.services.match_payloads import clean_text, normalize_email

auth_bp = Blueprint('auth', __name__)

_MAX_TIMEZONE_LENGTH = 64


def _password_complexity_error(raw_password):
    password = str(raw_password or '')
    if len(password) < 8:
        return 'Password must be at least 8 characters long'
    if not re.search(r'[A-Za-z]', password) or not re.search(r'\d', password):
        return 'Password must include at least one letter and one number'
    return None


def _profile_payload(user):
    data = user.to_dict()
    data['settings'] = user.settings.to_dict() if user.settings else None
    return data


@auth_bp.route('/register', methods=['POST'])
def register():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return jsonify({'error': 'Invalid JSON payload'}), 400
    if not data or not data.get('username') or not data.get('email') or not data.get('password'):
        return jsonify({'error': 'Username, email, and password are required'}), 400

    username = str(data['username']).strip()
    email = str(data['email']).strip().lower()
    password_error = _password_complexity_error(data.get('password'))
    if password_error:
        return jsonify({'error': password_error}), 400

    if User.query.filter_by(username=username).first():
        return jsonify({'error': 'Username already taken'}), 409
    if User.query.filter_by(email=email).first():
        return jsonify({'error': 'Email already registered'}), 409

    user = User(
        username=username,
        email=email,
        password_hash=generate_password_hash(data['password']),
        display_name=clean_text(data.get('display_name') or data.get('name'), 'display_name') or '',
    )
    db.session.add(user)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        return jsonify({'error': 'Username or email already registered'}), 409
    token = generate_token(user.id)
    return jsonify({'token': token, 'user': user.to_dict()}), 201


@auth_bp.route('/login', methods=['POST'])
def login():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return jsonify({'error': 'Invalid JSON payload'}), 400
    if not data or not data.get('email') or not data.get('password'):
        return jsonify({'error': 'Email and password are required'}), 400

    email = str(data['email']).strip().lower()
    user = User.query.filter_by(email=email).first()
    if not user or not check_password_hash(user.password_hash, data['password']):
        return jsonify({'error': 'Invalid email or password'}), 401

    token = generate_token(user.id)
    return jsonify({'token': token, 'user': user.to_dict()})


@auth_bp.route('/profile', methods=['GET'])
@login_required
def get_profile():
    return jsonify({'user': _profile_payload(request.current_user)})


@auth_bp.route('/settings', methods=['PUT'])
@login_required
def update_settings():
    """Save the contact email used for match notifications."""
    data = request.get_json(silent=True) or {}
    if not isinstance(data, dict):
        return jsonify({'error': 'Invalid JSON payload'}), 400

    user = request.current_user
    settings = user.settings or UserSettings(user_id=user.id)

    if 'email' in data:
        raw_email = str(data.get('email') or '').strip()
        if raw_email:
            try:
                settings.email = normalize_email(raw_email)
            except ValidationError as exc:
                return jsonify({'error': exc.message}), 400
        else:
            settings.email = None
    if 'timezone' in data:
        timezone_name = str(data.get('timezone') or '').strip()
        settings.timezone = timezone_name[:_MAX_TIMEZONE_LENGTH] or 'UTC'
    if 'display_name' in data:
        user.display_name = clean_text(data.get('display_name'), 'display_name') or ''

    db.session.add(settings)
    db.session.commit()
    return jsonify({'user': _profile_payload(user)})
