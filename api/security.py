from functools import wraps
from flask import g, current_app
from flask_jwt_extended import jwt_required, get_jwt_identity, get_jwt
from extensions import db
from models.user import User
from models.moderator import Moderator
import logging

logger = logging.getLogger(__name__)

def chat_services():
    """Services de chat de l'application courante (voir create_app)."""
    return current_app.extensions["chat_services"]

def dispatcher():
    return current_app.extensions["chat_dispatcher"]

def user_required():
    def decorator(fn):
        @wraps(fn)
        @jwt_required()
        def wrapper(*args, **kwargs):
            if get_jwt().get("kind", "user") != "user":
                return {"message": "Accès réservé aux utilisateurs"}, 403
            user = db.session.get(User, get_jwt_identity())
            if not user:
                logger.warning(f"Utilisateur avec ID {get_jwt_identity()} non trouvé.")
                return {"message": "Utilisateur non trouvé."}, 404
            g.current_user = user
            return fn(*args, **kwargs)
        return wrapper
    return decorator

def admin_required():
    def decorator(fn):
        @wraps(fn)
        @jwt_required()
        def wrapper(*args, **kwargs):
            user = None
            if get_jwt().get("kind", "user") == "user":
                user = db.session.get(User, get_jwt_identity())
            if not user or not user.is_admin:
                return {"message": "Accès réservé aux administrateurs"}, 403
            g.current_user = user
            return fn(*args, **kwargs)
        return wrapper
    return decorator

def moderator_required():
    def decorator(fn):
        @wraps(fn)
        @jwt_required()
        def wrapper(*args, **kwargs):
            if get_jwt().get("kind") != "moderator":
                return {"message": "Authentification modérateur requise"}, 401
            moderator = db.session.get(Moderator, get_jwt_identity())
            # Un modérateur désactivé perd l'accès même avec un jeton valide
            if not moderator or not moderator.is_active:
                return {"message": "Session modérateur invalide"}, 401
            g.current_moderator = moderator
            return fn(*args, **kwargs)
        return wrapper
    return decorator
