from models.user import User
from models.professional import Professional
from models.moderator import Moderator
from extensions import db
from errors import ValidationError, ConflictError
from flask import current_app
from flask_jwt_extended import create_access_token

def user_token(user):
    return create_access_token(identity=user.id, additional_claims={"kind": "user", "is_admin": user.is_admin})

def moderator_token(moderator):
    return create_access_token(identity=moderator.id, additional_claims={"kind": "moderator"})

def register_user(email, password, first_name, last_name, role, business_name=None):
    if role not in ("client", "professional"):
        raise ValidationError("Rôle invalide, doit être 'client' ou 'professional'.")
    if not email or not password:
        raise ValidationError("Email et mot de passe requis.")
    if User.query.filter_by(email=email).first():
        raise ConflictError("Email déjà utilisé.")
    if role == "professional" and not business_name:
        raise ValidationError("Le nom commercial est requis pour un professionnel.")

    user = User(email=email, first_name=first_name, last_name=last_name, role=role)
    user.set_password(password)
    try:
        db.session.add(user)
        db.session.flush()
        if role == "professional":
            db.session.add(Professional(user_id=user.id, business_name=business_name))
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    current_app.logger.info(f"Utilisateur inscrit : {user.email} ({user.role})")
    return user

def login_user(email, password):
    user = User.query.filter_by(email=email).first()
    if user and user.check_password(password):
        current_app.logger.info(f"Connexion de {user.email}")
        return {"user": user, "access_token": user_token(user)}
    current_app.logger.warning(f"Échec de connexion pour {email}")
    return None

def login_moderator(moderator_handle, password):
    # Un modérateur désactivé ne peut pas s'authentifier
    moderator = Moderator.query.filter_by(moderator_id=moderator_handle, is_active=True).first()
    if moderator and moderator.check_password(password):
        current_app.logger.info(f"Connexion du modérateur {moderator.moderator_id}")
        return {"moderator": moderator, "access_token": moderator_token(moderator)}
    current_app.logger.warning(f"Échec de connexion modérateur pour {moderator_handle}")
    return None

def ensure_admin_user():
    """Crée le compte administrateur initial à partir de la configuration."""
    admin_email = current_app.config.get("ADMIN_EMAIL")
    admin_password = current_app.config.get("ADMIN_PASSWORD")
    if not admin_email or not admin_password:
        current_app.logger.debug("ADMIN_EMAIL/ADMIN_PASSWORD non définis, aucun admin initial.")
        return None
    admin = User.query.filter_by(email=admin_email).first()
    if admin:
        current_app.logger.debug("Utilisateur admin existe déjà, aucune création nécessaire.")
        return admin
    admin = User(
        email=admin_email,
        first_name=current_app.config.get("ADMIN_FIRST_NAME"),
        last_name=current_app.config.get("ADMIN_LAST_NAME"),
        role="client",
        is_admin=True,
    )
    admin.set_password(admin_password)
    db.session.add(admin)
    db.session.commit()
    current_app.logger.info(f"Utilisateur admin créé avec succès : {admin_email}")
    return admin
