from extensions import db
from models.moderator import Moderator
from models.support_chat import SupportChat
from errors import ValidationError, NotFoundError, ConflictError
import logging

logger = logging.getLogger(__name__)

def create_moderator(moderator_handle, password, name, created_by):
    if not moderator_handle or not password or not name:
        raise ValidationError("Identifiant, mot de passe et nom requis.")
    if Moderator.query.filter_by(moderator_id=moderator_handle).first():
        raise ConflictError("L'identifiant de modérateur existe déjà.")
    moderator = Moderator(moderator_id=moderator_handle, name=name, created_by=created_by, is_active=True)
    moderator.set_password(password)
    try:
        db.session.add(moderator)
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logger.error(f"Erreur lors de la création du modérateur {moderator_handle} : {e}")
        raise
    logger.info(f"Modérateur {moderator_handle} créé par l'admin {created_by}")
    return moderator

def list_moderators():
    return Moderator.query.order_by(Moderator.created_at.desc()).all()

def get_moderator(moderator_pk):
    moderator = db.session.get(Moderator, moderator_pk)
    if not moderator:
        raise NotFoundError("Modérateur introuvable.")
    return moderator

def set_moderator_active(moderator_pk, is_active):
    moderator = get_moderator(moderator_pk)
    moderator.is_active = bool(is_active)
    db.session.commit()
    logger.info(f"Modérateur {moderator.moderator_id} {'activé' if moderator.is_active else 'désactivé'}")
    return moderator

def delete_moderator(moderator_pk):
    moderator = get_moderator(moderator_pk)
    # L'historique des chats garde la référence au modérateur
    if SupportChat.query.filter_by(moderator_id=moderator.id).first():
        raise ConflictError("Ce modérateur a des chats de support ; désactivez-le plutôt.")
    db.session.delete(moderator)
    db.session.commit()
    logger.info(f"Modérateur {moderator.moderator_id} supprimé")
