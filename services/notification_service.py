from extensions import db
from models.notification import Notification
from models.user import User
from errors import NotFoundError
import logging

logger = logging.getLogger(__name__)

PREVIEW_LENGTH = 50

def _preview(content):
    return content[:PREVIEW_LENGTH] + ("..." if len(content) > PREVIEW_LENGTH else "")

def create_message_notification(recipient_id, sender_id, message):
    """Enregistre la notification « nouveau message » du destinataire."""
    sender = db.session.get(User, sender_id)
    sender_name = sender.display_name if sender else "Utilisateur"
    notification = Notification(
        user_id=recipient_id,
        title="Nouveau message",
        message=f"{sender_name} vous a envoyé un message : \"{_preview(message.content)}\"",
        type="message",
        action_url=f"/chat?conversation={message.conversation_id}",
        extra={
            "conversation_id": message.conversation_id,
            "sender_id": sender_id,
            "message_id": message.id,
        },
    )
    try:
        db.session.add(notification)
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logger.error(f"Erreur lors de la création de la notification pour {recipient_id} : {e}")
        raise
    logger.debug(f"Notification {notification.id} créée pour {recipient_id}")
    return notification

def wants_push(user_id):
    user = db.session.get(User, user_id)
    return bool(user and user.push_notifications)

def list_notifications(user_id):
    return (Notification.query.filter_by(user_id=user_id)
            .order_by(Notification.created_at.desc()).all())

def mark_notification_read(notification_id, user_id):
    notification = Notification.query.filter_by(id=notification_id, user_id=user_id).first()
    if not notification:
        raise NotFoundError("Notification introuvable.")
    notification.is_read = True
    db.session.commit()
    return notification

def mark_all_read(user_id):
    updated = (Notification.query.filter_by(user_id=user_id, is_read=False)
               .update({Notification.is_read: True}, synchronize_session=False))
    db.session.commit()
    logger.debug(f"{updated} notification(s) marquée(s) comme lue(s) pour {user_id}")
    return updated
