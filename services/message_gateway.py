from extensions import db
from models.conversation import Conversation, Message, MESSAGE_TYPES
from models.support_chat import SupportChat, SupportMessage, SENDER_TYPES, SUPPORT_MESSAGE_TYPES
from errors import ValidationError, NotFoundError, ConflictError
from sqlalchemy.exc import OperationalError
from datetime import datetime
import logging

logger = logging.getLogger(__name__)


class MessageGateway:
    """Écritures et lectures durables des messages de conversation et de support.

    Les ajouts sont en append-only et mettent à jour ``last_message_at`` du
    parent dans la même transaction. Les lectures sont rejouées une fois en cas
    d'erreur transitoire ; les écritures jamais (risque de doublon).
    """

    def _read(self, query_fn, label):
        try:
            return query_fn()
        except OperationalError as e:
            db.session.rollback()
            logger.warning(f"Erreur transitoire pendant {label}, nouvelle tentative : {e}")
            return query_fn()

    def append_message(self, conversation_id, sender_id, content, message_type="text", file_url=None):
        conversation = db.session.get(Conversation, conversation_id)
        if not conversation:
            raise NotFoundError("Conversation introuvable.", conversation_id=conversation_id)
        if not conversation.has_participant(sender_id):
            raise ValidationError("L'expéditeur ne participe pas à cette conversation.")
        if message_type not in MESSAGE_TYPES:
            raise ValidationError(f"Type de message invalide : {message_type}")
        content = (content or "").strip()
        if not content:
            raise ValidationError("Le contenu du message est requis.")

        try:
            message = Message(
                conversation_id=conversation_id,
                sender_id=sender_id,
                content=content,
                message_type=message_type,
                file_url=file_url,
                is_read=False,
                created_at=datetime.utcnow(),
            )
            db.session.add(message)
            conversation.last_message_at = message.created_at
            db.session.commit()
        except Exception as e:
            db.session.rollback()
            logger.error(f"Erreur lors de l'enregistrement du message dans {conversation_id} : {e}")
            raise
        logger.debug(f"Message {message.id} ajouté à la conversation {conversation_id} par {sender_id}")
        return message

    def append_support_message(self, chat_id, sender_id, sender_type, content, message_type="text"):
        chat = db.session.get(SupportChat, chat_id)
        if not chat:
            raise NotFoundError("Chat de support introuvable.", chat_id=chat_id)
        if sender_type not in SENDER_TYPES:
            raise ValidationError(f"Type d'expéditeur invalide : {sender_type}")
        if message_type not in SUPPORT_MESSAGE_TYPES:
            raise ValidationError(f"Type de message invalide : {message_type}")
        if sender_type != "system" and not sender_id:
            raise ValidationError("L'expéditeur est requis.")
        if chat.status == "closed" and sender_type != "system":
            raise ConflictError("Ce chat de support est fermé.", chat_id=chat_id, status=chat.status)
        content = (content or "").strip()
        if not content:
            raise ValidationError("Le contenu du message est requis.")

        try:
            message = SupportMessage(
                support_chat_id=chat_id,
                sender_id=sender_id if sender_type != "system" else None,
                sender_type=sender_type,
                content=content,
                message_type=message_type,
                is_read=False,
                created_at=datetime.utcnow(),
            )
            db.session.add(message)
            chat.last_message_at = message.created_at
            db.session.commit()
        except Exception as e:
            db.session.rollback()
            logger.error(f"Erreur lors de l'enregistrement du message de support dans {chat_id} : {e}")
            raise
        logger.debug(f"Message de support {message.id} ({sender_type}/{message_type}) ajouté au chat {chat_id}")
        return message

    def list_messages(self, conversation_id, after=None):
        def query():
            q = Message.query.filter_by(conversation_id=conversation_id)
            if after is not None:
                q = q.filter(Message.id > after)
            return q.order_by(Message.created_at.asc(), Message.id.asc()).all()
        return self._read(query, f"la lecture de la conversation {conversation_id}")

    def list_support_messages(self, chat_id, after=None):
        def query():
            q = SupportMessage.query.filter_by(support_chat_id=chat_id)
            if after is not None:
                q = q.filter(SupportMessage.id > after)
            return q.order_by(SupportMessage.created_at.asc(), SupportMessage.id.asc()).all()
        return self._read(query, f"la lecture du chat de support {chat_id}")

    def mark_read(self, conversation_id, reader_id):
        try:
            updated = (Message.query
                       .filter(Message.conversation_id == conversation_id,
                               Message.sender_id != reader_id,
                               Message.is_read.is_(False))
                       .update({Message.is_read: True}, synchronize_session=False))
            db.session.commit()
        except Exception as e:
            db.session.rollback()
            logger.error(f"Erreur lors du marquage comme lus dans {conversation_id} : {e}")
            raise
        logger.debug(f"{updated} message(s) marqué(s) comme lu(s) dans {conversation_id} pour {reader_id}")
        return updated

    def unread_count(self, conversation_id, reader_id):
        return self._read(
            lambda: Message.query.filter(Message.conversation_id == conversation_id,
                                         Message.sender_id != reader_id,
                                         Message.is_read.is_(False)).count(),
            f"le comptage des non-lus de {conversation_id}",
        )
