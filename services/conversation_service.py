from extensions import db
from models.user import User
from models.professional import Professional
from models.conversation import Conversation
from models.report import Report
from errors import ValidationError, AuthorizationError, NotFoundError
from sqlalchemy.exc import IntegrityError
import logging

logger = logging.getLogger(__name__)


class ConversationService:
    def __init__(self, gateway):
        self.gateway = gateway

    def get_or_create(self, client_id, professional_id, service_request_id=None):
        """Retourne la conversation du couple client/professionnel, la crée au premier contact."""
        client = db.session.get(User, client_id)
        if not client or client.role != "client":
            raise ValidationError("Seuls les clients peuvent ouvrir une conversation.")
        if not professional_id:
            raise ValidationError("L'identifiant du professionnel est requis.")
        professional = db.session.get(Professional, professional_id)
        if not professional:
            raise ValidationError("Professionnel introuvable.", professional_id=professional_id)
        if professional.user_id == client_id:
            raise ValidationError("Impossible d'ouvrir une conversation avec soi-même.")

        existing = Conversation.query.filter_by(client_id=client_id, professional_id=professional_id).first()
        if existing:
            logger.debug(f"Conversation existante {existing.id} réutilisée pour {client_id}/{professional_id}")
            return existing, False

        conversation = Conversation(
            client_id=client_id,
            professional_id=professional_id,
            service_request_id=service_request_id,
            is_active=True,
        )
        try:
            db.session.add(conversation)
            db.session.commit()
        except IntegrityError:
            # Création concurrente du même couple : on relit celle qui a gagné
            db.session.rollback()
            existing = Conversation.query.filter_by(client_id=client_id, professional_id=professional_id).first()
            if existing:
                return existing, False
            raise
        logger.info(f"Conversation {conversation.id} créée entre {client_id} et {professional_id}")
        return conversation, True

    def get(self, conversation_id):
        conversation = db.session.get(Conversation, conversation_id)
        if not conversation:
            raise NotFoundError("Conversation introuvable.", conversation_id=conversation_id)
        return conversation

    def get_for_participant(self, conversation_id, user_id):
        conversation = self.get(conversation_id)
        if not conversation.has_participant(user_id):
            logger.warning(f"Accès refusé à la conversation {conversation_id} pour {user_id}")
            raise AuthorizationError("Accès refusé à cette conversation.")
        return conversation

    def recipient_ids(self, conversation, sender_id):
        return [uid for uid in conversation.participant_ids() if uid and uid != sender_id]

    def send_message(self, conversation_id, sender_id, content, message_type="text", file_url=None):
        self.get_for_participant(conversation_id, sender_id)
        return self.gateway.append_message(conversation_id, sender_id, content, message_type, file_url)

    def list_messages(self, conversation_id, user_id, after=None):
        self.get_for_participant(conversation_id, user_id)
        return self.gateway.list_messages(conversation_id, after=after)

    def mark_read(self, conversation_id, user_id):
        self.get_for_participant(conversation_id, user_id)
        return self.gateway.mark_read(conversation_id, user_id)

    def report(self, conversation_id, reporter_id, reason=None, description=None):
        # Pas de déduplication : chaque signalement crée une ligne
        self.get_for_participant(conversation_id, reporter_id)
        report = Report(
            reporter_id=reporter_id,
            report_type="chat_conversation",
            target_id=conversation_id,
            reason=(reason or "inappropriate").strip() or "inappropriate",
            description=description or "Signalé depuis l'interface de chat",
            status="pending",
        )
        try:
            db.session.add(report)
            db.session.commit()
        except Exception as e:
            db.session.rollback()
            logger.error(f"Erreur lors du signalement de la conversation {conversation_id} : {e}")
            raise
        logger.info(f"Conversation {conversation_id} signalée par {reporter_id} (rapport {report.id})")
        return report

    def delete(self, conversation_id, requester_id):
        conversation = self.get_for_participant(conversation_id, requester_id)
        try:
            db.session.delete(conversation)
            db.session.commit()
        except Exception as e:
            db.session.rollback()
            logger.error(f"Erreur lors de la suppression de la conversation {conversation_id} : {e}")
            raise
        logger.info(f"Conversation {conversation_id} supprimée par {requester_id}")

    def list_for_user(self, user_id):
        """Conversations de l'utilisateur, la plus récemment active en premier."""
        user = db.session.get(User, user_id)
        if not user:
            raise NotFoundError("Utilisateur non trouvé.")

        filters = [Conversation.client_id == user_id]
        if user.professional:
            filters.append(Conversation.professional_id == user.professional.id)
        conversations = Conversation.query.filter(db.or_(*filters)).all()
        conversations.sort(key=lambda c: (c.last_message_at is not None,
                                          c.last_message_at or c.created_at,
                                          c.created_at), reverse=True)

        result = []
        for conversation in conversations:
            if conversation.client_id == user_id:
                professional = conversation.professional
                counterpart = {
                    "id": professional.id,
                    "user_id": professional.user_id,
                    "name": professional.business_name,
                    "kind": "professional",
                }
            else:
                client = conversation.client
                counterpart = {
                    "id": client.id,
                    "user_id": client.id,
                    "name": f"{client.first_name or ''} {client.last_name or ''}".strip() or client.email,
                    "first_name": client.first_name,
                    "last_name": client.last_name,
                    "kind": "client",
                }
            item = conversation.to_dict()
            item["counterpart"] = counterpart
            item["unread_count"] = self.gateway.unread_count(conversation.id, user_id)
            result.append(item)
        return result
