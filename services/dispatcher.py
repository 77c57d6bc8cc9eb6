"""Dispatcher temps réel : valide les événements entrants, persiste, puis pousse.

Le push n'est qu'un indice de rafraîchissement : la source de vérité reste
l'API REST (``GET /conversations/<id>/messages``), que les clients interrogent
régulièrement. Un destinataire sans connexion retrouve ses messages au
prochain appel.
"""
import logging
import threading
from contextlib import contextmanager

from extensions import db
from errors import ChatError, ValidationError, AuthorizationError
from models.user import User

logger = logging.getLogger(__name__)

# Champs obligatoires par type d'événement client -> serveur
EVENT_FIELDS = {
    "join": ("userId",),
    "moderator_join": ("moderatorId",),
    "chat_message": ("conversationId", "senderId", "content"),
    "support_message": ("chatId", "content"),
}


def parse_envelope(data):
    """Valide une enveloppe ``{type, ...}`` ; les types inconnus sont rejetés."""
    if not isinstance(data, dict):
        raise ValidationError("Enveloppe invalide : un objet JSON est attendu.")
    event_type = data.get("type")
    if event_type not in EVENT_FIELDS:
        raise ValidationError(f"Type d'événement inconnu : {event_type}")
    missing = [name for name in EVENT_FIELDS[event_type]
               if not isinstance(data.get(name), str) or not data.get(name).strip()]
    if missing:
        raise ValidationError(f"Champs manquants pour {event_type} : {', '.join(missing)}")
    return data


def error_envelope(error):
    envelope = {"type": "error", "status": error.status_code}
    envelope.update(error.to_dict())
    return envelope


class ChatDispatcher:
    def __init__(self, registry, conversations, support, notifications):
        self.registry = registry
        self.conversations = conversations
        self.support = support
        self.notifications = notifications
        self._identities = {}
        # (type, id) -> [verrou, nombre de détenteurs ou attentes]
        self._locks = {}
        self._locks_guard = threading.Lock()
        self._handlers = {
            "join": self._on_join,
            "moderator_join": self._on_moderator_join,
            "chat_message": self._on_chat_message,
            "support_message": self._on_support_message,
        }

    @contextmanager
    def _serialized(self, kind, key):
        # Ajout + diffusion dans l'ordre de réception pour une même entité
        lock_key = (kind, key)
        with self._locks_guard:
            entry = self._locks.get(lock_key)
            if entry is None:
                entry = self._locks[lock_key] = [threading.Lock(), 0]
            entry[1] += 1
        try:
            with entry[0]:
                yield
        finally:
            with self._locks_guard:
                entry[1] -= 1
                if not entry[1]:
                    del self._locks[lock_key]

    # -- cycle de vie des connexions ------------------------------------

    def connect(self, handle, identity, kind):
        self._identities[handle] = (kind, identity)
        logger.debug(f"Connexion {handle} authentifiée ({kind} {identity})")

    def disconnect(self, handle):
        self._identities.pop(handle, None)
        self.registry.unregister(handle)
        logger.debug(f"Connexion {handle} fermée")

    def identity_of(self, handle):
        return self._identities.get(handle, (None, None))

    # -- entrée ---------------------------------------------------------

    def dispatch(self, handle, data):
        """Traite un événement et retourne l'accusé de réception (succès ou erreur).

        Les erreurs ne sont transmises au client que par cet accusé.
        """
        try:
            event = parse_envelope(data)
            return self._handlers[event["type"]](handle, event)
        except ChatError as e:
            logger.warning(f"Événement refusé sur {handle} : {e.error} - {e.message}")
            envelope = error_envelope(e)
        except Exception as e:
            db.session.rollback()
            logger.error(f"Erreur inattendue lors du traitement d'un événement sur {handle} : {e}")
            envelope = {"type": "error", "status": 500, "error": "internal_error",
                        "message": "Une erreur s'est produite lors du traitement de l'événement."}
        return envelope

    def _require(self, handle, kind, claimed_id):
        connected_kind, identity = self.identity_of(handle)
        if connected_kind != kind or identity != claimed_id:
            raise AuthorizationError("L'identité annoncée ne correspond pas à la connexion.")
        return identity

    def _on_join(self, handle, event):
        user_id = self._require(handle, "user", event["userId"])
        self.registry.register(user_id, handle)
        return {"type": "ack", "event": "join", "userId": user_id}

    def _on_moderator_join(self, handle, event):
        moderator_id = self._require(handle, "moderator", event["moderatorId"])
        self.registry.register_moderator(moderator_id, handle)
        return {"type": "ack", "event": "moderator_join", "moderatorId": moderator_id}

    def _on_chat_message(self, handle, event):
        sender_id = self._require(handle, "user", event["senderId"])
        message = self.send_conversation_message(
            event["conversationId"], sender_id, event["content"], event.get("messageType") or "text")
        return {"type": "ack", "event": "chat_message", "message": message.to_dict()}

    def _on_support_message(self, handle, event):
        kind, identity = self.identity_of(handle)
        if kind is None:
            raise AuthorizationError("Connexion non authentifiée.")
        chat = self.support.get_chat(event["chatId"])
        if kind == "moderator":
            sender_type = "moderator"
        elif chat.user_id != identity and self._is_admin(identity):
            sender_type = "admin"
        else:
            sender_type = "user"
        message = self.send_support_message(chat.id, identity, sender_type, event["content"])
        return {"type": "ack", "event": "support_message", "message": message.to_dict()}

    def _is_admin(self, user_id):
        user = db.session.get(User, user_id)
        return bool(user and user.is_admin)

    # -- conversations --------------------------------------------------

    def send_conversation_message(self, conversation_id, sender_id, content, message_type="text"):
        """Chemin commun temps réel / REST : valide, persiste puis pousse."""
        with self._serialized("conversation", conversation_id):
            message = self.conversations.send_message(conversation_id, sender_id, content, message_type)
            conversation = self.conversations.get(conversation_id)
            self.deliver_message(conversation, message, sender_id)
        return message

    def deliver_message(self, conversation, message, sender_id):
        payload = message.to_dict()
        for recipient_id in self.conversations.recipient_ids(conversation, sender_id):
            self.registry.send_to_user(recipient_id, {
                "type": "new_message",
                "conversationId": conversation.id,
                "message": payload,
            })
            self._notify(recipient_id, sender_id, message)
        self.registry.send_to_user(sender_id, {
            "type": "message_sent",
            "conversationId": conversation.id,
            "message": payload,
        })

    def _notify(self, recipient_id, sender_id, message):
        try:
            notification = self.notifications.create_message_notification(recipient_id, sender_id, message)
        except Exception as e:
            logger.error(f"Erreur lors de la création de la notification pour {recipient_id} : {e}")
            return None
        if self.notifications.wants_push(recipient_id):
            self.registry.send_to_user(recipient_id, {
                "type": "new_notification",
                "notification": notification.to_dict(),
            })
        return notification

    # -- support --------------------------------------------------------

    def send_support_message(self, chat_id, sender_id, sender_type, content):
        with self._serialized("support_chat", chat_id):
            message = self.support.send_message(chat_id, sender_id, sender_type, content)
            chat = self.support.get_chat(chat_id)
            self.deliver_support_message(chat, message)
        return message

    def deliver_support_message(self, chat, message):
        envelope = {"type": "new_support_message", "chatId": chat.id, "message": message.to_dict()}
        sender_type, sender_id = message.sender_type, message.sender_id

        if not (sender_type == "user" and sender_id == chat.user_id):
            self.registry.send_to_user(chat.user_id, envelope)
        if chat.moderator_id and not (sender_type == "moderator" and sender_id == chat.moderator_id):
            self.registry.send_to_moderator(chat.moderator_id, envelope)
        if chat.admin_intervention_id and chat.admin_intervention_id != chat.user_id \
                and not (sender_type == "admin" and sender_id == chat.admin_intervention_id):
            self.registry.send_to_user(chat.admin_intervention_id, envelope)

        if sender_type != "system":
            sent = {"type": "support_message_sent", "chatId": chat.id, "message": message.to_dict()}
            if sender_type == "moderator":
                self.registry.send_to_moderator(sender_id, sent)
            else:
                self.registry.send_to_user(sender_id, sent)

    def announce_support_chat(self, chat):
        """Annonce un nouveau chat de support à tous les modérateurs connectés."""
        payload = chat.to_dict()
        user = chat.user
        if user:
            payload["user"] = {"id": user.id, "first_name": user.first_name,
                               "last_name": user.last_name, "email": user.email}
        return self.registry.broadcast_to_moderators({"type": "new_support_chat", "chat": payload})

    def publish_support_update(self, chat, system_message=None):
        """Pousse un changement d'état : message système, demandeur, admin et file des modérateurs."""
        with self._serialized("support_chat", chat.id):
            if system_message is not None:
                self.deliver_support_message(chat, system_message)
            envelope = {"type": "support_chat_updated", "chat": chat.to_dict()}
            self.registry.send_to_user(chat.user_id, envelope)
            if chat.admin_intervention_id and chat.admin_intervention_id != chat.user_id:
                self.registry.send_to_user(chat.admin_intervention_id, envelope)
            self.registry.broadcast_to_moderators(envelope)
