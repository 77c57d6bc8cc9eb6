"""Machine à états des chats de support : utilisateur -> modérateur -> admin.

    open -> assigned -> escalated -> closed
    open -> closed, assigned -> closed

Aucune transition ne revient en arrière. Chaque transition est un UPDATE
conditionnel sur le statut courant : si aucune ligne n'est modifiée, un autre
acteur est passé avant et l'appel échoue en ConflictError.
"""
from extensions import db
from models.user import User
from models.moderator import Moderator
from models.support_chat import SupportChat, ACTIVE_STATUSES, PRIORITIES
from errors import ValidationError, AuthorizationError, NotFoundError, ConflictError
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from datetime import datetime
import logging

logger = logging.getLogger(__name__)

DEFAULT_SUBJECT = "Demande d'assistance"
DEFAULT_ESCALATION_REASON = "Escaladé par le modérateur"

SYSTEM_WAITING = "Vous êtes en attente d'un agent."
SYSTEM_MODERATOR_JOINED = "{name} a rejoint la conversation."
SYSTEM_ADMIN_JOINED = "Un administrateur a rejoint la conversation."
SYSTEM_ESCALATED = "Votre demande a été escaladée à un administrateur. Motif : {reason}"
SYSTEM_CLOSED = "La conversation a été fermée par {who}."

CLOSER_LABELS = {"user": "l'utilisateur", "moderator": "le modérateur", "admin": "un administrateur"}


class SupportService:
    def __init__(self, gateway, archive):
        self.gateway = gateway
        self.archive = archive

    # -- lectures -------------------------------------------------------

    def get_chat(self, chat_id):
        chat = db.session.get(SupportChat, chat_id)
        if not chat:
            raise NotFoundError("Chat de support introuvable.", chat_id=chat_id)
        return chat

    def active_chat_for_user(self, user_id):
        return (SupportChat.query
                .filter(SupportChat.user_id == user_id, SupportChat.status.in_(ACTIVE_STATUSES))
                .order_by(SupportChat.created_at.desc())
                .first())

    def list_active_chats(self):
        return (SupportChat.query
                .filter(SupportChat.status.in_(ACTIVE_STATUSES))
                .order_by(SupportChat.created_at.desc())
                .all())

    def list_admin_chats(self):
        return (SupportChat.query
                .filter(db.or_(SupportChat.status.in_(ACTIVE_STATUSES),
                               SupportChat.admin_intervened.is_(True)))
                .order_by(SupportChat.created_at.desc())
                .all())

    def list_messages(self, chat_id, after=None):
        self.get_chat(chat_id)
        return self.gateway.list_support_messages(chat_id, after=after)

    def can_view(self, chat, actor_kind, actor_id):
        if actor_kind == "moderator":
            moderator = db.session.get(Moderator, actor_id)
            return bool(moderator and moderator.is_active)
        if chat.user_id == actor_id:
            return True
        user = db.session.get(User, actor_id)
        return bool(user and user.is_admin)

    # -- transitions ----------------------------------------------------

    def _transition(self, chat_id, from_statuses, extra_filters=(), **values):
        values["updated_at"] = datetime.utcnow()
        stmt = (update(SupportChat)
                .where(SupportChat.id == chat_id, SupportChat.status.in_(from_statuses), *extra_filters)
                .values(**values))
        try:
            result = db.session.execute(stmt)
            if result.rowcount == 0:
                db.session.rollback()
                return False
            db.session.commit()
        except Exception as e:
            db.session.rollback()
            logger.error(f"Erreur lors de la transition du chat {chat_id} : {e}")
            raise
        return True

    def _system_message(self, chat_id, content, message_type="system_info"):
        return self.gateway.append_support_message(chat_id, None, "system", content, message_type)

    def _active_moderator(self, moderator_id):
        moderator = db.session.get(Moderator, moderator_id) if moderator_id else None
        if not moderator or not moderator.is_active:
            raise AuthorizationError("Modérateur inconnu ou désactivé.")
        return moderator

    def _admin(self, admin_id):
        admin = db.session.get(User, admin_id) if admin_id else None
        if not admin or not admin.is_admin:
            raise AuthorizationError("Accès réservé aux administrateurs.")
        return admin

    def open(self, user_id, subject=None, priority="medium"):
        """Ouvre un chat de support ; retourne le chat actif existant s'il y en a un.

        Retourne un tuple ``(chat, created)``.
        """
        user = db.session.get(User, user_id)
        if not user:
            raise NotFoundError("Utilisateur non trouvé.")
        priority = priority or "medium"
        if priority not in PRIORITIES:
            raise ValidationError(f"Priorité invalide : {priority}")

        existing = self.active_chat_for_user(user_id)
        if existing:
            logger.debug(f"Chat de support actif {existing.id} réutilisé pour {user_id}")
            return existing, False

        chat = SupportChat(
            user_id=user_id,
            subject=(subject or "").strip() or DEFAULT_SUBJECT,
            status="open",
            priority=priority,
        )
        try:
            db.session.add(chat)
            db.session.commit()
        except IntegrityError:
            # Ouverture concurrente : l'index unique garde le premier chat actif
            db.session.rollback()
            existing = self.active_chat_for_user(user_id)
            if existing:
                logger.warning(f"Ouverture concurrente pour {user_id}, chat {existing.id} réutilisé")
                return existing, False
            raise
        except Exception as e:
            db.session.rollback()
            logger.error(f"Erreur lors de la création du chat de support pour {user_id} : {e}")
            raise
        logger.info(f"Chat de support {chat.id} ouvert par {user_id} : {chat.subject}")
        self._system_message(chat.id, SYSTEM_WAITING)
        return chat, True

    def assign(self, chat_id, moderator_id):
        moderator = self._active_moderator(moderator_id)
        chat = self.get_chat(chat_id)
        if chat.status != "open":
            logger.warning(f"Assignation refusée du chat {chat_id} ({chat.status}) à {moderator_id}")
            raise ConflictError("Ce chat n'est plus disponible pour assignation.",
                                chat_id=chat_id, status=chat.status)
        if not self._transition(chat_id, ("open",), status="assigned", moderator_id=moderator.id):
            logger.warning(f"Course perdue : chat {chat_id} déjà assigné, {moderator_id} refusé")
            raise ConflictError("Chat déjà assigné à un autre modérateur.", chat_id=chat_id)
        logger.info(f"Chat {chat_id} assigné au modérateur {moderator.moderator_id}")
        system_message = self._system_message(chat_id, SYSTEM_MODERATOR_JOINED.format(name=moderator.name))
        return self.get_chat(chat_id), system_message

    def intervene(self, chat_id, admin_id):
        admin = self._admin(admin_id)
        chat = self.get_chat(chat_id)
        if chat.status == "closed":
            raise ConflictError("Impossible d'intervenir sur un chat fermé.", chat_id=chat_id)
        if not self._transition(chat_id, ACTIVE_STATUSES,
                                admin_intervention_id=admin.id,
                                admin_intervened=True,
                                is_admin_visible=True):
            raise ConflictError("Impossible d'intervenir sur un chat fermé.", chat_id=chat_id)
        logger.info(f"Intervention de l'admin {admin.id} sur le chat {chat_id}")
        system_message = self._system_message(chat_id, SYSTEM_ADMIN_JOINED)
        return self.get_chat(chat_id), system_message

    def escalate(self, chat_id, moderator_id, reason=None):
        self._active_moderator(moderator_id)
        chat = self.get_chat(chat_id)
        if chat.status != "assigned":
            raise ConflictError("Seul un chat assigné peut être escaladé.", chat_id=chat_id, status=chat.status)
        if chat.moderator_id != moderator_id:
            logger.warning(f"Escalade du chat {chat_id} refusée au modérateur {moderator_id}")
            raise AuthorizationError("Seul le modérateur assigné peut escalader ce chat.")
        reason = (reason or "").strip() or DEFAULT_ESCALATION_REASON
        if not self._transition(chat_id, ("assigned",), (SupportChat.moderator_id == moderator_id,),
                                status="escalated",
                                escalation_reason=reason,
                                is_admin_visible=True,
                                admin_intervened=True):
            raise ConflictError("Le chat a changé d'état pendant l'escalade.", chat_id=chat_id)
        logger.info(f"Chat {chat_id} escaladé par {moderator_id} : {reason}")
        system_message = self._system_message(chat_id, SYSTEM_ESCALATED.format(reason=reason), "system_warning")
        return self.get_chat(chat_id), system_message

    def _check_closer(self, chat, by_id, by_role):
        if by_role == "user":
            if chat.user_id != by_id:
                raise AuthorizationError("Seul le demandeur peut fermer ce chat.")
        elif by_role == "moderator":
            self._active_moderator(by_id)
            if chat.moderator_id != by_id:
                raise AuthorizationError("Seul le modérateur assigné peut fermer ce chat.")
            if chat.status == "escalated":
                raise AuthorizationError("Seuls les administrateurs peuvent fermer un chat escaladé.")
        elif by_role == "admin":
            self._admin(by_id)
        else:
            raise ValidationError(f"Rôle invalide : {by_role}")

    def close(self, chat_id, by_id, by_role):
        chat = self.get_chat(chat_id)
        if chat.status == "closed":
            raise ConflictError("Ce chat est déjà fermé.", chat_id=chat_id)
        self._check_closer(chat, by_id, by_role)
        if not self._transition(chat_id, ACTIVE_STATUSES, status="closed", closed_at=datetime.utcnow()):
            raise ConflictError("Ce chat est déjà fermé.", chat_id=chat_id)
        logger.info(f"Chat {chat_id} fermé par {by_role} {by_id}")
        system_message = self._system_message(chat_id, SYSTEM_CLOSED.format(who=CLOSER_LABELS[by_role]))
        return self.get_chat(chat_id), system_message

    def archive_and_close(self, chat_id, by_id, by_role):
        """Ferme le chat si besoin puis écrit son historique dans le journal d'archives.

        Un échec d'écriture est journalisé : le chat reste fermé mais non archivé.
        """
        if by_role not in ("moderator", "admin"):
            raise AuthorizationError("Archivage réservé aux modérateurs et administrateurs.")
        chat = self.get_chat(chat_id)
        if chat.is_archived:
            raise ConflictError("Ce chat est déjà archivé.", chat_id=chat_id)

        system_message = None
        if chat.status != "closed":
            chat, system_message = self.close(chat_id, by_id, by_role)
        elif by_role == "moderator":
            self._active_moderator(by_id)
            if chat.moderator_id != by_id:
                raise AuthorizationError("Seul le modérateur assigné peut archiver ce chat.")
        else:
            self._admin(by_id)

        messages = self.gateway.list_support_messages(chat_id)
        try:
            path = self.archive.write(chat, messages)
        except OSError as e:
            logger.error(f"Erreur lors de l'archivage du chat {chat_id} : {e}")
            return self.get_chat(chat_id), system_message

        if not self._transition(chat_id, ("closed",), (SupportChat.is_archived.is_(False),),
                                is_archived=True, archived_at=datetime.utcnow(), archive_path=path):
            raise ConflictError("Ce chat est déjà archivé.", chat_id=chat_id)
        logger.info(f"Chat {chat_id} archivé par {by_role} {by_id}")
        return self.get_chat(chat_id), system_message

    def send_message(self, chat_id, sender_id, sender_type, content, message_type="text"):
        chat = self.get_chat(chat_id)
        if sender_type == "user":
            if chat.user_id != sender_id:
                raise AuthorizationError("Accès refusé à ce chat de support.")
        elif sender_type == "moderator":
            self._active_moderator(sender_id)
            if chat.moderator_id != sender_id:
                raise AuthorizationError("Ce chat n'est pas assigné à ce modérateur.")
        elif sender_type == "admin":
            self._admin(sender_id)
            if chat.status != "escalated" and not chat.admin_intervened:
                raise AuthorizationError("L'administrateur doit intervenir avant d'écrire dans ce chat.")
        else:
            raise ValidationError(f"Type d'expéditeur invalide : {sender_type}")
        return self.gateway.append_support_message(chat_id, sender_id, sender_type, content, message_type)
