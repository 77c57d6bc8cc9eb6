"""Registre en mémoire des connexions temps réel.

Une instance par processus, créée par ``create_app`` et rangée dans
``app.extensions["chat_registry"]``. Un utilisateur peut avoir plusieurs
connexions ouvertes (onglets, appareils). Les modérateurs vivent dans un espace
d'identités séparé et forment le canal de diffusion des nouveaux chats de support.
"""
import logging
import threading
from collections import defaultdict

logger = logging.getLogger(__name__)


class ConnectionRegistry:
    def __init__(self, sender):
        # sender(handle, envelope) écrit une enveloppe sur une connexion
        self._sender = sender
        self._lock = threading.RLock()
        self._users = defaultdict(set)
        self._moderators = defaultdict(set)

    def register(self, user_id, handle):
        with self._lock:
            self._users[user_id].add(handle)
        logger.debug(f"Connexion {handle} enregistrée pour l'utilisateur {user_id}")

    def register_moderator(self, moderator_id, handle):
        with self._lock:
            self._moderators[moderator_id].add(handle)
        logger.debug(f"Connexion {handle} enregistrée sur le canal modérateurs ({moderator_id})")

    def unregister(self, handle):
        removed = False
        with self._lock:
            for channel in (self._users, self._moderators):
                for key in list(channel):
                    handles = channel[key]
                    if handle in handles:
                        handles.discard(handle)
                        removed = True
                        if not handles:
                            del channel[key]
        if removed:
            logger.debug(f"Connexion {handle} retirée du registre")
        return removed

    def lookup(self, user_id):
        with self._lock:
            return set(self._users.get(user_id, ()))

    def lookup_moderator(self, moderator_id):
        with self._lock:
            return set(self._moderators.get(moderator_id, ()))

    def moderator_handles(self):
        with self._lock:
            return {handle for handles in self._moderators.values() for handle in handles}

    def is_online(self, user_id):
        return bool(self.lookup(user_id))

    def send(self, handle, envelope):
        """Écrit une enveloppe sur une connexion.

        Une écriture qui échoue équivaut à un destinataire hors ligne : la
        connexion est retirée et l'appelant continue.
        """
        try:
            self._sender(handle, envelope)
            return True
        except Exception as e:
            logger.error(f"Échec de l'envoi de {envelope.get('type')} vers {handle} : {e}")
            self.unregister(handle)
            return False

    def send_to_user(self, user_id, envelope):
        delivered = sum(1 for handle in self.lookup(user_id) if self.send(handle, envelope))
        if not delivered:
            logger.debug(f"Utilisateur {user_id} hors ligne, {envelope.get('type')} non poussé")
        return delivered

    def send_to_moderator(self, moderator_id, envelope):
        return sum(1 for handle in self.lookup_moderator(moderator_id) if self.send(handle, envelope))

    def broadcast_to_moderators(self, envelope):
        handles = self.moderator_handles()
        delivered = sum(1 for handle in handles if self.send(handle, envelope))
        logger.debug(f"{envelope.get('type')} diffusé à {delivered}/{len(handles)} connexions modérateur")
        return delivered
