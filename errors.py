"""Taxonomie des erreurs métier du chat et du support.

Chaque erreur porte son code HTTP ; le dispatcher temps réel réutilise le même
code dans l'enveloppe ``error`` renvoyée au client.
"""
import logging

logger = logging.getLogger(__name__)


class ChatError(Exception):
    status_code = 500
    error = "internal_error"

    def __init__(self, message, **details):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self):
        payload = {"error": self.error, "message": self.message}
        payload.update(self.details)
        return payload


class ValidationError(ChatError):
    status_code = 400
    error = "validation_error"


class AuthorizationError(ChatError):
    status_code = 403
    error = "authorization_error"


class NotFoundError(ChatError):
    status_code = 404
    error = "not_found"


class ConflictError(ChatError):
    status_code = 409
    error = "conflict"


def register_error_handlers(api):
    @api.errorhandler(ChatError)
    def handle_chat_error(error):
        logger.warning(f"{error.error} ({error.status_code}) : {error.message}")
        return error.to_dict(), error.status_code
