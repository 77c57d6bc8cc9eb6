from flask import request, current_app
from flask_jwt_extended import decode_token
from extensions import CHAT_NAMESPACE
import logging

logger = logging.getLogger(__name__)

def _dispatcher():
    return current_app.extensions["chat_dispatcher"]

def register_socket_handlers(socketio):
    """Branche les événements Socket.IO du namespace de chat sur le dispatcher."""

    @socketio.on('connect', namespace=CHAT_NAMESPACE)
    def handle_connect(auth=None):
        token = auth.get('token') if isinstance(auth, dict) else None
        if not token:
            logger.warning("Connexion refusée - token manquant")
            return False

        try:
            decoded_token = decode_token(token)
        except Exception as e:
            logger.warning(f"Connexion refusée - token invalide: {e}")
            return False

        kind = decoded_token.get('kind', 'user')
        _dispatcher().connect(request.sid, decoded_token['sub'], kind)
        logger.debug(f"Client {request.sid} connecté à {CHAT_NAMESPACE} ({kind} {decoded_token['sub']})")

    @socketio.on('disconnect', namespace=CHAT_NAMESPACE)
    def handle_disconnect(*args):
        _dispatcher().disconnect(request.sid)

    @socketio.on('message', namespace=CHAT_NAMESPACE)
    def handle_message(data):
        # L'accusé de réception est renvoyé au callback du client
        return _dispatcher().dispatch(request.sid, data)
