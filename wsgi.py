import eventlet
eventlet.monkey_patch()

import logging
from app import create_app
from extensions import socketio

logger = logging.getLogger(__name__)

app = create_app()

if __name__ == "__main__":
    logger.debug("Démarrage du serveur avec SocketIO")
    try:
        socketio.run(app, host='0.0.0.0', port=5000, debug=True, use_reloader=False)
    except Exception as e:
        logger.error(f"Erreur au démarrage du serveur : {e}")
        raise
