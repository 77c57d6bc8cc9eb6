from types import SimpleNamespace
from flask import Flask
from flask_restx import Api
from flask_cors import CORS
from config import Config
from errors import register_error_handlers
from extensions import db, jwt, migrate, socketio, CHAT_NAMESPACE
import logging

logger = logging.getLogger(__name__)

def create_app(config_object=Config):
    app = Flask(__name__)
    app.config.from_object(config_object)

    # Configurer le logging
    logging.basicConfig(level=app.config.get("LOG_LEVEL", "DEBUG"))
    logger.debug("Application Flask créée avec succès")

    if not app.config.get('JWT_SECRET_KEY'):
        logger.error("JWT_SECRET_KEY non défini dans la configuration !")
        raise ValueError("JWT_SECRET_KEY doit être défini dans Config")

    allowed_origins = app.config["ALLOWED_CORS_ORIGINS"]

    # Initialisation des extensions
    socketio.init_app(
        app,
        async_mode=app.config["SOCKETIO_ASYNC_MODE"],
        cors_allowed_origins=allowed_origins,
        logger=app.config["SOCKETIO_LOGGER"],
        engineio_logger=app.config["SOCKETIO_LOGGER"],
    )
    logger.debug(f"SocketIO initialisé avec origines autorisées : {allowed_origins}")
    db.init_app(app)
    migrate.init_app(app, db)
    jwt.init_app(app)
    logger.debug("SQLAlchemy, Migrate et JWTManager initialisés")

    # Gestion des erreurs JWT
    @jwt.invalid_token_loader
    def invalid_token_callback(error):
        logger.error(f"Token invalide : {error}")
        return {"msg": "Signature verification failed"}, 401

    @jwt.unauthorized_loader
    def unauthorized_callback(error):
        logger.error(f"Accès non autorisé : {error}")
        return {"msg": "Missing or invalid Authorization header"}, 401

    @jwt.expired_token_loader
    def expired_token_callback(jwt_header, jwt_payload):
        logger.error("Token expiré")
        return {"msg": "Token has expired"}, 401

    # Configuration CORS pour les requêtes HTTP
    CORS(app, resources={r"/*": {
        "origins": allowed_origins,
        "methods": ["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
        "allow_headers": ["Content-Type", "Authorization", "Accept"],
        "supports_credentials": True,
        "max_age": 86400
    }})

    # Importation des modèles
    from models.user import User  # noqa: F401
    from models.professional import Professional  # noqa: F401
    from models.conversation import Conversation, Message  # noqa: F401
    from models.support_chat import SupportChat, SupportMessage  # noqa: F401
    from models.moderator import Moderator  # noqa: F401
    from models.report import Report  # noqa: F401
    from models.notification import Notification  # noqa: F401

    from services.message_gateway import MessageGateway
    from services.conversation_service import ConversationService
    from services.support_service import SupportService
    from services.chat_archive import ChatArchive
    from services.connection_registry import ConnectionRegistry
    from services.dispatcher import ChatDispatcher
    from services import notification_service
    from services.auth_service import ensure_admin_user

    api = Api(
        title="Marketplace Chat API",
        description="Messagerie client ↔ professionnel et support en direct",
        security="Bearer Auth",
        authorizations={
            "Bearer Auth": {
                "type": "apiKey",
                "in": "header",
                "name": "Authorization"
            }
        }
    )
    api.init_app(app)
    register_error_handlers(api)
    logger.debug("API Flask-RESTX initialisée")

    # Services de chat : un registre de connexions par application
    gateway = MessageGateway()
    archive = ChatArchive(app.config["ARCHIVE_DIR"])
    services = SimpleNamespace(
        gateway=gateway,
        conversations=ConversationService(gateway),
        support=SupportService(gateway, archive),
        archive=archive,
    )

    def send_envelope(handle, envelope):
        socketio.emit(envelope["type"], envelope, to=handle, namespace=CHAT_NAMESPACE)

    registry = ConnectionRegistry(send_envelope)
    app.extensions["chat_services"] = services
    app.extensions["chat_registry"] = registry
    app.extensions["chat_dispatcher"] = ChatDispatcher(
        registry, services.conversations, services.support, notification_service)

    with app.app_context():
        db.create_all()
        logger.debug("Tables créées avec succès dans la base de données.")
        ensure_admin_user()

    # Enregistrement des namespaces API
    def register_namespaces():
        from api.auth import ns as auth_ns
        from api.conversations import ns as conversations_ns
        from api.reports import ns as reports_ns
        from api.notifications import ns as notifications_ns
        from api.support import ns as support_ns
        from api.moderator import ns as moderator_ns
        from api.admin import ns as admin_ns

        api.add_namespace(auth_ns, path="/auth")
        api.add_namespace(conversations_ns, path="/conversations")
        api.add_namespace(reports_ns, path="/reports")
        api.add_namespace(notifications_ns, path="/notifications")
        api.add_namespace(support_ns, path="/support")
        api.add_namespace(moderator_ns, path="/moderator")
        api.add_namespace(admin_ns, path="/admin")

    register_namespaces()

    from api.realtime import register_socket_handlers
    register_socket_handlers(socketio)

    logger.debug("create_app terminé avec succès")
    return app
