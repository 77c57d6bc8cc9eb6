from flask_sqlalchemy import SQLAlchemy
from flask_jwt_extended import JWTManager
from flask_migrate import Migrate
from flask_socketio import SocketIO

# Initialiser les extensions (configurées dans create_app)
db = SQLAlchemy()
jwt = JWTManager()
migrate = Migrate()
socketio = SocketIO()

# Namespace Socket.IO du chat temps réel
CHAT_NAMESPACE = "/ws-chat"
