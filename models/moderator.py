from extensions import db
from werkzeug.security import generate_password_hash, check_password_hash
from datetime import datetime
import uuid

class Moderator(db.Model):
    __tablename__ = 'moderators'
    id = db.Column(db.String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    moderator_id = db.Column(db.String(80), unique=True, nullable=False)  # identifiant de connexion
    password_hash = db.Column(db.String(256), nullable=False)
    name = db.Column(db.String(120), nullable=False)
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    created_by = db.Column(db.String(36), db.ForeignKey('users.id'), nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    def set_password(self, password):
        self.password_hash = generate_password_hash(password, method='pbkdf2:sha256')

    def check_password(self, password):
        return check_password_hash(self.password_hash, password)

    def to_dict(self):
        # Jamais le hash du mot de passe
        return {
            "id": self.id,
            "moderator_id": self.moderator_id,
            "name": self.name,
            "is_active": self.is_active,
            "created_by": self.created_by,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<Moderator {self.moderator_id}, Active: {self.is_active}>"
