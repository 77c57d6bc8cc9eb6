from extensions import db
from datetime import datetime
import uuid

MESSAGE_TYPES = ("text", "image", "file")

class Conversation(db.Model):
    __tablename__ = 'conversations'
    __table_args__ = (
        db.UniqueConstraint('client_id', 'professional_id', name='uq_conversation_pair'),
    )
    id = db.Column(db.String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    client_id = db.Column(db.String(36), db.ForeignKey('users.id', ondelete="CASCADE"), nullable=False, index=True)
    professional_id = db.Column(db.String(36), db.ForeignKey('professionals.id', ondelete="CASCADE"), nullable=False, index=True)
    service_request_id = db.Column(db.String(36), nullable=True)
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    last_message_at = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    client = db.relationship('User', foreign_keys=[client_id])
    professional = db.relationship('Professional')
    messages = db.relationship('Message', backref='conversation', lazy=True,
                               cascade="all, delete-orphan", order_by="Message.id")

    @property
    def professional_user_id(self):
        return self.professional.user_id if self.professional else None

    def participant_ids(self):
        return {self.client_id, self.professional_user_id}

    def has_participant(self, user_id):
        return user_id is not None and user_id in self.participant_ids()

    def to_dict(self):
        return {
            "id": self.id,
            "client_id": self.client_id,
            "professional_id": self.professional_id,
            "service_request_id": self.service_request_id,
            "is_active": self.is_active,
            "last_message_at": self.last_message_at.isoformat() if self.last_message_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

class Message(db.Model):
    __tablename__ = 'messages'
    id = db.Column(db.Integer, primary_key=True)
    conversation_id = db.Column(db.String(36), db.ForeignKey('conversations.id', ondelete="CASCADE"), nullable=False, index=True)
    sender_id = db.Column(db.String(36), db.ForeignKey('users.id', ondelete="CASCADE"), nullable=False)
    content = db.Column(db.Text, nullable=False)
    message_type = db.Column(db.String(10), nullable=False, default='text')
    file_url = db.Column(db.String(255), nullable=True)
    is_read = db.Column(db.Boolean, default=False, nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "conversation_id": self.conversation_id,
            "sender_id": self.sender_id,
            "content": self.content,
            "message_type": self.message_type,
            "file_url": self.file_url,
            "is_read": self.is_read,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<Message {self.id} conversation_id={self.conversation_id} sender_id={self.sender_id}>"
