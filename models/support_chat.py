from extensions import db
from datetime import datetime
import uuid

SUPPORT_STATUSES = ("open", "assigned", "escalated", "closed")
ACTIVE_STATUSES = ("open", "assigned", "escalated")
PRIORITIES = ("low", "medium", "high")
SENDER_TYPES = ("user", "moderator", "admin", "system")
SUPPORT_MESSAGE_TYPES = ("text", "image", "file", "system_info", "system_warning")

def _iso(value):
    return value.isoformat() if value else None

class SupportChat(db.Model):
    __tablename__ = 'support_chats'
    # Un seul chat non fermé par utilisateur
    __table_args__ = (
        db.Index('uq_support_chat_active_user', 'user_id', unique=True,
                 sqlite_where=db.text("status != 'closed'"),
                 postgresql_where=db.text("status != 'closed'")),
    )
    id = db.Column(db.String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = db.Column(db.String(36), db.ForeignKey('users.id', ondelete="CASCADE"), nullable=False, index=True)
    moderator_id = db.Column(db.String(36), db.ForeignKey('moderators.id'), nullable=True)
    admin_intervention_id = db.Column(db.String(36), db.ForeignKey('users.id'), nullable=True)
    status = db.Column(db.String(20), nullable=False, default='open', index=True)
    priority = db.Column(db.String(10), nullable=False, default='medium')
    subject = db.Column(db.String(200))
    admin_intervened = db.Column(db.Boolean, default=False, nullable=False)
    is_admin_visible = db.Column(db.Boolean, default=False, nullable=False)
    escalation_reason = db.Column(db.Text, nullable=True)
    is_archived = db.Column(db.Boolean, default=False, nullable=False)
    archived_at = db.Column(db.DateTime, nullable=True)
    archive_path = db.Column(db.String(255), nullable=True)
    last_message_at = db.Column(db.DateTime, nullable=True)
    closed_at = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    user = db.relationship('User', foreign_keys=[user_id])
    moderator = db.relationship('Moderator', foreign_keys=[moderator_id])
    messages = db.relationship('SupportMessage', backref='support_chat', lazy=True,
                               cascade="all, delete-orphan", order_by="SupportMessage.id")

    @property
    def is_active(self):
        return self.status in ACTIVE_STATUSES

    def to_dict(self):
        return {
            "id": self.id,
            "user_id": self.user_id,
            "moderator_id": self.moderator_id,
            "admin_intervention_id": self.admin_intervention_id,
            "status": self.status,
            "priority": self.priority,
            "subject": self.subject,
            "admin_intervened": self.admin_intervened,
            "is_admin_visible": self.is_admin_visible,
            "escalation_reason": self.escalation_reason,
            "is_archived": self.is_archived,
            "archived_at": _iso(self.archived_at),
            "last_message_at": _iso(self.last_message_at),
            "closed_at": _iso(self.closed_at),
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }

    def __repr__(self):
        return f"<SupportChat {self.id} user={self.user_id} status={self.status}>"

class SupportMessage(db.Model):
    __tablename__ = 'support_messages'
    id = db.Column(db.Integer, primary_key=True)
    support_chat_id = db.Column(db.String(36), db.ForeignKey('support_chats.id', ondelete="CASCADE"), nullable=False, index=True)
    # user_id, moderator id ou admin id selon sender_type ; NULL pour le système
    sender_id = db.Column(db.String(36), nullable=True)
    sender_type = db.Column(db.String(10), nullable=False)
    content = db.Column(db.Text, nullable=False)
    message_type = db.Column(db.String(20), nullable=False, default='text')
    is_read = db.Column(db.Boolean, default=False, nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "support_chat_id": self.support_chat_id,
            "sender_id": self.sender_id,
            "sender_type": self.sender_type,
            "content": self.content,
            "message_type": self.message_type,
            "is_read": self.is_read,
            "created_at": _iso(self.created_at),
        }
