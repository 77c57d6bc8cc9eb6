from extensions import db
from datetime import datetime
import uuid

class Professional(db.Model):
    __tablename__ = 'professionals'
    id = db.Column(db.String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = db.Column(db.String(36), db.ForeignKey('users.id', ondelete="CASCADE"), nullable=False, unique=True)
    business_name = db.Column(db.String(120), nullable=False)
    location = db.Column(db.String(120))
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    def __repr__(self):
        return f"<Professional {self.business_name}, User: {self.user_id}>"
