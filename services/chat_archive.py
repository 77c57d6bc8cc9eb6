import json
import logging
import os
from datetime import datetime

logger = logging.getLogger(__name__)


class ChatArchive:
    """Journal des chats de support archivés : un fichier JSON par chat."""

    def __init__(self, directory):
        self.directory = directory

    def write(self, chat, messages):
        archive_data = {
            "chat_id": chat.id,
            "subject": chat.subject,
            "user_id": chat.user_id,
            "moderator_id": chat.moderator_id,
            "admin_intervention_id": chat.admin_intervention_id,
            "status": chat.status,
            "escalation_reason": chat.escalation_reason,
            "started_at": chat.created_at.isoformat() if chat.created_at else None,
            "closed_at": chat.closed_at.isoformat() if chat.closed_at else None,
            "archived_at": datetime.utcnow().isoformat(),
            "messages": [
                {
                    "sender_type": m.sender_type,
                    "sender_id": m.sender_id,
                    "message_type": m.message_type,
                    "content": m.content,
                    "timestamp": m.created_at.isoformat() if m.created_at else None,
                }
                for m in messages
            ],
        }
        os.makedirs(self.directory, exist_ok=True)
        filename = f"chat-{chat.id}-{datetime.utcnow().strftime('%Y%m%d_%H%M%S_%f')}.json"
        path = os.path.join(self.directory, filename)
        with open(path, "w", encoding="utf-8") as fh:
            json.dump(archive_data, fh, ensure_ascii=False, indent=2)
        logger.info(f"Chat {chat.id} archivé dans {path} ({len(messages)} messages)")
        return path

    def read(self, path):
        with open(path, encoding="utf-8") as fh:
            return json.load(fh)
