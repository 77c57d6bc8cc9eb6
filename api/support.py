from flask import request, g
from flask_restx import Namespace, Resource, fields
from api.security import user_required, chat_services, dispatcher
from errors import AuthorizationError
import logging

logger = logging.getLogger(__name__)

ns = Namespace("support", description="Chat de support en direct (côté utilisateur)")

open_model = ns.model("SupportChatOpen", {
    "subject": fields.String(description="Sujet de la demande"),
    "priority": fields.String(enum=["low", "medium", "high"], default="medium")
})

support_message_model = ns.model("SupportMessage", {
    "content": fields.String(required=True)
})

@ns.route("/chat")
class SupportChatOpen(Resource):
    @user_required()
    @ns.expect(open_model)
    def post(self):
        """Ouvre un chat de support, ou retourne le chat actif existant."""
        data = request.get_json(silent=True) or {}
        chat, created = chat_services().support.open(g.current_user.id, data.get("subject"), data.get("priority"))
        if created:
            dispatcher().announce_support_chat(chat)
        return chat.to_dict(), 201 if created else 200

@ns.route("/chat/active")
class SupportChatActive(Resource):
    @user_required()
    def get(self):
        """Chat actif de l'utilisateur avec ses messages, ou null."""
        support = chat_services().support
        chat = support.active_chat_for_user(g.current_user.id)
        if not chat:
            return {"chat": None, "messages": []}, 200
        return {"chat": chat.to_dict(), "messages": [m.to_dict() for m in support.list_messages(chat.id)]}, 200

@ns.route("/my-chat")
class MySupportChat(Resource):
    @user_required()
    def get(self):
        chat = chat_services().support.active_chat_for_user(g.current_user.id)
        if not chat:
            return {"message": "Vous n'avez pas de chat actif."}, 404
        return chat.to_dict(), 200

@ns.route("/chat/<string:chat_id>/messages")
class SupportChatMessages(Resource):
    @user_required()
    def get(self, chat_id):
        support = chat_services().support
        chat = support.get_chat(chat_id)
        if not support.can_view(chat, "user", g.current_user.id):
            raise AuthorizationError("Accès refusé à ce chat de support.")
        after = request.args.get("after", type=int)
        return [m.to_dict() for m in support.list_messages(chat_id, after=after)], 200

    @user_required()
    @ns.expect(support_message_model)
    def post(self, chat_id):
        data = request.get_json(silent=True) or {}
        chat = chat_services().support.get_chat(chat_id)
        user = g.current_user
        sender_type = "admin" if user.is_admin and chat.user_id != user.id else "user"
        message = dispatcher().send_support_message(chat_id, user.id, sender_type, data.get("content"))
        return message.to_dict(), 201

@ns.route("/chat/<string:chat_id>/close")
class SupportChatClose(Resource):
    @user_required()
    def post(self, chat_id):
        chat, system_message = chat_services().support.close(chat_id, g.current_user.id, "user")
        dispatcher().publish_support_update(chat, system_message)
        return chat.to_dict(), 200
