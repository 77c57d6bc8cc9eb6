from flask import request, g
from flask_restx import Namespace, Resource, fields
from api.security import moderator_required, chat_services, dispatcher
from services.auth_service import login_moderator
import logging

logger = logging.getLogger(__name__)

ns = Namespace("moderator", description="Espace modérateur : file des chats de support")

login_model = ns.model("ModeratorLogin", {
    "moderatorId": fields.String(required=True, description="Identifiant de connexion"),
    "password": fields.String(required=True)
})

escalate_model = ns.model("Escalate", {
    "reason": fields.String(description="Motif de l'escalade")
})

message_model = ns.model("ModeratorMessage", {
    "content": fields.String(required=True)
})

def chat_summary(chat):
    data = chat.to_dict()
    user = chat.user
    data["user"] = {
        "id": user.id,
        "first_name": user.first_name,
        "last_name": user.last_name,
        "email": user.email,
    } if user else None
    data["moderator"] = {"id": chat.moderator.id, "name": chat.moderator.name} if chat.moderator else None
    return data

@ns.route("/login")
class ModeratorLogin(Resource):
    @ns.expect(login_model)
    def post(self):
        data = request.get_json(silent=True) or {}
        result = login_moderator(data.get("moderatorId"), data.get("password"))
        if not result:
            return {"message": "Identifiants invalides"}, 401
        return {"access_token": result["access_token"], "moderator": result["moderator"].to_dict()}, 200

@ns.route("/me")
class ModeratorMe(Resource):
    @moderator_required()
    def get(self):
        return g.current_moderator.to_dict(), 200

@ns.route("/support-chats")
class ModeratorChats(Resource):
    @moderator_required()
    def get(self):
        """Chats ouverts, assignés ou escaladés, le plus récent en premier."""
        return [chat_summary(c) for c in chat_services().support.list_active_chats()], 200

@ns.route("/support-chats/<string:chat_id>/messages")
class ModeratorChatMessages(Resource):
    @moderator_required()
    def get(self, chat_id):
        after = request.args.get("after", type=int)
        return [m.to_dict() for m in chat_services().support.list_messages(chat_id, after=after)], 200

    @moderator_required()
    @ns.expect(message_model)
    def post(self, chat_id):
        data = request.get_json(silent=True) or {}
        message = dispatcher().send_support_message(
            chat_id, g.current_moderator.id, "moderator", data.get("content"))
        return message.to_dict(), 201

@ns.route("/support-chats/<string:chat_id>/assign")
class ModeratorAssign(Resource):
    @moderator_required()
    def post(self, chat_id):
        """Prend en charge un chat ouvert ; 409 si un autre modérateur l'a déjà pris."""
        chat, system_message = chat_services().support.assign(chat_id, g.current_moderator.id)
        dispatcher().publish_support_update(chat, system_message)
        return chat_summary(chat), 200

@ns.route("/support-chats/<string:chat_id>/escalate")
class ModeratorEscalate(Resource):
    @moderator_required()
    @ns.expect(escalate_model)
    def post(self, chat_id):
        data = request.get_json(silent=True) or {}
        chat, system_message = chat_services().support.escalate(chat_id, g.current_moderator.id, data.get("reason"))
        dispatcher().publish_support_update(chat, system_message)
        return chat_summary(chat), 200

@ns.route("/support-chats/<string:chat_id>/close")
class ModeratorClose(Resource):
    @moderator_required()
    def post(self, chat_id):
        chat, system_message = chat_services().support.close(chat_id, g.current_moderator.id, "moderator")
        dispatcher().publish_support_update(chat, system_message)
        return chat_summary(chat), 200

@ns.route("/support-chats/<string:chat_id>/archive")
class ModeratorArchive(Resource):
    @moderator_required()
    def post(self, chat_id):
        """Ferme le chat et écrit son historique dans le journal d'archives."""
        chat, system_message = chat_services().support.archive_and_close(chat_id, g.current_moderator.id, "moderator")
        dispatcher().publish_support_update(chat, system_message)
        return chat_summary(chat), 200
