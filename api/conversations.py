from flask import request, g
from flask_restx import Namespace, Resource, fields
from api.security import user_required, chat_services, dispatcher
import logging

logger = logging.getLogger(__name__)

ns = Namespace("conversations", description="Conversations client ↔ professionnel")

conversation_model = ns.model("ConversationCreate", {
    "professionalId": fields.String(required=True, description="ID du professionnel"),
    "serviceRequestId": fields.String(description="Demande de service liée (optionnelle)")
})

message_model = ns.model("ConversationMessage", {
    "content": fields.String(required=True, description="Contenu du message"),
    "messageType": fields.String(enum=["text", "image", "file"], default="text")
})

report_model = ns.model("ConversationReport", {
    "reason": fields.String(description="Motif du signalement"),
    "description": fields.String(description="Détails")
})

@ns.route("")
class ConversationList(Resource):
    @user_required()
    def get(self):
        """Liste les conversations de l'utilisateur, la plus récente en premier."""
        return chat_services().conversations.list_for_user(g.current_user.id), 200

    @user_required()
    @ns.expect(conversation_model)
    def post(self):
        """Retourne la conversation existante avec ce professionnel ou la crée."""
        data = request.get_json(silent=True) or {}
        professional_id = data.get("professionalId") or data.get("professional_id")
        conversation, created = chat_services().conversations.get_or_create(
            g.current_user.id, professional_id, data.get("serviceRequestId"))
        return conversation.to_dict(), 201 if created else 200

@ns.route("/<string:conversation_id>")
class ConversationResource(Resource):
    @user_required()
    def delete(self, conversation_id):
        """Supprime la conversation et tous ses messages."""
        chat_services().conversations.delete(conversation_id, g.current_user.id)
        return {"message": "Conversation supprimée avec succès."}, 200

@ns.route("/<string:conversation_id>/messages")
class ConversationMessages(Resource):
    @user_required()
    def get(self, conversation_id):
        """
        Messages de la conversation par ordre chronologique.
        Le paramètre ``after`` (ID de message) ne renvoie que les messages plus récents.
        """
        after = request.args.get("after", type=int)
        messages = chat_services().conversations.list_messages(conversation_id, g.current_user.id, after=after)
        return [m.to_dict() for m in messages], 200

    @user_required()
    @ns.expect(message_model)
    def post(self, conversation_id):
        """Envoie un message (chemin de repli du temps réel)."""
        data = request.get_json(silent=True) or {}
        message = dispatcher().send_conversation_message(
            conversation_id, g.current_user.id, data.get("content"),
            data.get("messageType") or data.get("message_type") or "text")
        return message.to_dict(), 201

@ns.route("/<string:conversation_id>/read")
class ConversationRead(Resource):
    @user_required()
    def put(self, conversation_id):
        updated = chat_services().conversations.mark_read(conversation_id, g.current_user.id)
        return {"updated": updated}, 200

@ns.route("/<string:conversation_id>/report")
class ConversationReport(Resource):
    @user_required()
    @ns.expect(report_model)
    def post(self, conversation_id):
        data = request.get_json(silent=True) or {}
        report = chat_services().conversations.report(
            conversation_id, g.current_user.id, data.get("reason"), data.get("description"))
        return {"message": "Conversation signalée avec succès.", "reportId": report.id}, 201
