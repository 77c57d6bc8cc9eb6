from flask import request, g
from flask_restx import Namespace, Resource, fields
from api.security import admin_required, chat_services, dispatcher
from api.moderator import chat_summary
from services.moderator_service import create_moderator, list_moderators, set_moderator_active, delete_moderator
from services.report_service import list_reports, update_report

ns = Namespace("admin", description="Supervision : support, modérateurs et signalements (admin)")

moderator_model = ns.model("ModeratorCreate", {
    "moderatorId": fields.String(required=True, description="Identifiant de connexion"),
    "password": fields.String(required=True, description="Mot de passe initial"),
    "name": fields.String(required=True, description="Nom affiché")
})

toggle_model = ns.model("ModeratorToggle", {
    "isActive": fields.Boolean(required=True)
})

report_update_model = ns.model("ReportUpdate", {
    "status": fields.String(enum=["pending", "reviewing", "resolved", "dismissed"]),
    "adminNotes": fields.String
})

admin_message_model = ns.model("AdminSupportMessage", {
    "content": fields.String(required=True)
})

@ns.route("/support-chats")
class AdminSupportChats(Resource):
    @admin_required()
    def get(self):
        return [chat_summary(c) for c in chat_services().support.list_admin_chats()], 200

@ns.route("/support-chat/<string:chat_id>/intervene")
class AdminIntervene(Resource):
    @admin_required()
    def post(self, chat_id):
        chat, system_message = chat_services().support.intervene(chat_id, g.current_user.id)
        dispatcher().publish_support_update(chat, system_message)
        return {"message": "Intervention de l'administrateur activée", "chat": chat.to_dict()}, 200

@ns.route("/support-chat/<string:chat_id>/close")
class AdminClose(Resource):
    @admin_required()
    def post(self, chat_id):
        chat, system_message = chat_services().support.close(chat_id, g.current_user.id, "admin")
        dispatcher().publish_support_update(chat, system_message)
        return chat.to_dict(), 200

@ns.route("/support-chat/<string:chat_id>/archive")
class AdminArchive(Resource):
    @admin_required()
    def post(self, chat_id):
        chat, system_message = chat_services().support.archive_and_close(chat_id, g.current_user.id, "admin")
        dispatcher().publish_support_update(chat, system_message)
        return chat.to_dict(), 200

@ns.route("/support-chat/<string:chat_id>/message")
class AdminMessage(Resource):
    @admin_required()
    @ns.expect(admin_message_model)
    def post(self, chat_id):
        data = request.get_json(silent=True) or {}
        message = dispatcher().send_support_message(chat_id, g.current_user.id, "admin", data.get("content"))
        return message.to_dict(), 201

@ns.route("/moderators")
class AdminModerators(Resource):
    @admin_required()
    def get(self):
        return [m.to_dict() for m in list_moderators()], 200

    @admin_required()
    @ns.expect(moderator_model)
    def post(self):
        data = request.get_json(silent=True) or {}
        moderator = create_moderator(data.get("moderatorId"), data.get("password"), data.get("name"), g.current_user.id)
        return moderator.to_dict(), 201

@ns.route("/moderators/<string:moderator_pk>/toggle")
class AdminModeratorToggle(Resource):
    @admin_required()
    @ns.expect(toggle_model)
    def patch(self, moderator_pk):
        data = request.get_json(silent=True) or {}
        return set_moderator_active(moderator_pk, data.get("isActive", False)).to_dict(), 200

@ns.route("/moderators/<string:moderator_pk>")
class AdminModerator(Resource):
    @admin_required()
    def delete(self, moderator_pk):
        delete_moderator(moderator_pk)
        return {"message": "Modérateur supprimé"}, 200

@ns.route("/reports")
class AdminReports(Resource):
    @admin_required()
    def get(self):
        return [r.to_dict() for r in list_reports(request.args.get("status"))], 200

@ns.route("/reports/<string:report_id>")
class AdminReport(Resource):
    @admin_required()
    @ns.expect(report_update_model)
    def put(self, report_id):
        data = request.get_json(silent=True) or {}
        report = update_report(report_id, g.current_user.id, data.get("status"), data.get("adminNotes"))
        return report.to_dict(), 200

@ns.route("/conversations/<string:conversation_id>/messages")
class AdminConversationMessages(Resource):
    @admin_required()
    def get(self, conversation_id):
        """Messages d'une conversation signalée, pour l'examen du signalement."""
        services = chat_services()
        services.conversations.get(conversation_id)
        return [m.to_dict() for m in services.gateway.list_messages(conversation_id)], 200
