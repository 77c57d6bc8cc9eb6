from flask import request, g
from flask_restx import Namespace, Resource, fields
from api.security import user_required
from services.report_service import create_report

ns = Namespace("reports", description="Signalements de profils et de conversations")

report_model = ns.model("Report", {
    "reportType": fields.String(required=True, enum=["professional_profile", "chat_conversation"]),
    "targetId": fields.String(required=True, description="ID du professionnel ou de la conversation"),
    "reason": fields.String(required=True),
    "description": fields.String
})

@ns.route("")
class Reports(Resource):
    @user_required()
    @ns.expect(report_model)
    def post(self):
        """Signale un profil professionnel ou une conversation."""
        data = request.get_json(silent=True) or {}
        report = create_report(
            g.current_user.id,
            data.get("reportType") or data.get("report_type"),
            data.get("targetId") or data.get("target_id"),
            data.get("reason"),
            data.get("description"),
        )
        return report.to_dict(), 201
