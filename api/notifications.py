from flask import g
from flask_restx import Namespace, Resource
from api.security import user_required
from services.notification_service import list_notifications, mark_notification_read, mark_all_read

ns = Namespace("notifications", description="Notifications de l'utilisateur")

@ns.route("")
class Notifications(Resource):
    @user_required()
    def get(self):
        return [n.to_dict() for n in list_notifications(g.current_user.id)], 200

@ns.route("/<string:notification_id>/read")
class NotificationRead(Resource):
    @user_required()
    def put(self, notification_id):
        return mark_notification_read(notification_id, g.current_user.id).to_dict(), 200

@ns.route("/read-all")
class NotificationsReadAll(Resource):
    @user_required()
    def put(self):
        return {"updated": mark_all_read(g.current_user.id)}, 200
