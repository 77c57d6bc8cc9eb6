from flask import request, g
from flask_restx import Namespace, Resource, fields
from extensions import db
from api.security import user_required
from services.auth_service import register_user, login_user

# Créer un namespace pour les opérations d'authentification
ns = Namespace("auth", description="Opérations d'authentification")

# Modèle pour l'inscription
register_model = ns.model("Register", {
    "email": fields.String(required=True, description="Adresse e-mail"),
    "password": fields.String(required=True, description="Mot de passe"),
    "confirm_password": fields.String(required=True, description="Confirmation du mot de passe"),
    "first_name": fields.String(description="Prénom"),
    "last_name": fields.String(description="Nom"),
    "role": fields.String(required=True, enum=["client", "professional"], description="Rôle de l'utilisateur"),
    "business_name": fields.String(description="Nom commercial (professionnels)")
})

# Modèle pour la connexion
login_model = ns.model("Login", {
    "email": fields.String(required=True, description="Adresse e-mail"),
    "password": fields.String(required=True, description="Mot de passe")
})

settings_model = ns.model("Settings", {
    "push_notifications": fields.Boolean(description="Recevoir les notifications en temps réel")
})

@ns.route("/register")
class Register(Resource):
    @ns.expect(register_model)
    def post(self):
        data = request.get_json(silent=True) or {}

        # Vérifier que les mots de passe correspondent
        if data.get("password") != data.get("confirm_password"):
            return {"message": "Les mots de passe ne correspondent pas"}, 400

        user = register_user(
            data.get("email"), data.get("password"),
            data.get("first_name"), data.get("last_name"),
            data.get("role"), data.get("business_name"),
        )
        return {"message": "Utilisateur créé avec succès", "id": user.id, "role": user.role}, 201

@ns.route("/login")
class Login(Resource):
    @ns.expect(login_model)
    def post(self):
        data = request.get_json(silent=True) or {}
        result = login_user(data.get("email"), data.get("password"))
        if not result:
            return {"message": "Identifiants invalides"}, 401
        return {"access_token": result["access_token"], "user": result["user"].to_dict()}, 200

@ns.route("/me")
class Me(Resource):
    @user_required()
    def get(self):
        user = g.current_user
        data = user.to_dict()
        data["professional_id"] = user.professional.id if user.professional else None
        return data, 200

    @user_required()
    @ns.expect(settings_model)
    def put(self):
        data = request.get_json(silent=True) or {}
        if "push_notifications" in data:
            g.current_user.push_notifications = bool(data["push_notifications"])
            db.session.commit()
        return g.current_user.to_dict(), 200
