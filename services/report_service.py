from extensions import db
from models.report import Report, REPORT_TYPES, REPORT_STATUSES
from models.professional import Professional
from models.conversation import Conversation
from errors import ValidationError, NotFoundError, AuthorizationError
from datetime import datetime
import logging

logger = logging.getLogger(__name__)

def create_report(reporter_id, report_type, target_id, reason, description=None):
    """Crée un signalement contre un profil professionnel ou une conversation."""
    if report_type not in REPORT_TYPES:
        raise ValidationError(f"Type de signalement invalide : {report_type}")
    if not target_id:
        raise ValidationError("La cible du signalement est requise.")
    if not reason or not reason.strip():
        raise ValidationError("Le motif du signalement est requis.")

    if report_type == "professional_profile":
        if not db.session.get(Professional, target_id):
            raise NotFoundError("Professionnel introuvable.", target_id=target_id)
    else:
        conversation = db.session.get(Conversation, target_id)
        if not conversation:
            raise NotFoundError("Conversation introuvable.", target_id=target_id)
        if not conversation.has_participant(reporter_id):
            raise AuthorizationError("Seuls les participants peuvent signaler une conversation.")

    report = Report(
        reporter_id=reporter_id,
        report_type=report_type,
        target_id=target_id,
        reason=reason.strip(),
        description=description,
        status="pending",
    )
    try:
        db.session.add(report)
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logger.error(f"Erreur lors de la création du signalement : {e}")
        raise
    logger.info(f"Signalement {report.id} créé par {reporter_id} ({report_type}:{target_id})")
    return report

def list_reports(status=None):
    query = Report.query
    if status:
        if status not in REPORT_STATUSES:
            raise ValidationError(f"Statut invalide : {status}")
        query = query.filter_by(status=status)
    return query.order_by(Report.created_at.desc()).all()

def update_report(report_id, admin_id, status=None, admin_notes=None):
    report = db.session.get(Report, report_id)
    if not report:
        raise NotFoundError("Signalement introuvable.", report_id=report_id)
    if status is not None and status not in REPORT_STATUSES:
        raise ValidationError(f"Statut invalide : {status}")

    try:
        if status is not None:
            report.status = status
            if status in ("resolved", "dismissed"):
                report.resolved_by = admin_id
                report.resolved_at = datetime.utcnow()
        if admin_notes is not None:
            report.admin_notes = admin_notes
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logger.error(f"Erreur lors de la mise à jour du signalement {report_id} : {e}")
        raise
    logger.info(f"Signalement {report_id} mis à jour par l'admin {admin_id} : statut={report.status}")
    return report
