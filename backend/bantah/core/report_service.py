"""
Report Service - User reports for moderation.
"""
from typing import Optional, Dict, Any, Tuple, List

from bson import ObjectId

from bantah.extensions import db as mongo
from bantah.utils.enums import ReportStatus
from bantah.utils.validators import utcnow

REPORT_TYPES = ("user", "group", "event", "challenge")


class ReportService:
    """Service for filing and resolving reports."""

    @classmethod
    def create_report(
        cls,
        reporter_id: str,
        report_type: str,
        target_id: str,
        reason: str,
        reported_id: Optional[str] = None
    ) -> Tuple[Optional[Dict], Optional[str]]:
        if report_type not in REPORT_TYPES:
            return None, "Report type must be one of: user, group, event, challenge"

        reason = reason.strip() if isinstance(reason, str) else ""
        if not reason:
            return None, "Reason is required"

        report = {
            "type": report_type,
            "target_id": ObjectId(target_id),
            "reporter_id": ObjectId(reporter_id),
            "reported_id": ObjectId(reported_id) if reported_id else None,
            "reason": reason[:1000],
            "status": ReportStatus.PENDING.value,
            "resolution": None,
            "created_at": utcnow()
        }
        result = mongo.reports.insert_one(report)
        report["_id"] = result.inserted_id
        return report, None

    @classmethod
    def list_reports(cls, status: Optional[str] = None) -> List[Dict[str, Any]]:
        query = {"status": status} if status else {}
        return list(mongo.reports.find(query).sort("created_at", -1))

    @classmethod
    def resolve_report(
        cls,
        report_id: str,
        admin_id: str,
        resolution: str,
        status: str = ReportStatus.RESOLVED.value
    ) -> Tuple[Optional[Dict], Optional[str]]:
        from .platform_service import PlatformService

        if status not in (ReportStatus.RESOLVED.value, ReportStatus.DISMISSED.value):
            return None, "Status must be 'resolved' or 'dismissed'"

        report = mongo.reports.find_one({"_id": ObjectId(report_id)})
        if not report:
            return None, "Report not found"
        if report["status"] != ReportStatus.PENDING.value:
            return None, f"Report already {report['status']}"

        update = {
            "status": status,
            "resolution": (resolution or "").strip() or None,
            "resolved_by": ObjectId(admin_id),
            "resolved_at": utcnow()
        }
        mongo.reports.update_one({"_id": report["_id"]}, {"$set": update})
        report.update(update)

        PlatformService.log_admin_action(admin_id, "resolve_report", "report", report_id, {"status": status})
        return report, None
