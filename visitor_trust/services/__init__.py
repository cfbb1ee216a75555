"""
Persistence workflows around the trust engine and the session analyzer
"""

from .access_list_service import AccessListService
from .session_report_service import SessionReportService
from .visitor_service import VisitorTrustService

__all__ = ["AccessListService", "SessionReportService", "VisitorTrustService"]
