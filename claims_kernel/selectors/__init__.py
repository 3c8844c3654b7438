"""Read-only query selectors."""

from claims_kernel.selectors.audit_selector import AuditSelector
from claims_kernel.selectors.base import BaseSelector
from claims_kernel.selectors.claim_selector import ClaimSelector
from claims_kernel.selectors.report_selector import (
    DepartmentStat,
    HrDashboard,
    LecturerStat,
    PeriodBucket,
    ReportGranularity,
    ReportSelector,
    ReportSummary,
)

__all__ = [
    "AuditSelector",
    "BaseSelector",
    "ClaimSelector",
    "DepartmentStat",
    "HrDashboard",
    "LecturerStat",
    "PeriodBucket",
    "ReportGranularity",
    "ReportSelector",
    "ReportSummary",
]
