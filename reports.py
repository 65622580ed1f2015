import logging
import threading
from typing import Dict, List

import database
from schemas import Report, ReportCreate
from utils import new_id, now_utc

logger = logging.getLogger(__name__)


class ReportStore:
    """Append-only moderation reports, mirrored to MongoDB when configured."""

    def __init__(self, clock=now_utc):
        self.clock = clock
        self._reports: Dict[str, Report] = {}
        self._lock = threading.Lock()

    def create(self, payload: ReportCreate) -> Report:
        report = Report(
            id=new_id(),
            reporter_id=payload.reporter_id,
            message_id=payload.message_id,
            user_id=payload.user_id,
            reason=payload.reason,
            created_at=self.clock(),
        )
        with self._lock:
            self._reports[report.id] = report

        if database.db is not None:
            try:
                database.create_document("report", report)
            except Exception as e:
                logger.warning("Could not mirror report %s: %s", report.id, e)
        return report

    def list(self) -> List[Report]:
        with self._lock:
            return sorted(self._reports.values(), key=lambda r: r.created_at)
