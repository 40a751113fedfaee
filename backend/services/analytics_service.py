"""View/download counters and dashboard aggregates.

Every method is best-effort: failures are logged and a neutral value
(``0``, empty stats, empty list) is returned.
"""

import logging
from typing import Optional

from backend.repositories import DashboardStats, VisualRepository

logger = logging.getLogger(__name__)


class AnalyticsService:
    def __init__(self, session_factory):
        self._session_factory = session_factory

    def track_view(self, visual_id: str) -> int:
        return self._increment(visual_id, "views")

    def track_download(self, visual_id: str) -> int:
        return self._increment(visual_id, "downloads")

    def batch_track_views(self, visual_ids: list[str]) -> int:
        """Returns how many visuals were counted."""
        return sum(self.track_view(v) for v in dict.fromkeys(visual_ids))

    def get_dashboard_stats(self, user_id: str) -> DashboardStats:
        db = self._session_factory()
        try:
            return VisualRepository(db).dashboard_stats(user_id)
        except Exception as e:
            logger.warning("Dashboard stats failed for %s: %s", user_id, e)
            return DashboardStats()
        finally:
            db.close()

    def get_recent_visuals(self, user_id: str, limit: int = 6) -> list:
        db = self._session_factory()
        try:
            return VisualRepository(db).list_for_user(user_id, limit=limit)
        except Exception as e:
            logger.warning("Recent visuals failed for %s: %s", user_id, e)
            return []
        finally:
            db.close()

    def get_visual_analytics(self, visual_id: str, user_id: str) -> Optional[dict]:
        db = self._session_factory()
        try:
            visual = VisualRepository(db).get_owned(visual_id, user_id)
            if visual is None:
                return None
            return {
                "visualId": visual.visual_id,
                "views": visual.views or 0,
                "downloads": visual.downloads or 0,
                "editCount": visual.edit_count or 0,
                "createdAt": visual.created_at.isoformat() if visual.created_at else None,
            }
        except Exception as e:
            logger.warning("Visual analytics failed for %s: %s", visual_id, e)
            return None
        finally:
            db.close()

    def _increment(self, visual_id: str, column: str) -> int:
        db = self._session_factory()
        try:
            repo = VisualRepository(db)
            touched = repo.increment_views(visual_id) if column == "views" else repo.increment_downloads(visual_id)
            db.commit()
            return touched
        except Exception as e:
            db.rollback()
            logger.warning("Failed to track %s for %s: %s", column, visual_id, e)
            return 0
        finally:
            db.close()
