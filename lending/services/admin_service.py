import logging
from typing import List, Optional

from lending.database import session
from lending.loan_store import LoanStore
from lending.user_store import UserDirectory
from lending.views import UserLoanStats

BORROWED_COUNT_KEYS = {"borrowedcount", "borrowed_count", "borrowed"}


class AdminService:
    """Reporting over users and their loan counts."""

    def __init__(self, db_file: Optional[str] = None, logger: Optional[logging.Logger] = None) -> None:
        self.db_file = db_file
        self.logger = logger or logging.getLogger(__name__)

    def users_with_stats(
        self,
        name_filter: Optional[str] = None,
        sort_by: Optional[str] = None,
        sort_direction: Optional[str] = None,
    ) -> List[UserLoanStats]:
        """Every user (optionally filtered by name) with borrowed/returned counts.

        Users without loans report zero for both counts. Sorting is by user
        name unless ``sort_by`` selects the borrowed count; in that case ties
        are always broken by name ascending.
        """
        with session(self.db_file) as conn:
            users = UserDirectory(conn).list_for_admin(name_filter)
            stats = LoanStore(conn).all_user_stats()

        result = []
        for user in users:
            borrowed, returned = stats.get(user.id, (0, 0))
            result.append(
                UserLoanStats(
                    user_id=user.id,
                    user_name=user.login,
                    borrowed_count=borrowed,
                    returned_count=returned,
                )
            )

        descending = (sort_direction or "").strip().lower() == "desc"
        if (sort_by or "").strip().lower() in BORROWED_COUNT_KEYS:
            # stable sorts: name ascending first, then by count in the requested direction
            result.sort(key=lambda s: (s.user_name.casefold(), s.user_name))
            result.sort(key=lambda s: s.borrowed_count, reverse=descending)
        else:
            result.sort(key=lambda s: (s.user_name.casefold(), s.user_name), reverse=descending)

        self.logger.info("Retrieved admin user stats for %d users", len(result))
        return result
