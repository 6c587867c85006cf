import logging
from typing import Any, Callable, Dict, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.clock import Clock, system_clock
from app.core.schemas import SideEffectOutcome
from app.models.user import User
from app.services.permissions import PermissionResolver, default_resolver


class BaseService:
    """
    Common state for tenant-scoped services: session, tenant, acting user,
    clock and permission resolver.
    """

    def __init__(
        self,
        db: Session,
        org_id: int,
        actor: Optional[User] = None,
        clock: Optional[Clock] = None,
        permissions: Optional[PermissionResolver] = None,
    ):
        self.db = db
        self.org_id = org_id
        self.actor = actor
        self.clock = clock or system_clock
        self.permissions = permissions or default_resolver
        self._logger = logging.getLogger(self.__class__.__module__)

    def _ensure(self, key: str) -> None:
        self.permissions.ensure_permission(self.actor, self.org_id, key)

    def _can(self, key: str) -> bool:
        return self.permissions.has_permission(self.actor, self.org_id, key)

    def _commit(self) -> None:
        try:
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            raise

    def _run_side_effect(self, name: str, step: Callable[[], Optional[Dict[str, Any]]]) -> SideEffectOutcome:
        """
        Run a best-effort step after the primary write has been committed.

        The step runs inside a savepoint so a failure leaves the session usable
        and the committed transition untouched. Failures are logged and returned.
        """
        try:
            with self.db.begin_nested():
                detail = step() or {}
            self.db.commit()
        except Exception as exc:
            self._logger.error(f"Side effect '{name}' failed: {exc}", exc_info=True)
            return SideEffectOutcome(name=name, ok=False, error=str(exc))
        return SideEffectOutcome(name=name, ok=True, skipped=bool(detail.pop("skipped", False)), detail=detail)
