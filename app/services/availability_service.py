"""Availability service for managing doctors' recurring weekly windows."""

from collections.abc import Iterable
from datetime import time

import structlog

from app.core.exceptions import ForbiddenException, UpstreamServiceError
from app.core.portal_client import PortalClient
from app.core.security import SessionContext
from app.schemas.availability import (
    AvailabilityChangeFailure,
    AvailabilityChangeSet,
    AvailabilitySaveResult,
    AvailabilityWindow,
    DayOfWeek,
)
from app.services.slot_resolver import window_from_upstream

logger = structlog.get_logger()

DRAFT_START = time(9, 0)
DRAFT_END = time(17, 0)


def plan_changes(
    current: list[AvailabilityWindow],
    desired: list[AvailabilityWindow],
    malformed_ids: Iterable[int] = (),
) -> AvailabilityChangeSet:
    """
    Diff the stored windows against the doctor's desired set.

    Args:
        current: Windows as currently stored upstream
        desired: Complete set the doctor wants to keep
        malformed_ids: Ids of stored rows that could not be parsed

    Returns:
        Creates, updates, deletes and untouched ids, each applicable on its own
    """
    current_by_id = {window.id: window for window in current if window.id is not None}
    malformed = set(malformed_ids) - current_by_id.keys()
    changes = AvailabilityChangeSet()
    kept_ids: set[int] = set()

    for window in desired:
        if window.id in malformed:
            # Overwrite the broken row in place
            if window.id not in kept_ids:
                kept_ids.add(window.id)
                changes.to_update.append(window)
            continue

        existing = current_by_id.get(window.id) if window.id is not None else None
        if existing is None:
            # Unsaved draft, or an id that no longer exists upstream
            changes.to_create.append(window.model_copy(update={"id": None}))
            continue

        if window.id in kept_ids:
            continue
        kept_ids.add(window.id)

        if existing.same_schedule(window):
            changes.unchanged.append(window.id)
        else:
            changes.to_update.append(window)

    stored_ids = [*current_by_id, *sorted(malformed)]
    changes.to_delete = [window_id for window_id in stored_ids if window_id not in kept_ids]
    return changes


def window_payload(window: AvailabilityWindow) -> dict:
    """Build the upstream body for one window."""
    return window.model_dump(
        mode="json",
        include={"day_of_week", "start_time", "end_time", "is_available"},
    )


class AvailabilityService:
    """Service for reading and editing availability windows."""

    def __init__(self, client: PortalClient, session: SessionContext):
        """Initialize service with the upstream client and caller context."""
        self.client = client
        self.session = session

    def _require_doctor(self) -> None:
        if not self.session.is_doctor:
            raise ForbiddenException("Only doctors can manage availability")

    @staticmethod
    def _parse(rows: list[dict]) -> list[AvailabilityWindow]:
        windows = []
        for row in rows:
            window = window_from_upstream(row)
            if window is None:
                logger.warning("availability_window_skipped", window_id=row.get("id"))
                continue
            windows.append(window)
        return windows

    async def list_for_doctor(self, doctor_id: int) -> list[AvailabilityWindow]:
        """Get a doctor's windows as patients see them."""
        rows = await self.client.list_doctor_availability(self.session.token, doctor_id)
        return self._parse(rows)

    async def list_mine(self) -> list[AvailabilityWindow]:
        """Get the signed-in doctor's windows."""
        self._require_doctor()
        rows = await self.client.list_my_availability(self.session.token)
        return self._parse(rows)

    @staticmethod
    def new_draft(day_of_week: DayOfWeek) -> AvailabilityWindow:
        """Default unsaved window for a day."""
        return AvailabilityWindow(
            day_of_week=day_of_week,
            start_time=DRAFT_START,
            end_time=DRAFT_END,
            is_available=True,
        )

    async def save(self, desired: list[AvailabilityWindow]) -> AvailabilitySaveResult:
        """
        Bring the stored windows in line with ``desired``.

        Each create, update and delete is applied independently; a failure is
        recorded and the remaining changes still go through. Stored rows that
        cannot be parsed are deleted unless ``desired`` overwrites them by id.

        Args:
            desired: The doctor's complete set of windows

        Returns:
            Counts, failures and the windows as stored after the save
        """
        self._require_doctor()
        rows = await self.client.list_my_availability(self.session.token)
        current = self._parse(rows)
        parsed_ids = {window.id for window in current}
        malformed_ids = [
            row["id"]
            for row in rows
            if isinstance(row.get("id"), int) and row["id"] not in parsed_ids
        ]
        changes = plan_changes(current, desired, malformed_ids)
        result = AvailabilitySaveResult(unchanged=len(changes.unchanged))
        token = self.session.token

        for window in changes.to_create:
            try:
                await self.client.create_availability(token, window_payload(window))
                result.created += 1
            except UpstreamServiceError as e:
                self._record_failure(result, "create", None, e)

        for window in changes.to_update:
            try:
                await self.client.update_availability(token, window.id, window_payload(window))
                result.updated += 1
            except UpstreamServiceError as e:
                self._record_failure(result, "update", window.id, e)

        for window_id in changes.to_delete:
            try:
                await self.client.delete_availability(token, window_id)
                result.deleted += 1
            except UpstreamServiceError as e:
                # Already gone is the desired end state
                if e.status_code == 404:
                    result.deleted += 1
                    continue
                self._record_failure(result, "delete", window_id, e)

        result.windows = await self.list_mine()

        logger.info(
            "availability_saved",
            doctor_id=self.session.user_id,
            created=result.created,
            updated=result.updated,
            deleted=result.deleted,
            unchanged=result.unchanged,
            failed=len(result.failed),
        )
        return result

    async def delete_window(self, window_id: int) -> None:
        """Delete a single window."""
        self._require_doctor()
        await self.client.delete_availability(self.session.token, window_id)

    def _record_failure(
        self,
        result: AvailabilitySaveResult,
        operation: str,
        window_id: int | None,
        error: UpstreamServiceError,
    ) -> None:
        logger.warning(
            "availability_change_failed",
            doctor_id=self.session.user_id,
            operation=operation,
            window_id=window_id,
            status_code=error.status_code,
        )
        result.failed.append(
            AvailabilityChangeFailure(
                operation=operation,
                window_id=window_id,
                message=_upstream_message(error),
            )
        )


def _upstream_message(error: UpstreamServiceError) -> str:
    payload = error.payload
    if isinstance(payload, dict) and isinstance(payload.get("detail"), str):
        return payload["detail"]
    return error.message
