from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, replace
from datetime import date
from enum import Enum
from typing import Any, Callable, Mapping, Protocol, Sequence

from venuebook.core.entities.notification import NotificationKind
from venuebook.core.entities.recurrence import RecurrencePattern, RecurrenceRule
from venuebook.core.entities.reservation import (
    BookingDetails,
    Reservation,
    ReservationStatus,
    SeriesMembership,
    TimeRange,
    Visibility,
)
from venuebook.core.entities.scheduling_config import SchedulingConfig
from venuebook.core.errors import ConflictError, NotFoundError, StateError, ValidationError
from venuebook.core.repositories.reservation_repository import ReservationRepository
from venuebook.core.scheduling.calendar_expander import expand, expand_after, first_occurrence_on_or_after
from venuebook.core.scheduling.conflict_detector import ConflictDetector, overlaps
from venuebook.core.scheduling.validation import (
    normalize_time,
    parse_date,
    validate_day_of_week,
    validate_rule,
    validate_time_range,
    validate_week_of_month,
)

logger = logging.getLogger(__name__)

CONFLICT_MESSAGE = "This time slot is already booked or pending approval"


class Notifier(Protocol):
    """Fire-and-forget hook invoked after a committed create, status change or cancellation."""

    def notify(self, kind: NotificationKind, reservation: Reservation) -> None:
        raise NotImplementedError


class UpdateScope(str, Enum):
    SINGLE = "single"
    GROUP = "group"


# Fields shared by every member of a series. The date always stays per occurrence.
GROUP_FIELDS = frozenset({
    "start_time",
    "end_time",
    "event_name",
    "purpose",
    "attendees",
    "visibility",
    "admin_notes",
    "status",
})
SINGLE_FIELDS = GROUP_FIELDS | {"date", "resource_id"}


@dataclass(frozen=True, slots=True)
class OccurrencePreview:
    date: date
    conflict: bool


class SeriesManager:
    """
    Lifecycle of single and recurring reservations on a resource.

    Every multi-date operation checks all of its dates before writing anything and performs the
    check and the writes inside one ``unit_of_work``, so a batch is committed entirely or not at all.
    """

    def __init__(
            self,
            *,
            reservation_repo: ReservationRepository,
            conflict_detector: ConflictDetector | None = None,
            notifier: Notifier | None = None,
            id_factory: Callable[[], str] | None = None,
    ) -> None:
        self._reservation_repo = reservation_repo
        self._conflict_detector = conflict_detector or ConflictDetector(reservation_repo=reservation_repo)
        self._notifier = notifier
        self._new_id = id_factory or (lambda: str(uuid.uuid4()))

    # -----------------------------
    # Creation
    # -----------------------------
    def create_reservation(
            self,
            *,
            resource_id: str,
            on_date: date | str,
            start_time: str,
            end_time: str,
            details: BookingDetails,
            config: SchedulingConfig,
    ) -> Reservation:
        """Book a single, non-recurring slot."""
        resource_id = self._require_resource(resource_id)
        on_date = parse_date(on_date)
        time_range = validate_time_range(start_time, end_time, config)
        self._validate_details(details)

        with self._reservation_repo.unit_of_work([resource_id]):
            self._ensure_free(resource_id, [on_date], time_range)
            created = self._reservation_repo.insert(
                self._build(resource_id=resource_id, on_date=on_date, time_range=time_range, details=details)
            )

        logger.info("Created reservation %s on resource %s for %s", created.reservation_id, resource_id, on_date)
        self._notify(NotificationKind.CREATED, created)
        return created

    def create_series(
            self,
            *,
            resource_id: str,
            anchor_date: date | str,
            start_time: str,
            end_time: str,
            rule: RecurrenceRule,
            details: BookingDetails,
            config: SchedulingConfig,
    ) -> list[Reservation]:
        """
        Expand ``rule`` from ``anchor_date`` and book every occurrence.

        Raises ConflictError listing every taken date; in that case nothing is written.
        """
        resource_id = self._require_resource(resource_id)
        anchor_date = parse_date(anchor_date)
        time_range = validate_time_range(start_time, end_time, config)
        rule = validate_rule(rule, anchor_date)
        self._validate_details(details)

        dates = expand(anchor_date, rule, config.max_occurrences)

        with self._reservation_repo.unit_of_work([resource_id]):
            self._ensure_free(resource_id, dates, time_range)

            series_id = self._new_id()
            anchor = self._reservation_repo.insert(
                self._build(
                    resource_id=resource_id,
                    on_date=anchor_date,
                    time_range=time_range,
                    details=details,
                    membership=SeriesMembership.anchor(series_id, rule.end_date),
                    rule=rule,
                )
            )
            created = [anchor]
            created.extend(self._insert_children(anchor, dates[1:], anchor.status))

        logger.info(
            "Created series %s with %d occurrences on resource %s (%s)",
            series_id, len(created), resource_id, rule.describe(),
        )
        self._notify(NotificationKind.CREATED, anchor)
        return created

    def convert_to_series(
            self,
            *,
            reservation_id: str,
            rule: RecurrenceRule,
            config: SchedulingConfig,
    ) -> list[Reservation]:
        """Turn a singleton into the anchor of a new series, adding the following occurrences as children."""
        resource_id = self.get_reservation(reservation_id).resource_id

        with self._reservation_repo.unit_of_work([resource_id]):
            target = self._require_on_resource(self.get_reservation(reservation_id), resource_id)
            if not target.is_singleton:
                raise StateError(f"Reservation {reservation_id!r} already belongs to series {target.series_id!r}")
            if not target.is_active:
                raise StateError(f"Cancelled reservation {reservation_id!r} cannot become a series")

            rule = validate_rule(rule, target.date)
            dates = expand(target.date, rule, config.max_occurrences)
            new_dates = dates[1:]

            self._ensure_free(
                target.resource_id, new_dates, target.time_range, exclude_reservation_id=target.reservation_id
            )

            series_id = self._new_id()
            anchor = self._reservation_repo.update(
                target.reservation_id,
                {
                    "membership": SeriesMembership.anchor(series_id, rule.end_date),
                    "recurrence_rule": rule,
                },
            )
            created = [anchor]
            created.extend(self._insert_children(anchor, new_dates, self._child_status(anchor)))

        logger.info("Converted reservation %s into series %s (%d occurrences)", reservation_id, series_id, len(created))
        return created

    def add_single_date(
            self,
            *,
            series_id: str,
            on_date: date | str,
    ) -> Reservation:
        """Add one child occurrence to a series without touching its recurrence rule."""
        on_date = parse_date(on_date)
        resource_id = self._require_anchor(self.get_series(series_id), series_id).resource_id

        with self._reservation_repo.unit_of_work([resource_id]):
            anchor = self._require_on_resource(self._require_anchor(self.get_series(series_id), series_id), resource_id)
            self._ensure_free(anchor.resource_id, [on_date], anchor.time_range)
            [created] = self._insert_children(anchor, [on_date], self._child_status(anchor))

        logger.info("Added %s to series %s as reservation %s", on_date, series_id, created.reservation_id)
        self._notify(NotificationKind.CREATED, created)
        return created

    # -----------------------------
    # Series re-shaping
    # -----------------------------
    def extend_series(
            self,
            *,
            series_id: str,
            new_end_date: date | str,
            config: SchedulingConfig,
    ) -> list[Reservation]:
        """
        Continue the anchor's cadence after the latest existing occurrence up to ``new_end_date``.

        Returns the newly created occurrences. The declared end date is updated on every member only
        when all new dates are free.
        """
        new_end_date = parse_date(new_end_date)
        resource_id = self._require_anchor(self.get_series(series_id), series_id).resource_id

        with self._reservation_repo.unit_of_work([resource_id]):
            members = self.get_series(series_id)
            anchor = self._require_on_resource(self._require_anchor(members, series_id), resource_id)
            rule = self._require_rule(anchor)

            current_end = anchor.membership.series_end_date
            if new_end_date <= current_end:
                raise ValidationError(
                    f"New end date {new_end_date.isoformat()} must be after the current end {current_end.isoformat()}"
                )

            # Members may have been moved individually, so continue from the latest actual date.
            latest = max(m.date for m in members)
            extended_rule = rule.with_end_date(new_end_date)
            new_dates = expand_after(anchor.date, extended_rule, latest, config.max_occurrences)

            self._ensure_free(anchor.resource_id, new_dates, anchor.time_range)

            created = self._insert_children(anchor, new_dates, self._child_status(anchor), end_date=new_end_date)
            for member in members:
                fields: dict[str, Any] = {"membership": member.membership.with_end_date(new_end_date)}
                if member.is_anchor:
                    fields["recurrence_rule"] = extended_rule
                self._reservation_repo.update(member.reservation_id, fields)

        logger.info(
            "Extended series %s to %s with %d new occurrences", series_id, new_end_date.isoformat(), len(created)
        )
        return created

    def edit_recurrence_pattern(
            self,
            *,
            series_id: str,
            week_of_month: int,
            day_of_week: int,
            config: SchedulingConfig,
    ) -> list[Reservation]:
        """
        Re-pattern a monthly series to a new nth-weekday rule.

        Children are deleted and recreated rather than diffed. The anchor moves to the first
        occurrence of the new pattern on or after its current date.
        """
        week_of_month = validate_week_of_month(week_of_month)
        day_of_week = validate_day_of_week(day_of_week)

        resource_id = self._require_anchor(self.get_series(series_id), series_id).resource_id

        with self._reservation_repo.unit_of_work([resource_id]):
            members = self.get_series(series_id)
            anchor = self._require_on_resource(self._require_anchor(members, series_id), resource_id)
            rule = self._require_rule(anchor)
            if rule.pattern is not RecurrencePattern.MONTHLY:
                raise StateError(
                    f"Series {series_id!r} is {rule.pattern.value}; only monthly series can be re-patterned"
                )

            new_rule = rule.with_nth_weekday(week_of_month, day_of_week)
            new_anchor_date = first_occurrence_on_or_after(anchor.date, week_of_month, day_of_week)
            if new_anchor_date > new_rule.end_date:
                raise ValidationError(
                    f"The new pattern has no occurrence before the series end {new_rule.end_date.isoformat()}"
                )
            dates = expand(new_anchor_date, new_rule, config.max_occurrences)

            # The series' own rows are about to be replaced and must not block the new dates.
            self._ensure_free(anchor.resource_id, dates, anchor.time_range, exclude_series_id=series_id)

            for member in members:
                if not member.is_anchor:
                    self._reservation_repo.delete(member.reservation_id)

            updated_anchor = self._reservation_repo.update(
                anchor.reservation_id,
                {"date": new_anchor_date, "recurrence_rule": new_rule},
            )
            result = [updated_anchor]
            result.extend(self._insert_children(updated_anchor, dates[1:], self._child_status(updated_anchor)))

        logger.info("Re-patterned series %s (%s), %d occurrences", series_id, new_rule.describe(), len(result))
        return result

    def preview_series(
            self,
            *,
            resource_id: str,
            anchor_date: date | str,
            start_time: str,
            end_time: str,
            rule: RecurrenceRule,
            config: SchedulingConfig,
    ) -> list[OccurrencePreview]:
        """Dates a series would occupy, each flagged with whether it is already taken. Writes nothing."""
        resource_id = self._require_resource(resource_id)
        anchor_date = parse_date(anchor_date)
        time_range = validate_time_range(start_time, end_time, config)
        rule = validate_rule(rule, anchor_date)

        dates = expand(anchor_date, rule, config.max_occurrences)
        taken = set(self._conflict_detector.conflicting_dates(resource_id, dates, time_range))
        return [OccurrencePreview(date=d, conflict=d in taken) for d in dates]

    # -----------------------------
    # Updates and status changes
    # -----------------------------
    def update_reservation(
            self,
            *,
            reservation_id: str,
            fields: Mapping[str, Any],
            scope: UpdateScope = UpdateScope.SINGLE,
            config: SchedulingConfig | None = None,
    ) -> list[Reservation]:
        """
        Apply ``fields`` to one reservation or, with ``scope=GROUP``, to every member of its series.

        Group updates never change a member's date. Returns the updated reservations.
        """
        config = config or SchedulingConfig()
        scope = UpdateScope(scope)
        _, seen = self._members_in_scope(reservation_id, scope)
        changes = self._normalize_fields(fields, scope)
        if not changes:
            raise ValidationError("No fields to update")
        new_status: ReservationStatus | None = changes.pop("status", None)

        resources = {m.resource_id for m in seen}
        if "resource_id" in changes:
            resources.add(changes["resource_id"])

        with self._reservation_repo.unit_of_work(resources):
            target, members = self._members_in_scope(reservation_id, scope)
            if any(m.resource_id not in resources for m in members):
                raise StateError(f"Reservations in scope of {reservation_id!r} moved while updating; retry")

            plans = self._plan_updates(members, changes, new_status, config, single=scope is UpdateScope.SINGLE)
            self._ensure_group_free(plans)
            updated = [
                self._reservation_repo.update(member.reservation_id, member_changes)
                for member, proposed, member_changes in plans
                if member_changes
            ]

        logger.info("Updated %d reservation(s) from %s (scope=%s)", len(updated), reservation_id, scope.value)
        if new_status is not None and updated:
            kind = (
                NotificationKind.CANCELLED
                if new_status is ReservationStatus.CANCELLED
                else NotificationKind.STATUS_CHANGED
            )
            subject = next((r for r in updated if r.reservation_id == target.reservation_id), updated[0])
            self._notify(kind, subject)
        return updated

    def change_status(
            self,
            *,
            reservation_id: str,
            status: ReservationStatus | str,
            scope: UpdateScope = UpdateScope.SINGLE,
    ) -> list[Reservation]:
        return self.update_reservation(reservation_id=reservation_id, fields={"status": status}, scope=scope)

    def cancel(self, *, reservation_id: str, scope: UpdateScope = UpdateScope.SINGLE) -> list[Reservation]:
        """Cancellation is a status change; rows are never deleted here."""
        return self.change_status(reservation_id=reservation_id, status=ReservationStatus.CANCELLED, scope=scope)

    # -----------------------------
    # Reads
    # -----------------------------
    def get_reservation(self, reservation_id: str) -> Reservation:
        reservation = self._reservation_repo.get_by_id(reservation_id)
        if reservation is None:
            raise NotFoundError("Reservation not found")
        return reservation

    def get_series(self, series_id: str) -> list[Reservation]:
        members = self._reservation_repo.list_by_series_id(series_id)
        if not members:
            raise NotFoundError("Series not found")
        return members

    def list_for_resource(self, *, resource_id: str, from_date: date | str, to_date: date | str) -> list[Reservation]:
        from_date = parse_date(from_date)
        to_date = parse_date(to_date)
        if to_date < from_date:
            raise ValidationError("to_date must not be before from_date")
        return self._reservation_repo.list_by_resource_and_date_range(
            self._require_resource(resource_id), from_date, to_date
        )

    # -----------------------------
    # Internal helpers
    # -----------------------------
    def _build(
            self,
            *,
            resource_id: str,
            on_date: date,
            time_range: TimeRange,
            details: BookingDetails,
            status: ReservationStatus = ReservationStatus.PENDING,
            membership: SeriesMembership | None = None,
            rule: RecurrenceRule | None = None,
    ) -> Reservation:
        return Reservation(
            reservation_id=self._new_id(),
            organization_id=self._reservation_repo.organization_id,
            resource_id=resource_id,
            date=on_date,
            start_time=time_range.start_time,
            end_time=time_range.end_time,
            user_id=details.user_id,
            status=status,
            event_name=details.event_name,
            purpose=details.purpose,
            attendees=details.attendees,
            visibility=Visibility(details.visibility),
            admin_notes=details.admin_notes,
            membership=membership,
            recurrence_rule=rule,
        )

    def _insert_children(
            self,
            anchor: Reservation,
            dates: Sequence[date],
            status: ReservationStatus,
            *,
            end_date: date | None = None,
    ) -> list[Reservation]:
        membership = SeriesMembership.child(
            anchor.series_id,
            anchor.reservation_id,
            end_date or anchor.membership.series_end_date,
        )
        details = self._details_of(anchor)
        return [
            self._reservation_repo.insert(
                self._build(
                    resource_id=anchor.resource_id,
                    on_date=d,
                    time_range=anchor.time_range,
                    details=details,
                    status=status,
                    membership=membership,
                )
            )
            for d in dates
        ]

    @staticmethod
    def _details_of(reservation: Reservation) -> BookingDetails:
        return BookingDetails(
            user_id=reservation.user_id,
            event_name=reservation.event_name,
            purpose=reservation.purpose,
            attendees=reservation.attendees,
            visibility=reservation.visibility,
            admin_notes=reservation.admin_notes,
        )

    @staticmethod
    def _child_status(anchor: Reservation) -> ReservationStatus:
        # New occurrences follow the anchor, but never start out cancelled.
        return anchor.status if anchor.is_active else ReservationStatus.PENDING

    def _ensure_free(
            self,
            resource_id: str,
            dates: Sequence[date],
            time_range: TimeRange,
            *,
            exclude_reservation_id: str | None = None,
            exclude_series_id: str | None = None,
    ) -> None:
        conflicts = self._conflict_detector.conflicting_dates(
            resource_id,
            dates,
            time_range,
            exclude_reservation_id=exclude_reservation_id,
            exclude_series_id=exclude_series_id,
        )
        if conflicts:
            logger.warning(
                "Rejected booking on resource %s %s-%s: %d conflicting date(s)",
                resource_id, time_range.start_time, time_range.end_time, len(conflicts),
            )
            raise ConflictError(CONFLICT_MESSAGE, conflicts)

    def _plan_updates(
            self,
            members: Sequence[Reservation],
            changes: Mapping[str, Any],
            new_status: ReservationStatus | None,
            config: SchedulingConfig,
            *,
            single: bool,
    ) -> list[tuple[Reservation, Reservation, dict[str, Any]]]:
        """
        Validate the update for each member and return ``(member, proposed, changes)`` triples.

        ``proposed`` is the member as it would look after the update and is what gets conflict-checked.
        """
        plans = []
        transitioned = 0
        for member in members:
            member_changes = dict(changes)

            if new_status is not None:
                if member.status is new_status and not single:
                    pass
                elif member.can_transition_to(new_status):
                    member_changes["status"] = new_status
                    transitioned += 1
                elif single:
                    raise StateError(
                        f"Cannot change reservation {member.reservation_id!r} "
                        f"from {member.status.value!r} to {new_status.value!r}"
                    )

            proposed = replace(member, **member_changes)
            if "date" in member_changes and member.is_anchor and proposed.date > member.membership.series_end_date:
                raise ValidationError(
                    f"The first occurrence cannot move past the series end "
                    f"{member.membership.series_end_date.isoformat()}"
                )
            if "start_time" in member_changes or "end_time" in member_changes:
                validate_time_range(proposed.start_time, proposed.end_time, config)

            plans.append((member, proposed, member_changes))

        if new_status is not None and transitioned == 0 and not changes:
            raise StateError(f"No reservation in scope can change to {new_status.value!r}")
        return plans

    def _ensure_group_free(self, plans: Sequence[tuple[Reservation, Reservation, dict[str, Any]]]) -> None:
        moved_ids = set()
        conflicts: set[date] = set()
        for member, proposed, member_changes in plans:
            slot_changed = any(k in member_changes for k in ("date", "start_time", "end_time", "resource_id"))
            if not slot_changed or not proposed.is_active:
                continue
            moved_ids.add(member.reservation_id)
            if self._conflict_detector.has_conflict(
                    proposed.resource_id,
                    proposed.date,
                    proposed.start_time,
                    proposed.end_time,
                    member.reservation_id,
                    exclude_series_id=member.series_id if len(plans) > 1 else None,
            ):
                conflicts.add(proposed.date)

        # Members moved together can only collide with each other on a shared date.
        if len(plans) > 1:
            by_date: dict[tuple[str, date], list[Reservation]] = {}
            for member, proposed, _ in plans:
                if proposed.is_active:
                    by_date.setdefault((proposed.resource_id, proposed.date), []).append(proposed)
            for (_, on_date), same_day in by_date.items():
                if len(same_day) > 1 and any(r.reservation_id in moved_ids for r in same_day):
                    if any(
                            overlaps(a.time_range, b.time_range)
                            for i, a in enumerate(same_day)
                            for b in same_day[i + 1:]
                    ):
                        conflicts.add(on_date)

        if conflicts:
            logger.warning("Rejected update: %d conflicting date(s)", len(conflicts))
            raise ConflictError(CONFLICT_MESSAGE, conflicts)

    @staticmethod
    def _normalize_fields(fields: Mapping[str, Any], scope: UpdateScope) -> dict[str, Any]:
        allowed = GROUP_FIELDS if scope is UpdateScope.GROUP else SINGLE_FIELDS
        unknown = set(fields) - allowed
        if unknown:
            if scope is UpdateScope.GROUP and unknown <= SINGLE_FIELDS:
                raise ValidationError(
                    f"{', '.join(sorted(unknown))} can only be changed on a single occurrence"
                )
            raise ValidationError(f"Unknown field(s): {', '.join(sorted(unknown))}")

        changes: dict[str, Any] = {}
        for name, value in fields.items():
            if name in ("start_time", "end_time"):
                changes[name] = normalize_time(value)
            elif name == "date":
                changes[name] = parse_date(value)
            elif name == "resource_id":
                changes[name] = SeriesManager._require_resource(value)
            elif name == "status":
                try:
                    changes[name] = ReservationStatus(value)
                except ValueError as e:
                    raise ValidationError(f"Invalid status {value!r}") from e
            elif name == "visibility":
                try:
                    changes[name] = Visibility(value)
                except ValueError as e:
                    raise ValidationError(f"Invalid visibility {value!r}") from e
            elif name == "attendees":
                if isinstance(value, bool) or not isinstance(value, int) or value < 1:
                    raise ValidationError("attendees must be a positive integer")
                changes[name] = value
            elif name == "admin_notes":
                if value is not None and not isinstance(value, str):
                    raise ValidationError("admin_notes must be a string")
                changes[name] = value
            else:
                if not isinstance(value, str):
                    raise ValidationError(f"{name} must be a string")
                changes[name] = value
        return changes

    @staticmethod
    def _require_resource(resource_id: object) -> str:
        if not isinstance(resource_id, str) or not resource_id.strip():
            raise ValidationError("resource_id must be a non-empty string")
        return resource_id

    @staticmethod
    def _validate_details(details: BookingDetails) -> None:
        if not isinstance(details.user_id, str) or not details.user_id:
            raise ValidationError("user_id must be a non-empty string")
        if isinstance(details.attendees, bool) or not isinstance(details.attendees, int) or details.attendees < 1:
            raise ValidationError("attendees must be a positive integer")
        try:
            Visibility(details.visibility)
        except ValueError as e:
            raise ValidationError(f"Invalid visibility {details.visibility!r}") from e

    def _members_in_scope(self, reservation_id: str, scope: UpdateScope) -> tuple[Reservation, list[Reservation]]:
        target = self.get_reservation(reservation_id)
        if scope is UpdateScope.GROUP and not target.is_singleton:
            return target, self.get_series(target.series_id)
        return target, [target]

    @staticmethod
    def _require_on_resource(reservation: Reservation, resource_id: str) -> Reservation:
        # Locks are taken per resource before re-reading; a row moved in between is not covered by them.
        if reservation.resource_id != resource_id:
            raise StateError(f"Reservation {reservation.reservation_id!r} moved to another resource; retry")
        return reservation

    @staticmethod
    def _require_anchor(members: Sequence[Reservation], series_id: str) -> Reservation:
        anchors = [m for m in members if m.is_anchor]
        if len(anchors) != 1:
            raise StateError(f"Series {series_id!r} has {len(anchors)} anchors; expected exactly one")
        return anchors[0]

    @staticmethod
    def _require_rule(anchor: Reservation) -> RecurrenceRule:
        if anchor.recurrence_rule is None:
            raise StateError(f"Series {anchor.series_id!r} has no recurrence rule")
        return anchor.recurrence_rule

    def _notify(self, kind: NotificationKind, reservation: Reservation) -> None:
        if self._notifier is None:
            return
        try:
            self._notifier.notify(kind, reservation)
        except Exception:
            # The reservation is already committed; a failed notification must not undo it.
            logger.warning(
                "Notification %s for reservation %s failed", kind.value, reservation.reservation_id, exc_info=True
            )
