"""Room Status Coordinator

Keeps physical room status in step with the reservation lifecycle, admin
overrides, housekeeping and the out-of-order sweep. Methods taking a ``uow``
run inside the caller's transaction; the others open their own.
"""
import logging
from datetime import date, datetime
from typing import List, Optional
from uuid import UUID

from domain.auth import User, SYSTEM_USER
from domain.entities import Reservation, Room, OUT_OF_SERVICE_STATUSES
from domain.enums import HousekeepingStatus, ReservationStatus, Role, RoomStatus
from domain.errors import InventoryConflict, NotFound
from domain.lifecycle import IN_HOUSE_STATES, Transition, settled_room_status
from domain.repositories import UnitOfWork
from application.support import (
    CATALOG_ROLES, HOUSEKEEPING_ROLES, Clock, audit, authorize, utc_now,
)

logger = logging.getLogger(__name__)

LIFECYCLE_OWNED_STATUSES = frozenset({RoomStatus.OCCUPIED, RoomStatus.RESERVED})


class RoomStatusCoordinator:
    """Room status side effects and admin room operations"""

    def __init__(self, uow: UnitOfWork, clock: Clock = utc_now):
        self.uow = uow
        self.clock = clock

    # ==================== LIFECYCLE SIDE EFFECTS ====================

    async def ensure_assignable(
        self,
        uow: UnitOfWork,
        reservation: Reservation,
        room_id: UUID,
        room_type_id: UUID,
        exclude_stay_id: Optional[UUID] = None,
    ) -> Room:
        """Check that room_id can hold this stay; raise InventoryConflict otherwise"""
        room = await uow.rooms.find_by_id(room_id)
        if room is None:
            raise NotFound("Room", room_id)
        if room.business_unit_id != reservation.business_unit_id:
            raise ValueError(f"Room {room.room_number} belongs to another business unit")
        if room.room_type_id != room_type_id:
            raise ValueError(f"Room {room.room_number} is not of the booked room type")
        if not room.is_active:
            raise InventoryConflict(room_id, reason=f"room {room.room_number} is inactive")
        if room.is_out_of_service:
            raise InventoryConflict(room_id, reason=f"room {room.room_number} is {room.status.value}")

        for stay in reservation.room_stays:
            if stay.stay_id != exclude_stay_id and stay.room_id == room_id:
                raise InventoryConflict(
                    room_id, reservation.reservation_id,
                    reason=f"room {room.room_number} is already on this reservation",
                )

        overlapping = await uow.reservations.find_overlapping_active(
            room_id,
            reservation.date_range.check_in,
            reservation.date_range.check_out,
            exclude_reservation_id=reservation.reservation_id,
        )
        if overlapping:
            raise InventoryConflict(room_id, overlapping[0].reservation_id)
        return room

    async def ensure_reservation_assignable(self, uow: UnitOfWork, reservation: Reservation) -> None:
        for stay in reservation.room_stays:
            if stay.room_id is not None:
                await self.ensure_assignable(
                    uow, reservation, stay.room_id, stay.room_type_id, exclude_stay_id=stay.stay_id,
                )

    async def apply_transition(
        self,
        uow: UnitOfWork,
        reservation: Reservation,
        transition: Transition,
        at: datetime,
    ) -> List[Room]:
        """Apply the transition's room effect to every assigned room"""
        effect = transition.room_effect
        changed = []
        for room_id in reservation.room_ids():
            room = await uow.rooms.find_by_id(room_id)
            if room is None:
                raise NotFound("Room", room_id)

            if effect.release:
                if await self._release(uow, room, reservation, at):
                    changed.append(room)
                continue

            if effect.hold and room.is_out_of_service:
                raise InventoryConflict(room_id, reason=f"room {room.room_number} is {room.status.value}")
            if effect.status == RoomStatus.OCCUPIED:
                await self._ensure_no_other_guest(uow, room, reservation)
            if effect.status == RoomStatus.RESERVED and room.status != RoomStatus.AVAILABLE:
                continue

            if effect.status is not None:
                room.set_status(effect.status, at)
            if effect.housekeeping is not None:
                room.set_housekeeping(effect.housekeeping, at)
            await uow.rooms.save(room)
            changed.append(room)
        return changed

    async def move_hold(
        self,
        uow: UnitOfWork,
        reservation: Reservation,
        old_room_id: Optional[UUID],
        new_room: Room,
        at: datetime,
    ) -> None:
        """Re-point a confirmed reservation's hold to another room"""
        if old_room_id is not None and old_room_id != new_room.room_id:
            old_room = await uow.rooms.find_by_id(old_room_id)
            if old_room is not None:
                await self._release(uow, old_room, reservation, at)
        if new_room.status == RoomStatus.AVAILABLE:
            new_room.set_status(RoomStatus.RESERVED, at)
            await uow.rooms.save(new_room)

    async def occupy_for_walk_in(self, uow: UnitOfWork, reservation: Reservation, at: datetime) -> None:
        for room_id in reservation.room_ids():
            room = await uow.rooms.find_by_id(room_id)
            await self._ensure_no_other_guest(uow, room, reservation)
            room.set_status(RoomStatus.OCCUPIED, at)
            await uow.rooms.save(room)

    async def _ensure_no_other_guest(self, uow: UnitOfWork, room: Room, reservation: Reservation) -> None:
        for holder in await uow.reservations.find_active_for_room(room.room_id):
            if holder.reservation_id != reservation.reservation_id and holder.status in IN_HOUSE_STATES:
                raise InventoryConflict(room.room_id, holder.reservation_id, reason="a guest is still in the room")

    async def _release(self, uow: UnitOfWork, room: Room, reservation: Reservation, at: datetime) -> bool:
        if room.status != RoomStatus.RESERVED:
            return False
        holders = [
            r for r in await uow.reservations.find_active_for_room(room.room_id)
            if r.reservation_id != reservation.reservation_id
        ]
        if holders:
            return False
        room.set_status(RoomStatus.AVAILABLE, at)
        await uow.rooms.save(room)
        return True

    async def _active_holders(self, uow: UnitOfWork, room: Room, today: date) -> List[Reservation]:
        return [
            r for r in await uow.reservations.find_active_for_room(room.room_id)
            if r.status in IN_HOUSE_STATES
            or (r.status == ReservationStatus.CONFIRMED and r.date_range.check_out > today)
        ]

    # ==================== ADMIN OPERATIONS ====================

    async def override_status(
        self,
        principal: User,
        room_id: UUID,
        status: RoomStatus,
        force: bool = False,
        out_of_order_until: Optional[datetime] = None,
        reason: Optional[str] = None,
    ) -> Room:
        """Set a room's status by hand.

        Taking a room held by an active reservation out of service, or
        marking AVAILABLE a room with a guest in it or a RESERVED room with a
        confirmed stay ahead, needs ``force``. Without it, AVAILABLE settles
        to RESERVED while a confirmed reservation still holds the room.
        OCCUPIED and RESERVED only ever come from the lifecycle.
        """
        if status in LIFECYCLE_OWNED_STATUSES:
            raise ValueError(f"{status.value} is set by reservations and cannot be set directly")

        now = self.clock()
        async with self.uow.transaction() as uow:
            room = await uow.rooms.find_by_id(room_id)
            if room is None:
                raise NotFound("Room", room_id)
            authorize(principal, room.business_unit_id, *CATALOG_ROLES)
            business_unit = await uow.business_units.find_by_id(room.business_unit_id)
            today = business_unit.local_today(now)

            holders = await self._active_holders(uow, room, today)
            if status == RoomStatus.AVAILABLE:
                blocking = [r for r in holders if r.status in IN_HOUSE_STATES]
                if room.status == RoomStatus.RESERVED:
                    blocking += [r for r in holders if r.status == ReservationStatus.CONFIRMED]
            elif status in OUT_OF_SERVICE_STATUSES:
                blocking = holders
            else:
                blocking = []

            if blocking and not force:
                logger.warning(
                    "Rejected %s override of room %s by %s: held by reservation %s",
                    status.value, room.room_number, principal.username, blocking[0].reservation_id,
                )
                raise InventoryConflict(
                    room_id, blocking[0].reservation_id,
                    reason=f"held by reservation {blocking[0].confirmation_number}; pass force to override",
                )

            target = status
            if status == RoomStatus.AVAILABLE and not blocking:
                target = settled_room_status(r.status for r in holders)

            previous = room.status
            if not room.set_status(target, now, out_of_order_until):
                return room
            await uow.rooms.save(room)

            action = "ROOM_STATUS_OVERRIDE"
            if blocking:
                action = "ROOM_STATUS_FORCED"
                logger.warning(
                    "Forced %s override of room %s by %s despite reservations %s",
                    status.value, room.room_number, principal.username,
                    ", ".join(str(r.reservation_id) for r in blocking),
                )
            await audit(
                uow, "Room", room.room_id, action, principal, now,
                from_status=previous, to_status=target, reason=reason,
            )
        logger.info("Room %s set to %s by %s", room.room_number, target.value, principal.username)
        return room

    async def update_housekeeping(self, principal: User, room_id: UUID, housekeeping: HousekeepingStatus) -> Room:
        """Record a housekeeping result; a clean room leaves CLEANING"""
        now = self.clock()
        async with self.uow.transaction() as uow:
            room = await uow.rooms.find_by_id(room_id)
            if room is None:
                raise NotFound("Room", room_id)
            authorize(principal, room.business_unit_id, *HOUSEKEEPING_ROLES)

            previous = room.status
            room.set_housekeeping(housekeeping, now)
            if room.status == RoomStatus.CLEANING and housekeeping in (
                HousekeepingStatus.CLEAN, HousekeepingStatus.INSPECTED,
            ):
                holders = await uow.reservations.find_active_for_room(room.room_id)
                room.set_status(settled_room_status(r.status for r in holders), now)
            await uow.rooms.save(room)
            await audit(
                uow, "Room", room.room_id, "HOUSEKEEPING", principal, now,
                from_status=previous, to_status=room.status, housekeeping=housekeeping.value,
            )
        return room

    async def sweep_out_of_order(self, principal: User = SYSTEM_USER) -> List[Room]:
        """Put rooms whose out-of-order period has ended back in service.

        A room still held by a confirmed reservation comes back RESERVED.
        """
        authorize(principal, None, Role.ADMIN)
        now = self.clock()
        async with self.uow.transaction() as uow:
            released = await uow.rooms.release_expired_out_of_order(now)
            for room in released:
                await audit(
                    uow, "Room", room.room_id, "OUT_OF_ORDER_EXPIRED", principal, now,
                    from_status=RoomStatus.OUT_OF_ORDER, to_status=room.status,
                )
        logger.info("Out-of-order sweep released %d room(s)", len(released))
        return released
