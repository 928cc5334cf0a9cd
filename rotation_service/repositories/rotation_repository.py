# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""
Repository: rotation, member-position, override and scheduler-state storage.

Every write runs inside one ``engine.begin()`` transaction. Member positions
are rewritten by deleting the rotation's member rows and re-inserting them in
their new order, so no committed state ever has two members on one position
and the unique (rotation_id, position) constraint never fires mid-statement.
"""

import uuid
from datetime import datetime
from typing import Any, Callable, Optional

from sqlalchemy import text
from sqlalchemy.engine import Connection, Engine

from rotation_service.core.errors import (
    AlreadyBound,
    InvalidPosition,
    MemberNotFound,
    NotFoundError,
    OverrideNotFound,
    RotationInUse,
    RotationNotFound,
)
from rotation_service.core.logging import get_logger
from rotation_service.models.domain import (
    Override,
    ScheduleSnapshot,
    from_ms,
    to_ms,
    utcnow,
)
from rotation_service.services.interval import parse_interval
from rotation_service.services.rotation import base_position, shift_bounds

logger = get_logger(__name__)

ROTATION_COLS = (
    "id, workspace_id, name, anchor_at_ms, shift_length, notification_channel, "
    "created_at_ms, updated_at_ms"
)
OVERRIDE_COLS = "id, assignee_id, start_at_ms, end_at_ms, created_at_ms"


def _row_to_rotation(row) -> dict[str, Any]:
    m = row._mapping
    return {
        "id": m["id"],
        "workspace_id": m["workspace_id"],
        "name": m["name"],
        "anchor_at": from_ms(m["anchor_at_ms"]),
        "shift_length": m["shift_length"],
        "notification_channel": m["notification_channel"],
        "created_at": from_ms(m["created_at_ms"]),
        "updated_at": from_ms(m["updated_at_ms"]),
    }


def _row_to_override(row) -> Override:
    m = row._mapping
    return Override(
        id=m["id"],
        assignee_id=m["assignee_id"],
        start_at=from_ms(m["start_at_ms"]),
        end_at=from_ms(m["end_at_ms"]),
        created_at=from_ms(m["created_at_ms"]),
    )


def _rotated(items: list, anchor_at: datetime, shift_ms: int,
             new_anchor_at: datetime, new_shift_ms: int, at: datetime) -> list:
    """Reorder ``items`` so the base slot at ``at`` holds the same member
    under the new anchor / shift length as under the old one."""
    if not items:
        return items
    ids = [str(i) for i in range(len(items))]
    old_pos = base_position(
        ScheduleSnapshot(rotation_id="-", anchor_at=anchor_at,
                         shift_length_ms=shift_ms, members=ids), at)
    new_pos = base_position(
        ScheduleSnapshot(rotation_id="-", anchor_at=new_anchor_at,
                         shift_length_ms=new_shift_ms, members=ids), at)
    shift = (old_pos - new_pos) % len(items)
    return items[shift:] + items[:shift]


class RotationRepository:
    """SQL-backed state store for rotations."""

    def __init__(self, engine: Engine, clock: Callable[[], datetime] = utcnow):
        self._engine = engine
        self._clock = clock

    def _now_ms(self) -> int:
        return to_ms(self._clock())

    # ── Internal helpers ───────────────────────────────────────────────

    @staticmethod
    def _for_update(conn: Connection) -> str:
        return " FOR UPDATE" if conn.dialect.name == "postgresql" else ""

    def _require_rotation(self, conn: Connection, rotation_id: str,
                          workspace_id: Optional[str] = None, lock: bool = False):
        sql = f"SELECT {ROTATION_COLS} FROM rotation WHERE id = :id AND deleted = FALSE"
        params: dict[str, Any] = {"id": rotation_id}
        if workspace_id is not None:
            sql += " AND workspace_id = :ws"
            params["ws"] = workspace_id
        if lock:
            sql += self._for_update(conn)
        row = conn.execute(text(sql), params).fetchone()
        if row is None:
            raise RotationNotFound(rotation_id)
        return row

    def _member_rows(self, conn: Connection, rotation_id: str, lock: bool = False) -> list:
        return conn.execute(
            text(
                "SELECT id, assignee_id, position, created_at_ms FROM rotation_member "
                "WHERE rotation_id = :rid ORDER BY position"
                + (self._for_update(conn) if lock else "")
            ),
            {"rid": rotation_id},
        ).fetchall()

    def _members(self, conn: Connection, rotation_id: str) -> list[str]:
        return [r.assignee_id for r in self._member_rows(conn, rotation_id)]

    def _rewrite_positions(self, conn: Connection, rotation_id: str, rows: list) -> None:
        conn.execute(
            text("DELETE FROM rotation_member WHERE rotation_id = :rid"),
            {"rid": rotation_id},
        )
        for position, row in enumerate(rows):
            conn.execute(
                text("""
                    INSERT INTO rotation_member (id, rotation_id, assignee_id, position, created_at_ms)
                    VALUES (:id, :rid, :aid, :pos, :ts)
                """),
                {"id": row.id, "rid": rotation_id, "aid": row.assignee_id,
                 "pos": position, "ts": row.created_at_ms},
            )

    def _touch(self, conn: Connection, rotation_id: str, **columns: Any) -> None:
        sets = ", ".join(f"{col} = :{col}" for col in columns)
        sets = f"{sets}, updated_at_ms = :now" if sets else "updated_at_ms = :now"
        conn.execute(
            text(f"UPDATE rotation SET {sets} WHERE id = :id"),
            {**columns, "now": self._now_ms(), "id": rotation_id},
        )

    # ── Rotation ───────────────────────────────────────────────────────

    def create_rotation(self, workspace_id: str, name: str, anchor_at: datetime,
                        shift_length: str, members: Optional[list[str]] = None,
                        notification_channel: Optional[str] = None) -> dict[str, Any]:
        rotation_id = str(uuid.uuid4())
        now_ms = self._now_ms()
        unique_members = list(dict.fromkeys(members or []))
        with self._engine.begin() as conn:
            conn.execute(
                text("""
                    INSERT INTO rotation
                        (id, workspace_id, name, anchor_at_ms, shift_length,
                         notification_channel, deleted, created_at_ms, updated_at_ms)
                    VALUES
                        (:id, :ws, :name, :anchor, :shift, :channel, FALSE, :now, :now)
                """),
                {"id": rotation_id, "ws": workspace_id, "name": name,
                 "anchor": to_ms(anchor_at), "shift": shift_length,
                 "channel": notification_channel, "now": now_ms},
            )
            for position, assignee_id in enumerate(unique_members):
                conn.execute(
                    text("""
                        INSERT INTO rotation_member (id, rotation_id, assignee_id, position, created_at_ms)
                        VALUES (:id, :rid, :aid, :pos, :ts)
                    """),
                    {"id": str(uuid.uuid4()), "rid": rotation_id, "aid": assignee_id,
                     "pos": position, "ts": now_ms},
                )
            row = self._require_rotation(conn, rotation_id)
            result = _row_to_rotation(row)
            result["members"] = unique_members
        return result

    def get_rotation(self, rotation_id: str,
                     workspace_id: Optional[str] = None) -> Optional[dict[str, Any]]:
        with self._engine.connect() as conn:
            try:
                row = self._require_rotation(conn, rotation_id, workspace_id)
            except RotationNotFound:
                return None
            result = _row_to_rotation(row)
            result["members"] = self._members(conn, rotation_id)
        return result

    def list_rotations(self, workspace_id: str) -> list[dict[str, Any]]:
        with self._engine.connect() as conn:
            rows = conn.execute(
                text(f"""
                    SELECT {ROTATION_COLS} FROM rotation
                    WHERE workspace_id = :ws AND deleted = FALSE
                    ORDER BY created_at_ms DESC
                """),
                {"ws": workspace_id},
            ).fetchall()
            result = []
            for row in rows:
                item = _row_to_rotation(row)
                item["members"] = self._members(conn, item["id"])
                result.append(item)
        return result

    def list_active_rotation_ids(self) -> list[str]:
        with self._engine.connect() as conn:
            rows = conn.execute(
                text("SELECT id FROM rotation WHERE deleted = FALSE ORDER BY created_at_ms")
            ).fetchall()
        return [r.id for r in rows]

    def count_active(self) -> int:
        with self._engine.connect() as conn:
            return conn.execute(
                text("SELECT COUNT(*) FROM rotation WHERE deleted = FALSE")
            ).scalar() or 0

    def rename_rotation(self, rotation_id: str, name: str) -> None:
        with self._engine.begin() as conn:
            self._require_rotation(conn, rotation_id, lock=True)
            self._touch(conn, rotation_id, name=name)

    def set_notification_channel(self, rotation_id: str, channel: Optional[str]) -> None:
        with self._engine.begin() as conn:
            self._require_rotation(conn, rotation_id, lock=True)
            self._touch(conn, rotation_id, notification_channel=channel)

    def mark_deleted(self, rotation_id: str) -> None:
        """Soft-delete a rotation. Raises RotationInUse while it has bindings."""
        with self._engine.begin() as conn:
            self._require_rotation(conn, rotation_id, lock=True)
            bindings = conn.execute(
                text("SELECT COUNT(*) FROM rotation_binding WHERE rotation_id = :rid"),
                {"rid": rotation_id},
            ).scalar() or 0
            if bindings:
                raise RotationInUse(rotation_id, bindings)
            conn.execute(
                text("""
                    UPDATE rotation SET deleted = TRUE, updated_at_ms = :now
                    WHERE id = :id
                """),
                {"id": rotation_id, "now": self._now_ms()},
            )

    def purge_rotation(self, rotation_id: str) -> None:
        """Hard-delete a rotation and everything it owns."""
        with self._engine.begin() as conn:
            for table in ("rotation_scheduler_state", "rotation_binding",
                          "rotation_override", "rotation_member"):
                conn.execute(
                    text(f"DELETE FROM {table} WHERE rotation_id = :rid"),
                    {"rid": rotation_id},
                )
            conn.execute(text("DELETE FROM rotation WHERE id = :rid"), {"rid": rotation_id})

    # ── Snapshot ───────────────────────────────────────────────────────

    def load_snapshot(self, rotation_id: str, at: datetime) -> Optional[ScheduleSnapshot]:
        """Rotation, ordered members and overrides still open at ``at``.

        Returns None for a missing or deleted rotation.
        """
        with self._engine.begin() as conn:
            try:
                row = self._require_rotation(conn, rotation_id)
            except RotationNotFound:
                return None
            members = self._members(conn, rotation_id)
            overrides = conn.execute(
                text(f"""
                    SELECT {OVERRIDE_COLS} FROM rotation_override
                    WHERE rotation_id = :rid AND end_at_ms > :at
                    ORDER BY start_at_ms
                """),
                {"rid": rotation_id, "at": to_ms(at)},
            ).fetchall()
        rotation = _row_to_rotation(row)
        return ScheduleSnapshot(
            rotation_id=rotation_id,
            name=rotation["name"],
            notification_channel=rotation["notification_channel"],
            anchor_at=rotation["anchor_at"],
            shift_length_ms=parse_interval(rotation["shift_length"]),
            members=members,
            overrides=[_row_to_override(o) for o in overrides],
        )

    # ── Members ────────────────────────────────────────────────────────

    def add_member(self, rotation_id: str, assignee_id: str) -> bool:
        """Append ``assignee_id`` at the end; False if already a member."""
        with self._engine.begin() as conn:
            self._require_rotation(conn, rotation_id, lock=True)
            rows = self._member_rows(conn, rotation_id, lock=True)
            if any(r.assignee_id == assignee_id for r in rows):
                return False
            conn.execute(
                text("""
                    INSERT INTO rotation_member (id, rotation_id, assignee_id, position, created_at_ms)
                    VALUES (:id, :rid, :aid, :pos, :ts)
                """),
                {"id": str(uuid.uuid4()), "rid": rotation_id, "aid": assignee_id,
                 "pos": len(rows), "ts": self._now_ms()},
            )
            self._touch(conn, rotation_id)
        return True

    def remove_member(self, rotation_id: str, assignee_id: str,
                      clear_override_at: Optional[datetime] = None) -> None:
        """Remove a member and close the gap. With ``clear_override_at``, also
        drop that member's override active at that instant."""
        with self._engine.begin() as conn:
            self._require_rotation(conn, rotation_id, lock=True)
            rows = self._member_rows(conn, rotation_id, lock=True)
            remaining = [r for r in rows if r.assignee_id != assignee_id]
            if len(remaining) == len(rows):
                raise MemberNotFound(assignee_id)
            self._rewrite_positions(conn, rotation_id, remaining)
            if clear_override_at is not None:
                at_ms = to_ms(clear_override_at)
                conn.execute(
                    text("""
                        DELETE FROM rotation_override
                        WHERE rotation_id = :rid AND assignee_id = :aid
                          AND start_at_ms <= :at AND end_at_ms > :at
                    """),
                    {"rid": rotation_id, "aid": assignee_id, "at": at_ms},
                )
            self._touch(conn, rotation_id)

    def move_member(self, rotation_id: str, assignee_id: str, new_position: int) -> None:
        """Move a member to an absolute 0-based position, shifting the rest."""
        with self._engine.begin() as conn:
            self._require_rotation(conn, rotation_id, lock=True)
            rows = list(self._member_rows(conn, rotation_id, lock=True))
            current = next(
                (i for i, r in enumerate(rows) if r.assignee_id == assignee_id), None
            )
            if current is None:
                raise MemberNotFound(assignee_id)
            if not 0 <= new_position < len(rows):
                raise InvalidPosition(
                    f"Position {new_position} is out of bounds for {len(rows)} members",
                    {"position": new_position, "members": len(rows)},
                )
            if current == new_position:
                return
            rows.insert(new_position, rows.pop(current))
            self._rewrite_positions(conn, rotation_id, rows)
            self._touch(conn, rotation_id)

    # ── Anchor / shift length ──────────────────────────────────────────

    def update_anchor(self, rotation_id: str, anchor_at: datetime,
                      preserve_at: Optional[datetime] = None) -> None:
        """Move the anchor. With ``preserve_at``, positions are rotated so the
        base assignee at that instant is unchanged."""
        with self._engine.begin() as conn:
            row = self._require_rotation(conn, rotation_id, lock=True)
            if preserve_at is not None:
                shift_ms = parse_interval(row.shift_length)
                rows = self._member_rows(conn, rotation_id, lock=True)
                rebased = _rotated(list(rows), from_ms(row.anchor_at_ms), shift_ms,
                                   anchor_at, shift_ms, preserve_at)
                if rebased != list(rows):
                    self._rewrite_positions(conn, rotation_id, rebased)
            self._touch(conn, rotation_id, anchor_at_ms=to_ms(anchor_at))

    def update_shift_length(self, rotation_id: str, shift_length: str,
                            preserve_at: Optional[datetime] = None) -> None:
        with self._engine.begin() as conn:
            row = self._require_rotation(conn, rotation_id, lock=True)
            if preserve_at is not None:
                anchor_at = from_ms(row.anchor_at_ms)
                rows = self._member_rows(conn, rotation_id, lock=True)
                rebased = _rotated(list(rows), anchor_at, parse_interval(row.shift_length),
                                   anchor_at, parse_interval(shift_length), preserve_at)
                if rebased != list(rows):
                    self._rewrite_positions(conn, rotation_id, rebased)
            self._touch(conn, rotation_id, shift_length=shift_length)

    # ── Overrides ──────────────────────────────────────────────────────

    def _insert_override(self, conn: Connection, rotation_id: str, assignee_id: str,
                         start_at_ms: int, end_at_ms: int) -> str:
        # Creation timestamps strictly increase per rotation so "latest wins"
        # never depends on two overrides landing in the same millisecond.
        latest = conn.execute(
            text("SELECT MAX(created_at_ms) FROM rotation_override WHERE rotation_id = :rid"),
            {"rid": rotation_id},
        ).scalar()
        created_at_ms = self._now_ms()
        if latest is not None and created_at_ms <= latest:
            created_at_ms = latest + 1
        override_id = str(uuid.uuid4())
        conn.execute(
            text("""
                INSERT INTO rotation_override
                    (id, rotation_id, assignee_id, start_at_ms, end_at_ms, created_at_ms)
                VALUES (:id, :rid, :aid, :start, :end, :ts)
            """),
            {"id": override_id, "rid": rotation_id, "aid": assignee_id,
             "start": start_at_ms, "end": end_at_ms, "ts": created_at_ms},
        )
        return override_id

    def create_override(self, rotation_id: str, assignee_id: str,
                        start_at: datetime, end_at: datetime) -> str:
        with self._engine.begin() as conn:
            self._require_rotation(conn, rotation_id, lock=True)
            return self._insert_override(conn, rotation_id, assignee_id,
                                         to_ms(start_at), to_ms(end_at))

    def set_override(self, rotation_id: str, assignee_id: str, at: datetime) -> str:
        """Cover the whole shift containing ``at`` with ``assignee_id``."""
        with self._engine.begin() as conn:
            row = self._require_rotation(conn, rotation_id, lock=True)
            snapshot = ScheduleSnapshot(
                rotation_id=rotation_id,
                anchor_at=from_ms(row.anchor_at_ms),
                shift_length_ms=parse_interval(row.shift_length),
            )
            start, end = shift_bounds(snapshot, at)
            return self._insert_override(conn, rotation_id, assignee_id,
                                         to_ms(start), to_ms(end))

    def update_override(self, rotation_id: str, override_id: str, assignee_id: str,
                        start_at: datetime, end_at: datetime) -> None:
        with self._engine.begin() as conn:
            self._require_rotation(conn, rotation_id, lock=True)
            result = conn.execute(
                text("""
                    UPDATE rotation_override
                    SET assignee_id = :aid, start_at_ms = :start, end_at_ms = :end
                    WHERE id = :id AND rotation_id = :rid
                """),
                {"aid": assignee_id, "start": to_ms(start_at), "end": to_ms(end_at),
                 "id": override_id, "rid": rotation_id},
            )
            if result.rowcount == 0:
                raise OverrideNotFound(override_id)

    def clear_override(self, rotation_id: str, override_id: str) -> None:
        with self._engine.begin() as conn:
            self._require_rotation(conn, rotation_id, lock=True)
            result = conn.execute(
                text("DELETE FROM rotation_override WHERE id = :id AND rotation_id = :rid"),
                {"id": override_id, "rid": rotation_id},
            )
            if result.rowcount == 0:
                raise OverrideNotFound(override_id)

    def list_overrides(self, rotation_id: str, start_at: datetime,
                       end_at: datetime) -> list[Override]:
        """Overrides overlapping ``[start_at, end_at)``, earliest first."""
        with self._engine.connect() as conn:
            self._require_rotation(conn, rotation_id)
            rows = conn.execute(
                text(f"""
                    SELECT {OVERRIDE_COLS} FROM rotation_override
                    WHERE rotation_id = :rid AND start_at_ms < :end AND end_at_ms > :start
                    ORDER BY start_at_ms
                """),
                {"rid": rotation_id, "start": to_ms(start_at), "end": to_ms(end_at)},
            ).fetchall()
        return [_row_to_override(r) for r in rows]

    # ── Entry-point bindings ───────────────────────────────────────────

    def add_binding(self, rotation_id: str, entry_point_id: str) -> dict[str, Any]:
        with self._engine.begin() as conn:
            self._require_rotation(conn, rotation_id, lock=True)
            exists = conn.execute(
                text("""
                    SELECT 1 FROM rotation_binding
                    WHERE rotation_id = :rid AND entry_point_id = :ep
                """),
                {"rid": rotation_id, "ep": entry_point_id},
            ).fetchone()
            if exists:
                raise AlreadyBound(
                    f"Entry point '{entry_point_id}' is already bound to this rotation",
                    {"rotation_id": rotation_id, "entry_point_id": entry_point_id},
                )
            binding_id = str(uuid.uuid4())
            now_ms = self._now_ms()
            conn.execute(
                text("""
                    INSERT INTO rotation_binding (id, rotation_id, entry_point_id, created_at_ms)
                    VALUES (:id, :rid, :ep, :ts)
                """),
                {"id": binding_id, "rid": rotation_id, "ep": entry_point_id, "ts": now_ms},
            )
        return {"id": binding_id, "rotation_id": rotation_id,
                "entry_point_id": entry_point_id, "created_at": from_ms(now_ms)}

    def remove_binding(self, rotation_id: str, entry_point_id: str) -> None:
        with self._engine.begin() as conn:
            result = conn.execute(
                text("""
                    DELETE FROM rotation_binding
                    WHERE rotation_id = :rid AND entry_point_id = :ep
                """),
                {"rid": rotation_id, "ep": entry_point_id},
            )
            if result.rowcount == 0:
                raise NotFoundError("Entry-point binding", entry_point_id)

    # ── Scheduler resume point ─────────────────────────────────────────

    def load_scheduler_state(self, rotation_id: str) -> Optional[dict[str, Any]]:
        with self._engine.connect() as conn:
            row = conn.execute(
                text("""
                    SELECT last_assignee, last_reason, observed, updated_at_ms
                    FROM rotation_scheduler_state WHERE rotation_id = :rid
                """),
                {"rid": rotation_id},
            ).fetchone()
        if row is None:
            return None
        return {
            "last_assignee": row.last_assignee,
            "last_reason": row.last_reason,
            "observed": bool(row.observed),
            "updated_at": from_ms(row.updated_at_ms),
        }

    def save_scheduler_state(self, rotation_id: str, last_assignee: Optional[str],
                             last_reason: Optional[str]) -> None:
        params = {"rid": rotation_id, "aid": last_assignee,
                  "reason": last_reason, "now": self._now_ms()}
        with self._engine.begin() as conn:
            result = conn.execute(
                text("""
                    UPDATE rotation_scheduler_state
                    SET last_assignee = :aid, last_reason = :reason,
                        observed = TRUE, updated_at_ms = :now
                    WHERE rotation_id = :rid
                """),
                params,
            )
            if result.rowcount == 0:
                conn.execute(
                    text("""
                        INSERT INTO rotation_scheduler_state
                            (rotation_id, last_assignee, last_reason, observed, updated_at_ms)
                        VALUES (:rid, :aid, :reason, TRUE, :now)
                    """),
                    params,
                )

    # ── Bulk / internal ────────────────────────────────────────────────

    def clear(self) -> None:
        with self._engine.begin() as conn:
            for table in ("rotation_scheduler_state", "rotation_binding",
                          "rotation_override", "rotation_member", "rotation"):
                conn.execute(text(f"DELETE FROM {table}"))
