"""ActivityMixin -- change history, comments, votes, and watches.

All methods access ``self.conn``, ``self.get_issue()``, etc. via
Python's MRO when composed into ``TicketDB``.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import TYPE_CHECKING, Any, cast

from ticketry.db_base import DBMixinProtocol, _now_iso
from ticketry.types.core import ChangeRecord, CommentRecord, WatchRecord
from ticketry.validation import sanitize_actor


def _require_user(user: str) -> str:
    cleaned, err = sanitize_actor(user)
    if err:
        msg = err.replace("actor", "user", 1)
        raise ValueError(msg)
    return cleaned


class ActivityMixin(DBMixinProtocol):
    """Change recording, comments, votes, and watches.

    Inherits ``DBMixinProtocol`` for type-safe access to shared attributes.
    Actual implementations provided by ``TicketDB`` at composition time via MRO.
    """

    if TYPE_CHECKING:
        # From IssuesMixin
        def _touch_issue(
            self,
            issue_id: int,
            description: str,
            *,
            actor: str = "",
            expected_version: int | None = None,
            extra_updates: Mapping[str, Any] | None = None,
        ) -> None: ...

    # -- Changes (private write, public read) --------------------------------

    def _record_change(
        self,
        issue_id: int,
        change_type: str,
        *,
        actor: str = "",
        old_value: str | None = None,
        new_value: str | None = None,
    ) -> None:
        self.conn.execute(
            "INSERT INTO changes (issue_id, change_type, actor, old_value, new_value, created_at) VALUES (?, ?, ?, ?, ?, ?)",
            (issue_id, change_type, actor, old_value, new_value, _now_iso()),
        )

    def get_changes(self, issue_id: int, *, limit: int = 50) -> list[ChangeRecord]:
        """Get the change history of an issue, newest first."""
        self.get_issue(issue_id)  # raises KeyError if not found
        rows = self.conn.execute(
            "SELECT * FROM changes WHERE issue_id = ? ORDER BY created_at DESC, id DESC LIMIT ?",
            (issue_id, limit),
        ).fetchall()
        return cast(list[ChangeRecord], [dict(r) for r in rows])

    # -- Comments ------------------------------------------------------------

    def add_comment(self, issue_id: int, text: str, *, author: str = "") -> int:
        if not text or not text.strip():
            msg = "Comment text cannot be empty"
            raise ValueError(msg)
        self.get_issue(issue_id)
        try:
            cursor = self.conn.execute(
                "INSERT INTO comments (issue_id, author, text, created_at) VALUES (?, ?, ?, ?)",
                (issue_id, author, text, _now_iso()),
            )
            self.conn.execute("UPDATE issues SET num_comments = num_comments + 1 WHERE id = ?", (issue_id,))
            self._touch_issue(issue_id, "commented", actor=author)
            self.conn.commit()
        except Exception:
            self.conn.rollback()
            raise
        rowid = cursor.lastrowid
        if rowid is None:  # pragma: no cover -- INSERT always sets lastrowid
            msg = "INSERT did not produce a lastrowid"
            raise RuntimeError(msg)
        return rowid

    def get_comments(self, issue_id: int) -> list[CommentRecord]:
        rows = self.conn.execute(
            "SELECT id, issue_id, author, text, created_at FROM comments WHERE issue_id = ? ORDER BY created_at, id",
            (issue_id,),
        ).fetchall()
        return cast(list[CommentRecord], [dict(r) for r in rows])

    # -- Votes ---------------------------------------------------------------

    def vote(self, issue_id: int, user: str) -> bool:
        """Record *user*'s vote. Returns False if they had already voted."""
        user = _require_user(user)
        self.get_issue(issue_id)
        try:
            cursor = self.conn.execute(
                "INSERT OR IGNORE INTO votes (issue_id, user, created_at) VALUES (?, ?, ?)",
                (issue_id, user, _now_iso()),
            )
            added = cursor.rowcount > 0
            if added:
                self.conn.execute("UPDATE issues SET num_votes = num_votes + 1 WHERE id = ?", (issue_id,))
            self.conn.commit()
        except Exception:
            self.conn.rollback()
            raise
        return added

    def unvote(self, issue_id: int, user: str) -> bool:
        """Withdraw *user*'s vote. Returns False if there was none."""
        user = _require_user(user)
        self.get_issue(issue_id)
        try:
            cursor = self.conn.execute("DELETE FROM votes WHERE issue_id = ? AND user = ?", (issue_id, user))
            removed = cursor.rowcount > 0
            if removed:
                self.conn.execute("UPDATE issues SET num_votes = num_votes - 1 WHERE id = ?", (issue_id,))
            self.conn.commit()
        except Exception:
            self.conn.rollback()
            raise
        return removed

    def get_voters(self, issue_id: int) -> list[str]:
        rows = self.conn.execute(
            "SELECT user FROM votes WHERE issue_id = ? ORDER BY created_at, user",
            (issue_id,),
        ).fetchall()
        return [r["user"] for r in rows]

    # -- Watches -------------------------------------------------------------

    def watch(self, issue_id: int, user: str, *, watching: bool = True) -> WatchRecord:
        """Set *user*'s watch flag on an issue.

        An explicit ``watching=False`` is kept as a row so that an opt-out
        survives later defaults; use ``unwatch`` to forget the user entirely.
        """
        user = _require_user(user)
        self.get_issue(issue_id)
        try:
            self.conn.execute(
                "INSERT INTO watches (issue_id, user, watching) VALUES (?, ?, ?) "
                "ON CONFLICT (issue_id, user) DO UPDATE SET watching = excluded.watching",
                (issue_id, user, watching),
            )
            self.conn.commit()
        except Exception:
            self.conn.rollback()
            raise
        return WatchRecord(issue_id=issue_id, user=user, watching=watching)

    def unwatch(self, issue_id: int, user: str) -> bool:
        cursor = self.conn.execute("DELETE FROM watches WHERE issue_id = ? AND user = ?", (issue_id, user))
        self.conn.commit()
        return cursor.rowcount > 0

    def get_watch(self, issue_id: int, user: str) -> WatchRecord | None:
        """The watch of *user* on the issue, or None if they never set one."""
        row = self.conn.execute(
            "SELECT issue_id, user, watching FROM watches WHERE issue_id = ? AND user = ?",
            (issue_id, user),
        ).fetchone()
        if row is None:
            return None
        return WatchRecord(issue_id=row["issue_id"], user=row["user"], watching=bool(row["watching"]))

    def list_watchers(self, issue_id: int) -> list[str]:
        """Users currently watching the issue."""
        rows = self.conn.execute(
            "SELECT user FROM watches WHERE issue_id = ? AND watching = 1 ORDER BY user",
            (issue_id,),
        ).fetchall()
        return [r["user"] for r in rows]
