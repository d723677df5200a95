"""
Postgres-backed board store (boards, principals, permission policy).

Design:
- Minimal psycopg3 usage; each call opens a short-lived connection.
- Every membership transition is compiled into ONE conditional
  `UPDATE ... WHERE <precondition> RETURNING`. Postgres row locking makes the
  first writer win; the loser matches zero rows and gets `StoreConflict`.
- A CHECK constraint keeps `members` and `pending_members` disjoint even for
  writers that bypass this module.

Security:
- Use an application-role DSN; service-role DSNs are reserved for migrations.
"""
from __future__ import annotations

import logging
import os
import re
from typing import Any, Dict, Optional, Tuple

from identity_access.domain import Principal, Role
from identity_access.elevation import ElevationPolicy

from .domain import Board, MembershipChange, MembershipState, OwnershipChange
from .errors import BoardNotFound, BoardUnavailable, PrincipalNotFound, StoreConflict
from .policy import PermissionPolicy
from .ports import Mutation

try:
    import psycopg
    from psycopg.types.json import Json
    HAVE_PSYCOPG = True
except Exception:  # pragma: no cover - optional in some dev envs
    psycopg = None  # type: ignore
    Json = None  # type: ignore
    HAVE_PSYCOPG = False

logger = logging.getLogger("collabo.boards.repo_db")

_IDENT_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]{0,62}$")

SCHEMA_SQL = """
create table if not exists {schema}.boards (
    id text primary key,
    owner_id text,
    title text not null default '',
    members text[] not null default '{{}}',
    pending_members text[] not null default '{{}}',
    require_member_approval boolean not null default false,
    is_deleted boolean not null default false,
    updated_at timestamptz not null default now(),
    constraint boards_members_pending_disjoint check (not (members && pending_members))
);
create table if not exists {schema}.principals (
    id text primary key,
    display_name text not null,
    email text,
    role text not null default 'student' check (role in ('student', 'teacher', 'admin')),
    suspended boolean not null default false,
    suspension_reason text,
    updated_at timestamptz not null default now()
);
create table if not exists {schema}.permission_policy (
    id smallint primary key default 1 check (id = 1),
    document jsonb not null default '{{}}'::jsonb,
    updated_at timestamptz not null default now()
);
"""

_BOARD_COLUMNS = "id, owner_id, title, members, pending_members, require_member_approval, is_deleted"
_PRINCIPAL_COLUMNS = "id, display_name, email, role, suspended, suspension_reason"


def _dsn() -> str:
    for dsn in (os.getenv("COLLABO_DATABASE_URL"), os.getenv("DATABASE_URL")):
        if dsn:
            return dsn
    raise RuntimeError("Database DSN unavailable for DBBoardStore")


def _board_from_row(row: Tuple[Any, ...]) -> Board:
    return Board(
        id=str(row[0]),
        owner_id=str(row[1]) if row[1] else None,
        title=row[2] or "",
        members=frozenset(row[3] or ()),
        pending_members=frozenset(row[4] or ()),
        require_member_approval=bool(row[5]),
        is_deleted=bool(row[6]),
    )


def _principal_from_row(row: Tuple[Any, ...]) -> Principal:
    return Principal(
        id=str(row[0]),
        display_name=row[1] or "",
        email=row[2],
        role=Role.parse(row[3] or "student"),
        suspended=bool(row[4]),
        suspension_reason=row[5],
    )


_STATE_CONDITION = {
    MembershipState.NONE: (
        "not (%(pid)s = any(members)) and not (%(pid)s = any(pending_members)) "
        "and owner_id is distinct from %(pid)s"
    ),
    MembershipState.PENDING: "%(pid)s = any(pending_members)",
    MembershipState.MEMBER: "%(pid)s = any(members) and owner_id is distinct from %(pid)s",
}


def compile_mutation(mutation: Mutation) -> Tuple[str, str, Dict[str, Any]]:
    """Translate a mutation into (SET clause, WHERE condition, params)."""
    if isinstance(mutation, MembershipChange):
        params: Dict[str, Any] = {"pid": mutation.principal_id}
        members = "array_remove(members, %(pid)s)"
        pending = "array_remove(pending_members, %(pid)s)"
        if mutation.target is MembershipState.MEMBER:
            members = f"array_append({members}, %(pid)s)"
        elif mutation.target is MembershipState.PENDING:
            pending = f"array_append({pending}, %(pid)s)"
        set_clause = f"members = {members}, pending_members = {pending}"
        condition = _STATE_CONDITION[mutation.expected]
        if mutation.keep_members > 0:
            params["keep"] = mutation.keep_members
            condition = f"{condition} and cardinality(array_remove(members, %(pid)s)) >= %(keep)s"
        return set_clause, condition, params
    if isinstance(mutation, OwnershipChange):
        params = {"new_owner": mutation.new_owner_id, "old_owner": mutation.expected_owner_id}
        members = "array_remove(members, %(new_owner)s)"
        if mutation.expected_owner_id:
            members = f"array_append(array_remove({members}, %(old_owner)s), %(old_owner)s)"
        set_clause = f"owner_id = %(new_owner)s, members = {members}"
        condition = "owner_id is not distinct from %(old_owner)s and %(new_owner)s = any(members)"
        return set_clause, condition, params
    raise TypeError(f"unsupported mutation: {type(mutation).__name__}")


class DBBoardStore:
    """psycopg3 implementation of `BoardStoreProtocol`."""

    def __init__(
        self,
        dsn: Optional[str] = None,
        *,
        schema: str = "public",
        elevation: Optional[ElevationPolicy] = None,
    ) -> None:
        if not HAVE_PSYCOPG:
            raise RuntimeError("psycopg3 is required for DBBoardStore")
        if not _IDENT_RE.match(schema or ""):
            raise ValueError("Invalid schema name")
        self._dsn = dsn or _dsn()
        self._schema = schema
        self._elevation = elevation

    def ensure_schema(self) -> None:
        with psycopg.connect(self._dsn, autocommit=True) as conn:
            with conn.cursor() as cur:
                cur.execute(SCHEMA_SQL.format(schema=self._schema))

    # --- Boards ----------------------------------------------------------------

    def get_board(self, board_id: str) -> Board:
        with psycopg.connect(self._dsn) as conn:
            with conn.cursor() as cur:
                cur.execute(
                    f"select {_BOARD_COLUMNS} from {self._schema}.boards where id = %s",
                    (board_id,),
                )
                row = cur.fetchone()
        if not row:
            raise BoardNotFound(board_id)
        return _board_from_row(row)

    def atomic_transition(self, board_id: str, mutation: Mutation) -> Board:
        set_clause, condition, params = compile_mutation(mutation)
        params = dict(params, board_id=board_id)
        stmt = (
            f"update {self._schema}.boards set {set_clause}, updated_at = now() "
            f"where id = %(board_id)s and not is_deleted and ({condition}) "
            f"returning {_BOARD_COLUMNS}"
        )
        with psycopg.connect(self._dsn, autocommit=True) as conn:
            with conn.cursor() as cur:
                cur.execute(stmt, params)
                row = cur.fetchone()
                if row:
                    return _board_from_row(row)
                cur.execute(f"select is_deleted from {self._schema}.boards where id = %s", (board_id,))
                probe = cur.fetchone()
        if not probe:
            raise BoardNotFound(board_id)
        if probe[0]:
            raise BoardUnavailable()
        logger.info("boards.repo_db.conflict board_tail=%s mutation=%s", board_id[-6:], type(mutation).__name__)
        raise StoreConflict(type(mutation).__name__)

    # --- Principals ------------------------------------------------------------

    def get_principal(self, principal_id: str) -> Principal:
        with psycopg.connect(self._dsn, autocommit=True) as conn:
            with conn.cursor() as cur:
                cur.execute(
                    f"select {_PRINCIPAL_COLUMNS} from {self._schema}.principals where id = %s",
                    (principal_id,),
                )
                row = cur.fetchone()
                if not row:
                    raise PrincipalNotFound(principal_id)
                principal = _principal_from_row(row)
                if self._elevation is not None and self._elevation.should_elevate(principal):
                    principal = self._elevation.apply(principal)
                    cur.execute(
                        f"update {self._schema}.principals set role = %s, updated_at = now() where id = %s",
                        (principal.role.value, principal.id),
                    )
        return principal

    def save_principal(self, principal: Principal) -> None:
        with psycopg.connect(self._dsn, autocommit=True) as conn:
            with conn.cursor() as cur:
                cur.execute(
                    f"insert into {self._schema}.principals ({_PRINCIPAL_COLUMNS}) "
                    "values (%s, %s, %s, %s, %s, %s) "
                    "on conflict (id) do update set display_name = excluded.display_name, "
                    "email = excluded.email, role = excluded.role, suspended = excluded.suspended, "
                    "suspension_reason = excluded.suspension_reason, updated_at = now()",
                    (
                        principal.id,
                        principal.display_name,
                        principal.email,
                        principal.role.value,
                        principal.suspended,
                        principal.suspension_reason,
                    ),
                )

    # --- Policy ----------------------------------------------------------------

    def get_policy(self) -> PermissionPolicy:
        with psycopg.connect(self._dsn) as conn:
            with conn.cursor() as cur:
                cur.execute(f"select document from {self._schema}.permission_policy where id = 1")
                row = cur.fetchone()
        if not row or not row[0]:
            return PermissionPolicy.empty()
        return PermissionPolicy.from_document(row[0])

    def save_policy(self, policy: PermissionPolicy) -> None:
        with psycopg.connect(self._dsn, autocommit=True) as conn:
            with conn.cursor() as cur:
                cur.execute(
                    f"insert into {self._schema}.permission_policy (id, document) values (1, %s) "
                    "on conflict (id) do update set document = excluded.document, updated_at = now()",
                    (Json(policy.to_document()),),
                )

    def merge_policy(self, policy: PermissionPolicy) -> PermissionPolicy:
        """Read, merge and write the policy row under `for update` in one transaction."""
        with psycopg.connect(self._dsn) as conn:
            with conn.cursor() as cur:
                cur.execute(f"insert into {self._schema}.permission_policy (id) values (1) on conflict (id) do nothing")
                cur.execute(f"select document from {self._schema}.permission_policy where id = 1 for update")
                row = cur.fetchone()
                current = PermissionPolicy.from_document(row[0]) if row and row[0] else PermissionPolicy.empty()
                merged = current.merged(policy)
                cur.execute(
                    f"update {self._schema}.permission_policy set document = %s, updated_at = now() where id = 1",
                    (Json(merged.to_document()),),
                )
        return merged


__all__ = ["DBBoardStore", "SCHEMA_SQL", "compile_mutation"]
