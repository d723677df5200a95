"""Operator tooling for permission policies and account state.

Why:
    Admins tune role overrides and suspend accounts outside the application
    UI during incidents or migrations. Policy files are validated with the same
    rules the core applies, so a file that passes `validate` can be applied.

Usage:
    python -m tools.policy_admin validate policy.json
    python -m tools.policy_admin matrix --policy policy.json
    python -m tools.policy_admin apply --db-dsn postgresql://... policy.json
    python -m tools.policy_admin suspend --db-dsn ... --principal <id> --reason "spam"
    python -m tools.policy_admin set-role --db-dsn ... --principal <id> --role teacher

Policy file shape (camelCase names or legacy `can*` keys):
    {"student": {"pinNote": true}, "teacher": {"canGradeAssignments": false}}

Notes:
    - Database commands expect a service-role DSN and bypass the admin-role
      check of `WorkspaceCore`; run them only as an operator.
    - `apply` merges into the stored policy; it never drops existing overrides.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Optional

import click

from boards.capabilities import Capability
from boards.errors import InvalidPolicy, PrincipalNotFound
from boards.policy import PermissionPolicy, PermissionPolicyStore
from identity_access.domain import ALLOWED_ROLES, Role


def _load_policy_file(path: Path) -> PermissionPolicy:
    try:
        document = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise click.ClickException(f"policy file is not valid JSON: {exc.msg} (line {exc.lineno})")
    if not isinstance(document, dict):
        raise click.ClickException("policy file must contain a JSON object keyed by role")
    try:
        return PermissionPolicy.from_document(document)
    except InvalidPolicy as exc:
        raise click.ClickException(f"invalid policy: {exc.detail}")


def _db_store(db_dsn: str):
    try:
        from boards.repo_db import DBBoardStore

        return DBBoardStore(db_dsn)
    except RuntimeError as exc:
        raise click.ClickException(str(exc))


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
def cli() -> None:
    """Manage permission policies and principals."""


@cli.command()
@click.argument("policy_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
def validate(policy_file: Path) -> None:
    """Check a policy file without applying it."""
    policy = _load_policy_file(policy_file)
    count = sum(len(entries) for entries in policy.overrides.values())
    click.echo(f"ok: {count} override(s)")


@cli.command()
@click.option("--policy", "policy_file", type=click.Path(exists=True, dir_okay=False, path_type=Path), help="Policy file (defaults only when omitted)")
def matrix(policy_file: Optional[Path]) -> None:
    """Print the effective capability matrix per role."""
    policy = _load_policy_file(policy_file) if policy_file else PermissionPolicy.empty()
    store = PermissionPolicyStore(policy)
    roles = [Role.STUDENT, Role.TEACHER, Role.ADMIN]
    width = max(len(c.value) for c in Capability)
    click.echo("capability".ljust(width) + "  " + "  ".join(r.value.ljust(7) for r in roles))
    for cap in Capability:
        flags = ["yes" if store.effective(r, cap) else "no" for r in roles]
        click.echo(cap.value.ljust(width) + "  " + "  ".join(f.ljust(7) for f in flags))


@cli.command()
@click.option("--db-dsn", required=True, help="Service-role DSN for the collaboration database.")
@click.argument("policy_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
def apply(db_dsn: str, policy_file: Path) -> None:
    """Merge a policy file into the stored policy."""
    incoming = _load_policy_file(policy_file)
    store = _db_store(db_dsn)
    merged = store.merge_policy(incoming)
    click.echo(json.dumps(merged.to_document(), sort_keys=True))


def _update_principal(db_dsn: str, principal_id: str, update) -> None:
    store = _db_store(db_dsn)
    try:
        principal = store.get_principal(principal_id)
    except PrincipalNotFound:
        raise click.ClickException(f"principal not found: {principal_id}")
    updated = update(principal)
    store.save_principal(updated)
    state = f"suspended ({updated.suspension_reason})" if updated.suspended else "active"
    click.echo(f"{updated.id}: role={updated.role.value} {state}")


@cli.command()
@click.option("--db-dsn", required=True)
@click.option("--principal", "principal_id", required=True)
@click.option("--reason", default=None, help="Shown to the suspended user.")
def suspend(db_dsn: str, principal_id: str, reason: Optional[str]) -> None:
    """Suspend an account."""
    _update_principal(db_dsn, principal_id, lambda p: p.with_suspension(True, reason))


@cli.command()
@click.option("--db-dsn", required=True)
@click.option("--principal", "principal_id", required=True)
def unsuspend(db_dsn: str, principal_id: str) -> None:
    """Lift a suspension and clear its reason."""
    _update_principal(db_dsn, principal_id, lambda p: p.with_suspension(False))


@cli.command("set-role")
@click.option("--db-dsn", required=True)
@click.option("--principal", "principal_id", required=True)
@click.option("--role", type=click.Choice(sorted(ALLOWED_ROLES)), required=True)
def set_role(db_dsn: str, principal_id: str, role: str) -> None:
    """Change a principal's role."""
    _update_principal(db_dsn, principal_id, lambda p: p.with_role(Role(role)))


if __name__ == "__main__":  # pragma: no cover - manual entry
    cli()
