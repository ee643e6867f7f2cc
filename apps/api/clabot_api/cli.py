"""CLI commands for the CLA Bot API."""

import uuid

import click

from clabot_api.admin.service import OrganizationAdminService
from clabot_api.auth.session import create_session_token
from clabot_api.cla.digest import short_label
from clabot_api.cla.store import ComplianceStore
from clabot_api.convergence.request import ConvergenceRequest
from clabot_api.convergence.runner import ConvergenceRunner
from clabot_api.db.seed import seed_all
from clabot_api.db.session import SessionLocal
from clabot_api.errors import ClaError


def _fail(message: str):
    click.echo(f"✗ {message}", err=True)
    raise SystemExit(1)


@click.group()
def cli():
    """CLA Bot API CLI."""
    pass


@cli.command()
def seed():
    """Seed development data."""
    click.echo("Seeding initial data...")
    db = SessionLocal()
    try:
        organization = seed_all(db)
        admin = ComplianceStore(db).get_user(organization.admin_user_id)
        token, _ = create_session_token(admin)
        click.echo(f"✓ Seeded {organization.slug} (CLA {short_label(organization.cla_digest)})")
        click.echo(f"  Admin session token: {token}")
    except Exception as e:
        db.rollback()
        _fail(f"Error seeding data: {e}")
    finally:
        db.close()


@cli.command("set-cla")
@click.argument("org")
@click.argument("path", type=click.File("r"))
def set_cla(org, path):
    """Replace ORG's CLA text with the contents of PATH."""
    db = SessionLocal()
    try:
        service = OrganizationAdminService(ComplianceStore(db))
        organization, convergence = service.update_cla_text(service.get_organization(org), path.read())
        click.echo(f"✓ {organization.slug} CLA is now {short_label(organization.cla_digest)}")
        if convergence:
            click.echo(f"  Convergence: {convergence.to_dict()}")
    except ClaError as e:
        _fail(e.message)
    finally:
        db.close()


@cli.command()
@click.argument("org")
def recheck(org):
    """Re-evaluate every open pull request for ORG synchronously."""
    db = SessionLocal()
    try:
        organization = OrganizationAdminService(ComplianceStore(db)).get_organization(org)
        request = ConvergenceRequest(
            run_id=str(uuid.uuid4()), organization_id=organization.id, trigger="manual"
        )
        summary = ConvergenceRunner(db).run(request)
        click.echo(f"✓ {summary.status}: {summary.to_dict()}")
    except ClaError as e:
        _fail(e.message)
    finally:
        db.close()


@cli.command("bypass-add")
@click.argument("org")
@click.argument("login")
@click.option("--kind", type=click.Choice(["user", "app_bot"]), default="user", show_default=True)
@click.option("--github-user-id", type=int, default=None, help="Required for users not yet known.")
def bypass_add(org, login, kind, github_user_id):
    """Add LOGIN to ORG's bypass list."""
    db = SessionLocal()
    try:
        service = OrganizationAdminService(ComplianceStore(db))
        row, created, _ = service.add_bypass(service.get_organization(org), kind, login, github_user_id)
        click.echo(f"✓ {'Added' if created else 'Already present'}: {row.kind} {row.github_login}")
    except ClaError as e:
        _fail(e.message)
    finally:
        db.close()


if __name__ == "__main__":
    cli()
