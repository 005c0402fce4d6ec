"""Database and tenant administration commands."""

import typer
from rich.console import Console
from rich.table import Table

from src.ecauth.core.errors import EcAuthError
from src.ecauth.core.services import (
    AuthorizationCodeService,
    DbSessionService,
    ExternalIdentityService,
    FederationAdapter,
    JwtGeneratorService,
    SigningKeyStore,
    TokenService,
    WebAuthnChallengeService,
)
from src.ecauth.core.services.database import DbManageService
from src.ecauth.core.tenancy import resolve_tenant
from src.ecauth.runtime.seed import seed_tenant

console = Console()

db_app = typer.Typer(help="Manage the EcAuth database and tenants")


@db_app.command("init")
def init() -> None:
    """Create all tables."""
    try:
        DbManageService(DbSessionService().engine).create_all()
    except Exception as e:
        console.print(f"[red]❌ Failed to create tables: {e}[/red]")
        raise typer.Exit(code=1) from e
    console.print("[green]✅ Database tables created[/green]")


@db_app.command("seed")
def seed(
    tenant: str = typer.Option(..., "--tenant", "-t", help="Tenant name of the organization"),
    client_id: str = typer.Option(..., "--client-id", "-c", help="Public client identifier"),
    redirect_uri: list[str] = typer.Option(
        ..., "--redirect-uri", "-r", help="Redirect URI to register (repeatable)"
    ),
    rp_id: list[str] = typer.Option(
        [], "--rp-id", help="WebAuthn relying-party id the client may use (repeatable)"
    ),
    org_name: str | None = typer.Option(None, "--org-name", help="Organization display name"),
    app_name: str | None = typer.Option(None, "--app-name", help="Client application name"),
    b2b_external_id: str | None = typer.Option(
        None, "--b2b-user", help="Also create a B2B admin with this external id"
    ),
) -> None:
    """Create an organization, a client with its signing key, and optionally a B2B admin."""
    db_service = DbSessionService()
    DbManageService(db_service.engine).create_all()

    try:
        with db_service.session_scope() as session:
            seeded = seed_tenant(
                session,
                SigningKeyStore(),
                tenant_name=tenant,
                client_id=client_id,
                redirect_uris=redirect_uri,
                rp_ids=rp_id,
                org_name=org_name,
                app_name=app_name,
                b2b_external_id=b2b_external_id,
            )
    except ValueError as e:
        console.print(f"[red]❌ {e}[/red]")
        raise typer.Exit(code=1) from e

    table = Table(title=f"Seeded tenant '{tenant}'")
    table.add_column("Field", style="cyan")
    table.add_column("Value", style="green")
    table.add_row("Organization", seeded.organization.name)
    table.add_row("Client ID", seeded.client.client_id)
    table.add_row("Client secret", seeded.client.client_secret)
    table.add_row("Redirect URIs", "\n".join(seeded.client.redirect_uris))
    table.add_row("RP IDs", ", ".join(seeded.client.allowed_rp_ids) or "-")
    table.add_row("Signing key id", seeded.signing_key.kid)
    if seeded.b2b_user is not None:
        table.add_row("B2B subject", seeded.b2b_user.subject)
    console.print(table)
    console.print("[yellow]⚠️  Store the client secret now; it is not shown again.[/yellow]")


@db_app.command("cleanup")
def cleanup(
    tenant: str = typer.Option(..., "--tenant", "-t", help="Tenant to sweep"),
) -> None:
    """Delete expired challenges, codes, access tokens and upstream tokens of one tenant."""
    db_service = DbSessionService()
    try:
        with db_service.session_scope() as session:
            scope = resolve_tenant(session, tenant)
            counts = {
                "WebAuthn challenges": WebAuthnChallengeService(session, scope).cleanup_expired(),
                "Authorization codes": AuthorizationCodeService(session, scope).cleanup_expired(),
                "Access tokens": TokenService(
                    session, scope, SigningKeyStore(), JwtGeneratorService()
                ).cleanup_expired(),
                "External IdP tokens": ExternalIdentityService(
                    session, scope, FederationAdapter()
                ).cleanup_expired(),
            }
    except EcAuthError as e:
        console.print(f"[red]❌ {e.detail}[/red]")
        raise typer.Exit(code=1) from e

    table = Table(title=f"Expired rows removed in '{tenant}'")
    table.add_column("Kind", style="cyan")
    table.add_column("Deleted", style="green", justify="right")
    for kind, count in counts.items():
        table.add_row(kind, str(count))
    console.print(table)
