import click
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from samevents.config.manager import config_manager
from samevents.database.connection import DatabaseManager
from samevents.services.auth_service import AuthError, AuthService
from samevents.services.calendar_integration_service import CalendarIntegrationService
from samevents.services.event_storage import EventStorage
from samevents.utils.dates import format_french_date

console = Console()


def init_database(database_url=None):
    """Open the database, reporting failures on the console"""
    try:
        return DatabaseManager(database_url or config_manager.get('app.database_url'))
    except Exception as e:
        console.print(f"[bold red]Error opening database: {str(e)}[/bold red]")
        return None


@click.group()
@click.option('--database-url', envvar='DATABASE_URL', default=None, help='SQLAlchemy database URL')
@click.pass_context
def cli(ctx, database_url):
    """Sam Hébert - gestion des événements"""
    ctx.ensure_object(dict)
    ctx.obj['database_url'] = database_url


@cli.command()
def setup():
    """Run the setup wizard"""
    config_manager.setup_wizard()
    missing = config_manager.missing()
    if missing:
        console.print(Panel("\n".join(missing), title="Still not configured", border_style="yellow"))


@cli.command('init-db')
@click.option('--reset', is_flag=True, help='Drop every table first (deletes all data)')
@click.pass_context
def init_db(ctx, reset):
    """Create the database tables"""
    db = init_database(ctx.obj['database_url'])
    if not db:
        return
    if reset:
        if not click.confirm("Drop all tables and their data?"):
            return
        db.drop_all()
        db = init_database(db.database_url)
    console.print(f"[green]✓[/green] Tables ready at [bold]{db.database_url}[/bold]")


@cli.command('create-user')
@click.argument('email')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True)
@click.option('--first-name', default=None)
@click.option('--last-name', default=None)
@click.pass_context
def create_user(ctx, email, password, first_name, last_name):
    """Create an email/password account"""
    db = init_database(ctx.obj['database_url'])
    if not db:
        return

    with db.get_session() as session:
        try:
            user = AuthService(EventStorage(session)).register(email, password, first_name, last_name)
        except AuthError as e:
            console.print(f"[red]{e.message}[/red]")
            return
        session.commit()
        console.print(f"[green]✓[/green] Created user [bold]{user.email}[/bold] ({user.id})")


def _find_user(storage: EventStorage, email: str):
    user = storage.get_user_by_email(email)
    if not user:
        console.print(f"[red]No user with email {email}[/red]")
    return user


@cli.command()
@click.argument('email')
@click.pass_context
def events(ctx, email):
    """Show a user's events"""
    db = init_database(ctx.obj['database_url'])
    if not db:
        return

    with db.get_session() as session:
        storage = EventStorage(session)
        user = _find_user(storage, email)
        if not user:
            return

        user_events = storage.get_user_events(user.id)
        if not user_events:
            console.print("[yellow]No events found[/yellow]")
            return

        table = Table(show_header=True, header_style="bold magenta")
        table.add_column("Date", style="dim")
        table.add_column("Événement")
        table.add_column("Lieu")
        table.add_column("Ville", style="dim")
        table.add_column("Statut")

        for event in user_events:
            table.add_row(
                format_french_date(event.date),
                event.title,
                event.venue_name,
                event.city,
                event.status,
            )

        console.print(table)

        stats = storage.get_event_stats(user.id)
        console.print(
            f"\n{stats['totalEvents']} événements, {stats['publishedEvents']} publiés, "
            f"{stats['monthlyEvents']} ce mois-ci"
        )


@cli.command()
@click.argument('email')
@click.option('--output', '-o', default='evenements.ics', type=click.Path(dir_okay=False), help='Where to write the .ics file')
@click.pass_context
def export(ctx, email, output):
    """Write a user's events to an iCal file"""
    db = init_database(ctx.obj['database_url'])
    if not db:
        return

    with db.get_session() as session:
        storage = EventStorage(session)
        user = _find_user(storage, email)
        if not user:
            return

        user_events = storage.get_user_events(user.id)
        ical = CalendarIntegrationService().generate_full_calendar_export(user_events)

    with open(output, 'w', encoding='utf-8') as f:
        f.write(ical)
    console.print(f"[green]✓[/green] Exported {len(user_events)} events to [bold]{output}[/bold]")


@cli.command()
@click.option('--host', default='0.0.0.0')
@click.option('--port', default=5000, type=int)
@click.option('--reload', is_flag=True, help='Reload on code changes')
def serve(host, port, reload):
    """Run the API server"""
    import uvicorn
    uvicorn.run('samevents.api.main:app', host=host, port=port, reload=reload)


if __name__ == '__main__':
    cli()
