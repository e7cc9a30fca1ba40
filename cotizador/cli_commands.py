"""
Flask CLI commands.

Commands:
- flask init-db: Create the database schema
- flask expire-locks: Delete expired quote locks
"""

import click
from cotizador.database import create_schema, get_session
from cotizador.services.lock_service import expire_locks


def init_cli_commands(app):
    """Register CLI commands with Flask app."""

    @app.cli.command('init-db')
    def init_db_command():
        """Create all tables for the registered models."""
        try:
            create_schema()
            click.echo(click.style('✅ Esquema de base de datos creado.', fg='green', bold=True))
        except Exception as e:
            click.echo(click.style(f'❌ Error al crear el esquema: {str(e)}', fg='red'))
            raise click.Abort()

    @app.cli.command('expire-locks')
    def expire_locks_command():
        """Delete every quote lock whose TTL has passed."""
        try:
            deleted = expire_locks(get_session())
            click.echo(f'Bloqueos vencidos eliminados: {deleted}')
        except Exception as e:
            click.echo(click.style(f'❌ Error al eliminar bloqueos: {str(e)}', fg='red'))
            raise click.Abort()
