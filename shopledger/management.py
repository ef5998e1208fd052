"""
Management commands for deployment and maintenance
"""
import sys

import click
from flask import current_app
from flask.cli import with_appcontext

from .extensions import get_gateway
from .services import ShopService


@click.command('db-check')
@with_appcontext
def db_check_command():
    """Probe the database through the gateway; exit 1 when disconnected"""
    gateway = get_gateway()
    status = gateway.health_probe()
    snapshot = gateway.state.snapshot()
    if status.connected:
        print("✅ Database connected")
    else:
        print(f"❌ Database unavailable: {status.error}")
    print(f"   phase: {snapshot['phase']}, reconnecting: {snapshot['is_reconnecting']}")
    if not status.connected:
        sys.exit(1)


@click.command('db-connect')
@click.option('--attempts', type=int, default=None, help='Override DB_STARTUP_CONNECT_ATTEMPTS')
@click.option('--base-delay', type=float, default=None, help='Override DB_STARTUP_BASE_DELAY_SECONDS')
@with_appcontext
def db_connect_command(attempts, base_delay):
    """Run the startup connect loop in the foreground"""
    attempts = attempts or current_app.config.get('DB_STARTUP_CONNECT_ATTEMPTS', 5)
    if base_delay is None:
        base_delay = current_app.config.get('DB_STARTUP_BASE_DELAY_SECONDS', 2.0)

    print(f"🔌 Connecting to database ({attempts} attempts)...")
    if get_gateway().connect_on_startup(attempts, base_delay):
        print("✅ Database connected")
        return
    print("❌ All connection attempts failed")
    sys.exit(1)


@click.command('create-shop')
@click.argument('name')
@click.option('--slug', default=None, help='URL-safe identifier; derived from NAME when omitted')
@click.option('--timezone', default='UTC', show_default=True, help='IANA timezone used for yearly numbering')
@with_appcontext
def create_shop_command(name, slug, timezone):
    """Create a shop (tenant)"""
    try:
        shop = ShopService().create_shop({'name': name, 'slug': slug, 'timezone': timezone})
    except ValueError as e:
        raise click.BadParameter(str(e))
    print(f"✅ Created shop #{shop.id}: {shop.name} ({shop.slug}, {shop.timezone})")


def register_commands(app):
    """Register CLI commands"""
    app.cli.add_command(db_check_command)
    app.cli.add_command(db_connect_command)
    app.cli.add_command(create_shop_command)
