import os

from app import app, db
from config import configure_logging
from models import User, Debtor, Debt, Payment, Collateral, Notification
import click


def create_schema():
    """Create the tables and the collateral upload folder; returns the table names."""
    db.create_all()
    os.makedirs(app.config['UPLOAD_FOLDER'], exist_ok=True)
    return [table.name for table in db.metadata.sorted_tables]


@click.group()
def cli():
    """Debt tracker database commands"""
    pass


@cli.command()
def init():
    """Create the debt tracker tables and upload folder"""
    with app.app_context():
        tables = create_schema()
        click.echo(f"✅ Created {len(tables)} tables: {', '.join(tables)}")
        click.echo(f"📁 Collateral files go to {app.config['UPLOAD_FOLDER']}")


@cli.command()
@click.confirmation_option(prompt="This deletes every lender, debt and payment. Continue?")
def drop():
    """Drop every debt tracker table (uploaded files are kept)"""
    with app.app_context():
        db.drop_all()
        click.echo("✅ Debt tracker tables dropped")


@cli.command()
@click.confirmation_option(prompt="This deletes every lender, debt and payment. Continue?")
@click.option('--seed', 'with_seed', is_flag=True, help="Load the demo lenders and debts afterwards")
def reset(with_seed):
    """Drop and recreate the tables, optionally loading demo data"""
    with app.app_context():
        db.drop_all()
        tables = create_schema()
        click.echo(f"✅ Recreated {len(tables)} tables")
    if with_seed:
        from seed_data import seed_data
        seed_data()


@cli.command()
def seed():
    """Replace all data with demo lenders, debtors, debts and payments"""
    from seed_data import seed_data
    seed_data()


@cli.command()
def status():
    """Show database status"""
    with app.app_context():
        try:
            User.query.first()
            click.echo("✅ Database connection: OK")

            counts = {
                'Users': User.query.count(),
                'Debtors': Debtor.query.filter_by(active=True).count(),
                'Debts': Debt.query.filter_by(active=True).count(),
                'Payments': Payment.query.filter_by(active=True).count(),
                'Collaterals': Collateral.query.filter_by(active=True).count(),
                'Notifications': Notification.query.count()
            }

            click.echo("\n📊 Record counts:")
            for table, count in counts.items():
                click.echo(f"  {table}: {count}")

        except Exception as e:
            click.echo(f"❌ Database error: {e}")


@cli.command()
@click.option('--no-summary', is_flag=True, help="Skip the per-user summary messages")
def dispatch(no_summary):
    """Run one WhatsApp notification dispatch cycle now"""
    configure_logging()
    with app.app_context():
        service = app.extensions['notification_service']
        if no_summary:
            service.send_summary = False
        stats = service.run_dispatch_cycle()
        click.echo(f"✅ Dispatch finished: {stats['sent']} sent, {stats['failed']} failed, "
                   f"{stats['skipped']} skipped, {stats['invalid']} invalid, "
                   f"{stats['summaries']} summaries")


if __name__ == '__main__':
    cli()
