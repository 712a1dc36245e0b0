import os
from datetime import timedelta

from click.testing import CliRunner

from conftest import NOW, make_debt, make_debtor, make_user
from db_manager import cli
from models import db, User


def test_init_creates_tables_and_upload_folder(app):
    db.drop_all()

    result = CliRunner().invoke(cli, ['init'])

    assert result.exit_code == 0, result.output
    assert 'debt' in result.output
    assert 'notification' in result.output
    assert os.path.isdir(app.config['UPLOAD_FOLDER'])
    assert User.query.count() == 0


def test_drop_asks_for_confirmation(app):
    make_user()

    result = CliRunner().invoke(cli, ['drop'], input='n\n')

    assert result.exit_code != 0
    assert User.query.count() == 1


def test_reset_clears_existing_records(app):
    make_debt(make_debtor(make_user()), NOW + timedelta(days=1))

    result = CliRunner().invoke(cli, ['reset', '--yes'])

    assert result.exit_code == 0, result.output
    assert 'Recreated' in result.output
    db.session.remove()
    assert User.query.count() == 0


def test_status_counts_active_records(app):
    debtor = make_debtor(make_user())
    make_debt(debtor, NOW + timedelta(days=1))
    removed = make_debt(debtor, NOW + timedelta(days=2))
    removed.active = False
    db.session.commit()

    result = CliRunner().invoke(cli, ['status'])

    assert result.exit_code == 0, result.output
    assert 'Database connection: OK' in result.output
    assert '  Debts: 1' in result.output
    assert '  Debtors: 1' in result.output
