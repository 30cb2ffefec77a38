import importlib

from click.testing import CliRunner

from pickpool import db
from pickpool.models import LeaderboardEntry
from tests.conftest import standings, week_key


def test_reconcile_command_rebuilds_without_the_scheduler(make, monkeypatch):
    alice = make.participant("Alice")
    game = make.game()
    make.pick_set(alice, {game.id: "home"}, lock=game.id)
    LeaderboardEntry.query.delete()
    db.session.commit()

    monkeypatch.setenv("FLASK_CONFIG", "testing")
    manage = importlib.import_module("manage")
    result = CliRunner().invoke(manage.cli, ["reconcile"])

    assert result.exit_code == 0, result.output
    assert "Reconciled 2 scopes" in result.output
    assert standings("week", week_key(1))["Alice"]["pending"] == 1
