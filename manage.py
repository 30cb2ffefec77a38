#!/usr/bin/env python3
"""
Pick Pool Management CLI

Command-line tooling for operating the pick pool: participants, leaderboard
recomputes, conflict reports and database maintenance.
"""

import json
import os

import click
from flask.cli import with_appcontext
from flask_migrate import downgrade, migrate, upgrade
from sqlalchemy.exc import SQLAlchemyError

from pickpool import create_app, db
from pickpool.errors import PickPoolError
from pickpool.models import Game, LeaderboardEntry, Participant, PickSet
from pickpool.models.leaderboard_entry import (
    BEST_FINISH_SCOPE,
    SEASON_SCOPE,
    WEEK_SCOPE,
    period_key_for,
)
from pickpool.services import pool_service

app = create_app()


@click.group()
def cli():
    """Pick Pool Management CLI"""
    pass


# Participant Commands
@cli.group()
def participant():
    """Participant management commands"""
    pass


@participant.command("create")
@click.argument("display_name")
@click.option("--email", help="Participant email")
@with_appcontext
def create_participant(display_name, email):
    """Register a new participant"""
    try:
        created = pool_service.create_participant(display_name, email=email)
        click.echo(f"✅ Created participant {created.id} ({created.display_name})")
    except PickPoolError as e:
        click.echo(f"❌ {e.message}")


@participant.command("list")
@with_appcontext
def list_participants():
    """List all participants"""
    participants = Participant.query.order_by(Participant.display_name).all()
    click.echo(f"\n👥 Participants ({len(participants)}):")
    click.echo("-" * 50)
    for item in participants:
        click.echo(f"{item.id:>5}  {item.display_name:<30} {item.email or ''}")


# Leaderboard Commands
@cli.command()
@click.option("--participant", "participant_id", type=int, help="Only this participant")
@click.option("--season", type=int, help="Only this season")
@click.option("--week", type=int, help="Only this week (needs --season)")
@click.option("--admin", "admin_id", default="cli", help="Admin id recorded in the audit log")
@with_appcontext
def recompute(participant_id, season, week, admin_id):
    """Force a full, idempotent recompute (everything when unscoped)"""
    try:
        batch = pool_service.recompute_now(
            participant_id=participant_id, season=season, week=week, admin_id=admin_id
        )
    except PickPoolError as e:
        click.echo(f"❌ {e.message}")
        return

    summary = batch.summary()
    click.echo(f"🔄 Recomputed {summary['keys_recomputed']} keys/scopes")
    for scope in summary["scopes_touched"]:
        click.echo(f"   - {scope}")
    if batch.failures:
        click.echo(f"⚠️  {len(batch.failures)} failures:")
        for failure in batch.failures:
            click.echo(f"   - {failure['key']}: {failure['error']} {failure['message']}")
    else:
        click.echo("✅ Recompute completed")


@cli.command()
@click.argument("season", type=int)
@click.option("--week", type=int, help="Show a week instead of the season")
@click.option("--best-finish", is_flag=True, help="Show the Best Finish weeks")
@with_appcontext
def leaderboard(season, week, best_finish):
    """Print a week, season or Best Finish leaderboard"""
    if best_finish:
        scope = BEST_FINISH_SCOPE
    else:
        scope = WEEK_SCOPE if week is not None else SEASON_SCOPE
    payload = pool_service.get_leaderboard(scope, period_key_for(scope, season, week))

    if best_finish:
        title = f"Best Finish, {season} (weeks {', '.join(map(str, payload['weeks']))})"
    elif week is not None:
        title = f"Week {week}, {season}"
    else:
        title = f"Season {season}"
    click.echo(f"\n🏆 Leaderboard - {title}")
    click.echo("-" * 70)
    for entry in payload["entries"]:
        rank = entry["rank"] if entry["rank"] is not None else "--"
        line = (
            f"{rank:>4}  {entry['display_name']:<24} {entry['total_points']:>5} pts  "
            f"{entry['wins']}-{entry['losses']}-{entry['pushes']}"
        )
        if entry["status"] != "ok":
            line += f"  ⚠️  {entry['status_detail']}"
        click.echo(line)


@cli.command()
@click.argument("season", type=int)
@click.option("--week", type=int, help="Only this week")
@click.option("--json", "as_json", is_flag=True, help="Print the raw report")
@with_appcontext
def conflicts(season, week, as_json):
    """Report participants with more than one candidate pick set"""
    report = pool_service.detect_pick_set_conflicts(season, week)
    if as_json:
        click.echo(json.dumps(report, indent=2))
        return

    if not report:
        click.echo("✅ No pick set conflicts")
        return

    for item in report:
        icon = "🚨" if item["status"] == "ACTIVE" else "✅"
        candidates = ", ".join(
            candidate["source_discriminator"] for candidate in item["candidates"]
        )
        line = (
            f"{icon} {item['status']}: {item['display_name']} "
            f"(Week {item['week']}, {item['season']}) - {candidates}"
        )
        if item["authoritative"]:
            line += f" -> {item['authoritative']['source_discriminator']}"
        if item["detail"]:
            line += f" [{item['detail']}]"
        click.echo(line)


@cli.command()
@with_appcontext
def reconcile():
    """Rebuild every leaderboard from source data, as the scheduled job does"""
    from pickpool.services.recompute_coordinator import recompute_coordinator

    batch = recompute_coordinator.rebuild()
    if batch.succeeded:
        click.echo(f"✅ Reconciled {len(batch.completed)} scopes")
    else:
        click.echo(f"❌ Reconciliation finished with {len(batch.failures)} failures")
        for failure in batch.failures:
            click.echo(f"   - {failure['key']}: {failure['error']} {failure['message']}")


# Database Commands
@cli.group()
def db_cmd():
    """Database commands"""
    pass


@db_cmd.command()
@with_appcontext
def init_db():
    """Initialize database tables"""
    try:
        db.create_all()
        click.echo("✅ Database tables created successfully!")
    except SQLAlchemyError as e:
        click.echo(f"❌ Error initializing database: {str(e)}")


@db_cmd.command()
@with_appcontext
def reset():
    """⚠️  DANGER: Drop and recreate all tables"""
    if not click.confirm("This will DELETE ALL DATA. Are you sure?"):
        click.echo("Cancelled.")
        return

    try:
        db.drop_all()
        db.create_all()
        click.echo("✅ Database reset successfully!")
    except SQLAlchemyError as e:
        click.echo(f"❌ Error resetting database: {str(e)}")


# Database Migration Commands
@cli.group()
def db_migrate():
    """Database migration commands"""
    pass


@db_migrate.command()
@with_appcontext
def init_migrations():
    """Initialize migrations repository"""
    if os.path.exists("migrations"):
        click.echo("❌ Migrations directory already exists!")
        return

    from flask_migrate import init as flask_migrate_init

    flask_migrate_init()
    click.echo("✅ Migrations repository initialized!")


@db_migrate.command()
@click.option("-m", "--message", required=True, help="Migration message")
@with_appcontext
def create_migration(message):
    """Create a new migration"""
    migrate(message=message)
    click.echo(f"✅ Migration created: {message}")


@db_migrate.command()
@click.option("--revision", default="head", help="Revision to upgrade to")
@with_appcontext
def apply_migrations(revision):
    """Apply migrations to database"""
    upgrade(revision=revision)
    click.echo(f"✅ Migrations applied to {revision}")


@db_migrate.command()
@click.option("--revision", required=True, help="Revision to downgrade to")
@with_appcontext
def rollback_migration(revision):
    """Rollback migrations to specific revision"""
    downgrade(revision=revision)
    click.echo(f"✅ Rolled back to {revision}")


# Info Commands
@cli.command()
@with_appcontext
def status():
    """Show pool status"""
    click.echo("\n📊 Pick Pool Status")
    click.echo("=" * 40)

    click.echo(f"👥 Participants: {Participant.query.count()}")

    game_count = Game.query.count()
    final_count = Game.query.filter_by(status="completed").count()
    click.echo(f"🏈 Games: {final_count}/{game_count} completed")

    click.echo(f"📝 Pick sets: {PickSet.query.count()}")
    unassigned = PickSet.query.filter(PickSet.participant_id.is_(None)).count()
    if unassigned:
        click.echo(f"⚠️  Unassigned anonymous pick sets: {unassigned}")

    needs_admin = LeaderboardEntry.query.filter_by(status="needs_admin_resolution").count()
    click.echo(f"🚨 Leaderboard entries needing admin resolution: {needs_admin}")

    from pickpool.utils.cache_utils import CacheManager

    cache_stats = CacheManager.get_cache_stats()
    click.echo(f"💾 Cache: {cache_stats['type']} (leaderboards {cache_stats['leaderboard_timeout']}s)")


if __name__ == "__main__":
    with app.app_context():
        cli()
