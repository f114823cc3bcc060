#!/usr/bin/env python3
"""
Master League Management CLI

Command-line management for seasons, fixture sync, scoring and the
background worker.
"""

import logging
from datetime import date

import click
from flask.cli import with_appcontext
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from masterleague import create_app, db
from masterleague.models import Fixture, Group, Season, User
from masterleague.utils.data_sync import DataSync
from masterleague.utils.fixture_status import FINISHED_STATUSES, LIVE_STATUSES

app = create_app()


@click.group()
def cli():
    """Master League Management CLI"""
    pass


def _resolve_season(year):
    if year:
        return Season.query.filter_by(year=year).first()
    return Season.get_current_season()


# Season Management Commands
@cli.group()
def season():
    """Season management commands"""
    pass


@season.command()
@click.argument("year", type=int)
@click.option(
    "--start-date",
    type=click.DateTime(formats=["%Y-%m-%d"]),
    help="Season start date (YYYY-MM-DD)",
)
@click.option(
    "--end-date",
    type=click.DateTime(formats=["%Y-%m-%d"]),
    help="Season end date (YYYY-MM-DD)",
)
@click.option("--activate", is_flag=True, help="Activate this season")
@with_appcontext
def create(year, start_date, end_date, activate):
    """Create a new season"""
    try:
        start_date = start_date.date() if start_date else date(year, 8, 1)
        end_date = end_date.date() if end_date else date(year + 1, 5, 31)

        if Season.query.filter_by(year=year).first():
            click.echo(f"Season {year} already exists!")
            return

        season = Season.create_season(
            year, start_date, end_date, total_weeks=app.config.get("TOTAL_WEEKS", 38)
        )
        db.session.commit()
        click.echo(f"✅ Created season {season.name} ({start_date} to {end_date})")

        if activate:
            season.activate()
            click.echo(f"✅ Activated season {year}")

    except IntegrityError as e:
        db.session.rollback()
        click.echo(f"❌ Season {year} already exists!")
        logging.error(f"Season creation failed - integrity error: {e}")
    except SQLAlchemyError as e:
        db.session.rollback()
        click.echo(f"❌ Database error creating season: {str(e)}")
        logging.error(f"Season creation failed - SQL error: {e}")


@season.command()
@click.argument("year", type=int)
@with_appcontext
def activate(year):
    """Activate a season"""
    try:
        season = Season.query.filter_by(year=year).first()
        if not season:
            click.echo(f"❌ Season {year} not found!")
            return

        season.activate()
        click.echo(f"✅ Activated season {year}")

    except SQLAlchemyError as e:
        db.session.rollback()
        click.echo(f"❌ Database error activating season: {str(e)}")
        logging.error(f"Season activation failed - SQL error: {e}")


@season.command("list")
@with_appcontext
def list_seasons():
    """List all seasons"""
    seasons = Season.query.order_by(Season.year.desc()).all()

    if not seasons:
        click.echo("No seasons found.")
        return

    click.echo("Seasons:")
    for s in seasons:
        status = "🟢 ACTIVE" if s.is_active else "⚪ Inactive"
        click.echo(f"  {s.year}: {status} - Week {s.current_week}/{s.total_weeks}")


# Data Sync Commands
@cli.group()
def sync():
    """Data synchronization commands"""
    pass


@sync.command("all")
@click.argument("year", type=int)
@with_appcontext
def sync_all(year):
    """Sync season, teams and fixtures from football-data.org"""
    click.echo(f"Starting full sync for {year}...")
    success, message = DataSync().sync_season_data(year)

    if success:
        click.echo(f"✅ {message}")
    else:
        click.echo(f"❌ {message}")


@sync.command()
@click.option("--force", is_flag=True, help="Ignore cooldowns and the pre-check")
@with_appcontext
def fixtures(force):
    """Refresh live, recent and upcoming fixtures"""
    from masterleague.services.fixture_sync_service import (
        check_and_update_recent_fixtures,
    )

    result = check_and_update_recent_fixtures(force=force)
    if result["skipped"]:
        click.echo(f"⏭️  Skipped: {result['reason']}")
        return

    click.echo(
        f"✅ {result['mode']} sync: checked {result['checked']}, updated "
        f"{result['updated']}, finished {result['finished']}, "
        f"{result['predictions_processed']} predictions scored"
    )
    for error in result["errors"]:
        click.echo(f"   ❌ {error}")


@sync.command()
@with_appcontext
def recover():
    """Deep scan for fixtures the poller missed"""
    from masterleague.services.fixture_sync_service import recover_missed_fixtures

    result = recover_missed_fixtures()
    click.echo(f"🔍 Candidates: {result['candidates']}")
    click.echo(
        f"✅ Updated {result['updated']} fixtures, "
        f"{result['predictions_processed']} predictions scored"
    )
    for error in result["errors"]:
        click.echo(f"   ❌ {error}")


# Scoring Commands
@cli.group()
def scoring():
    """Prediction scoring commands"""
    pass


@scoring.command("update")
@click.option("--season", "year", type=int, help="Season year (default: current season)")
@with_appcontext
def update_scores(year):
    """Score every finished fixture with unprocessed predictions"""
    from masterleague.services.prediction_processor import update_predictions

    season = _resolve_season(year)
    if not season:
        click.echo("❌ Season not found")
        return

    result = update_predictions(season_id=season.id)
    click.echo(
        f"✅ {result['fixtures_processed']} fixtures, "
        f"{result['predictions_processed']} predictions, "
        f"{result['points_allocated']} points"
    )
    for error in result["errors"]:
        click.echo(f"   ❌ Fixture {error['fixture_id']}: {error['error']}")


@scoring.command("safety-check")
@click.option("--days", default=None, type=int, help="Days to look back")
@with_appcontext
def safety_check(days):
    """Fix finished fixtures whose predictions were never scored"""
    from masterleague.services.safety_service import fix_unprocessed_predictions

    result = fix_unprocessed_predictions(days_back=days)
    click.echo(
        f"🛡️  Checked {result['fixtures_checked']} fixtures, fixed "
        f"{result['predictions_fixed']} predictions ({result['points_awarded']} points)"
    )
    for error in result["errors"]:
        click.echo(f"   ❌ {error}")


@scoring.command("fix-fixture")
@click.argument("fixture_id", type=int)
@with_appcontext
def fix_fixture(fixture_id):
    """Re-score one fixture"""
    from masterleague.services.safety_service import fix_specific_fixture

    result = fix_specific_fixture(fixture_id)
    if not result["success"]:
        click.echo(f"❌ {result['error']}")
        return

    click.echo(
        f"✅ Fixture {fixture_id}: {result['predictions_fixed']} of "
        f"{result['predictions_checked']} predictions changed"
    )


# Leaderboard Commands
@cli.group()
def leaderboard():
    """Leaderboard commands"""
    pass


@leaderboard.command()
@click.option("--group-id", type=int, help="Only this group (default: every scope)")
@click.option("--season", "year", type=int, help="Season year (default: current season)")
@with_appcontext
def recalculate(group_id, year):
    """Rebuild leaderboards from the predictions table"""
    from masterleague.services.leaderboard_service import (
        LeaderboardError,
        recalculate_all_leaderboards,
        recalculate_leaderboard,
    )

    season = _resolve_season(year)
    if not season:
        click.echo("❌ Season not found")
        return

    try:
        if group_id is not None:
            result = recalculate_leaderboard(group_id=group_id, season_id=season.id)
            click.echo(f"✅ Group {group_id}: {result['users_ranked']} users ranked")
            return

        result = recalculate_all_leaderboards(season.id)
    except LeaderboardError as e:
        click.echo(f"❌ {e}")
        return

    click.echo(f"✅ Recalculated {result['scopes']} leaderboards")
    for error in result["errors"]:
        click.echo(f"   ❌ Group {error['group_id']}: {error['error']}")


@leaderboard.command("integrity-check")
@click.option("--no-fix", is_flag=True, help="Report drift without rebuilding")
@click.option("--season", "year", type=int, help="Season year (default: current season)")
@with_appcontext
def integrity_check(no_fix, year):
    """Compare stored leaderboards with the predictions table"""
    from masterleague.services.leaderboard_service import (
        LeaderboardError,
        check_leaderboard_integrity,
    )

    season = _resolve_season(year)
    if not season:
        click.echo("❌ Season not found")
        return

    try:
        result = check_leaderboard_integrity(auto_fix=not no_fix, season_id=season.id)
    except LeaderboardError as e:
        click.echo(f"❌ {e}")
        return

    click.echo(
        f"🔍 Checked {result['scopes_checked']} scopes, {result['users_checked']} standings"
    )
    if not result["issues"]:
        click.echo("✅ All leaderboards match the predictions table")
        return

    for issue in result["issues"]:
        scope = "global" if issue["group_id"] is None else f"group {issue['group_id']}"
        click.echo(
            f"   ⚠️  {issue['type']} ({scope}) user {issue['user_id']}: "
            f"expected {issue['expected_points']}, stored {issue['actual_points']}"
        )
    if result["auto_fixed"]:
        click.echo(f"✅ Rebuilt {result['scopes_fixed']} scopes")
    for error in result["errors"]:
        click.echo(f"   ❌ Group {error['group_id']}: {error['error']}")


# Fixture Commands
@cli.group("fixtures")
def fixtures_cmd():
    """Fixture commands"""
    pass


@fixtures_cmd.command()
@click.argument("week", type=int)
@click.option("--season", "year", type=int, help="Season year (default: current season)")
@with_appcontext
def multipliers(week, year):
    """Assign the 3x and 2x fixtures of a week at random"""
    from masterleague.services.multiplier_service import set_random_multipliers_for_week

    season = _resolve_season(year)
    if not season:
        click.echo("❌ Season not found")
        return

    success, message, assignments = set_random_multipliers_for_week(season.id, week)
    if not success:
        click.echo(f"❌ {message}")
        return

    click.echo(f"✅ {message}")
    for fixture_id, multiplier in assignments.items():
        if multiplier > 1:
            click.echo(f"   Fixture {fixture_id}: x{multiplier}")


# User Management Commands
@cli.group()
def user():
    """User management commands"""
    pass


@user.command()
@click.argument("username")
@click.argument("email")
@click.password_option()
@with_appcontext
def create_admin(username, email, password):
    """Create an admin user"""
    existing = User.query.filter(
        (User.username == username) | (User.email == email.lower())
    ).first()
    if existing:
        click.echo(
            f"❌ User with username '{username}' or email '{email}' already exists!"
        )
        return

    user = User(username=username, email=email.lower(), is_active=True, is_admin=True)
    user.set_password(password)

    try:
        db.session.add(user)
        db.session.commit()
        click.echo(f"✅ Created admin user '{username}' ({email})")
    except SQLAlchemyError as e:
        db.session.rollback()
        click.echo(f"❌ Error creating user: {str(e)}")


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


# Worker
@cli.command()
def worker():
    """Run the background scheduler (blocks)"""
    from masterleague.services.scheduler_service import SchedulerService

    scheduler = SchedulerService(app)
    for job in scheduler.get_status()["jobs"]:
        click.echo(f"⏰ {job['name']}: {job['trigger']}")
    scheduler.start()


# Info Commands
@cli.command()
@with_appcontext
def status():
    """Show application status"""
    click.echo("⚽ Master League Application Status")
    click.echo("=" * 40)

    try:
        db.session.execute(db.text("SELECT 1"))
        click.echo("✅ Database: Connected")
    except SQLAlchemyError as e:
        click.echo(f"❌ Database: Error - {str(e)}")
        return

    current_season = Season.get_current_season()
    if current_season:
        click.echo(
            f"✅ Current Season: {current_season.name} "
            f"(Week {current_season.calculate_current_week()})"
        )
    else:
        click.echo("⚠️  Current Season: None active")

    user_count = User.query.filter_by(is_active=True).count()
    click.echo(f"👥 Active Users: {user_count}")

    group_count = Group.query.filter_by(is_active=True).count()
    click.echo(f"🏆 Active Groups: {group_count}")

    if current_season:
        fixtures_query = Fixture.query.filter_by(season_id=current_season.id)
        total = fixtures_query.count()
        finished = fixtures_query.filter(Fixture.status.in_(FINISHED_STATUSES)).count()
        live = fixtures_query.filter(Fixture.status.in_(LIVE_STATUSES)).count()
        click.echo(f"⚽ Fixtures: {finished}/{total} finished, {live} live")

    from masterleague.services.fixture_sync_service import get_sync_status

    for job in get_sync_status()["jobs"]:
        marker = "✅" if not job["consecutive_failures"] else "⚠️ "
        click.echo(
            f"{marker} {job['job_name']}: last run {job['last_run_at'] or 'never'} "
            f"({job['run_count']} runs)"
        )


if __name__ == "__main__":
    with app.app_context():
        cli()
