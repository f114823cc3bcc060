from masterleague import create_app, db
from masterleague.models import (
    Fixture,
    Group,
    LeaderboardEntry,
    Prediction,
    Season,
    SyncState,
    Team,
    User,
)

app = create_app()


@app.shell_context_processor
def make_shell_context():
    return {
        "db": db,
        "User": User,
        "Group": Group,
        "Fixture": Fixture,
        "Prediction": Prediction,
        "Season": Season,
        "Team": Team,
        "LeaderboardEntry": LeaderboardEntry,
        "SyncState": SyncState,
    }


if __name__ == "__main__":
    app.run(host="0.0.0.0", port=5000, debug=app.config.get("DEBUG", False))
