from pickpool import create_app, db, socketio
from pickpool.models import (
    CustomCombination,
    Game,
    LeaderboardEntry,
    Participant,
    PickSet,
    PickSetPreference,
)

app = create_app()


@app.shell_context_processor
def make_shell_context():
    return {
        "db": db,
        "Participant": Participant,
        "Game": Game,
        "PickSet": PickSet,
        "PickSetPreference": PickSetPreference,
        "CustomCombination": CustomCombination,
        "LeaderboardEntry": LeaderboardEntry,
    }


if __name__ == "__main__":
    socketio.run(app, host="0.0.0.0", port=5000, debug=app.debug)
