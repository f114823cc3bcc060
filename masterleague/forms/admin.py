from flask_wtf import FlaskForm
from wtforms import IntegerField, SelectField
from wtforms.validators import InputRequired, NumberRange

from masterleague.services.multiplier_service import MAX_MULTIPLIER

RESULT_STATUSES = [
    ("FINISHED", "Finished"),
    ("AWARDED", "Awarded"),
    ("IN_PLAY", "In Play"),
    ("PAUSED", "Half Time"),
    ("SCHEDULED", "Scheduled"),
    ("POSTPONED", "Postponed"),
]


class FixtureResultForm(FlaskForm):
    home_score = IntegerField(
        "Home Score", validators=[InputRequired(), NumberRange(min=0, max=99)]
    )
    away_score = IntegerField(
        "Away Score", validators=[InputRequired(), NumberRange(min=0, max=99)]
    )
    status = SelectField("Status", choices=RESULT_STATUSES, default="FINISHED")


class MultiplierForm(FlaskForm):
    multiplier = IntegerField(
        "Multiplier",
        validators=[
            InputRequired(),
            NumberRange(
                min=1,
                max=MAX_MULTIPLIER,
                message=f"Multiplier must be between 1 and {MAX_MULTIPLIER}",
            ),
        ],
    )


class SafetyCheckForm(FlaskForm):
    days_back = IntegerField(
        "Days Back", validators=[NumberRange(min=1, max=60)], default=7
    )
