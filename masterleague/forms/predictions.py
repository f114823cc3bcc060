from flask_wtf import FlaskForm
from wtforms import IntegerField
from wtforms.validators import InputRequired, NumberRange


class PredictionForm(FlaskForm):
    fixture_id = IntegerField("Fixture", validators=[InputRequired()])
    home_score = IntegerField(
        "Home Score",
        validators=[
            InputRequired(),
            NumberRange(min=0, max=99, message="Score must be between 0 and 99"),
        ],
    )
    away_score = IntegerField(
        "Away Score",
        validators=[
            InputRequired(),
            NumberRange(min=0, max=99, message="Score must be between 0 and 99"),
        ],
    )
