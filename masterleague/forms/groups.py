from flask_wtf import FlaskForm
from wtforms import IntegerField, StringField, TextAreaField
from wtforms.validators import DataRequired, Length, NumberRange, Optional, Regexp


class CreateGroupForm(FlaskForm):
    name = StringField(
        "Group Name",
        validators=[
            DataRequired(),
            Length(
                min=3,
                max=100,
                message="Group name must be between 3 and 100 characters",
            ),
            Regexp(
                r"^[a-zA-Z0-9 _.-]+$", message="Group name contains invalid characters"
            ),
        ],
    )
    description = TextAreaField(
        "Description",
        validators=[
            Length(max=500, message="Description cannot exceed 500 characters")
        ],
    )
    max_members = IntegerField(
        "Maximum Members",
        validators=[
            Optional(),
            NumberRange(
                min=2, max=100, message="Maximum members must be between 2 and 100"
            ),
        ],
        default=50,
    )


class JoinGroupForm(FlaskForm):
    invite_code = StringField(
        "Invite Code",
        validators=[
            DataRequired(),
            Length(min=4, max=8, message="Invite code must be up to 8 characters"),
        ],
    )
