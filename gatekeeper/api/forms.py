"""Input validation for the protected API surface."""

from flask_wtf import FlaskForm
from wtforms import StringField
from wtforms.validators import DataRequired, Length


class PostForm(FlaskForm):
    """Post submission: only the title is validated; persistence lives elsewhere."""

    class Meta:
        # The double-submit cookie check is the CSRF defense.
        csrf = False

    title = StringField(
        'Title',
        validators=[
            DataRequired(message='Title is required.'),
            Length(max=200, message='Title is too long.'),
        ],
    )
