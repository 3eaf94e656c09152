from flask import current_app
from wtforms import Form, StringField, FloatField, IntegerField
from wtforms.validators import DataRequired, Length, NumberRange, Optional, AnyOf, ValidationError

from bantah.utils.validators import parse_amount, strip_filter


class ChallengeForm(Form):
    challenged_id = StringField('Opponent', validators=[DataRequired(message='Opponent is required')])
    title = StringField('Title', filters=[strip_filter], validators=[
        DataRequired(message='Title is required'),
        Length(min=3, max=100, message='Title must be between 3 and 100 characters')
    ])
    description = StringField('Description', validators=[Optional(), Length(max=1000)])
    amount = FloatField('Amount', validators=[DataRequired(message='Amount is required')])
    expires_in = IntegerField('Expires in', validators=[
        Optional(),
        NumberRange(min=5, max=1440, message='Expiry must be between 5 and 1440 minutes')
    ])
    evidence_type = StringField('Evidence', validators=[
        Optional(),
        AnyOf(['SCREENSHOT', 'VIDEO', 'BOTH'], message='Evidence must be SCREENSHOT, VIDEO or BOTH')
    ])

    def validate_amount(self, field):
        minimum = current_app.config["MIN_CHALLENGE_AMOUNT"]
        amount = parse_amount(field.data)
        if amount is None or amount < minimum:
            raise ValidationError(f'Minimum challenge amount is {minimum:.0f}')
        field.data = amount


class EvidenceForm(Form):
    url = StringField('Evidence URL', filters=[strip_filter], validators=[DataRequired(message='Evidence URL is required')])
    type = StringField('Type', validators=[Optional(), AnyOf(['image', 'video', 'file'])])
