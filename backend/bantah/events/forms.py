from flask import current_app
from wtforms import Form, StringField, FloatField, IntegerField, BooleanField, FieldList
from wtforms.validators import DataRequired, Length, NumberRange, Optional, URL, ValidationError

from bantah.utils.validators import parse_amount, parse_datetime, strip_filter, utcnow


class EventForm(Form):
    title = StringField('Title', filters=[strip_filter], validators=[
        DataRequired(message='Title is required'),
        Length(min=3, max=100, message='Title must be between 3 and 100 characters')
    ])
    description = StringField('Description', validators=[Optional(), Length(max=2000)])
    category = StringField('Category', validators=[DataRequired(message='Category is required'), Length(max=50)])
    start_time = StringField('Start time', validators=[DataRequired(message='Start time is required')])
    end_time = StringField('End time', validators=[DataRequired(message='End time is required')])
    wager_amount = FloatField('Wager amount', validators=[DataRequired(message='Wager amount must be greater than 0')])
    max_participants = IntegerField('Max participants', default=2, validators=[
        Optional(),
        NumberRange(min=2, max=100, message='Participants must be between 2 and 100')
    ])
    banner_url = StringField('Banner', validators=[Optional(), URL()])
    is_private = BooleanField('Private', default=False)
    rules = FieldList(StringField('Rule'), min_entries=0)

    def validate_start_time(self, field):
        start = parse_datetime(field.data)
        if start is None:
            raise ValidationError('Start time must be an ISO-8601 timestamp')
        if start < utcnow():
            raise ValidationError('Start time must be in the future')

    def validate_end_time(self, field):
        end = parse_datetime(field.data)
        if end is None:
            raise ValidationError('End time must be an ISO-8601 timestamp')
        start = parse_datetime(self.start_time.data)
        if start is not None and end <= start:
            raise ValidationError('End time must be after start time')

    def validate_wager_amount(self, field):
        minimum = current_app.config["MIN_WAGER_AMOUNT"]
        amount = parse_amount(field.data)
        if amount is None or amount < minimum:
            raise ValidationError(f'Minimum wager amount is {minimum:.0f}')
        field.data = amount

    def validate_rules(self, field):
        for entry in field.entries:
            rule = (entry.data or "").strip()
            if not rule:
                raise ValidationError('Rule cannot be empty')
            if len(rule) > 200:
                raise ValidationError('Rule must be less than 200 characters')
