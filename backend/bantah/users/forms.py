from wtforms import Form, StringField, PasswordField
from wtforms.validators import DataRequired, Length, Email, Regexp, Optional, URL, ValidationError

from bantah.utils.validators import strip_filter

USERNAME_PATTERN = r'^[A-Za-z0-9_]+$'
# Names that collide with static routes under /api/v1/users
RESERVED_USERNAMES = {"profile", "search"}


def not_reserved(form, field):
    if field.data and field.data.lower() in RESERVED_USERNAMES:
        raise ValidationError('This username is reserved')


class RegistrationForm(Form):
    name = StringField('Name', filters=[strip_filter], validators=[DataRequired(message='Name is required'), Length(max=100)])
    username = StringField('Username', filters=[strip_filter], validators=[
        DataRequired(message='Username is required'),
        Length(min=3, max=30, message='Username must be between 3 and 30 characters'),
        Regexp(USERNAME_PATTERN, message='Username may only contain letters, numbers and underscores'),
        not_reserved
    ])
    email = StringField('Email', filters=[strip_filter], validators=[DataRequired(message='Email is required'), Email()])
    password = PasswordField('Password', validators=[
        DataRequired(message='Password is required'),
        Length(min=8, message='Password must be at least 8 characters')
    ])
    referral_code = StringField('Referral code', filters=[strip_filter], validators=[Optional(), Length(max=20)])


class LoginForm(Form):
    identifier = StringField('Email or username', filters=[strip_filter], validators=[DataRequired(message='Email or username is required')])
    password = PasswordField('Password', validators=[DataRequired(message='Password is required')])


class ProfileForm(Form):
    name = StringField('Name', filters=[strip_filter], validators=[Optional(), Length(min=1, max=100)])
    username = StringField('Username', filters=[strip_filter], validators=[
        Optional(),
        Length(min=3, max=30, message='Username must be between 3 and 30 characters'),
        Regexp(USERNAME_PATTERN, message='Username may only contain letters, numbers and underscores'),
        not_reserved
    ])
    bio = StringField('Bio', filters=[strip_filter], validators=[Optional(), Length(max=500)])
    avatar_url = StringField('Avatar', validators=[Optional(), URL()])
