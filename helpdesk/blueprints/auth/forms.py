from flask_wtf import FlaskForm
from wtforms import StringField, PasswordField, BooleanField, SelectField, SubmitField
from wtforms.validators import DataRequired, Email, EqualTo, ValidationError, Length
from helpdesk.models.user import User
from helpdesk.utils.input_validators import validate_password_strength
from helpdesk.utils.timezone_utils import COMMON_TIMEZONES


class LoginForm(FlaskForm):
    """Agent sign-in"""
    email = StringField('Work email', validators=[DataRequired(), Email()])
    password = PasswordField('Password', validators=[DataRequired()])
    remember_me = BooleanField('Keep me signed in')
    submit = SubmitField('Sign In')


class RegistrationForm(FlaskForm):
    """New agent plus the support workspace they will own"""
    email = StringField('Work email', validators=[DataRequired(), Email()])
    first_name = StringField('First Name', validators=[Length(max=80)])
    last_name = StringField('Last Name', validators=[Length(max=80)])
    workspace_name = StringField('Support workspace name', validators=[DataRequired(), Length(max=255)])
    workspace_timezone = SelectField(
        'Business hours timezone',
        choices=[(tz, tz.replace('_', ' ')) for tz in COMMON_TIMEZONES],
        default='UTC'
    )
    password = PasswordField('Password', validators=[
        DataRequired(),
        Length(min=8, message='Password must be at least 8 characters')
    ])
    password2 = PasswordField('Confirm Password', validators=[
        DataRequired(),
        EqualTo('password', message='Passwords must match')
    ])
    submit = SubmitField('Create Workspace')

    def validate_email(self, email):
        if User.query.filter_by(email=email.data.lower()).first():
            raise ValidationError('This email is already registered. Sign in instead.')

    def validate_password(self, password):
        is_valid, error = validate_password_strength(password.data)
        if not is_valid:
            raise ValidationError(error)
