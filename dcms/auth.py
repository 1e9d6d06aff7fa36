# Dependencies
# ============
# Non-standard
# ------------
# See https://flask.palletsprojects.com/en/2.0.x/
from flask import (
    Blueprint, flash, redirect, render_template, request, url_for
)
# See https://flask-login.readthedocs.io/
from flask_login import (
    LoginManager, login_user, logout_user, current_user, login_required
)
# See https://flask-wtf.readthedocs.io/
from flask_wtf import FlaskForm
# See https://wtforms.readthedocs.io/
from wtforms import PasswordField, StringField, validators

# Local
# -----
from .users import User

bp = Blueprint('auth', __name__)
lm = LoginManager()
lm.login_view = 'auth.login'
lm.login_message = 'Please sign in to access this page.'
lm.login_message_category = "error"


@lm.user_loader
def load_user(id):
    '''Utility for loading users.'''
    return User.load(int(id))


class LoginForm(FlaskForm):
    userid = StringField('User ID', validators=[validators.InputRequired(
        message='You must provide a user ID.')])
    password = PasswordField('Password', validators=[validators.InputRequired(
        message='You must provide a password.')])


def is_safe_next(target: str) -> bool:
    return bool(target) and target.startswith('/') \
        and not target.startswith('//')


@bp.route('/login', methods=['GET', 'POST'])
def login():
    next_url = request.values.get('next')
    if not is_safe_next(next_url):
        next_url = url_for('items.index')
    if current_user.is_authenticated:
        return redirect(next_url)
    form = LoginForm()
    if request.method == 'POST' and form.validate():
        user = User.load_by_userid(form.userid.data)
        if user.is_active and user.verify_password(form.password.data):
            login_user(user)
            flash('Successfully signed in.')
            return redirect(next_url)
        flash('Could not sign in with that user ID and password.', 'error')
    elif form.errors and 'csrf_token' in form.errors:
        flash('Could not sign in as your form session has expired.'
              ' Please try again.', 'error')
    return render_template('login.html', form=form, next=next_url)


@bp.route('/logout')
@login_required
def logout():
    logout_user()
    flash('You were signed out.')
    return redirect(url_for('items.index'))
