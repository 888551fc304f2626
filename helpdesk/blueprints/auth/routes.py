from flask import render_template, redirect, url_for, flash, request, session, current_app
from flask_login import login_user, logout_user, current_user
from urllib.parse import urlparse
from datetime import datetime
from helpdesk import db, limiter
from helpdesk.blueprints.auth import auth_bp
from helpdesk.blueprints.auth.forms import LoginForm, RegistrationForm
from helpdesk.models.user import User
from helpdesk.models.audit_log import AuditLog
from helpdesk.services.tenant_service import create_workspace


def _refuse(form, email, reason, message, status):
    """Audit a refused sign-in and re-render the form"""
    AuditLog.log_login_attempt(email, success=False, ip_address=request.remote_addr,
                               user_agent=request.headers.get('User-Agent'), error_message=reason)
    flash(message, 'danger')
    return render_template('auth/login.html', form=form, title='Sign In'), status


def _safe_next_page():
    next_page = request.args.get('next')
    # Only same-site redirects
    if not next_page or urlparse(next_page).netloc != '':
        return url_for('tenant.home')
    return next_page


@auth_bp.route('/login', methods=['GET', 'POST'])
@limiter.limit("5 per minute")
def login():
    """Agent sign-in; locks the account after repeated failures"""
    if current_user.is_authenticated:
        return redirect(url_for('tenant.home'))

    form = LoginForm()

    if not form.validate_on_submit():
        if 'csrf_token' in form.errors:
            flash('Your session expired. Please refresh the page and try again.', 'warning')
            return redirect(url_for('auth.login'))
        return render_template('auth/login.html', form=form, title='Sign In')

    email = form.email.data.lower()
    user = User.query.filter_by(email=email).first()

    if user and user.is_account_locked():
        return _refuse(form, email, 'Account locked',
                       'Your account is temporarily locked after too many failed sign-ins. '
                       'Please try again later.', 403)

    # The AI agent's system user never signs in interactively
    if not user or user.is_ai_agent or not user.check_password(form.password.data):
        response = _refuse(form, email, 'Invalid credentials',
                           'Invalid email or password. Please try again.', 401)
        if user and AuditLog.should_lock_account(user.id):
            user.lock_account()
            current_app.logger.warning(f"Locked user {user.id} after repeated failed sign-ins")
        return response

    if not user.is_active:
        return _refuse(form, email, 'Account deactivated',
                       'Your account has been deactivated. Please contact your workspace admin.', 403)

    AuditLog.log_login_attempt(email, success=True, ip_address=request.remote_addr,
                               user_agent=request.headers.get('User-Agent'))

    session.permanent = True
    login_user(user, remember=form.remember_me.data)
    user.last_login_at = datetime.utcnow()
    user.locked_until = None
    db.session.commit()

    tenants = user.get_tenants()
    if tenants and not session.get('current_tenant_id'):
        session['current_tenant_id'] = tenants[0].id

    current_app.logger.info(f"User {user.id} signed in")
    return redirect(_safe_next_page())


@auth_bp.route('/register', methods=['GET', 'POST'])
@limiter.limit("3 per hour")
def register():
    """Registration page: creates the agent and a workspace they own"""
    if current_user.is_authenticated:
        return redirect(url_for('tenant.home'))

    form = RegistrationForm()
    if form.validate_on_submit():
        user = User(
            email=form.email.data.lower(),
            first_name=form.first_name.data or None,
            last_name=form.last_name.data or None
        )
        user.set_password(form.password.data)

        try:
            db.session.add(user)
            db.session.flush()  # create_workspace commits user and workspace together
            tenant = create_workspace(user, form.workspace_name.data, timezone=form.workspace_timezone.data)
        except ValueError as e:
            db.session.rollback()
            flash(str(e), 'danger')
            return render_template('auth/register.html', form=form, title='Register'), 400

        session.permanent = True
        session.modified = True
        login_user(user, remember=True)
        session['current_tenant_id'] = tenant.id

        flash(f'Welcome, {user.full_name}! Your workspace "{tenant.name}" is ready.', 'success')
        return redirect(url_for('tenant.home'))

    return render_template('auth/register.html', form=form, title='Register')


@auth_bp.route('/logout', methods=['GET', 'POST'])
def logout():
    """Sign out and drop the remember-me cookie"""
    response = redirect(url_for('auth.login'))
    response.set_cookie('remember_token', '', expires=0, path='/', samesite='Lax', httponly=True)

    logout_user()
    session.clear()

    return response
