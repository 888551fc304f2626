from flask import request, jsonify, g, current_app
from flask_login import login_required
from helpdesk import db
from helpdesk.blueprints.crm import crm_bp
from helpdesk.models.contact import Contact
from helpdesk.models.company import Company
from helpdesk.models.task import Task
from helpdesk.models.ticket import Ticket
from helpdesk.models.ticket_message import TicketMessage
from helpdesk.utils.input_validators import validate_email, sanitize_sql_like_pattern, MAX_NAME_LENGTH
from helpdesk.utils.security_decorators import require_tenant_access

CONTACT_FIELDS = ['name', 'phone', 'title', 'twitter', 'facebook', 'avatar_url', 'notes']
COMPANY_FIELDS = ['website', 'domain', 'industry', 'notes']


def _tenant_company_id(company_id):
    """Validate an optional company id from a request body"""
    if not company_id:
        return None
    company = Company.query.filter_by(id=company_id, tenant_id=g.current_tenant.id).first()
    if not company:
        raise ValueError("Company not found")
    return company.id


# ========== COMPANIES ==========

@crm_bp.route('/companies')
@login_required
@require_tenant_access
def list_companies():
    """List all companies"""
    search = request.args.get('search', '').strip()
    query = Company.query.filter_by(tenant_id=g.current_tenant.id)

    if search:
        pattern = f'%{sanitize_sql_like_pattern(search)}%'
        query = query.filter(db.or_(
            Company.name.ilike(pattern, escape='\\'),
            Company.domain.ilike(pattern, escape='\\')
        ))

    companies = query.order_by(Company.name.asc()).all()
    return jsonify({'companies': [c.to_dict() for c in companies]})


@crm_bp.route('/companies/<int:company_id>')
@login_required
@require_tenant_access
def get_company(company_id):
    """Company detail with its contacts and recent tickets"""
    company = db.get_or_404(Company, company_id)

    # Verify tenant access
    if company.tenant_id != g.current_tenant.id:
        return jsonify({'error': 'Access denied'}), 403

    recent_tickets = company.tickets.order_by(Ticket.created_at.desc()).limit(10).all()

    data = company.to_dict()
    data['contacts'] = [c.to_dict() for c in company.contacts.order_by(Contact.name.asc())]
    data['recent_tickets'] = [t.to_summary_dict() for t in recent_tickets]
    return jsonify({'company': data})


@crm_bp.route('/companies', methods=['POST'])
@login_required
@require_tenant_access
def create_company():
    """Create a new company"""
    data = request.get_json() or {}

    name = (data.get('name') or '').strip()
    if not name:
        return jsonify({'error': 'Company name is required'}), 400

    company = Company(
        tenant_id=g.current_tenant.id,
        name=name,
        website=data.get('website'),
        domain=(data.get('domain') or '').strip().lower() or None,
        industry=data.get('industry'),
        notes=data.get('notes')
    )

    try:
        db.session.add(company)
        db.session.commit()
        return jsonify(company.to_dict()), 201
    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f"Error creating company: {e}")
        return jsonify({'error': 'Failed to create company'}), 500


@crm_bp.route('/companies/<int:company_id>', methods=['PATCH'])
@login_required
@require_tenant_access
def update_company(company_id):
    """Update company details"""
    company = db.get_or_404(Company, company_id)

    # Verify tenant access
    if company.tenant_id != g.current_tenant.id:
        return jsonify({'error': 'Access denied'}), 403

    data = request.get_json() or {}

    if 'name' in data:
        if not data['name'] or not data['name'].strip():
            return jsonify({'error': 'Company name is required'}), 400
        company.name = data['name'].strip()
    for field in COMPANY_FIELDS:
        if field in data:
            setattr(company, field, data[field] or None)
    if company.domain:
        company.domain = company.domain.strip().lower()

    try:
        db.session.commit()
        return jsonify(company.to_dict())
    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f"Error updating company {company_id}: {e}")
        return jsonify({'error': 'Failed to update company'}), 500


@crm_bp.route('/companies/<int:company_id>', methods=['DELETE'])
@login_required
@require_tenant_access
def delete_company(company_id):
    """Delete a company; its contacts, tickets and tasks are kept and detached"""
    company = db.get_or_404(Company, company_id)

    # Verify tenant access
    if company.tenant_id != g.current_tenant.id:
        return jsonify({'error': 'Access denied'}), 403

    try:
        Contact.query.filter_by(company_id=company.id).update({'company_id': None}, synchronize_session=False)
        Ticket.query.filter_by(company_id=company.id).update({'company_id': None}, synchronize_session=False)
        Task.query.filter_by(company_id=company.id).update({'company_id': None}, synchronize_session=False)
        db.session.delete(company)
        db.session.commit()
        return jsonify({'success': True})
    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f"Error deleting company {company_id}: {e}")
        return jsonify({'error': 'Failed to delete company'}), 500


# ========== CONTACTS ==========

@crm_bp.route('/contacts')
@login_required
@require_tenant_access
def list_contacts():
    """List contacts, paginated"""
    search = request.args.get('search', '').strip()
    company_id = request.args.get('company_id', type=int)

    query = Contact.query.filter_by(tenant_id=g.current_tenant.id)
    if company_id:
        query = query.filter_by(company_id=company_id)
    if search:
        pattern = f'%{sanitize_sql_like_pattern(search)}%'
        query = query.filter(db.or_(
            Contact.name.ilike(pattern, escape='\\'),
            Contact.email.ilike(pattern, escape='\\')
        ))

    page = request.args.get('page', 1, type=int)
    per_page = current_app.config.get('CONTACTS_PER_PAGE', 50)
    pagination = query.order_by(Contact.created_at.desc(), Contact.id.desc()).paginate(
        page=page, per_page=per_page, error_out=False
    )

    return jsonify({
        'contacts': [c.to_dict() for c in pagination.items],
        'page': pagination.page,
        'total': pagination.total,
        'pages': pagination.pages
    })


@crm_bp.route('/contacts/search')
@login_required
@require_tenant_access
def search_contacts():
    """Quick contact lookup by name or email (ticket form autocomplete)"""
    q = request.args.get('q', '').strip()
    if len(q) < 2:
        return jsonify({'contacts': []})

    pattern = f'%{sanitize_sql_like_pattern(q)}%'
    contacts = Contact.query.filter(
        Contact.tenant_id == g.current_tenant.id,
        db.or_(
            Contact.name.ilike(pattern, escape='\\'),
            Contact.email.ilike(pattern, escape='\\')
        )
    ).order_by(Contact.name.asc()).limit(10).all()

    return jsonify({'contacts': [
        {'id': c.id, 'name': c.display_name, 'email': c.email,
         'company': c.company.name if c.company else None}
        for c in contacts
    ]})


@crm_bp.route('/contacts/<int:contact_id>')
@login_required
@require_tenant_access
def get_contact(contact_id):
    """Contact detail with recent tickets"""
    contact = db.get_or_404(Contact, contact_id)

    # Verify tenant access
    if contact.tenant_id != g.current_tenant.id:
        return jsonify({'error': 'Access denied'}), 403

    return jsonify({'contact': contact.to_dict(include_tickets=True)})


@crm_bp.route('/contacts', methods=['POST'])
@login_required
@require_tenant_access
def create_contact():
    """Create a new contact"""
    data = request.get_json() or {}

    is_valid, email = validate_email(data.get('email'))
    if not is_valid:
        return jsonify({'error': email}), 400

    if len(data.get('name') or '') > MAX_NAME_LENGTH:
        return jsonify({'error': f'Name too long (max {MAX_NAME_LENGTH} characters)'}), 400

    if Contact.query.filter_by(tenant_id=g.current_tenant.id, email=email).first():
        return jsonify({'error': 'A contact with this email already exists'}), 400

    try:
        company_id = _tenant_company_id(data.get('company_id'))
    except ValueError as e:
        return jsonify({'error': str(e)}), 400

    contact = Contact(tenant_id=g.current_tenant.id, email=email, company_id=company_id)
    for field in CONTACT_FIELDS:
        if field in data:
            setattr(contact, field, data[field] or None)

    try:
        db.session.add(contact)
        db.session.commit()
        return jsonify(contact.to_dict()), 201
    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f"Error creating contact: {e}")
        return jsonify({'error': 'Failed to create contact'}), 500


@crm_bp.route('/contacts/<int:contact_id>', methods=['PATCH'])
@login_required
@require_tenant_access
def update_contact(contact_id):
    """Update contact details"""
    contact = db.get_or_404(Contact, contact_id)

    # Verify tenant access
    if contact.tenant_id != g.current_tenant.id:
        return jsonify({'error': 'Access denied'}), 403

    data = request.get_json() or {}

    if 'email' in data:
        is_valid, email = validate_email(data['email'])
        if not is_valid:
            return jsonify({'error': email}), 400
        duplicate = Contact.query.filter(
            Contact.tenant_id == g.current_tenant.id,
            Contact.email == email,
            Contact.id != contact.id
        ).first()
        if duplicate:
            return jsonify({'error': 'A contact with this email already exists'}), 400
        contact.email = email

    if 'company_id' in data:
        try:
            contact.company_id = _tenant_company_id(data['company_id'])
        except ValueError as e:
            return jsonify({'error': str(e)}), 400

    for field in CONTACT_FIELDS:
        if field in data:
            setattr(contact, field, data[field] or None)

    try:
        db.session.commit()
        return jsonify(contact.to_dict())
    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f"Error updating contact {contact_id}: {e}")
        return jsonify({'error': 'Failed to update contact'}), 500


@crm_bp.route('/contacts/<int:contact_id>', methods=['DELETE'])
@login_required
@require_tenant_access
def delete_contact(contact_id):
    """Delete a contact; their tickets and tasks are kept without them"""
    contact = db.get_or_404(Contact, contact_id)

    # Verify tenant access
    if contact.tenant_id != g.current_tenant.id:
        return jsonify({'error': 'Access denied'}), 403

    try:
        Ticket.query.filter_by(contact_id=contact.id).update({'contact_id': None}, synchronize_session=False)
        Task.query.filter_by(contact_id=contact.id).update({'contact_id': None}, synchronize_session=False)
        TicketMessage.query.filter_by(contact_author_id=contact.id).update(
            {'contact_author_id': None}, synchronize_session=False
        )
        db.session.delete(contact)
        db.session.commit()
        return jsonify({'success': True})
    except Exception as e:
        db.session.rollback()
        current_app.logger.error(f"Error deleting contact {contact_id}: {e}")
        return jsonify({'error': 'Failed to delete contact'}), 500
