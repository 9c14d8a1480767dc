"""Ticket routes.

Blueprint: tickets_bp
Prefix: /api/tickets

JSON API used by the front end for listing, filing, triaging and
commenting tickets. Visibility follows the role of the signed-in profile.
"""
from flask import Blueprint, Response, jsonify, request
from flask_login import login_required, current_user
from flask_wtf import FlaskForm
from wtforms import StringField, TextAreaField, SelectField, IntegerField
from wtforms.validators import DataRequired, Length, Optional

from app.errors import NotFound, PermissionDenied
from app.models import TicketPriority, TicketStatus
from app.routes.auth import manager_required, role_required
from app.services import get_profile_service, get_ticket_service
from app.utils import get_json_body, parse_int_arg, validate_form

tickets_bp = Blueprint('tickets', __name__, url_prefix='/api/tickets')


class TicketForm(FlaskForm):
    """New ticket form."""
    title = StringField('Title', validators=[DataRequired(), Length(max=200)])
    description = TextAreaField('Description', validators=[DataRequired(), Length(max=10000)])
    priority = SelectField(
        'Priority',
        choices=TicketPriority.choices(),
        default=TicketPriority.MEDIUM.value
    )
    base_id = IntegerField('Base', validators=[Optional()])


class StatusForm(FlaskForm):
    status = SelectField('Status', choices=TicketStatus.choices(), validators=[DataRequired()])


class AssignForm(FlaskForm):
    assignee_id = IntegerField('Assignee', validators=[DataRequired()])


class CommentForm(FlaskForm):
    comment = TextAreaField('Comment', validators=[DataRequired(), Length(max=10000)])


def _get_visible_ticket(ticket_id: int):
    ticket = get_ticket_service().get_ticket(ticket_id)
    if not current_user.can_view_ticket(ticket):
        raise PermissionDenied('You cannot view this ticket')
    return ticket


@tickets_bp.route('', methods=['GET'])
@login_required
def list_tickets():
    """List tickets visible to the current profile, with optional filters."""
    tickets = get_ticket_service().get_tickets(
        viewer=current_user,
        base_id=parse_int_arg('base_id'),
        status=request.args.get('status') or None,
        priority=request.args.get('priority') or None,
        created_by=parse_int_arg('created_by'),
        assigned_to=parse_int_arg('assigned_to')
    )
    return jsonify({'success': True, 'tickets': [t.to_dict() for t in tickets]})


@tickets_bp.route('', methods=['POST'])
@role_required('Admin', 'HIS', 'User')
def create_ticket():
    """File a new ticket."""
    form = TicketForm()
    validate_form(form)

    attachment_urls = get_json_body().get('attachment_urls') or []
    ticket = get_ticket_service().create_ticket(
        creator=current_user,
        title=form.title.data,
        description=form.description.data,
        priority=form.priority.data,
        base_id=form.base_id.data,
        attachment_urls=[str(url) for url in attachment_urls]
    )
    return jsonify({'success': True, 'ticket': ticket.to_dict()}), 201


@tickets_bp.route('/stats', methods=['GET'])
@login_required
def ticket_stats():
    """Dashboard statistics, limited to one base for non-admins."""
    base_id = parse_int_arg('base_id')
    if base_id and not current_user.can_access_base(base_id):
        raise PermissionDenied('You cannot view statistics of this base')
    if base_id is None and not current_user.is_admin and len(current_user.base_ids) == 1:
        base_id = current_user.base_ids[0]
    return jsonify({'success': True, 'stats': get_ticket_service().get_ticket_stats(base_id)})


@tickets_bp.route('/<int:ticket_id>', methods=['GET'])
@login_required
def get_ticket(ticket_id):
    """Ticket details."""
    ticket = _get_visible_ticket(ticket_id)
    return jsonify({'success': True, 'ticket': ticket.to_dict()})


@tickets_bp.route('/<int:ticket_id>', methods=['PATCH'])
@manager_required
def update_ticket(ticket_id):
    """Update title, description or priority."""
    ticket = _get_visible_ticket(ticket_id)
    data = get_json_body()
    fields = {k: data[k] for k in ('title', 'description', 'priority') if k in data}
    ticket = get_ticket_service().update_ticket(ticket, **fields)
    return jsonify({'success': True, 'ticket': ticket.to_dict()})


@tickets_bp.route('/<int:ticket_id>/status', methods=['POST'])
@manager_required
def change_status(ticket_id):
    """Change ticket status."""
    ticket = _get_visible_ticket(ticket_id)
    form = StatusForm()
    validate_form(form)

    entry = get_ticket_service().change_status(ticket, form.status.data, current_user)
    return jsonify({
        'success': True,
        'ticket': ticket.to_dict(),
        'entry': entry.to_dict() if entry else None,
    })


@tickets_bp.route('/<int:ticket_id>/assign', methods=['POST'])
@manager_required
def assign_ticket(ticket_id):
    """Assign ticket to a manager."""
    ticket = _get_visible_ticket(ticket_id)
    form = AssignForm()
    validate_form(form)

    assignee = get_profile_service().get_profile(form.assignee_id.data)
    entry = get_ticket_service().assign_ticket(ticket, assignee, current_user)
    return jsonify({'success': True, 'ticket': ticket.to_dict(), 'entry': entry.to_dict()})


@tickets_bp.route('/<int:ticket_id>/comments', methods=['GET'])
@login_required
def ticket_history(ticket_id):
    """History of a ticket, newest first."""
    _get_visible_ticket(ticket_id)
    history = get_ticket_service().get_ticket_history(ticket_id)
    return jsonify({'success': True, 'history': [entry.to_dict() for entry in history]})


@tickets_bp.route('/<int:ticket_id>/comments', methods=['POST'])
@login_required
def add_comment(ticket_id):
    """Add a comment."""
    ticket = _get_visible_ticket(ticket_id)
    form = CommentForm()
    validate_form(form)

    entry = get_ticket_service().add_comment(ticket, current_user, form.comment.data)
    return jsonify({'success': True, 'entry': entry.to_dict()}), 201


@tickets_bp.route('/<int:ticket_id>/attachments', methods=['POST'])
@login_required
def upload_attachment(ticket_id):
    """Upload a screenshot (multipart field 'file')."""
    ticket = _get_visible_ticket(ticket_id)
    url = get_ticket_service().add_attachment(ticket, request.files.get('file'), current_user)
    return jsonify({'success': True, 'url': url, 'attachment_urls': ticket.attachment_urls}), 201


@tickets_bp.route('/attachments/<path:key>', methods=['GET'])
@login_required
def get_attachment(key):
    """Serve a locally stored attachment to profiles that can view its ticket."""
    parts = key.split('/')
    if len(parts) < 3 or parts[0] != 'tickets' or not parts[1].isdigit():
        raise NotFound('Attachment not found')
    _get_visible_ticket(int(parts[1]))

    data = get_ticket_service().storage.download(key)
    if data is None:
        raise NotFound('Attachment not found')
    return Response(data, mimetype='application/octet-stream')
