import functools
import hmac

from flask import (
    Blueprint,
    current_app,
    jsonify,
    request,
    send_file,
    send_from_directory,
    session,
)

from .errors import RegistrationError, ValidationError
from .export import XLSX_MIMETYPE, build_workbook, safe_filename, workbook_bytes
from .uploads import delete_photo, save_photo


bp = Blueprint('main', __name__)


def _registry():
    return current_app.extensions["registry"]


def admin_required(view):
    """Require an admin session when ``ADMIN_PASSWORD`` is configured."""

    @functools.wraps(view)
    def wrapped(*args, **kwargs):
        if current_app.config.get("ADMIN_PASSWORD") and not session.get("admin"):
            return {"error": "Admin login required"}, 401
        return view(*args, **kwargs)

    return wrapped


@bp.app_errorhandler(RegistrationError)
def handle_registration_error(exc):
    if exc.status_code >= 500:
        current_app.logger.error("%s: %s", type(exc).__name__, exc.message)
    return exc.to_dict(), exc.status_code


def _payload() -> dict:
    if request.is_json:
        data = request.get_json(silent=True)
        if not isinstance(data, dict):
            raise ValidationError("Request body must be a JSON object")
        return data
    return request.form.to_dict()


@bp.route('/')
def index():
    return current_app.send_static_file('index.html')


@bp.route('/submit', methods=['POST'])
def submit():
    """Register a participant from the multipart form."""
    form = request.form
    events = form.getlist('events') or form.getlist('events[]')
    data = {
        'school': form.get('school'),
        'name': form.get('name'),
        'dob': form.get('dob'),
        'gender': form.get('gender'),
        # A single field may hold a comma-separated list
        'events': events[0] if len(events) == 1 else events,
    }
    registry = _registry()
    # Reject bad fields before anything is written to the upload folder
    registry.validate(data)

    folder = current_app.config['UPLOAD_FOLDER']
    upload = request.files.get('photo')
    photo = None
    if upload is not None and upload.filename:
        photo = save_photo(upload, folder, current_app.config['ALLOWED_PHOTO_EXTENSIONS'])
    elif current_app.config.get('PHOTO_REQUIRED', True):
        raise ValidationError("A photo is required")
    data['photo'] = photo

    try:
        record = registry.register(data)
    except RegistrationError:
        if photo:
            delete_photo(photo, folder)
        raise
    current_app.logger.info("submit school=%s chest=%d", record.school, record.chest)
    return record.to_dict(), 201


@bp.route('/results')
def results():
    school = request.args.get('school')
    records = _registry().list_records(school=school)
    return jsonify([r.to_dict() for r in records])


@bp.route('/schools')
def schools():
    return jsonify(_registry().schools())


@bp.route('/api/ranges')
def ranges():
    return jsonify(_registry().range_summary())


@bp.route('/api/chest/peek')
def peek():
    school = (request.args.get('school') or '').strip()
    if not school:
        raise ValidationError("School name is required")
    return {'school': school, 'next': _registry().peek(school)}


@bp.route('/api/participants', methods=['PATCH'])
@admin_required
def edit_participant():
    payload = _payload()
    changes = payload.get('changes')
    if not isinstance(changes, dict):
        raise ValidationError("'changes' must be an object")
    record = _registry().edit(payload.get('name') or '', payload.get('school') or '', changes)
    return record.to_dict()


@bp.route('/api/participants', methods=['DELETE'])
@admin_required
def delete_participant():
    payload = _payload()
    name = (payload.get('name') or '').strip()
    school = (payload.get('school') or '').strip()
    if not name or not school:
        raise ValidationError("Both name and school are required")
    record = _registry().remove(name, school)
    return {'status': 'ok', 'removed': record.to_dict()}


@bp.route('/reset-last', methods=['POST'])
@admin_required
def reset_last():
    record = _registry().remove_last()
    return {
        'status': 'ok',
        'message': 'Last response and chest number have been removed.',
        'removed': record.to_dict(),
    }


@bp.route('/reset-all', methods=['POST'])
@admin_required
def reset_all():
    removed = _registry().reset_all()
    return {'status': 'ok', 'message': 'All responses have been reset.', 'removed': removed}


@bp.route('/export')
@admin_required
def export_all():
    wb = build_workbook(_registry().list_records())
    return send_file(
        workbook_bytes(wb),
        mimetype=XLSX_MIMETYPE,
        as_attachment=True,
        download_name='sports_results.xlsx',
    )


@bp.route('/export-school')
@admin_required
def export_school():
    school = (request.args.get('school') or '').strip()
    if not school:
        return {'error': 'School name is required.'}, 400
    records = _registry().list_records(school=school)
    if not records:
        return {'error': 'No entries found for this school.'}, 404
    wb = build_workbook(records, school=school)
    return send_file(
        workbook_bytes(wb),
        mimetype=XLSX_MIMETYPE,
        as_attachment=True,
        download_name=f"{safe_filename(school)}_responses.xlsx",
    )


@bp.route('/login', methods=['POST'])
def login():
    payload = _payload()
    username = str(payload.get('username') or '')
    password = str(payload.get('password') or '')
    expected_user = current_app.config.get('ADMIN_USERNAME') or ''
    expected_pass = current_app.config.get('ADMIN_PASSWORD') or ''
    ok = bool(expected_pass) and hmac.compare_digest(username.encode(), expected_user.encode()) and hmac.compare_digest(password.encode(), expected_pass.encode())
    if not ok:
        current_app.logger.warning("Failed admin login for %r", username)
        return {'error': 'Invalid credentials'}, 401
    session['admin'] = True
    return {'status': 'ok'}


@bp.route('/logout', methods=['POST'])
def logout():
    session.pop('admin', None)
    return {'status': 'ok'}


@bp.route('/uploads/<path:filename>')
def uploaded_photo(filename):
    return send_from_directory(current_app.config['UPLOAD_FOLDER'], filename)
