import os

from dotenv import load_dotenv
from flask import Flask, request, jsonify, session

load_dotenv()

from models import db, User, PIN_RE
from backend.rule_store import RuleStore
from services import recurring_routes, user_routes

app = Flask(__name__)
app.config['SQLALCHEMY_DATABASE_URI'] = os.environ.get('DATABASE_URL', 'sqlite:///recurring.db')
app.config['SQLALCHEMY_TRACK_MODIFICATIONS'] = False
app.config['SECRET_KEY'] = os.environ.get('SECRET_KEY', 'dev-secret-key-change-in-production')
app.config['PERMANENT_SESSION_LIFETIME'] = 365 * 24 * 60 * 60  # 1 year in seconds
app.config['API_SHARED_KEY'] = os.environ.get('API_SHARED_KEY')  # Optional shared key for API callers
app.config['RECURRING_TITLE_MAX'] = 120
app.config['RECURRING_NOTES_MAX'] = 500

db.init_app(app)
rule_store = RuleStore(db)

def _header_user_id():
    """User id asserted by a trusted service caller, or None.

    Service callers send `X-API-Key` (must equal API_SHARED_KEY) with `X-User-Id`.
    With no shared key configured the headers are ignored.
    """
    shared_key = app.config.get('API_SHARED_KEY')
    if not shared_key or request.headers.get('X-API-Key') != shared_key:
        return None
    raw = request.headers.get('X-User-Id', '')
    return int(raw) if raw.isascii() and raw.isdigit() else None


def current_owner_id():
    """Owner id for rule queries: header caller first, then the browser session, else None (global rules)."""
    for candidate in (_header_user_id(), session.get('user_id')):
        if candidate and db.session.get(User, candidate) is not None:
            return candidate
    return None


def get_current_user():
    owner_id = current_owner_id()
    return db.session.get(User, owner_id) if owner_id else None


with app.app_context():
    db.create_all()


@app.errorhandler(404)
def not_found(_exc):
    return jsonify({'error': 'Not found'}), 404


# User selection
app.add_url_rule('/api/create-user', view_func=user_routes.create_user, methods=['POST'])
app.add_url_rule('/api/set-user/<int:user_id>', view_func=user_routes.set_user, methods=['POST'])
app.add_url_rule('/api/current-user', view_func=user_routes.current_user_info, methods=['GET'])
app.add_url_rule('/api/logout', view_func=user_routes.logout_user, methods=['POST'])

# Recurring events
app.add_url_rule('/api/recurring', view_func=recurring_routes.recurring_collection, methods=['GET', 'POST'])
app.add_url_rule('/api/recurring/rules', view_func=recurring_routes.list_recurring_rules, methods=['GET'])
app.add_url_rule('/api/recurring/<int:rule_id>', view_func=recurring_routes.recurring_detail, methods=['PATCH', 'DELETE'])
app.add_url_rule('/api/recurring/<int:rule_id>/skips', view_func=recurring_routes.add_recurring_skip, methods=['POST'])
app.add_url_rule('/api/recurring/<int:rule_id>/overrides', view_func=recurring_routes.add_recurring_override, methods=['POST'])

if __name__ == '__main__':
    app.run(host='0.0.0.0', debug=True)
