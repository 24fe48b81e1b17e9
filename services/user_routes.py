"""Owner selection routes. Rules created without a selected user are anonymous/global.

Selecting a user needs that user's 4-digit PIN. A user created before PINs
existed sets one on first selection.
"""


def logout_user():
    import app as a

    jsonify = a.jsonify
    session = a.session

    session.pop('user_id', None)
    return jsonify({'success': True})


def set_user(user_id):
    import app as a

    User = a.User
    db = a.db
    jsonify = a.jsonify
    request = a.request
    session = a.session

    data = request.get_json(silent=True) or {}
    pin = str(data.get('pin', '')).strip()

    if not a.PIN_RE.fullmatch(pin):
        return jsonify({'error': 'A 4-digit PIN is required'}), 400

    user = db.get_or_404(User, user_id)
    pin_created = False
    if not user.pin_hash:
        user.set_pin(pin)
        db.session.commit()
        pin_created = True
    elif not user.check_pin(pin):
        a.app.logger.info("Rejected PIN for user %s", user.id)
        return jsonify({'error': 'Invalid PIN'}), 401

    session['user_id'] = user.id
    session.permanent = True
    return jsonify({'success': True, 'username': user.username, 'user_id': user.id, 'pin_created': pin_created})


def create_user():
    import app as a

    User = a.User
    db = a.db
    jsonify = a.jsonify
    request = a.request
    session = a.session

    data = request.get_json(silent=True) or {}
    username = str(data.get('username') or '').strip()
    pin = str(data.get('pin', '')).strip()

    if not username:
        return jsonify({'error': 'Username is required'}), 400

    if User.query.filter_by(username=username).first():
        return jsonify({'error': 'Username already exists'}), 400

    user = User(username=username)
    try:
        user.set_pin(pin)
    except ValueError as exc:
        return jsonify({'error': str(exc)}), 400
    db.session.add(user)
    db.session.commit()

    # Automatically set as current user
    session['user_id'] = user.id
    session.permanent = True

    return jsonify({'success': True, 'user_id': user.id, 'username': user.username})


def current_user_info():
    import app as a

    user = a.get_current_user()
    if user:
        return a.jsonify(user.to_dict())
    return a.jsonify({'user_id': None, 'username': None})
