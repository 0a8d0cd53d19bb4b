from flask import Flask, request, jsonify, abort, session
from functools import wraps
from flask_login import LoginManager, login_user, logout_user, current_user
import os
from datetime import datetime
import stripe
from werkzeug.exceptions import HTTPException
from werkzeug.security import check_password_hash
import logging
from logging.handlers import RotatingFileHandler

# --- IMPORT MODELS ---
# We import the 'db' variable and the Classes from our models.py file
from models import db, User, Game, GamePackage, Transaction, Banner, SiteConfig, AdminUser
import payments

# --- CONFIGURATION (The Setup) ---
app = Flask(__name__)
# --- LOGGING CONFIGURATION ---
# Rotating log file, keeps the last 10 files of 10 KB each
file_handler = RotatingFileHandler(os.environ.get('LOG_FILE', 'gametopup.log'), maxBytes=10240, backupCount=10)
file_handler.setFormatter(logging.Formatter(
    '%(asctime)s %(levelname)s: %(message)s [in %(pathname)s:%(lineno)d]'
))
file_handler.setLevel(logging.INFO)
app.logger.addHandler(file_handler)

app.logger.setLevel(logging.INFO)
app.logger.info('GameTopUp Startup')
app.config['SECRET_KEY'] = os.environ.get('SECRET_KEY', 'dev-secret-gametopup')
app.config['SQLALCHEMY_DATABASE_URI'] = os.environ.get('DATABASE_URL', 'sqlite:///gametopup.db')
app.config['SQLALCHEMY_TRACK_MODIFICATIONS'] = False
app.config['STRIPE_SECRET_KEY'] = os.environ.get('STRIPE_SECRET_KEY')
app.config['STRIPE_WEBHOOK_SECRET'] = os.environ.get('STRIPE_WEBHOOK_SECRET')
app.config['STRIPE_CURRENCY'] = os.environ.get('STRIPE_CURRENCY', 'idr')

stripe.api_key = app.config['STRIPE_SECRET_KEY']
if not stripe.api_key:
    app.logger.warning('STRIPE_SECRET_KEY is not set; checkout calls will fail')

# --- INITIALIZE EXTENSIONS ---
db.init_app(app)

# Login manager holds the admin session; storefront users come from Firebase
login_manager = LoginManager(app)


@login_manager.user_loader
def load_admin(admin_id):
    admin = db.session.get(AdminUser, admin_id)
    # A deactivated admin loses the session on the next request
    if admin is None or not admin.is_active:
        return None
    return admin


# --- CUSTOM DECORATORS ---
def admin_required(f):
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not current_user.is_authenticated:
            abort(401, description='Unauthorized')
        return f(*args, **kwargs)
    return decorated_function


# --- HELPERS ---
def get_payload():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return {}
    return data


def require_fields(model, data):
    missing = model.missing_fields(data)
    if missing:
        abort(400, description=f'Missing required fields: {", ".join(missing)}')


def apply_payload(obj, data):
    # Validators on the models raise ValueError for bad numbers
    try:
        obj.update_from(data)
    except ValueError as e:
        abort(400, description=str(e))


def get_or_404(model, object_id, label):
    obj = db.session.get(model, object_id)
    if obj is None:
        abort(404, description=f'{label} not found')
    return obj


def ensure_unique_slug(slug, game_id=None):
    existing = Game.query.filter_by(slug=slug).first()
    if existing and existing.id != game_id:
        abort(409, description=f'Slug "{slug}" already exists')


# ==================== Public Game Routes ====================

@app.route('/api/games')
def list_games():
    games = Game.query.filter_by(is_active=True).order_by(Game.created_at.desc()).all()
    return jsonify([game.to_dict() for game in games])


@app.route('/api/games/by-id/<game_id>')
def get_game_by_id(game_id):
    game = Game.query.filter_by(id=game_id, is_active=True).first()
    if not game:
        abort(404, description='Game not found')
    return jsonify(game.to_dict())


@app.route('/api/games/<slug>')
def get_game(slug):
    game = Game.query.filter_by(slug=slug, is_active=True).first()
    if not game:
        abort(404, description='Game not found')
    return jsonify(game.to_dict())


@app.route('/api/games/<slug>/packages')
def list_game_packages(slug):
    game = Game.query.filter_by(slug=slug, is_active=True).first()
    if not game:
        abort(404, description='Game not found')

    packages = (GamePackage.query
                .filter_by(game_id=game.id, is_active=True)
                .order_by(GamePackage.price)
                .all())
    return jsonify([pkg.to_dict() for pkg in packages])


@app.route('/api/packages/<package_id>')
def get_package(package_id):
    pkg = GamePackage.query.filter_by(id=package_id, is_active=True).first()
    if not pkg:
        abort(404, description='Package not found')
    return jsonify(pkg.to_dict())


@app.route('/api/banners')
def list_banners():
    banners = Banner.query.filter_by(is_active=True).order_by(Banner.order).all()
    return jsonify([banner.to_dict() for banner in banners])


@app.route('/api/site-config')
def get_site_config():
    config = SiteConfig.current()
    return jsonify(config.to_dict() if config else {})


# ==================== User Routes ====================

@app.route('/api/users/sync', methods=['POST'])
def sync_user():
    data = get_payload()
    user_id = data.get('id')
    email = data.get('email')

    if not user_id or not email:
        abort(400, description='Missing required fields: id and email')

    user = db.session.get(User, user_id)
    if user is None:
        if User.query.filter_by(email=email).first():
            abort(409, description='Email already linked to another account')
        user = User(id=user_id, email=email, provider=data.get('provider') or 'email')
        db.session.add(user)
        app.logger.info(f'New user synced: {email} ({user.provider})')
    user.update_from({key: value for key, value in data.items() if value is not None})
    db.session.commit()

    return jsonify(user.to_dict())


@app.route('/api/transactions')
def list_user_transactions():
    # Firebase token verification is not done server-side; the client passes its uid
    user_id = request.args.get('userId')
    if not user_id:
        abort(401, description='Unauthorized')

    transactions = (Transaction.query
                    .filter_by(user_id=user_id)
                    .order_by(Transaction.created_at.desc())
                    .all())
    return jsonify([t.to_dict() for t in transactions])


# ==================== Payment Routes ====================

@app.route('/api/create-payment-intent', methods=['POST'])
def create_payment_intent():
    data = get_payload()
    intent, transaction = payments.create_payment_intent(
        user_id=data.get('userId'),
        game_id=data.get('gameId'),
        package_id=data.get('packageId'),
        user_game_id=data.get('userGameId'),
        server=data.get('server'),
    )
    return jsonify({
        'clientSecret': intent['client_secret'],
        'transactionId': transaction.id,
    })


@app.route('/api/confirm-payment', methods=['POST'])
def confirm_payment():
    data = get_payload()
    transaction = payments.confirm_payment(data.get('paymentIntentId'))
    return jsonify({'success': True, 'transaction': transaction.to_dict()})


@app.route('/api/stripe/webhook', methods=['POST'])
def stripe_webhook():
    secret = app.config['STRIPE_WEBHOOK_SECRET']
    if not secret:
        abort(400, description='Webhook secret not configured')

    try:
        event = stripe.Webhook.construct_event(
            request.get_data(), request.headers.get('Stripe-Signature', ''), secret
        )
    except ValueError:
        abort(400, description='Invalid payload')
    except stripe.SignatureVerificationError:
        app.logger.warning('Stripe webhook with invalid signature rejected')
        abort(400, description='Invalid signature')

    event_type = event['type']
    intent_id = event['data']['object']['id']
    app.logger.info(f'Stripe event received: {event_type} ({intent_id})')

    handlers = {
        'payment_intent.succeeded': payments.complete_transaction,
        'payment_intent.payment_failed': payments.fail_transaction,
    }
    handler = handlers.get(event_type)
    if handler:
        try:
            handler(intent_id)
        except HTTPException as e:
            # Unknown or already-settled intents are acknowledged so Stripe stops retrying
            app.logger.warning(f'Stripe event {event_type} for {intent_id} skipped: {e.description}')

    return jsonify({'received': True})


# ==================== Admin Auth Routes ====================

@app.route('/api/admin/login', methods=['POST'])
def admin_login():
    data = get_payload()
    email = data.get('email')
    password = data.get('password')

    if not email or not password:
        abort(400, description='Missing required fields: email and password')

    admin = AdminUser.query.filter_by(email=email).first()

    if admin and admin.is_active and check_password_hash(admin.password, password):
        login_user(admin)
        admin.last_login_at = datetime.utcnow()
        db.session.commit()
        # LOGGING:
        app.logger.info(f'Successful admin login: {admin.email}')
        return jsonify({'success': True})

    # LOGGING:
    app.logger.warning(f'Failed admin login attempt for: {email}')
    abort(401, description='Invalid credentials')


@app.route('/api/admin/logout', methods=['POST'])
def admin_logout():
    if current_user.is_authenticated:
        app.logger.info(f'Admin {current_user.email} logged out.')
    logout_user()
    session.clear()
    return jsonify({'success': True})


@app.route('/api/admin/me')
@admin_required
def admin_me():
    return jsonify(current_user.to_dict())


# ==================== Admin Game Routes ====================

@app.route('/api/admin/games')
@admin_required
def admin_list_games():
    games = Game.query.order_by(Game.created_at.desc()).all()
    return jsonify([game.to_dict() for game in games])


@app.route('/api/admin/games', methods=['POST'])
@admin_required
def admin_create_game():
    data = get_payload()
    require_fields(Game, data)
    ensure_unique_slug(data['slug'])

    game = Game()
    apply_payload(game, data)
    db.session.add(game)
    db.session.commit()
    # LOGGING:
    app.logger.info(f'Admin added new game: {game.name} ({game.slug}, stock {game.stock})')

    return jsonify(game.to_dict()), 201


@app.route('/api/admin/games/<game_id>', methods=['PUT'])
@admin_required
def admin_update_game(game_id):
    game = get_or_404(Game, game_id, 'Game')
    data = get_payload()
    if data.get('slug'):
        ensure_unique_slug(data['slug'], game_id=game.id)

    apply_payload(game, data)
    db.session.commit()
    app.logger.info(f'Admin updated game: {game.slug}')

    return jsonify(game.to_dict())


@app.route('/api/admin/games/<game_id>', methods=['DELETE'])
@admin_required
def admin_delete_game(game_id):
    game = get_or_404(Game, game_id, 'Game')
    if Transaction.query.filter_by(game_id=game.id).first():
        abort(409, description='Game has transactions and cannot be deleted')

    db.session.delete(game)
    db.session.commit()
    # LOGGING:
    app.logger.warning(f'Admin deleted game: {game.slug} (ID: {game_id})')

    return jsonify({'success': True})


# ==================== Admin Package Routes ====================

@app.route('/api/admin/games/<game_id>/packages')
@admin_required
def admin_list_packages(game_id):
    game = get_or_404(Game, game_id, 'Game')
    packages = GamePackage.query.filter_by(game_id=game.id).order_by(GamePackage.price).all()
    return jsonify([pkg.to_dict() for pkg in packages])


@app.route('/api/admin/packages', methods=['POST'])
@admin_required
def admin_create_package():
    data = get_payload()
    require_fields(GamePackage, data)
    game = get_or_404(Game, data['gameId'], 'Game')

    pkg = GamePackage()
    apply_payload(pkg, data)
    db.session.add(pkg)
    db.session.commit()
    app.logger.info(f'Admin added package {pkg.name} to {game.slug} ({pkg.price})')

    return jsonify(pkg.to_dict()), 201


@app.route('/api/admin/packages/<package_id>', methods=['PUT'])
@admin_required
def admin_update_package(package_id):
    pkg = get_or_404(GamePackage, package_id, 'Package')
    data = get_payload()
    if 'gameId' in data:
        get_or_404(Game, data['gameId'], 'Game')

    apply_payload(pkg, data)
    db.session.commit()
    app.logger.info(f'Admin updated package: {pkg.name} (ID: {pkg.id})')

    return jsonify(pkg.to_dict())


@app.route('/api/admin/packages/<package_id>', methods=['DELETE'])
@admin_required
def admin_delete_package(package_id):
    pkg = get_or_404(GamePackage, package_id, 'Package')
    if Transaction.query.filter_by(package_id=pkg.id).first():
        abort(409, description='Package has transactions and cannot be deleted')

    db.session.delete(pkg)
    db.session.commit()
    app.logger.warning(f'Admin deleted package: {pkg.name} (ID: {package_id})')

    return jsonify({'success': True})


# ==================== Admin Banner Routes ====================

@app.route('/api/admin/banners')
@admin_required
def admin_list_banners():
    banners = Banner.query.order_by(Banner.order).all()
    return jsonify([banner.to_dict() for banner in banners])


@app.route('/api/admin/banners', methods=['POST'])
@admin_required
def admin_create_banner():
    data = get_payload()
    require_fields(Banner, data)

    banner = Banner()
    apply_payload(banner, data)
    db.session.add(banner)
    db.session.commit()
    app.logger.info(f'Admin added banner: {banner.title}')

    return jsonify(banner.to_dict()), 201


@app.route('/api/admin/banners/<banner_id>', methods=['PUT'])
@admin_required
def admin_update_banner(banner_id):
    banner = get_or_404(Banner, banner_id, 'Banner')
    apply_payload(banner, get_payload())
    db.session.commit()
    app.logger.info(f'Admin updated banner: {banner.title}')

    return jsonify(banner.to_dict())


@app.route('/api/admin/banners/<banner_id>', methods=['DELETE'])
@admin_required
def admin_delete_banner(banner_id):
    banner = get_or_404(Banner, banner_id, 'Banner')
    db.session.delete(banner)
    db.session.commit()
    app.logger.warning(f'Admin deleted banner: {banner.title} (ID: {banner_id})')

    return jsonify({'success': True})


# ==================== Admin Site Config / Transactions ====================

@app.route('/api/admin/site-config')
@admin_required
def admin_get_site_config():
    config = SiteConfig.current()
    return jsonify(config.to_dict() if config else {})


@app.route('/api/admin/site-config', methods=['PUT'])
@admin_required
def admin_update_site_config():
    config = SiteConfig.current()
    if config is None:
        config = SiteConfig()
        db.session.add(config)

    apply_payload(config, get_payload())
    db.session.commit()
    app.logger.info(f'Admin updated site config: {config.site_name}')

    return jsonify(config.to_dict())


@app.route('/api/admin/transactions')
@admin_required
def admin_list_transactions():
    transactions = Transaction.query.order_by(Transaction.created_at.desc()).all()
    return jsonify([t.to_dict() for t in transactions])


# --- ERROR HANDLERS ---

# Every HTTP error (abort / werkzeug exceptions) comes back as JSON
@app.errorhandler(HTTPException)
def http_error(e):
    if e.code is None or e.code < 400:
        return e
    # Drop any half-applied changes from the failed request
    db.session.rollback()
    return jsonify({'message': e.description}), e.code


# Internal Server Error: anything uncaught
@app.errorhandler(Exception)
def internal_server_error(e):
    db.session.rollback()
    app.logger.exception(f'Server Error: {e}')
    return jsonify({'message': 'Internal server error'}), 500


# --- CLI: DATABASE SEEDING ---
@app.cli.command('seed')
def seed_command():
    """Create the tables and load the default admin and sample catalog."""
    from seed import seed_database
    db.create_all()
    seed_database()
    print('Database seeded.')


# --- SERVER STARTUP ---
if __name__ == '__main__':
    from seed import seed_database

    with app.app_context():
        db.create_all()
        seed_database()

    app.run(debug=True)
